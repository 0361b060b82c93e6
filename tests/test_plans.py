from __future__ import annotations

import dataclasses

import pytest

from reviewdesk.core import plans
from reviewdesk.core.plans import (
    DEFAULT_PLAN_TABLE,
    Feature,
    PlanRegistry,
    build_plan_registry,
    get_plan_registry,
)
from reviewdesk.models.enums import PlanTier


def test_default_table_limits() -> None:
    registry = PlanRegistry()

    free = registry.plan_for(PlanTier.FREE)
    pro = registry.plan_for("PRO")
    agency = registry.plan_for(PlanTier.AGENCY)

    assert (free.workspace_limit, free.location_limit, free.monthly_generation_limit) == (1, 1, 50)
    assert (pro.workspace_limit, pro.location_limit, pro.monthly_generation_limit) == (10, 3, 1000)
    assert agency.workspace_limit == 100
    assert agency.location_limit is None
    assert free.features == frozenset()
    assert pro.has_feature(Feature.APPROVAL_WORKFLOW)
    assert pro.has_feature(Feature.BRAND_VOICE)
    assert not pro.has_feature(Feature.BULK_EXPORT)
    assert all(agency.has_feature(feature) for feature in Feature)


def test_plans_are_ordered_by_tier() -> None:
    assert [plan.tier for plan in PlanRegistry().plans()] == [PlanTier.FREE, PlanTier.PRO, PlanTier.AGENCY]


def test_table_cannot_be_mutated() -> None:
    registry = PlanRegistry()

    with pytest.raises(TypeError):
        DEFAULT_PLAN_TABLE[PlanTier.FREE] = DEFAULT_PLAN_TABLE[PlanTier.PRO]  # type: ignore[index]
    with pytest.raises(dataclasses.FrozenInstanceError):
        registry.plan_for(PlanTier.FREE).monthly_generation_limit = 10_000  # type: ignore[misc]


def test_minimum_plan_for_feature() -> None:
    registry = PlanRegistry()

    assert registry.minimum_plan_for(Feature.APPROVAL_WORKFLOW).tier == PlanTier.PRO
    assert registry.minimum_plan_for(Feature.PRIORITY_SUPPORT).tier == PlanTier.AGENCY


def test_limit_for_rejects_unknown_resource() -> None:
    plan = PlanRegistry().plan_for(PlanTier.FREE)

    assert plan.limit_for("generations") == 50
    with pytest.raises(KeyError):
        plan.limit_for("seats")


def test_registry_requires_every_tier() -> None:
    table = {PlanTier.FREE: DEFAULT_PLAN_TABLE[PlanTier.FREE]}
    with pytest.raises(ValueError):
        PlanRegistry(table)


def test_build_registry_applies_overrides() -> None:
    registry = build_plan_registry(
        {"free": {"monthly_generation_limit": 5, "features": ["brand_voice"]}}
    )

    free = registry.plan_for(PlanTier.FREE)
    assert free.monthly_generation_limit == 5
    assert free.features == frozenset({Feature.BRAND_VOICE})
    assert registry.plan_for(PlanTier.PRO) == DEFAULT_PLAN_TABLE[PlanTier.PRO]


def test_get_plan_registry_reads_settings_once(monkeypatch: pytest.MonkeyPatch) -> None:
    get_plan_registry.cache_clear()
    monkeypatch.setattr(plans.settings, "plan_table_json", '{"PRO": {"monthly_generation_limit": 2000}}')
    try:
        registry = get_plan_registry()
        assert registry.plan_for(PlanTier.PRO).monthly_generation_limit == 2000
        assert get_plan_registry() is registry
    finally:
        get_plan_registry.cache_clear()
