"""Plan registry: the single table of tiers, limits and capability flags.

The table is immutable once built. ``get_plan_registry`` builds it once per
process from the defaults plus the optional ``PLAN_TABLE_JSON`` overrides, and
is the FastAPI dependency every quota and feature check goes through, so tests
can swap in an alternate table with ``app.dependency_overrides``.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, replace
from functools import lru_cache
from types import MappingProxyType

from reviewdesk.core.config import settings
from reviewdesk.models.enums import PlanTier


class Feature(str, enum.Enum):
    BRAND_VOICE = "BRAND_VOICE"
    APPROVAL_WORKFLOW = "APPROVAL_WORKFLOW"
    BULK_EXPORT = "BULK_EXPORT"
    PRIORITY_SUPPORT = "PRIORITY_SUPPORT"


TIER_ORDER: tuple[PlanTier, ...] = (PlanTier.FREE, PlanTier.PRO, PlanTier.AGENCY)


@dataclass(frozen=True, slots=True)
class Plan:
    tier: PlanTier
    workspace_limit: int | None
    location_limit: int | None
    monthly_generation_limit: int
    features: frozenset[Feature]

    def has_feature(self, feature: Feature) -> bool:
        return feature in self.features

    def limit_for(self, resource: str) -> int | None:
        """Return the countable limit for ``resource``; ``None`` means unlimited."""
        limits = {
            "workspaces": self.workspace_limit,
            "locations": self.location_limit,
            "generations": self.monthly_generation_limit,
        }
        if resource not in limits:
            raise KeyError(f"Unknown plan resource: {resource}")
        return limits[resource]


DEFAULT_PLAN_TABLE: Mapping[PlanTier, Plan] = MappingProxyType(
    {
        PlanTier.FREE: Plan(
            tier=PlanTier.FREE,
            workspace_limit=1,
            location_limit=1,
            monthly_generation_limit=50,
            features=frozenset(),
        ),
        PlanTier.PRO: Plan(
            tier=PlanTier.PRO,
            workspace_limit=10,
            location_limit=3,
            monthly_generation_limit=1000,
            features=frozenset({Feature.BRAND_VOICE, Feature.APPROVAL_WORKFLOW}),
        ),
        PlanTier.AGENCY: Plan(
            tier=PlanTier.AGENCY,
            workspace_limit=100,
            location_limit=None,
            monthly_generation_limit=10000,
            features=frozenset(Feature),
        ),
    }
)


class PlanRegistry:
    def __init__(self, table: Mapping[PlanTier, Plan] = DEFAULT_PLAN_TABLE) -> None:
        missing = [tier.value for tier in TIER_ORDER if tier not in table]
        if missing:
            raise ValueError(f"Plan table is missing tiers: {', '.join(missing)}")
        self._table: Mapping[PlanTier, Plan] = MappingProxyType(dict(table))

    def plan_for(self, tier: PlanTier | str) -> Plan:
        return self._table[PlanTier(tier)]

    def plans(self) -> list[Plan]:
        return [self._table[tier] for tier in TIER_ORDER]

    def minimum_plan_for(self, feature: Feature) -> Plan | None:
        for plan in self.plans():
            if plan.has_feature(feature):
                return plan
        return None


def build_plan_registry(overrides: Mapping[str, Mapping[str, object]] | None = None) -> PlanRegistry:
    table = dict(DEFAULT_PLAN_TABLE)
    for tier_name, fields in (overrides or {}).items():
        tier = PlanTier(tier_name.upper())
        changes = dict(fields)
        if "features" in changes:
            changes["features"] = frozenset(Feature(str(value).upper()) for value in changes["features"])
        table[tier] = replace(table[tier], **changes)
    return PlanRegistry(table)


@lru_cache(maxsize=1)
def get_plan_registry() -> PlanRegistry:
    return build_plan_registry(settings.plan_table_overrides())
