"""HTTP-facing error taxonomy for the access-control and billing core.

Each kind is an ``HTTPException`` so dependencies can raise it directly and
FastAPI renders it without extra plumbing. ``Forbidden`` never says whether the
workspace exists and ``ReconciliationUnauthorized`` carries nothing beyond
"Unauthorized".
"""

from __future__ import annotations

from fastapi import HTTPException, status


class Unauthenticated(HTTPException):
    def __init__(self, detail: str = "Authentication required") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Workspace access denied") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class QuotaExceeded(HTTPException):
    def __init__(self, *, plan: str, limit: int, used: int) -> None:
        self.plan = plan
        self.limit = limit
        self.used = used
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "quota_exceeded",
                "message": f"Monthly AI generation limit reached ({limit}) for the {plan} plan",
                "plan": plan,
                "limit": limit,
                "used": used,
            },
        )


class FeatureNotAvailable(HTTPException):
    def __init__(self, *, feature: str, plan: str, required_plan: str | None) -> None:
        self.feature = feature
        self.plan = plan
        self.required_plan = required_plan
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "feature_not_available",
                "message": f"Feature {feature} is not included in the {plan} plan",
                "feature": feature,
                "plan": plan,
                "required_plan": required_plan,
            },
        )


class PlanLimitReached(HTTPException):
    def __init__(self, *, resource: str, plan: str, limit: int) -> None:
        self.resource = resource
        self.plan = plan
        self.limit = limit
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "plan_limit_reached",
                "message": f"Plan limit reached: max {limit} {resource} on the {plan} plan",
                "resource": resource,
                "plan": plan,
                "limit": limit,
            },
        )


class ReconciliationUnauthorized(HTTPException):
    def __init__(self) -> None:
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
