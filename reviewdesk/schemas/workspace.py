from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field


class WorkspaceCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=120)


class WorkspaceSummary(BaseModel):
    workspace_id: UUID
    workspace_name: str
    role: str


class DefaultWorkspaceResponse(BaseModel):
    workspace_id: UUID | None = None


class GuardResponse(BaseModel):
    allowed: bool
