from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AppSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    namespace: str
    name: str
    deleting: bool = False
    has_snapshot: bool = Field(False, alias="hasSnapshot")


class ReconcileResponse(BaseModel):
    namespace: str
    name: str
    action: str = Field(..., description="absent|deleting|created|repaired|unchanged|updated")
    changed: list[str] = Field(default_factory=list, description="Child kinds written by this pass")


class ErrorResponse(BaseModel):
    error: str
    detail: str
