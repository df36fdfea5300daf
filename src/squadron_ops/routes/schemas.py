"""Request bodies shared by the console routers."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from ..permissions.grants import AccessContext
from ..permissions.rule_admin import RuleDraft


class AccessContextBody(BaseModel):
    wing_id: str | None = None
    squadron_id: str | None = None
    pilot_id: str | None = None
    debrief_id: str | None = None

    def to_context(self) -> AccessContext | None:
        context = AccessContext(
            wing_id=self.wing_id,
            squadron_id=self.squadron_id,
            pilot_id=self.pilot_id,
            debrief_id=self.debrief_id,
        )
        return context if context.to_dict() else None


class CheckPermissionsRequest(BaseModel):
    permissions: list[str] = Field(..., min_length=1, max_length=100)
    context: AccessContextBody | None = None
    detailed: bool = False


class GateRequest(BaseModel):
    permission: str = Field(..., min_length=1)
    mode: Literal['hide', 'disable', 'show-tooltip'] = 'hide'
    has_fallback: bool = False
    denied_message: str | None = None
    context: AccessContextBody | None = None


class GatesRequest(BaseModel):
    gates: list[GateRequest] = Field(..., min_length=1, max_length=100)


class InvalidateRequest(BaseModel):
    user_id: str | None = None
    all: bool = False


class CreateDelegationRequest(BaseModel):
    pilot_id: str = Field(..., min_length=1)


class RuleBody(BaseModel):
    permission_id: str = Field(..., min_length=1)
    basis_type: str = Field(..., min_length=1)
    scope: str = Field(..., min_length=1)
    basis_id: str | None = None
    active: bool = True

    def to_draft(self) -> RuleDraft:
        return RuleDraft(
            permission_id=self.permission_id,
            basis_type=self.basis_type,
            scope=self.scope,
            basis_id=self.basis_id,
            active=self.active,
        )


class BulkRulesRequest(BaseModel):
    rules: list[RuleBody] = Field(..., min_length=1, max_length=100)


class RuleUpdateBody(BaseModel):
    """Partial update; only the fields present in the body are changed."""

    permission_id: str | None = Field(default=None, min_length=1)
    basis_type: str | None = Field(default=None, min_length=1)
    scope: str | None = Field(default=None, min_length=1)
    basis_id: str | None = None
    active: bool | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)
