"""Scoped permission evaluation for the ops console."""

from .cache import PermissionCache
from .calculator import (
    BOOLEAN_PERMISSIONS,
    SCOPED_PERMISSIONS,
    PermissionCalculator,
    PermissionRule,
    UserBases,
    compute_permission_set,
)
from .errors import (
    GrantLookupFailure,
    InvalidContext,
    PermissionCheckError,
    PermissionDeniedError,
    UnknownPermission,
)
from .gate import GateDecision, GateMode, PermissionGate, decide_gate
from .grants import (
    AccessContext,
    DelegationRecord,
    FlightGrant,
    GlobalGrant,
    PermissionGrant,
    SquadronGrant,
    WingGrant,
    grant_from_scope,
)
from .matcher import evaluate
from .permission_set import PermissionSet
from .resolver import PermissionCheckResult, PermissionResolver
from .rule_admin import InvalidRule, PermissionRuleRecord, RuleAdminService, RuleDraft
from .watch import PermissionWatch

__all__ = [
    "AccessContext",
    "BOOLEAN_PERMISSIONS",
    "DelegationRecord",
    "FlightGrant",
    "GateDecision",
    "GateMode",
    "GlobalGrant",
    "GrantLookupFailure",
    "InvalidContext",
    "InvalidRule",
    "PermissionCache",
    "PermissionCalculator",
    "PermissionCheckError",
    "PermissionCheckResult",
    "PermissionDeniedError",
    "PermissionGate",
    "PermissionGrant",
    "PermissionResolver",
    "PermissionRule",
    "PermissionRuleRecord",
    "PermissionSet",
    "PermissionWatch",
    "RuleAdminService",
    "RuleDraft",
    "SCOPED_PERMISSIONS",
    "SquadronGrant",
    "UnknownPermission",
    "UserBases",
    "WingGrant",
    "compute_permission_set",
    "decide_gate",
    "evaluate",
    "grant_from_scope",
]
