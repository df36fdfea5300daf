"""PostgREST-backed sources for permissions, delegations and debriefs."""

from .debrief_repo import SupabaseDebriefRepository
from .delegation_repo import SupabaseDelegationRepository
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
    SupabaseUnavailableError,
)
from .permission_rule_repo import SupabasePermissionRuleRepository
from .supabase_client import PostgrestFilter, SupabaseClient

__all__ = [
    "PostgrestFilter",
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseDebriefRepository",
    "SupabaseDelegationRepository",
    "SupabaseError",
    "SupabaseNotFoundError",
    "SupabasePermissionRuleRepository",
    "SupabaseUnavailableError",
]
