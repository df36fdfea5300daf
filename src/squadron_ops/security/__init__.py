"""Route guards for permission-protected endpoints."""

from .permission_guard import (
    caller_pilot_id,
    get_request_user_id,
    require_all_permissions,
    require_any_permission,
    require_permission,
    require_user_id,
    squadron_context,
    wing_context,
    with_caller_pilot,
)

__all__ = [
    "caller_pilot_id",
    "get_request_user_id",
    "require_all_permissions",
    "require_any_permission",
    "require_permission",
    "require_user_id",
    "squadron_context",
    "wing_context",
    "with_caller_pilot",
]
