"""Permission-check error taxonomy.

``GrantLookupFailure``, ``UnknownPermission`` and ``InvalidContext`` never
leave the resolver's public boolean API: they are logged and turned into a
denial there. ``PermissionDeniedError`` is what the raising convenience API
(``require_permission``) throws.
"""

from __future__ import annotations

from typing import Any

from .grants import AccessContext


class PermissionCheckError(Exception):
    """Base class for failures while evaluating a permission."""

    code = 'permission_check_error'

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class GrantLookupFailure(PermissionCheckError):
    """A grant, delegation or status source was unreachable or returned junk."""

    code = 'lookup_failed'

    def __init__(self, source: str, cause: BaseException | None = None) -> None:
        details: dict[str, Any] = {'source': source}
        if cause is not None:
            details['cause'] = type(cause).__name__
        super().__init__(f'{source} lookup failed', details)
        self.source = source
        self.cause = cause


class UnknownPermission(PermissionCheckError):
    """The permission name is not present in the resolved set."""

    code = 'unknown_permission'

    def __init__(self, permission: str) -> None:
        super().__init__(f'unknown permission: {permission}', {'permission': permission})
        self.permission = permission


class InvalidContext(PermissionCheckError):
    """A scope-qualified grant exists but the context lacks what it needs."""

    code = 'invalid_context'

    def __init__(self, permission: str, missing: tuple[str, ...]) -> None:
        super().__init__(
            f'{permission} needs {", ".join(missing)} in the access context',
            {'permission': permission, 'missing': list(missing)},
        )
        self.permission = permission
        self.missing = missing


class PermissionDeniedError(Exception):
    """Raised by ``require_permission`` when the check denies."""

    def __init__(self, permission: str, context: AccessContext | None = None) -> None:
        suffix = ' for the specified scope' if context is not None else ''
        super().__init__(f"insufficient permissions: '{permission}'{suffix}")
        self.permission = permission
        self.context = context
