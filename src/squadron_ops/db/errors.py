"""Errors raised by the PostgREST client.

Repositories, the permission layer and route handlers only ever see these,
never an ``httpx.Response``, so neither the service-role key nor a raw
response body travels past ``SupabaseClient``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SupabaseError(Exception):
    """A failed PostgREST request.

    ``code``, ``details`` and ``hint`` are copied from the PostgREST error
    body when it has one.
    """

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    @property
    def transient(self) -> bool:
        """True when the same request may succeed later (rate limit, server side)."""
        return self.status_code == 429 or self.status_code >= 500

    def __str__(self) -> str:
        text = f"PostgREST {self.status_code}: {self.message}"
        if self.code:
            text += f" [{self.code}]"
        if self.hint:
            text += f" (hint: {self.hint})"
        return text


class SupabaseAuthError(SupabaseError):
    """Service key rejected, or row-level security refused the request."""


class SupabaseNotFoundError(SupabaseError):
    """Table, view or function missing from the PostgREST schema cache."""


class SupabaseConflictError(SupabaseError):
    """Unique or foreign-key violation on write, e.g. a duplicate permission rule."""


class SupabaseUnavailableError(SupabaseError):
    """The database could not be reached before retries ran out."""
