"""Cancellable permission checks for short-lived consumers.

A consumer (a mounted view, an open websocket, a pending form) starts a check
and may go away before it resolves. ``PermissionWatch`` runs the check as a
task and only delivers the result if the consumer is still there and has not
started a newer check in the meantime.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from ..observability.logging import get_logger
from .grants import AccessContext
from .resolver import PermissionResolver

logger = get_logger(__name__)


class PermissionWatch:
    """One consumer's view of a permission check.

    ``state`` is None until a result has been delivered.
    """

    def __init__(
        self,
        resolver: PermissionResolver,
        on_result: Callable[[bool], None] | None = None,
    ) -> None:
        self._resolver = resolver
        self._on_result = on_result
        self._task: asyncio.Task[bool] | None = None
        self._generation = 0
        self._closed = False
        self.state: bool | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(
        self,
        user_id: str,
        permission: str,
        context: AccessContext | None = None,
    ) -> asyncio.Task[bool]:
        """Start a check, superseding any earlier one still running."""
        if self._closed:
            raise RuntimeError('permission watch is closed')

        if self._task is not None and not self._task.done():
            self._task.cancel()

        self._generation += 1
        self.state = None
        self._task = asyncio.create_task(
            self._run(self._generation, user_id, permission, context)
        )
        return self._task

    async def _run(
        self,
        generation: int,
        user_id: str,
        permission: str,
        context: AccessContext | None,
    ) -> bool:
        allowed = await self._resolver.has_permission(user_id, permission, context)
        if self._closed or generation != self._generation:
            logger.debug('permission_result_discarded', permission=permission, user_id=user_id)
            return allowed

        self.state = allowed
        if self._on_result is not None:
            self._on_result(allowed)
        return allowed

    def cancel(self) -> None:
        """Detach the consumer; any late result is dropped."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
