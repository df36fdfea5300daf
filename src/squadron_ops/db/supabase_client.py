"""Async PostgREST client for the squadron database.

This is the single point of Supabase HTTP interaction for the repositories in
``squadron_ops.db``. The client is an explicit handle: the composing
application constructs it, injects it into repositories and closes it on
shutdown. Nothing here is cached at module level.
"""

from __future__ import annotations

import asyncio
import json
import random
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import httpx

from ..observability.logging import get_logger
from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
    SupabaseUnavailableError,
)

logger = get_logger(__name__)

# Reads are idempotent, so these are retried; writes never are.
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_DEFAULT_MAX_RETRIES = 2
_DEFAULT_BASE_DELAY = 0.25  # seconds
_DEFAULT_MAX_DELAY = 4.0  # seconds

Filters = Sequence["PostgrestFilter"] | Mapping[str, tuple[str, Any] | Any] | None


@dataclass(frozen=True, slots=True)
class PostgrestFilter:
    column: str
    op: str
    value: Any


def _split_schema_table(table: str, default_schema: str) -> tuple[str, str]:
    # "ops.permission_rules" selects a non-public schema through the
    # Accept-Profile/Content-Profile headers.
    if "." in table:
        schema, name = table.split(".", 1)
        return schema.strip(), name.strip()
    return default_schema, table.strip()


def _encode_scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _encode_filter_value(op: str, value: Any) -> str:
    if op == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        items = [json.dumps(v) if isinstance(v, str) else _encode_scalar(v) for v in value]
        return f"({','.join(items)})"

    if value is None and op != "is":
        raise ValueError(f"{op} does not support None; use op='is' with value=None")
    return _encode_scalar(value)


def _filters_to_params(filters: Filters) -> dict[str, str]:
    if not filters:
        return {}

    if isinstance(filters, Mapping):
        pairs: Iterable[tuple[str, str, Any]] = (
            (str(col), *cond) if isinstance(cond, tuple) and len(cond) == 2 else (str(col), "eq", cond)
            for col, cond in filters.items()
        )
    else:
        pairs = ((f.column, f.op, f.value) for f in filters)

    return {col: f"{op}.{_encode_filter_value(op, val)}" for col, op, val in pairs}


class SupabaseClient:
    """Minimal async PostgREST client (service role) with typed results."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        default_schema: str = "public",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self._supabase_url = supabase_url.rstrip("/")
        self._service_role_key = service_role_key
        self._default_schema = default_schema or "public"
        self._timeout_seconds = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        # Only a client we created ourselves is ours to close.
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    @property
    def base_rest_url(self) -> str:
        return f"{self._supabase_url}/rest/v1"

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def aclose(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> SupabaseClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _auth_headers(self) -> dict[str, str]:
        # Never log these headers.
        return {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
        }

    def _headers(self, schema: str, method: str, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = self._auth_headers()
        if schema:
            headers["Accept-Profile"] = schema
            if method in ("POST", "PATCH", "PUT", "DELETE"):
                headers["Content-Profile"] = schema
        if extra:
            headers.update(extra)
        return headers

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        message = resp.text
        code = details = hint = None
        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("message") or message
                code = payload.get("code")
                details = payload.get("details")
                hint = payload.get("hint")
        except ValueError:
            pass

        err_cls: type[SupabaseError]
        if resp.status_code in (401, 403):
            err_cls = SupabaseAuthError
        elif resp.status_code == 404:
            err_cls = SupabaseNotFoundError
        elif resp.status_code == 409:
            err_cls = SupabaseConflictError
        else:
            err_cls = SupabaseError

        raise err_cls(
            status_code=resp.status_code,
            message=message,
            code=code,
            details=details,
            hint=hint,
        )

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        return random.uniform(0, delay)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        params: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> httpx.Response:
        retries = self._max_retries if method == "GET" else 0

        for attempt in range(retries + 1):
            try:
                resp = await self._client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    headers=headers,
                    timeout=self._timeout_seconds,
                )
            except httpx.TransportError as exc:
                if attempt >= retries:
                    raise SupabaseUnavailableError(
                        status_code=503,
                        message=f"{type(exc).__name__} talking to PostgREST",
                    ) from exc
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "postgrest_transport_retry",
                    method=method,
                    error=type(exc).__name__,
                    attempt=attempt + 1,
                    delay_seconds=round(delay, 3),
                )
                await asyncio.sleep(delay)
                continue

            if resp.status_code not in _RETRYABLE_STATUS_CODES or attempt >= retries:
                return resp

            delay = self._backoff_delay(attempt)
            logger.warning(
                "postgrest_status_retry",
                method=method,
                status=resp.status_code,
                attempt=attempt + 1,
                delay_seconds=round(delay, 3),
            )
            await asyncio.sleep(delay)

        raise SupabaseUnavailableError(status_code=503, message="exhausted retries with no response")

    @staticmethod
    def _expect_list(resp: httpx.Response, operation: str) -> list[dict[str, Any]]:
        payload = resp.json()
        if not isinstance(payload, list):
            raise SupabaseError(status_code=500, message=f"expected list response from {operation}")
        return payload

    async def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        schema, table_name = _split_schema_table(table, self._default_schema)
        params = _filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order

        resp = await self._send(
            "GET",
            f"{self.base_rest_url}/{table_name}",
            params=params,
            headers=self._headers(schema, "GET"),
        )
        self._raise_for_error(resp)
        return self._expect_list(resp, "select")

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        *,
        upsert: bool = False,
    ) -> list[dict[str, Any]]:
        schema, table_name = _split_schema_table(table, self._default_schema)
        prefer = "return=representation"
        if upsert:
            prefer += ",resolution=merge-duplicates"

        resp = await self._send(
            "POST",
            f"{self.base_rest_url}/{table_name}",
            json_body=data,
            headers=self._headers(schema, "POST", {"Prefer": prefer}),
        )
        self._raise_for_error(resp)
        return self._expect_list(resp, "insert")

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        schema, table_name = _split_schema_table(table, self._default_schema)
        resp = await self._send(
            "PATCH",
            f"{self.base_rest_url}/{table_name}",
            params=_filters_to_params(filters),
            json_body=data,
            headers=self._headers(schema, "PATCH", {"Prefer": "return=representation"}),
        )
        self._raise_for_error(resp)
        return self._expect_list(resp, "update")

    async def delete(
        self,
        table: str,
        filters: Filters,
    ) -> list[dict[str, Any]]:
        schema, table_name = _split_schema_table(table, self._default_schema)
        resp = await self._send(
            "DELETE",
            f"{self.base_rest_url}/{table_name}",
            params=_filters_to_params(filters),
            headers=self._headers(schema, "DELETE", {"Prefer": "return=representation"}),
        )
        self._raise_for_error(resp)
        return self._expect_list(resp, "delete")

    async def rpc(
        self,
        function_name: str,
        params: Mapping[str, Any] | None = None,
        *,
        schema: str | None = None,
    ) -> Any:
        resp = await self._send(
            "POST",
            f"{self.base_rest_url}/rpc/{function_name}",
            json_body=dict(params or {}),
            headers=self._headers(schema or self._default_schema, "POST"),
        )
        self._raise_for_error(resp)
        return resp.json()
