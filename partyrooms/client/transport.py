"""Transports that execute named remote procedures against the game backend."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import re
from typing import Any, Protocol

import httpx

from partyrooms.client.config import ClientSettings
from partyrooms.client.errors import RemoteRejectionError, TransportError

logger = logging.getLogger(__name__)

_SQL_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


class RpcTransport(Protocol):
    async def call(self, function: str, params: dict[str, Any]) -> Any:
        """Run a remote procedure and return its decoded result (None for void)."""

    async def aclose(self) -> None:
        """Release network resources."""


def _rejection_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "details", "hint", "error_description", "error"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value
    text = response.text.strip()
    return text or response.reason_phrase or f"HTTP {response.status_code}"


@dataclass
class HttpRpcTransport:
    """Calls ``POST <base_url>/rest/v1/rpc/<function>`` the way the hosted backend exposes them."""

    base_url: str
    anon_key: str
    client: httpx.AsyncClient | None = None
    _http: httpx.AsyncClient = field(init=False, repr=False)
    _owns_client: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        if self.client is None:
            self._http = httpx.AsyncClient()
            self._owns_client = True
        else:
            self._http = self.client

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
            "Content-Type": "application/json",
        }

    async def call(self, function: str, params: dict[str, Any]) -> Any:
        url = f"{self.base_url}/rest/v1/rpc/{function}"
        logger.debug("RPC %s", function)
        try:
            response = await self._http.post(url, json=params, headers=self._headers())
        except httpx.HTTPError as exc:
            raise TransportError(f"Could not reach the game backend: {exc}") from exc

        if response.status_code >= 400:
            raise RemoteRejectionError(_rejection_message(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Backend returned a non-JSON body for {function}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


@dataclass
class PostgresRpcTransport:
    """Calls the backend's SQL functions directly over a database connection."""

    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    @staticmethod
    def build_statement(function: str, params: dict[str, Any]) -> tuple[str, tuple[Any, ...]]:
        names = [function, *params.keys()]
        for name in names:
            if not _SQL_IDENTIFIER.match(name):
                raise ValueError(f"Not a plain SQL identifier: {name!r}")
        arguments = ", ".join(f"{name} => %s" for name in params)
        return f"SELECT {function}({arguments}) AS result", tuple(params.values())

    def _call_sync(self, function: str, params: dict[str, Any]) -> Any:
        import psycopg

        sql, values = self.build_statement(function, params)
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql, values)
                    row = cur.fetchone()
                conn.commit()
        except psycopg.errors.RaiseException as exc:
            message = exc.diag.message_primary if exc.diag is not None else None
            raise RemoteRejectionError(message or str(exc)) from exc
        except psycopg.Error as exc:
            raise TransportError(f"Database call {function} failed: {exc}") from exc

        if row is None:
            return None
        return row[0]

    async def call(self, function: str, params: dict[str, Any]) -> Any:
        logger.debug("SQL RPC %s", function)
        return await asyncio.to_thread(self._call_sync, function, params)

    async def aclose(self) -> None:
        return None


def create_transport(settings: ClientSettings) -> RpcTransport | None:
    if settings.supabase_url and settings.supabase_anon_key:
        return HttpRpcTransport(base_url=settings.supabase_url, anon_key=settings.supabase_anon_key)
    if settings.database_url:
        return PostgresRpcTransport(database_url=settings.database_url)
    return None
