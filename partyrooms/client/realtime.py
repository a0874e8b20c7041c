"""Push invalidation: row-change notifications that trigger a snapshot re-fetch."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Protocol, Sequence
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets

from partyrooms.client.games import GameDefinition

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_S = 30.0
RECONNECT_DELAY_S = 5.0
ROOM_TABLE = "game_rooms"
PLAYERS_TABLE = "room_players"

OnChange = Callable[[], Awaitable[None]]


def watched_tables(game: GameDefinition, room_id: str) -> list[dict[str, str]]:
    """Change filters for the room row, its players and the game's child tables."""
    tables = [{"event": "*", "schema": "public", "table": ROOM_TABLE, "filter": f"id=eq.{room_id}"}]
    for table in (PLAYERS_TABLE, *game.child_tables):
        tables.append({"event": "*", "schema": "public", "table": table, "filter": f"room_id=eq.{room_id}"})
    return tables


class Subscription(Protocol):
    async def close(self) -> None:
        """Stop receiving notifications."""


class ChangeFeed(Protocol):
    async def subscribe(self, channel: str, tables: Sequence[dict[str, str]], on_change: OnChange) -> Subscription:
        """Start delivering one ``on_change()`` per row change on ``tables``."""


def realtime_socket_url(base_url: str, anon_key: str) -> str:
    parts = urlsplit(base_url.rstrip("/"))
    scheme = "wss" if parts.scheme == "https" else "ws"
    query = urlencode({"apikey": anon_key, "vsn": "1.0.0"})
    return urlunsplit((scheme, parts.netloc, f"{parts.path}/realtime/v1/websocket", query, ""))


def build_join_message(topic: str, tables: Sequence[dict[str, str]], access_token: str, ref: str) -> dict[str, Any]:
    return {
        "topic": topic,
        "event": "phx_join",
        "payload": {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": list(tables),
            },
            "access_token": access_token,
        },
        "ref": ref,
    }


class _RealtimeSubscription:
    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task

    async def close(self) -> None:
        self._task.cancel()
        if self._task is asyncio.current_task():
            return
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class SupabaseRealtimeFeed:
    """Phoenix-channel client for the hosted backend's ``postgres_changes`` stream.

    The channel is rejoined after ``reconnect_s`` whenever the socket closes or
    cannot be opened, until the subscription is closed.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        heartbeat_s: float = HEARTBEAT_INTERVAL_S,
        reconnect_s: float = RECONNECT_DELAY_S,
    ) -> None:
        self.url = realtime_socket_url(base_url, anon_key)
        self.anon_key = anon_key
        self.heartbeat_s = heartbeat_s
        self.reconnect_s = reconnect_s
        self._refs = itertools.count(1)

    async def subscribe(self, channel: str, tables: Sequence[dict[str, str]], on_change: OnChange) -> Subscription:
        task = asyncio.create_task(self._run(f"realtime:{channel}", list(tables), on_change))
        return _RealtimeSubscription(task)

    async def _heartbeat(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_s)
            await ws.send(json.dumps({"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": str(next(self._refs))}))

    async def _listen(self, topic: str, tables: list[dict[str, str]], on_change: OnChange) -> None:
        async with websockets.connect(self.url) as ws:
            await ws.send(json.dumps(build_join_message(topic, tables, self.anon_key, str(next(self._refs)))))
            heartbeat = asyncio.create_task(self._heartbeat(ws))
            try:
                async for raw in ws:
                    await self._dispatch(topic, raw, on_change)
            finally:
                heartbeat.cancel()

    async def _run(self, topic: str, tables: list[dict[str, str]], on_change: OnChange) -> None:
        while True:
            try:
                await self._listen(topic, tables, on_change)
                logger.info("Realtime channel %s closed, rejoining in %.0fs", topic, self.reconnect_s)
            except (OSError, websockets.exceptions.WebSocketException) as exc:
                logger.warning("Realtime channel %s unavailable, relying on polling: %s", topic, exc)
            await asyncio.sleep(self.reconnect_s)

    async def _dispatch(self, topic: str, raw: str | bytes, on_change: OnChange) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring non-JSON realtime frame on %s", topic)
            return
        if not isinstance(message, dict):
            return
        event = message.get("event")
        if event == "postgres_changes" and message.get("topic") == topic:
            try:
                await on_change()
            except Exception:
                logger.exception("Change handler for %s failed", topic)
        elif event == "phx_reply" and (message.get("payload") or {}).get("status") == "error":
            logger.warning("Realtime join for %s rejected: %s", topic, message.get("payload"))


class PushListener:
    """Keeps at most one change subscription for the room currently on screen."""

    def __init__(
        self,
        feed: ChangeFeed | None,
        game: GameDefinition,
        on_change: OnChange,
    ) -> None:
        self.feed = feed
        self.game = game
        self._on_change = on_change
        self._room_id: str | None = None
        self._subscription: Subscription | None = None

    @property
    def room_id(self) -> str | None:
        return self._room_id

    async def watch(self, room_id: str | None) -> None:
        if self.feed is None or room_id == self._room_id:
            return
        await self.close()
        if not room_id:
            return
        self._room_id = room_id
        self._subscription = await self.feed.subscribe(
            f"{self.game.slug}-room-{room_id}",
            watched_tables(self.game, room_id),
            self._on_change,
        )
        logger.debug("Watching %s room %s", self.game.slug, room_id)

    async def close(self) -> None:
        subscription, self._subscription = self._subscription, None
        self._room_id = None
        if subscription is not None:
            await subscription.close()
