"""Generic room session controller shared by every game."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from partyrooms.client.codes import normalize_room_code
from partyrooms.client.content import ContentLibrary
from partyrooms.client.errors import (
    ActionNotAllowedError,
    ContentError,
    InputValidationError,
    NotConfiguredError,
    PartyRoomsError,
)
from partyrooms.client.games import GameDefinition, GateContext
from partyrooms.client.gateway import RoomGateway
from partyrooms.client.models import RoomSession, RoomView
from partyrooms.client.poller import DEFAULT_INTERVAL_S, SnapshotPoller
from partyrooms.client.realtime import ChangeFeed, PushListener
from partyrooms.client.reveal import RevealTracker
from partyrooms.client.screens import build_room_view, derive_gates
from partyrooms.client.store import SessionStore

logger = logging.getLogger(__name__)

ViewListener = Callable[[RoomView], Awaitable[None]]


class RoomController:
    """One mounted room view: session, last snapshot, sync loops and error banner.

    Shared state only ever comes from fetched snapshots. Local state is limited
    to the session, the busy marker, the error banner and the reveal marker.
    """

    def __init__(
        self,
        game: GameDefinition,
        gateway: RoomGateway,
        store: SessionStore,
        feed: ChangeFeed | None = None,
        content: ContentLibrary | None = None,
        poll_interval_s: float = DEFAULT_INTERVAL_S,
    ) -> None:
        self.game = game
        self.gateway = gateway
        self.store = store
        self.content = content
        self.room_code = ""
        self.session: RoomSession | None = None
        self.snapshot: dict[str, Any] | None = None
        self.busy_action: str | None = None
        self.error: str | None = None
        self.error_kind: str | None = None
        self.reveal = RevealTracker(game.terminal_statuses)
        self.poller = SnapshotPoller(self.refresh, poll_interval_s)
        self.listener = PushListener(feed, game, self.refresh)
        self._fetch_seq = 0
        self._applied_seq = 0
        self._content_items: list[dict[str, Any]] | None = None
        self._content_error: str | None = None
        self._view_listeners: list[ViewListener] = []

    def add_listener(self, callback: ViewListener) -> None:
        self._view_listeners.append(callback)

    def remove_listener(self, callback: ViewListener) -> None:
        if callback in self._view_listeners:
            self._view_listeners.remove(callback)

    def view(self) -> RoomView:
        return build_room_view(
            self.game,
            self.room_code,
            self.session,
            self.snapshot,
            result_open=self.reveal.result_open,
            busy_action=self.busy_action,
            error=self.error,
            error_kind=self.error_kind,
            content=self._content_items,
            content_error=self._content_error,
        )

    async def _notify(self) -> None:
        if not self._view_listeners:
            return
        view = self.view()
        for callback in list(self._view_listeners):
            await callback(view)

    def _set_error(self, message: str | None, kind: str | None) -> None:
        self.error = message
        self.error_kind = kind

    def _context(self) -> GateContext | None:
        if self.session is None or not self.snapshot:
            return None
        return GateContext(
            session=self.session,
            snapshot=self.snapshot,
            current=self.game.current_round(self.snapshot),
            content=self._content_items,
        )

    async def _stop_sync(self) -> None:
        await self.poller.stop()
        await self.listener.close()

    async def _enter(self, room_code: str, session: RoomSession | None) -> None:
        await self._stop_sync()
        self.room_code = room_code
        self.session = session
        self.snapshot = None
        self.reveal = RevealTracker(self.game.terminal_statuses)

    async def _start_sync(self) -> None:
        if self.session is None or not self.gateway.configured:
            return
        await self.refresh()
        self.poller.start()

    async def _load_content(self) -> None:
        if self.game.content_kind is None or self._content_items is not None:
            return
        if self.content is None:
            self._content_error = ContentError("Game content location is not configured.").message
            return
        try:
            self._content_items = await self.content.get(self.game.content_kind)
            self._content_error = None
        except ContentError as exc:
            logger.warning("Could not load %s content: %s", self.game.slug, exc.message)
            self._content_error = exc.message

    async def open_room(self, room_code: str) -> RoomView:
        """Switch the view to ``room_code``, resuming a stored session when there is one."""
        code = normalize_room_code(room_code)
        if code and code == self.room_code and self.session is not None:
            return self.view()
        await self._enter(code, self.store.load(self.game.slug, code) if code else None)
        self._set_error(None, None)
        if code and not self.gateway.configured:
            error = NotConfiguredError()
            self._set_error(error.message, error.kind)
        elif code:
            await self._load_content()
            await self._start_sync()
        await self._notify()
        return self.view()

    async def leave(self) -> None:
        """Abandon the room on this view; the stored session stays reusable."""
        await self._enter("", None)
        self._set_error(None, None)
        await self._notify()

    async def _guarded(self, action: str, fallback: str, call: Callable[[], Awaitable[None]]) -> bool:
        self.busy_action = action
        self._set_error(None, None)
        await self._notify()
        try:
            await call()
        except PartyRoomsError as exc:
            logger.info("%s %s failed: %s", self.game.slug, action, exc.message)
            self._set_error(exc.message, exc.kind)
            return False
        except Exception:
            logger.exception("Unexpected failure during %s %s", self.game.slug, action)
            self._set_error(fallback, "unknown")
            return False
        finally:
            self.busy_action = None
            await self._notify()
        return True

    async def _adopt_session(self, nickname: str, session: RoomSession) -> None:
        self.store.save_nickname(nickname.strip())
        self.store.save(self.game.slug, session)
        await self._enter(session.room_code, session)
        await self._load_content()
        await self._start_sync()

    async def create_room(self, nickname: str) -> bool:
        async def call() -> None:
            session = await self.gateway.create_room(nickname)
            await self._adopt_session(nickname, session)

        return await self._guarded("create", "Could not create the room.", call)

    async def join_room(self, nickname: str) -> bool:
        async def call() -> None:
            if not self.room_code:
                raise InputValidationError("A room code is required to join.")
            session = await self.gateway.join_room(self.room_code, nickname)
            await self._adopt_session(nickname, session)

        return await self._guarded("join", "Could not join the room.", call)

    async def perform(self, action: str, **params: Any) -> bool:
        """Submit a player intent after checking it against the last snapshot.

        A disallowed action is reported in the error banner and never reaches
        the backend.
        """
        if self.session is None:
            self._set_error("Enter the room first.", InputValidationError.kind)
            await self._notify()
            return False
        if action not in self.game.actions:
            self._set_error(f"{self.game.title} has no action {action!r}.", InputValidationError.kind)
            await self._notify()
            return False
        gates = derive_gates(
            self.game, self.session, self.snapshot, content=self._content_items, busy_action=self.busy_action
        )
        if not gates.get(action):
            error = ActionNotAllowedError("That action is not available right now.")
            self._set_error(error.message, error.kind)
            await self._notify()
            return False

        session = self.session
        context = self._context()

        async def call() -> None:
            await self.gateway.submit_action(session, action, params, context)
            await self.refresh()

        fallback = f"Could not {action.replace('_', ' ')}."
        return await self._guarded(action, fallback, call)

    def _is_stale(self, seq: int, session: RoomSession | None, room_code: str) -> bool:
        return seq < self._applied_seq or session is not self.session or room_code != self.room_code

    async def refresh(self) -> None:
        """Fetch the authoritative snapshot and replace the local one.

        Every fetch takes a sequence number; a response older than the one on
        screen, or one for a session that has since changed, is dropped.
        """
        session, room_code = self.session, self.room_code
        if not room_code or not self.gateway.configured:
            return
        if self.game.snapshot_needs_identity and session is None:
            return
        self._fetch_seq += 1
        seq = self._fetch_seq
        try:
            snapshot = await self.gateway.fetch_snapshot(room_code, session)
        except PartyRoomsError as exc:
            if self._is_stale(seq, session, room_code):
                return
            self._applied_seq = seq
            self.snapshot = None
            self._set_error(exc.message, exc.kind)
            await self._notify()
            return
        except Exception:
            logger.exception("Unexpected failure loading %s room %s", self.game.slug, room_code)
            if self._is_stale(seq, session, room_code):
                return
            self._applied_seq = seq
            self.snapshot = None
            self._set_error("Could not load the room.", "unknown")
            await self._notify()
            return

        if self._is_stale(seq, session, room_code):
            logger.debug("Discarding stale snapshot #%d for %s", seq, room_code)
            return
        self._applied_seq = seq
        self.snapshot = snapshot
        if self.busy_action is None:
            self._set_error(None, None)
        current = self.game.current_round(snapshot)
        if current is not None:
            self.reveal.observe(self.game.round_identity(current), self.game.round_status(current))
        await self.listener.watch(snapshot.get("roomId"))
        await self._notify()

    async def dismiss_result(self) -> None:
        self.reveal.dismiss()
        await self._notify()

    async def close(self) -> None:
        await self._stop_sync()
        self._view_listeners.clear()
