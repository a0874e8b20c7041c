"""Derives the visible screen and action gates from session presence and the last snapshot."""

from __future__ import annotations

from typing import Any

from partyrooms.client.games import GameDefinition, GateContext
from partyrooms.client.models import (
    SCREEN_ACTIVE,
    SCREEN_JOIN,
    SCREEN_LOBBY,
    SCREEN_NO_ROOM,
    SCREEN_REVEALED,
    RoomSession,
    RoomView,
)


def derive_screen(
    room_code: str,
    session: RoomSession | None,
    snapshot: dict[str, Any] | None,
    game: GameDefinition,
) -> str:
    if not room_code:
        return SCREEN_NO_ROOM
    if session is None:
        return SCREEN_JOIN
    current = game.current_round(snapshot)
    if current is None:
        return SCREEN_LOBBY
    if game.round_status(current) in game.terminal_statuses:
        return SCREEN_REVEALED
    return SCREEN_ACTIVE


def derive_gates(
    game: GameDefinition,
    session: RoomSession | None,
    snapshot: dict[str, Any] | None,
    content: list[dict[str, Any]] | None = None,
    busy_action: str | None = None,
) -> dict[str, bool]:
    """Which actions this player may take right now. Everything is closed while a call is in flight."""
    if session is None or not snapshot or busy_action is not None:
        return game.closed_gates()
    context = GateContext(session=session, snapshot=snapshot, current=game.current_round(snapshot), content=content)
    gates = game.closed_gates()
    gates.update({name: bool(allowed) for name, allowed in game.gates(context).items() if name in gates})
    return gates


def is_spectator(
    game: GameDefinition,
    session: RoomSession | None,
    snapshot: dict[str, Any] | None,
) -> bool:
    if game.spectator is None or session is None or not snapshot:
        return False
    context = GateContext(session=session, snapshot=snapshot, current=game.current_round(snapshot))
    return game.spectator(context)


def build_room_view(
    game: GameDefinition,
    room_code: str,
    session: RoomSession | None,
    snapshot: dict[str, Any] | None,
    *,
    result_open: bool = False,
    busy_action: str | None = None,
    error: str | None = None,
    error_kind: str | None = None,
    content: list[dict[str, Any]] | None = None,
    content_error: str | None = None,
) -> RoomView:
    return RoomView(
        game=game.slug,
        room_code=room_code,
        screen=derive_screen(room_code, session, snapshot, game),
        gates=derive_gates(game, session, snapshot, content=content, busy_action=busy_action),
        snapshot=snapshot,
        session=session,
        is_spectator=is_spectator(game, session, snapshot),
        result_open=result_open,
        busy_action=busy_action,
        error=error,
        error_kind=error_kind,
        content_error=content_error,
    )
