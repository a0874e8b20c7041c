"""Typed access to one game's remote procedures."""

from __future__ import annotations

import logging
from typing import Any

from partyrooms.client.codes import normalize_room_code
from partyrooms.client.errors import (
    InputValidationError,
    MalformedResponseError,
    NotConfiguredError,
)
from partyrooms.client.games import ActionSpec, GameDefinition, GateContext
from partyrooms.client.models import RoomSession
from partyrooms.client.transport import RpcTransport

logger = logging.getLogger(__name__)


def parse_session(data: Any) -> RoomSession:
    """Validate a create/join response before anything persists it."""
    if not data:
        raise MalformedResponseError("The backend returned an empty response.")
    try:
        return RoomSession.from_record(data)
    except ValueError as exc:
        raise MalformedResponseError("The backend response is missing the expected session.") from exc


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def resolve_params(
    action_spec: ActionSpec,
    params: dict[str, Any],
    context: GateContext | None = None,
) -> dict[str, Any]:
    """Turn caller keyword arguments into remote procedure parameters.

    Raises ``InputValidationError`` before any network traffic when a declared
    parameter is missing or empty.
    """
    unknown = set(params) - set(action_spec.params)
    if unknown:
        raise InputValidationError(f"Unexpected parameters: {', '.join(sorted(unknown))}")
    prepared = action_spec.prepare(dict(params), context) if action_spec.prepare is not None else dict(params)
    rpc_params: dict[str, Any] = dict(action_spec.fixed)
    for name, rpc_name in action_spec.params.items():
        value = prepared.get(name)
        if _is_missing(value):
            raise InputValidationError(action_spec.missing_message or f"{name.replace('_', ' ').capitalize()} is required.")
        rpc_params[rpc_name] = value
    return rpc_params


class RoomGateway:
    def __init__(self, game: GameDefinition, transport: RpcTransport | None) -> None:
        self.game = game
        self.transport = transport

    @property
    def configured(self) -> bool:
        return self.transport is not None

    def _require_transport(self) -> RpcTransport:
        if self.transport is None:
            raise NotConfiguredError()
        return self.transport

    async def create_room(self, nickname: str) -> RoomSession:
        transport = self._require_transport()
        name = nickname.strip()
        if not name:
            raise InputValidationError("Enter a nickname before creating a room.")
        data = await transport.call(self.game.create_rpc, {"host_nickname": name})
        session = parse_session(data)
        logger.info("Created %s room %s", self.game.slug, session.room_code)
        return session

    async def join_room(self, room_code: str, nickname: str) -> RoomSession:
        transport = self._require_transport()
        name = nickname.strip()
        code = normalize_room_code(room_code)
        if not name:
            raise InputValidationError("Enter a nickname before joining.")
        if not code:
            raise InputValidationError("A room code is required to join.")
        data = await transport.call(self.game.join_rpc, {"player_nickname": name, "room_code_input": code})
        session = parse_session(data)
        logger.info("Joined %s room %s as %s", self.game.slug, session.room_code, session.player_id)
        return session

    async def fetch_snapshot(self, room_code: str, session: RoomSession | None = None) -> dict[str, Any]:
        transport = self._require_transport()
        code = normalize_room_code(room_code)
        if not code:
            raise InputValidationError("A room code is required.")
        params: dict[str, Any] = {"room_code_input": code}
        if self.game.snapshot_needs_identity:
            if session is None:
                raise InputValidationError("Join the room first.")
            params.update(session.credentials())
            params["room_code_input"] = code
        data = await transport.call(self.game.snapshot_rpc, params)
        if not data or not isinstance(data, dict):
            raise MalformedResponseError("The room could not be loaded.")
        return data

    async def submit_action(
        self,
        session: RoomSession,
        action: str,
        params: dict[str, Any] | None = None,
        context: GateContext | None = None,
    ) -> None:
        transport = self._require_transport()
        action_spec = self.game.actions.get(action)
        if action_spec is None:
            raise InputValidationError(f"{self.game.title} has no action {action!r}.")
        rpc_params = resolve_params(action_spec, params or {}, context)
        rpc_params.update(session.credentials())
        await transport.call(action_spec.rpc, rpc_params)
        logger.debug("Submitted %s/%s for %s", self.game.slug, action, session.room_code)
