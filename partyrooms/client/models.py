"""Domain models for room sessions and derived room views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SCREEN_NO_ROOM = "no-room"
SCREEN_JOIN = "join"
SCREEN_LOBBY = "lobby"
SCREEN_ACTIVE = "active"
SCREEN_REVEALED = "revealed"


@dataclass(frozen=True)
class RoomSession:
    room_code: str
    player_id: str
    player_secret: str = field(repr=False)
    nickname: str

    def to_record(self) -> dict[str, str]:
        return {
            "nickname": self.nickname,
            "playerId": self.player_id,
            "playerSecret": self.player_secret,
            "roomCode": self.room_code,
        }

    @classmethod
    def from_record(cls, record: Any) -> RoomSession:
        """Build a session from a stored or remote record.

        Raises ``ValueError`` unless all four identity fields are non-empty strings.
        """
        if not isinstance(record, dict):
            raise ValueError("session record must be an object")
        values: dict[str, str] = {}
        for key in ("roomCode", "playerId", "playerSecret", "nickname"):
            value = record.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"session record is missing {key}")
            values[key] = value
        return cls(
            room_code=values["roomCode"],
            player_id=values["playerId"],
            player_secret=values["playerSecret"],
            nickname=values["nickname"],
        )

    def credentials(self) -> dict[str, str]:
        """Remote procedure parameters that authorize a call as this player."""
        return {
            "player_id_input": self.player_id,
            "player_secret_input": self.player_secret,
            "room_code_input": self.room_code,
        }

    def public(self) -> dict[str, str]:
        return {"roomCode": self.room_code, "playerId": self.player_id, "nickname": self.nickname}


@dataclass(frozen=True)
class RoomView:
    game: str
    room_code: str
    screen: str
    gates: dict[str, bool]
    snapshot: dict[str, Any] | None = None
    session: RoomSession | None = None
    is_spectator: bool = False
    result_open: bool = False
    busy_action: str | None = None
    error: str | None = None
    error_kind: str | None = None
    content_error: str | None = None

    @property
    def setup_required(self) -> bool:
        return self.error_kind == "configuration"

    def to_dict(self) -> dict[str, Any]:
        return {
            "game": self.game,
            "roomCode": self.room_code,
            "screen": self.screen,
            "gates": dict(self.gates),
            "snapshot": self.snapshot,
            "session": self.session.public() if self.session is not None else None,
            "isSpectator": self.is_spectator,
            "resultOpen": self.result_open,
            "busyAction": self.busy_action,
            "error": self.error,
            "errorKind": self.error_kind,
            "contentError": self.content_error,
            "setupRequired": self.setup_required,
        }
