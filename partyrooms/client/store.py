"""Local persistence for per-room sessions and the device-wide nickname."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import Protocol

from partyrooms.client.codes import normalize_room_code
from partyrooms.client.models import RoomSession

logger = logging.getLogger(__name__)

KEY_PREFIX = "partyrooms"
NICKNAME_KEY = f"{KEY_PREFIX}:nickname"


def session_key(game_slug: str, room_code: str) -> str:
    return f"{KEY_PREFIX}:{game_slug}:session:{normalize_room_code(room_code)}"


def _decode_session(raw: object) -> RoomSession | None:
    if not isinstance(raw, str):
        return None
    try:
        return RoomSession.from_record(json.loads(raw))
    except ValueError:
        return None


class SessionStore(Protocol):
    def load(self, game_slug: str, room_code: str) -> RoomSession | None:
        """Return the stored session for the room, or None when absent or corrupt."""

    def save(self, game_slug: str, session: RoomSession) -> None:
        """Persist the session under its room code, replacing any previous record."""

    def load_nickname(self) -> str:
        """Return the cached nickname, or an empty string."""

    def save_nickname(self, nickname: str) -> None:
        """Cache the nickname for every game on this device."""


@dataclass
class InMemorySessionStore:
    def __post_init__(self) -> None:
        self._records: dict[str, str] = {}

    def load(self, game_slug: str, room_code: str) -> RoomSession | None:
        key = session_key(game_slug, room_code)
        raw = self._records.get(key)
        if raw is None:
            return None
        session = _decode_session(raw)
        if session is None:
            logger.warning("Dropping corrupt session record %s", key)
            self._records.pop(key, None)
        return session

    def save(self, game_slug: str, session: RoomSession) -> None:
        self._records[session_key(game_slug, session.room_code)] = json.dumps(session.to_record())

    def load_nickname(self) -> str:
        return self._records.get(NICKNAME_KEY, "")

    def save_nickname(self, nickname: str) -> None:
        self._records[NICKNAME_KEY] = nickname


@dataclass
class FileSessionStore:
    """Key/value records kept in one JSON file, the desktop stand-in for browser storage."""

    path: Path

    def __post_init__(self) -> None:
        self.path = Path(self.path).expanduser()

    def _read(self) -> dict[str, object]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("Session storage %s is unavailable: %s", self.path, exc)
            return {}
        try:
            payload = json.loads(text)
        except ValueError:
            logger.warning("Session storage %s is not valid JSON, ignoring it", self.path)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {str(key): value for key, value in payload.items()}

    def _write(self, records: dict[str, object]) -> None:
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".sessions-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(records, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            logger.warning("Could not write session storage %s: %s", self.path, exc)
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)

    def load(self, game_slug: str, room_code: str) -> RoomSession | None:
        key = session_key(game_slug, room_code)
        records = self._read()
        raw = records.get(key)
        if raw is None:
            return None
        session = _decode_session(raw)
        if session is None:
            logger.warning("Dropping corrupt session record %s", key)
            records.pop(key, None)
            self._write(records)
        return session

    def save(self, game_slug: str, session: RoomSession) -> None:
        records = self._read()
        records[session_key(game_slug, session.room_code)] = json.dumps(session.to_record())
        self._write(records)

    def load_nickname(self) -> str:
        nickname = self._read().get(NICKNAME_KEY, "")
        return nickname if isinstance(nickname, str) else ""

    def save_nickname(self, nickname: str) -> None:
        records = self._read()
        records[NICKNAME_KEY] = nickname
        self._write(records)


def create_store(session_path: str | None) -> SessionStore:
    if session_path:
        return FileSessionStore(path=Path(session_path))
    return InMemorySessionStore()
