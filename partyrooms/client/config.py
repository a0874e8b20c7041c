"""Configuration helpers for the room client runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ClientSettings:
    supabase_url: str | None
    supabase_anon_key: str | None
    database_url: str | None
    host: str
    port: int
    poll_interval_s: float
    session_path: str | None
    content_base: str | None
    public_url: str

    @property
    def is_configured(self) -> bool:
        """True when some remote transport can be built from these settings."""
        if self.supabase_url and self.supabase_anon_key:
            return True
        return bool(self.database_url)


def load_settings() -> ClientSettings:
    port_raw = os.getenv("PARTYROOMS_PORT", "8000")
    poll_raw = os.getenv("PARTYROOMS_POLL_INTERVAL", "2.0")
    host = os.getenv("PARTYROOMS_HOST", "127.0.0.1")
    port = int(port_raw)
    return ClientSettings(
        supabase_url=os.getenv("PARTYROOMS_SUPABASE_URL") or None,
        supabase_anon_key=os.getenv("PARTYROOMS_SUPABASE_ANON_KEY") or None,
        database_url=os.getenv("PARTYROOMS_DATABASE_URL") or None,
        host=host,
        port=port,
        poll_interval_s=float(poll_raw),
        session_path=os.getenv("PARTYROOMS_SESSION_PATH") or None,
        content_base=os.getenv("PARTYROOMS_CONTENT_BASE") or None,
        public_url=os.getenv("PARTYROOMS_PUBLIC_URL", f"http://{host}:{port}"),
    )
