"""Error taxonomy shared by the gateway, the controller and the view server."""

from __future__ import annotations


class PartyRoomsError(Exception):
    """Base class; ``kind`` is what the view's error banner reports."""

    kind = "unknown"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotConfiguredError(PartyRoomsError):
    """No remote endpoint is set up. Rendered as setup instructions, never retried."""

    kind = "configuration"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Remote backend is not configured. Set PARTYROOMS_SUPABASE_URL and "
            "PARTYROOMS_SUPABASE_ANON_KEY, or PARTYROOMS_DATABASE_URL."
        )


class InputValidationError(PartyRoomsError):
    kind = "validation"


class ActionNotAllowedError(InputValidationError):
    """The current snapshot does not allow this player to take the action."""


class RemoteRejectionError(PartyRoomsError):
    """Business-rule failure reported by a remote procedure; message is verbatim."""

    kind = "remote"


class MalformedResponseError(PartyRoomsError):
    kind = "malformed"


class TransportError(PartyRoomsError):
    kind = "transport"


class ContentError(PartyRoomsError):
    kind = "content"
