"""Room session and synchronization layer for the party games."""

from .codes import build_share_url, normalize_room_code
from .config import ClientSettings, load_settings
from .controller import RoomController
from .games import GAMES, GameDefinition, get_game
from .gateway import RoomGateway
from .models import RoomSession, RoomView
from .reveal import RevealTracker
from .store import FileSessionStore, InMemorySessionStore, SessionStore, create_store
from .transport import HttpRpcTransport, PostgresRpcTransport, create_transport

__all__ = [
    "build_share_url",
    "ClientSettings",
    "create_store",
    "create_transport",
    "FileSessionStore",
    "GameDefinition",
    "GAMES",
    "get_game",
    "HttpRpcTransport",
    "InMemorySessionStore",
    "load_settings",
    "normalize_room_code",
    "PostgresRpcTransport",
    "RevealTracker",
    "RoomController",
    "RoomGateway",
    "RoomSession",
    "RoomView",
    "SessionStore",
]
