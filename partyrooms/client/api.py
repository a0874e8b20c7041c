"""FastAPI room view server: derived room views over HTTP and websocket push."""

from __future__ import annotations

from collections import defaultdict
from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from partyrooms.client.codes import build_share_url, normalize_room_code
from partyrooms.client.config import ClientSettings, load_settings
from partyrooms.client.content import ContentLibrary
from partyrooms.client.controller import RoomController
from partyrooms.client.games import GAMES, GameDefinition, get_game
from partyrooms.client.gateway import RoomGateway
from partyrooms.client.models import RoomView
from partyrooms.client.realtime import ChangeFeed, SupabaseRealtimeFeed
from partyrooms.client.store import SessionStore, create_store
from partyrooms.client.transport import RpcTransport, create_transport

logger = logging.getLogger(__name__)


class NicknameRequest(BaseModel):
    nickname: str = Field(default="", max_length=40)


class ActionRequest(BaseModel):
    action: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)


class RoomViewResponse(BaseModel):
    view: dict[str, Any]


class ShareResponse(BaseModel):
    url: str


class GameSummary(BaseModel):
    slug: str
    title: str
    min_players: int
    max_players: int | None
    host_only_start: bool
    actions: list[str]


class RoomViewHub:
    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, room_key: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[room_key].add(websocket)

    def disconnect(self, room_key: str, websocket: WebSocket) -> None:
        connections = self._connections.get(room_key)
        if connections is None:
            return
        connections.discard(websocket)
        if not connections:
            self._connections.pop(room_key, None)

    def connection_count(self, room_key: str) -> int:
        return len(self._connections.get(room_key, ()))

    async def send_view(self, websocket: WebSocket, view: RoomView) -> None:
        await websocket.send_json({"type": "view.full", "view": view.to_dict()})

    async def broadcast_view(self, room_key: str, view: RoomView) -> None:
        stale_connections: list[WebSocket] = []
        for websocket in list(self._connections.get(room_key, set())):
            try:
                await self.send_view(websocket, view)
            except (RuntimeError, WebSocketDisconnect):
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(room_key=room_key, websocket=websocket)


def room_key(slug: str, room_code: str) -> str:
    return f"{slug}:{room_code}"


class RoomViewRegistry:
    """Controllers for the rooms this device holds a session in.

    Views opened without a session are served by a throwaway controller that
    the caller hands back through ``discard``. A registered controller lives
    until its room is left, its last websocket goes away, or the app stops.
    """

    def __init__(
        self,
        settings: ClientSettings,
        transport: RpcTransport | None,
        store: SessionStore,
        feed: ChangeFeed | None,
        content: ContentLibrary | None,
        hub: RoomViewHub,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.store = store
        self.feed = feed
        self.content = content
        self.hub = hub
        self._controllers: dict[str, RoomController] = {}

    def _new_controller(self, game: GameDefinition) -> RoomController:
        return RoomController(
            game=game,
            gateway=RoomGateway(game, self.transport),
            store=self.store,
            feed=self.feed,
            content=self.content,
            poll_interval_s=self.settings.poll_interval_s,
        )

    def is_registered(self, controller: RoomController) -> bool:
        return self._controllers.get(room_key(controller.game.slug, controller.room_code)) is controller

    async def _track(self, controller: RoomController) -> None:
        if controller.session is None or not controller.room_code or self.is_registered(controller):
            return
        key = room_key(controller.game.slug, controller.room_code)
        existing = self._controllers.pop(key, None)
        if existing is not None:
            await existing.close()
        self._controllers[key] = controller

        async def push(view: RoomView) -> None:
            await self.hub.broadcast_view(key, view)

        controller.add_listener(push)

    async def open(self, game: GameDefinition, room_code: str) -> RoomController:
        code = normalize_room_code(room_code)
        controller = self._controllers.get(room_key(game.slug, code))
        if controller is None:
            controller = self._new_controller(game)
        await controller.open_room(code)
        await self._track(controller)
        return controller

    async def create(self, game: GameDefinition, nickname: str) -> RoomController:
        controller = self._new_controller(game)
        await controller.create_room(nickname)
        await self._track(controller)
        return controller

    async def join(self, game: GameDefinition, room_code: str, nickname: str) -> RoomController:
        controller = await self.open(game, room_code)
        await controller.join_room(nickname)
        await self._track(controller)
        return controller

    async def leave(self, game: GameDefinition, room_code: str) -> RoomView:
        """Abandon the room on this device; its stored session stays reusable."""
        code = normalize_room_code(room_code)
        controller = self._controllers.pop(room_key(game.slug, code), None)
        if controller is None:
            controller = self._new_controller(game)
        await controller.leave()
        view = controller.view()
        await controller.close()
        return view

    async def discard(self, controller: RoomController) -> None:
        """Close ``controller`` unless it is the one registered for its room."""
        if not self.is_registered(controller):
            await controller.close()

    async def unwatch(self, controller: RoomController) -> None:
        """Called after a websocket for ``controller``'s room went away."""
        key = room_key(controller.game.slug, controller.room_code)
        await self.discard(controller)
        if self.hub.connection_count(key):
            return
        registered = self._controllers.pop(key, None)
        if registered is not None:
            logger.debug("Last view of %s closed, stopping sync", key)
            await registered.close()

    async def close(self) -> None:
        controllers = list(self._controllers.values())
        self._controllers.clear()
        for controller in controllers:
            await controller.close()


def _default_feed(settings: ClientSettings) -> ChangeFeed | None:
    if settings.supabase_url and settings.supabase_anon_key:
        return SupabaseRealtimeFeed(base_url=settings.supabase_url, anon_key=settings.supabase_anon_key)
    return None


def create_app(
    settings: ClientSettings | None = None,
    transport: RpcTransport | None = None,
    store: SessionStore | None = None,
    feed: ChangeFeed | None = None,
    content: ContentLibrary | None = None,
) -> FastAPI:
    client_settings = settings if settings is not None else load_settings()
    rpc_transport = transport if transport is not None else create_transport(client_settings)
    session_store = store if store is not None else create_store(client_settings.session_path)
    change_feed = feed if feed is not None else _default_feed(client_settings)
    content_library = content if content is not None else ContentLibrary(client_settings.content_base)
    hub = RoomViewHub()
    registry = RoomViewRegistry(
        settings=client_settings,
        transport=rpc_transport,
        store=session_store,
        feed=change_feed,
        content=content_library,
        hub=hub,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await registry.close()
        if rpc_transport is not None:
            await rpc_transport.aclose()

    app = FastAPI(title="Party Rooms", version="0.1.0", lifespan=lifespan)
    app.state.registry = registry
    app.state.websocket_hub = hub

    def get_registry() -> RoomViewRegistry:
        return registry

    def require_game(slug: str) -> GameDefinition:
        game = get_game(slug)
        if game is None:
            raise HTTPException(status_code=404, detail="Unknown game")
        return game

    @app.get("/api/games", response_model=list[GameSummary])
    def list_games() -> list[GameSummary]:
        return [
            GameSummary(
                slug=game.slug,
                title=game.title,
                min_players=game.min_players,
                max_players=game.max_players,
                host_only_start=game.host_only_start,
                actions=list(game.actions),
            )
            for game in GAMES.values()
        ]

    async def respond(local_registry: RoomViewRegistry, controller: RoomController) -> RoomViewResponse:
        view = controller.view()
        await local_registry.discard(controller)
        return RoomViewResponse(view=view.to_dict())

    @app.get("/games/{slug}/", response_model=RoomViewResponse)
    async def room_page(
        slug: str,
        room: str = Query(default=""),
        local_registry: RoomViewRegistry = Depends(get_registry),
    ) -> RoomViewResponse:
        controller = await local_registry.open(require_game(slug), room)
        return await respond(local_registry, controller)

    @app.get("/api/games/{slug}/rooms/{room_code}", response_model=RoomViewResponse)
    async def get_room(
        slug: str,
        room_code: str,
        local_registry: RoomViewRegistry = Depends(get_registry),
    ) -> RoomViewResponse:
        controller = await local_registry.open(require_game(slug), room_code)
        return await respond(local_registry, controller)

    @app.post("/api/games/{slug}/rooms", response_model=RoomViewResponse)
    async def create_room(
        slug: str,
        payload: NicknameRequest,
        local_registry: RoomViewRegistry = Depends(get_registry),
    ) -> RoomViewResponse:
        controller = await local_registry.create(require_game(slug), payload.nickname)
        return await respond(local_registry, controller)

    @app.post("/api/games/{slug}/rooms/{room_code}/join", response_model=RoomViewResponse)
    async def join_room(
        slug: str,
        room_code: str,
        payload: NicknameRequest,
        local_registry: RoomViewRegistry = Depends(get_registry),
    ) -> RoomViewResponse:
        controller = await local_registry.join(require_game(slug), room_code, payload.nickname)
        return await respond(local_registry, controller)

    @app.post("/api/games/{slug}/rooms/{room_code}/leave", response_model=RoomViewResponse)
    async def leave_room(
        slug: str,
        room_code: str,
        local_registry: RoomViewRegistry = Depends(get_registry),
    ) -> RoomViewResponse:
        view = await local_registry.leave(require_game(slug), room_code)
        return RoomViewResponse(view=view.to_dict())

    @app.post("/api/games/{slug}/rooms/{room_code}/actions", response_model=RoomViewResponse)
    async def post_action(
        slug: str,
        room_code: str,
        payload: ActionRequest,
        local_registry: RoomViewRegistry = Depends(get_registry),
    ) -> RoomViewResponse:
        controller = await local_registry.open(require_game(slug), room_code)
        await controller.perform(payload.action, **payload.params)
        return await respond(local_registry, controller)

    @app.post("/api/games/{slug}/rooms/{room_code}/result/dismiss", response_model=RoomViewResponse)
    async def dismiss_result(
        slug: str,
        room_code: str,
        local_registry: RoomViewRegistry = Depends(get_registry),
    ) -> RoomViewResponse:
        controller = await local_registry.open(require_game(slug), room_code)
        await controller.dismiss_result()
        return await respond(local_registry, controller)

    @app.get("/api/games/{slug}/rooms/{room_code}/share", response_model=ShareResponse)
    def share_room(slug: str, room_code: str) -> ShareResponse:
        game = require_game(slug)
        code = normalize_room_code(room_code)
        if not code:
            raise HTTPException(status_code=400, detail="Invalid room code")
        base = f"{client_settings.public_url.rstrip('/')}/games/{game.slug}/"
        return ShareResponse(url=build_share_url(base, code))

    @app.websocket("/ws/games/{slug}/rooms/{room_code}")
    async def room_ws(
        websocket: WebSocket,
        slug: str,
        room_code: str,
        local_registry: RoomViewRegistry = Depends(get_registry),
    ) -> None:
        game = get_game(slug)
        code = normalize_room_code(room_code)
        if game is None or not code:
            await websocket.close(code=1008)
            return

        controller = await local_registry.open(game, code)
        key = room_key(game.slug, code)
        await hub.connect(room_key=key, websocket=websocket)
        await hub.send_view(websocket=websocket, view=controller.view())

        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            hub.disconnect(room_key=key, websocket=websocket)
            await local_registry.unwatch(controller)

    return app


app = create_app()
