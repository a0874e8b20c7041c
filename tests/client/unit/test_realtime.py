import asyncio
import json
import logging

from partyrooms.client import realtime
from partyrooms.client.games import BB, BJ, RPS
from partyrooms.client.realtime import (
    PushListener,
    SupabaseRealtimeFeed,
    build_join_message,
    realtime_socket_url,
    watched_tables,
)


class FakeSubscription:
    def __init__(self, channel: str) -> None:
        self.channel = channel
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeFeed:
    def __init__(self) -> None:
        self.subscriptions: list[FakeSubscription] = []
        self.tables: list[list[dict[str, str]]] = []

    async def subscribe(self, channel, tables, on_change) -> FakeSubscription:
        subscription = FakeSubscription(channel)
        self.subscriptions.append(subscription)
        self.tables.append(list(tables))
        return subscription

    def open_channels(self) -> list[str]:
        return [sub.channel for sub in self.subscriptions if not sub.closed]


async def _noop() -> None:
    return None


def test_watched_tables_cover_room_players_and_game_tables() -> None:
    tables = watched_tables(BJ, "r-1")

    assert [table["table"] for table in tables] == ["game_rooms", "room_players", "bj_rounds", "bj_player_hands"]
    assert tables[0]["filter"] == "id=eq.r-1"
    assert all(table["filter"] == "room_id=eq.r-1" for table in tables[1:])
    assert all(table["event"] == "*" and table["schema"] == "public" for table in tables)


def test_game_without_child_tables_watches_room_and_players() -> None:
    assert [table["table"] for table in watched_tables(BB, "r-1")] == ["game_rooms", "room_players"]


def test_listener_keeps_one_subscription_per_room() -> None:
    feed = FakeFeed()
    listener = PushListener(feed, RPS, _noop)

    async def scenario() -> None:
        await listener.watch("r-1")
        await listener.watch("r-1")
        assert feed.open_channels() == ["rps-room-r-1"]

        await listener.watch("r-2")
        assert feed.open_channels() == ["rps-room-r-2"]
        assert feed.subscriptions[0].closed is True

        await listener.close()
        assert feed.open_channels() == []
        assert listener.room_id is None

    asyncio.run(scenario())

    assert len(feed.subscriptions) == 2


def test_listener_without_feed_does_nothing() -> None:
    listener = PushListener(None, RPS, _noop)

    asyncio.run(listener.watch("r-1"))

    assert listener.room_id is None


def test_socket_url_and_join_message() -> None:
    url = realtime_socket_url("https://demo.supabase.co/", "anon")
    tables = watched_tables(RPS, "r-1")

    message = build_join_message("realtime:rps-room-r-1", tables, "anon", "1")

    assert url == "wss://demo.supabase.co/realtime/v1/websocket?apikey=anon&vsn=1.0.0"
    assert message["event"] == "phx_join"
    assert message["topic"] == "realtime:rps-room-r-1"
    assert message["payload"]["config"]["postgres_changes"] == tables
    assert message["payload"]["access_token"] == "anon"


TOPIC = "realtime:rps-room-r-1"


def _change_counter():
    calls: list[int] = []

    async def on_change() -> None:
        calls.append(1)

    return calls, on_change


def _dispatch(frames, on_change) -> None:
    feed = SupabaseRealtimeFeed(base_url="https://demo.supabase.co", anon_key="anon")

    async def scenario() -> None:
        for frame in frames:
            await feed._dispatch(TOPIC, frame, on_change)

    asyncio.run(scenario())


def test_each_change_frame_triggers_one_refetch() -> None:
    calls, on_change = _change_counter()
    change = {"topic": TOPIC, "event": "postgres_changes", "payload": {"data": {"record": {"secret": "x"}}}}

    _dispatch([json.dumps(change), json.dumps(change)], on_change)

    assert len(calls) == 2


def test_unrelated_frames_are_ignored(caplog) -> None:
    calls, on_change = _change_counter()
    frames = [
        json.dumps({"topic": "realtime:ttt-room-r-9", "event": "postgres_changes", "payload": {}}),
        json.dumps({"topic": TOPIC, "event": "presence_state", "payload": {}}),
        json.dumps({"topic": TOPIC, "event": "phx_reply", "payload": {"status": "ok"}}),
        json.dumps({"topic": TOPIC, "event": "phx_reply", "payload": {"status": "error", "response": {}}}),
        json.dumps(["not", "an", "object"]),
        "not json at all",
    ]

    with caplog.at_level(logging.WARNING, logger="partyrooms.client.realtime"):
        _dispatch(frames, on_change)

    assert calls == []
    assert "rejected" in caplog.text


def test_failing_change_handler_is_logged_not_raised(caplog) -> None:
    async def on_change() -> None:
        raise RuntimeError("view went away")

    change = json.dumps({"topic": TOPIC, "event": "postgres_changes", "payload": {}})

    with caplog.at_level(logging.ERROR, logger="partyrooms.client.realtime"):
        _dispatch([change], on_change)

    assert "Change handler" in caplog.text


class FakeSocket:
    def __init__(self, frames: list[str], hold: bool) -> None:
        self.frames = frames
        self.hold = hold
        self.sent: list[dict] = []

    async def __aenter__(self) -> "FakeSocket":
        return self

    async def __aexit__(self, *exc_info) -> bool:
        return False

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    def __aiter__(self):
        return self._receive()

    async def _receive(self):
        for frame in self.frames:
            yield frame
        if self.hold:
            await asyncio.Event().wait()


def test_feed_joins_channel_and_rejoins_after_close(monkeypatch) -> None:
    sockets: list[FakeSocket] = []
    change = json.dumps({"topic": TOPIC, "event": "postgres_changes", "payload": {}})

    def connect(url: str) -> FakeSocket:
        first = not sockets
        socket = FakeSocket([change] if first else [], hold=not first)
        sockets.append(socket)
        return socket

    monkeypatch.setattr(realtime.websockets, "connect", connect)
    calls, on_change = _change_counter()
    feed = SupabaseRealtimeFeed(base_url="https://demo.supabase.co", anon_key="anon", reconnect_s=0.01)

    async def scenario() -> None:
        subscription = await feed.subscribe("rps-room-r-1", watched_tables(RPS, "r-1"), on_change)
        await asyncio.sleep(0.1)
        await subscription.close()

    asyncio.run(scenario())

    assert len(calls) == 1
    assert len(sockets) == 2
    for socket in sockets:
        assert socket.sent[0]["event"] == "phx_join"
        assert socket.sent[0]["topic"] == TOPIC
        assert socket.sent[0]["payload"]["config"]["postgres_changes"] == watched_tables(RPS, "r-1")


def test_feed_retries_when_socket_cannot_open(monkeypatch) -> None:
    attempts: list[str] = []

    def connect(url: str):
        attempts.append(url)
        raise OSError("connection refused")

    monkeypatch.setattr(realtime.websockets, "connect", connect)
    calls, on_change = _change_counter()
    feed = SupabaseRealtimeFeed(base_url="https://demo.supabase.co", anon_key="anon", reconnect_s=0.01)

    async def scenario() -> None:
        subscription = await feed.subscribe("rps-room-r-1", watched_tables(RPS, "r-1"), on_change)
        await asyncio.sleep(0.05)
        await subscription.close()

    asyncio.run(scenario())

    assert len(attempts) >= 2
    assert calls == []
