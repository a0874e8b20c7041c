from __future__ import annotations

import copy
import inspect
from typing import Any

import pytest


class FakeRpcTransport:
    """Records calls and answers from a table of canned results.

    A result may be a value, an exception instance (raised), or a callable
    taking the params; callables may be coroutine functions.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def called(self, function: str) -> list[dict[str, Any]]:
        return [params for name, params in self.calls if name == function]

    async def call(self, function: str, params: dict[str, Any]) -> Any:
        self.calls.append((function, dict(params)))
        result = self.responses.get(function)
        if callable(result):
            result = result(params)
            if inspect.isawaitable(result):
                result = await result
        if isinstance(result, Exception):
            raise result
        return copy.deepcopy(result)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_transport() -> FakeRpcTransport:
    return FakeRpcTransport()


def session_payload(room_code: str = "ABC123", player_id: str = "p-1", nickname: str = "Ana") -> dict[str, str]:
    return {
        "roomCode": room_code,
        "playerId": player_id,
        "playerSecret": f"secret-{player_id}",
        "nickname": nickname,
    }


@pytest.fixture
def make_session_payload():
    return session_payload
