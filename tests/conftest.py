"""Shared fixtures and a fake ship for channel client tests."""

import asyncio
import json
from collections import deque
from typing import Any, Callable

import httpx
import pytest

from urbit_channel.client.channel_client import UrbitChannelClient
from urbit_channel.client.registry import SubscriptionRegistry
from urbit_channel.shared.client_utils import make_client_stats

SHIP_URL = "http://localhost:8080"
COOKIE = "urbauth-~zod=0v5.abcde"

# Stream script item: stay silent until the reader is cancelled
HOLD = object()


def sse(payload: Any, event_id: int | None = None) -> bytes:
    """Encode one event frame the way a ship puts it on the wire."""
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"data: {json.dumps(payload, ensure_ascii=False)}")
    return ("\n".join(lines) + "\n\n").encode("utf-8")


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until `predicate()` holds, failing the test on timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class Recorder:
    """Callable that remembers every call, usable as any kind of handler."""

    def __init__(self):
        self.calls: list[tuple] = []

    def __call__(self, *args):
        self.calls.append(args)

    @property
    def values(self) -> list:
        return [args[0] if args else None for args in self.calls]


class FakeShip:
    """
    Programmable ship served through httpx.MockTransport.

    `put_statuses` and `streams` are consumed one per request; once empty,
    PUTs succeed with 204 and streams HOLD forever. A stream script is either
    an int (the status to fail the GET with) or a list of bytes/str chunks,
    asyncio.Events to wait on, and HOLD.
    """

    def __init__(self):
        self.put_statuses: deque[int] = deque()
        self.streams: deque = deque()
        self.scry_results: dict[str, Any] = {}
        self.login_status = 204
        self.login_cookie: str | None = f"{COOKIE}; Path=/; Max-Age=604800"

        self.puts: list[tuple[str, list[dict]]] = []
        self.stream_opens: list[str] = []
        self.deletes: list[str] = []
        self.requests: list[httpx.Request] = []

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def actions(self, kind: str) -> list[dict]:
        return [a for _, batch in self.puts for a in batch if a["action"] == kind]

    @property
    def tokens(self) -> list[str]:
        seen = []
        for token, _ in self.puts:
            if token not in seen:
                seen.append(token)
        return seen

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/~/login":
            if self.login_status >= 400 or self.login_cookie is None:
                return httpx.Response(self.login_status)
            return httpx.Response(self.login_status, headers={"set-cookie": self.login_cookie})

        if path.startswith("/~/scry/"):
            key = path[len("/~/scry"):]
            if key not in self.scry_results:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, json=self.scry_results[key])

        token = path.rsplit("/", 1)[-1]
        if request.method == "PUT":
            self.puts.append((token, json.loads(request.content)))
            status = self.put_statuses.popleft() if self.put_statuses else 204
            return httpx.Response(status, text="" if status < 400 else "bad action")
        if request.method == "DELETE":
            self.deletes.append(token)
            return httpx.Response(204)

        self.stream_opens.append(token)
        script = self.streams.popleft() if self.streams else [HOLD]
        if isinstance(script, int):
            return httpx.Response(script, text="no such channel")
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=self._body(script),
        )

    async def _body(self, script):
        for item in script:
            if item is HOLD:
                await asyncio.Event().wait()
            elif isinstance(item, asyncio.Event):
                await item.wait()
            elif isinstance(item, str):
                yield item.encode("utf-8")
            else:
                yield item


@pytest.fixture
def ship() -> FakeShip:
    return FakeShip()


@pytest.fixture
async def http(ship: FakeShip):
    async with httpx.AsyncClient(transport=ship.transport()) as client:
        yield client


@pytest.fixture
async def client(http: httpx.AsyncClient):
    channel = UrbitChannelClient(
        SHIP_URL,
        COOKIE,
        ship="zod",
        reconnect_delay_ms=5,
        max_reconnect_attempts=3,
        http_client=http,
    )
    yield channel
    await channel.close()


@pytest.fixture
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry()


@pytest.fixture
def stats() -> dict:
    return make_client_stats()
