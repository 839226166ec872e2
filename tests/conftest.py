import asyncio
from typing import Iterable, List, Optional

import pytest

from taclient.client import TAClient
from taproto.codec import decode, encode
from taproto.models import Match, ServerSettings, State, User
from taproto.packets import ConnectResponse, Packet, Response, ResponseType

_CLOSED = object()


class DummyWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.sent: List[bytes] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: bytes) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSED)

    def feed(self, frame) -> None:
        self._inbox.put_nowait(frame)

    def drop(self) -> None:
        """Simulate the server going away."""
        self.closed = True
        self._inbox.put_nowait(_CLOSED)

    def sent_packets(self) -> List[Packet]:
        return [decode(data) for data in self.sent]

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        while True:
            frame = await self._inbox.get()
            if frame is _CLOSED:
                return
            yield frame


class FakeConnector:
    """
    Injectable connector. The first ``hang_attempts`` calls never open;
    with ``fail`` set every call is refused.
    """

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.sockets: List[DummyWebSocket] = []
        self.hang_attempts = 0
        self.fail = False

    async def __call__(self, url: str) -> DummyWebSocket:
        self.calls.append(url)
        if len(self.calls) <= self.hang_attempts:
            await asyncio.Event().wait()
        if self.fail:
            raise OSError("connection refused")
        websocket = DummyWebSocket()
        self.sockets.append(websocket)
        return websocket

    @property
    def latest(self) -> DummyWebSocket:
        return self.sockets[-1]


def _connect_response(self_guid: str, users: Iterable[User] = (), matches: Iterable[Match] = (),
                      response_type: ResponseType = ResponseType.SUCCESS,
                      server_name: str = "Test Server") -> Packet:
    return Packet(body=Response(
        type=response_type,
        body=ConnectResponse(
            state=State(
                users=list(users),
                matches=list(matches),
                server_settings=ServerSettings(server_name=server_name),
            ),
            self_guid=self_guid,
        ),
    ))


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def make_client(connector):
    def factory(password: Optional[str] = None, **options) -> TAClient:
        options.setdefault("auto_init", False)
        return TAClient("ws://ta.test:2053", "Tester", password=password, options=options, connector=connector)
    return factory


@pytest.fixture
def connect_response():
    """Builds a Connect response Packet."""
    return _connect_response


@pytest.fixture
def connect_frame():
    """Builds an encoded Connect response frame."""
    def build(*args, **kwargs) -> bytes:
        return encode(_connect_response(*args, **kwargs))
    return build


@pytest.fixture
def wait_for():
    async def _wait_for(predicate, timeout: float = 2.0) -> bool:
        loop = asyncio.get_running_loop()
        end = loop.time() + timeout
        while loop.time() < end:
            if predicate():
                return True
            await asyncio.sleep(0.01)
        return predicate()
    return _wait_for
