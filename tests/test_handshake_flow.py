import asyncio

import pytest
import websockets

from taproto.codec import decode, encode
from taproto.models import ServerSettings, State
from taproto.packets import ConnectResponse, Packet, Response, ResponseType


class FakeTAServer:
    """Answers Connect requests and records everything else it receives."""

    def __init__(self, drop_first: int = 0, preamble=()) -> None:
        self.received = []
        self.connections = 0
        self.drop_first = drop_first
        self.preamble = list(preamble)

    async def handler(self, websocket) -> None:
        self.connections += 1
        if self.connections <= self.drop_first:
            await websocket.close()
            return
        for frame in self.preamble:
            await websocket.send(frame)
        async for message in websocket:
            packet = decode(message)
            self.received.append(packet)
            request = packet.request
            if request is not None and request.body is not None:
                connect = request.body
                await websocket.send(encode(Packet(body=Response(
                    type=ResponseType.SUCCESS,
                    responding_to_packet_id=packet.id,
                    body=ConnectResponse(
                        state=State(users=[connect.user], server_settings=ServerSettings(server_name="Local TA")),
                        self_guid=connect.user.guid,
                        server_version=connect.client_version,
                    ),
                ))))


async def _serve(fake: FakeTAServer):
    server = await websockets.serve(fake.handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, f"ws://127.0.0.1:{port}"


@pytest.mark.asyncio
async def test_client_completes_handshake_against_live_server(wait_for):
    from taclient.client import TAClient

    fake = FakeTAServer(preamble=["hello in text", b"\x00garbage"])
    server, url = await _serve(fake)
    try:
        client = TAClient(url, "Overlay", password="pw", options={"auto_reconnect": False})

        assert await client.wait_until_connected(timeout=3.0)
        assert client.store.server_settings.server_name == "Local TA"
        assert [u.guid for u in client.store.users] == [client.self_user.guid]
        assert fake.received[0].request.body.password == "pw"

        await client.close()

        assert await wait_for(lambda: any(p.kind == "event.user_left_event" for p in fake.received))
        assert client.is_connected is False
        assert client.store.is_initialized is False
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_client_reconnects_after_server_drops_it(wait_for):
    from taclient.client import TAClient

    fake = FakeTAServer(drop_first=1)
    server, url = await _serve(fake)
    try:
        client = TAClient(url, "Overlay", options={"auto_reconnect_interval": 50})

        assert await client.wait_until_connected(timeout=3.0)
        assert fake.connections == 2

        await client.close()
        await asyncio.sleep(0.1)
        assert fake.connections == 2
    finally:
        server.close()
        await server.wait_closed()
