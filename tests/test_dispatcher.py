import pytest

from taclient.connection import ConnectionState
from taclient.dispatcher import Dispatcher
from taclient.state import StateStore
from taproto.models import ClientType, Match, User
from taproto.packets import Event, MatchCreatedEvent, Packet, ResponseType


class RecordingStore(StateStore):
    def __init__(self) -> None:
        super().__init__(self_user=User(guid="me", name="Me", client_type=ClientType.COORDINATOR))
        self.calls = []

    def init(self, response) -> None:
        self.calls.append("init")
        super().init(response)

    def handle_packet(self, packet) -> None:
        self.calls.append(("handle", packet.kind))
        super().handle_packet(packet)


@pytest.fixture
def dispatcher():
    return Dispatcher(ConnectionState(), RecordingStore())


@pytest.mark.asyncio
async def test_handshake_initialises_store_before_generic_handoff(dispatcher, connect_response):
    await dispatcher.handle_packet(connect_response("me"))

    assert dispatcher.state.connected is True
    assert dispatcher.store.calls == ["init", ("handle", "response.connect")]
    assert dispatcher.store.self_guid == "me"


@pytest.mark.asyncio
async def test_second_connect_response_is_only_handed_to_store(dispatcher, connect_response):
    fired = []
    dispatcher.on_connected(lambda: fired.append(True))

    await dispatcher.handle_packet(connect_response("me"))
    await dispatcher.handle_packet(connect_response("someone-else"))

    assert dispatcher.store.calls == [
        "init",
        ("handle", "response.connect"),
        ("handle", "response.connect"),
    ]
    assert dispatcher.store.self_guid == "me"
    assert fired == [True]


@pytest.mark.asyncio
async def test_rejected_connect_does_not_complete_handshake(dispatcher, connect_response):
    await dispatcher.handle_packet(connect_response("me", response_type=ResponseType.FAIL))

    assert dispatcher.state.connected is False
    assert dispatcher.store.is_initialized is False
    assert dispatcher.store.calls == [("handle", "response.connect")]


@pytest.mark.asyncio
async def test_connect_without_self_guid_is_ignored(dispatcher, connect_response):
    await dispatcher.handle_packet(connect_response(""))

    assert dispatcher.state.connected is False
    assert "init" not in dispatcher.store.calls


@pytest.mark.asyncio
async def test_listeners_receive_exact_top_level_and_wildcard(dispatcher, connect_response):
    seen = []

    async def on_any(packet):
        seen.append(("*", packet.kind))

    dispatcher.on("event.match_created_event", lambda p: seen.append(("exact", p.kind)))
    dispatcher.on("event", lambda p: seen.append(("event", p.kind)))
    dispatcher.on("*", on_any)
    dispatcher.on("command", lambda p: seen.append(("command", p.kind)))

    await dispatcher.handle_packet(connect_response("me"))
    created = Packet(body=Event(body=MatchCreatedEvent(match=Match(guid="m-1"))))
    await dispatcher.handle_packet(created)

    assert seen == [
        ("*", "response.connect"),
        ("exact", "event.match_created_event"),
        ("event", "event.match_created_event"),
        ("*", "event.match_created_event"),
    ]
    # listeners run after the store has applied the event
    assert dispatcher.store.get_match("m-1") is not None


@pytest.mark.asyncio
async def test_failing_listener_does_not_stop_others(dispatcher, connect_response):
    seen = []

    def broken(packet):
        raise ValueError("boom")

    dispatcher.on("response", broken)
    dispatcher.on("*", lambda p: seen.append(p.kind))

    await dispatcher.handle_packet(connect_response("me"))

    assert seen == ["response.connect"]
    assert dispatcher.state.connected is True


@pytest.mark.asyncio
@pytest.mark.parametrize("log_protocol", [False, True])
async def test_handshake_message_follows_logging_flag(monkeypatch, connect_response, log_protocol):
    from taclient import dispatcher as dispatcher_module

    messages = []
    monkeypatch.setattr(dispatcher_module.logger, "info", lambda msg, *args, **kwargs: messages.append(msg))
    dispatcher = Dispatcher(ConnectionState(), RecordingStore(), log_protocol=log_protocol)

    await dispatcher.handle_packet(connect_response("me"))

    assert dispatcher.state.connected is True
    assert ("Handshake complete" in messages) is log_protocol
