import asyncio
from datetime import datetime, timezone

import pytest

from taclient.client import TAClient
from taproto.codec import decode
from taproto.models import ClientType, Match, State, User
from taproto.packets import (
    Command,
    ConnectResponse,
    Event,
    MatchUpdatedEvent,
    Packet,
    ShowModal,
    UserAddedEvent,
)

PLAYER_A = User(guid="player-a", name="A", client_type=ClientType.PLAYER)
PLAYER_B = User(guid="player-b", name="B", client_type=ClientType.PLAYER)
OUTSIDER = User(guid="player-c", name="C", client_type=ClientType.PLAYER)
CASTER = User(guid="coord-1", name="Caster", client_type=ClientType.COORDINATOR)
OVERLAY = User(guid="ws-1", name="Overlay", client_type=ClientType.WEBSOCKET_CONNECTION)


@pytest.fixture
def sent():
    return []


@pytest.fixture
def client(sent):
    async def transmit(data: bytes) -> None:
        sent.append(decode(data))

    ta = TAClient(
        "ws://ta.test:2053", "Coordinator",
        options={"auto_init": False, "transmit": transmit, "command_stagger": 0,
                 "connection_mode": "coordinator"},
    )
    ta.store.init(ConnectResponse(
        state=State(users=[PLAYER_A, PLAYER_B, OUTSIDER, CASTER, OVERLAY, ta.self_user]),
        self_guid=ta.self_user.guid,
    ))
    return ta


@pytest.fixture
def match(client):
    return Match(
        guid="match-1",
        associated_users=[PLAYER_A.guid, PLAYER_B.guid, CASTER.guid, OVERLAY.guid, client.self_user.guid],
        leader=client.self_user.guid,
    )


@pytest.mark.asyncio
async def test_every_send_is_stamped_with_self(client, sent):
    spoofed = Packet(from_="someone-else", body=Event(body=UserAddedEvent(user=PLAYER_A)))

    await client.send_packet(spoofed)
    await client.send_event(Event(body=UserAddedEvent(user=PLAYER_B)))
    await client.forward(["x"], Packet(from_="spoofed-inner", body=Command(body=ShowModal())))

    assert [p.from_ for p in sent] == [client.self_user.guid] * 3
    assert sent[2].forwarding_packet.packet.from_ == client.self_user.guid


@pytest.mark.asyncio
async def test_create_match_includes_self_as_leader(client, sent):
    match_id = await client.create_match([PLAYER_A, PLAYER_B])

    assert len(sent) == 1
    assert sent[0].kind == "event.match_created_event"
    created = sent[0].event.body.match
    assert created.guid == match_id
    assert set(created.associated_users) == {PLAYER_A.guid, PLAYER_B.guid, client.self_user.guid}
    assert created.leader == client.self_user.guid


@pytest.mark.asyncio
async def test_update_and_close_send_full_match(client, sent, match):
    await client.update_match(match)
    await client.close_match(match)

    assert [p.kind for p in sent] == ["event.match_updated_event", "event.match_deleted_event"]
    assert sent[0].event.body.match == match
    assert sent[1].event.body.match == match


@pytest.mark.asyncio
async def test_load_song_forwards_to_players_then_updates_match(client, sent, match):
    task = await client.load_song("Song", "deadbeef", 5, match)

    assert match.selected_level.level_id == "custom_level_deadbeef"
    assert match.selected_level.name == "Song"
    assert match.selected_characteristic.serialized_name == "Standard"
    assert match.selected_characteristic.difficulties == [5]
    assert match.selected_difficulty == 5

    assert len(sent) == 1
    forwarded = sent[0].forwarding_packet
    assert forwarded.forward_to == [PLAYER_A.guid, PLAYER_B.guid]
    assert forwarded.packet.kind == "command.load_song"
    assert forwarded.packet.command.body.level_id == "custom_level_deadbeef"

    await task

    assert len(sent) == 2
    assert sent[1].kind == "event.match_updated_event"
    assert sent[1].event.body.match == match


@pytest.mark.asyncio
async def test_load_song_broadcast_waits_for_stagger(sent):
    async def transmit(data: bytes) -> None:
        sent.append(decode(data))

    ta = TAClient("ws://ta.test:2053", "Coordinator",
                  options={"auto_init": False, "transmit": transmit, "command_stagger": 50})
    task = await ta.load_song("Song", "cafe", 3, Match(guid="m"))

    await asyncio.sleep(0.01)
    assert [p.kind for p in sent] == ["forwarding_packet"]
    await task
    assert [p.kind for p in sent] == ["forwarding_packet", "event.match_updated_event"]


@pytest.mark.asyncio
async def test_play_song_schedules_start_then_forwards_command(client, sent, match):
    await client.load_song("Song", "deadbeef", 4, match)
    await asyncio.sleep(0.01)
    sent.clear()

    before = datetime.now(timezone.utc)
    task = await client.play_song(match, with_sync=True, disable_fail=True)

    start = datetime.strptime(match.start_time, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)
    lead = (start - before).total_seconds()
    assert 1.5 < lead <= 2.5

    assert len(sent) == 1
    assert isinstance(sent[0].event.body, MatchUpdatedEvent)
    assert sent[0].event.body.match.start_time == match.start_time

    await task

    assert len(sent) == 2
    forwarded = sent[1].forwarding_packet
    assert forwarded.forward_to == [PLAYER_A.guid, PLAYER_B.guid]
    play = forwarded.packet.command.body
    assert forwarded.packet.kind == "command.play_song"
    assert play.stream_sync is True
    assert play.disable_fail is True
    assert play.disable_pause is False
    assert play.floating_scoreboard is False
    beatmap = play.gameplay_parameters.beatmap
    assert beatmap.level_id == "custom_level_deadbeef"
    assert beatmap.name == "Song"
    assert beatmap.difficulty == 4
    assert beatmap.characteristic.serialized_name == "Standard"


@pytest.mark.asyncio
async def test_return_to_menu_and_modal_are_forwarded(client, sent):
    await client.return_to_menu([PLAYER_A.guid])
    await client.send_message([PLAYER_B.guid], ShowModal(modal_id="m1", message_title="Hi", message_text="Ready?"))

    assert sent[0].forwarding_packet.forward_to == [PLAYER_A.guid]
    assert sent[0].forwarding_packet.packet.kind == "command.return_to_menu"
    assert sent[1].forwarding_packet.forward_to == [PLAYER_B.guid]
    assert sent[1].forwarding_packet.packet.command.body.message_text == "Ready?"


def test_participant_queries_filter_by_match_and_role(client, match):
    assert client.get_players(match) == [PLAYER_A, PLAYER_B]
    assert client.get_coordinators(match) == [CASTER, client.self_user]
    assert client.get_websockets(match) == [OVERLAY]
    assert client.get_participants_by_role(match, ClientType.TEMPORARY_CONNECTION) == []


def test_participant_queries_before_handshake_are_empty(match):
    ta = TAClient("ws://ta.test:2053", "Coordinator", options={"auto_init": False})

    assert ta.get_players(match) == []
    assert ta.get_coordinators(match) == []
