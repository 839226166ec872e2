from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, Set

from taclient.config import ConnectionConfig
from taclient.connection import ConnectionManager
from taclient.state import StateStore
from taproto.codec import encode
from taproto.log import get_logger
from taproto.models import (
    Beatmap,
    Characteristic,
    ClientType,
    GameOptions,
    GameplayModifiers,
    GameplayParameters,
    Match,
    PlayerOptions,
    PlayerSpecificSettings,
    PreviewBeatmapLevel,
    User,
)
from taproto.packets import (
    CLIENT_VERSION,
    Command,
    Connect,
    Event,
    ForwardingPacket,
    LoadSong,
    MatchCreatedEvent,
    MatchDeletedEvent,
    MatchUpdatedEvent,
    Packet,
    PlaySong,
    Request,
    ReturnToMenu,
    ShowModal,
    UserLeftEvent,
)
from taproto.utils import iso_now, new_guid

logger = get_logger(__name__)

CUSTOM_LEVEL_PREFIX = "custom_level_"
STANDARD_CHARACTERISTIC = "Standard"


class SessionOperations:
    """
    Builds outbound packets for each protocol action and hands them to the
    ConnectionManager. Every send stamps the sender with Self's guid.

    ``load_song`` and ``play_song`` stagger a command and a match broadcast
    by ``config.command_stagger`` ms; the delayed half runs as a task that
    is returned so callers can await it.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        store: StateStore,
        self_user: User,
        config: ConnectionConfig,
        password: Optional[str] = None,
    ) -> None:
        self.connection = connection
        self.store = store
        self.self_user = self_user
        self.config = config
        self.password = password
        self._pending: Set[asyncio.Task] = set()

    # ---------------------------------------------------------------
    # primitives
    # ---------------------------------------------------------------

    async def send_packet(self, packet: Packet) -> None:
        packet.from_ = self.self_user.guid
        if self.config.logging:
            logger.debug("Sending %s", packet.kind, extra={"packet_type": packet.kind})
        await self.connection.send_raw(encode(packet))

    async def connect_request(self, password: Optional[str] = None) -> None:
        connect = Connect(
            user=self.self_user,
            client_version=CLIENT_VERSION,
            password=password if password is not None else self.password,
        )
        await self.send_packet(Packet(body=Request(body=connect)))

    async def send_event(self, event: Event) -> None:
        await self.send_packet(Packet(body=event))

    async def forward(self, ids: Iterable[str], packet: Packet) -> None:
        packet.from_ = self.self_user.guid
        await self.send_packet(Packet(body=ForwardingPacket(forward_to=list(ids), packet=packet)))

    async def _forward_command(self, ids: Iterable[str], body) -> None:
        await self.forward(ids, Packet(body=Command(body=body)))

    # ---------------------------------------------------------------
    # matches
    # ---------------------------------------------------------------

    async def create_match(self, players: Iterable[User]) -> str:
        """Announce a new match led by Self; returns its guid without waiting for the server."""
        match = Match(
            guid=new_guid(),
            associated_users=[p.guid for p in players] + [self.self_user.guid],
            leader=self.self_user.guid,
        )
        await self.send_event(Event(body=MatchCreatedEvent(match=match)))
        return match.guid

    async def update_match(self, match: Match) -> None:
        await self.send_event(Event(body=MatchUpdatedEvent(match=match)))

    async def close_match(self, match: Match) -> None:
        await self.send_event(Event(body=MatchDeletedEvent(match=match)))

    async def leave(self) -> None:
        await self.send_event(Event(body=UserLeftEvent(user=self.self_user)))

    # ---------------------------------------------------------------
    # commands
    # ---------------------------------------------------------------

    async def send_message(self, ids: Iterable[str], message: ShowModal) -> None:
        await self._forward_command(ids, message)

    async def load_song(self, song_name: str, song_hash: str, difficulty: int, match: Match) -> asyncio.Task:
        difficulty = int(difficulty)
        match.selected_level = PreviewBeatmapLevel(
            level_id=f"{CUSTOM_LEVEL_PREFIX}{song_hash}",
            name=song_name,
            characteristics=[Characteristic(serialized_name=STANDARD_CHARACTERISTIC, difficulties=[difficulty])],
            loaded=True,
        )
        match.selected_characteristic = Characteristic(
            serialized_name=STANDARD_CHARACTERISTIC,
            difficulties=[difficulty],
        )
        match.selected_difficulty = difficulty

        player_ids = [p.guid for p in self.get_players(match)]
        await self._forward_command(player_ids, LoadSong(level_id=match.selected_level.level_id))
        return self._later(lambda: self.update_match(match))

    async def play_song(
        self,
        match: Match,
        with_sync: bool = False,
        disable_pause: bool = False,
        disable_fail: bool = False,
        floating_scoreboard: bool = False,
    ) -> asyncio.Task:
        level = match.selected_level or PreviewBeatmapLevel()
        parameters = GameplayParameters(
            beatmap=Beatmap(
                name=level.name,
                level_id=level.level_id,
                characteristic=match.selected_characteristic,
                difficulty=match.selected_difficulty,
            ),
            player_settings=PlayerSpecificSettings(options=PlayerOptions.NONE),
            gameplay_modifiers=GameplayModifiers(options=GameOptions.NONE),
        )
        play = PlaySong(
            gameplay_parameters=parameters,
            floating_scoreboard=floating_scoreboard,
            stream_sync=with_sync,
            disable_pause=disable_pause,
            disable_fail=disable_fail,
        )
        player_ids = [p.guid for p in self.get_players(match)]

        match.start_time = iso_now(self.config.start_lead / 1000)
        await self.update_match(match)

        return self._later(lambda: self._forward_command(player_ids, play))

    async def return_to_menu(self, ids: Iterable[str]) -> None:
        await self._forward_command(ids, ReturnToMenu())

    # ---------------------------------------------------------------
    # participant queries
    # ---------------------------------------------------------------

    def get_participants_by_role(self, match: Match, role: ClientType) -> List[User]:
        associated = set(match.associated_users)
        return [u for u in self.store.users if u.guid in associated and u.client_type == role]

    def get_players(self, match: Match) -> List[User]:
        return self.get_participants_by_role(match, ClientType.PLAYER)

    def get_coordinators(self, match: Match) -> List[User]:
        return self.get_participants_by_role(match, ClientType.COORDINATOR)

    def get_websockets(self, match: Match) -> List[User]:
        return self.get_participants_by_role(match, ClientType.WEBSOCKET_CONNECTION)

    # ---------------------------------------------------------------

    def _later(self, send: Callable[[], Awaitable[None]]) -> asyncio.Task:
        async def delayed() -> None:
            await asyncio.sleep(self.config.command_stagger / 1000)
            await send()

        task = asyncio.get_running_loop().create_task(delayed())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
