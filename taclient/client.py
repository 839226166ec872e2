#!/usr/bin/env python3
"""
Tournament Assistant client

Wires the connection manager, dispatcher, session operations and state store
behind one object:

    async with TAClient("ws://localhost:2053", "Overlay") as client:
        await client.wait_until_connected(timeout=5)
        match_id = await client.create_match(players)
"""

from __future__ import annotations
import asyncio
from typing import Any, Iterable, List, Mapping, Optional, Union

from taclient.config import ConnectionConfig
from taclient.connection import ConnectionManager, ConnectionState, Connector
from taclient.dispatcher import Dispatcher, PacketListener
from taclient.operations import SessionOperations
from taclient.state import StateStore
from taproto.log import get_logger
from taproto.models import ClientType, Match, User
from taproto.packets import Event, Packet, ShowModal
from taproto.utils import new_guid

logger = get_logger(__name__)


class TAClient:
    def __init__(
        self,
        url: str,
        name: str,
        password: Optional[str] = None,
        options: Union[ConnectionConfig, Mapping[str, Any], None] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        if isinstance(options, ConnectionConfig):
            self.config = options
        else:
            self.config = ConnectionConfig.from_overrides(options)
        self.url = url
        self.password = password

        self.self_user = User(guid=new_guid(), name=name, client_type=self.config.connection_mode)
        self.store = StateStore(self.self_user)
        self.state = ConnectionState()

        self.connection = ConnectionManager(url, self.config, self.store, state=self.state, connector=connector)
        self.dispatcher = Dispatcher(self.state, self.store, log_protocol=self.config.logging)
        self.operations = SessionOperations(self.connection, self.store, self.self_user, self.config, password)

        self.connection.on_open = self.operations.connect_request
        self.connection.on_packet = self.dispatcher.handle_packet
        self.connection.farewell = self.operations.leave

        self._waiters: List[asyncio.Future] = []
        self.dispatcher.on_connected(self._wake_waiters)

        if self.config.auto_init:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop; connect deferred until start()")
            else:
                self.connect()

    # ---------------------------------------------------------------
    # lifecycle
    # ---------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.state.connected

    @property
    def started(self) -> bool:
        return self.state.generation > 0

    def connect(self) -> asyncio.Task:
        return self.connection.connect()

    async def start(self) -> None:
        if not self.started:
            self.connect()

    async def close(self) -> None:
        await self.connection.close()

    async def wait_until_connected(self, timeout: Optional[float] = None) -> bool:
        """Wait for the handshake; returns False if ``timeout`` seconds pass first."""
        if self.is_connected:
            return True
        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        try:
            await asyncio.wait_for(future, timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            if future in self._waiters:
                self._waiters.remove(future)

    def _wake_waiters(self) -> None:
        for future in self._waiters:
            if not future.done():
                future.set_result(True)

    async def __aenter__(self) -> TAClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def on(self, kind: str, listener: PacketListener) -> None:
        self.dispatcher.on(kind, listener)

    # ---------------------------------------------------------------
    # protocol operations
    # ---------------------------------------------------------------

    async def send_packet(self, packet: Packet) -> None:
        await self.operations.send_packet(packet)

    async def send_event(self, event: Event) -> None:
        await self.operations.send_event(event)

    async def forward(self, ids: Iterable[str], packet: Packet) -> None:
        await self.operations.forward(ids, packet)

    async def create_match(self, players: Iterable[User]) -> str:
        return await self.operations.create_match(players)

    async def update_match(self, match: Match) -> None:
        await self.operations.update_match(match)

    async def close_match(self, match: Match) -> None:
        await self.operations.close_match(match)

    async def send_message(self, ids: Iterable[str], message: ShowModal) -> None:
        await self.operations.send_message(ids, message)

    async def load_song(self, song_name: str, song_hash: str, difficulty: int, match: Match) -> asyncio.Task:
        return await self.operations.load_song(song_name, song_hash, difficulty, match)

    async def play_song(self, match: Match, with_sync: bool = False, disable_pause: bool = False,
                        disable_fail: bool = False, floating_scoreboard: bool = False) -> asyncio.Task:
        return await self.operations.play_song(match, with_sync, disable_pause, disable_fail, floating_scoreboard)

    async def return_to_menu(self, ids: Iterable[str]) -> None:
        await self.operations.return_to_menu(ids)

    # ---------------------------------------------------------------
    # participant queries
    # ---------------------------------------------------------------

    def get_participants_by_role(self, match: Match, role: ClientType) -> List[User]:
        return self.operations.get_participants_by_role(match, role)

    def get_players(self, match: Match) -> List[User]:
        return self.operations.get_players(match)

    def get_coordinators(self, match: Match) -> List[User]:
        return self.operations.get_coordinators(match)

    def get_websockets(self, match: Match) -> List[User]:
        return self.operations.get_websockets(match)
