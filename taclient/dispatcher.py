from __future__ import annotations
import inspect
from typing import Awaitable, Callable, Dict, List, Union

from taclient.connection import ConnectionState
from taclient.state import StateStore
from taproto.log import get_logger
from taproto.packets import ConnectResponse, Packet, ResponseType

logger = get_logger(__name__)


PacketListener = Callable[[Packet], Union[None, Awaitable[None]]]
ConnectedListener = Callable[[], None]

ALL_PACKETS = "*"


class Dispatcher:
    """
    Hands every decoded packet to the StateStore and recognizes the Connect
    response that completes the handshake.

    Listeners registered with ``on(kind, ...)`` run after the store has seen
    the packet. ``kind`` is a ``Packet.kind`` ("event.match_updated_event"),
    its top-level variant ("event") or ``"*"``.
    """

    def __init__(self, state: ConnectionState, store: StateStore, log_protocol: bool = False) -> None:
        self.state = state
        self.store = store
        self.log_protocol = log_protocol
        self.listeners: Dict[str, List[PacketListener]] = {}
        self._connected_listeners: List[ConnectedListener] = []

    def on(self, kind: str, listener: PacketListener) -> None:
        self.listeners.setdefault(kind, []).append(listener)

    def on_connected(self, listener: ConnectedListener) -> None:
        self._connected_listeners.append(listener)

    async def handle_packet(self, packet: Packet) -> None:
        response = packet.response
        if response is not None and response.connect is not None:
            if response.type is ResponseType.SUCCESS:
                self._complete_handshake(response.connect)
            else:
                logger.warning("Server rejected connect: %s", response.message or "no reason given")

        # the handshake above always lands before the generic handoff
        self.store.handle_packet(packet)
        await self._notify(packet)

    def _complete_handshake(self, connect: ConnectResponse) -> None:
        if self.state.connected or not connect.self_guid:
            return
        self.store.init(connect)
        self.state.connected = True
        if self.log_protocol:
            logger.info("Handshake complete", extra={"user_id": connect.self_guid})
        for listener in self._connected_listeners:
            try:
                listener()
            except Exception as e:
                logger.error("Connected listener failed: %s", e)

    async def _notify(self, packet: Packet) -> None:
        kind = packet.kind
        top = kind.split(".", 1)[0]
        keys = [kind] if top == kind else [kind, top]
        keys.append(ALL_PACKETS)

        for key in keys:
            for listener in self.listeners.get(key, []):
                try:
                    result = listener(packet)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error("Listener for %s failed: %s", key, e, extra={"packet_type": kind})
