from __future__ import annotations
import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Set

import websockets

from taclient.config import ConnectionConfig
from taclient.state import StateStore
from taproto.codec import DecodeError, decode
from taproto.log import get_logger
from taproto.packets import Packet

logger = get_logger(__name__)


Connector = Callable[[str], Awaitable[Any]]
PacketHandler = Callable[[Packet], Awaitable[None]]
Hook = Callable[[], Awaitable[None]]

# reconnect_attempts value before the first closed cycle
NEVER_ATTEMPTED = -1


class HandshakeTimeout(Exception):
    """The transport did not open within ``handshake_timeout``."""
    pass


async def open_websocket(url: str) -> websockets.ClientConnection:
    """Default connector. Open timing is governed by ``handshake_timeout``."""
    return await websockets.connect(url, ping_interval=15, ping_timeout=45, open_timeout=None)


@dataclass
class ConnectionState:
    transport: Optional[Any] = None
    reconnect_attempts: int = NEVER_ATTEMPTED
    connected: bool = False       # true only after a successful Connect response
    generation: int = 0           # bumped by every connect(); stale callbacks compare against it


class ConnectionManager:
    """
    Owns the single live websocket and its lifecycle.

    Every ``connect()`` starts a new generation. Transport callbacks and
    scheduled reconnects remember the generation they were created under and
    do nothing once a newer one exists, so a superseded socket can never
    touch shared state.

    Nothing here raises to the caller: transport failures become the close
    path (and, per policy, a reconnect), bad frames are logged and dropped.
    """

    def __init__(
        self,
        url: str,
        config: ConnectionConfig,
        store: StateStore,
        state: Optional[ConnectionState] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.url = url
        self.config = config
        self.store = store
        self.state = state or ConnectionState()
        self._connector: Connector = connector or open_websocket
        self._transmit = config.transmit or self._send_to_socket

        # wired by the client facade
        self.on_open: Optional[Hook] = None
        self.on_packet: Optional[PacketHandler] = None
        self.farewell: Optional[Hook] = None

        self._closing = False
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._run_task: Optional[asyncio.Task] = None

    # ---------------------------------------------------------------
    # public API
    # ---------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self.state.transport is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def connect(self) -> asyncio.Task:
        """Open a new transport, superseding any existing one. Needs a running loop."""
        loop = asyncio.get_running_loop()
        self._closing = False
        self._cancel_reconnect()

        superseded = self.state.transport
        self.state.generation += 1
        self.state.transport = None
        if superseded is not None:
            self.state.connected = False
            self.store.reset()
            self._spawn(self._close_quietly(superseded))
        else:
            self._abandon_opening()

        if self.config.logging:
            logger.info("Connecting to %s", self.url, extra={"attempt": self.state.reconnect_attempts})
        self._run_task = self._spawn(self._run(self.state.generation), loop)
        return self._run_task

    async def send_raw(self, data: bytes) -> None:
        try:
            result = self._transmit(data)
            if inspect.isawaitable(result):
                await result
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Connection closed while sending %d bytes", len(data))
        except Exception as e:
            logger.error("Error sending frame: %s", e)

    async def close(self) -> None:
        """
        Caller-initiated, terminal close. Says goodbye when the handshake is
        complete, cancels any pending reconnect, and waits for the receive
        loop to finish.
        """
        self._closing = True
        self._cancel_reconnect()

        websocket = self.state.transport
        if websocket is None:
            # still opening (or idle): abandon the attempt
            self.state.generation += 1
            self.state.connected = False
            self._cancel_tasks()
            await self._drain()
            return

        if self.state.connected and self.farewell is not None:
            try:
                await self.farewell()
            except Exception as e:
                logger.error("Error sending farewell: %s", e)

        await self._close_quietly(websocket)
        await self._drain()

    # ---------------------------------------------------------------
    # transport lifecycle
    # ---------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return generation == self.state.generation

    async def _open(self) -> Any:
        timeout = self.config.handshake_timeout
        if timeout <= 0:
            return await self._connector(self.url)

        attempt = asyncio.ensure_future(self._connector(self.url))
        try:
            done, _ = await asyncio.wait({attempt}, timeout=timeout / 1000)
        finally:
            if not attempt.done():
                attempt.cancel()
        if not done:
            raise HandshakeTimeout(f"no transport after {timeout} ms")
        return attempt.result()

    async def _run(self, generation: int) -> None:
        try:
            websocket = await self._open()
        except HandshakeTimeout:
            if self._is_current(generation):
                self._on_handshake_timeout()
            return
        except Exception as e:
            if self._is_current(generation):
                self._on_error(e)
                self._on_close(generation)
            return

        if not self._is_current(generation):
            await self._close_quietly(websocket)
            return

        self.state.transport = websocket
        try:
            await self._on_open()
            async for frame in websocket:
                if not self._is_current(generation):
                    break
                await self._on_message(frame)
        except Exception as e:
            self._on_error(e)
        finally:
            self._on_close(generation)

    def _on_handshake_timeout(self) -> None:
        # handshake-level retry: immediate, independent of the reconnect policy
        if self.config.logging:
            logger.warning("Transport not open after %d ms; retrying", self.config.handshake_timeout)
        self.state.transport = None
        self.connect()

    async def _on_open(self) -> None:
        if self.config.logging:
            logger.info("Transport open to %s", self.url)
        if self.on_open is not None:
            await self.on_open()

    async def _on_message(self, frame: Any) -> None:
        if isinstance(frame, str):
            if self.config.logging:
                logger.warning("Received non-binary message: %.200s", frame)
            return
        try:
            packet = decode(frame)
        except DecodeError as e:
            logger.error("Failed to decode inbound frame (%d bytes): %s", len(frame), e)
            return
        if self.on_packet is None:
            return
        try:
            await self.on_packet(packet)
        except Exception as e:
            logger.error("Failed to process inbound packet: %s", e, extra={"packet_type": packet.kind})

    def _on_error(self, error: BaseException) -> None:
        # the close path follows; nothing to recover here
        logger.error("Transport error on %s: %s", self.url, error)

    def _on_close(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        settings = self.store.server_settings
        if self.config.logging and settings is not None and settings.server_name:
            logger.error("Socket closed - %s", settings.server_name)

        self.state.transport = None
        self.state.connected = False
        self.store.reset()

        if self._closing:
            return
        self._schedule_reconnect(generation)

    def _schedule_reconnect(self, generation: int) -> None:
        if not self.config.auto_reconnect:
            return
        limit = self.config.auto_reconnect_max_retries
        if limit != -1 and self.state.reconnect_attempts >= limit:
            if self.config.logging:
                logger.warning("Reconnect limit of %d reached; giving up on %s", limit, self.url)
            return

        delay = self.config.auto_reconnect_interval / 1000
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._reconnect, generation)
        if limit != -1:
            self.state.reconnect_attempts += 1
        if self.config.logging:
            logger.info("Reconnecting in %.1fs", delay, extra={"attempt": self.state.reconnect_attempts})

    def _reconnect(self, generation: int) -> None:
        self._reconnect_handle = None
        if self._closing or not self._is_current(generation):
            return
        self.connect()

    # ---------------------------------------------------------------
    # helpers
    # ---------------------------------------------------------------

    async def _send_to_socket(self, data: bytes) -> None:
        websocket = self.state.transport
        if websocket is None:
            if self.config.logging:
                logger.warning("No open transport; dropping %d-byte frame", len(data))
            return
        await websocket.send(data)

    async def _close_quietly(self, websocket: Any) -> None:
        try:
            await websocket.close()
        except Exception as e:
            logger.error("Error closing connection: %s", e)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _spawn(self, coro: Awaitable[None], loop: Optional[asyncio.AbstractEventLoop] = None) -> asyncio.Task:
        task = (loop or asyncio.get_running_loop()).create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _abandon_opening(self) -> None:
        # an attempt still waiting in the connector has no transport to close
        task = self._run_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    async def _drain(self) -> None:
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
