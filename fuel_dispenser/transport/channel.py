"""
Reconnecting Line Channel.

A two-way, newline-delimited text channel over TCP that keeps itself
connected. Works in either role:

    SERVER: listen on host:port and serve exactly one client at a time.
            Further clients are closed as soon as they connect.
    CLIENT: dial host:port, retrying after a fixed backoff.

Once connected, a reader task pushes decoded lines into the inbound
mailbox and a writer task drains the outbound queue. Any I/O failure in
either task (EOF included) tears the session down, discards unsent
outbound messages, waits for the backoff and connects again. Callers
never see transport faults; they only notice missing replies.

Example:
    channel = Channel("bank", "localhost", 1238)
    await channel.start()
    channel.send(Message("Authorize:4111111111111111"))
    reply = await channel.receive(timeout=5.0)
    await channel.close()
"""

import asyncio
import logging
from typing import Optional, Union

from fuel_dispenser.core.exceptions import ChannelClosedError
from fuel_dispenser.core.interfaces import ChannelRole, ConnectionState, MailboxMode
from fuel_dispenser.core.value_objects import Message
from fuel_dispenser.infrastructure.settings import ChannelSettings, EndpointSettings

from .constants import (
    CLOSE_TIMEOUT_S,
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_ENCODING,
    DEFAULT_RECONNECT_DELAY_S,
    MAX_LINE_LENGTH,
)
from .mailbox import create_mailbox


logger = logging.getLogger(__name__)


StreamPair = tuple[asyncio.StreamReader, asyncio.StreamWriter]


class Channel:
    """
    Auto-reconnecting line channel to one peripheral.

    Attributes:
        name: Peripheral name used in logs and message tags.
        role: Server or client side of the connection.
        state: Current connection state.
    """

    def __init__(
        self,
        name: str,
        host: str,
        port: int,
        role: Union[ChannelRole, str] = ChannelRole.CLIENT,
        mailbox: Union[MailboxMode, str] = MailboxMode.FIFO,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_S,
        encoding: str = DEFAULT_ENCODING,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_S,
    ) -> None:
        """
        Initialize the channel. Nothing connects until ``start()``.

        Args:
            name: Peripheral name.
            host: Host to dial (client) or bind (server).
            port: TCP port; 0 lets a server pick a free port.
            role: ChannelRole or its string value.
            mailbox: Inbound buffering mode.
            reconnect_delay: Seconds to wait after a failure or drop.
            encoding: Text encoding of the wire.
            connect_timeout: Seconds a client dial may take before it counts
                as a failed attempt.
        """
        self._name = name
        self._host = host
        self._port = port
        self._role = ChannelRole(role)
        self._mailbox_mode = MailboxMode(mailbox)
        self._mailbox = create_mailbox(self._mailbox_mode)
        self._reconnect_delay = reconnect_delay
        self._encoding = encoding
        self._connect_timeout = connect_timeout

        self._outbound: asyncio.Queue[Message] = asyncio.Queue()
        self._state = ConnectionState.CONNECTING
        self._connected = asyncio.Event()
        self._closed = False

        self._supervisor: Optional[asyncio.Task] = None
        self._server: Optional[asyncio.AbstractServer] = None
        self._pending_clients: asyncio.Queue[StreamPair] = asyncio.Queue(maxsize=1)

    @classmethod
    def from_endpoint(
        cls,
        name: str,
        endpoint: EndpointSettings,
        mailbox: Union[MailboxMode, str] = MailboxMode.FIFO,
        settings: Optional[ChannelSettings] = None,
    ) -> "Channel":
        """
        Build a channel from endpoint settings.

        Args:
            name: Peripheral name.
            endpoint: Host, port and role of the peripheral.
            mailbox: Inbound buffering mode.
            settings: Shared channel settings (defaults if omitted).

        Returns:
            A channel that has not been started yet.
        """
        settings = settings or ChannelSettings()
        return cls(
            name=name,
            host=endpoint.host,
            port=endpoint.port,
            role=endpoint.role,
            mailbox=mailbox,
            reconnect_delay=settings.reconnect_delay,
            encoding=settings.encoding,
            connect_timeout=settings.connect_timeout,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        """Get the channel name."""
        return self._name

    @property
    def role(self) -> ChannelRole:
        """Get the channel role."""
        return self._role

    @property
    def mailbox_mode(self) -> MailboxMode:
        """Get the inbound buffering mode."""
        return self._mailbox_mode

    @property
    def state(self) -> ConnectionState:
        """Get the connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if a peer is currently connected."""
        return self._state is ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        """Check if the channel has been closed."""
        return self._closed

    @property
    def bound_port(self) -> Optional[int]:
        """Port the server is listening on, or None if not listening."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    @property
    def pending_outbound(self) -> int:
        """Number of messages queued but not yet written."""
        return self._outbound.qsize()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Start the connection supervisor.

        In server role the listening socket is opened before returning
        when possible, so ``bound_port`` is available right away.

        Raises:
            ChannelClosedError: If the channel has been closed.
        """
        if self._closed:
            raise ChannelClosedError(
                f"Channel {self._name} is closed", device_name=self._name
            )
        if self._supervisor is not None:
            return

        if self._role is ChannelRole.SERVER:
            try:
                await self._ensure_listening()
            except OSError as e:
                logger.warning(f"[{self._name}] Cannot listen on {self._host}:{self._port}: {e}")

        self._supervisor = asyncio.create_task(
            self._supervise(), name=f"channel-{self._name}"
        )

    def send(self, message: Message) -> bool:
        """
        Queue a message for the writer task. Never blocks.

        Args:
            message: Message to transmit.

        Returns:
            True if queued, False if dropped because no peer is connected.
        """
        if not self.is_connected:
            logger.debug(f"[{self._name}] Not connected, dropping: {message}")
            return False
        self._outbound.put_nowait(message)
        return True

    def try_receive(self) -> Optional[Message]:
        """Take the next buffered inbound message, or None."""
        return self._mailbox.take()

    async def receive(self, timeout: float) -> Optional[Message]:
        """
        Wait for an inbound message.

        Args:
            timeout: Maximum time to wait in seconds.

        Returns:
            The message, or None if nothing arrived in time.
        """
        return await self._mailbox.wait(timeout)

    async def wait_connected(self, timeout: float) -> bool:
        """
        Wait until a peer is connected.

        Args:
            timeout: Maximum time to wait in seconds.

        Returns:
            True if connected within the timeout.
        """
        if self.is_connected:
            return True
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return self.is_connected

    async def close(self) -> None:
        """Stop all background tasks and release sockets. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._state = ConnectionState.CLOSED

        supervisor, self._supervisor = self._supervisor, None
        if supervisor is not None:
            supervisor.cancel()
            await asyncio.gather(supervisor, return_exceptions=True)

        while not self._pending_clients.empty():
            _, writer = self._pending_clients.get_nowait()
            await self._close_writer(writer)

        if self._server is not None:
            self._server.close()
            try:
                await asyncio.wait_for(self._server.wait_closed(), timeout=CLOSE_TIMEOUT_S)
            except asyncio.TimeoutError:
                logger.debug(f"[{self._name}] Listener close timed out")
            self._server = None

        self._connected.clear()
        self._discard_outbound()
        logger.info(f"[{self._name}] Channel closed")

    # -------------------------------------------------------------------------
    # Connection supervisor
    # -------------------------------------------------------------------------

    async def _supervise(self) -> None:
        """Connect, run a session, back off, repeat until closed."""
        while not self._closed:
            try:
                reader, writer = await self._establish()
            except (OSError, asyncio.TimeoutError) as e:
                logger.warning(
                    f"[{self._name}] Connection attempt failed: {e!r}. "
                    f"Retrying in {self._reconnect_delay}s"
                )
                await asyncio.sleep(self._reconnect_delay)
                continue

            await self._run_session(reader, writer)

            if not self._closed:
                logger.info(f"[{self._name}] Disconnected. Reconnecting in {self._reconnect_delay}s")
                await asyncio.sleep(self._reconnect_delay)

    async def _establish(self) -> StreamPair:
        """Obtain a connected stream pair for the configured role."""
        if self._role is ChannelRole.SERVER:
            await self._ensure_listening()
            logger.debug(f"[{self._name}] Waiting for a client on port {self.bound_port}")
            return await self._pending_clients.get()

        logger.debug(f"[{self._name}] Dialing {self._host}:{self._port}")
        return await asyncio.wait_for(
            asyncio.open_connection(self._host, self._port, limit=MAX_LINE_LENGTH),
            timeout=self._connect_timeout,
        )

    async def _ensure_listening(self) -> None:
        """Open the listening socket if it is not open yet."""
        if self._server is None:
            self._server = await asyncio.start_server(
                self._accept_client,
                self._host,
                self._port,
                limit=MAX_LINE_LENGTH,
            )
            logger.info(f"[{self._name}] Listening on {self._host}:{self.bound_port}")

    def _accept_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Server callback: keep the first client, close any extra one."""
        peer = writer.get_extra_info("peername")
        if self._closed or self.is_connected or self._pending_clients.full():
            logger.warning(f"[{self._name}] Rejecting extra client {peer}")
            writer.close()
            return
        logger.info(f"[{self._name}] Client connected from {peer}")
        self._pending_clients.put_nowait((reader, writer))

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def _run_session(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Run reader and writer tasks until either of them stops."""
        self._state = ConnectionState.CONNECTED
        self._connected.set()
        logger.info(f"[{self._name}] Connected to {writer.get_extra_info('peername')}")

        read_task = asyncio.create_task(self._read_loop(reader))
        write_task = asyncio.create_task(self._write_loop(writer))
        try:
            done, _ = await asyncio.wait(
                {read_task, write_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.warning(f"[{self._name}] Connection lost: {task.exception()!r}")
        finally:
            read_task.cancel()
            write_task.cancel()
            await asyncio.gather(read_task, write_task, return_exceptions=True)

            self._connected.clear()
            self._state = ConnectionState.CLOSED if self._closed else ConnectionState.CONNECTING
            await self._close_writer(writer)

            dropped = self._discard_outbound()
            if dropped:
                logger.warning(f"[{self._name}] Discarded {dropped} unsent message(s)")

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        """Decode lines into the mailbox. EOF raises ConnectionResetError."""
        while True:
            line = await reader.readline()
            if not line:
                raise ConnectionResetError("Peer closed the connection")

            text = line.decode(self._encoding, errors="replace")
            if not text.strip():
                continue

            message = Message.from_wire(text, device=self._name)
            logger.debug(f"[{self._name}] RX: {message.content}")
            self._mailbox.put(message)

    async def _write_loop(self, writer: asyncio.StreamWriter) -> None:
        """Write queued messages as they become available."""
        while True:
            message = await self._outbound.get()
            writer.write(message.to_wire().encode(self._encoding))
            await writer.drain()
            logger.debug(f"[{self._name}] TX: {message.content}")

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _discard_outbound(self) -> int:
        """Drop every queued outbound message and return the count."""
        dropped = 0
        while not self._outbound.empty():
            self._outbound.get_nowait()
            dropped += 1
        return dropped

    async def _close_writer(self, writer: asyncio.StreamWriter) -> None:
        """Close a stream writer, ignoring errors from a dead socket."""
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=CLOSE_TIMEOUT_S)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"[{self._name}] Close error (ignored): {e!r}")

    def __repr__(self) -> str:
        return (
            f"Channel(name={self._name!r}, role={self._role.value}, "
            f"endpoint={self._host}:{self._port}, state={self._state.value})"
        )
