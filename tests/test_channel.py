"""
Tests for the reconnecting line channel and its mailboxes.

Channel tests run against real loopback sockets.
"""

import asyncio
from unittest.mock import patch

import pytest

from fuel_dispenser.core.exceptions import ChannelClosedError
from fuel_dispenser.core.interfaces import ChannelRole, ConnectionState, MailboxMode
from fuel_dispenser.core.value_objects import Message
from fuel_dispenser.transport.channel import Channel
from fuel_dispenser.transport.mailbox import FifoMailbox, LatestMailbox, create_mailbox


HOST = "127.0.0.1"
TIMEOUT = 2.0
FAST_RECONNECT = 0.05


class PeerServer:
    """Loopback peer that records every accepted connection."""

    def __init__(self) -> None:
        self.connections: asyncio.Queue = asyncio.Queue()
        self._writers: list[asyncio.StreamWriter] = []
        self._server = None

    async def start(self) -> int:
        self._server = await asyncio.start_server(self._accept, HOST, 0)
        return self._server.sockets[0].getsockname()[1]

    async def _accept(self, reader, writer) -> None:
        self._writers.append(writer)
        await self.connections.put((reader, writer))

    async def next_connection(self):
        return await asyncio.wait_for(self.connections.get(), timeout=TIMEOUT)

    async def stop(self) -> None:
        for writer in self._writers:
            writer.close()
        self._server.close()


async def read_line(reader: asyncio.StreamReader) -> bytes:
    return await asyncio.wait_for(reader.readline(), timeout=TIMEOUT)


async def wait_disconnected(channel: Channel) -> None:
    for _ in range(200):
        if not channel.is_connected:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("channel stayed connected")


# =============================================================================
# Mailbox Tests
# =============================================================================


class TestMailboxes:
    """Tests for inbound mailboxes."""

    @pytest.mark.asyncio
    async def test_fifo_keeps_order(self):
        """Test that FIFO returns every message, oldest first."""
        mailbox = FifoMailbox()
        mailbox.put(Message("a"))
        mailbox.put(Message("b"))
        assert len(mailbox) == 2
        assert (await mailbox.wait(0)).content == "a"
        assert mailbox.take().content == "b"
        assert mailbox.take() is None

    @pytest.mark.asyncio
    async def test_fifo_wait_times_out(self):
        assert await FifoMailbox().wait(0.01) is None

    @pytest.mark.asyncio
    async def test_fifo_wait_wakes_on_put(self):
        """Test that a waiter is woken by a later put."""
        mailbox = FifoMailbox()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, mailbox.put, Message("late"))
        assert (await mailbox.wait(TIMEOUT)).content == "late"

    @pytest.mark.asyncio
    async def test_latest_overwrites_and_clears(self):
        """Test that only the newest message is kept and reading clears it."""
        mailbox = LatestMailbox()
        mailbox.put(Message("1"))
        mailbox.put(Message("2"))
        assert len(mailbox) == 1
        assert mailbox.take().content == "2"
        assert mailbox.take() is None
        assert await mailbox.wait(0.01) is None

    @pytest.mark.asyncio
    async def test_latest_wait_wakes_on_put(self):
        mailbox = LatestMailbox()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, mailbox.put, Message("reading"))
        assert (await mailbox.wait(TIMEOUT)).content == "reading"
        assert mailbox.clear() == 0

    def test_create_mailbox(self):
        assert isinstance(create_mailbox("latest"), LatestMailbox)
        assert isinstance(create_mailbox(MailboxMode.FIFO), FifoMailbox)


# =============================================================================
# Client Role Tests
# =============================================================================


class TestClientChannel:
    """Tests for a channel dialing its peer."""

    @pytest.mark.asyncio
    async def test_exchange_lines(self):
        """Test sending and receiving newline-delimited messages."""
        peer = PeerServer()
        port = await peer.start()
        channel = Channel("bank", HOST, port, reconnect_delay=FAST_RECONNECT)
        try:
            await channel.start()
            reader, writer = await peer.next_connection()
            assert await channel.wait_connected(TIMEOUT)
            assert channel.state is ConnectionState.CONNECTED

            assert channel.send(Message("Authorize:4111111111111111")) is True
            assert await read_line(reader) == b"Authorize:4111111111111111\n"

            writer.write(b"\n\nApprove\n")
            await writer.drain()
            reply = await channel.receive(TIMEOUT)
            assert reply == Message("Approve")
            assert reply.device == "bank"
            assert channel.try_receive() is None
        finally:
            await channel.close()
            await peer.stop()

    @pytest.mark.asyncio
    async def test_send_dropped_while_disconnected(self):
        """Test that nothing is queued while no peer is connected."""
        peer = PeerServer()
        port = await peer.start()
        await peer.stop()

        channel = Channel("bank", HOST, port, reconnect_delay=FAST_RECONNECT)
        try:
            await channel.start()
            assert channel.send(Message("lost")) is False
            assert channel.pending_outbound == 0
            assert await channel.wait_connected(0.1) is False
        finally:
            await channel.close()

    @pytest.mark.asyncio
    async def test_reconnects_without_duplicates(self):
        """Test that a dropped link comes back and nothing is replayed."""
        peer = PeerServer()
        port = await peer.start()
        channel = Channel("pump", HOST, port, reconnect_delay=0.3)
        try:
            await channel.start()
            first_reader, first_writer = await peer.next_connection()
            assert await channel.wait_connected(TIMEOUT)
            channel.send(Message("on"))
            assert await read_line(first_reader) == b"on\n"

            first_writer.close()
            await wait_disconnected(channel)
            assert channel.send(Message("lost")) is False

            second_reader, _ = await peer.next_connection()
            assert await channel.wait_connected(TIMEOUT)
            assert channel.send(Message("off")) is True
            assert await read_line(second_reader) == b"off\n"

            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(second_reader.readline(), timeout=0.1)
        finally:
            await channel.close()
            await peer.stop()

    @pytest.mark.asyncio
    async def test_stalled_dial_is_retried(self):
        """Test that a dial that never completes times out and is retried."""
        peer = PeerServer()
        port = await peer.start()
        real_open_connection = asyncio.open_connection
        attempts = 0

        async def stall_first_dial(*args, **kwargs):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                await asyncio.Event().wait()
            return await real_open_connection(*args, **kwargs)

        channel = Channel(
            "bank", HOST, port, reconnect_delay=FAST_RECONNECT, connect_timeout=0.1
        )
        try:
            with patch("fuel_dispenser.transport.channel.asyncio.open_connection", stall_first_dial):
                await channel.start()
                await peer.next_connection()
                assert await channel.wait_connected(TIMEOUT)
            assert attempts == 2
        finally:
            await channel.close()
            await peer.stop()

    @pytest.mark.asyncio
    async def test_latest_mailbox_keeps_newest(self):
        """Test that a telemetry channel exposes only the newest reading."""
        peer = PeerServer()
        port = await peer.start()
        channel = Channel(
            "flow_meter", HOST, port, mailbox=MailboxMode.LATEST, reconnect_delay=FAST_RECONNECT
        )
        try:
            await channel.start()
            _, writer = await peer.next_connection()
            assert await channel.wait_connected(TIMEOUT)

            writer.write(b"1\n2\n3\n")
            await writer.drain()

            last = None
            for _ in range(20):
                message = await channel.receive(TIMEOUT)
                last = message.content
                if last == "3":
                    break
            assert last == "3"
            assert channel.try_receive() is None
        finally:
            await channel.close()
            await peer.stop()


# =============================================================================
# Server Role Tests
# =============================================================================


class TestServerChannel:
    """Tests for a channel accepting a single client."""

    @pytest.mark.asyncio
    async def test_single_client_served(self):
        """Test that one client is served and extra clients are refused."""
        channel = Channel("screen", HOST, 0, role=ChannelRole.SERVER, reconnect_delay=FAST_RECONNECT)
        extra_writer = None
        client_writer = None
        try:
            await channel.start()
            port = channel.bound_port
            assert port

            client_reader, client_writer = await asyncio.open_connection(HOST, port)
            assert await channel.wait_connected(TIMEOUT)

            extra_reader, extra_writer = await asyncio.open_connection(HOST, port)
            assert await read_line(extra_reader) == b""

            channel.send(Message("t:45/s:2/f:2/c:0/Hello;"))
            assert await read_line(client_reader) == b"t:45/s:2/f:2/c:0/Hello;\n"

            client_writer.write(b"b:8\n")
            await client_writer.drain()
            assert (await channel.receive(TIMEOUT)).content == "b:8"
        finally:
            for writer in (client_writer, extra_writer):
                if writer is not None:
                    writer.close()
            await channel.close()

    @pytest.mark.asyncio
    async def test_accepts_new_client_after_drop(self):
        """Test that the same port serves a new client after a drop."""
        channel = Channel("hose", HOST, 0, role="server", reconnect_delay=FAST_RECONNECT)
        try:
            await channel.start()
            port = channel.bound_port

            _, first = await asyncio.open_connection(HOST, port)
            assert await channel.wait_connected(TIMEOUT)
            first.close()
            await wait_disconnected(channel)

            second_reader, second = await asyncio.open_connection(HOST, port)
            assert await channel.wait_connected(TIMEOUT)
            channel.send(Message("CMD:FUELING:START"))
            assert await read_line(second_reader) == b"CMD:FUELING:START\n"
            second.close()
        finally:
            await channel.close()


# =============================================================================
# Lifecycle Tests
# =============================================================================


class TestChannelLifecycle:
    """Tests for start/close semantics."""

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        """Test that close can be called twice and blocks restart."""
        channel = Channel("station", HOST, 0, role=ChannelRole.SERVER)
        await channel.start()
        await channel.close()
        await channel.close()

        assert channel.state is ConnectionState.CLOSED
        assert channel.is_closed
        assert channel.bound_port is None
        with pytest.raises(ChannelClosedError):
            await channel.start()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        channel = Channel("station", HOST, 0, role=ChannelRole.SERVER)
        try:
            await channel.start()
            port = channel.bound_port
            await channel.start()
            assert channel.bound_port == port
        finally:
            await channel.close()
