"""
Tests for asyncio stream adapters, the queue-backed listener and local
forwarding over real sockets.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from burrow.core.exceptions import ListenerClosedError, StreamClosedError
from burrow.core.services.director import Director
from burrow.infrastructure.ssh.streams import (
    AsyncioDuplexStream, LocalDialer, QueueListener, listen_local
)
from burrow.utils.net import split_host_port

from conftest import memory_pipe


async def start_echo_server():
    async def handle(reader, writer):
        while True:
            data = await reader.read(1024)
            if not data:
                break
            writer.write(data)
            await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, f"127.0.0.1:{port}"


class TestAsyncioDuplexStream:
    """Test the reader/writer adapter."""

    async def test_write_and_close(self):
        reader = Mock()
        writer = Mock()
        writer.drain = AsyncMock()
        writer.wait_closed = AsyncMock()
        stream = AsyncioDuplexStream(reader, writer)

        assert await stream.write(b"abc") == 3
        writer.write.assert_called_once_with(b"abc")

        await stream.close()
        await stream.close()

        writer.close.assert_called_once()
        writer.wait_closed.assert_awaited_once()
        assert stream.closed
        assert await stream.read(10) == b""
        with pytest.raises(StreamClosedError):
            await stream.write(b"x")

    async def test_close_without_wait_closed(self):
        writer = Mock(spec=["write", "drain", "close", "get_extra_info"])
        stream = AsyncioDuplexStream(Mock(), writer)

        await stream.close()

        writer.close.assert_called_once()

    async def test_wait_closed_error_is_logged(self):
        writer = Mock()
        writer.wait_closed = AsyncMock(side_effect=ConnectionResetError())
        stream = AsyncioDuplexStream(Mock(), writer)

        await stream.close()

        assert stream.closed


class TestQueueListener:
    """Test the accept queue."""

    async def test_accept_in_order(self):
        listener = QueueListener("test")
        _, a = memory_pipe("a")
        _, b = memory_pipe("b")
        listener.push(a)
        listener.push(b)

        assert await listener.accept() is a
        assert await listener.accept() is b

    async def test_close_wakes_pending_accepts(self):
        listener = QueueListener("test")
        waiters = [asyncio.ensure_future(listener.accept()) for _ in range(2)]
        await asyncio.sleep(0)

        await listener.close()

        for waiter in waiters:
            with pytest.raises(ListenerClosedError):
                await asyncio.wait_for(waiter, timeout=1)

    async def test_close_drops_pending_streams(self):
        listener = QueueListener("test")
        _, pending = memory_pipe("pending")
        listener.push(pending)

        await listener.close()

        assert pending.closed
        with pytest.raises(ListenerClosedError):
            await listener.accept()

    async def test_push_after_close_closes_stream(self):
        listener = QueueListener("test")
        await listener.close()
        _, late = memory_pipe("late")

        listener.push(late)
        await asyncio.sleep(0)

        assert late.closed

    async def test_close_stops_non_asyncio_server(self):
        server = Mock()
        server.wait_closed = AsyncMock()
        listener = QueueListener("test")
        listener.attach(server, "remote:8080")

        await listener.close()

        assert listener.address == "remote:8080"
        server.close.assert_called_once()
        server.wait_closed.assert_awaited_once()


class TestLocalForwarding:
    """Test local listeners and dialers over loopback TCP."""

    async def test_local_dialer_roundtrip(self):
        server, address = await start_echo_server()
        try:
            stream = await LocalDialer().dial("tcp", address)
            await stream.write(b"hello")
            assert await asyncio.wait_for(stream.read(1024), timeout=2) == b"hello"
            assert stream.get_extra_info("peername")[1] == split_host_port(address)[1]
            await stream.close()
        finally:
            server.close()
            await server.wait_closed()

    async def test_director_over_loopback(self):
        server, target = await start_echo_server()
        listener = await listen_local("tcp", "127.0.0.1:0")
        director = Director(LocalDialer())
        cancel = asyncio.Event()
        serving = asyncio.ensure_future(
            director.serve_listener(listener, "tcp", target, cancel=cancel))

        try:
            host, port = split_host_port(listener.address)
            for i in range(3):
                reader, writer = await asyncio.open_connection(host, port)
                message = f"round-{i}".encode()
                writer.write(message)
                await writer.drain()
                assert await asyncio.wait_for(reader.readexactly(len(message)), timeout=2) == message
                writer.close()
                await writer.wait_closed()
                await asyncio.wait_for(director.wait_bindings(), timeout=2)

            cancel.set()
            await listener.close()
            assert await asyncio.wait_for(serving, timeout=2) == 3
        finally:
            server.close()
            await server.wait_closed()

    async def test_listen_rejects_unknown_network(self):
        with pytest.raises(ValueError):
            await listen_local("udp", "127.0.0.1:0")
