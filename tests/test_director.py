"""
Tests for the Director accept loop and single-shot forwarding.
"""

import asyncio
from unittest.mock import Mock

import pytest

from burrow.core.exceptions import ChannelOpenFailedError
from burrow.core.services.binding import BindingResult
from burrow.core.interfaces.streams import IDuplexStream
from burrow.core.services.director import Director
from burrow.infrastructure.ssh.streams import QueueListener

from conftest import FakeDialer, FakeListener, memory_pipe


class ReadRecordingStream(IDuplexStream):
    """Wraps a stream and records every chunk read through it."""

    def __init__(self, inner: IDuplexStream) -> None:
        self.inner = inner
        self.reads = []

    @property
    def closed(self) -> bool:
        return self.inner.closed

    async def read(self, n: int) -> bytes:
        data = await self.inner.read(n)
        self.reads.append(data)
        return data

    async def write(self, data: bytes) -> int:
        return await self.inner.write(data)

    async def close(self) -> None:
        await self.inner.close()


class TestBindOnce:
    """Test Director.bind_once."""

    async def test_forwards_to_dialed_target(self):
        dialer = FakeDialer()
        director = Director(dialer)
        client, local = memory_pipe("client")

        task = asyncio.ensure_future(director.bind_once(local, "tcp", "db:5432"))
        await client.write(b"select 1")
        assert await asyncio.wait_for(client.read(1024), timeout=2) == b"select 1"
        await client.close()

        result = await asyncio.wait_for(task, timeout=2)
        assert isinstance(result, BindingResult)
        assert result.error is None
        assert dialer.dialed == [("tcp", "db:5432")]
        assert local.closed

    async def test_dial_failure_leaves_local_open(self):
        error = ChannelOpenFailedError("refused", "tcp", "db:5432")
        director = Director(FakeDialer(fail_with=error))
        client, local = memory_pipe("client")

        with pytest.raises(ChannelOpenFailedError):
            await director.bind_once(local, "tcp", "db:5432")

        assert not local.closed
        assert local.close_count == 0


class TestServeListener:
    """Test Director.serve_listener."""

    async def test_three_sequential_connections(self):
        """Each connection gets its own binding; the listener keeps accepting."""
        dialer = FakeDialer()
        director = Director(dialer)
        listener = QueueListener("test")
        cancel = asyncio.Event()

        serving = asyncio.ensure_future(
            director.serve_listener(listener, "tcp", "target:80", cancel=cancel))

        for i in range(3):
            client, local = memory_pipe(f"conn-{i}")
            listener.push(local)
            message = f"message-{i}".encode()
            await client.write(message)
            assert await asyncio.wait_for(client.read(1024), timeout=2) == message

            await client.close()
            await asyncio.wait_for(director.wait_bindings(), timeout=2)

            assert local.closed
            assert dialer.remote_ends[i].closed
            assert not listener.closed
            assert not serving.done()

        cancel.set()
        await listener.close()
        accepted = await asyncio.wait_for(serving, timeout=2)

        assert accepted == 3
        assert dialer.dialed == [("tcp", "target:80")] * 3
        assert director.active_bindings == 0

    async def test_cancel_checked_before_accept(self):
        listener = FakeListener([])
        cancel = asyncio.Event()
        cancel.set()

        accepted = await Director(FakeDialer()).serve_listener(
            listener, "tcp", "target:80", cancel=cancel)

        assert accepted == 0
        assert listener.accept_calls == 0
        assert listener.close_count == 1

    async def test_accept_error_ends_loop_and_closes_listener(self):
        listener = FakeListener([], error=OSError("accept failed"))

        accepted = await Director(FakeDialer()).serve_listener(listener, "tcp", "target:80")

        assert accepted == 0
        assert listener.accept_calls == 1
        assert listener.close_count == 1

    async def test_hook_failure_drops_connection_and_continues(self):
        _, first = memory_pipe("first")
        client, second = memory_pipe("second")
        listener = FakeListener([first, second])
        dialer = FakeDialer()
        hook = Mock(side_effect=[RuntimeError("rejected"), None])
        director = Director(dialer, on_new_connection=hook)

        accepted = await director.serve_listener(listener, "tcp", "target:80")
        await client.close()
        await asyncio.wait_for(director.wait_bindings(), timeout=2)

        assert accepted == 2
        assert hook.call_count == 2
        assert first.closed
        assert dialer.dialed == [("tcp", "target:80")]
        assert second.closed

    async def test_async_hook_is_awaited(self):
        seen = []

        async def hook(stream):
            seen.append(stream)

        client, local = memory_pipe("conn")
        director = Director(FakeDialer(), on_new_connection=hook)

        await director.serve_listener(FakeListener([local]), "unix", "/tmp/target.sock")
        await client.close()
        await asyncio.wait_for(director.wait_bindings(), timeout=2)

        assert seen == [local]

    async def test_dial_failure_closes_accepted_stream(self):
        client, local = memory_pipe("conn")
        dialer = FakeDialer(fail_with=ChannelOpenFailedError("refused"))
        director = Director(dialer)

        accepted = await director.serve_listener(FakeListener([local]), "tcp", "target:80")
        await asyncio.wait_for(director.wait_bindings(), timeout=2)

        assert accepted == 1
        assert local.closed
        assert await client.read(10) == b""

    async def test_hook_result_replaces_accepted_stream(self):
        wrappers = []

        def hook(stream):
            wrapper = ReadRecordingStream(stream)
            wrappers.append(wrapper)
            return wrapper

        client, local = memory_pipe("conn")
        listener = QueueListener("test")
        cancel = asyncio.Event()
        director = Director(FakeDialer(), on_new_connection=hook)
        serving = asyncio.ensure_future(
            director.serve_listener(listener, "tcp", "target:80", cancel=cancel))

        listener.push(local)
        await client.write(b"hi")
        assert await asyncio.wait_for(client.read(1024), timeout=2) == b"hi"
        await client.close()
        await asyncio.wait_for(director.wait_bindings(), timeout=2)

        cancel.set()
        await listener.close()
        await asyncio.wait_for(serving, timeout=2)

        assert len(wrappers) == 1
        assert b"hi" in wrappers[0].reads
        assert local.closed

    async def test_async_hook_result_is_forwarded(self):
        wrappers = []

        async def hook(stream):
            wrapper = ReadRecordingStream(stream)
            wrappers.append(wrapper)
            return wrapper

        client, local = memory_pipe("conn")
        director = Director(FakeDialer(), on_new_connection=hook)

        await director.serve_listener(FakeListener([local]), "tcp", "target:80")
        await client.write(b"abc")
        assert await asyncio.wait_for(client.read(1024), timeout=2) == b"abc"
        await client.close()
        await asyncio.wait_for(director.wait_bindings(), timeout=2)

        assert b"abc" in wrappers[0].reads


class TestServeListenerCancel:
    """Cancelling serve_listener also stops the forwards it started."""

    async def test_cancel_stops_in_flight_binding(self):
        dialer = FakeDialer()
        director = Director(dialer)
        listener = QueueListener("test")
        cancel = asyncio.Event()
        serving = asyncio.ensure_future(
            director.serve_listener(listener, "tcp", "target:80", cancel=cancel))

        client, local = memory_pipe("conn")
        listener.push(local)
        await client.write(b"first")
        assert await asyncio.wait_for(client.read(1024), timeout=2) == b"first"

        cancel.set()
        await listener.close()
        await asyncio.wait_for(serving, timeout=2)
        assert director.active_bindings == 1

        # The next chunk unblocks the upstream read; the cancel check after it ends the binding
        await client.write(b"late")
        assert await asyncio.wait_for(director.wait_bindings(timeout=2), timeout=3)

        assert director.active_bindings == 0
        assert local.closed
        assert dialer.remote_ends[0].peer.closed

    async def test_wait_bindings_timeout(self):
        director = Director(FakeDialer())
        client, local = memory_pipe("idle")
        listener = FakeListener([local])

        await director.serve_listener(listener, "tcp", "target:80")

        assert await director.wait_bindings(timeout=0.05) is False
        assert director.active_bindings == 1

        await client.close()
        assert await director.wait_bindings(timeout=2)
