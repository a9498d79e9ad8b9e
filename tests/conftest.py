"""
Shared test doubles for the forwarding engine and session tests.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from burrow.core.exceptions import (
    ListenerClosedError, PtyRequestError, StreamClosedError
)
from burrow.core.interfaces.session import ISessionChannel, PtyRequest
from burrow.core.interfaces.streams import (
    IDialer, IDuplexStream, IListener, IReader, IWriter
)


class MemoryStream(IDuplexStream):
    """One end of an in-memory duplex pipe."""

    def __init__(self, name: str = "stream") -> None:
        self.name = name
        self.peer: Optional["MemoryStream"] = None
        self.close_count = 0
        self._inbox: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self._buffer = b""
        self._eof = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, data: bytes) -> None:
        self._inbox.put_nowait(data)

    def feed_eof(self) -> None:
        self._inbox.put_nowait(None)

    async def read(self, n: int) -> bytes:
        if not self._buffer:
            if self._eof or self._closed:
                return b""
            item = await self._inbox.get()
            if item is None:
                self._eof = True
                return b""
            self._buffer = item
        chunk, self._buffer = self._buffer[:n], self._buffer[n:]
        return chunk

    async def write(self, data: bytes) -> int:
        if self._closed:
            raise StreamClosedError(f"{self.name} is closed")
        if self.peer is not None:
            self.peer.feed(data)
        return len(data)

    async def close(self) -> None:
        self.close_count += 1
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(None)
        if self.peer is not None:
            self.peer.feed_eof()


def memory_pipe(name: str = "pipe") -> Tuple[MemoryStream, MemoryStream]:
    """Two connected MemoryStream ends."""
    a = MemoryStream(f"{name}-a")
    b = MemoryStream(f"{name}-b")
    a.peer = b
    b.peer = a
    return a, b


async def read_all(stream: IReader, size: int = 1024) -> bytes:
    data = b""
    while True:
        chunk = await stream.read(size)
        if not chunk:
            return data
        data += chunk


class ChunkReader(IReader):
    """Yields preset chunks, then EOF or an error."""

    def __init__(self, chunks: Sequence[bytes], error: Optional[BaseException] = None,
                 on_read: Optional[Callable[[int], None]] = None) -> None:
        self._chunks = list(chunks)
        self._error = error
        self._on_read = on_read
        self.reads = 0

    async def read(self, n: int) -> bytes:
        self.reads += 1
        if self._on_read is not None:
            self._on_read(self.reads)
        if self._chunks:
            return self._chunks.pop(0)[:n]
        if self._error is not None:
            raise self._error
        return b""


class RecordingWriter(IWriter):
    """Collects writes; result() may override the reported count."""

    def __init__(self, result: Optional[Callable[[bytes], Any]] = None,
                 error: Optional[BaseException] = None) -> None:
        self.data = b""
        self.writes: List[bytes] = []
        self._result = result
        self._error = error

    async def write(self, data: bytes) -> int:
        if self._error is not None:
            raise self._error
        self.writes.append(data)
        self.data += data
        if self._result is not None:
            return self._result(data)
        return len(data)


class FakeListener(IListener):
    """Hands out preset streams, then fails accept()."""

    def __init__(self, streams: Sequence[IDuplexStream],
                 error: Optional[BaseException] = None) -> None:
        self._streams = list(streams)
        self._error = error or ListenerClosedError("no more connections")
        self.accept_calls = 0
        self.close_count = 0

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def accept(self) -> IDuplexStream:
        self.accept_calls += 1
        if self._streams:
            return self._streams.pop(0)
        raise self._error

    async def close(self) -> None:
        self.close_count += 1


class FakeDialer(IDialer):
    """
    Dials in-memory echo targets.

    Every dial returns one end of a new pipe and runs an echo loop on the
    other end, unless fail_with is set.
    """

    def __init__(self, fail_with: Optional[BaseException] = None, echo: bool = True) -> None:
        self.fail_with = fail_with
        self.echo = echo
        self.dialed: List[Tuple[str, str]] = []
        self.remote_ends: List[MemoryStream] = []
        self._tasks: List["asyncio.Task[None]"] = []

    async def dial(self, network: str, address: str) -> IDuplexStream:
        self.dialed.append((network, address))
        if self.fail_with is not None:
            raise self.fail_with
        near, far = memory_pipe(f"dial-{len(self.dialed)}")
        self.remote_ends.append(far)
        if self.echo:
            self._tasks.append(asyncio.ensure_future(self._echo(far)))
        return near

    async def _echo(self, stream: MemoryStream) -> None:
        while True:
            data = await stream.read(1024)
            if not data:
                await stream.close()
                return
            try:
                await stream.write(data)
            except StreamClosedError:
                return


class FakeSessionChannel(ISessionChannel):
    """Scriptable session channel recording every request."""

    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", exit_status: int = 0,
                 keepalive_results: Optional[List[Optional[bool]]] = None,
                 fail_pty: bool = False, rejected_env: Sequence[str] = ()) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self.pty: Optional[PtyRequest] = None
        self.env: Dict[str, str] = {}
        self.stdin_data = b""
        self.eof_sent = False
        self.window_changes: List[Tuple[int, int]] = []
        self.signals: List[str] = []
        self.keepalive_count = 0
        self.closed = False
        self.exit_status = exit_status
        self.exited = asyncio.Event()
        self._stdout = stdout
        self._stderr = stderr
        self._keepalive_results = list(keepalive_results or [])
        self._fail_pty = fail_pty
        self._rejected_env = set(rejected_env)
        self._started = False

    async def request_pty(self, request: PtyRequest) -> None:
        self.calls.append(("pty", request.term, request.width, request.height))
        if self._fail_pty:
            raise PtyRequestError("pty rejected")
        self.pty = request

    async def set_env(self, name: str, value: str) -> None:
        self.calls.append(("env", name, value))
        if name in self._rejected_env:
            raise ValueError(f"{name} rejected")
        self.env[name] = value

    async def start_shell(self) -> None:
        self.calls.append(("shell",))
        self._started = True

    async def start_exec(self, command: str) -> None:
        self.calls.append(("exec", command))
        self._started = True

    @property
    def stdin(self) -> IWriter:
        channel = self

        class _Stdin(IWriter):
            async def write(self, data: bytes) -> int:
                channel.stdin_data += data
                return len(data)

        return _Stdin()

    @property
    def stdout(self) -> IReader:
        return ChunkReader([self._stdout] if self._stdout else [])

    @property
    def stderr(self) -> IReader:
        return ChunkReader([self._stderr] if self._stderr else [])

    async def write_eof(self) -> None:
        self.eof_sent = True

    async def wait(self) -> int:
        if not self.exited.is_set():
            self.exited.set()
        # Let redirect tasks run before the exit status is returned
        await asyncio.sleep(0)
        return self.exit_status

    async def send_keepalive(self) -> Optional[bool]:
        self.keepalive_count += 1
        if self._keepalive_results:
            return self._keepalive_results.pop(0)
        return True

    async def window_change(self, width: int, height: int) -> None:
        self.window_changes.append((width, height))

    async def send_signal(self, signal: str) -> None:
        self.signals.append(signal)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def session_channel() -> FakeSessionChannel:
    return FakeSessionChannel(stdout=b"hello\n", stderr=b"oops\n", exit_status=0)
