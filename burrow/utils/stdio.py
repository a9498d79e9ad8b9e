"""
Adapters exposing local files and buffers as IReader / IWriter.
"""

import asyncio
import io
import logging
import os
import sys
from typing import IO, Any, Optional

from ..core.interfaces.streams import IReader, IWriter
from .terminal import IS_WINDOWS

logger = logging.getLogger(__name__)

# Seconds between retries when a non-blocking descriptor is full
WRITE_RETRY_DELAY = 0.01


def _fileno(file: Any) -> Optional[int]:
    try:
        return file.fileno()
    except (AttributeError, OSError, ValueError):
        return None


class FileWriter(IWriter):
    """
    Writes to a binary or text file object, flushing after every chunk.

    Files backed by a descriptor are written with os.write so that a
    descriptor left non-blocking (a terminal shared with an attached
    StdinReader) is retried instead of failing the copy.
    """

    def __init__(self, file: IO[Any]) -> None:
        self._file = getattr(file, 'buffer', file)
        self._fd = _fileno(self._file)

    async def write(self, data: bytes) -> int:
        if self._fd is None:
            self._file.write(data)
            self._file.flush()
            return len(data)

        await self._flush_pending()
        view = memoryview(data)
        sent = 0
        while sent < len(view):
            try:
                sent += os.write(self._fd, view[sent:])
            except BlockingIOError:
                await asyncio.sleep(WRITE_RETRY_DELAY)
        return len(data)

    async def _flush_pending(self) -> None:
        # Text already buffered by print() must go out before our bytes
        while True:
            try:
                self._file.flush()
                return
            except BlockingIOError:
                await asyncio.sleep(WRITE_RETRY_DELAY)


class BytesSink(IWriter):
    """Collects written bytes in memory."""

    def __init__(self) -> None:
        self._buffer = io.BytesIO()

    async def write(self, data: bytes) -> int:
        return self._buffer.write(data)

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()


class NullSink(IWriter):
    """Discards everything written to it."""

    async def write(self, data: bytes) -> int:
        return len(data)


class StdinReader(IReader):
    """
    Reads the local standard input without blocking the event loop.

    Pipes and terminals are attached to the loop with connect_read_pipe,
    which switches the descriptor to non-blocking mode; close() detaches
    and restores the original mode. Where attaching is unavailable
    (Windows, regular files) reads are pushed to the default executor.
    """

    def __init__(self, file: Optional[IO[Any]] = None) -> None:
        self._file = file if file is not None else sys.stdin
        self._reader: Optional[asyncio.StreamReader] = None
        self._transport: Optional[asyncio.ReadTransport] = None
        self._saved_blocking: Optional[bool] = None
        self._use_executor = IS_WINDOWS
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, n: int) -> bytes:
        if self._closed:
            return b""

        if not self._use_executor and self._reader is None:
            try:
                await self._attach()
            except (ValueError, OSError, NotImplementedError) as e:
                logger.debug(f"Falling back to executor reads for stdin: {e}")
                self._restore_blocking()
                self._use_executor = True

        if self._use_executor:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, os.read, self._file.fileno(), n)

        assert self._reader is not None
        return await self._reader.read(n)

    def close(self) -> None:
        """Detach from the event loop and restore the descriptor's blocking mode."""
        if self._closed:
            return
        self._closed = True
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._restore_blocking()

    async def _attach(self) -> None:
        fd = self._file.fileno()
        self._saved_blocking = os.get_blocking(fd)

        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        # Closing the transport closes the pipe object, so give it a duplicate
        pipe = os.fdopen(os.dup(fd), 'rb', buffering=0)
        try:
            transport, _ = await loop.connect_read_pipe(lambda: protocol, pipe)
        except BaseException:
            pipe.close()
            raise
        self._transport = transport
        self._reader = reader

    def _restore_blocking(self) -> None:
        if self._saved_blocking is None:
            return
        try:
            os.set_blocking(self._file.fileno(), self._saved_blocking)
        except (OSError, ValueError) as e:
            logger.debug(f"Cannot restore stdin blocking mode: {e}")
        self._saved_blocking = None
