"""
Stream adapters for asyncio and asyncssh.

AsyncioDuplexStream wraps any (reader, writer) pair with the asyncio stream
API (asyncio.StreamReader/StreamWriter and asyncssh.SSHReader/SSHWriter
alike). QueueListener turns a server callback into an accept() loop.
"""

import asyncio
import logging
from typing import Any, Optional, Tuple

from ...core.exceptions import ListenerClosedError, StreamClosedError
from ...core.interfaces.streams import IDialer, IDuplexStream, IListener
from ...utils.net import TCP_NETWORKS, join_host_port, split_host_port, validate_network

logger = logging.getLogger(__name__)


class AsyncioDuplexStream(IDuplexStream):
    """Duplex stream over an asyncio-style reader/writer pair."""

    def __init__(self, reader: Any, writer: Any) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, n: int) -> bytes:
        if self._closed:
            return b''
        return await self._reader.read(n)

    async def write(self, data: bytes) -> int:
        if self._closed:
            raise StreamClosedError("write on closed stream")
        self._writer.write(data)
        await self._writer.drain()
        return len(data)

    async def write_eof(self) -> None:
        if self._writer.can_write_eof():
            self._writer.write_eof()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        wait_closed = getattr(self._writer, 'wait_closed', None)
        if wait_closed is None:
            return
        try:
            await wait_closed()
        except Exception as e:
            logger.debug(f"Error waiting for stream close: {e}")

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        return self._writer.get_extra_info(name, default)


class QueueListener(IListener):
    """
    Listener fed by a server callback.

    The server pushes each inbound pair with push(); accept() pops them.
    Closing the listener stops the underlying server, closes any stream
    not yet accepted and makes every pending accept() raise
    ListenerClosedError.
    """

    def __init__(self, address: Optional[str] = None) -> None:
        self._queue: "asyncio.Queue[Optional[IDuplexStream]]" = asyncio.Queue()
        self._server: Any = None
        self._closed = False
        self._address = address

    @property
    def address(self) -> Optional[str]:
        return self._address

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, server: Any, address: Optional[str] = None) -> None:
        self._server = server
        if address is not None:
            self._address = address

    def push(self, stream: IDuplexStream) -> None:
        if self._closed:
            asyncio.ensure_future(stream.close())
            return
        self._queue.put_nowait(stream)

    def push_pair(self, reader: Any, writer: Any) -> None:
        self.push(AsyncioDuplexStream(reader, writer))

    async def accept(self) -> IDuplexStream:
        if self._closed:
            raise ListenerClosedError("listener closed")
        stream = await self._queue.get()
        if stream is None:
            # Wake the next waiter too
            self._queue.put_nowait(None)
            raise ListenerClosedError("listener closed")
        return stream

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        pending = []
        while not self._queue.empty():
            stream = self._queue.get_nowait()
            if stream is not None:
                pending.append(stream)
        self._queue.put_nowait(None)

        for stream in pending:
            await stream.close()

        if self._server is not None:
            self._server.close()
            # asyncio.Server.wait_closed also waits for active connections
            if not isinstance(self._server, asyncio.AbstractServer):
                try:
                    await self._server.wait_closed()
                except Exception as e:
                    logger.debug(f"Error waiting for listener close: {e}")
        logger.debug(f"Listener {self._address} closed")


async def open_local_connection(network: str, address: str) -> Tuple[Any, Any]:
    validate_network(network)
    if network in TCP_NETWORKS:
        host, port = split_host_port(address)
        return await asyncio.open_connection(host, port)
    return await asyncio.open_unix_connection(address)


class LocalDialer(IDialer):
    """Dials local TCP or Unix-domain targets."""

    async def dial(self, network: str, address: str) -> IDuplexStream:
        reader, writer = await open_local_connection(network, address)
        return AsyncioDuplexStream(reader, writer)


async def listen_local(network: str, address: str) -> QueueListener:
    """Listen on a local TCP or Unix-domain address."""
    validate_network(network)
    listener = QueueListener(address)

    if network in TCP_NETWORKS:
        host, port = split_host_port(address)
        server = await asyncio.start_server(listener.push_pair, host, port)
        sockets = server.sockets or []
        if sockets:
            bound = sockets[0].getsockname()
            listener.attach(server, join_host_port(bound[0], bound[1]))
        else:
            listener.attach(server)
    else:
        server = await asyncio.start_unix_server(listener.push_pair, address)
        listener.attach(server)

    logger.info(f"Listening on {network}://{listener.address}")
    return listener
