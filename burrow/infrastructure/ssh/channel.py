"""
asyncssh-backed session channel.

asyncssh opens the session channel and issues the pty, env and shell/exec
requests in a single create_process() call. Pty and env settings are
therefore buffered here until the session is started; a pty rejection
surfaces as PtyRequestError from start_shell()/start_exec().
"""

import logging
from typing import Any, Dict, Optional

import asyncssh

from ...core.exceptions import (
    ChannelOpenFailedError, ConnectionClosedError, PtyRequestError,
    SessionStateError
)
from ...core.interfaces.session import ISessionChannel, PtyRequest
from ...core.interfaces.streams import IReader, IWriter

logger = logging.getLogger(__name__)

KEEPALIVE_REQUEST = b'keepalive@openssh.com'


class _ProcessReader(IReader):
    def __init__(self, reader: Any) -> None:
        self._reader = reader

    async def read(self, n: int) -> bytes:
        return await self._reader.read(n)


class _ProcessWriter(IWriter):
    def __init__(self, writer: Any) -> None:
        self._writer = writer

    async def write(self, data: bytes) -> int:
        self._writer.write(data)
        await self._writer.drain()
        return len(data)


class AsyncSSHSessionChannel(ISessionChannel):
    """Session channel over an asyncssh client connection."""

    def __init__(self, conn: asyncssh.SSHClientConnection) -> None:
        self._conn = conn
        self._pty: Optional[PtyRequest] = None
        self._env: Dict[str, str] = {}
        self._process: Optional[asyncssh.SSHClientProcess] = None
        self._closed = False
        self._keepalive_unsupported = False

    @property
    def started(self) -> bool:
        return self._process is not None

    def _require_not_started(self, operation: str) -> None:
        if self._process is not None:
            raise SessionStateError(f"Cannot {operation} after the session started")

    def _require_process(self, operation: str) -> asyncssh.SSHClientProcess:
        if self._process is None:
            raise SessionStateError(f"Cannot {operation} before the session started")
        return self._process

    async def request_pty(self, request: PtyRequest) -> None:
        self._require_not_started("request a pty")
        self._pty = request

    async def set_env(self, name: str, value: str) -> None:
        self._require_not_started("set environment")
        self._env[name] = value

    async def start_shell(self) -> None:
        await self._start(None)

    async def start_exec(self, command: str) -> None:
        await self._start(command)

    async def _start(self, command: Optional[str]) -> None:
        self._require_not_started("start")
        if self._closed:
            raise SessionStateError("Session channel is closed")
        if self._conn.is_closing():
            raise ConnectionClosedError("Connection is closed")

        kwargs: Dict[str, Any] = {'encoding': None}
        if self._env:
            kwargs['env'] = dict(self._env)

        if self._pty is not None:
            kwargs.update(
                request_pty='force',
                term_type=self._pty.term,
                term_size=(self._pty.width, self._pty.height),
                term_modes=self._pty.modes or {},
            )
        else:
            kwargs['request_pty'] = False

        try:
            self._process = await self._conn.create_process(command, **kwargs)
        except asyncssh.ChannelOpenError as e:
            if self._pty is not None and 'pty' in (e.reason or '').lower():
                raise PtyRequestError(f"Remote rejected pty request: {e.reason}") from e
            raise ChannelOpenFailedError(f"Failed to start session: {e.reason}") from e

        logger.debug(f"Session started: {command if command else 'shell'}")

    @property
    def stdin(self) -> IWriter:
        return _ProcessWriter(self._require_process("access stdin").stdin)

    @property
    def stdout(self) -> IReader:
        return _ProcessReader(self._require_process("access stdout").stdout)

    @property
    def stderr(self) -> IReader:
        return _ProcessReader(self._require_process("access stderr").stderr)

    async def write_eof(self) -> None:
        self._require_process("send EOF").stdin.write_eof()

    async def wait(self) -> int:
        process = self._require_process("wait")
        result = await process.wait(check=False)
        if result.returncode is None:
            return -1
        return result.returncode

    async def send_keepalive(self) -> Optional[bool]:
        if self._process is None:
            return None
        channel = self._process.channel
        if channel.is_closing():
            return False
        # asyncssh has no public API for a channel request with a reply
        try:
            make_request = channel._make_request
        except AttributeError:
            if not self._keepalive_unsupported:
                self._keepalive_unsupported = True
                logger.warning("This asyncssh version cannot send keepalive requests")
            return None
        # A failure reply still proves the peer is alive
        await make_request(KEEPALIVE_REQUEST)
        return True

    async def window_change(self, width: int, height: int) -> None:
        if self._process is None:
            if self._pty is not None:
                self._pty.width = width
                self._pty.height = height
            return
        self._process.change_terminal_size(width, height)

    async def send_signal(self, signal: str) -> None:
        self._require_process("send signal").send_signal(signal)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._process is not None:
            self._process.close()
            await self._process.wait_closed()
