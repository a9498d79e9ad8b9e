"""
Interactive session state machine.

An InteractiveSession drives one ISessionChannel through

    CREATED -> PTY_REQUESTED (optional) -> RUNNING -> TERMINATED

and owns the stream redirects, keepalive probing and terminal resize
tracking that belong to it.
"""

import asyncio
import logging
import signal as signal_module
import sys
from dataclasses import dataclass
from typing import Any, Coroutine, Dict, List, Optional, Set, Tuple, Union

from ..exceptions import (
    BurrowError, EnvRequestError, SessionError, SessionStateError
)
from ..interfaces.session import (
    DEFAULT_TERMINAL_MODES, ISessionChannel, PtyRequest, SessionState, Signal
)
from ..interfaces.streams import IReader, IWriter
from ...utils import terminal
from ...utils.stdio import BytesSink, FileWriter, NullSink, StdinReader
from .copier import CopyResult, copy_buffer

logger = logging.getLogger(__name__)

DEFAULT_TERM = "xterm-256color"
DEFAULT_RESIZE_POLL_INTERVAL = 1.0

TerminalSize = Tuple[int, int]


@dataclass
class CommandResult:
    """Exit status and captured output of a command."""
    exit_status: int
    output: bytes

    @property
    def text(self) -> str:
        return self.output.decode('utf-8', errors='replace')


class InteractiveSession:
    """
    One shell or command execution over a session channel.

    A session runs at most once: after shell() or exec() has been called,
    every further attempt raises SessionStateError without touching the
    channel.
    """

    def __init__(self, channel: ISessionChannel) -> None:
        self._channel = channel
        self._state = SessionState.CREATED
        self._stdin_source: Optional[IReader] = None
        self._stdout_sink: Optional[IWriter] = None
        self._stderr_sink: Optional[IWriter] = None
        self._output_tasks: List["asyncio.Task[CopyResult]"] = []
        self._input_task: Optional["asyncio.Task[None]"] = None
        self._background: Set["asyncio.Task[Any]"] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def channel(self) -> ISessionChannel:
        return self._channel

    def _require(self, operation: str, *states: SessionState) -> None:
        if self._state not in states:
            raise SessionStateError(
                f"Cannot {operation} in state {self._state.value}")

    def _require_open(self, operation: str) -> None:
        if self._state is SessionState.TERMINATED:
            raise SessionStateError(f"Cannot {operation}: session terminated")

    async def prepare_pty(self, term: str = DEFAULT_TERM, width: Optional[int] = None,
                          height: Optional[int] = None,
                          modes: Optional[Dict[int, int]] = None) -> None:
        """
        Request a pseudo-terminal.

        Width and height default to the size of the local stdout terminal.
        Echo is disabled and line speeds are set to 14400 baud unless modes
        are given.
        """
        self._require("request a pty", SessionState.CREATED)

        if width is None or height is None:
            columns, rows = terminal.get_terminal_size()
            width = columns if width is None else width
            height = rows if height is None else height

        self._state = SessionState.PTY_REQUESTED
        request = PtyRequest(term, width, height,
                             dict(modes if modes is not None else DEFAULT_TERMINAL_MODES))
        try:
            await self._channel.request_pty(request)
        except BaseException:
            self._state = SessionState.CREATED
            raise
        logger.debug(f"Requested pty {term} {width}x{height}")

    async def set_env(self, name: str, value: str) -> None:
        """Set one environment variable for the remote process."""
        self._require("set environment", SessionState.CREATED,
                      SessionState.PTY_REQUESTED)
        try:
            await self._channel.set_env(name, value)
        except SessionError:
            raise
        except Exception as e:
            raise EnvRequestError(f"Failed to set {name}: {e}", name) from e

    async def set_envs(self, envs: Dict[str, str]) -> None:
        """
        Set every variable in envs.

        All variables are attempted; if any failed, the last failure is
        raised.
        """
        last_error: Optional[BurrowError] = None
        for name, value in envs.items():
            try:
                await self.set_env(name, value)
            except BurrowError as e:
                logger.warning(f"Environment variable {name} rejected: {e}")
                last_error = e
        if last_error is not None:
            raise last_error

    def redirect_output(self, stdout: Optional[IWriter],
                        stderr: Optional[IWriter] = None) -> None:
        """Copy the remote stdout (and stderr) into local writers once started."""
        self._require("redirect output", SessionState.CREATED,
                      SessionState.PTY_REQUESTED)
        if self._stdout_sink is not None or self._stderr_sink is not None:
            raise SessionStateError("Output is already redirected")
        self._stdout_sink = stdout
        self._stderr_sink = stderr

    def redirect_input(self, stdin: IReader) -> None:
        """Copy a local reader into the remote stdin once started."""
        self._require("redirect input", SessionState.CREATED,
                      SessionState.PTY_REQUESTED)
        if self._stdin_source is not None:
            raise SessionStateError("Input is already redirected")
        self._stdin_source = stdin

    def redirect_standard_streams(self) -> None:
        """Wire the local stdin, stdout and stderr to the session."""
        self.redirect_output(FileWriter(sys.stdout), FileWriter(sys.stderr))
        self.redirect_input(StdinReader())

    async def shell(self) -> int:
        """Start an interactive shell and return its exit status."""
        self._claim()
        return await self._run(self._channel.start_shell())

    async def exec(self, command: str) -> int:
        """Run command and return its exit status."""
        self._claim()
        return await self._run(self._channel.start_exec(command))

    async def run_with_pty(self, command: str, term: str = DEFAULT_TERM) -> int:
        """Request a pty sized to the local terminal, then run command."""
        await self.prepare_pty(term)
        return await self.exec(command)

    async def output(self, command: str) -> CommandResult:
        """Run command and collect its stdout. Stderr is discarded."""
        sink = BytesSink()
        self.redirect_output(sink, NullSink())
        status = await self.exec(command)
        return CommandResult(status, sink.getvalue())

    async def combined_output(self, command: str) -> CommandResult:
        """Run command and collect stdout and stderr together."""
        sink = BytesSink()
        self.redirect_output(sink, sink)
        status = await self.exec(command)
        return CommandResult(status, sink.getvalue())

    def _claim(self) -> None:
        if self._state in (SessionState.RUNNING, SessionState.TERMINATED):
            raise SessionStateError(
                f"Session already started ({self._state.value})")
        self._state = SessionState.RUNNING

    async def _run(self, start: Coroutine[Any, Any, None]) -> int:
        try:
            await start
            self._start_redirects()
            status = await self._channel.wait()
            for result in await asyncio.gather(*self._output_tasks):
                if result.error is not None:
                    logger.warning(f"Output copy ended with error: {result.error}")
            logger.debug(f"Remote process exited with status {status}")
            return status
        finally:
            self._state = SessionState.TERMINATED
            for task in self._output_tasks:
                if not task.done():
                    task.cancel()
            if self._input_task is not None and not self._input_task.done():
                self._input_task.cancel()

    def _start_redirects(self) -> None:
        stdout = self._stdout_sink if self._stdout_sink is not None else NullSink()
        stderr = self._stderr_sink if self._stderr_sink is not None else NullSink()
        self._output_tasks = [
            asyncio.ensure_future(copy_buffer(stdout, self._channel.stdout)),
            asyncio.ensure_future(copy_buffer(stderr, self._channel.stderr)),
        ]
        if self._stdin_source is not None:
            self._input_task = asyncio.ensure_future(
                self._pump_input(self._stdin_source))

    async def _pump_input(self, source: IReader) -> None:
        try:
            result = await copy_buffer(self._channel.stdin, source)
            if result.error is not None:
                logger.warning(f"Input copy ended with error: {result.error}")
                return
            try:
                await self._channel.write_eof()
            except Exception as e:
                logger.debug(f"Failed to send EOF: {e}")
        finally:
            self._release_input()

    def _release_input(self) -> None:
        if isinstance(self._stdin_source, StdinReader):
            self._stdin_source.close()

    def keep_alive(self, interval: float, max_failures: int = 0) -> "asyncio.Task[None]":
        """
        Send a keepalive request every interval seconds.

        With max_failures > 0 the task stops after that many consecutive
        failed sends; otherwise it runs until cancelled by the
        caller. Ticks where the channel sends nothing (before the remote
        process starts) do not count against the budget.
        """
        if interval <= 0:
            raise ValueError(f"Keepalive interval must be positive, got {interval}")
        self._require_open("start keepalive")
        return self._spawn(self._keep_alive_loop(interval, max_failures))

    async def _keep_alive_loop(self, interval: float, max_failures: int) -> None:
        remaining = max_failures
        while True:
            await asyncio.sleep(interval)
            try:
                ok = await self._channel.send_keepalive()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"Keepalive request failed: {e}")
                ok = False

            if ok is None:
                # Nothing was sent: not started yet, or unsupported
                continue
            if ok:
                remaining = max_failures
                continue

            logger.warning("Keepalive not acknowledged")
            if max_failures > 0:
                remaining -= 1
                if remaining <= 0:
                    logger.warning(
                        f"Stopping keepalive after {max_failures} consecutive failures")
                    return

    async def send_window_change(self, fd: Optional[int] = None,
                                 old_size: Optional[TerminalSize] = None) -> TerminalSize:
        """
        Measure the local terminal and send window-change if it differs
        from old_size.

        Returns:
            The measured (columns, rows)
        """
        self._require_open("send window change")
        size = terminal.get_terminal_size(fd)
        if size != old_size:
            await self._channel.window_change(*size)
            logger.debug(f"Window changed to {size[0]}x{size[1]}")
        return size

    async def auto_resize(self, fd: Optional[int] = None,
                          poll_interval: Optional[float] = None) -> "asyncio.Task[None]":
        """
        Keep the remote terminal size in sync with the local one.

        The size is synced once before this returns; that first sync raises
        on failure. Afterwards the task follows SIGWINCH where available, or
        polls every poll_interval seconds.
        """
        size = await self.send_window_change(fd)
        use_signal = poll_interval is None and terminal.has_resize_signal()
        if poll_interval is None:
            poll_interval = DEFAULT_RESIZE_POLL_INTERVAL
        return self._spawn(self._resize_loop(fd, size, poll_interval, use_signal))

    async def _resize_loop(self, fd: Optional[int], size: TerminalSize,
                           poll_interval: float, use_signal: bool) -> None:
        if use_signal:
            loop = asyncio.get_running_loop()
            changed = asyncio.Event()
            try:
                loop.add_signal_handler(signal_module.SIGWINCH, changed.set)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug(f"SIGWINCH unavailable, polling instead: {e}")
            else:
                try:
                    while True:
                        await changed.wait()
                        changed.clear()
                        size = await self._resize_step(fd, size)
                finally:
                    loop.remove_signal_handler(signal_module.SIGWINCH)

        while True:
            await asyncio.sleep(poll_interval)
            size = await self._resize_step(fd, size)

    async def _resize_step(self, fd: Optional[int], size: TerminalSize) -> TerminalSize:
        try:
            return await self.send_window_change(fd, size)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Window change failed: {e}")
            return size

    async def send_signal(self, signal: Union[Signal, str]) -> None:
        """Deliver a signal to the running remote process."""
        self._require("send signal", SessionState.RUNNING)
        name = signal.value if isinstance(signal, Signal) else str(signal)
        await self._channel.send_signal(name)

    async def close(self) -> None:
        """Close the channel. The session becomes TERMINATED."""
        self._state = SessionState.TERMINATED
        if self._input_task is not None and not self._input_task.done():
            self._input_task.cancel()
        self._release_input()
        try:
            await self._channel.close()
        except Exception as e:
            logger.debug(f"Error closing session channel: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> "asyncio.Task[None]":
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def __aenter__(self) -> "InteractiveSession":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
