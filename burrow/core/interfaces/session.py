"""
Session channel interfaces.

An ISessionChannel is the remote side of one interactive session: it carries
the pty, env, shell/exec and signalling requests and exposes the process
streams once started.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .streams import IReader, IWriter

# Terminal mode opcodes (RFC 4254 section 8)
ECHO = 53
TTY_OP_ISPEED = 128
TTY_OP_OSPEED = 129

DEFAULT_TERMINAL_MODES: Dict[int, int] = {
    ECHO: 0,
    TTY_OP_ISPEED: 14400,
    TTY_OP_OSPEED: 14400,
}


class SessionState(Enum):
    """Interactive session lifecycle states."""
    CREATED = "created"
    PTY_REQUESTED = "pty_requested"
    RUNNING = "running"
    TERMINATED = "terminated"


class Signal(str, Enum):
    """Signal names deliverable over a session channel."""
    ABRT = "ABRT"
    ALRM = "ALRM"
    FPE = "FPE"
    HUP = "HUP"
    ILL = "ILL"
    INT = "INT"
    KILL = "KILL"
    PIPE = "PIPE"
    QUIT = "QUIT"
    SEGV = "SEGV"
    TERM = "TERM"
    USR1 = "USR1"
    USR2 = "USR2"


@dataclass
class PtyRequest:
    """Pseudo-terminal parameters."""
    term: str
    width: int
    height: int
    modes: Optional[Dict[int, int]] = None


class ISessionChannel(ABC):
    """Interface for the remote end of an interactive session."""

    @abstractmethod
    async def request_pty(self, request: PtyRequest) -> None:
        """Request a pseudo-terminal for the session."""
        pass

    @abstractmethod
    async def set_env(self, name: str, value: str) -> None:
        """Request an environment variable for the session."""
        pass

    @abstractmethod
    async def start_shell(self) -> None:
        """Start the user's login shell."""
        pass

    @abstractmethod
    async def start_exec(self, command: str) -> None:
        """Start a single command."""
        pass

    @property
    @abstractmethod
    def stdin(self) -> IWriter:
        """Writer for the remote process input."""
        pass

    @property
    @abstractmethod
    def stdout(self) -> IReader:
        """Reader for the remote process output."""
        pass

    @property
    @abstractmethod
    def stderr(self) -> IReader:
        """Reader for the remote process error output."""
        pass

    @abstractmethod
    async def write_eof(self) -> None:
        """Signal end of input to the remote process."""
        pass

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the remote process and return its exit status."""
        pass

    @abstractmethod
    async def send_keepalive(self) -> Optional[bool]:
        """
        Send a keepalive request and return whether the remote replied.

        None means no request was sent (the session has not started, or
        the transport cannot issue one) and the result should be ignored.
        """
        pass

    @abstractmethod
    async def window_change(self, width: int, height: int) -> None:
        """Notify the remote of a terminal size change."""
        pass

    @abstractmethod
    async def send_signal(self, signal: str) -> None:
        """Deliver a named signal to the remote process."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the channel."""
        pass
