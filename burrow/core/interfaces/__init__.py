"""
Core interfaces defining the contracts between the forwarding engine and
its transports.
"""

from .streams import IReader, IWriter, IDuplexStream, IListener, IDialer
from .session import (
    ISessionChannel, PtyRequest, SessionState, Signal,
    DEFAULT_TERMINAL_MODES, ECHO, TTY_OP_ISPEED, TTY_OP_OSPEED
)

__all__ = [
    "IReader",
    "IWriter",
    "IDuplexStream",
    "IListener",
    "IDialer",
    "ISessionChannel",
    "PtyRequest",
    "SessionState",
    "Signal",
    "DEFAULT_TERMINAL_MODES",
    "ECHO",
    "TTY_OP_ISPEED",
    "TTY_OP_OSPEED",
]
