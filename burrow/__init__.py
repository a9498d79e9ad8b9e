"""
Burrow - SSH client with interactive sessions and bidirectional stream forwarding.

This package provides a cancellable forwarding engine that binds local
streams to SSH sub-channels, an interactive session state machine, and
known_hosts based host trust on top of asyncssh.
"""

__version__ = "0.3.0"

# Public API exports
from .core.exceptions import BurrowError
from .core.services.copier import copy_buffer, CopyOutcome, CopyResult
from .core.services.binding import bind, spawn_binding, BindingResult
from .core.services.director import Director
from .core.services.session import InteractiveSession, CommandResult
from .infrastructure.ssh.client import Connection, connect
from .infrastructure.ssh.config import ConnectionConfig
from .infrastructure.ssh.trust import HostTrustDecider

__all__ = [
    "BurrowError",
    "copy_buffer",
    "CopyOutcome",
    "CopyResult",
    "bind",
    "spawn_binding",
    "BindingResult",
    "Director",
    "InteractiveSession",
    "CommandResult",
    "Connection",
    "connect",
    "ConnectionConfig",
    "HostTrustDecider",
]
