"""
Forwarding engine and session services.
"""

from .copier import copy_buffer, CopyOutcome, CopyResult, DEFAULT_BUFFER_SIZE
from .binding import ForwardBinding, BindingResult, Direction, bind, spawn_binding
from .director import Director
from .session import InteractiveSession, CommandResult, DEFAULT_TERM

__all__ = [
    "copy_buffer",
    "CopyOutcome",
    "CopyResult",
    "DEFAULT_BUFFER_SIZE",
    "ForwardBinding",
    "BindingResult",
    "Direction",
    "bind",
    "spawn_binding",
    "Director",
    "InteractiveSession",
    "CommandResult",
    "DEFAULT_TERM",
]
