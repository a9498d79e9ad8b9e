"""
Utility helpers for terminals and addresses.
"""

from .net import split_host_port, join_host_port, validate_network
from .terminal import get_terminal_size, make_raw, has_resize_signal, IS_WINDOWS

__all__ = [
    "split_host_port",
    "join_host_port",
    "validate_network",
    "get_terminal_size",
    "make_raw",
    "has_resize_signal",
    "IS_WINDOWS",
]
