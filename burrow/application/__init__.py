"""
Application layer: client workflows composed from the core services and the
SSH transport.
"""

from .runner import (
    build_connection_config, open_connection, run_session, run_shell,
    run_exec, run_forward, run_reverse, serve
)

__all__ = [
    "build_connection_config",
    "open_connection",
    "run_session",
    "run_shell",
    "run_exec",
    "run_forward",
    "run_reverse",
    "serve",
]
