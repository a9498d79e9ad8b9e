"""
Core module containing the forwarding engine, session state machine and the
interfaces they depend on, independent of any concrete transport.
"""

from .exceptions import BurrowError
from .interfaces import IReader, IWriter, IDuplexStream, IListener, IDialer, ISessionChannel

__all__ = [
    "BurrowError",
    "IReader",
    "IWriter",
    "IDuplexStream",
    "IListener",
    "IDialer",
    "ISessionChannel",
]
