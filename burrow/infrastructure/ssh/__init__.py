"""
SSH transport built on asyncssh.
"""

from .client import Connection, connect
from .config import ConnectionConfig
from .channel import AsyncSSHSessionChannel
from .streams import AsyncioDuplexStream, QueueListener, LocalDialer, listen_local
from .trust import HostTrustDecider, KnownHostsStore, FixedHostKey, ignore_host_key

__all__ = [
    "Connection",
    "connect",
    "ConnectionConfig",
    "AsyncSSHSessionChannel",
    "AsyncioDuplexStream",
    "QueueListener",
    "LocalDialer",
    "listen_local",
    "HostTrustDecider",
    "KnownHostsStore",
    "FixedHostKey",
    "ignore_host_key",
]
