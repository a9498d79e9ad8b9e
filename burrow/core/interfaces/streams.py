"""
Byte stream interfaces shared by the forwarding engine.

These contracts let the copy loop, bindings and the director operate on
local sockets, SSH sub-channels and test doubles alike.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class IReader(ABC):
    """A source of bytes. An empty result means end of input."""

    @abstractmethod
    async def read(self, n: int) -> bytes:
        """Read up to n bytes, returning b'' at end of input."""
        pass


class IWriter(ABC):
    """A sink of bytes."""

    @abstractmethod
    async def write(self, data: bytes) -> int:
        """Write data and return the number of bytes accepted."""
        pass


class IDuplexStream(IReader, IWriter):
    """A bidirectional, closable byte stream."""

    @abstractmethod
    async def close(self) -> None:
        """Close both directions. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once close() has been called."""
        pass

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        """Return transport-specific information, like peername."""
        return default


class IListener(ABC):
    """A source of inbound duplex streams."""

    @abstractmethod
    async def accept(self) -> IDuplexStream:
        """Wait for and return the next inbound connection."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Stop listening and release pending connections."""
        pass

    @property
    def address(self) -> Optional[str]:
        """Address the listener is bound to, when known."""
        return None


class IDialer(ABC):
    """Opens outbound duplex streams to a network address."""

    @abstractmethod
    async def dial(self, network: str, address: str) -> IDuplexStream:
        """
        Open a stream to address.

        Args:
            network: One of tcp, tcp4, tcp6 or unix
            address: host:port for tcp networks, a socket path for unix

        Returns:
            Connected duplex stream
        """
        pass
