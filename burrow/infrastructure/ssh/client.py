"""
Authenticated connection to a remote host.

connect() performs the handshake through asyncssh and returns a Connection,
the single owner of the transport. Sessions, dialed streams and remote
listeners are all opened from it.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import asyncssh
from asyncssh.packet import SSHPacket

from ...core.exceptions import (
    AuthenticationError, ChannelOpenFailedError, ConnectionClosedError,
    HostTrustError, SSHConnectError
)
from ...core.interfaces.streams import IDialer, IDuplexStream, IListener
from ...core.services.session import InteractiveSession
from ...utils.net import TCP_NETWORKS, join_host_port, split_host_port, validate_network
from .channel import AsyncSSHSessionChannel
from .config import ConnectionConfig
from .streams import AsyncioDuplexStream, QueueListener

logger = logging.getLogger(__name__)

DEFAULT_PORT = 22

DIRECT_TCPIP = "direct-tcpip"
DIRECT_STREAMLOCAL = "direct-streamlocal@openssh.com"


class _BurrowClient(asyncssh.SSHClient):
    """asyncssh client hooks bridging to the configured callbacks."""

    def __init__(self, config: ConnectionConfig) -> None:
        super().__init__()
        self._config = config
        self.trust_error: Optional[HostTrustError] = None
        # asyncssh sends config.password itself before asking us
        self.password_attempts = 0 if config.password is None else 1

    def validate_host_public_key(self, host: str, addr: str, port: int,
                                 key: asyncssh.SSHKey) -> bool:
        if self._config.host_key_callback is None:
            return True
        try:
            self._config.host_key_callback(host, join_host_port(addr, port), key)
        except HostTrustError as e:
            self.trust_error = e
            logger.error(f"Host key rejected: {e}")
            return False
        return True

    def auth_banner_received(self, msg: str, lang: str) -> None:
        if self._config.banner_callback is not None:
            self._config.banner_callback(msg)

    async def password_auth_requested(self) -> Optional[str]:
        callback = self._config.password_callback
        retries = self._config.password_retries
        if callback is None or 0 < retries <= self.password_attempts:
            return None
        if self.password_attempts:
            logger.warning("Password rejected, retrying")
        self.password_attempts += 1
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, callback)

    def kbdint_auth_requested(self) -> Optional[str]:
        if self._config.challenge_callback is None:
            return None
        # Empty submethods lets the server pick
        return ''

    async def kbdint_challenge_received(
            self, name: str, instructions: str, lang: str,
            prompts: Sequence[Tuple[str, bool]]) -> Optional[List[str]]:
        callback = self._config.challenge_callback
        if callback is None:
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, callback, name, instructions, list(prompts))


class Connection(IDialer):
    """
    An established, authenticated connection.

    All primitives may be used concurrently. After close() every primitive
    raises ConnectionClosedError.
    """

    def __init__(self, conn: asyncssh.SSHClientConnection, address: str) -> None:
        self._conn = conn
        self._address = address
        self._closed = False

    @property
    def address(self) -> str:
        return self._address

    @property
    def closed(self) -> bool:
        return self._closed or self._conn.is_closing()

    @property
    def algorithms(self) -> Dict[str, Any]:
        """Negotiated transport algorithms."""
        return {
            'server_version': self._conn.get_extra_info('server_version'),
            'kex': self._conn.get_extra_info('kex_alg'),
            'host_key': self._conn.get_extra_info('server_host_key_alg'),
            'cipher_cs': self._conn.get_extra_info('send_cipher'),
            'cipher_sc': self._conn.get_extra_info('recv_cipher'),
            'mac_cs': self._conn.get_extra_info('send_mac'),
            'mac_sc': self._conn.get_extra_info('recv_mac'),
        }

    def _check_open(self) -> None:
        if self.closed:
            raise ConnectionClosedError(f"Connection to {self._address} is closed")

    async def open_session(self) -> InteractiveSession:
        """Create a new interactive session."""
        self._check_open()
        return InteractiveSession(AsyncSSHSessionChannel(self._conn))

    async def dial(self, network: str, address: str,
                   origin: Optional[str] = None) -> IDuplexStream:
        """
        Open a stream to address through the remote host.

        Args:
            network: tcp, tcp4, tcp6 or unix
            address: host:port, or a socket path on the remote for unix
            origin: Originator host:port reported to the remote (tcp only)
        """
        self._check_open()
        validate_network(network)

        try:
            if network in TCP_NETWORKS:
                host, port = split_host_port(address)
                kwargs = {}
                if origin:
                    orig_host, orig_port = split_host_port(origin)
                    kwargs = {'orig_host': orig_host, 'orig_port': orig_port}
                reader, writer = await self._conn.open_connection(host, port, **kwargs)
            else:
                reader, writer = await self._conn.open_unix_connection(address)
        except asyncssh.ChannelOpenError as e:
            raise ChannelOpenFailedError(
                f"Remote refused {network}://{address}: {e.reason}", network, address) from e

        logger.debug(f"Opened {network}://{address} via {self._address}")
        return AsyncioDuplexStream(reader, writer)

    async def open_channel(self, name: str, payload: bytes = b'') -> IDuplexStream:
        """
        Open a channel by its SSH channel type and type-specific payload.

        Stream channel types are supported: "direct-tcpip" (host, port,
        originator host, originator port) and
        "direct-streamlocal@openssh.com" (socket path). Sessions are opened
        with open_session().

        Raises:
            ChannelOpenFailedError: unsupported type, malformed payload or
                the remote refused the channel
        """
        self._check_open()

        try:
            packet = SSHPacket(payload)
            if name == DIRECT_TCPIP:
                host = packet.get_string().decode('utf-8')
                port = packet.get_uint32()
                orig_host = packet.get_string().decode('utf-8')
                orig_port = packet.get_uint32()
                packet.check_end()
                origin = join_host_port(orig_host, orig_port) if orig_host else None
                return await self.dial("tcp", join_host_port(host, port), origin)
            if name == DIRECT_STREAMLOCAL:
                path = packet.get_string().decode('utf-8')
                # Reserved originator fields
                packet.get_string()
                packet.get_uint32()
                packet.check_end()
                return await self.dial("unix", path)
        except ValueError as e:
            raise ChannelOpenFailedError(f"Malformed {name} channel payload: {e}") from e

        raise ChannelOpenFailedError(f"Unsupported channel type: {name}")

    async def listen(self, network: str, address: str) -> IListener:
        """
        Ask the remote to listen on address and forward inbound
        connections back over this connection.
        """
        self._check_open()
        validate_network(network)

        listener = QueueListener(address)

        def handler_factory(*_: Any) -> Any:
            return listener.push_pair

        try:
            if network in TCP_NETWORKS:
                host, port = split_host_port(address)
                server = await self._conn.start_server(handler_factory, host, port)
                listener.attach(server, join_host_port(host, server.get_port()))
            else:
                server = await self._conn.start_unix_server(handler_factory, address)
                listener.attach(server)
        except asyncssh.ChannelListenError as e:
            raise ChannelOpenFailedError(
                f"Remote refused to listen on {network}://{address}: {e}",
                network, address) from e

        logger.info(f"Remote listening on {network}://{listener.address}")
        return listener

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._conn.close()
        await self._conn.wait_closed()
        logger.info(f"Connection to {self._address} closed")

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def connect(address: str, config: ConnectionConfig) -> Connection:
    """
    Connect and authenticate to address ("host[:port]").

    Raises:
        AuthenticationError: no auth method succeeded
        HostTrustError: the host key callback rejected the server
        SSHConnectError: any other handshake failure
    """
    host, port = split_host_port(address, DEFAULT_PORT)
    client = _BurrowClient(config)

    try:
        conn = await asyncssh.connect(
            host, port, client_factory=lambda: client, **config.to_asyncssh_kwargs())
    except asyncssh.PermissionDenied as e:
        raise AuthenticationError(f"Authentication failed for {address}: {e}", address) from e
    except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
        if client.trust_error is not None:
            raise client.trust_error from e
        raise SSHConnectError(f"Failed to connect to {address}: {e}", address) from e

    logger.info(f"Connected to {join_host_port(host, port)}")
    return Connection(conn, join_host_port(host, port))
