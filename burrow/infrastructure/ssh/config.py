"""
Connection configuration for the SSH transport.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import asyncssh

from ...core.exceptions import ConfigurationError

HostKeyCallback = Callable[[str, str, asyncssh.SSHKey], None]
BannerCallback = Callable[[str], None]
PasswordCallback = Callable[[], Optional[str]]
# (name, instruction, [(prompt, echo), ...]) -> answers, or None to give up
ChallengeCallback = Callable[[str, str, Sequence[Tuple[str, bool]]], Optional[List[str]]]

DEFAULT_CLIENT_VERSION = "Burrow"
DEFAULT_CONNECT_TIMEOUT = 15.0


@dataclass
class ConnectionConfig:
    """Parameters for establishing one authenticated connection."""

    # Authentication
    username: Optional[str] = None
    password: Optional[str] = None
    client_keys: List[Union[str, asyncssh.SSHKey]] = field(default_factory=list)
    passphrase: Optional[str] = None
    agent_path: Optional[str] = None
    # Supplies a password when none is set and after each rejection
    password_callback: Optional[PasswordCallback] = None
    # Total password attempts, unlimited when zero or negative
    password_retries: int = 1
    challenge_callback: Optional[ChallengeCallback] = None

    # Host identity
    host_key_callback: Optional[HostKeyCallback] = None
    ignore_host_key: bool = False

    banner_callback: Optional[BannerCallback] = None

    # Transport
    client_version: str = DEFAULT_CLIENT_VERSION
    kex_algs: List[str] = field(default_factory=list)
    encryption_algs: List[str] = field(default_factory=list)
    mac_algs: List[str] = field(default_factory=list)
    server_host_key_algs: List[str] = field(default_factory=list)
    rekey_bytes: Optional[int] = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    def __post_init__(self) -> None:
        """Post-initialization validation."""
        if self.host_key_callback is None and not self.ignore_host_key:
            raise ConfigurationError(
                "A host key callback is required unless ignore_host_key is set")

        if self.connect_timeout <= 0:
            raise ConfigurationError(
                f"Connect timeout must be positive, got {self.connect_timeout}")

        if self.rekey_bytes is not None and self.rekey_bytes <= 0:
            raise ConfigurationError(
                f"Rekey threshold must be positive, got {self.rekey_bytes}")

    def to_asyncssh_kwargs(self) -> Dict[str, Any]:
        """Convert to asyncssh connection kwargs."""
        kwargs: Dict[str, Any] = {
            'config': None,
            'client_version': self.client_version,
            'connect_timeout': self.connect_timeout,
            'login_timeout': self.connect_timeout,
            'client_keys': list(self.client_keys) or None,
            'agent_path': self.agent_path,
            # Only an explicit (trusted, ca, revoked) triple makes asyncssh
            # defer unknown keys to validate_host_public_key
            'known_hosts': None if self.ignore_host_key else ([], [], []),
        }

        if self.username:
            kwargs['username'] = self.username

        if self.password is not None:
            kwargs['password'] = self.password
        if self.password is not None or self.password_callback is not None:
            kwargs['password_auth'] = True

        if self.challenge_callback is not None:
            kwargs['kbdint_auth'] = True

        if self.passphrase is not None:
            kwargs['passphrase'] = self.passphrase

        if self.kex_algs:
            kwargs['kex_algs'] = self.kex_algs
        if self.encryption_algs:
            kwargs['encryption_algs'] = self.encryption_algs
        if self.mac_algs:
            kwargs['mac_algs'] = self.mac_algs
        if self.server_host_key_algs:
            kwargs['server_host_key_algs'] = self.server_host_key_algs

        if self.rekey_bytes is not None:
            kwargs['rekey_bytes'] = self.rekey_bytes

        return kwargs
