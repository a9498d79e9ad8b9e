"""
Configuration models and data structures.

This module defines the configuration models used by the CLI, providing
type safety and validation for configuration values.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from ...core.exceptions import ConfigurationError


@dataclass
class ConnectionSettings:
    """Remote endpoint and transport settings."""
    host: str = "localhost"
    port: int = 22
    user: Optional[str] = None
    timeout: float = 15.0
    client_version: str = "Burrow"
    ciphers: List[str] = field(default_factory=list)
    key_exchanges: List[str] = field(default_factory=list)
    macs: List[str] = field(default_factory=list)
    host_key_algorithms: List[str] = field(default_factory=list)
    rekey_threshold: Optional[int] = None


@dataclass
class AuthSettings:
    """Client authentication settings."""
    private_key_path: Optional[str] = None
    use_agent: bool = False
    force_password: bool = False
    # Password attempts before giving up, unlimited when zero or negative
    password_retries: int = 3
    keyboard_interactive: bool = False


@dataclass
class TrustSettings:
    """Host key verification settings."""
    known_hosts_path: Optional[str] = None
    ignore_host_key: bool = False
    interactive: bool = True


@dataclass
class SessionSettings:
    """Interactive session settings."""
    term: str = "xterm-256color"
    env: Dict[str, str] = field(default_factory=dict)
    keep_alive: bool = True
    keep_alive_interval: float = 60.0
    keep_alive_max_failures: int = 0
    resize_poll_interval: float = 1.0
    display_banner: bool = False


@dataclass
class ForwardSettings:
    """Stream forwarding settings."""
    buffer_size: int = 0


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "WARNING"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_directory: str = "logs"
    max_file_size: str = "10MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False


@dataclass
class BurrowConfig:
    """Top-level client configuration."""

    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    trust: TrustSettings = field(default_factory=TrustSettings)
    session: SessionSettings = field(default_factory=SessionSettings)
    forward: ForwardSettings = field(default_factory=ForwardSettings)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_ports()
        self._validate_timeouts()
        self._validate_sizes()
        self._validate_logging()

    def _validate_ports(self) -> None:
        port = self.connection.port
        if not (1 <= port <= 65535):
            raise ConfigurationError(
                f"SSH port must be between 1 and 65535, got {port}")

    def _validate_timeouts(self) -> None:
        """Validate timeout and interval values."""
        timeouts = [
            ("Connection timeout", self.connection.timeout),
            ("Keepalive interval", self.session.keep_alive_interval),
            ("Resize poll interval", self.session.resize_poll_interval),
        ]

        for name, timeout in timeouts:
            if timeout <= 0:
                raise ConfigurationError(f"{name} must be positive, got {timeout}")

    def _validate_sizes(self) -> None:
        if self.forward.buffer_size < 0:
            raise ConfigurationError(
                f"Buffer size must not be negative, got {self.forward.buffer_size}")

        rekey = self.connection.rekey_threshold
        if rekey is not None and rekey <= 0:
            raise ConfigurationError(f"Rekey threshold must be positive, got {rekey}")

        if self.session.keep_alive_max_failures < 0:
            raise ConfigurationError(
                "Keepalive failure budget must not be negative, "
                f"got {self.session.keep_alive_max_failures}")

    def _validate_logging(self) -> None:
        valid_levels = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")
        if self.logging.level.upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        result = asdict(self)
        result.pop('config_file_path', None)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BurrowConfig':
        """Create configuration from dictionary."""
        try:
            return cls(
                connection=ConnectionSettings(**data.get('connection', {})),
                auth=AuthSettings(**data.get('auth', {})),
                trust=TrustSettings(**data.get('trust', {})),
                session=SessionSettings(**data.get('session', {})),
                forward=ForwardSettings(**data.get('forward', {})),
                logging=LoggingConfig(**data.get('logging', {})),
                config_file_path=data.get('config_file_path'),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
