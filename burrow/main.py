"""
Main entry point for Burrow.

This module provides the command-line interface: interactive shells, remote
command execution and TCP / Unix-domain forwarding in both directions.
"""

import asyncio
import logging
import sys
from typing import Any, Awaitable, Dict, List, Optional

import typer

from . import __version__
from .application.runner import run_exec, run_forward, run_reverse, run_shell
from .core.exceptions import BurrowError, ConfigurationError
from .infrastructure.config.loader import ConfigLoader
from .infrastructure.config.models import BurrowConfig
from .infrastructure.logging.setup import setup_logging

# Create CLI application
cli = typer.Typer(
    name="burrow",
    help="SSH client with interactive sessions and stream forwarding"
)

logger = logging.getLogger(__name__)


def parse_env(values: List[str]) -> Dict[str, str]:
    """Parse repeated K=V options."""
    env = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected NAME=VALUE, got {item!r}", param_hint="--env")
        env[name] = value
    return env


@cli.callback()
def global_options(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(
        None, "--host", "-H", help="Remote host"
    ),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="Remote SSH port"
    ),
    user: Optional[str] = typer.Option(
        None, "--user", "-u", help="Remote user, the current user by default"
    ),
    env: Optional[List[str]] = typer.Option(
        None, "--env", "-e", help="Remote environment variable NAME=VALUE (repeatable)"
    ),
    display_banner: bool = typer.Option(
        False, "--display-banner", help="Print the server's auth banner"
    ),
    private_key: Optional[str] = typer.Option(
        None, "--private-key", "-i", help="Private key file, ~/.ssh/id_rsa by default"
    ),
    ssh_agent: bool = typer.Option(
        False, "--ssh-agent", help="Authenticate with the agent at $SSH_AUTH_SOCK"
    ),
    passwd: bool = typer.Option(
        False, "--passwd", help="Prompt for a password"
    ),
    password_retries: Optional[int] = typer.Option(
        None, "--password-retries", help="Password attempts before giving up, 0 for unlimited"
    ),
    keyboard_interactive: bool = typer.Option(
        False, "--keyboard-interactive", help="Answer keyboard-interactive challenges"
    ),
    known_hosts: Optional[str] = typer.Option(
        None, "--known-hosts", help="known_hosts file, ~/.ssh/known_hosts by default"
    ),
    ignore_host_key: bool = typer.Option(
        False, "--ignore-host-key", help="Skip host key verification"
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Connect timeout in seconds"
    ),
    term: Optional[str] = typer.Option(
        None, "--term", help="Terminal type for pty sessions"
    ),
    keep_alive: Optional[bool] = typer.Option(
        None, "--keep-alive/--no-keep-alive", help="Send keepalive requests"
    ),
    keep_alive_interval: Optional[float] = typer.Option(
        None, "--keep-alive-interval", help="Seconds between keepalive requests"
    ),
    cipher: Optional[List[str]] = typer.Option(
        None, "--cipher", help="Allowed cipher (repeatable)"
    ),
    key_exchange: Optional[List[str]] = typer.Option(
        None, "--key-exchange", help="Allowed key exchange (repeatable)"
    ),
    mac: Optional[List[str]] = typer.Option(
        None, "--mac", help="Allowed MAC (repeatable)"
    ),
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level"
    ),
) -> None:
    """SSH client with interactive sessions and stream forwarding."""
    overrides = {
        'host': host,
        'port': port,
        'user': user,
        'env': env,
        'display_banner': display_banner,
        'private_key': private_key,
        'ssh_agent': ssh_agent,
        'passwd': passwd,
        'password_retries': password_retries,
        'keyboard_interactive': keyboard_interactive,
        'known_hosts': known_hosts,
        'ignore_host_key': ignore_host_key,
        'timeout': timeout,
        'term': term,
        'keep_alive': keep_alive,
        'keep_alive_interval': keep_alive_interval,
        'cipher': cipher,
        'key_exchange': key_exchange,
        'mac': mac,
        'log_level': log_level,
    }
    ctx.obj = {'config_file': config_file, 'overrides': overrides}


def apply_overrides(config: BurrowConfig, overrides: Dict[str, Any]) -> BurrowConfig:
    """Apply command line options on top of a loaded configuration."""
    if overrides.get('host'):
        config.connection.host = overrides['host']
    if overrides.get('port'):
        config.connection.port = overrides['port']
    if overrides.get('user'):
        config.connection.user = overrides['user']
    if overrides.get('timeout'):
        config.connection.timeout = overrides['timeout']
    if overrides.get('cipher'):
        config.connection.ciphers = list(overrides['cipher'])
    if overrides.get('key_exchange'):
        config.connection.key_exchanges = list(overrides['key_exchange'])
    if overrides.get('mac'):
        config.connection.macs = list(overrides['mac'])

    if overrides.get('private_key'):
        config.auth.private_key_path = overrides['private_key']
    if overrides.get('ssh_agent'):
        config.auth.use_agent = True
    if overrides.get('passwd'):
        config.auth.force_password = True
    if overrides.get('password_retries') is not None:
        config.auth.password_retries = overrides['password_retries']
    if overrides.get('keyboard_interactive'):
        config.auth.keyboard_interactive = True

    if overrides.get('known_hosts'):
        config.trust.known_hosts_path = overrides['known_hosts']
    if overrides.get('ignore_host_key'):
        config.trust.ignore_host_key = True

    if overrides.get('env'):
        config.session.env.update(parse_env(overrides['env']))
    if overrides.get('display_banner'):
        config.session.display_banner = True
    if overrides.get('term'):
        config.session.term = overrides['term']
    if overrides.get('keep_alive') is not None:
        config.session.keep_alive = overrides['keep_alive']
    if overrides.get('keep_alive_interval'):
        config.session.keep_alive_interval = overrides['keep_alive_interval']

    if overrides.get('log_level'):
        config.logging.level = overrides['log_level'].upper()

    # Re-run validation on the merged result
    return BurrowConfig.from_dict({**config.to_dict(), 'config_file_path': config.config_file_path})


def load_settings(ctx: typer.Context) -> BurrowConfig:
    state = ctx.obj or {}
    try:
        config = ConfigLoader().load_config(state.get('config_file'))
        config = apply_overrides(config, state.get('overrides', {}))
    except ConfigurationError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        sys.exit(2)

    setup_logging(config.logging)
    return config


def _run(job: Awaitable[int]) -> int:
    try:
        return asyncio.run(job)  # type: ignore[arg-type]
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except BurrowError as e:
        typer.echo(f"Error: {e}", err=True)
        return 1
    except ValueError as e:
        # Malformed addresses and network names
        typer.echo(f"Invalid argument: {e}", err=True)
        return 2
    except OSError as e:
        typer.echo(f"Error: {e}", err=True)
        return 1


@cli.command()
def shell(ctx: typer.Context) -> None:
    """Open an interactive shell on the remote host."""
    config = load_settings(ctx)
    sys.exit(_run(run_shell(config)))


@cli.command("exec")
def exec_command(
    ctx: typer.Context,
    command: List[str] = typer.Argument(..., help="Command to run"),
    pty: bool = typer.Option(False, "--pty", "-t", help="Allocate a pseudo-terminal"),
) -> None:
    """Run a command on the remote host and exit with its status."""
    config = load_settings(ctx)
    sys.exit(_run(run_exec(config, " ".join(command), pty)))


@cli.command()
def forward(
    ctx: typer.Context,
    listen: str = typer.Argument(..., help="Local address to listen on (host:port or socket path)"),
    target: str = typer.Argument(..., help="Target address as seen from the remote host"),
    listen_network: str = typer.Option("tcp", "--listen-network", help="tcp, tcp4, tcp6 or unix"),
    target_network: str = typer.Option("tcp", "--target-network", help="tcp, tcp4, tcp6 or unix"),
) -> None:
    """Forward a local listener to a target through the remote host."""
    config = load_settings(ctx)
    sys.exit(_run(run_forward(config, listen, target, listen_network, target_network)))


@cli.command()
def reverse(
    ctx: typer.Context,
    remote_listen: str = typer.Argument(..., help="Address the remote host listens on"),
    target: str = typer.Argument(..., help="Local target address"),
    listen_network: str = typer.Option("tcp", "--listen-network", help="tcp, tcp4, tcp6 or unix"),
    target_network: str = typer.Option("tcp", "--target-network", help="tcp, tcp4, tcp6 or unix"),
) -> None:
    """Forward a listener on the remote host to a local target."""
    config = load_settings(ctx)
    sys.exit(_run(run_reverse(config, remote_listen, target, listen_network, target_network)))


@cli.command()
def version() -> None:
    """Show the version."""
    typer.echo(f"burrow {__version__}")


@cli.command()
def init_config(
    output: str = typer.Option(
        "burrow.yaml", "--output", "-o", help="Output configuration file"
    ),
    format: str = typer.Option(
        "yaml", "--format", "-f", help="Configuration format (yaml/json)"
    )
) -> None:
    """Generate a default configuration file."""

    config = BurrowConfig()
    config_loader = ConfigLoader()

    try:
        config_loader.save_config(config, output, format)
        typer.echo(f"Default configuration saved to {output}")
    except ConfigurationError as e:
        typer.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
def validate_config(
    config_file: str = typer.Argument(...,
                                      help="Configuration file to validate")
) -> None:
    """Validate a configuration file."""

    config_loader = ConfigLoader()

    try:
        config = config_loader.load_config(config_file)
        typer.echo(f"Configuration file {config_file} is valid")
        typer.echo(f"Target: {config.connection.host}:{config.connection.port}")
    except ConfigurationError as e:
        typer.echo(f"Configuration validation failed: {e}", err=True)
        sys.exit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
