"""
Client workflows behind the CLI commands.

Each run_* coroutine connects with settings taken from a BurrowConfig,
performs one job (shell, exec, local or remote forwarding) and tears the
connection down on every exit path.
"""

import asyncio
import logging
import signal
from typing import Any, Callable, List, Optional, Tuple

import typer

from ..core.exceptions import EnvRequestError
from ..core.interfaces.streams import IDialer, IDuplexStream, IListener
from ..core.services.director import Director
from ..core.services.session import InteractiveSession
from ..infrastructure.config.models import BurrowConfig
from ..infrastructure.ssh.auth import (
    agent_path, answer_challenge, current_user, known_hosts_path, load_private_keys,
    private_key_path, read_password
)
from ..infrastructure.ssh.client import Connection, connect
from ..infrastructure.ssh.config import ConnectionConfig
from ..infrastructure.ssh.streams import LocalDialer, listen_local
from ..infrastructure.ssh.trust import HostTrustDecider
from ..utils import terminal
from ..utils.net import join_host_port

logger = logging.getLogger(__name__)

FALLBACK_TERMINAL_SIZE = (80, 24)

# Seconds in-flight forwards get to finish after the listener stops
DRAIN_TIMEOUT = 5.0

PasswordPrompt = Callable[[str], str]


def display_banner(message: str) -> None:
    typer.echo(message.rstrip("\n"), err=True)


def build_connection_config(config: BurrowConfig,
                            password_prompt: PasswordPrompt = read_password) -> ConnectionConfig:
    """
    Translate CLI-level settings into a ConnectionConfig.

    Auth is chosen the same way every time: an explicit password request
    wins, then the agent (if enabled) together with the private key, and a
    password prompt only when neither is available. A rejected password is
    asked for again up to auth.password_retries times in total. With
    keyboard-interactive enabled the password is asked for only if the
    server falls back to password auth.
    """
    conn = config.connection
    auth = config.auth
    user = conn.user or current_user()

    host_key_callback = None
    if not config.trust.ignore_host_key:
        path = config.trust.known_hosts_path or str(known_hosts_path())
        host_key_callback = HostTrustDecider([path], interactive=config.trust.interactive)

    password = None
    password_callback = None
    client_keys: List[Any] = []
    agent = None

    def ask_password() -> str:
        return password_prompt(f"{user}@{conn.host}'s password")

    if auth.force_password:
        password = ask_password()
        password_callback = ask_password
    else:
        if auth.use_agent:
            agent = agent_path()
        if auth.private_key_path:
            client_keys = list(load_private_keys([auth.private_key_path]))
        else:
            default_key = private_key_path()
            if default_key.exists():
                client_keys = list(load_private_keys([default_key]))
        if not client_keys and agent is None:
            if not auth.keyboard_interactive:
                password = ask_password()
            password_callback = ask_password

    return ConnectionConfig(
        username=user,
        password=password,
        client_keys=client_keys,
        agent_path=agent,
        password_callback=password_callback,
        password_retries=auth.password_retries,
        challenge_callback=answer_challenge if auth.keyboard_interactive else None,
        host_key_callback=host_key_callback,
        ignore_host_key=config.trust.ignore_host_key,
        banner_callback=display_banner if config.session.display_banner else None,
        client_version=conn.client_version,
        kex_algs=list(conn.key_exchanges),
        encryption_algs=list(conn.ciphers),
        mac_algs=list(conn.macs),
        server_host_key_algs=list(conn.host_key_algorithms),
        rekey_bytes=conn.rekey_threshold,
        connect_timeout=conn.timeout,
    )


async def open_connection(config: BurrowConfig,
                          password_prompt: PasswordPrompt = read_password) -> Connection:
    address = join_host_port(config.connection.host, config.connection.port)
    return await connect(address, build_connection_config(config, password_prompt))


def _terminal_size() -> Tuple[int, int]:
    try:
        return terminal.get_terminal_size()
    except (OSError, ValueError):
        return FALLBACK_TERMINAL_SIZE


async def _prepare(session: InteractiveSession, config: BurrowConfig) -> None:
    try:
        await session.set_envs(config.session.env)
    except EnvRequestError as e:
        logger.warning(f"Some environment variables were not set: {e}")


def _start_keep_alive(session: InteractiveSession, config: BurrowConfig) -> Optional["asyncio.Task[None]"]:
    if not config.session.keep_alive:
        return None
    return session.keep_alive(config.session.keep_alive_interval,
                              config.session.keep_alive_max_failures)


async def run_session(conn: Connection, config: BurrowConfig,
                      command: Optional[str] = None, pty: bool = False) -> int:
    """
    Run a shell (command is None) or a command on conn with the local
    standard streams attached.

    Returns:
        Remote exit status
    """
    session = await conn.open_session()
    tasks: List["asyncio.Task[None]"] = []
    restore: Optional[Callable[[], None]] = None
    interactive_tty = terminal.is_terminal()

    try:
        await _prepare(session, config)

        if pty or (command is None and interactive_tty):
            width, height = _terminal_size()
            await session.prepare_pty(config.session.term, width, height)
            if interactive_tty:
                restore = terminal.make_raw()
                poll = config.session.resize_poll_interval if terminal.IS_WINDOWS else None
                tasks.append(await session.auto_resize(poll_interval=poll))

        session.redirect_standard_streams()

        keep_alive = _start_keep_alive(session, config)
        if keep_alive is not None:
            tasks.append(keep_alive)

        if command is None:
            return await session.shell()
        return await session.exec(command)
    finally:
        for task in tasks:
            task.cancel()
        if restore is not None:
            restore()
        await session.close()


async def run_shell(config: BurrowConfig) -> int:
    async with await open_connection(config) as conn:
        return await run_session(conn, config)


async def run_exec(config: BurrowConfig, command: str, pty: bool = False) -> int:
    async with await open_connection(config) as conn:
        return await run_session(conn, config, command, pty)


def _log_new_connection(stream: IDuplexStream) -> None:
    logger.info(f"Accepted connection from {stream.get_extra_info('peername')}")


def _install_stop_handlers(cancel: asyncio.Event, listener: IListener) -> Callable[[], None]:
    loop = asyncio.get_running_loop()
    installed = []

    def stop() -> None:
        logger.info("Stopping forwarder")
        cancel.set()
        asyncio.ensure_future(listener.close())

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop)
            installed.append(signum)
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug(f"Cannot install handler for signal {signum}")

    def uninstall() -> None:
        for signum in installed:
            loop.remove_signal_handler(signum)

    return uninstall


async def serve(listener: IListener, dialer: IDialer, network: str, address: str,
                buffer_size: int = 0, cancel: Optional[asyncio.Event] = None,
                drain_timeout: float = DRAIN_TIMEOUT) -> int:
    """
    Forward every connection accepted on listener to address via dialer.

    Once the accept loop ends, forwards still running get drain_timeout
    seconds to finish before the caller tears the connection down.
    """
    cancel = cancel or asyncio.Event()
    director = Director(dialer, on_new_connection=_log_new_connection)
    uninstall = _install_stop_handlers(cancel, listener)
    try:
        accepted = await director.serve_listener(listener, network, address, buffer_size, cancel)
        if director.active_bindings:
            logger.info(f"Waiting for {director.active_bindings} active forward(s)")
            if not await director.wait_bindings(drain_timeout):
                logger.warning(f"{director.active_bindings} forward(s) still active "
                               f"after {drain_timeout}s, closing")
        return accepted
    finally:
        uninstall()


async def run_forward(config: BurrowConfig, listen_address: str, target_address: str,
                      listen_network: str = "tcp", target_network: str = "tcp") -> int:
    """Forward a local listener to a target reached through the remote host."""
    async with await open_connection(config) as conn:
        listener = await listen_local(listen_network, listen_address)
        typer.echo(f"Forwarding {listen_network}://{listener.address} -> "
                   f"{target_network}://{target_address} via {conn.address}", err=True)
        return await serve(listener, conn, target_network, target_address,
                           config.forward.buffer_size)


async def run_reverse(config: BurrowConfig, remote_address: str, target_address: str,
                      remote_network: str = "tcp", target_network: str = "tcp") -> int:
    """Forward a listener on the remote host to a local target."""
    async with await open_connection(config) as conn:
        listener = await conn.listen(remote_network, remote_address)
        typer.echo(f"Forwarding remote {remote_network}://{listener.address} -> "
                   f"{target_network}://{target_address}", err=True)
        return await serve(listener, LocalDialer(), target_network, target_address,
                           config.forward.buffer_size)
