"""
Host identity trust.

HostTrustDecider checks a presented host key against one or more
known_hosts files and, when running interactively, lets the user accept an
unknown host once or persist it (trust on first use).
"""

import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import asyncssh
import typer

from ...core.exceptions import (
    HostKeyMismatchError, HostTrustError, NoTrustStoreError,
    RevokedHostKeyError, UnknownHostError
)
from ...utils.net import split_host_port

logger = logging.getLogger(__name__)

PromptFunc = Callable[[str], str]
PathLike = Union[str, Path]


def _default_prompt(text: str) -> str:
    return typer.prompt(text, default="no", show_default=False)


def _key_fingerprint(key: asyncssh.SSHKey) -> str:
    return key.get_fingerprint('sha256')


def _same_key(a: asyncssh.SSHKey, b: asyncssh.SSHKey) -> bool:
    return a.public_data == b.public_data


def host_pattern(hostname: str, port: int = 22) -> str:
    """known_hosts host field: plain for port 22, bracketed otherwise."""
    if port == 22:
        return hostname
    return f"[{hostname}]:{port}"


class KnownHostsStore:
    """Reads and appends known_hosts files."""

    def __init__(self, paths: Sequence[PathLike]) -> None:
        self._paths = [Path(p).expanduser() for p in paths]

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    def lookup(self, hostname: str, ip: Optional[str], port: int
               ) -> Tuple[List[asyncssh.SSHKey], List[asyncssh.SSHKey]]:
        """
        Find the trusted and revoked keys recorded for a host.

        Missing files are treated as empty.

        Returns:
            (trusted_keys, revoked_keys)
        """
        trusted: List[asyncssh.SSHKey] = []
        revoked: List[asyncssh.SSHKey] = []

        for path in self._paths:
            if not path.exists():
                logger.debug(f"known_hosts file {path} does not exist")
                continue
            known_hosts = asyncssh.read_known_hosts(str(path))
            matches = known_hosts.match(hostname, ip or "", port)
            trusted.extend(matches[0])
            revoked.extend(matches[2])

        return trusted, revoked

    def append(self, hostname: str, port: int, key: asyncssh.SSHKey) -> Path:
        """Append one record for key to the first known_hosts file."""
        if not self._paths:
            raise NoTrustStoreError("No known_hosts file configured", hostname)

        path = self._paths[0]
        path.parent.mkdir(parents=True, exist_ok=True)

        prefix = ""
        if path.exists() and path.stat().st_size > 0:
            with open(path, 'rb') as f:
                f.seek(-1, os.SEEK_END)
                if f.read(1) != b"\n":
                    prefix = "\n"

        line = key.export_public_key('openssh').decode('ascii').strip()
        algorithm, data = line.split()[:2]
        record = f"{prefix}{host_pattern(hostname, port)} {algorithm} {data}\n"

        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        with os.fdopen(fd, 'w', encoding='ascii') as f:
            f.write(record)

        logger.info(f"Added {hostname} to {path}")
        return path


class HostTrustDecider:
    """
    Decides whether a presented host key is trusted.

    Rules, in order:
      * no known_hosts paths: NoTrustStoreError
      * key revoked: RevokedHostKeyError
      * key recorded for the host: accepted
      * host recorded under other keys: HostKeyMismatchError
      * host unknown and not interactive: UnknownHostError
      * host unknown and interactive: ask to continue, then ask to persist
    """

    def __init__(self, known_hosts_paths: Sequence[PathLike], interactive: bool = False,
                 prompt: Optional[PromptFunc] = None) -> None:
        self._store = KnownHostsStore(known_hosts_paths)
        self._interactive = interactive
        self._prompt = prompt or _default_prompt

    @property
    def store(self) -> KnownHostsStore:
        return self._store

    def __call__(self, hostname: str, address: str, key: asyncssh.SSHKey) -> None:
        self.decide(hostname, address, key)

    def decide(self, hostname: str, address: str, key: asyncssh.SSHKey) -> None:
        """
        Accept or reject key for hostname.

        Args:
            hostname: Host name as dialed
            address: Remote "ip:port"
            key: Presented public host key

        Raises:
            HostTrustError: if the key is rejected
        """
        if not self._store.paths:
            raise NoTrustStoreError(
                "No known_hosts file configured for host key verification", hostname)

        ip, port = split_host_port(address, 22)
        trusted, revoked = self._store.lookup(hostname, ip, port)

        if any(_same_key(key, k) for k in revoked):
            raise RevokedHostKeyError(
                f"Host key for {hostname} has been revoked", hostname)

        if any(_same_key(key, k) for k in trusted):
            logger.debug(f"Host key for {hostname} is trusted")
            return

        fingerprint = _key_fingerprint(key)
        if trusted:
            raise HostKeyMismatchError(
                f"Host key for {hostname} does not match known_hosts "
                f"({key.get_algorithm()} {fingerprint})", hostname)

        if not self._interactive:
            raise UnknownHostError(
                f"Host {hostname} is not in known_hosts "
                f"({key.get_algorithm()} {fingerprint})", hostname)

        self._ask(hostname, port, key, fingerprint)

    def _ask(self, hostname: str, port: int, key: asyncssh.SSHKey, fingerprint: str) -> None:
        answer = self._prompt(
            f"Unknown host: {hostname}\n"
            f"{key.get_algorithm()} fingerprint: {fingerprint}\n"
            f"Do you want to continue connecting? [yes/NO]")
        if answer.strip().lower() != "yes":
            raise UnknownHostError(f"Host {hostname} rejected by user", hostname)

        answer = self._prompt(
            f"Add {hostname} to {self._store.paths[0]}? [yes/NO]")
        if answer.strip().lower() != "yes":
            logger.info(f"Accepting {hostname} for this connection only")
            return

        try:
            self._store.append(hostname, port, key)
        except (OSError, HostTrustError) as e:
            logger.error(f"Failed to record host key for {hostname}: {e}")


class FixedHostKey:
    """Accepts exactly one host key."""

    def __init__(self, key: asyncssh.SSHKey) -> None:
        self._key = key

    def __call__(self, hostname: str, address: str, key: asyncssh.SSHKey) -> None:
        if not _same_key(self._key, key):
            raise HostKeyMismatchError(
                f"Host key for {hostname} does not match the pinned key", hostname)


def ignore_host_key(hostname: str, address: str, key: asyncssh.SSHKey) -> None:
    """Accepts any host key."""
    logger.warning(f"Skipping host key verification for {hostname}")
