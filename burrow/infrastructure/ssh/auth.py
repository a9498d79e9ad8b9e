"""
Credential helpers: default key locations, key loading, password prompt
and SSH agent discovery.
"""

import getpass
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import asyncssh
import typer

from ...core.exceptions import CredentialError

logger = logging.getLogger(__name__)

DEFAULT_PRIVATE_KEY = ".ssh/id_rsa"
DEFAULT_KNOWN_HOSTS = ".ssh/known_hosts"


def current_user() -> str:
    try:
        return getpass.getuser()
    except Exception as e:
        raise CredentialError(f"Cannot determine current user: {e}") from e


def home_directory(user: Optional[str] = None) -> Path:
    """Home directory of user, or of the current user."""
    spec = f"~{user}" if user else "~"
    home = os.path.expanduser(spec)
    if home == spec:
        raise CredentialError(f"Cannot resolve home directory for {user or 'current user'}")
    return Path(home)


def private_key_path(user: Optional[str] = None) -> Path:
    return home_directory(user) / DEFAULT_PRIVATE_KEY


def known_hosts_path(user: Optional[str] = None) -> Path:
    return home_directory(user) / DEFAULT_KNOWN_HOSTS


def load_private_keys(sources: Sequence[Union[str, Path, bytes]],
                      passphrase: Optional[str] = None) -> List[asyncssh.SSHKey]:
    """
    Load private keys from file paths or in-memory key data.

    Raises:
        CredentialError: if any key cannot be read or decrypted
    """
    keys = []
    for source in sources:
        try:
            if isinstance(source, bytes):
                keys.append(asyncssh.import_private_key(source, passphrase))
            else:
                path = Path(source).expanduser()
                keys.append(asyncssh.read_private_key(str(path), passphrase))
        except (OSError, asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
            label = "<memory>" if isinstance(source, bytes) else str(source)
            raise CredentialError(f"Cannot load private key {label}: {e}") from e
    return keys


def read_password(prompt: str = "Password") -> str:
    """Prompt for a password without echo."""
    return typer.prompt(prompt, hide_input=True)


def answer_challenge(name: str, instructions: str,
                     prompts: Sequence[Tuple[str, bool]]) -> List[str]:
    """Answer a keyboard-interactive challenge on the terminal."""
    for line in (name, instructions):
        if line:
            typer.echo(line, err=True)
    return [
        typer.prompt(prompt, default="", show_default=False,
                     hide_input=not echo, prompt_suffix="")
        for prompt, echo in prompts
    ]


def agent_path() -> str:
    """Path of the running SSH agent socket."""
    path = os.environ.get("SSH_AUTH_SOCK")
    if not path:
        raise CredentialError("SSH_AUTH_SOCK is not set; no SSH agent available")
    return path
