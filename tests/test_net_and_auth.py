"""
Tests for address parsing and credential helpers.
"""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import asyncssh
import pytest

from burrow.core.exceptions import CredentialError
from burrow.infrastructure.ssh.auth import (
    DEFAULT_KNOWN_HOSTS, DEFAULT_PRIVATE_KEY, agent_path, answer_challenge, home_directory,
    known_hosts_path, load_private_keys, private_key_path
)
from burrow.utils.net import join_host_port, split_host_port, validate_network


class TestSplitHostPort:
    @pytest.mark.parametrize("address,expected", [
        ("example.com:22", ("example.com", 22)),
        ("127.0.0.1:8080", ("127.0.0.1", 8080)),
        ("[::1]:2222", ("::1", 2222)),
        (":9000", ("", 9000)),
    ])
    def test_valid(self, address, expected):
        assert split_host_port(address) == expected

    def test_default_port(self):
        assert split_host_port("example.com", 22) == ("example.com", 22)
        assert split_host_port("[fe80::1]", 22) == ("fe80::1", 22)

    @pytest.mark.parametrize("address", [
        "example.com", "::1", "[::1", "[::1]x", "host:abc", "host:70000",
    ])
    def test_invalid(self, address):
        with pytest.raises(ValueError):
            split_host_port(address)

    def test_join(self):
        assert join_host_port("example.com", 22) == "example.com:22"
        assert join_host_port("::1", 22) == "[::1]:22"

    def test_validate_network(self):
        assert validate_network("tcp6") == "tcp6"
        assert validate_network("unix") == "unix"
        with pytest.raises(ValueError):
            validate_network("udp")


class TestCredentialPaths:
    def test_default_paths_under_home(self):
        with patch('burrow.infrastructure.ssh.auth.os.path.expanduser',
                   return_value="/home/alice"):
            assert home_directory() == Path("/home/alice")
            assert private_key_path() == Path("/home/alice") / DEFAULT_PRIVATE_KEY
            assert known_hosts_path() == Path("/home/alice") / DEFAULT_KNOWN_HOSTS

    def test_unresolvable_home(self):
        with patch('burrow.infrastructure.ssh.auth.os.path.expanduser',
                   side_effect=lambda spec: spec):
            with pytest.raises(CredentialError):
                home_directory("nobody-here")

    def test_agent_path(self):
        with patch.dict(os.environ, {"SSH_AUTH_SOCK": "/tmp/agent.sock"}):
            assert agent_path() == "/tmp/agent.sock"

    def test_agent_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(CredentialError, match="SSH_AUTH_SOCK"):
                agent_path()


class TestLoadPrivateKeys:
    def test_load_from_file_and_memory(self):
        key = asyncssh.generate_private_key('ssh-ed25519')
        data = key.export_private_key()

        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "id_ed25519"
            path.write_bytes(data)

            keys = load_private_keys([path, data])

        assert len(keys) == 2
        assert all(k.public_data == key.public_data for k in keys)

    def test_encrypted_key_requires_passphrase(self):
        key = asyncssh.generate_private_key('ssh-ed25519')
        data = key.export_private_key(passphrase="secret")

        with pytest.raises(CredentialError):
            load_private_keys([data])

        assert load_private_keys([data], "secret")[0].public_data == key.public_data

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with pytest.raises(CredentialError, match="missing"):
                load_private_keys([Path(temp_dir) / "missing"])

    def test_garbage(self):
        with pytest.raises(CredentialError):
            load_private_keys([b"not a key"])


class TestAnswerChallenge:
    def test_prompts_each_question(self):
        with patch('burrow.infrastructure.ssh.auth.typer.prompt',
                   side_effect=["alice", "s3cret"]) as mock_prompt, \
                patch('burrow.infrastructure.ssh.auth.typer.echo') as mock_echo:
            answers = answer_challenge("", "Two steps",
                                       [("Login: ", True), ("Password: ", False)])

        assert answers == ["alice", "s3cret"]
        mock_echo.assert_called_once_with("Two steps", err=True)
        assert mock_prompt.call_args_list[0][1]["hide_input"] is False
        assert mock_prompt.call_args_list[1][1]["hide_input"] is True
        assert mock_prompt.call_args_list[1][0] == ("Password: ",)

    def test_empty_challenge(self):
        with patch('burrow.infrastructure.ssh.auth.typer.prompt') as mock_prompt:
            assert answer_challenge("", "", []) == []

        mock_prompt.assert_not_called()
