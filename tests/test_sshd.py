# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Tests for the SSH server.
"""

import socket
import threading
from unittest.mock import Mock

import paramiko
import pytest

from conftest import FakeChannel
from gitbuilder.auth import AuthGate
from gitbuilder.exceptions import GitShellError, ProtocolError, RepositoryIOError
from gitbuilder.models import Identity
from gitbuilder.sshd import BuilderServerInterface, SSHServer, parse_command


@pytest.fixture(scope="module")
def client_key():
    return paramiko.ECDSAKey.generate()


@pytest.fixture(scope="module")
def host_key():
    return paramiko.ECDSAKey.generate()


class TestParseCommand:
    """Tests for exec command parsing."""

    def test_receive_pack(self):
        """Test a quoted receive-pack command is parsed."""
        assert parse_command("git-receive-pack '/demo.git'") == ("git-receive-pack", "/demo.git")

    @pytest.mark.parametrize("command", [
        "git-upload-pack '/demo.git'",
        "git-receive-pack /demo.git",
        "git-receive-pack 'demo.git'; rm -rf /",
        "ls",
        "",
    ])
    def test_rejected(self, command):
        """Test any other command is rejected."""
        with pytest.raises(ProtocolError, match="Only git-receive-pack is supported"):
            parse_command(command)


class TestBuilderServerInterface:
    """Tests for the per-connection SSH policy."""

    def test_public_key_only(self):
        """Test only public key authentication is offered."""
        server = BuilderServerInterface(AuthGate(None))

        assert server.get_allowed_auths("git") == "publickey"
        assert server.check_auth_password("git", "secret") == paramiko.AUTH_FAILED
        assert server.check_auth_interactive("git", "") == paramiko.AUTH_FAILED

    def test_public_key_accepted(self, client_key):
        """Test an authorized key succeeds and records the identity."""
        server = BuilderServerInterface(AuthGate(client_key))

        assert server.check_auth_publickey("git", client_key) == paramiko.AUTH_SUCCESSFUL
        assert server.identity.user == "builder"

    def test_public_key_rejected(self, client_key):
        """Test an unknown key fails and records no identity."""
        server = BuilderServerInterface(AuthGate(paramiko.ECDSAKey.generate()))

        assert server.check_auth_publickey("git", client_key) == paramiko.AUTH_FAILED
        assert server.identity is None

    def test_session_channels_only(self):
        """Test only session channels may be opened."""
        server = BuilderServerInterface(AuthGate(None))

        assert server.check_channel_request("session", 0) == paramiko.OPEN_SUCCEEDED
        assert server.check_channel_request("direct-tcpip", 1) == paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def test_exec_request_delivers_command(self):
        """Test an exec request hands its command to the waiting handler."""
        server = BuilderServerInterface(AuthGate(None))

        assert server.check_channel_exec_request(FakeChannel(chanid=3), b"git-receive-pack 'demo'")
        assert server.wait_for_command(3, timeout=1) == "git-receive-pack 'demo'"

    def test_wait_for_command_timeout(self):
        """Test waiting for a command gives up after the timeout."""
        server = BuilderServerInterface(AuthGate(None))
        assert server.wait_for_command(0, timeout=0.01) is None


class TestHandleChannel:
    """Tests for serving one channel."""

    @pytest.fixture
    def receiver(self):
        return Mock()

    @pytest.fixture
    def ssh_server(self, mock_config, receiver, host_key):
        return SSHServer(mock_config, AuthGate(None), receiver, [host_key])

    @pytest.fixture
    def interface(self):
        server = BuilderServerInterface(AuthGate(None))
        server.identity = Identity(fingerprint="aa:bb")
        return server

    def test_receive(self, ssh_server, interface, receiver):
        """Test a receive-pack request is handed to the receiver."""
        channel = FakeChannel()
        interface.check_channel_exec_request(channel, b"git-receive-pack '/demo.git'")

        ssh_server.handle_channel(channel, interface, "1.2.3.4 5000 5.6.7.8 2223")

        receiver.receive.assert_called_once_with(
            "git-receive-pack", "/demo.git", channel,
            ssh_connection="1.2.3.4 5000 5.6.7.8 2223", fingerprint="aa:bb", user="builder",
        )
        assert channel.exit_status == 0
        assert channel.closed

    def test_receive_as_granted_user(self, ssh_server, interface, receiver):
        """Test the user extension on the session identity is handed to the receiver."""
        interface.identity = Identity(fingerprint="cc:dd", extensions={"user": "deploy"})
        channel = FakeChannel()
        interface.check_channel_exec_request(channel, b"git-receive-pack '/demo.git'")

        ssh_server.handle_channel(channel, interface, "")

        assert receiver.receive.call_args.kwargs["user"] == "deploy"
        assert receiver.receive.call_args.kwargs["fingerprint"] == "cc:dd"

    def test_unsupported_command(self, ssh_server, interface, receiver):
        """Test an unsupported command exits 1 with a message."""
        channel = FakeChannel()
        interface.check_channel_exec_request(channel, b"git-upload-pack '/demo.git'")

        ssh_server.handle_channel(channel, interface, "")

        receiver.receive.assert_not_called()
        assert b"Only git-receive-pack is supported" in channel.stderr
        assert channel.exit_status == 1

    def test_receiver_error_relayed(self, ssh_server, interface, receiver):
        """Test receiver errors are relayed to the client."""
        receiver.receive.side_effect = RepositoryIOError("Cannot write pre-receive hook")
        channel = FakeChannel()
        interface.check_channel_exec_request(channel, b"git-receive-pack 'demo'")

        ssh_server.handle_channel(channel, interface, "")

        assert channel.stderr == b"Cannot write pre-receive hook\n"
        assert channel.exit_status == 1

    def test_git_shell_error_not_repeated(self, ssh_server, interface, receiver):
        """Test git-shell errors are not written twice."""
        receiver.receive.side_effect = GitShellError("exit status 1")
        channel = FakeChannel()
        interface.check_channel_exec_request(channel, b"git-receive-pack 'demo'")

        ssh_server.handle_channel(channel, interface, "")

        assert channel.stderr == b""
        assert channel.exit_status == 1
        assert channel.closed


class TestSSHServerConnection:
    """End-to-end handshake against a paramiko client."""

    @pytest.fixture
    def receiver(self):
        receiver = Mock()
        receiver.receive.side_effect = lambda op, repo, channel, **kwargs: channel.sendall(b"received\n")
        return receiver

    @pytest.fixture
    def connect(self, mock_config, receiver, host_key, client_key):
        """Serve one connection and return a client transport connected to it."""
        listener = socket.create_server(("127.0.0.1", 0))
        ssh_server = SSHServer(mock_config, AuthGate(client_key), receiver, [host_key])
        transports = []

        def _connect():
            client_sock = socket.create_connection(listener.getsockname())
            conn, addr = listener.accept()
            threading.Thread(target=ssh_server.handle_connection, args=(conn, addr), daemon=True).start()
            transport = paramiko.Transport(client_sock)
            transport.start_client(timeout=10)
            transports.append(transport)
            return transport

        yield _connect

        for transport in transports:
            transport.close()
        listener.close()

    def test_authorized_push(self, connect, client_key, receiver):
        """Test an authorized client can run a push command."""
        transport = connect()
        transport.auth_publickey("git", client_key)

        channel = transport.open_session()
        channel.exec_command("git-receive-pack '/demo.git'")
        status = channel.recv_exit_status()

        assert status == 0
        assert channel.recv(100) == b"received\n"
        args, kwargs = receiver.receive.call_args
        assert args[:2] == ("git-receive-pack", "/demo.git")
        assert kwargs["ssh_connection"].startswith("127.0.0.1 ")

    def test_unauthorized_key(self, connect, receiver):
        """Test an unknown client key is refused."""
        transport = connect()

        with pytest.raises(paramiko.AuthenticationException):
            transport.auth_publickey("git", paramiko.ECDSAKey.generate())
        receiver.receive.assert_not_called()

    def test_password_refused(self, connect):
        """Test password authentication is refused."""
        transport = connect()

        with pytest.raises(paramiko.BadAuthenticationType):
            transport.auth_password("git", "secret")
