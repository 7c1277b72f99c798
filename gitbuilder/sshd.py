# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
SSH server accepting git pushes.
Offers public key authentication only and hands git-receive-pack channels
to the GitReceiver.
"""

import logging
import re
import socket
import threading
from typing import TYPE_CHECKING

import paramiko

from .constants import SSH_ACCEPT_BACKLOG, SSH_CHANNEL_ACCEPT_TIMEOUT
from .exceptions import BuilderError, GitShellError, ProtocolError
from .models import Identity

if TYPE_CHECKING:
    from .auth import AuthGate
    from .config import Config
    from .git_receiver import GitReceiver

# The only command accepted on a channel
RECEIVE_COMMAND_PATTERN = re.compile(r"^(git-receive-pack) '([^']+)'$")


def parse_command(command: str) -> tuple[str, str]:
    """
    Split an exec request into operation and repository path.

    Raises:
        ProtocolError: If the command is not `git-receive-pack '<path>'`
    """
    match = RECEIVE_COMMAND_PATTERN.match(command)
    if not match:
        raise ProtocolError(f"Only git-receive-pack is supported, got: {command!r}")
    return match.group(1), match.group(2)


class BuilderServerInterface(paramiko.ServerInterface):
    """Per-connection SSH policy: public keys via the AuthGate, session channels, exec requests."""

    def __init__(self, auth_gate: "AuthGate", logger: logging.Logger | None = None):
        self.auth_gate = auth_gate
        self.logger = logger or logging.getLogger(__name__)
        self.identity: Identity | None = None
        self._lock = threading.Lock()
        self._commands: dict[int, str] = {}
        self._command_events: dict[int, threading.Event] = {}

    def get_allowed_auths(self, username):
        return "publickey"

    def check_auth_password(self, username, password):
        return paramiko.AUTH_FAILED

    def check_auth_interactive(self, username, submethods):
        return paramiko.AUTH_FAILED

    def check_auth_publickey(self, username, key):
        identity = self.auth_gate.check(key)
        if identity is None:
            return paramiko.AUTH_FAILED
        self.identity = identity
        return paramiko.AUTH_SUCCESSFUL

    def check_channel_request(self, kind, chanid):
        if kind == "session":
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_exec_request(self, channel, command):
        if isinstance(command, bytes):
            command = command.decode("utf-8", errors="replace")
        with self._lock:
            self._commands[channel.get_id()] = command
            event = self._command_events.setdefault(channel.get_id(), threading.Event())
        event.set()
        return True

    def wait_for_command(self, chanid: int, timeout: float) -> str | None:
        """Block until the client sends an exec request on a channel."""
        with self._lock:
            event = self._command_events.setdefault(chanid, threading.Event())
        if not event.wait(timeout):
            return None
        with self._lock:
            return self._commands.pop(chanid, None)


class SSHServer:
    """Accepts SSH connections, each on its own thread, and each channel on its own thread."""

    def __init__(
        self,
        config: "Config",
        auth_gate: "AuthGate",
        receiver: "GitReceiver",
        host_keys: list[paramiko.PKey],
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the server.

        Args:
            config: Configuration object (listen address)
            auth_gate: Gate deciding which keys may push
            receiver: Receiver handling accepted channels
            host_keys: Host identity keys, at least one
            logger: Optional logger instance
        """
        self.host = config.SSH_HOST
        self.port = config.SSH_PORT
        self.auth_gate = auth_gate
        self.receiver = receiver
        self.host_keys = host_keys
        self.logger = logger or logging.getLogger(__name__)
        self._socket: socket.socket | None = None
        self._stopped = threading.Event()

    def serve_forever(self) -> None:
        """Listen and handle connections until shutdown() is called."""
        self._socket = socket.create_server((self.host, self.port), backlog=SSH_ACCEPT_BACKLOG)
        self.logger.info(f"Listening for git pushes on {self.host}:{self.port}")

        while not self._stopped.is_set():
            try:
                conn, addr = self._socket.accept()
            except OSError:
                if self._stopped.is_set():
                    break
                raise
            threading.Thread(
                target=self.handle_connection,
                args=(conn, addr),
                name=f"ssh-{addr[0]}:{addr[1]}",
                daemon=True,
            ).start()

    def shutdown(self) -> None:
        """Stop accepting connections."""
        self._stopped.set()
        if self._socket is not None:
            self._socket.close()

    def handle_connection(self, conn: socket.socket, addr: tuple) -> None:
        """Run the handshake for one connection and serve its channels."""
        transport = paramiko.Transport(conn)
        for host_key in self.host_keys:
            transport.add_server_key(host_key)

        server = BuilderServerInterface(self.auth_gate, logger=self.logger)
        try:
            transport.start_server(server=server)
        except (paramiko.SSHException, EOFError, OSError) as e:
            self.logger.warning(f"SSH handshake with {addr[0]} failed: {e}")
            transport.close()
            return

        local = conn.getsockname()
        ssh_connection = f"{addr[0]} {addr[1]} {local[0]} {local[1]}"

        channel_threads: list[threading.Thread] = []
        try:
            while transport.is_active():
                channel = transport.accept(SSH_CHANNEL_ACCEPT_TIMEOUT)
                channel_threads = [t for t in channel_threads if t.is_alive()]
                if channel is None:
                    if not transport.is_authenticated() or not channel_threads:
                        break
                    continue
                thread = threading.Thread(
                    target=self.handle_channel,
                    args=(channel, server, ssh_connection),
                    daemon=True,
                )
                thread.start()
                channel_threads.append(thread)
            for thread in channel_threads:
                thread.join()
        finally:
            transport.close()
            self.logger.debug(f"Connection from {addr[0]} closed")

    def handle_channel(self, channel: paramiko.Channel, server: BuilderServerInterface, ssh_connection: str) -> None:
        """Serve one channel and report the outcome as its exit status."""
        status = 1
        try:
            command = server.wait_for_command(channel.get_id(), SSH_CHANNEL_ACCEPT_TIMEOUT)
            if command is None:
                self._send_stderr(channel, "No command given\n")
                raise ProtocolError("No command given")
            self.logger.debug(f"Channel {channel.get_id()} requested: {command}")

            try:
                operation, repo = parse_command(command)
            except ProtocolError as e:
                channel.sendall_stderr(f"{e}\n".encode())
                raise

            identity = server.identity or Identity(fingerprint="")
            self.receiver.receive(
                operation, repo, channel,
                ssh_connection=ssh_connection, fingerprint=identity.fingerprint, user=identity.user,
            )
            status = 0
        except BuilderError as e:
            self.logger.error(f"Push failed: {e}")
            # Protocol and git shell errors have already been relayed to the client
            if not isinstance(e, (ProtocolError, GitShellError)):
                self._send_stderr(channel, f"{e}\n")
        except OSError as e:
            self.logger.warning(f"Channel {channel.get_id()} broke: {e}")
        finally:
            try:
                channel.send_exit_status(status)
            except (OSError, EOFError, paramiko.SSHException) as e:
                self.logger.debug(f"Could not send exit status: {e}")
            channel.close()

    def _send_stderr(self, channel: paramiko.Channel, message: str) -> None:
        try:
            channel.sendall_stderr(message.encode())
        except OSError as e:
            self.logger.debug(f"Could not relay error to client: {e}")
