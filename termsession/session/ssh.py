"""
SSH session implementation using Paramiko.
"""

from __future__ import annotations
import os
import socket
import threading
import time
import logging
from io import StringIO
from typing import Callable, Optional

import paramiko

from ..config import get_settings
from ..errors import (
    TermSessionError, RemoteConnectionError, AuthenticationError,
    ChannelOpenError, WriteError,
)
from .base import (
    Session, SessionState, DataReceived, SessionExited, ForwardFailed, StreamKind,
)
from .options import SessionType, build_connect_options
from .proxy import ProxyConnector
from .x11 import DisplayResolver, X11ForwardBridge

logger = logging.getLogger(__name__)


class RemoteSession(Session):
    """
    Interactive shell on a remote host over SSH.

    ``connect()`` blocks until the shell is open; output is then read on a
    background thread and emitted as DataReceived events tagged with the
    stream (stdout or stderr) it came from.

    Authentication is attempted in this order, skipping what isn't
    configured: private key, SSH agent, password, keyboard-interactive.
    Keyboard-interactive answers every prompt set with the configured
    password, so only single-prompt (password style) challenges succeed.
    """

    session_type = SessionType.REMOTE

    READ_BUFFER_SIZE = 65536

    def __init__(
        self,
        options,
        session_id,
        context=None,
        proxy_connector: Optional[ProxyConnector] = None,
        display_resolver: Optional[Callable[[], int]] = None,
    ):
        super().__init__(options, session_id, context)
        settings = get_settings()

        self._transport: Optional[paramiko.Transport] = None
        self._channel: Optional[paramiko.Channel] = None
        self._stop_event = threading.Event()
        self._connect_options: dict = {}

        self._proxy_connector = proxy_connector or ProxyConnector(settings.ready_timeout)
        self.x11_bridge = X11ForwardBridge(
            display_resolver or DisplayResolver(self.context),
            connect_timeout=settings.x11_connect_timeout,
            on_failure=self._on_forward_failed,
        )

    @property
    def transport(self) -> Optional[paramiko.Transport]:
        return self._transport

    @property
    def channel(self) -> Optional[paramiko.Channel]:
        return self._channel

    @property
    def connect_options(self) -> dict:
        """Options the last connect() used, after normalization and proxying."""
        return self._connect_options

    def init(self) -> None:
        self.connect()

    def connect(self, test_only: bool = False) -> bool:
        """
        Connect, authenticate and (unless test_only) open the shell.

        Args:
            test_only: Close the connection as soon as authentication
                succeeds, without opening a channel

        Returns:
            True on success

        Raises:
            ProxyError: Proxy tunnel failed; no direct connection is tried
            AuthenticationError: Every auth method was rejected
            ChannelOpenError: Shell channel could not be opened
            RemoteConnectionError: TCP or SSH handshake failure
        """
        settings = get_settings()
        opts = build_connect_options(
            self.options,
            self.context,
            ready_timeout=settings.ready_timeout,
            keepalive_interval=settings.keepalive_interval,
        )
        self._connect_options = opts
        self._stop_event.clear()

        sock = None
        try:
            self._set_state(SessionState.CONNECTING)
            sock = self._open_socket(opts)
            self._transport = self._start_transport(sock, opts)

            self._set_state(SessionState.AUTHENTICATING)
            self._authenticate(self._transport, opts)
            self._set_state(SessionState.READY)

            if test_only:
                self._transport.close()
                self._transport = None
                self._set_state(SessionState.TEST_SUCCEEDED)
                self._set_state(SessionState.CLOSED, "Test connection closed")
                return True

            self._channel = self._open_shell(self._transport, opts)
            self._set_state(SessionState.SHELL_OPEN)

        except TermSessionError as e:
            e.session_id = self.id
            logger.error(f"Session {self.id} connect failed: {e}")
            self._teardown(sock)
            self._set_state(SessionState.CLOSED, str(e))
            raise

        threading.Thread(
            target=self._read_loop, name=f"ssh-{self.id}", daemon=True
        ).start()
        return True

    def _open_socket(self, opts: dict) -> socket.socket:
        """Connected socket to the SSH server, through the proxy if one is set."""
        proxy = self.options.proxy
        if proxy is not None and proxy.enabled:
            sock = self._proxy_connector.connect(self.options)
            del opts["host"]
            del opts["port"]
            opts["sock"] = sock
            return sock

        try:
            return socket.create_connection(
                (opts["host"], opts["port"]), timeout=opts["ready_timeout"]
            )
        except OSError as e:
            raise RemoteConnectionError(
                f"Cannot reach {opts['host']}:{opts['port']}: {e}"
            ) from e

    def _start_transport(self, sock: socket.socket, opts: dict) -> paramiko.Transport:
        """Run the SSH handshake on an already connected socket."""
        try:
            transport = paramiko.Transport(sock)
            transport.start_client(timeout=opts["ready_timeout"])
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise RemoteConnectionError(f"SSH handshake failed: {e}") from e

        key = transport.get_remote_server_key()
        logger.debug(
            f"Server key: {key.get_name()} {key.get_fingerprint().hex()}, "
            f"cipher={transport.remote_cipher}, mac={transport.remote_mac}"
        )

        if opts.get("keepalive_interval"):
            transport.set_keepalive(int(opts["keepalive_interval"]))
        return transport

    def _authenticate(self, transport: paramiko.Transport, opts: dict) -> None:
        username = opts.get("username")
        attempts = []

        if "private_key" in opts:
            attempts.append(("publickey", lambda: transport.auth_publickey(
                username, self._load_key_from_string(opts["private_key"], opts.get("passphrase"))
            )))
        if "agent" in opts:
            # paramiko.Agent always connects to this process's SSH_AUTH_SOCK
            if opts["agent"] == os.environ.get("SSH_AUTH_SOCK"):
                attempts.append(("agent", lambda: self._auth_agent(transport, username)))
            else:
                logger.debug(f"Skipping agent auth: {opts['agent']} is not SSH_AUTH_SOCK of this process")
        if "password" in opts:
            attempts.append(("password", lambda: transport.auth_password(
                username, opts["password"]
            )))
        if opts.get("try_keyboard_interactive"):
            attempts.append(("keyboard-interactive", lambda: transport.auth_interactive(
                username, self._keyboard_interactive_handler(opts.get("password", ""))
            )))

        last_error = None
        for method, attempt in attempts:
            try:
                logger.info(f"Trying auth method: {method}")
                attempt()
            except paramiko.BadAuthenticationType as e:
                last_error = e
                logger.debug(f"Server refused {method}, allowed: {e.allowed_types}")
            except paramiko.SSHException as e:
                # AuthenticationException, unparseable key, agent failures
                last_error = e
                logger.debug(f"Auth method {method} failed: {e}")
            except (OSError, EOFError) as e:
                raise RemoteConnectionError(
                    f"Connection lost during {method} auth: {e}"
                ) from e

            if transport.is_authenticated():
                logger.info(f"Authenticated as {username} via {method}")
                return

        raise AuthenticationError(
            f"All auth methods failed for {username}. Last error: {last_error}"
        ) from last_error

    @staticmethod
    def _keyboard_interactive_handler(password: str):
        def handler(title, instructions, prompt_list):
            return [password] if prompt_list else []
        return handler

    @staticmethod
    def _auth_agent(transport: paramiko.Transport, username: str) -> None:
        agent = paramiko.Agent()
        try:
            for key in agent.get_keys():
                try:
                    transport.auth_publickey(username, key)
                    return
                except paramiko.AuthenticationException:
                    continue
            raise paramiko.AuthenticationException("No agent key was accepted")
        finally:
            agent.close()

    @staticmethod
    def _load_key_from_string(key_data: str, passphrase: str = None) -> paramiko.PKey:
        """Load SSH key from string data."""
        key_file = StringIO(key_data)

        key_classes = [
            paramiko.RSAKey,
            paramiko.Ed25519Key,
            paramiko.ECDSAKey,
        ]

        for key_class in key_classes:
            try:
                key_file.seek(0)
                return key_class.from_private_key(key_file, password=passphrase)
            except (paramiko.SSHException, ValueError):
                continue

        raise paramiko.SSHException("Unable to parse private key")

    def _open_shell(self, transport: paramiko.Transport, opts: dict) -> paramiko.Channel:
        settings = get_settings()
        term = self.options.term or settings.default_term_type
        cols = self.options.cols or settings.default_cols
        rows = self.options.rows or settings.default_rows

        try:
            channel = transport.open_session(timeout=opts["ready_timeout"])
            channel.get_pty(term=term, width=cols, height=rows)
            if opts["x11"]:
                channel.request_x11(handler=self.x11_bridge.handle)
            channel.invoke_shell()
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise ChannelOpenError(f"Failed to open shell channel: {e}") from e

        logger.debug(f"Shell open: term={term} {cols}x{rows} x11={opts['x11']}")
        return channel

    def _read_loop(self) -> None:
        """Drain stdout and stderr until the channel closes or kill() is called."""
        channel = self._channel
        while not self._stop_event.is_set():
            try:
                stdout_ready = channel.recv_ready()
                stderr_ready = channel.recv_stderr_ready()

                if stdout_ready:
                    data = channel.recv(self.READ_BUFFER_SIZE)
                    if data:
                        self._emit(DataReceived(data, StreamKind.STDOUT))
                if stderr_ready:
                    data = channel.recv_stderr(self.READ_BUFFER_SIZE)
                    if data:
                        self._emit(DataReceived(data, StreamKind.STDERR))

                if not (stdout_ready or stderr_ready):
                    if channel.closed or channel.eof_received:
                        logger.info("Channel closed by remote")
                        break
                    time.sleep(0.01)

            except socket.timeout:
                continue
            except Exception:
                logger.exception("Read error")
                break

        if self._stop_event.is_set():
            return

        exit_code = channel.recv_exit_status() if channel.exit_status_ready() else None
        self._emit(SessionExited(exit_code))
        self._teardown()
        self._set_state(SessionState.CLOSED, "Connection closed")

    def _write(self, data: bytes) -> None:
        if self._channel is None or self._channel.closed:
            raise WriteError("Shell channel is not open", self.id)
        self._channel.sendall(data)

    def resize(self, cols: int, rows: int) -> None:
        """Set the remote terminal window size. Ignored once the channel is gone."""
        if self._channel and not self._channel.closed:
            try:
                self._channel.resize_pty(width=cols, height=rows)
            except Exception as e:
                logger.error(f"Resize error: {e}")

    def kill(self) -> None:
        """End the SSH connection."""
        logger.info(f"Closing remote session {self.id}")
        self._stop_event.set()
        self._teardown()
        if self.state != SessionState.CLOSED:
            self._set_state(SessionState.CLOSED, "Killed")

    def _on_forward_failed(self, origin: tuple, reason: str) -> None:
        self._emit(ForwardFailed(origin, reason))

    def _teardown(self, sock: Optional[socket.socket] = None) -> None:
        """Close forwards, channel and transport; sock only if no transport owns it."""
        self.x11_bridge.close_all()

        if self._channel:
            try:
                self._channel.close()
            except Exception as e:
                logger.debug(f"Error closing channel: {e}")
            self._channel = None

        if self._transport:
            try:
                self._transport.close()
            except Exception as e:
                logger.debug(f"Error closing transport: {e}")
            self._transport = None
        elif sock is not None:
            try:
                sock.close()
            except OSError:
                pass
