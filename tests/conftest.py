"""Pytest configuration and shared fixtures."""

import threading
from typing import Optional
from unittest.mock import MagicMock

import pytest

from termsession import config
from termsession.session import HostContext, SessionOptions


class FakePTY:
    """Stands in for PTYTransport; output is fed through ``output``."""

    def __init__(self, cols: int = 80, rows: int = 24):
        self.cols = cols
        self.rows = rows
        self.spawned: Optional[dict] = None
        self.output: list[bytes] = []
        self.written: list[bytes] = []
        self.alive = True
        self.closed = False
        self.fail_write = False
        self.exit_code: Optional[int] = None

    def spawn(self, command, env=None, cwd=None, term_name="xterm-color"):
        self.spawned = {"command": command, "env": env, "cwd": cwd, "term_name": term_name}

    def read(self, size=4096):
        return self.output.pop(0) if self.output else b""

    def write(self, data):
        if self.fail_write:
            raise OSError("Broken pipe")
        self.written.append(data)
        return len(data)

    def resize(self, cols, rows):
        self.cols, self.rows = cols, rows

    def close(self):
        self.closed = True
        self.alive = False

    @property
    def is_alive(self):
        return self.alive and not self.closed


class FakeChannel:
    """Paramiko channel with canned stdout/stderr chunks."""

    def __init__(self, stdout=(), stderr=(), exit_status=0, eof=True):
        self._stdout = list(stdout)
        self._stderr = list(stderr)
        self._exit_status = exit_status
        self._eof = eof
        self.closed = False
        self.sent: list[bytes] = []
        self.window = None
        self.pty_request = None
        self.x11_handler = None
        self.shell_invoked = False

    def get_pty(self, term="vt100", width=80, height=24):
        self.pty_request = (term, width, height)

    def request_x11(self, handler=None):
        self.x11_handler = handler

    def invoke_shell(self):
        self.shell_invoked = True

    @property
    def eof_received(self):
        return self._eof and not self._stdout and not self._stderr

    def recv_ready(self):
        return bool(self._stdout)

    def recv(self, size):
        return self._stdout.pop(0)

    def recv_stderr_ready(self):
        return bool(self._stderr)

    def recv_stderr(self, size):
        return self._stderr.pop(0)

    def exit_status_ready(self):
        return True

    def recv_exit_status(self):
        return self._exit_status

    def sendall(self, data):
        self.sent.append(data)

    def resize_pty(self, width, height):
        self.window = (width, height)

    def close(self):
        self.closed = True


def wait_for(event: threading.Event, timeout: float = 2.0) -> bool:
    return event.wait(timeout)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep tests away from ~/.termsession/config.json."""
    manager = config.SettingsManager(tmp_path / "config.json")
    monkeypatch.setattr(config, "_manager", manager)
    return manager.settings


@pytest.fixture
def linux_context() -> HostContext:
    return HostContext(
        environ={"HOME": "/home/alice", "PATH": "/usr/bin", "DISPLAY": ":0"},
        platform="linux",
    )


@pytest.fixture
def darwin_context() -> HostContext:
    return HostContext(environ={"HOME": "/Users/alice"}, platform="darwin")


@pytest.fixture
def windows_context() -> HostContext:
    return HostContext(
        environ={"USERPROFILE": "C:\\Users\\alice", "windir": "C:\\Windows"},
        platform="win32",
    )


@pytest.fixture
def fake_pty(monkeypatch) -> FakePTY:
    pty = FakePTY()

    def create(cols=80, rows=24):
        pty.cols, pty.rows = cols, rows
        return pty

    monkeypatch.setattr("termsession.session.local.create_pty", create)
    monkeypatch.setattr("termsession.session.local.is_pty_available", lambda: True)
    return pty


@pytest.fixture
def remote_options() -> SessionOptions:
    return SessionOptions.from_dict({
        "type": "remote",
        "host": "h",
        "port": 22,
        "username": "u",
        "password": "p",
    })


@pytest.fixture
def ssh_transport(monkeypatch):
    """Patch the TCP connect and paramiko.Transport; returns the transport mock."""
    transport = MagicMock(name="Transport")
    transport.is_authenticated.return_value = True
    transport.open_session.return_value = FakeChannel(eof=False)

    transport_cls = MagicMock(name="TransportClass", return_value=transport)
    create_connection = MagicMock(name="create_connection", return_value=MagicMock(name="socket"))

    monkeypatch.setattr("termsession.session.ssh.paramiko.Transport", transport_cls)
    monkeypatch.setattr("termsession.session.ssh.socket.create_connection", create_connection)

    transport.cls = transport_cls
    transport.create_connection = create_connection
    return transport
