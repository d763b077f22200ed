"""
termsession - terminal sessions for browser and app terminal emulators.

One handle for both kinds of terminal:
- Local shell on a PTY (PowerShell on Windows, bash elsewhere)
- Remote shell over SSH (Paramiko), with SOCKS/HTTP proxy chaining
  and X11 forwarding

Usage:
    from termsession import create

    session = create({"type": "remote", "host": "h", "username": "u", "password": "p"})
    session.subscribe("data", lambda event: print(event.data.decode(), end=""))
    session.write("uname -a\\n")
    session.kill()
"""

__version__ = "0.1.0"

from .errors import (
    TermSessionError,
    UnsupportedSessionType,
    SpawnError,
    RemoteConnectionError,
    AuthenticationError,
    ChannelOpenError,
    ProxyError,
    ForwardingError,
    DisplayNotFound,
    WriteError,
)
from .session import (
    Session,
    SessionState,
    EventKind,
    StreamKind,
    SessionOptions,
    ProxyOptions,
    HostContext,
    LocalSession,
    RemoteSession,
    create,
    test_connection,
)

__all__ = [
    # Construction
    "create",
    "test_connection",
    # Sessions
    "Session",
    "SessionState",
    "EventKind",
    "StreamKind",
    "LocalSession",
    "RemoteSession",
    # Options
    "SessionOptions",
    "ProxyOptions",
    "HostContext",
    # Errors
    "TermSessionError",
    "UnsupportedSessionType",
    "SpawnError",
    "RemoteConnectionError",
    "AuthenticationError",
    "ChannelOpenError",
    "ProxyError",
    "ForwardingError",
    "DisplayNotFound",
    "WriteError",
]
