"""
Session management - one handle type for local and remote terminals.

Provides two session implementations behind the Session interface:

- LocalSession: the platform shell on a local PTY
- RemoteSession: Paramiko-based SSH shell, optionally through a SOCKS/HTTP
  proxy and with X11 forwarding

Use create() to build either from options, and test_connection() to check
remote credentials without opening a shell.
"""

from .base import (
    Session,
    SessionState,
    SessionEvent,
    EventKind,
    StreamKind,
    DataReceived,
    SessionExited,
    StateChanged,
    ForwardFailed,
)
from .options import (
    SessionOptions,
    SessionType,
    ProxyOptions,
    HostContext,
    build_connect_options,
    load_profiles,
)
from .local import LocalSession, select_shell
from .ssh import RemoteSession
from .proxy import ProxyConnector
from .x11 import DisplayResolver, X11ForwardBridge, ForwardedChannel
from .factory import create, build_session, test_connection
from .pty_transport import (
    PTYTransport,
    create_pty,
    is_pty_available,
    IS_WINDOWS,
    HAS_PEXPECT,
)

__all__ = [
    # Base classes
    "Session",
    "SessionState",
    "SessionEvent",
    "EventKind",
    "StreamKind",
    "DataReceived",
    "SessionExited",
    "StateChanged",
    "ForwardFailed",
    # Options
    "SessionOptions",
    "SessionType",
    "ProxyOptions",
    "HostContext",
    "build_connect_options",
    "load_profiles",
    # Session implementations
    "LocalSession",
    "RemoteSession",
    "select_shell",
    # Collaborators
    "ProxyConnector",
    "DisplayResolver",
    "X11ForwardBridge",
    "ForwardedChannel",
    # Construction
    "create",
    "build_session",
    "test_connection",
    # PTY support
    "PTYTransport",
    "create_pty",
    "is_pty_available",
    "IS_WINDOWS",
    "HAS_PEXPECT",
]
