"""
Exception hierarchy for terminal sessions.

Creation and connection errors propagate to the caller of ``create()`` or
``test_connection()``. Forwarding errors stay inside the X11 bridge that
raised them, and write errors are logged by the session and never re-raised.
"""

from __future__ import annotations
from typing import Optional


class TermSessionError(Exception):
    """Base class for all termsession errors."""

    def __init__(self, message: str = "", session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


class UnsupportedSessionType(TermSessionError, ValueError):
    """Session options name a type with no matching implementation."""


class SpawnError(TermSessionError):
    """Local process could not be started."""


class RemoteConnectionError(TermSessionError):
    """SSH connection could not be established."""


class AuthenticationError(RemoteConnectionError):
    """Every authentication method was rejected."""


class ChannelOpenError(RemoteConnectionError):
    """Authenticated, but the interactive shell channel could not be opened."""


class ProxyError(TermSessionError):
    """SOCKS/HTTP proxy tunnel could not be established."""


class ForwardingError(TermSessionError):
    """X11 forward could not reach a local display."""


class DisplayNotFound(ForwardingError):
    """No display number could be resolved from the host context."""


class WriteError(TermSessionError):
    """Input could not be delivered to the session."""
