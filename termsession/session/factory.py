"""
Session construction.

``create()`` is the single entry point for callers: it picks the session
variant from the declared type, assigns the id, and brings the session up.
``test_connection()`` checks remote credentials without opening a shell.
"""

from __future__ import annotations
import logging
import uuid
from typing import Any, Callable, Mapping, Optional, Union

from ..errors import UnsupportedSessionType
from .base import Session
from .local import LocalSession
from .options import SessionOptions, SessionType, HostContext
from .ssh import RemoteSession

logger = logging.getLogger(__name__)

SESSION_CLASSES: dict[SessionType, type[Session]] = {
    SessionType.LOCAL: LocalSession,
    SessionType.REMOTE: RemoteSession,
}

OptionsLike = Union[SessionOptions, Mapping[str, Any]]


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def _as_options(options: OptionsLike) -> SessionOptions:
    if isinstance(options, SessionOptions):
        return options
    return SessionOptions.from_dict(options)


def build_session(
    options: OptionsLike,
    context: Optional[HostContext] = None,
    id_factory: Callable[[], str] = generate_id,
) -> Session:
    """
    Construct, but do not initialize, the session for these options.

    Raises:
        UnsupportedSessionType: If options.type names no implementation
    """
    options = _as_options(options)
    session_type = options.session_type
    if session_type is None:
        raise UnsupportedSessionType(f"Unsupported session type: {options.type!r}")

    session_cls = SESSION_CLASSES[session_type]
    return session_cls(options, id_factory(), context)


def create(
    options: OptionsLike,
    context: Optional[HostContext] = None,
    id_factory: Callable[[], str] = generate_id,
) -> Session:
    """
    Create and initialize a session.

    Args:
        options: SessionOptions or a dict of them (camelCase accepted)
        context: Host environment; defaults to the running process
        id_factory: Source of session ids

    Returns:
        Running session (process spawned or shell channel open)

    Raises:
        UnsupportedSessionType: Unknown or missing type
        SpawnError: Local process failed to start
        ProxyError, RemoteConnectionError: Remote connection failed
    """
    session = build_session(options, context, id_factory)
    logger.info(f"Creating {session.type.value} session {session.id}")
    session.init()
    return session


def test_connection(
    options: OptionsLike,
    context: Optional[HostContext] = None,
) -> bool:
    """
    Check that a remote host accepts these credentials.

    Connects and authenticates, then closes immediately; no shell channel
    is opened.

    Returns:
        True once authentication succeeded

    Raises:
        ProxyError, RemoteConnectionError: Connection or authentication failed
    """
    session = RemoteSession(_as_options(options), generate_id(), context)
    return session.connect(test_only=True)


# Not a pytest test despite the name
test_connection.__test__ = False
