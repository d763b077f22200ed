"""
Abstract session interface.
"""

from __future__ import annotations
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Optional, Callable, Union

from .options import SessionOptions, SessionType, HostContext

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle states."""
    IDLE = auto()
    CONNECTING = auto()
    AUTHENTICATING = auto()
    READY = auto()
    SHELL_OPEN = auto()
    TEST_SUCCEEDED = auto()
    CLOSED = auto()


class EventKind(str, Enum):
    """Discriminator for session events."""
    DATA = "data"
    EXIT = "exit"
    STATE = "state"
    FORWARD_FAILED = "forward-failed"


class StreamKind(str, Enum):
    """Which output stream produced the data."""
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass
class SessionEvent:
    """Base class for session events."""
    kind: EventKind = field(init=False)


@dataclass
class DataReceived(SessionEvent):
    """Output from the process or remote shell."""
    data: bytes
    stream: StreamKind = StreamKind.STDOUT

    def __post_init__(self):
        self.kind = EventKind.DATA


@dataclass
class SessionExited(SessionEvent):
    """Process or remote shell ended."""
    exit_code: Optional[int] = None

    def __post_init__(self):
        self.kind = EventKind.EXIT


@dataclass
class StateChanged(SessionEvent):
    """Session state changed."""
    old_state: SessionState
    new_state: SessionState
    message: str = ""

    def __post_init__(self):
        self.kind = EventKind.STATE


@dataclass
class ForwardFailed(SessionEvent):
    """An X11 forward request could not reach a local display."""
    origin: tuple
    reason: str

    def __post_init__(self):
        self.kind = EventKind.FORWARD_FAILED


EventCallback = Callable[[SessionEvent], None]


class Session(ABC):
    """
    Abstract session interface.

    One handle type for local and remote terminals. Callers create it
    through ``create()``, then talk to it with resize/write/subscribe/kill
    without knowing which variant is behind it.
    """

    session_type: SessionType

    def __init__(
        self,
        options: SessionOptions,
        session_id: str,
        context: Optional[HostContext] = None,
    ):
        self.id = session_id
        self.options = options
        self.context = context or HostContext.current()

        self._state = SessionState.IDLE
        self._state_lock = threading.Lock()
        self._subscribers: dict[EventKind, list[EventCallback]] = defaultdict(list)

    @property
    def type(self) -> SessionType:
        return self.session_type

    @property
    def state(self) -> SessionState:
        """Current session state (thread-safe)."""
        with self._state_lock:
            return self._state

    @abstractmethod
    def init(self) -> None:
        """
        Bring the session up.
        Blocks until the process is spawned or the shell channel is open.
        """

    @abstractmethod
    def resize(self, cols: int, rows: int) -> None:
        """Notify the terminal of a new window size."""

    @abstractmethod
    def kill(self) -> None:
        """Release the session's process or connection."""

    @abstractmethod
    def _write(self, data: bytes) -> None:
        """Deliver bytes to the session; raises on failure."""

    def write(self, data: Union[bytes, str]) -> None:
        """Send input. Failures are logged and never raised to the caller."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            self._write(data)
        except Exception as e:
            logger.error(f"Write error on session {self.id}: {e}")

    def subscribe(
        self,
        kind: Union[EventKind, str],
        callback: EventCallback,
    ) -> Callable[[], None]:
        """
        Register a callback for one kind of event.

        Args:
            kind: EventKind or its string value ("data", "exit", ...)
            callback: Called with the SessionEvent, on the session's I/O thread

        Returns:
            Callable that removes the subscription
        """
        kind = EventKind(kind)
        self._subscribers[kind].append(callback)

        def unsubscribe():
            if callback in self._subscribers[kind]:
                self._subscribers[kind].remove(callback)

        return unsubscribe

    def _emit(self, event: SessionEvent) -> None:
        """Emit event to subscribers of its kind."""
        for callback in list(self._subscribers[event.kind]):
            try:
                callback(event)
            except Exception as e:
                logger.exception(f"Event handler error: {e}")

    def _set_state(self, new_state: SessionState, message: str = "") -> None:
        """Update state and emit event."""
        with self._state_lock:
            old_state = self._state
            self._state = new_state
        logger.info(
            f"Session {self.id} state: {old_state.name} -> {new_state.name} {message}"
        )
        self._emit(StateChanged(old_state, new_state, message))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.state.name}>"
