"""
X11 forwarding bridge.

When the remote side opens an X11 channel (an X client started in the SSH
shell), the bridge finds the local X server and pipes bytes between the
two until either side closes.

Display discovery:
    1. DISPLAY resolves to a number n: connect once to /tmp/.X11-unix/Xn.
       A refusal is final for that forward.
    2. Otherwise scan localhost TCP ports 6000..65535 and take the first
       one that accepts. The scan never goes past 65535.
"""

from __future__ import annotations
import logging
import re
import select
import socket
import threading
from enum import Enum, auto
from typing import Callable, Optional

from ..errors import DisplayNotFound, ForwardingError
from .options import HostContext

logger = logging.getLogger(__name__)

X11_UNIX_SOCKET = "/tmp/.X11-unix/X{display}"
X11_BASE_PORT = 6000
PORT_LIMIT = 65536

DISPLAY_PATTERN = re.compile(r":(\d+)")


class DisplayResolver:
    """Reads the X display number from the host context."""

    def __init__(self, context: HostContext):
        self.context = context

    def __call__(self) -> int:
        return self.resolve()

    def resolve(self) -> int:
        """
        Returns:
            Display number from DISPLAY (":0" -> 0, "localhost:10.0" -> 10)

        Raises:
            DisplayNotFound: If DISPLAY is unset or unparseable
        """
        display = self.context.display
        if not display:
            raise DisplayNotFound("DISPLAY is not set")
        match = DISPLAY_PATTERN.search(display)
        if not match:
            raise DisplayNotFound(f"Cannot parse DISPLAY={display!r}")
        return int(match.group(1))


class ForwardState(Enum):
    CONNECTING = auto()
    PIPING = auto()
    CLOSED = auto()


class ForwardedChannel:
    """
    One forwarded X11 connection: the SSH channel and the local display socket.

    Both ends are closed together, whichever side finishes first.
    """

    BUFFER_SIZE = 32768
    POLL_INTERVAL = 0.5

    def __init__(self, channel, origin: tuple = ("", 0)):
        self.channel = channel
        self.origin = origin
        self.display_sock: Optional[socket.socket] = None
        self._state = ForwardState.CONNECTING
        self._lock = threading.Lock()

    @property
    def state(self) -> ForwardState:
        return self._state

    def attach(self, display_sock: socket.socket) -> None:
        with self._lock:
            if self._state is ForwardState.CLOSED:
                display_sock.close()
                return
            self.display_sock = display_sock
            self._state = ForwardState.PIPING

    def pipe(self) -> None:
        """Copy bytes in both directions until either end closes or fails."""
        try:
            while self._state is ForwardState.PIPING:
                readable, _, _ = select.select(
                    [self.channel, self.display_sock], [], [], self.POLL_INTERVAL
                )
                for src in readable:
                    dst = self.display_sock if src is self.channel else self.channel
                    data = src.recv(self.BUFFER_SIZE)
                    if not data:
                        return
                    dst.sendall(data)
        except (OSError, EOFError, ValueError) as e:
            # ValueError: select() on an fd closed by another thread
            if self._state is not ForwardState.CLOSED:
                logger.debug(f"X11 forward from {self.origin} ended: {e}")
        finally:
            self.close()

    def close(self) -> None:
        with self._lock:
            if self._state is ForwardState.CLOSED:
                return
            self._state = ForwardState.CLOSED

        for end in (self.display_sock, self.channel):
            if end is None:
                continue
            try:
                end.close()
            except Exception as e:
                logger.debug(f"Error closing X11 forward end: {e}")
        logger.debug(f"X11 forward from {self.origin} closed")


class X11ForwardBridge:
    """
    Serves X11 channel requests for one SSH session.

    Each request gets its own thread, so several X windows can be open at
    once without holding up each other or the shell.

    Args:
        resolver: Callable returning the display number; any exception
            means "unknown display"
        host: Address scanned when the display is unknown
        connect_timeout: Per-attempt connect timeout in seconds
        on_failure: Called with (origin, reason) when a forward cannot reach
            a display. The forwarded channel is already closed by then.
    """

    def __init__(
        self,
        resolver: Callable[[], int],
        host: str = "localhost",
        connect_timeout: float = 1.0,
        on_failure: Optional[Callable[[tuple, str], None]] = None,
    ):
        self.resolver = resolver
        self.host = host
        self.connect_timeout = connect_timeout
        self.on_failure = on_failure
        self._forwards: set[ForwardedChannel] = set()
        self._lock = threading.Lock()

    @property
    def active_forwards(self) -> int:
        with self._lock:
            return len(self._forwards)

    def handle(self, channel, origin: tuple = ("", 0)) -> threading.Thread:
        """
        Entry point for paramiko's X11 handler.

        Called on the SSH transport thread, so the work is moved to a
        thread of its own.
        """
        logger.info(f"X11 forward request from {origin}")
        forward = ForwardedChannel(channel, origin)
        with self._lock:
            self._forwards.add(forward)
        thread = threading.Thread(
            target=self._run, args=(forward,), name=f"x11-{origin}", daemon=True
        )
        thread.start()
        return thread

    def close_all(self) -> None:
        with self._lock:
            forwards = list(self._forwards)
        for forward in forwards:
            forward.close()

    def _run(self, forward: ForwardedChannel) -> None:
        try:
            try:
                display_sock = self.open_display()
            except ForwardingError as e:
                logger.warning(f"X11 forward from {forward.origin} failed: {e}")
                forward.close()
                if self.on_failure:
                    self.on_failure(forward.origin, str(e))
                return

            forward.attach(display_sock)
            forward.pipe()
        finally:
            with self._lock:
                self._forwards.discard(forward)

    def open_display(self) -> socket.socket:
        """
        Connect to the local X server.

        Raises:
            ForwardingError: If no display accepts the connection
        """
        display = self._resolve_display()
        if display is not None:
            return self._connect_unix(display)
        return self._scan_tcp()

    def _resolve_display(self) -> Optional[int]:
        try:
            return self.resolver()
        except Exception as e:
            logger.debug(f"No X display known ({e}), scanning TCP ports")
            return None

    def _connect_unix(self, display: int) -> socket.socket:
        path = X11_UNIX_SOCKET.format(display=display)
        if not hasattr(socket, "AF_UNIX"):
            raise ForwardingError(f"Display :{display} needs Unix sockets ({path})")

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.settimeout(self.connect_timeout)
            sock.connect(path)
        except OSError as e:
            sock.close()
            raise ForwardingError(f"Cannot connect to display :{display} at {path}: {e}") from e
        sock.settimeout(None)
        logger.debug(f"Connected to X server at {path}")
        return sock

    def _scan_tcp(self, start: int = X11_BASE_PORT) -> socket.socket:
        for port in range(start, PORT_LIMIT):
            try:
                sock = socket.create_connection(
                    (self.host, port), timeout=self.connect_timeout
                )
            except OSError:
                continue
            sock.settimeout(None)
            logger.debug(f"Connected to X server at {self.host}:{port}")
            return sock
        raise ForwardingError(
            f"No X server accepted a connection on {self.host}:{start}-{PORT_LIMIT - 1}"
        )
