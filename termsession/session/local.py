"""
Local terminal session.
Runs the platform shell on a PTY and streams its output to subscribers.
"""

import ntpath
import threading
import time
import logging
from typing import List, Optional, Tuple

from ..config import get_settings
from ..errors import SpawnError, WriteError
from .base import Session, SessionState, DataReceived, SessionExited
from .options import SessionType, HostContext
from .pty_transport import create_pty, is_pty_available, PTYTransport

logger = logging.getLogger(__name__)

POWERSHELL_PATH = ntpath.join("System32", "WindowsPowerShell", "v1.0", "powershell.exe")
POSIX_SHELL = "bash"


def select_shell(context: HostContext) -> Tuple[str, List[str]]:
    """
    Pick executable and arguments for the local shell.

    Windows gets PowerShell from %windir%, everything else bash;
    macOS starts it as a login shell.
    """
    if context.is_windows:
        windir = context.environ.get("windir") or context.environ.get("WINDIR", "C:\\Windows")
        return ntpath.join(windir, POWERSHELL_PATH), []
    argv = ["--login"] if context.platform.startswith("darwin") else []
    return POSIX_SHELL, argv


class LocalSession(Session):
    """
    Session backed by a local PTY process.

    Usage:
        session = LocalSession(SessionOptions(type="local"), "abc123")
        session.subscribe("data", lambda event: print(event.data))
        session.init()
        session.write("ls\\r")
    """

    session_type = SessionType.LOCAL

    READ_BUFFER_SIZE = 8192

    def __init__(self, options, session_id, context=None):
        super().__init__(options, session_id, context)
        self._pty: Optional[PTYTransport] = None
        self._stop = threading.Event()

    @property
    def pty(self) -> Optional[PTYTransport]:
        return self._pty

    def init(self) -> None:
        """Spawn the shell. Raises SpawnError if it cannot be started."""
        if not is_pty_available():
            raise SpawnError("PTY unavailable. On Windows, install pywinpty.", self.id)

        settings = get_settings()
        exe, argv = select_shell(self.context)
        cols = self.options.cols or settings.default_cols
        rows = self.options.rows or settings.default_rows
        term_name = self.options.term or settings.default_term_type

        logger.info(f"Spawning: {exe} {' '.join(argv)} ({cols}x{rows})")
        self._set_state(SessionState.CONNECTING)

        try:
            self._pty = create_pty(cols, rows)
            self._pty.spawn(
                [exe, *argv],
                env=self.context.environ,
                cwd=self.context.home_dir,
                term_name=term_name,
            )
        except (OSError, RuntimeError) as e:
            self._pty = None
            self._set_state(SessionState.CLOSED, str(e))
            raise SpawnError(f"Failed to spawn {exe}: {e}", self.id) from e

        self._set_state(SessionState.SHELL_OPEN)
        self._stop.clear()
        threading.Thread(
            target=self._read_loop, name=f"local-{self.id}", daemon=True
        ).start()

    def _write(self, data: bytes) -> None:
        if self._pty is None:
            raise WriteError("Session has no running process", self.id)
        self._pty.write(data)

    def resize(self, cols: int, rows: int) -> None:
        """Resize terminal. Ignored once the process is gone."""
        if self._pty:
            self._pty.resize(cols, rows)

    def kill(self) -> None:
        """Terminate the process."""
        self._stop.set()
        if self._pty:
            self._pty.close()
            self._pty = None
        if self.state != SessionState.CLOSED:
            self._set_state(SessionState.CLOSED, "Killed")

    def _read_loop(self) -> None:
        """Forward PTY output until the process exits or kill() is called."""
        pty = self._pty
        try:
            while not self._stop.is_set() and pty.is_alive:
                data = pty.read(self.READ_BUFFER_SIZE)
                if data:
                    self._emit(DataReceived(data))
                else:
                    time.sleep(0.01)

            # Drain whatever the process wrote before exiting
            while not self._stop.is_set():
                data = pty.read(self.READ_BUFFER_SIZE)
                if not data:
                    break
                self._emit(DataReceived(data))
        except Exception:
            logger.exception(f"Local session {self.id} read loop failed")

        if self._stop.is_set():
            return

        exit_code = pty.exit_code
        msg = f"Process exited (code {exit_code})" if exit_code is not None else "Process exited"
        pty.close()
        self._pty = None
        self._emit(SessionExited(exit_code))
        self._set_state(SessionState.CLOSED, msg)
