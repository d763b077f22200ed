"""
Pseudo-terminals for local shell sessions.

Three backends share the PTYTransport interface:

- PexpectPTY: pexpect.spawn (preferred on Unix)
- UnixPTY: pty.openpty + subprocess, when pexpect is missing
- WindowsPTY: ConPTY through pywinpty

create_pty() picks one for the running platform.
"""

from __future__ import annotations
import os
import sys
import subprocess
import logging
from abc import ABC, abstractmethod
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == 'win32'

HAS_PEXPECT = False
if not IS_WINDOWS:
    try:
        import pexpect
        HAS_PEXPECT = True
    except ImportError:
        logger.info("pexpect not installed - falling back to pty module")

if IS_WINDOWS:
    try:
        from winpty import PTY as WinPTY
        HAS_WINPTY = True
    except ImportError:
        HAS_WINPTY = False
        logger.warning("pywinpty not installed - local sessions unavailable on Windows")
else:
    import pty
    import fcntl
    import termios
    import struct
    import select
    HAS_WINPTY = False

# ioctl that makes a tty the caller's controlling terminal
TIOCSCTTY = 0x20007461 if sys.platform == 'darwin' else 0x540E

# errno when reading a master whose slave side is gone
EIO = 5


class PTYTransport(ABC):
    """
    A child process attached to a pseudo-terminal.

    Reads never block: they return b'' when nothing is waiting. The exit
    code is remembered once seen, so it survives close().
    """

    def __init__(self, cols: int = 80, rows: int = 24):
        self._cols = cols
        self._rows = rows
        self._exit_code: Optional[int] = None

    @abstractmethod
    def spawn(
        self,
        command: list[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        term_name: str = "xterm-color",
    ) -> None:
        """
        Start command on the terminal.

        Args:
            command: Executable followed by its arguments
            env: Complete environment for the child. None inherits ours.
            cwd: Working directory for the child
            term_name: Value of TERM in the child

        Raises:
            OSError: If the process cannot be started
        """

    @abstractmethod
    def read(self, size: int = 4096) -> bytes:
        """Up to size bytes of output, b'' if none is waiting."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Raises:
            OSError: If the terminal is closed or the write fails
        """

    @abstractmethod
    def resize(self, cols: int, rows: int) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        """Stop the child and release the terminal."""

    @abstractmethod
    def _poll(self) -> tuple[bool, Optional[int]]:
        """(running, exit code); the code is None while running."""

    @property
    def is_alive(self) -> bool:
        running, code = self._poll()
        if not running and self._exit_code is None:
            self._exit_code = code
        return running

    @property
    def exit_code(self) -> Optional[int]:
        if self._exit_code is None:
            self.is_alive
        return self._exit_code

    @property
    def size(self) -> tuple[int, int]:
        return self._cols, self._rows


def _child_env(env: Optional[Mapping[str, str]], term_name: str) -> dict:
    spawn_env = dict(os.environ if env is None else env)
    spawn_env['TERM'] = term_name
    return spawn_env


class UnixPTY(PTYTransport):
    """
    pty.openpty() plus subprocess.

    The child starts in a new session and adopts the slave as its
    controlling terminal, so job control and ^C work in the shell.
    """

    def __init__(self, cols: int = 80, rows: int = 24):
        super().__init__(cols, rows)
        self._master_fd: Optional[int] = None
        self._proc: Optional[subprocess.Popen] = None

    def spawn(self, command, env=None, cwd=None, term_name="xterm-color") -> None:
        master_fd, slave_fd = pty.openpty()
        slave_name = os.ttyname(slave_fd)
        self._set_winsize(slave_fd, self._cols, self._rows)

        def adopt_tty():
            fd = os.open(slave_name, os.O_RDWR)
            try:
                fcntl.ioctl(fd, TIOCSCTTY, 0)
            except OSError:
                pass
            os.close(fd)

        try:
            self._proc = subprocess.Popen(
                command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd,
                env=_child_env(env, term_name),
                start_new_session=True,
                preexec_fn=adopt_tty,
                close_fds=True,
            )
        except OSError:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        self._master_fd = master_fd
        logger.debug(f"Spawned PID {self._proc.pid}: {' '.join(command)}")

    def read(self, size: int = 4096) -> bytes:
        if self._master_fd is None:
            return b''
        try:
            ready, _, _ = select.select([self._master_fd], [], [], 0)
            return os.read(self._master_fd, size) if ready else b''
        except (BlockingIOError, InterruptedError):
            return b''
        except OSError as e:
            if e.errno != EIO:
                logger.debug(f"PTY read failed: {e}")
            return b''

    def write(self, data: bytes) -> int:
        if self._master_fd is None:
            raise OSError("PTY is closed")
        return os.write(self._master_fd, data)

    @staticmethod
    def _set_winsize(fd: int, cols: int, rows: int) -> None:
        fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack('HHHH', rows, cols, 0, 0))

    def resize(self, cols: int, rows: int) -> None:
        self._cols, self._rows = cols, rows
        if self._master_fd is None:
            return
        try:
            self._set_winsize(self._master_fd, cols, rows)
        except OSError as e:
            logger.warning(f"Resize failed: {e}")

    def close(self) -> None:
        if self._master_fd is not None:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
            self._master_fd = None

        if self._proc is None or self._proc.poll() is not None:
            return
        self._proc.terminate()
        try:
            self._proc.wait(timeout=1.0)
        except subprocess.TimeoutExpired:
            self._proc.kill()
            self._proc.wait()
        self.is_alive

    def _poll(self) -> tuple[bool, Optional[int]]:
        if self._proc is None:
            return False, None
        code = self._proc.poll()
        return code is None, code


class WindowsPTY(PTYTransport):
    """ConPTY through pywinpty (Windows 10 1809 or later)."""

    def __init__(self, cols: int = 80, rows: int = 24):
        if not HAS_WINPTY:
            raise RuntimeError("pywinpty not installed. Install with: pip install pywinpty")
        super().__init__(cols, rows)
        self._pty = None

    def spawn(self, command, env=None, cwd=None, term_name="xterm-color") -> None:
        appname = command[0]
        cmdline = subprocess.list2cmdline(command[1:]) if len(command) > 1 else None
        # ConPTY takes the environment as a NUL-separated block
        env_block = "\0".join(f"{k}={v}" for k, v in _child_env(env, term_name).items()) + "\0"

        self._pty = WinPTY(self._cols, self._rows)
        if not self._pty.spawn(appname, cmdline=cmdline, cwd=cwd, env=env_block):
            raise OSError(f"ConPTY could not start {appname}")
        logger.debug(f"Spawned: {appname} {cmdline or ''}")

    def read(self, size: int = 4096) -> bytes:
        if self._pty is None:
            return b''
        try:
            data = self._pty.read(blocking=False)
        except Exception as e:
            logger.debug(f"ConPTY read failed: {e}")
            return b''
        if isinstance(data, str):
            return data.encode('utf-8', errors='replace')
        return data or b''

    def write(self, data: bytes) -> int:
        if self._pty is None:
            raise OSError("PTY is closed")
        self._pty.write(data.decode('utf-8', errors='replace'))
        return len(data)

    def resize(self, cols: int, rows: int) -> None:
        self._cols, self._rows = cols, rows
        if self._pty is None:
            return
        try:
            self._pty.set_size(cols, rows)
        except Exception as e:
            logger.warning(f"Resize failed: {e}")

    def close(self) -> None:
        if self._pty is None:
            return
        try:
            self.is_alive
            self._pty.cancel_io()
        except Exception as e:
            logger.debug(f"ConPTY close failed: {e}")
        self._pty = None

    def _poll(self) -> tuple[bool, Optional[int]]:
        if self._pty is None:
            return False, None
        if self._pty.isalive():
            return True, None
        return False, self._pty.get_exitstatus()


class PexpectPTY(PTYTransport):
    """pexpect.spawn in binary mode."""

    def __init__(self, cols: int = 80, rows: int = 24):
        if not HAS_PEXPECT:
            raise RuntimeError("pexpect not installed. Install with: pip install pexpect")
        super().__init__(cols, rows)
        self._child: Optional[pexpect.spawn] = None

    def spawn(self, command, env=None, cwd=None, term_name="xterm-color") -> None:
        try:
            self._child = pexpect.spawn(
                command[0],
                args=command[1:],
                env=_child_env(env, term_name),
                cwd=cwd,
                encoding=None,
                dimensions=(self._rows, self._cols),
            )
        except pexpect.ExceptionPexpect as e:
            raise OSError(str(e)) from e
        logger.debug(f"Spawned via pexpect: {' '.join(command)}")

    def read(self, size: int = 4096) -> bytes:
        if self._child is None:
            return b''
        try:
            return self._child.read_nonblocking(size, timeout=0) or b''
        except (pexpect.TIMEOUT, pexpect.EOF):
            return b''

    def write(self, data: bytes) -> int:
        if self._child is None:
            raise OSError("PTY is closed")
        return self._child.send(data)

    def resize(self, cols: int, rows: int) -> None:
        self._cols, self._rows = cols, rows
        if self._child is None:
            return
        try:
            self._child.setwinsize(rows, cols)
        except Exception as e:
            logger.warning(f"Resize failed: {e}")

    def close(self) -> None:
        if self._child is None:
            return
        try:
            self._child.close(force=True)
        except Exception as e:
            logger.debug(f"pexpect close failed: {e}")
        self.is_alive
        self._child = None

    def _poll(self) -> tuple[bool, Optional[int]]:
        if self._child is None:
            return False, None
        if self._child.isalive():
            return True, None
        code = self._child.exitstatus
        if code is None:
            code = self._child.signalstatus or -1
        return False, code


def create_pty(cols: int = 80, rows: int = 24, use_pexpect: bool = True) -> PTYTransport:
    """
    PTY backend for the running platform.

    Raises:
        RuntimeError: On Windows without pywinpty
    """
    if IS_WINDOWS:
        if not HAS_WINPTY:
            raise RuntimeError("pywinpty required for Windows. Install with: pip install pywinpty")
        return WindowsPTY(cols, rows)

    if use_pexpect and HAS_PEXPECT:
        logger.debug("Using PexpectPTY")
        return PexpectPTY(cols, rows)

    logger.debug("Using UnixPTY")
    return UnixPTY(cols, rows)


def is_pty_available() -> bool:
    """True if create_pty() can work on this platform."""
    return HAS_WINPTY if IS_WINDOWS else True
