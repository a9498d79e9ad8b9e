"""
Local terminal helpers.
"""

import os
import signal
import sys
from typing import Callable, Optional, Tuple

IS_WINDOWS = sys.platform == 'win32'

if not IS_WINDOWS:
    import termios
    import tty


def get_terminal_size(fd: Optional[int] = None) -> Tuple[int, int]:
    """Return (columns, rows) of the terminal on fd, stdout by default."""
    if fd is None:
        fd = sys.stdout.fileno()
    size = os.get_terminal_size(fd)
    return size.columns, size.lines


def has_resize_signal() -> bool:
    return not IS_WINDOWS and hasattr(signal, 'SIGWINCH')


def is_terminal(fd: Optional[int] = None) -> bool:
    """True if fd (stdin by default) is attached to a terminal."""
    try:
        if fd is None:
            fd = sys.stdin.fileno()
        return os.isatty(fd)
    except (OSError, ValueError):
        return False


def make_raw(fd: Optional[int] = None) -> Callable[[], None]:
    """
    Put the terminal on fd into raw mode.

    Returns:
        Callable restoring the previous terminal attributes
    """
    if IS_WINDOWS:
        raise OSError("raw mode is not supported on Windows terminals")
    if fd is None:
        fd = sys.stdin.fileno()

    old_attrs = termios.tcgetattr(fd)
    tty.setraw(fd)

    def restore() -> None:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_attrs)

    return restore
