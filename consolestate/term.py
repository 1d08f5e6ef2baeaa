"""Terminal setup and teardown for the console's full-screen display."""

from __future__ import annotations

import io
import logging
import os
import sys
from typing import Callable, TextIO

__all__ = [
    "TerminalError",
    "OnShutdown",
    "init_terminal",
    "exit_terminal",
    "ENTER_ALTERNATE_SCREEN",
    "LEAVE_ALTERNATE_SCREEN",
]

log = logging.getLogger(__name__)

ENTER_ALTERNATE_SCREEN = "\x1b[?1049h"
LEAVE_ALTERNATE_SCREEN = "\x1b[?1049l"

_saved_modes: dict[int, list] = {}


class TerminalError(Exception):
    """Raised when the terminal cannot be set up or restored."""


def _tty_fd(stream: TextIO) -> int | None:
    try:
        fd = stream.fileno()
    except (AttributeError, io.UnsupportedOperation, ValueError, OSError):
        return None
    return fd if os.isatty(fd) else None


def _enable_raw_mode(fd: int) -> None:
    import termios
    import tty

    _saved_modes[fd] = termios.tcgetattr(fd)
    tty.setraw(fd)


def _disable_raw_mode(fd: int) -> None:
    import termios

    mode = _saved_modes.pop(fd, None)
    if mode is not None:
        termios.tcsetattr(fd, termios.TCSADRAIN, mode)


class OnShutdown:
    """Runs a cleanup action once, logging rather than raising its errors."""

    def __init__(self, action: Callable[[], None]) -> None:
        self._action = action
        self._done = False

    def run(self) -> None:
        if self._done:
            return
        self._done = True
        try:
            self._action()
        except Exception as error:  # noqa: BLE001 - cleanup must not propagate
            log.error("error running terminal cleanup: %s", error)

    def __enter__(self) -> "OnShutdown":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.run()


def init_terminal(stream: TextIO | None = None) -> OnShutdown:
    """Enable raw mode and the alternate screen; return the matching cleanup."""
    stream = sys.stdout if stream is None else stream
    fd = _tty_fd(stream)
    if fd is not None:
        try:
            _enable_raw_mode(fd)
        except (OSError, ImportError) as error:
            raise TerminalError("Failed to enable raw mode") from error
    try:
        stream.write(ENTER_ALTERNATE_SCREEN)
        stream.flush()
    except (OSError, ValueError) as error:
        raise TerminalError("Failed to enable alternate screen") from error
    return OnShutdown(lambda: exit_terminal(stream))


def exit_terminal(stream: TextIO | None = None) -> None:
    """Leave the alternate screen and restore the terminal mode."""
    stream = sys.stdout if stream is None else stream
    try:
        stream.write(LEAVE_ALTERNATE_SCREEN)
        stream.flush()
    except (OSError, ValueError) as error:
        raise TerminalError("Failed to disable alternate screen") from error
    fd = _tty_fd(stream)
    if fd is not None:
        try:
            _disable_raw_mode(fd)
        except (OSError, ImportError) as error:
            raise TerminalError("Failed to disable raw mode") from error