"""Terminal keypress listener used to stop a recording."""

from __future__ import annotations

import contextlib
import logging
import os
import select
import sys
import threading
from typing import Any, Callable, Iterator, Optional

try:
    import termios
except Exception:  # pragma: no cover - not available on Windows
    termios = None  # type: ignore

logger = logging.getLogger(__name__)

STOP_KEYS = (b"\r", b"\n")
CANCEL_KEYS = (b"\x03",)
ESCAPE = b"\x1b"


def classify_keys(data: bytes) -> Optional[str]:
    """Return "cancel", "stop" or None for a chunk read from the terminal."""
    if any(key in data for key in CANCEL_KEYS) or data == ESCAPE:
        return "cancel"
    if any(key in data for key in STOP_KEYS):
        return "stop"
    return None


@contextlib.contextmanager
def raw_terminal(fd: int) -> Iterator[None]:
    """Switch the terminal to unbuffered, no-echo, no-signal input."""
    if termios is None:
        yield
        return
    saved = termios.tcgetattr(fd)
    mode = termios.tcgetattr(fd)
    mode[3] &= ~(termios.ICANON | termios.ECHO | termios.ISIG)
    mode[6][termios.VMIN] = 1
    mode[6][termios.VTIME] = 0
    termios.tcsetattr(fd, termios.TCSANOW, mode)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


class KeypressListener:
    """Watches stdin on a worker thread while a recording is live.

    Raw mode is entered and restored on the worker thread, so ``stop()``
    returning means the terminal is back to its previous state.
    """

    def __init__(
        self,
        on_stop: Callable[[], None],
        on_cancel: Callable[[], None],
        stream: Any = None,
        poll_interval_s: float = 0.1,
    ) -> None:
        self._on_stop = on_stop
        self._on_cancel = on_cancel
        self._stream = stream if stream is not None else sys.stdin
        self._poll_interval_s = poll_interval_s
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def interactive(self) -> bool:
        if termios is None:
            return False
        try:
            return bool(self._stream.isatty())
        except (AttributeError, ValueError):
            return False

    def start(self) -> bool:
        if self._thread is not None or not self.interactive:
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()
        return True

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=1.0)
        self._thread = None

    def _worker(self) -> None:
        fd = self._stream.fileno()
        with raw_terminal(fd):
            while not self._stop_event.is_set():
                readable, _, _ = select.select([fd], [], [], self._poll_interval_s)
                if not readable:
                    continue
                action = classify_keys(os.read(fd, 64))
                if action is None:
                    continue
                logger.debug("Keypress action: %s", action)
                self._stop_event.set()
                if action == "cancel":
                    self._on_cancel()
                else:
                    self._on_stop()
