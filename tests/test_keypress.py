"""Tests for the stdin keypress listener."""

from __future__ import annotations

import io
import os
import threading
import time

import pytest

import keypress
from keypress import KeypressListener, classify_keys


def _wait_for_raw_mode(fd: int, timeout: float = 2.0) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if not keypress.termios.tcgetattr(fd)[3] & keypress.termios.ICANON:
            return
        time.sleep(0.005)
    raise AssertionError("terminal never left canonical mode")


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"\r", "stop"),
        (b"\n", "stop"),
        (b"abc\r", "stop"),
        (b"\x03", "cancel"),
        (b"\x1b", "cancel"),
        (b"\x1b[A", None),
        (b"a", None),
        (b"", None),
    ],
)
def test_classify_keys(data: bytes, expected: str | None) -> None:
    assert classify_keys(data) == expected


def test_listener_does_not_start_without_tty() -> None:
    listener = KeypressListener(on_stop=lambda: None, on_cancel=lambda: None, stream=io.StringIO())
    assert listener.interactive is False
    assert listener.start() is False
    listener.stop()


@pytest.mark.skipif(keypress.termios is None, reason="needs termios")
def test_enter_on_a_pty_stops_and_restores_terminal() -> None:
    pty = pytest.importorskip("pty")
    master, slave = pty.openpty()
    stream = os.fdopen(slave, "r")
    before = keypress.termios.tcgetattr(slave)
    stopped = threading.Event()
    cancelled = threading.Event()
    try:
        listener = KeypressListener(
            on_stop=stopped.set,
            on_cancel=cancelled.set,
            stream=stream,
            poll_interval_s=0.01,
        )
        assert listener.start() is True
        _wait_for_raw_mode(slave)
        os.write(master, b"x\r")
        assert stopped.wait(2.0)
        listener.stop()

        assert not cancelled.is_set()
        assert keypress.termios.tcgetattr(slave) == before
    finally:
        stream.close()
        os.close(master)


@pytest.mark.skipif(keypress.termios is None, reason="needs termios")
def test_ctrl_c_on_a_pty_cancels() -> None:
    pty = pytest.importorskip("pty")
    master, slave = pty.openpty()
    stream = os.fdopen(slave, "r")
    cancelled = threading.Event()
    try:
        listener = KeypressListener(
            on_stop=lambda: None,
            on_cancel=cancelled.set,
            stream=stream,
            poll_interval_s=0.01,
        )
        listener.start()
        _wait_for_raw_mode(slave)
        os.write(master, b"\x03")
        assert cancelled.wait(2.0)
        listener.stop()
    finally:
        stream.close()
        os.close(master)
