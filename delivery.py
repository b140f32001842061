"""Output sinks for the final text: clipboard and an external command."""

from __future__ import annotations

import logging
import subprocess
from typing import Any, Callable

from errors import SINK_FAILED
from models import DeliveryResult

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

logger = logging.getLogger(__name__)


class ClipboardSink:
    def deliver(self, text: str) -> DeliveryResult:
        if pyperclip is None:
            return DeliveryResult(success=False, reason="pyperclip is not installed")
        try:
            pyperclip.copy(text)
        except pyperclip.PyperclipException as exc:
            return DeliveryResult(success=False, reason=f"clipboard unavailable: {exc}")
        return DeliveryResult(success=True, reason="ok")


class CommandSink:
    """Pipes the text into a shell command's stdin."""

    def __init__(
        self,
        command: str,
        timeout_s: float = 30.0,
        runner: Callable[..., Any] = subprocess.run,
    ) -> None:
        self.command = command
        self._timeout_s = timeout_s
        self._runner = runner

    def deliver(self, text: str) -> DeliveryResult:
        try:
            completed = self._runner(
                self.command,
                shell=True,
                input=text,
                text=True,
                capture_output=True,
                timeout=self._timeout_s,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            return DeliveryResult(
                success=False, reason=f"{SINK_FAILED}: {exc}", target=self.command
            )
        if completed.returncode != 0:
            stderr = (completed.stderr or "").strip()
            reason = f"{SINK_FAILED}: exit code {completed.returncode}"
            if stderr:
                reason = f"{reason} ({stderr})"
            return DeliveryResult(success=False, reason=reason, target=self.command)
        return DeliveryResult(success=True, reason="ok", target=self.command)
