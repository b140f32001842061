"""ffmpeg subprocess wrappers for microphone capture and MP3 encoding."""

from __future__ import annotations

import logging
import re
import signal
import subprocess
import sys
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from errors import CaptureSpawnError, EncodingError
from models import LoudnessEvent

logger = logging.getLogger(__name__)

# ffmpeg exits with 255 when it handles SIGINT itself
CLEAN_EXIT_CODES = frozenset({0, 255, -signal.SIGINT})

_DB_VALUE = r"(-?(?:inf|\d+(?:\.\d+)?))"
_FTPK_RE = re.compile(rf"FTPK:\s*{_DB_VALUE}(?:\s+{_DB_VALUE})?\s+dBFS")


def default_input() -> tuple[str, str]:
    """Return the (format, device) pair for the platform's default microphone."""
    if sys.platform == "darwin":
        return "avfoundation", ":0"
    if sys.platform.startswith("win"):
        return "dshow", "audio=default"
    return "pulse", "default"


def parse_loudness_line(line: str) -> Optional[LoudnessEvent]:
    """Extract the frame true-peak reading from an ebur128 log line."""
    match = _FTPK_RE.search(line)
    if match is None:
        return None
    try:
        left = float(match.group(1))
        right = float(match.group(2)) if match.group(2) is not None else left
    except ValueError:
        return None
    return LoudnessEvent(left_db=left, right_db=right)


def build_capture_command(
    output_path: Path,
    max_duration_seconds: int,
    input_format: str,
    input_device: str,
    binary: str = "ffmpeg",
) -> list[str]:
    return [
        binary,
        "-hide_banner",
        "-nostdin",
        "-f",
        input_format,
        "-i",
        input_device,
        "-af",
        "ebur128=peak=true",
        "-t",
        str(max_duration_seconds),
        "-y",
        str(output_path),
    ]


class FfmpegCaptureProcess:
    """Owns one ffmpeg capture child process."""

    def __init__(
        self,
        output_path: Path,
        max_duration_seconds: int,
        input_format: Optional[str] = None,
        input_device: Optional[str] = None,
        binary: str = "ffmpeg",
        popen: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        fmt, device = default_input()
        self.output_path = Path(output_path)
        self.command = build_capture_command(
            self.output_path,
            max_duration_seconds,
            input_format or fmt,
            input_device or device,
            binary=binary,
        )
        self._popen = popen
        self._process: Any = None

    def start(self) -> None:
        if self._process is not None:
            return
        logger.debug("Spawning capture: %s", " ".join(self.command))
        try:
            self._process = self._popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise CaptureSpawnError(f"Failed to start ffmpeg: {exc}") from exc

    def loudness_events(self) -> Iterator[LoudnessEvent]:
        """Yield loudness readings until ffmpeg closes its log stream."""
        if self._process is None or self._process.stderr is None:
            return
        for line in self._process.stderr:
            event = parse_loudness_line(line)
            if event is not None:
                yield event

    def stop(self, graceful: bool = True) -> None:
        process = self._process
        if process is None or process.poll() is not None:
            return
        try:
            if graceful:
                process.send_signal(signal.SIGINT)
            else:
                process.kill()
        except ProcessLookupError:
            pass

    def wait(self, timeout: Optional[float] = None) -> int:
        if self._process is None:
            raise RuntimeError("capture process was never started")
        return self._process.wait(timeout=timeout)


class FfmpegEncoder:
    """Converts the captured WAV into MP3 for upload."""

    def __init__(
        self,
        quality: int = 2,
        binary: str = "ffmpeg",
        runner: Callable[..., Any] = subprocess.run,
    ) -> None:
        self.quality = quality
        self.binary = binary
        self._runner = runner

    def encode(self, wav_path: Path) -> Path:
        wav_path = Path(wav_path)
        mp3_path = wav_path.with_suffix(".mp3")
        command = [
            self.binary,
            "-hide_banner",
            "-nostdin",
            "-i",
            str(wav_path),
            "-codec:a",
            "libmp3lame",
            "-qscale:a",
            str(self.quality),
            "-y",
            str(mp3_path),
        ]
        logger.debug("Encoding: %s", " ".join(command))
        try:
            completed = self._runner(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            raise EncodingError(f"Failed to convert to MP3: {exc}") from exc
        if completed.returncode != 0:
            raise EncodingError(
                f"MP3 conversion failed with code {completed.returncode}"
            )
        wav_path.unlink(missing_ok=True)
        return mp3_path
