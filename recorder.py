"""Microphone recording session driven by an ffmpeg capture process."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from errors import CaptureProcessError, CaptureSpawnError, UserCancelled, WhsprError
from ffmpeg_process import CLEAN_EXIT_CODES, FfmpegCaptureProcess
from interfaces import CaptureProcess
from keypress import KeypressListener
from level_meter import DEFAULT_WIDTH, SILENT_DB, LevelHistory
from models import RecordingResult, RecordingSnapshot, SessionState

logger = logging.getLogger(__name__)

MAX_DURATION_SECONDS = 900

ProcessFactory = Callable[[Path, int], CaptureProcess]
UpdateCallback = Callable[[RecordingSnapshot], None]
StateCallback = Callable[[SessionState, SessionState], None]

_ALLOWED_TRANSITIONS = {
    SessionState.IDLE: {SessionState.RECORDING},
    SessionState.RECORDING: {SessionState.STOPPING, SessionState.FAILED},
    SessionState.STOPPING: {SessionState.COMPLETED, SessionState.FAILED},
    SessionState.COMPLETED: set(),
    SessionState.FAILED: set(),
}


class AudioCaptureSession:
    """One recording, from spawning ffmpeg to a finished WAV file.

    ``start()`` returns immediately; the elapsed-time tick, the waveform
    tick, the ffmpeg log reader, the exit monitor and the keypress listener
    each run on their own daemon thread. ``wait()`` blocks until the
    session is COMPLETED or FAILED. ``stop()`` keeps the audio,
    ``cancel()`` discards it. The WAV is written into ``target_dir``,
    which the caller owns and cleans up.
    """

    def __init__(
        self,
        target_dir: Path,
        process_factory: Optional[ProcessFactory] = None,
        max_duration_seconds: int = MAX_DURATION_SECONDS,
        wave_width: int = DEFAULT_WIDTH,
        elapsed_interval_s: float = 1.0,
        wave_interval_s: float = 0.05,
        listen_for_keys: bool = True,
        stdin: Any = None,
        on_update: Optional[UpdateCallback] = None,
        on_state_change: Optional[StateCallback] = None,
    ) -> None:
        self.max_duration_seconds = max_duration_seconds
        self._process_factory = process_factory or (
            lambda path, seconds: FfmpegCaptureProcess(path, seconds)
        )
        self._target_dir = Path(target_dir)
        self._elapsed_interval_s = elapsed_interval_s
        self._wave_interval_s = wave_interval_s
        self._on_update = on_update
        self._on_state_change = on_state_change

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self.elapsed_seconds = 0
        self.current_db = SILENT_DB
        self._levels = LevelHistory(wave_width)
        self.output_path: Optional[Path] = None

        self._ticks_stopped = threading.Event()
        self._done = threading.Event()
        self._cancelled = False
        self._process: Optional[CaptureProcess] = None
        self._workers: list[threading.Thread] = []
        self._result: Optional[RecordingResult] = None
        self._error: Optional[WhsprError] = None

        self._keys: Optional[KeypressListener] = None
        if listen_for_keys:
            self._keys = KeypressListener(
                on_stop=self.stop,
                on_cancel=lambda: self.cancel("cancelled from keyboard"),
                stream=stdin,
            )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def waveform(self) -> str:
        with self._lock:
            return self._levels.render()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            if self._state != SessionState.IDLE:
                return
            self.output_path = self._target_dir / "recording.wav"
            self._transition(SessionState.RECORDING)
            self._process = self._process_factory(
                self.output_path, self.max_duration_seconds
            )
            try:
                self._process.start()
            except CaptureSpawnError as exc:
                self._fail(exc)
                raise
            except OSError as exc:
                error = CaptureSpawnError(f"Failed to start ffmpeg: {exc}")
                self._fail(error)
                raise error from exc

        self._spawn(self._read_loudness, "capture-log")
        self._spawn(
            lambda: self._every(self._elapsed_interval_s, self.tick_elapsed),
            "capture-timer",
        )
        self._spawn(
            lambda: self._every(self._wave_interval_s, self.tick_wave),
            "capture-wave",
        )
        self._spawn(self._monitor, "capture-monitor", track=False)
        if self._keys is not None and self._keys.start():
            logger.debug("Listening for Enter on stdin")
        self._emit_update()

    def stop(self) -> None:
        """Finish the recording early, letting ffmpeg finalize the file."""
        with self._lock:
            if self._state != SessionState.RECORDING:
                return
            self._transition(SessionState.STOPPING)
            self._ticks_stopped.set()
            process = self._process
        if self._keys is not None:
            self._keys.stop()
        if process is not None:
            process.stop(graceful=True)

    def cancel(self, reason: str = "cancelled") -> None:
        """Abort the recording; ``wait()`` raises UserCancelled.

        Only a session that is still RECORDING can be cancelled. Once ffmpeg
        is stopping the recording is kept.
        """
        with self._lock:
            if self._state != SessionState.RECORDING:
                return
            logger.debug("Recording cancelled: %s", reason)
            self._cancelled = True
        self.stop()

    def wait(self, timeout: Optional[float] = None) -> RecordingResult:
        if not self._done.wait(timeout):
            raise TimeoutError("recording session did not finish in time")
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result

    def close(self) -> None:
        """Release the terminal, the ticks and the ffmpeg child on any exit path."""
        self._ticks_stopped.set()
        if self._keys is not None:
            self._keys.stop()
        if self._process is not None and not self._done.is_set():
            self._process.stop(graceful=False)

    def record(self) -> RecordingResult:
        self.start()
        try:
            return self.wait()
        finally:
            self.close()

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def tick_elapsed(self) -> None:
        with self._lock:
            if self._state != SessionState.RECORDING:
                return
            if self.elapsed_seconds >= self.max_duration_seconds:
                return
            self.elapsed_seconds += 1
        self._emit_update()

    def tick_wave(self) -> None:
        with self._lock:
            if self._state != SessionState.RECORDING:
                return
            self._levels.push(self.current_db)
        self._emit_update()

    def snapshot(self) -> RecordingSnapshot:
        with self._lock:
            return RecordingSnapshot(
                elapsed_seconds=self.elapsed_seconds,
                max_duration_seconds=self.max_duration_seconds,
                waveform=self._levels.render(),
            )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _spawn(self, target: Callable[[], None], name: str, track: bool = True) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        if track:
            self._workers.append(thread)
        thread.start()

    def _every(self, interval_s: float, tick: Callable[[], None]) -> None:
        while not self._ticks_stopped.wait(interval_s):
            tick()

    def _read_loudness(self) -> None:
        assert self._process is not None
        for event in self._process.loudness_events():
            with self._lock:
                self.current_db = event.average_db

    def _monitor(self) -> None:
        assert self._process is not None
        exit_code = self._process.wait()
        logger.debug("ffmpeg exited with code %s", exit_code)

        with self._lock:
            if self._state == SessionState.RECORDING:
                # Reached the duration limit or ffmpeg died on its own
                self._transition(SessionState.STOPPING)
            self._ticks_stopped.set()
        if self._keys is not None:
            self._keys.stop()
        for worker in self._workers:
            worker.join(timeout=1.0)

        with self._lock:
            if self._cancelled:
                self._fail(UserCancelled())
            elif exit_code not in CLEAN_EXIT_CODES:
                self._fail(
                    CaptureProcessError(
                        f"ffmpeg exited with code {exit_code}", exit_code=exit_code
                    )
                )
            elif self.output_path is None or not self.output_path.exists():
                self._fail(
                    CaptureProcessError(
                        "Recording failed: no output file created", exit_code=exit_code
                    )
                )
            else:
                self._result = RecordingResult(
                    path=self.output_path, duration_seconds=self.elapsed_seconds
                )
                self._transition(SessionState.COMPLETED)
        self._done.set()

    def _fail(self, error: WhsprError) -> None:
        self._error = error
        self._ticks_stopped.set()
        self._transition(SessionState.FAILED)
        self._done.set()

    def _emit_update(self) -> None:
        if self._on_update is None:
            return
        self._on_update(self.snapshot())

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        if to_state not in _ALLOWED_TRANSITIONS[from_state]:
            raise RuntimeError(f"invalid transition {from_state.value} -> {to_state.value}")
        self._state = to_state
        logger.debug("Recording %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
