"""Stage machine for one dictation run: record, encode, transcribe, clean up, deliver."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

from errors import (
    PostProcessingError,
    TranscriptionError,
    UserCancelled,
    WhsprError,
)
from interfaces import Encoder, Sink, Transcriber
from models import DeliveryResult, PipelineFailure, PipelineRun, PipelineStage, RecordingResult
from postprocess import PostProcessor
from progress import ProgressStream
from retry import RetryPolicy
from storage import ArtifactStore

logger = logging.getLogger(__name__)

# Keys of PipelineRun.artifacts
AUDIO = "audio"
ENCODED_AUDIO = "encoded_audio"
TRANSCRIPT = "transcript"
TEXT = "text"

RecordFn = Callable[[Path], RecordingResult]
StageCallback = Callable[[PipelineStage, PipelineStage], None]
ProgressCallback = Callable[[int], None]


class Pipeline:
    """Runs a single PipelineRun to DELIVERED or FAILED.

    Network stages go through the RetryPolicy. When a stage fails after the
    MP3 exists, the MP3 is moved to the backup directory and the location is
    recorded on ``run.failure.backup_path``. UserCancelled propagates.
    """

    def __init__(
        self,
        record: RecordFn,
        encoder: Encoder,
        transcriber: Transcriber,
        post_processor: PostProcessor,
        clipboard: Sink,
        store: ArtifactStore,
        sink: Optional[Sink] = None,
        vocabulary: Optional[str] = None,
        suffix: str = "",
        always_save_transcript: bool = False,
        always_save_audio: bool = False,
        retry: Optional[RetryPolicy] = None,
        max_attempts: int = 3,
        on_stage_change: Optional[StageCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_transcript: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._record = record
        self._encoder = encoder
        self._transcriber = transcriber
        self._post_processor = post_processor
        self._clipboard = clipboard
        self._store = store
        self._sink = sink
        self._vocabulary = vocabulary
        self._suffix = suffix
        self._always_save_transcript = always_save_transcript
        self._always_save_audio = always_save_audio
        self._retry = retry or RetryPolicy()
        self._max_attempts = max_attempts
        self._on_stage_change = on_stage_change
        self._on_progress = on_progress
        self._on_transcript = on_transcript

    def run(self) -> PipelineRun:
        run = PipelineRun()
        work_dir = Path(tempfile.mkdtemp(prefix="whspr-"))
        try:
            self._execute(run, work_dir)
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
        return run

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _execute(self, run: PipelineRun, work_dir: Path) -> None:
        try:
            recording = self._record(work_dir)
        except UserCancelled:
            raise
        except WhsprError as exc:
            self._fail(run, exc)
            return
        run.artifacts[AUDIO] = recording.path
        run.duration_seconds = recording.duration_seconds

        self._advance(run, PipelineStage.ENCODING)
        try:
            encoded = self._encoder.encode(recording.path)
        except WhsprError as exc:
            self._fail(run, exc)
            return
        run.artifacts[ENCODED_AUDIO] = encoded

        self._advance(run, PipelineStage.TRANSCRIBING)
        try:
            raw_text = self._retry.execute(
                lambda: self._transcriber.transcribe(encoded),
                label="transcribe",
                max_attempts=self._max_attempts,
            )
        except Exception as exc:
            self._fail(run, _wrap(TranscriptionError, exc), recoverable=encoded)
            return
        run.artifacts[TRANSCRIPT] = raw_text
        logger.debug("Raw transcript: %s", raw_text)
        if self._on_transcript:
            self._on_transcript(raw_text)

        if not raw_text.strip():
            logger.warning("No speech detected, nothing to deliver")
            encoded.unlink(missing_ok=True)
            self._advance(run, PipelineStage.DELIVERED)
            return

        self._advance(run, PipelineStage.POSTPROCESSING)
        try:
            stream = self._retry.execute(
                lambda: self._post_process(raw_text),
                label="postprocess",
                max_attempts=self._max_attempts,
            )
        except Exception as exc:
            self._fail(
                run,
                _wrap(PostProcessingError, exc),
                recoverable=encoded,
                transcript=raw_text,
            )
            return
        text = stream.text.strip() + self._suffix
        run.usage = stream.usage
        run.artifacts[TEXT] = text

        run.delivery = self._deliver(text)
        self._persist(text, encoded)
        encoded.unlink(missing_ok=True)
        self._advance(run, PipelineStage.DELIVERED)

    def _post_process(self, raw_text: str) -> ProgressStream:
        stream = self._post_processor.stream(raw_text, self._vocabulary)
        for percent in stream:
            if self._on_progress:
                self._on_progress(percent)
        return stream

    def _deliver(self, text: str) -> DeliveryResult:
        if self._sink is not None:
            result = self._sink.deliver(text)
            if result.success:
                return result
            logger.warning("Output command failed (%s), using clipboard", result.reason)
        result = self._clipboard.deliver(text)
        if not result.success:
            logger.warning("Clipboard copy failed: %s", result.reason)
        return result

    def _persist(self, text: str, encoded: Path) -> None:
        try:
            if self._always_save_transcript:
                self._store.save_transcript(text)
            if self._always_save_audio:
                self._store.save_audio(encoded)
        except OSError as exc:
            logger.warning("Could not save to history: %s", exc)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _fail(
        self,
        run: PipelineRun,
        error: WhsprError,
        recoverable: Optional[Path] = None,
        transcript: Optional[str] = None,
    ) -> None:
        failure = PipelineFailure(
            stage=run.stage, cause=error, recoverable_artifact=recoverable
        )
        run.failure = failure
        if recoverable is not None and recoverable.exists():
            try:
                failure.backup_path = self._store.backup(recoverable, transcript)
            except OSError as exc:
                logger.error("Could not back up %s: %s", recoverable, exc)
        self._advance(run, PipelineStage.FAILED)

    def _advance(self, run: PipelineRun, to_stage: PipelineStage) -> None:
        from_stage = run.stage
        if from_stage == to_stage:
            return
        run.stage = to_stage
        logger.debug("Pipeline %s -> %s", from_stage.value, to_stage.value)
        if self._on_stage_change:
            self._on_stage_change(from_stage, to_stage)


def _wrap(error_cls: Any, exc: Exception) -> WhsprError:
    if isinstance(exc, error_cls):
        return exc
    error = error_cls(str(exc))
    error.__cause__ = exc
    return error
