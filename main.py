"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

from config import JsonConfigStore, Settings
from delivery import ClipboardSink, CommandSink
from display import TerminalDisplay, format_time, setup_logging
from errors import ConfigError, UserCancelled
from ffmpeg_process import FfmpegCaptureProcess, FfmpegEncoder
from models import PipelineRun, PipelineStage, RecordingResult
from pipeline import TEXT, Pipeline
from postprocess import PostProcessor, create_completion_client
from pricing import calculate_cost, format_cost
from providers import ModelSpec, parse_model_spec
from recognizer import create_transcriber
from recorder import AudioCaptureSession
from storage import ArtifactStore
from vocabulary import Vocabulary, load_vocabulary

logger = logging.getLogger("whspr")

STAGE_MESSAGES = {
    PipelineStage.ENCODING: "Converting to MP3...",
    PipelineStage.TRANSCRIBING: "Transcribing...",
    PipelineStage.POSTPROCESSING: "Post-processing...",
}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="whspr",
        description="Record from the microphone, transcribe, clean up and copy the text.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show raw transcript and debug logs")
    parser.add_argument(
        "-p",
        "--pipe",
        metavar="COMMAND",
        default=None,
        help="Send the final text to COMMAND's stdin instead of the clipboard",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to settings.json")
    return parser.parse_args(argv)


class App:
    def __init__(
        self,
        settings: Settings,
        app_dir: Path,
        display: TerminalDisplay,
        verbose: bool = False,
        pipe_command: Optional[str] = None,
        vocabulary: Optional[Vocabulary] = None,
        pipeline: Optional[Pipeline] = None,
    ) -> None:
        self.settings = settings
        self.display = display
        self.verbose = verbose
        self.pipe_command = pipe_command
        self.app_dir = app_dir
        self.model: ModelSpec = parse_model_spec(settings.model)
        self.transcription_model: ModelSpec = parse_model_spec(settings.transcription_model)
        self.vocabulary = vocabulary or load_vocabulary(app_dir)
        self._processing_started: Optional[float] = None
        self.pipeline = pipeline or self._build_pipeline()

    def _build_pipeline(self) -> Pipeline:
        settings = self.settings
        save_dir = Path(settings.save_dir).expanduser() if settings.save_dir else self.app_dir / "history"
        post_processor = PostProcessor(
            create_completion_client(self.model),
            system_prompt=settings.system_prompt,
            custom_prompt_prefix=settings.custom_prompt_prefix,
            transcription_prefix=settings.transcription_prefix,
        )
        return Pipeline(
            record=self._record,
            encoder=FfmpegEncoder(),
            transcriber=create_transcriber(self.transcription_model, settings.language),
            post_processor=post_processor,
            clipboard=ClipboardSink(),
            store=ArtifactStore(self.app_dir / "recordings", save_dir),
            sink=CommandSink(self.pipe_command) if self.pipe_command else None,
            vocabulary=self.vocabulary.text,
            suffix=settings.suffix,
            always_save_transcript=settings.always_save_transcript,
            always_save_audio=settings.always_save_audio,
            on_stage_change=self._on_stage_change,
            on_progress=self._on_progress,
            on_transcript=self._on_transcript,
        )

    # ------------------------------------------------------------------
    # Pipeline callbacks
    # ------------------------------------------------------------------

    def _record(self, work_dir: Path) -> RecordingResult:
        session = AudioCaptureSession(
            process_factory=lambda path, seconds: FfmpegCaptureProcess(path, seconds),
            max_duration_seconds=self.settings.max_duration_seconds,
            wave_width=self.display.wave_width,
            target_dir=work_dir,
            on_update=self.display.recording,
        )
        try:
            result = session.record()
        finally:
            self.display.clear()
        if self.verbose:
            self.display.note(f"Recording complete ({format_time(result.duration_seconds)})")
        return result

    def _on_stage_change(self, from_stage: PipelineStage, to_stage: PipelineStage) -> None:
        if from_stage == PipelineStage.CAPTURING:
            self._processing_started = time.monotonic()
        message = STAGE_MESSAGES.get(to_stage)
        if message:
            self.display.status(message)

    def _on_progress(self, percent: int) -> None:
        self.display.progress(STAGE_MESSAGES[PipelineStage.POSTPROCESSING], percent)

    def _on_transcript(self, raw_text: str) -> None:
        if self.verbose:
            self.display.note(f"Raw: {raw_text}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.display.header(str(self.model), self.vocabulary.sources)
        if self.verbose and self.vocabulary.sources:
            self.display.note(
                f"Using custom vocabulary ({' + '.join(self.vocabulary.sources)})"
            )
        try:
            run = self.pipeline.run()
        except (UserCancelled, KeyboardInterrupt):
            self.display.note("Recording cancelled.")
            return 0
        return self._report(run)

    def _report(self, run: PipelineRun) -> int:
        if not run.succeeded:
            failure = run.failure
            self.display.error(str(failure.cause) if failure else f"Run stopped at {run.stage.value}")
            if failure is not None and failure.backup_path is not None:
                self.display.backup(failure.backup_path)
            return 1

        text = run.artifacts.get(TEXT)
        if not text:
            self.display.note("No speech detected.")
            return 0
        self.display.result(str(text))
        delivery = run.delivery
        if delivery is not None and delivery.success:
            if delivery.target == "clipboard":
                self.display.note("(Copied to clipboard)")
            else:
                self.display.note(f"(Sent to {delivery.target})")
        else:
            self.display.note("(Could not copy to clipboard)")

        cost = None
        if run.usage is not None:
            amount = calculate_cost(self.model.name, run.usage)
            if amount > 0:
                cost = format_cost(amount)
        processing = 0.0
        if self._processing_started is not None:
            processing = time.monotonic() - self._processing_started
        self.display.stats(run.duration_seconds, processing, cost)
        return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    store = JsonConfigStore(path=args.config)
    settings = store.load()
    verbose = args.verbose or settings.verbose
    setup_logging(verbose)
    logger.debug("Settings loaded from %s", store.path)
    display = TerminalDisplay()
    try:
        app = App(
            settings,
            store.app_dir,
            display,
            verbose=verbose,
            pipe_command=args.pipe,
        )
    except ConfigError as exc:
        display.error(exc.message)
        return 1
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
