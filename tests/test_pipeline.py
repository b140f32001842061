"""Tests for the Pipeline stage machine."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional

import pytest

from errors import (
    CaptureProcessError,
    CaptureSpawnError,
    ConfigError,
    EncodingError,
    PostProcessingError,
    TranscriptionError,
    UserCancelled,
)
from models import CompletionChunk, DeliveryResult, PipelineStage, RecordingResult, TokenUsage
from pipeline import AUDIO, ENCODED_AUDIO, TEXT, TRANSCRIPT, Pipeline
from postprocess import PostProcessor
from retry import RetryPolicy
from storage import ArtifactStore

FIXED_NOW = 1_700_000_000.5


class FakeRecorder:
    def __init__(self, error: Optional[Exception] = None, duration: int = 3) -> None:
        self.error = error
        self.duration = duration

    def __call__(self, work_dir: Path) -> RecordingResult:
        if self.error is not None:
            raise self.error
        path = work_dir / "recording.wav"
        path.write_bytes(b"RIFF")
        return RecordingResult(path=path, duration_seconds=self.duration)


class FakeEncoder:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail

    def encode(self, wav_path: Path) -> Path:
        if self.fail:
            raise EncodingError("MP3 conversion failed with code 1")
        mp3 = wav_path.with_suffix(".mp3")
        mp3.write_bytes(b"ID3")
        wav_path.unlink()
        return mp3


class FakeTranscriber:
    def __init__(self, failures: int = 0, text: str = "helo wrld") -> None:
        self.failures = failures
        self.text = text
        self.calls = 0

    def transcribe(self, audio_path: Path) -> str:
        self.calls += 1
        assert audio_path.exists()
        if self.calls <= self.failures:
            raise ConnectionError("network timeout")
        return self.text


class FakeCompletionClient:
    def __init__(self, failures: int = 0, chunks: tuple[str, ...] = ("Hello ", "world.")) -> None:
        self.failures = failures
        self.chunks = chunks
        self.calls: list[tuple[str, str]] = []

    def stream(self, system_prompt: str, user_content: str) -> Iterator[CompletionChunk]:
        self.calls.append((system_prompt, user_content))
        if len(self.calls) <= self.failures:
            raise ConnectionError("503 overloaded")
        for chunk in self.chunks:
            yield CompletionChunk(text=chunk)
        yield CompletionChunk(usage=TokenUsage(input_tokens=20, output_tokens=4))


class FakeSink:
    def __init__(self, success: bool = True, target: str = "clipboard") -> None:
        self.success = success
        self.target = target
        self.calls: list[str] = []

    def deliver(self, text: str) -> DeliveryResult:
        self.calls.append(text)
        if self.success:
            return DeliveryResult(success=True, reason="ok", target=self.target)
        return DeliveryResult(success=False, reason="exit code 1", target=self.target)


def _pipeline(
    tmp_path: Path,
    record: Optional[FakeRecorder] = None,
    encoder: Optional[FakeEncoder] = None,
    transcriber: Optional[FakeTranscriber] = None,
    completion: Optional[FakeCompletionClient] = None,
    clipboard: Optional[FakeSink] = None,
    **kwargs,
) -> Pipeline:
    return Pipeline(
        record=record or FakeRecorder(),
        encoder=encoder or FakeEncoder(),
        transcriber=transcriber or FakeTranscriber(),
        post_processor=PostProcessor(completion or FakeCompletionClient()),
        clipboard=clipboard or FakeSink(),
        store=ArtifactStore(tmp_path / "recordings", tmp_path / "history", clock=lambda: FIXED_NOW),
        retry=RetryPolicy(sleep=lambda _: None),
        **kwargs,
    )


# ---------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------

def test_happy_path_delivers_to_clipboard(tmp_path: Path) -> None:
    clipboard = FakeSink()
    stages: list[tuple[PipelineStage, PipelineStage]] = []
    progress: list[int] = []

    run = _pipeline(
        tmp_path,
        clipboard=clipboard,
        suffix=" -- sent by voice",
        on_stage_change=lambda f, t: stages.append((f, t)),
        on_progress=progress.append,
    ).run()

    assert run.stage == PipelineStage.DELIVERED
    assert run.succeeded is True
    assert run.failure is None
    assert run.duration_seconds == 3
    assert run.artifacts[TRANSCRIPT] == "helo wrld"
    assert run.artifacts[TEXT] == "Hello world. -- sent by voice"
    assert clipboard.calls == ["Hello world. -- sent by voice"]
    assert run.usage == TokenUsage(input_tokens=20, output_tokens=4)
    assert progress == [67, 100]
    assert [t for _, t in stages] == [
        PipelineStage.ENCODING,
        PipelineStage.TRANSCRIBING,
        PipelineStage.POSTPROCESSING,
        PipelineStage.DELIVERED,
    ]
    # Temporary audio is gone and nothing was backed up
    assert not Path(run.artifacts[ENCODED_AUDIO]).exists()
    assert not Path(run.artifacts[AUDIO]).parent.exists()
    assert not (tmp_path / "recordings").exists()


def test_transcription_recovers_on_third_attempt(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    transcriber = FakeTranscriber(failures=2)
    clipboard = FakeSink()

    with caplog.at_level(logging.WARNING):
        run = _pipeline(tmp_path, transcriber=transcriber, clipboard=clipboard).run()

    assert run.stage == PipelineStage.DELIVERED
    assert transcriber.calls == 3
    assert clipboard.calls == ["Hello world."]
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert all("transcribe attempt" in r.getMessage() for r in warnings)


def test_vocabulary_is_sent_to_completion(tmp_path: Path) -> None:
    completion = FakeCompletionClient()

    _pipeline(tmp_path, completion=completion, vocabulary="Kubernetes\n\nkubectl").run()

    _, user_content = completion.calls[0]
    assert "```\nKubernetes\n\nkubectl\n```" in user_content
    assert user_content.endswith("```\nhelo wrld\n```")


def test_always_save_writes_history(tmp_path: Path) -> None:
    run = _pipeline(tmp_path, always_save_transcript=True, always_save_audio=True).run()

    assert run.stage == PipelineStage.DELIVERED
    history = sorted(p.name for p in (tmp_path / "history").iterdir())
    assert len(history) == 2
    assert history[0].startswith("recording-") and history[0].endswith(".mp3")
    assert history[1].startswith("transcript-") and history[1].endswith(".txt")


def test_empty_transcript_skips_postprocessing(tmp_path: Path) -> None:
    completion = FakeCompletionClient()
    clipboard = FakeSink()

    run = _pipeline(
        tmp_path,
        transcriber=FakeTranscriber(text="   "),
        completion=completion,
        clipboard=clipboard,
    ).run()

    assert run.stage == PipelineStage.DELIVERED
    assert TEXT not in run.artifacts
    assert completion.calls == []
    assert clipboard.calls == []


# ---------------------------------------------------------------
# Delivery fallback
# ---------------------------------------------------------------

def test_failing_sink_falls_back_to_clipboard(tmp_path: Path) -> None:
    sink = FakeSink(success=False, target="false")
    clipboard = FakeSink()

    run = _pipeline(tmp_path, sink=sink, clipboard=clipboard).run()

    assert run.stage == PipelineStage.DELIVERED
    assert sink.calls == ["Hello world."]
    assert clipboard.calls == ["Hello world."]
    assert run.delivery is not None
    assert run.delivery.success is True
    assert run.delivery.target == "clipboard"


def test_working_sink_skips_clipboard(tmp_path: Path) -> None:
    sink = FakeSink(target="cat > /dev/null")
    clipboard = FakeSink()

    run = _pipeline(tmp_path, sink=sink, clipboard=clipboard).run()

    assert run.delivery is not None
    assert run.delivery.target == "cat > /dev/null"
    assert clipboard.calls == []


# ---------------------------------------------------------------
# Failures and recovery
# ---------------------------------------------------------------

@pytest.mark.parametrize(
    "error",
    [CaptureSpawnError("Failed to start ffmpeg"), CaptureProcessError("exit 1", exit_code=1)],
)
def test_capture_failure_has_nothing_to_recover(tmp_path: Path, error: Exception) -> None:
    run = _pipeline(tmp_path, record=FakeRecorder(error=error)).run()

    assert run.stage == PipelineStage.FAILED
    assert run.failure is not None
    assert run.failure.stage == PipelineStage.CAPTURING
    assert run.failure.cause is error
    assert run.failure.backup_path is None


def test_encoding_failure_has_nothing_to_recover(tmp_path: Path) -> None:
    run = _pipeline(tmp_path, encoder=FakeEncoder(fail=True)).run()

    assert run.failure is not None
    assert run.failure.stage == PipelineStage.ENCODING
    assert isinstance(run.failure.cause, EncodingError)
    assert run.failure.backup_path is None
    assert not (tmp_path / "recordings").exists()


def test_transcription_exhaustion_backs_up_audio(tmp_path: Path) -> None:
    transcriber = FakeTranscriber(failures=5)

    run = _pipeline(tmp_path, transcriber=transcriber).run()

    assert transcriber.calls == 3
    assert run.failure is not None
    assert run.failure.stage == PipelineStage.TRANSCRIBING
    assert isinstance(run.failure.cause, TranscriptionError)
    assert isinstance(run.failure.cause.__cause__, ConnectionError)
    assert run.failure.backup_path == tmp_path / "recordings" / "recording-1700000000500.mp3"
    assert run.failure.backup_path.read_bytes() == b"ID3"
    assert TRANSCRIPT not in run.artifacts


class MissingKeyTranscriber:
    def __init__(self) -> None:
        self.calls = 0

    def transcribe(self, audio_path: Path) -> str:
        self.calls += 1
        raise ConfigError("GROQ_API_KEY is not set")


def test_missing_api_key_fails_without_retrying(tmp_path: Path) -> None:
    transcriber = MissingKeyTranscriber()

    run = _pipeline(tmp_path, transcriber=transcriber).run()  # type: ignore[arg-type]

    assert transcriber.calls == 1
    assert run.failure is not None
    assert run.failure.stage == PipelineStage.TRANSCRIBING
    assert isinstance(run.failure.cause.__cause__, ConfigError)
    assert run.failure.backup_path is not None


def test_postprocessing_exhaustion_backs_up_audio_and_transcript(tmp_path: Path) -> None:
    completion = FakeCompletionClient(failures=3)
    clipboard = FakeSink()

    run = _pipeline(tmp_path, completion=completion, clipboard=clipboard).run()

    assert len(completion.calls) == 3
    assert run.stage == PipelineStage.FAILED
    assert run.failure is not None
    assert run.failure.stage == PipelineStage.POSTPROCESSING
    assert isinstance(run.failure.cause, PostProcessingError)
    backup = tmp_path / "recordings" / "recording-1700000000500.mp3"
    assert run.failure.backup_path == backup
    assert backup.exists()
    assert backup.with_suffix(".txt").read_text(encoding="utf-8") == "helo wrld"
    assert clipboard.calls == []


def test_user_cancel_propagates(tmp_path: Path) -> None:
    with pytest.raises(UserCancelled):
        _pipeline(tmp_path, record=FakeRecorder(error=UserCancelled())).run()
