"""Protocol interfaces used by the capture session and pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional, Protocol

from models import CompletionChunk, DeliveryResult, LoudnessEvent


class CaptureProcess(Protocol):
    def start(self) -> None: ...

    def loudness_events(self) -> Iterator[LoudnessEvent]: ...

    def stop(self, graceful: bool = True) -> None: ...

    def wait(self, timeout: Optional[float] = None) -> int: ...


class Encoder(Protocol):
    def encode(self, wav_path: Path) -> Path: ...


class Transcriber(Protocol):
    def transcribe(self, audio_path: Path) -> str: ...


class CompletionClient(Protocol):
    def stream(
        self, system_prompt: str, user_content: str
    ) -> Iterator[CompletionChunk]: ...


class Sink(Protocol):
    def deliver(self, text: str) -> DeliveryResult: ...
