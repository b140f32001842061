"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    STOPPING = "STOPPING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PipelineStage(str, Enum):
    CAPTURING = "capturing"
    ENCODING = "encoding"
    TRANSCRIBING = "transcribing"
    POSTPROCESSING = "postprocessing"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class LoudnessEvent:
    left_db: float
    right_db: float

    @property
    def average_db(self) -> float:
        return (self.left_db + self.right_db) / 2


@dataclass(frozen=True)
class RecordingSnapshot:
    """What the terminal needs to repaint the live recording line."""

    elapsed_seconds: int
    max_duration_seconds: int
    waveform: str


@dataclass(frozen=True)
class RecordingResult:
    path: Path
    duration_seconds: int


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class CompletionChunk:
    text: str = ""
    usage: Optional[TokenUsage] = None


@dataclass
class DeliveryResult:
    success: bool
    reason: str
    target: str = "clipboard"


@dataclass
class PipelineFailure:
    stage: PipelineStage
    cause: BaseException
    recoverable_artifact: Optional[Path] = None
    backup_path: Optional[Path] = None


@dataclass
class PipelineRun:
    stage: PipelineStage = PipelineStage.CAPTURING
    artifacts: dict[str, object] = field(default_factory=dict)
    failure: Optional[PipelineFailure] = None
    duration_seconds: int = 0
    usage: Optional[TokenUsage] = None
    delivery: Optional[DeliveryResult] = None

    @property
    def succeeded(self) -> bool:
        return self.stage == PipelineStage.DELIVERED
