"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

CONFIG_INVALID = "CONFIG_INVALID"
CAPTURE_SPAWN_FAILED = "CAPTURE_SPAWN_FAILED"
CAPTURE_FAILED = "CAPTURE_FAILED"
ENCODING_FAILED = "ENCODING_FAILED"
TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
POSTPROCESS_FAILED = "POSTPROCESS_FAILED"
SINK_FAILED = "SINK_FAILED"
USER_CANCELLED = "USER_CANCELLED"

ERROR_MESSAGES = {
    CONFIG_INVALID: "Settings are invalid.",
    CAPTURE_SPAWN_FAILED: "Could not start ffmpeg, is it installed?",
    CAPTURE_FAILED: "Recording failed.",
    ENCODING_FAILED: "MP3 conversion failed.",
    TRANSCRIPTION_FAILED: "Transcription failed, please retry.",
    POSTPROCESS_FAILED: "Post-processing failed, please retry.",
    SINK_FAILED: "Output command failed, result kept in clipboard.",
    USER_CANCELLED: "Recording cancelled.",
}


class WhsprError(Exception):
    """Base error carrying one of the codes above."""

    code = CAPTURE_FAILED

    def __init__(self, message: str = "", code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        super().__init__(self.message)


class ConfigError(WhsprError):
    code = CONFIG_INVALID


class CaptureSpawnError(WhsprError):
    code = CAPTURE_SPAWN_FAILED


class CaptureProcessError(WhsprError):
    code = CAPTURE_FAILED

    def __init__(self, message: str = "", exit_code: int | None = None) -> None:
        self.exit_code = exit_code
        super().__init__(message)


class EncodingError(WhsprError):
    code = ENCODING_FAILED


class TranscriptionError(WhsprError):
    code = TRANSCRIPTION_FAILED


class PostProcessingError(WhsprError):
    code = POSTPROCESS_FAILED


class UserCancelled(WhsprError):
    """Raised when the user aborts a recording; exits cleanly."""

    code = USER_CANCELLED
