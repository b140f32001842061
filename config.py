"""Simple JSON-based settings store."""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from postprocess import (
    DEFAULT_CUSTOM_PROMPT_PREFIX,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_TRANSCRIPTION_PREFIX,
)
from recorder import MAX_DURATION_SECONDS

logger = logging.getLogger(__name__)

APP_DIR = Path.home() / ".config" / "whspr"


@dataclass(frozen=True)
class Settings:
    verbose: bool = False
    suffix: str = ""
    transcription_model: str = "groq:whisper-large-v3-turbo"
    language: str = "en"
    model: str = "groq:openai/gpt-oss-120b"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    custom_prompt_prefix: str = DEFAULT_CUSTOM_PROMPT_PREFIX
    transcription_prefix: str = DEFAULT_TRANSCRIPTION_PREFIX
    always_save_transcript: bool = False
    always_save_audio: bool = False
    save_dir: Optional[str] = None
    max_duration_seconds: int = MAX_DURATION_SECONDS

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "verbose": (bool,),
    "suffix": (str,),
    "transcription_model": (str,),
    "language": (str,),
    "model": (str,),
    "system_prompt": (str,),
    "custom_prompt_prefix": (str,),
    "transcription_prefix": (str,),
    "always_save_transcript": (bool,),
    "always_save_audio": (bool,),
    "save_dir": (str, type(None)),
    "max_duration_seconds": (int,),
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or APP_DIR / "settings.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def app_dir(self) -> Path:
        return self._path.parent

    def load(self) -> Settings:
        """Read the settings document, writing defaults on first run."""
        if not self._path.exists():
            defaults = Settings()
            self._write_all(defaults.to_dict())
            return defaults
        values: dict[str, Any] = {}
        for key, value in self._read_all().items():
            expected = _FIELD_TYPES.get(key)
            if expected is None:
                continue
            # bool is an int subclass; keep it out of int fields
            if not isinstance(value, expected) or (
                expected == (int,) and isinstance(value, bool)
            ):
                logger.warning("Ignoring setting %s: unexpected value %r", key, value)
                continue
            values[key] = value
        return Settings(**values)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
