"""Speech-to-text adapters.

Both adapters take a finished audio file and return the plain transcript.
Errors are raised as ``TranscriptionError``; retrying is left to the
caller since every request is idempotent.
"""

from __future__ import annotations

import base64
import logging
import os
from pathlib import Path
from typing import Any, Optional

from errors import TranscriptionError
from interfaces import Transcriber
from providers import PROVIDERS, ModelSpec, create_openai_client, require_api_key

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

_AUDIO_MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
}


def _file_to_data_uri(path: Path) -> str:
    """Inline an audio file as a base64 data URI."""
    mime = _AUDIO_MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen3-asr-flash",
        language: str = "en",
        request_timeout_s: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._language = language
        self._request_timeout_s = request_timeout_s

    def transcribe(self, audio_path: Path) -> str:
        if dashscope is None:
            raise TranscriptionError("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise TranscriptionError("No API key configured")

        response = dashscope.MultiModalConversation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": [{"text": ""}]},
                {"role": "user", "content": [{"audio": _file_to_data_uri(Path(audio_path))}]},
            ],
            result_format="message",
            asr_options={"enable_itn": False, "language": self._language},
            timeout=self._request_timeout_s,
        )
        status = response.get("status_code", 200) if isinstance(response, dict) else 200
        if status != 200:
            raise TranscriptionError(
                f"{response.get('code') or status}: {response.get('message', '')}"
            )
        return self._extract_text(response)

    def _extract_text(self, response: object) -> str:
        """Pull text from a dashscope response dict."""
        if isinstance(response, dict):
            output = response.get("output") or {}
            choices = output.get("choices") or []
            if not choices:
                return ""
            message = choices[0].get("message") or {}
            content = message.get("content") or []
            if not content:
                return ""
            value = content[0]
            if isinstance(value, dict):
                return str(value.get("text", ""))
        return ""


class OpenAICompatibleTranscriber:
    """Whisper-style ``audio.transcriptions`` endpoint (Groq, OpenAI)."""

    def __init__(
        self,
        provider: str,
        model: str,
        language: str = "en",
        client: Optional[Any] = None,
    ) -> None:
        self._provider = provider
        self._model = model
        self._language = language
        self._client = client

    def transcribe(self, audio_path: Path) -> str:
        if self._client is None:
            self._client = create_openai_client(self._provider)
        with open(audio_path, "rb") as handle:
            result = self._client.audio.transcriptions.create(
                file=handle,
                model=self._model,
                language=self._language,
                temperature=0,
            )
        text = getattr(result, "text", None)
        if text is None:
            raise TranscriptionError("Transcription response has no text")
        return str(text)


def create_transcriber(spec: ModelSpec, language: str) -> Transcriber:
    """Build the adapter for ``spec``; raises ConfigError when the API key is missing."""
    logger.debug("Transcriber: %s (language=%s)", spec, language)
    if PROVIDERS[spec.provider].native_sdk:
        return DashscopeTranscriber(
            api_key=require_api_key(spec.provider), model=spec.name, language=language
        )
    return OpenAICompatibleTranscriber(
        spec.provider,
        spec.name,
        language=language,
        client=create_openai_client(spec.provider),
    )
