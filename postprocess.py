"""Transcript cleanup through a streaming chat-completion model."""

from __future__ import annotations

import logging
import os
from typing import Any, Iterator, Optional

from errors import PostProcessingError
from interfaces import CompletionClient
from models import CompletionChunk, TokenUsage
from progress import ProgressStream
from providers import PROVIDERS, ModelSpec, create_openai_client, require_api_key

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You fix speech-to-text transcriptions. Correct misheard words, spelling, "
    "punctuation and capitalization. Keep the speaker's wording and meaning. "
    "Do not answer, summarize or add anything. Reply with the corrected text only."
)
DEFAULT_CUSTOM_PROMPT_PREFIX = (
    "Here is a list of custom vocabulary and spellings that may appear:"
)
DEFAULT_TRANSCRIPTION_PREFIX = "Here is the raw transcription to fix:"


def build_user_content(
    raw_text: str,
    vocabulary: Optional[str],
    custom_prompt_prefix: str = DEFAULT_CUSTOM_PROMPT_PREFIX,
    transcription_prefix: str = DEFAULT_TRANSCRIPTION_PREFIX,
) -> str:
    parts = []
    if vocabulary:
        parts.append(f"{custom_prompt_prefix}\n```\n{vocabulary}\n```\n\n")
    parts.append(f"{transcription_prefix}\n```\n{raw_text}\n```")
    return "".join(parts).strip()


class DashscopeCompletion:
    def __init__(self, model: str, api_key: str = "") -> None:
        self._model = model
        self._api_key = api_key

    def stream(self, system_prompt: str, user_content: str) -> Iterator[CompletionChunk]:
        if dashscope is None:
            raise PostProcessingError("dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise PostProcessingError("No API key configured")
        responses = dashscope.Generation.call(
            api_key=api_key,
            model=self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            result_format="message",
            stream=True,
            incremental_output=True,
        )
        for response in responses:
            if response.get("status_code", 200) != 200:
                raise PostProcessingError(
                    f"{response.get('code')}: {response.get('message', '')}"
                )
            yield CompletionChunk(
                text=self._extract_text(response),
                usage=self._extract_usage(response),
            )

    def _extract_text(self, response: dict) -> str:
        choices = (response.get("output") or {}).get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return str(message.get("content") or "")

    def _extract_usage(self, response: dict) -> Optional[TokenUsage]:
        usage = response.get("usage")
        if not usage:
            return None
        return TokenUsage(
            input_tokens=int(usage.get("input_tokens", 0)),
            output_tokens=int(usage.get("output_tokens", 0)),
        )


class OpenAICompatibleCompletion:
    def __init__(self, provider: str, model: str, client: Optional[Any] = None) -> None:
        self._provider = provider
        self._model = model
        self._client = client

    def stream(self, system_prompt: str, user_content: str) -> Iterator[CompletionChunk]:
        if self._client is None:
            self._client = create_openai_client(self._provider)
        extra: dict[str, Any] = {}
        if self._provider == "openai":
            extra["stream_options"] = {"include_usage": True}
        chunks = self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            stream=True,
            **extra,
        )
        for chunk in chunks:
            text = ""
            if chunk.choices:
                text = chunk.choices[0].delta.content or ""
            yield CompletionChunk(text=text, usage=self._extract_usage(chunk))

    def _extract_usage(self, chunk: Any) -> Optional[TokenUsage]:
        # Groq reports usage on its own extension field
        usage = getattr(chunk, "usage", None) or getattr(
            getattr(chunk, "x_groq", None), "usage", None
        )
        if usage is None:
            return None
        if isinstance(usage, dict):
            prompt = usage.get("prompt_tokens", 0)
            completion = usage.get("completion_tokens", 0)
        else:
            prompt = getattr(usage, "prompt_tokens", 0)
            completion = getattr(usage, "completion_tokens", 0)
        return TokenUsage(input_tokens=int(prompt or 0), output_tokens=int(completion or 0))


def create_completion_client(spec: ModelSpec) -> CompletionClient:
    if PROVIDERS[spec.provider].native_sdk:
        return DashscopeCompletion(model=spec.name, api_key=require_api_key(spec.provider))
    return OpenAICompatibleCompletion(
        spec.provider, spec.name, client=create_openai_client(spec.provider)
    )


class PostProcessor:
    """Builds the cleanup request and wraps the reply in a ProgressStream."""

    def __init__(
        self,
        client: CompletionClient,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        custom_prompt_prefix: str = DEFAULT_CUSTOM_PROMPT_PREFIX,
        transcription_prefix: str = DEFAULT_TRANSCRIPTION_PREFIX,
    ) -> None:
        self._client = client
        self._system_prompt = system_prompt
        self._custom_prompt_prefix = custom_prompt_prefix
        self._transcription_prefix = transcription_prefix

    def stream(self, raw_text: str, vocabulary: Optional[str] = None) -> ProgressStream:
        user_content = build_user_content(
            raw_text,
            vocabulary,
            custom_prompt_prefix=self._custom_prompt_prefix,
            transcription_prefix=self._transcription_prefix,
        )
        logger.debug("Post-processing %d characters", len(raw_text))
        return ProgressStream(raw_text, self._client.stream(self._system_prompt, user_content))
