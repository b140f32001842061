"""Coarse progress estimate for a streaming text cleanup.

The cleaned text is usually about as long as the raw transcript, so the
ratio of the two lengths is used as a stand-in for completion. It is an
approximation only: it can hit 100 before the stream ends, or stay below
100 when the output runs shorter. The end of the stream, not the
percentage, decides when the work is done.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from models import CompletionChunk, TokenUsage


def estimate_progress(raw_length: int, accumulated_length: int) -> int:
    """Return a percentage in [0, 100]."""
    if raw_length <= 0:
        return 100 if accumulated_length > 0 else 0
    if accumulated_length <= 0:
        return 0
    percent = int(accumulated_length / raw_length * 100 + 0.5)
    return min(100, percent)


class ProgressStream:
    """Lazily yields percentages while accumulating a completion stream.

    ``text`` and ``usage`` are final once iteration is exhausted.
    """

    def __init__(self, raw_text: str, chunks: Iterable[CompletionChunk]) -> None:
        self._raw_length = len(raw_text)
        self._chunks = chunks
        self._parts: list[str] = []
        self._length = 0
        self.usage: Optional[TokenUsage] = None

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __iter__(self) -> Iterator[int]:
        for chunk in self._chunks:
            if chunk.usage is not None:
                self.usage = chunk.usage
            if not chunk.text:
                continue
            self._parts.append(chunk.text)
            self._length += len(chunk.text)
            yield estimate_progress(self._raw_length, self._length)
