"""Loudness-to-glyph quantization for the live recording waveform."""

from __future__ import annotations

import math
from collections import deque

# Quiet to loud
LEVEL_SYMBOLS = ("·", "-", "=", "≡", "■", "█")

# Quiet room noise to normal speech peaks
FLOOR_DB = -45.0
CEILING_DB = -18.0

SILENT_DB = -60.0
DEFAULT_WIDTH = 60


def quantize(loudness_db: float) -> str:
    """Map a dB reading onto one of ``LEVEL_SYMBOLS``.

    Readings outside [FLOOR_DB, CEILING_DB] saturate; NaN counts as silence.
    """
    if math.isnan(loudness_db):
        loudness_db = FLOOR_DB
    clamped = max(FLOOR_DB, min(CEILING_DB, loudness_db))
    normalized = (clamped - FLOOR_DB) / (CEILING_DB - FLOOR_DB)
    count = len(LEVEL_SYMBOLS)
    index = min(count - 1, int(math.floor(normalized * count)))
    return LEVEL_SYMBOLS[index]


class LevelHistory:
    """Fixed-width ring buffer of level symbols, oldest on the left."""

    def __init__(self, width: int = DEFAULT_WIDTH, fill: str = " ") -> None:
        if width <= 0:
            raise ValueError("width must be positive")
        self._symbols: deque[str] = deque([fill] * width, maxlen=width)

    def push(self, loudness_db: float) -> str:
        symbol = quantize(loudness_db)
        self._symbols.append(symbol)
        return symbol

    def render(self) -> str:
        return "".join(self._symbols)

    def __len__(self) -> int:
        return len(self._symbols)
