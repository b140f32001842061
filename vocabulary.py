"""Custom vocabulary files passed to the cleanup model as extra context."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

VOCABULARY_FILENAME = "WHISPER.md"


@dataclass(frozen=True)
class Vocabulary:
    text: Optional[str] = None
    sources: tuple[str, ...] = field(default_factory=tuple)


def _read(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    try:
        content = path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return None
    return content or None


def load_vocabulary(global_dir: Path, local_dir: Optional[Path] = None) -> Vocabulary:
    """Read the per-user file first, then the one in ``local_dir`` (cwd)."""
    local_dir = local_dir or Path.cwd()
    candidates = [("global", Path(global_dir))]
    if Path(local_dir).resolve() != Path(global_dir).resolve():
        candidates.append(("local", Path(local_dir)))
    texts: list[str] = []
    sources: list[str] = []
    for label, directory in candidates:
        content = _read(directory / VOCABULARY_FILENAME)
        if content is None:
            continue
        texts.append(content)
        sources.append(label)
    if not texts:
        return Vocabulary()
    return Vocabulary(text="\n\n".join(texts), sources=tuple(sources))
