"""Where recordings and transcripts end up on disk."""

from __future__ import annotations

import logging
import shutil
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Failure backups and the optional always-save history."""

    def __init__(
        self,
        backup_dir: Path,
        save_dir: Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backup_dir = Path(backup_dir)
        self.save_dir = Path(save_dir)
        self._clock = clock

    def backup(self, artifact: Path, transcript: Optional[str] = None) -> Path:
        """Move ``artifact`` into the backup dir as recording-<epoch ms>."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stem = f"recording-{int(self._clock() * 1000)}"
        target = self.backup_dir / f"{stem}{artifact.suffix}"
        shutil.move(str(artifact), str(target))
        logger.debug("Backed up %s to %s", artifact, target)
        if transcript:
            (self.backup_dir / f"{stem}.txt").write_text(transcript, encoding="utf-8")
        return target

    def save_transcript(self, text: str) -> Path:
        self.save_dir.mkdir(parents=True, exist_ok=True)
        target = self.save_dir / f"transcript-{self._stamp()}.txt"
        target.write_text(text, encoding="utf-8")
        logger.debug("Saved transcript to %s", target)
        return target

    def save_audio(self, audio: Path) -> Path:
        self.save_dir.mkdir(parents=True, exist_ok=True)
        target = self.save_dir / f"recording-{self._stamp()}{audio.suffix}"
        shutil.copy2(audio, target)
        logger.debug("Saved audio to %s", target)
        return target

    def _stamp(self) -> str:
        return datetime.fromtimestamp(self._clock()).strftime("%Y%m%d-%H%M%S")
