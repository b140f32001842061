"""Terminal rendering: header box, live recording line, status and results."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

from level_meter import DEFAULT_WIDTH
from models import RecordingSnapshot

# " Recording [00:00 / 15:00] Press Enter to stop"
STATUS_TEXT_WIDTH = 45
MIN_WAVE_WIDTH = 10
STATUS_PREFIX = "├─ "


def format_time(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    return format_time(int(seconds))


def wave_width_for(columns: int) -> int:
    """Keep the waveform on one line with the status text when it fits."""
    if columns >= DEFAULT_WIDTH + STATUS_TEXT_WIDTH:
        return DEFAULT_WIDTH
    return max(MIN_WAVE_WIDTH, columns - 2)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


class TerminalDisplay:
    """All user-facing output goes through here.

    The live line (recording waveform or pipeline status) is transient and
    cleared before anything permanent is printed.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self._live: Optional[Live] = None
        self._lock = threading.Lock()

    @property
    def wave_width(self) -> int:
        return wave_width_for(self.console.size.width)

    def header(self, model: str, vocab_sources: Sequence[str]) -> None:
        body = Text.assemble(("Model: ", "grey50"), (model, "white"))
        if vocab_sources:
            body.append("\n")
            body.append_text(
                Text.assemble(
                    ("Vocab: ", "grey50"),
                    (" + ".join(vocab_sources), "italic yellow"),
                )
            )
        self.console.print(
            Panel(
                body,
                title="[bold blue] WHSPR [/]",
                title_align="left",
                border_style="dim",
                width=min(self.console.size.width, 66),
            )
        )
        self.console.print()

    def recording(self, snapshot: RecordingSnapshot) -> None:
        line = Text.assemble(
            (snapshot.waveform, "cyan"),
            " ",
            ("Recording", "blue"),
            " [",
            (format_time(snapshot.elapsed_seconds), "yellow"),
            f" / {format_time(snapshot.max_duration_seconds)}] ",
            ("Press Enter to stop", "grey50"),
        )
        self._show(line)

    def status(self, message: str) -> None:
        self._show(Text.assemble((STATUS_PREFIX, "dim"), (message, "cyan")))

    def progress(self, label: str, percent: int) -> None:
        self.status(f"{label} {percent}%")

    def clear(self) -> None:
        with self._lock:
            if self._live is not None:
                self._live.stop()
                self._live = None

    def note(self, message: str) -> None:
        self.clear()
        self.console.print(Text(message, style="grey50"))

    def result(self, text: str) -> None:
        self.clear()
        self.console.print(text, markup=False, highlight=False)

    def error(self, message: str) -> None:
        self.clear()
        self.console.print(Text(f"Error: {message}", style="red"))

    def backup(self, path: Path) -> None:
        self.console.print(Text(f"Recording saved to: {path}", style="yellow"))

    def stats(
        self,
        audio_seconds: float,
        processing_seconds: float,
        cost: Optional[str] = None,
    ) -> None:
        line = Text.assemble(
            ("Audio: ", "grey50"),
            (format_duration(audio_seconds), "white"),
            (" • Processing: ", "grey50"),
            (format_duration(processing_seconds), "white"),
        )
        if cost:
            line.append_text(Text.assemble((" • Cost: ", "grey50"), (cost, "white")))
        self.console.print(line)

    def _show(self, renderable: Text) -> None:
        with self._lock:
            if self._live is None:
                self._live = Live(
                    renderable,
                    console=self.console,
                    auto_refresh=False,
                    transient=True,
                )
                self._live.start()
            self._live.update(renderable, refresh=True)
