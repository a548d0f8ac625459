"""Terminal level meter and recorder status panel."""

import logging
from typing import Optional

from pubsub import pub
from rich.align import Align
from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..audio.meter_pub import LEVEL_TOPIC
from ..models.audio import MeterSample, RecordingState

logger = logging.getLogger(__name__)

METER_WIDTH = 40
FLOOR_DB = -60.0


def format_time(seconds: float) -> str:
    """Format seconds as MM:SS."""
    total = int(seconds)
    return f"{total // 60:02d}:{total % 60:02d}"


def meter_bar(sample: Optional[MeterSample], width: int = METER_WIDTH) -> Text:
    """Render a level bar with a peak marker."""
    if sample is None:
        return Text("-" * width, style="grey37")

    def position(db: float) -> int:
        return int(round((db - FLOOR_DB) / -FLOOR_DB * width))

    level = min(width, max(0, position(sample.level_db)))
    peak = min(width - 1, max(0, position(sample.peak_db) - 1))
    bar = Text()
    for i in range(width):
        if i == peak and sample.peak_db > FLOOR_DB:
            bar.append("|", style="bold white")
        elif i < level:
            if sample.clipping:
                style = "red"
            elif i >= width * 0.9:
                style = "red"
            elif i >= width * 0.7:
                style = "yellow"
            else:
                style = "green"
            bar.append("█", style=style)
        else:
            bar.append("·", style="grey37")
    return bar


class LevelDisplay:
    """Rendering collaborator: subscribes to meter samples and draws a status panel.

    It only reads recorder state; it never mutates it.
    """

    def __init__(self, recorder, topic: str = LEVEL_TOPIC):
        self.recorder = recorder
        self.topic = topic
        self.sample: Optional[MeterSample] = None
        pub.subscribe(self._on_sample, topic)

    def _on_sample(self, sample: MeterSample) -> None:
        self.sample = sample

    def render(self) -> Panel:
        stats = self.recorder.get_stats()
        recording = stats.state is RecordingState.RECORDING

        level_text = Text()
        if self.sample is not None:
            level_text.append(f"{self.sample.level_db:6.1f} dB",
                              style="bold red" if self.sample.clipping else "green")
            level_text.append(f"   Peak: {self.sample.peak_db:6.1f} dB", style="grey70")
            if self.sample.clipping:
                level_text.append("   CLIP", style="bold white on red")

        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan")
        table.add_column()
        table.add_row("State", Text(stats.state.value.upper(), style="bold red" if recording else "yellow"))
        table.add_row("Time", format_time(stats.duration_seconds))
        table.add_row("Chunks", f"{stats.chunk_count} ({stats.buffered_bytes / 1024:.0f} KiB)")
        table.add_row("Save to", stats.current_file_path or "downloads")
        if stats.warnings:
            table.add_row("Warnings", Text(", ".join(stats.warnings), style="yellow"))
        if stats.last_error:
            table.add_row("Error", Text(stats.last_error, style="bold red"))

        return Panel(
            Group(Align.center(meter_bar(self.sample)), Align.center(level_text), table),
            title="podrec",
            border_style="red" if recording else "blue",
        )

    def shutdown(self) -> None:
        if pub.isSubscribed(self._on_sample, self.topic):
            pub.unsubscribe(self._on_sample, self.topic)
