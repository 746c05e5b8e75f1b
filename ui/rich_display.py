from __future__ import annotations

import asyncio
import time

from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from config import settings
from models import ProgressEvent, ProgressStatus

_STATUS_STYLES = {
    ProgressStatus.PENDING: "dim",
    ProgressStatus.IN_PROGRESS: "yellow",
    ProgressStatus.COMPLETED: "green",
    ProgressStatus.ERROR: "bold red",
}


class RichProgressObserver:
    """Live panel fed by pipeline progress events."""

    def __init__(self, topic: str, enabled: bool | None = None) -> None:
        self.enabled = settings.ENABLE_RICH_PROGRESS if enabled is None else enabled
        self.live: Live | None = None
        self.status_text_topic = Text(f"Topic: {topic}")
        self.status_text_phase = Text("Phase: Initializing...")
        self.status_text_message = Text("")
        self.status_text_elapsed_time = Text("Elapsed Time: 0s")
        self.events: list[ProgressEvent] = []
        self.run_start_time: float = 0.0
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

        if self.enabled:
            self.live = Live(
                Panel(
                    Group(
                        self.status_text_topic,
                        self.status_text_phase,
                        self.status_text_message,
                        self.status_text_elapsed_time,
                    ),
                    title="DraftLoop Progress",
                    border_style="blue",
                    expand=True,
                ),
                refresh_per_second=4,
                transient=False,
                redirect_stdout=False,
                redirect_stderr=False,
            )

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)
        self.status_text_phase.plain = f"Phase: {event.phase} ({event.status.value})"
        self.status_text_phase.style = _STATUS_STYLES[event.status]
        self.status_text_message.plain = (
            f"{event.message} - {event.details}" if event.details else event.message
        )
        self._tick()

    def start(self) -> None:
        self.run_start_time = time.time()
        if self.live:
            self.live.start()
            self._stop_event.clear()
            self._task = asyncio.create_task(self._auto_refresh())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        if self.live and self.live.is_started:
            self.live.stop()

    async def _auto_refresh(self) -> None:
        while not self._stop_event.is_set():
            self._tick()
            await asyncio.sleep(1)

    def _tick(self) -> None:
        if not self.run_start_time:
            return
        elapsed_seconds = time.time() - self.run_start_time
        self.status_text_elapsed_time.plain = (
            f"Elapsed Time: {time.strftime('%H:%M:%S', time.gmtime(elapsed_seconds))}"
        )
