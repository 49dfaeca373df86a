"""Cover fetch progress reporting.

The fetch worker reports every state change of a queued song through a
per-session :class:`CoverEventReporter`. Callbacks may be plain functions
or coroutine functions, so the same stream can drive a CLI display or a
UI layer.
"""

import logging
from collections.abc import Callable, Coroutine
from enum import Enum
from inspect import iscoroutine
from typing import Any

import humanfriendly
import msgspec
from rich import get_console
from rich.progress import (
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)
from rich.table import Column

logger = logging.getLogger(__name__)


class CoverStatus(Enum):
    """State of a song in the fetch pipeline."""

    QUEUED = "queued"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    SKIPPED = "skipped"
    FAILED = "failed"


FINAL_STATUSES = frozenset(
    {
        CoverStatus.RESOLVED,
        CoverStatus.UNRESOLVED,
        CoverStatus.SKIPPED,
        CoverStatus.FAILED,
    }
)


class CoverEvent(msgspec.Struct, kw_only=True, frozen=True):
    """Cover pipeline event data.

    Attributes:
        filename: The representative song.
        status: New status.
        key: Cover unit key, once known.
        source: Source of the resolved image, for RESOLVED events.
        size: Size of the resolved image reference in bytes.
        message: Error or status message.
    """

    filename: str
    status: CoverStatus
    key: str = ""
    source: str = ""
    size: int = 0
    message: str = ""


# Callback type: receives CoverEvent
CoverEventCallback = Callable[[CoverEvent], Coroutine[Any, Any, None] | None]


class CoverEventReporter:
    """Fans cover events out to registered callbacks."""

    def __init__(self) -> None:
        self._callbacks: list[CoverEventCallback] = []

    def subscribe(self, callback: CoverEventCallback) -> Callable[[], None]:
        """Registers a callback.

        Args:
            callback: Function receiving every event.

        Returns:
            A function that unregisters the callback.
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def report(self, event: CoverEvent) -> None:
        """Dispatches an event to every callback.

        A failing callback is logged and does not stop the pipeline.

        Args:
            event: The event to dispatch.
        """
        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Cover event callback failed for %s", event.filename)


class RichCoverProgress:
    """Rich-based CLI renderer for cover events.

    Usage:
        with RichCoverProgress() as callback:
            reporter.subscribe(callback)
            # do work...
    """

    def __init__(self) -> None:
        self._progress: Progress | None = None
        self._tasks: dict[str, TaskID] = {}
        self.resolved = 0
        self.unresolved = 0
        self.bytes_resolved = 0

    def __enter__(self) -> "RichCoverProgress":
        """Start Rich progress display.

        Returns:
            Self for use as callback.
        """
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn(
                "[bold blue]{task.description}",
                table_column=Column(ratio=1, no_wrap=True, overflow="ellipsis"),
            ),
            TextColumn("{task.fields[status]}"),
            console=get_console(),
            expand=True,
            transient=True,
        )
        self._progress.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Stop Rich progress display."""
        if self._progress:
            self._progress.stop()
        self._tasks.clear()

    @property
    def summary(self) -> str:
        """One-line summary of the finished work."""
        size = humanfriendly.format_size(self.bytes_resolved, binary=True)
        return (
            f"{self.resolved} covers resolved ({size}), "
            f"{self.unresolved} without artwork"
        )

    def __call__(self, event: CoverEvent) -> None:
        """Handle cover event.

        Args:
            event: Cover event.
        """
        if event.status is CoverStatus.RESOLVED:
            self.resolved += 1
            self.bytes_resolved += event.size
        elif event.status in (CoverStatus.UNRESOLVED, CoverStatus.FAILED):
            self.unresolved += 1

        if self._progress is None:
            return

        if event.filename not in self._tasks:
            self._tasks[event.filename] = self._progress.add_task(
                event.filename[:40], total=None, status=event.status.value
            )
        task = self._tasks[event.filename]

        if event.status in FINAL_STATUSES:
            self._progress.remove_task(task)
            del self._tasks[event.filename]
        else:
            self._progress.update(task, status=event.status.value)
