"""Cover fetch queue and its single worker.

The queue holds filenames of representative songs, one per cover unit
awaiting network resolution. A single worker task takes the head of the
queue, resolves it, and only then removes it, so at most one resolution
is in flight and a filename being resolved still counts as queued.
"""

import logging
from collections.abc import Iterable

import anyio

from .library import LibraryState
from .sources import CoverResolver
from .utils.cover_keys import song_key
from .utils.image_cache import ImageCache
from .utils.progress import CoverEvent, CoverEventReporter, CoverStatus

logger = logging.getLogger(__name__)


class CoverQueue:
    """FIFO of filenames with no duplicates.

    The head entry is the one being resolved while the worker is busy; it
    is only removed once its resolution finished.
    """

    def __init__(self) -> None:
        self._items: tuple[str, ...] = ()
        self._busy = False
        self._condition = anyio.Condition()

    def __contains__(self, filename: object) -> bool:
        return filename in self._items

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> tuple[str, ...]:
        """Snapshot of the queued filenames in order."""
        return self._items

    @property
    def busy(self) -> bool:
        """Whether the head entry is being resolved."""
        return self._busy

    async def extend(self, filenames: Iterable[str]) -> list[str]:
        """Appends filenames that are not queued yet.

        Args:
            filenames: Filenames in the order they should be resolved.

        Returns:
            The filenames that were actually added.
        """
        added: list[str] = []
        async with self._condition:
            items = list(self._items)
            for filename in filenames:
                if filename not in items:
                    items.append(filename)
                    added.append(filename)
            if added:
                self._items = tuple(items)
                self._condition.notify_all()
        return added

    async def prioritize(self, filename: str) -> None:
        """Moves a filename to the front of the pending entries.

        An entry being resolved keeps its place at the head.

        Args:
            filename: Filename to resolve next.
        """
        async with self._condition:
            if self._busy and self._items and self._items[0] == filename:
                return
            pending = [f for f in self._items if f != filename]
            position = 1 if self._busy and pending else 0
            pending.insert(position, filename)
            self._items = tuple(pending)
            self._condition.notify_all()

    async def discard(self, filenames: Iterable[str]) -> list[str]:
        """Removes pending filenames without resolving them.

        The entry being resolved is never removed.

        Args:
            filenames: Filenames to drop.

        Returns:
            The filenames that were actually removed.
        """
        async with self._condition:
            head = self._items[0] if self._busy and self._items else None
            drop = {f for f in filenames if f != head}
            removed = [f for f in self._items if f in drop]
            if removed:
                self._items = tuple(f for f in self._items if f not in drop)
                self._condition.notify_all()
        return removed

    async def take(self) -> str:
        """Waits for a head entry and marks the queue busy.

        Returns:
            The filename at the head of the queue.
        """
        async with self._condition:
            while not self._items:
                await self._condition.wait()
            self._busy = True
            return self._items[0]

    async def done(self, filename: str) -> None:
        """Removes a resolved head entry and releases the busy flag.

        Args:
            filename: The filename returned by :meth:`take`.
        """
        async with self._condition:
            self._items = tuple(f for f in self._items if f != filename)
            self._busy = False
            self._condition.notify_all()

    async def join(self) -> None:
        """Waits until the queue is empty and nothing is in flight."""
        async with self._condition:
            while self._items or self._busy:
                await self._condition.wait()


class CoverFetchWorker:
    """Drains the cover queue one filename at a time."""

    def __init__(
        self,
        queue: CoverQueue,
        library: LibraryState,
        cache: ImageCache,
        resolver: CoverResolver,
        reporter: CoverEventReporter | None = None,
    ) -> None:
        """Initializes the worker.

        Args:
            queue: Queue to drain.
            library: Library state receiving resolved covers.
            cache: Persistent image cache.
            resolver: Source chain resolver.
            reporter: Optional event reporter.
        """
        self._queue = queue
        self._library = library
        self._cache = cache
        self._resolver = resolver
        self._reporter = reporter or CoverEventReporter()

    async def run(self) -> None:
        """Processes queue entries forever, until cancelled."""
        logger.debug("Cover fetch worker started")
        while True:
            filename = await self._queue.take()
            try:
                await self.process(filename)
            finally:
                with anyio.CancelScope(shield=True):
                    await self._queue.done(filename)

    async def process(self, filename: str) -> CoverStatus:
        """Resolves and stores artwork for one representative song.

        Errors are logged and reported; they never escape.

        Args:
            filename: Representative song filename.

        Returns:
            Final status of the entry.
        """
        song = self._library.find(filename)
        if song is None:
            logger.debug("%s left the library before its cover was fetched", filename)
            await self._report(filename, CoverStatus.SKIPPED)
            return CoverStatus.SKIPPED

        key = song_key(song)
        await self._report(filename, CoverStatus.RESOLVING, key=key)

        try:
            resolved = await self._resolver.resolve(song)
            if resolved is None:
                logger.debug("No artwork available for %s", filename)
                await self._report(filename, CoverStatus.UNRESOLVED, key=key)
                return CoverStatus.UNRESOLVED

            await self._cache.put(key, resolved.image)
            # A representative that already had a cover was queued by a forced
            # scan; otherwise covers from the library are kept.
            changed = self._library.apply_cover(
                key, resolved.image, overwrite=bool(song.cover)
            )
            logger.info(
                "Resolved %s cover for %s (%d songs updated)",
                resolved.source.value,
                key,
                changed,
            )
        except Exception as e:
            logger.error("Failed to load cover for %s: %s", filename, e, exc_info=True)
            await self._report(filename, CoverStatus.FAILED, key=key, message=str(e))
            return CoverStatus.FAILED

        await self._report(
            filename,
            CoverStatus.RESOLVED,
            key=key,
            source=resolved.source.value,
            size=len(resolved.image),
        )
        await self._drop_siblings(filename, key)
        return CoverStatus.RESOLVED

    async def _drop_siblings(self, filename: str, key: str) -> None:
        siblings = []
        for queued in self._queue.items:
            song = self._library.find(queued)
            if queued != filename and song is not None and song_key(song) == key:
                siblings.append(queued)
        for sibling in await self._queue.discard(siblings):
            logger.debug("%s shares the cover just resolved for %s", sibling, key)
            await self._report(sibling, CoverStatus.SKIPPED, key=key)

    async def _report(
        self,
        filename: str,
        status: CoverStatus,
        key: str = "",
        source: str = "",
        size: int = 0,
        message: str = "",
    ) -> None:
        await self._reporter.report(
            CoverEvent(
                filename=filename,
                status=status,
                key=key,
                source=source,
                size=size,
                message=message,
            )
        )
