"""Cache-hit sweep over the library.

A scan applies cached artwork to every song that can be satisfied from
the persistent image cache and queues one representative song per cover
unit that still needs network resolution. It never touches the network.
"""

import logging

import msgspec

from .cover_queue import CoverQueue
from .library import LibraryState
from .utils.cover_keys import song_key
from .utils.image_cache import ImageCache
from .utils.progress import CoverEvent, CoverEventReporter, CoverStatus

logger = logging.getLogger(__name__)


class ScanResult(msgspec.Struct, frozen=True):
    """Outcome of one scan pass.

    Attributes:
        cache_hits: Cover unit keys satisfied from the cache.
        queued: Filenames appended to the fetch queue.
        updated: Number of songs that received a cached cover.
    """

    cache_hits: tuple[str, ...] = ()
    queued: tuple[str, ...] = ()
    updated: int = 0


class CoverScanner:
    """Runs scan passes against the library, cache and fetch queue."""

    def __init__(
        self,
        library: LibraryState,
        cache: ImageCache,
        queue: CoverQueue,
        reporter: CoverEventReporter | None = None,
    ) -> None:
        """Initializes the scanner.

        Args:
            library: Library state to update.
            cache: Persistent image cache.
            queue: Fetch queue receiving cache misses.
            reporter: Optional event reporter.
        """
        self._library = library
        self._cache = cache
        self._queue = queue
        self._reporter = reporter or CoverEventReporter()

    def _queued_keys(self) -> set[str]:
        keys: set[str] = set()
        for filename in self._queue.items:
            song = self._library.find(filename)
            if song is not None:
                keys.add(song_key(song))
        return keys

    async def scan(self, auto_load: bool, force: bool = False) -> ScanResult:
        """Runs one pass over the current collection.

        Args:
            auto_load: Queue cache misses for network resolution.
            force: Re-check songs that already have a cover, queue misses
                even without auto_load, and let cache hits overwrite
                existing covers.

        Returns:
            What the pass did.
        """
        songs = self._library.songs
        if not songs:
            return ScanResult()

        # Units already represented in the queue are resolved by the worker.
        handled_keys = self._queued_keys()
        hits: list[str] = []
        to_queue: list[str] = []
        updated = 0

        for song in songs:
            if song.cover and not force:
                continue
            if song.filename in self._queue:
                continue

            key = song_key(song)
            if key in handled_keys:
                continue
            handled_keys.add(key)

            cached = await self._cache.get(key)
            if cached:
                hits.append(key)
                updated += self._library.apply_cover(key, cached, overwrite=force)
            elif auto_load or force:
                to_queue.append(song.filename)

        self._library.refresh_now_playing()

        queued = await self._queue.extend(to_queue) if to_queue else []
        for filename in queued:
            await self._reporter.report(
                CoverEvent(filename=filename, status=CoverStatus.QUEUED)
            )

        logger.debug(
            "Scan%s: %d cache hits (%d songs updated), %d queued",
            " (forced)" if force else "",
            len(hits),
            updated,
            len(queued),
        )
        return ScanResult(cache_hits=tuple(hits), queued=tuple(queued), updated=updated)
