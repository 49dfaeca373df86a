"""Session orchestrator for the cover pipeline.

A :class:`Sleeve` is built once per application session. It owns the
library state, the image cache, the fetch queue with its worker task and
the scanner; settings and collaborators are injected.
"""

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

import aiohttp
import anyio
from rich.logging import RichHandler

from .cover_queue import CoverFetchWorker, CoverQueue
from .library import LibraryState, display_cover
from .library_provider import HttpLibraryProvider, LibraryProvider
from .scanner import CoverScanner, ScanResult
from .sources import (
    CoverResolver,
    ITunesArtworkSearch,
    LocalTagMetadataLookup,
    MetadataLookup,
    ServerMetadataLookup,
)
from .utils.cover_keys import song_key
from .utils.exceptions import LibraryLoadError
from .utils.image_cache import ImageCache
from .utils.models import LibrarySnapshot, Song
from .utils.progress import CoverEventReporter
from .utils.settings import AppSettings
from .utils.utils import create_aiohttp_session

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configures logging using the Rich handler.

    Args:
        debug: Log at DEBUG level instead of WARNING.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


class Sleeve:
    """Main orchestrator for library loading and cover resolution."""

    __slots__ = (
        "settings",
        "library",
        "cache",
        "queue",
        "reporter",
        "scanner",
        "worker",
        "_provider",
    )

    def __init__(
        self,
        settings: AppSettings,
        provider: LibraryProvider,
        resolver: CoverResolver,
        cache: ImageCache | None = None,
    ) -> None:
        """Initializes the orchestrator.

        Args:
            settings: Application settings. Toggles write through to it.
            provider: Source of the song collection.
            resolver: Source chain used by the fetch worker.
            cache: Persistent image cache. Defaults to the configured path.
        """
        self.settings = settings
        self.library = LibraryState()
        self.cache = cache if cache is not None else ImageCache(settings.cache_path)
        self.queue = CoverQueue()
        self.reporter = CoverEventReporter()
        self.scanner = CoverScanner(self.library, self.cache, self.queue, self.reporter)
        self.worker = CoverFetchWorker(
            self.queue, self.library, self.cache, resolver, self.reporter
        )
        self._provider = provider

    @asynccontextmanager
    async def running(self) -> AsyncIterator["Sleeve"]:
        """Runs the fetch worker for the duration of the context.

        Yields:
            This orchestrator.
        """
        async with anyio.create_task_group() as tg:
            tg.start_soon(self.worker.run)
            try:
                yield self
            finally:
                tg.cancel_scope.cancel()

    async def reload_library(self) -> bool:
        """Reloads the library and scans it for covers.

        A failed load keeps the current collection.

        Returns:
            True if the library was replaced.
        """
        snapshot = await self._load_snapshot()
        if snapshot is None:
            return False

        self.library.replace_library(snapshot)
        await self.rescan()
        return True

    async def _load_snapshot(self) -> LibrarySnapshot | None:
        try:
            return await self._provider.load_library()
        except LibraryLoadError as e:
            logger.warning("Failed to load library: %s", e)
            return None

    async def rescan(self, force: bool = False) -> ScanResult:
        """Runs the cache-hit sweep.

        Args:
            force: Re-check songs that already show a cover.

        Returns:
            What the pass did.
        """
        return await self.scanner.scan(
            auto_load=self.settings.covers.auto_load_covers, force=force
        )

    async def play(self, filename: str) -> Song | None:
        """Selects a song for playback.

        A song without any artwork jumps to the front of the fetch queue.
        When another song of its cover unit is already queued, that entry
        is moved instead, so the unit is still fetched only once.

        Args:
            filename: Library filename.

        Returns:
            The selected song, or None if it is not in the library.
        """
        song = self.library.select(filename)
        if song is not None and not song.cover and not song.animated_cover:
            queued = self._queued_representative(song_key(song))
            await self.queue.prioritize(queued or filename)
        return song

    def _queued_representative(self, key: str) -> str | None:
        for queued in self.queue.items:
            song = self.library.find(queued)
            if song is not None and song_key(song) == key:
                return queued
        return None

    async def set_auto_load_covers(self, enabled: bool) -> None:
        """Toggles automatic cover loading and rescans.

        Args:
            enabled: New value.
        """
        self.settings.covers.auto_load_covers = enabled
        await self.rescan()

    def set_disable_animated_covers(self, disabled: bool) -> None:
        """Toggles the preference for static covers.

        Args:
            disabled: New value.
        """
        self.settings.covers.disable_animated_covers = disabled

    def display_cover(self, song: Song) -> str | None:
        """Artwork to show for a song under the current settings."""
        return display_cover(song, self.settings.covers.disable_animated_covers)

    def album_songs(self, album: str) -> list[Song]:
        """Songs of an album in track order."""
        return self.library.album_songs(album)

    async def after_metadata_edit(self, filenames: Iterable[str]) -> None:
        """Refreshes the library after songs were edited.

        The cached artwork of a cover unit is dropped when every song of
        the unit was edited, or when an edited song comes back from the
        library with its own cover. Songs carrying a cover after the reload
        keep it; only songs left without artwork are looked up again.

        Args:
            filenames: Filenames of the edited songs.
        """
        snapshot = await self._load_snapshot()
        if snapshot is None:
            return

        for key in self._stale_keys(set(filenames), snapshot):
            if await self.cache.delete(key):
                logger.debug("Dropped cached cover %s after edit", key)

        self.library.replace_library(snapshot)
        await self.rescan()

    def _stale_keys(self, edited: set[str], snapshot: LibrarySnapshot) -> set[str]:
        units: dict[str, set[str]] = {}
        for song in self.library.songs:
            units.setdefault(song_key(song), set()).add(song.filename)
        reloaded = {s.filename: s for s in snapshot.songs}

        stale: set[str] = set()
        for filename in edited:
            song = self.library.find(filename)
            if song is None:
                continue
            key = song_key(song)
            if units[key] <= edited:
                stale.add(key)
                continue
            new = reloaded.get(filename)
            if (
                new is not None
                and new.cover
                and new.cover != song.cover
                and song_key(new) == key
            ):
                stale.add(key)
        return stale

    async def wait_until_idle(self) -> None:
        """Waits until every queued cover has been processed."""
        await self.queue.join()


def build_metadata_lookup(
    settings: AppSettings, session: aiohttp.ClientSession
) -> MetadataLookup:
    """Chooses the embedded artwork source from the settings."""
    if settings.general.music_path:
        return LocalTagMetadataLookup(settings.general.music_path)
    return ServerMetadataLookup(session, settings.general.server_url)


@asynccontextmanager
async def open_sleeve(settings: AppSettings) -> AsyncIterator[Sleeve]:
    """Builds a running orchestrator with the HTTP collaborators.

    Args:
        settings: Application settings.

    Yields:
        A running orchestrator; the library is not loaded yet.
    """
    session = create_aiohttp_session(timeout=settings.advanced.request_timeout)
    async with session:
        provider = HttpLibraryProvider(
            session,
            settings.general.server_url,
            timeout=settings.advanced.library_timeout,
        )
        resolver = CoverResolver(
            build_metadata_lookup(settings, session),
            ITunesArtworkSearch(session, settings.covers),
        )
        sleeve = Sleeve(settings, provider, resolver)
        async with sleeve.running():
            yield sleeve
