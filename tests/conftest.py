"""Shared fixtures and fakes for the Sleeve test suite."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import anyio
import msgspec
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from sleeve.cover_queue import CoverFetchWorker, CoverQueue
from sleeve.library import LibraryState
from sleeve.scanner import CoverScanner
from sleeve.sources import CoverResolver
from sleeve.utils.exceptions import LibraryLoadError, MetadataLookupError
from sleeve.utils.image_cache import ImageCache
from sleeve.utils.models import (
    CoverSource,
    EmbeddedMetadata,
    LibrarySnapshot,
    ResolvedCover,
    Song,
)
from sleeve.utils.progress import CoverEvent, CoverEventReporter


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_song(
    filename: str,
    artist: str = "SZA",
    album: str = "SOS",
    cover: str | None = None,
    **kwargs,
) -> Song:
    return Song(
        filename=filename,
        title=filename.rsplit(".", 1)[0],
        artist=artist,
        album=album,
        cover=cover,
        **kwargs,
    )


class FakeMetadataLookup:
    """Embedded artwork by filename; unknown files fail like a 500."""

    def __init__(self, covers: dict[str, str] | None = None) -> None:
        self.covers = covers or {}
        self.calls: list[str] = []

    async def get_embedded_metadata(self, filename: str) -> EmbeddedMetadata:
        self.calls.append(filename)
        await anyio.sleep(0)
        if filename not in self.covers:
            raise MetadataLookupError(filename, "Failed to fetch metadata")
        return EmbeddedMetadata(cover=self.covers[filename])


class FakeArtworkSearch:
    """Artwork URLs by (artist, album)."""

    def __init__(self, urls: dict[tuple[str, str], str] | None = None) -> None:
        self.urls = urls or {}
        self.calls: list[tuple[str, str]] = []
        self.downloads: list[str] = []

    async def find_artwork_url(self, artist: str, album: str) -> str | None:
        self.calls.append((artist, album))
        await anyio.sleep(0)
        return self.urls.get((artist, album))

    async def download_as_persistable(self, url: str) -> str:
        self.downloads.append(url)
        await anyio.sleep(0)
        return f"data:image/jpeg;base64,{url.rsplit('/', 1)[-1]}"


class TrackingResolver(CoverResolver):
    """Resolver that records how many resolutions overlap."""

    def __init__(self, images: dict[str, str], delay: float = 0.01) -> None:
        super().__init__(None, None)
        self.images = images
        self.delay = delay
        self.order: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def resolve(self, song: Song) -> ResolvedCover | None:
        self.order.append(song.filename)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await anyio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        image = self.images.get(song.filename)
        return ResolvedCover(image, CoverSource.ITUNES) if image else None


class FakeProvider:
    """Library provider returning a fixed snapshot, or failing."""

    def __init__(self, songs: list[Song] | None = None, fail: bool = False) -> None:
        self.snapshot = LibrarySnapshot(songs=tuple(songs or ()))
        self.fail = fail
        self.loads = 0

    async def load_library(self) -> LibrarySnapshot:
        self.loads += 1
        if self.fail:
            raise LibraryLoadError()
        return self.snapshot


class CountingCache(ImageCache):
    """Image cache recording every key read."""

    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.reads: list[str] = []

    async def get(self, key: str) -> str | None:
        self.reads.append(key)
        return await super().get(key)


class Pipeline:
    """Library, cache, queue, scanner and worker wired together."""

    def __init__(self, cache_path: Path, resolver: CoverResolver) -> None:
        self.library = LibraryState()
        self.cache = CountingCache(cache_path)
        self.queue = CoverQueue()
        self.reporter = CoverEventReporter()
        self.events: list[CoverEvent] = []
        self.reporter.subscribe(self.events.append)
        self.scanner = CoverScanner(self.library, self.cache, self.queue, self.reporter)
        self.worker = CoverFetchWorker(
            self.queue, self.library, self.cache, resolver, self.reporter
        )

    def load(self, *songs: Song) -> None:
        self.library.replace_library(LibrarySnapshot(songs=songs))

    async def drain(self) -> None:
        async with anyio.create_task_group() as tg:
            tg.start_soon(self.worker.run)
            with anyio.fail_after(5):
                await self.queue.join()
            tg.cancel_scope.cancel()


@pytest.fixture
def metadata() -> FakeMetadataLookup:
    return FakeMetadataLookup()


@pytest.fixture
def search() -> FakeArtworkSearch:
    return FakeArtworkSearch()


@pytest.fixture
def pipeline(
    tmp_path: Path, metadata: FakeMetadataLookup, search: FakeArtworkSearch
) -> Pipeline:
    return Pipeline(tmp_path / "covers", CoverResolver(metadata, search))


@asynccontextmanager
async def serve(routes: dict[str, Any]) -> AsyncIterator[str]:
    """Serves canned responses on a local port.

    Args:
        routes: Path to response. Bytes and strings are sent as they are,
            integers become empty responses with that status, and anything
            else is JSON-encoded.

    Yields:
        The base URL of the server.
    """

    async def handler(request: web.Request) -> web.Response:
        if request.path not in routes:
            raise web.HTTPNotFound()
        body = routes[request.path]
        if callable(body):
            body = body(request)
        if isinstance(body, int):
            return web.Response(status=body)
        if isinstance(body, bytes):
            return web.Response(body=body, content_type="image/jpeg")
        if isinstance(body, str):
            return web.Response(text=body)
        return web.Response(
            body=msgspec.json.encode(body), content_type="application/json"
        )

    app = web.Application()
    app.router.add_route("GET", "/{tail:.*}", handler)
    async with TestServer(app) as server:
        yield str(server.make_url("")).rstrip("/")
