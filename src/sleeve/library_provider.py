"""Library Provider backed by the library server.

The library is assembled from several documents served by the server:
the metadata registry, manual metadata overrides, custom and animated
cover registries, album track orders and the lyrics registry.
"""

import logging
import re
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import aiohttp
import anyio
import msgspec

from .utils.exceptions import LibraryLoadError
from .utils.models import (
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    LibrarySnapshot,
    LyricLine,
    Song,
)

logger = logging.getLogger(__name__)

DEFAULT_OVERRIDE_DURATION = 220
_LRC_LINE = re.compile(r"\[(\d{2}):(\d{2})(?:\.(\d{2,3}))?\](.*)")

# Document name -> path on the library server
OPTIONAL_DOCUMENTS = {
    "custom_metadata": "/music/custom_metadata.json",
    "custom_covers": "/music/custom_covers.json",
    "animated_covers": "/music/animated_covers.json",
    "album_orders": "/music/album_orders.json",
    "lyrics_registry": "/music/lyrics_registry.json",
}
REGISTRY_PATH = "/api/all-metadata"


@runtime_checkable
class LibraryProvider(Protocol):
    """Source of the song collection."""

    async def load_library(self) -> LibrarySnapshot: ...


class RegistryEntry(msgspec.Struct):
    """One song of the server's metadata registry."""

    filename: str
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    duration: float | None = None


class MetadataOverride(msgspec.Struct):
    """Manual metadata override for one file."""

    title: str | None = None
    artist: str | None = None
    album: str | None = None


def parse_lyrics(raw: Any) -> tuple[LyricLine, ...] | None:
    """Parses LRC formatted lyrics.

    Args:
        raw: A list of lines or one newline-separated string.

    Returns:
        The timed lines with non-empty text, or None if there are none.
    """
    if not raw:
        return None
    lines = raw if isinstance(raw, list) else str(raw).split("\n")

    parsed: list[LyricLine] = []
    for line in lines:
        match = _LRC_LINE.match(str(line))
        if not match:
            continue
        minutes, seconds, fraction, text = match.groups()
        text = text.strip()
        if not text:
            continue
        offset = int(minutes) * 60 + int(seconds)
        if fraction:
            offset += float(f"0.{fraction}")
        parsed.append(LyricLine(time=offset, text=text))

    return tuple(parsed) or None


def asset_url(server_url: str, path: str | None) -> str | None:
    """Resolves a registry path to a URL on the library server.

    Args:
        server_url: Base URL of the library server.
        path: Absolute URL, data URI or path relative to the music folder.

    Returns:
        The usable reference, or None for an empty path.
    """
    if not path:
        return None
    if path.startswith(("http", "data:")):
        return path
    return f"{server_url}/music/{path}"


def build_library(
    server_url: str,
    registry: list[RegistryEntry],
    custom_metadata: dict[str, MetadataOverride],
    custom_covers: dict[str, str],
    animated_covers: dict[str, str],
    album_orders: dict[str, list[str]],
    lyrics_registry: dict[str, Any],
) -> LibrarySnapshot:
    """Merges the server documents into a library snapshot.

    Args:
        server_url: Base URL of the library server, without trailing slash.
        registry: Songs known to the metadata registry.
        custom_metadata: Manual overrides by filename.
        custom_covers: Cover paths by ``track:<filename>`` or
            ``album:<artist>|<album>``.
        animated_covers: Animated cover paths, keyed like custom covers.
        album_orders: Album name to ordered filenames.
        lyrics_registry: Raw LRC lyrics by filename.

    Returns:
        The merged library.
    """

    def file_url(filename: str) -> str:
        return f"{server_url}/music/{quote(filename)}"

    songs: dict[str, Song] = {}
    for entry in registry:
        songs[entry.filename] = Song(
            filename=entry.filename,
            title=entry.title or entry.filename,
            artist=entry.artist or UNKNOWN_ARTIST,
            album=entry.album or UNKNOWN_ALBUM,
            duration_sec=entry.duration or 0,
            file_url=file_url(entry.filename),
            lyrics=parse_lyrics(lyrics_registry.get(entry.filename)),
        )

    for filename, meta in custom_metadata.items():
        existing = songs.get(filename)
        songs[filename] = Song(
            filename=filename,
            title=meta.title or filename.replace(".mp3", ""),
            artist=meta.artist or UNKNOWN_ARTIST,
            album=meta.album or UNKNOWN_ALBUM,
            duration_sec=(
                existing.duration_sec
                if existing and existing.duration_sec
                else DEFAULT_OVERRIDE_DURATION
            ),
            file_url=file_url(filename),
            lyrics=parse_lyrics(lyrics_registry.get(filename)),
        )

    merged: list[Song] = []
    for song in songs.values():
        track_key = f"track:{song.filename}"
        album_key = f"album:{song.artist}|{song.album}"
        cover = asset_url(
            server_url, custom_covers.get(track_key) or custom_covers.get(album_key)
        )
        animated = asset_url(
            server_url,
            animated_covers.get(track_key) or animated_covers.get(album_key),
        )
        if cover or animated:
            song = msgspec.structs.replace(
                song,
                cover=cover or song.cover,
                animated_cover=animated or song.animated_cover,
            )
        merged.append(song)

    return LibrarySnapshot(songs=tuple(merged), album_orders=album_orders)


class HttpLibraryProvider:
    """Loads the library from the library server."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        server_url: str,
        timeout: float = 1.5,
    ) -> None:
        """Initializes the provider.

        Args:
            session: Shared HTTP session.
            server_url: Base URL of the library server.
            timeout: Overall timeout for fetching every document.
        """
        self._session = session
        self._server_url = server_url.rstrip("/")
        self._timeout = timeout

    async def _fetch(self, path: str) -> bytes | None:
        try:
            async with self._session.get(f"{self._server_url}{path}") as response:
                if response.status != 200:
                    logger.debug("%s answered %d", path, response.status)
                    return None
                return await response.read()
        except aiohttp.ClientError as e:
            logger.debug("Failed to fetch %s: %s", path, e)
            return None

    @staticmethod
    def _decode[T](raw: bytes | None, type_: type[T], default: T, name: str) -> T:
        if raw is None:
            return default
        try:
            return msgspec.json.decode(raw, type=type_)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            logger.warning("Ignoring malformed %s: %s", name, e)
            return default

    async def load_library(self) -> LibrarySnapshot:
        """Fetches every document concurrently and merges them.

        Returns:
            The merged library.

        Raises:
            LibraryLoadError: If the registry cannot be loaded.
        """
        raw: dict[str, bytes | None] = {}

        async def fetch_into(name: str, path: str) -> None:
            raw[name] = await self._fetch(path)

        with anyio.move_on_after(self._timeout) as scope:
            async with anyio.create_task_group() as tg:
                tg.start_soon(fetch_into, "registry", REGISTRY_PATH)
                for name, path in OPTIONAL_DOCUMENTS.items():
                    tg.start_soon(fetch_into, name, path)

        if scope.cancelled_caught:
            logger.warning("Library server did not answer within %ss", self._timeout)

        if raw.get("registry") is None:
            raise LibraryLoadError(f"{self._server_url} unreachable")

        try:
            registry = msgspec.json.decode(raw["registry"], type=list[RegistryEntry])
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise LibraryLoadError(f"Malformed metadata registry: {e}") from e

        snapshot = build_library(
            self._server_url,
            registry,
            self._decode(
                raw.get("custom_metadata"),
                dict[str, MetadataOverride],
                {},
                "custom metadata",
            ),
            self._decode(raw.get("custom_covers"), dict[str, str], {}, "custom covers"),
            self._decode(
                raw.get("animated_covers"), dict[str, str], {}, "animated covers"
            ),
            self._decode(
                raw.get("album_orders"), dict[str, list[str]], {}, "album orders"
            ),
            self._decode(
                raw.get("lyrics_registry"), dict[str, Any], {}, "lyrics registry"
            ),
        )
        logger.info("Loaded %d songs from %s", len(snapshot.songs), self._server_url)
        return snapshot
