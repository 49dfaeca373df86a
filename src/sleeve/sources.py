"""Artwork sources and the source chain resolver.

Sources are tried in a fixed order for one representative song:

1. Embedded artwork, read through the metadata endpoint of the library
   server or from the local file tags.
2. iTunes album artwork search by artist/album, downloaded and re-encoded
   into a data URI so the cached copy works offline.

Every source failure is logged and swallowed; the chain degrades to "no
artwork found".
"""

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote

import aiohttp
import msgspec
from asyncer import asyncify

from .tagging import read_embedded_metadata
from .utils.cover_keys import is_generic
from .utils.exceptions import (
    ArtworkDownloadError,
    ArtworkLookupError,
    InvalidImageError,
    MetadataLookupError,
    SourceError,
)
from .utils.models import CoverSource, EmbeddedMetadata, ResolvedCover, Song
from .utils.settings import CoversSettings
from .utils.utils import reencode_artwork, to_data_uri

logger = logging.getLogger(__name__)

ITUNES_SEARCH_URL = "https://itunes.apple.com/search"


# =============================================================================
# Collaborator Protocols
# =============================================================================


@runtime_checkable
class MetadataLookup(Protocol):
    """Reads the tags embedded in a library file."""

    async def get_embedded_metadata(self, filename: str) -> EmbeddedMetadata: ...


@runtime_checkable
class ArtworkSearch(Protocol):
    """External artwork search service."""

    async def find_artwork_url(self, artist: str, album: str) -> str | None: ...

    async def download_as_persistable(self, url: str) -> str: ...


# =============================================================================
# Metadata Lookups
# =============================================================================


class _ServerMetadata(msgspec.Struct):
    cover: str | None = None
    title: str | None = None
    artist: str | None = None


class ServerMetadataLookup:
    """Reads embedded metadata through the library server's metadata endpoint."""

    def __init__(self, session: aiohttp.ClientSession, server_url: str) -> None:
        """Initializes the lookup.

        Args:
            session: Shared HTTP session.
            server_url: Base URL of the library server.
        """
        self._session = session
        self._server_url = server_url.rstrip("/")
        self._decoder = msgspec.json.Decoder(_ServerMetadata)

    async def get_embedded_metadata(self, filename: str) -> EmbeddedMetadata:
        """Fetches the embedded metadata of a file.

        Args:
            filename: Library filename.

        Returns:
            The embedded metadata; the cover is a JPEG data URI.

        Raises:
            MetadataLookupError: If the endpoint fails or answers garbage.
        """
        url = f"{self._server_url}/api/metadata/{quote(filename)}"
        try:
            async with self._session.get(url) as response:
                response.raise_for_status()
                raw = await response.read()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise MetadataLookupError(filename, str(e)) from e

        try:
            data = self._decoder.decode(raw)
        except msgspec.DecodeError as e:
            raise MetadataLookupError(filename, f"malformed response: {e}") from e

        cover = f"data:image/jpeg;base64,{data.cover}" if data.cover else None
        return EmbeddedMetadata(cover=cover, title=data.title, artist=data.artist)


class LocalTagMetadataLookup:
    """Reads embedded metadata directly from a local music directory."""

    def __init__(self, music_path: Path | str) -> None:
        """Initializes the lookup.

        Args:
            music_path: Directory holding the library files.
        """
        self._music_path = Path(music_path)

    async def get_embedded_metadata(self, filename: str) -> EmbeddedMetadata:
        """Reads the tags of a library file off the event loop.

        Args:
            filename: Library filename, relative to the music directory.

        Returns:
            The embedded metadata.

        Raises:
            MetadataLookupError: If the file is missing or unreadable.
        """
        file_path = (self._music_path / filename).resolve()
        if not file_path.is_relative_to(self._music_path.resolve()):
            raise MetadataLookupError(filename, "outside the music directory", "tags")
        if not file_path.is_file():
            raise MetadataLookupError(filename, "file not found", "tags")
        return await asyncify(read_embedded_metadata)(str(file_path))


# =============================================================================
# iTunes Artwork Search
# =============================================================================


class _ITunesAlbum(msgspec.Struct, rename="camel"):
    artist_name: str = ""
    collection_name: str = ""
    artwork_url100: str = ""


class _ITunesResponse(msgspec.Struct, rename="camel"):
    result_count: int = 0
    results: list[_ITunesAlbum] = msgspec.field(default_factory=list)


def _loosely_equal(a: str, b: str) -> bool:
    a, b = a.casefold().strip(), b.casefold().strip()
    return bool(a and b) and (a in b or b in a)


def pick_artwork_url(
    results: list[_ITunesAlbum], artist: str, album: str, resolution: int
) -> str | None:
    """Selects the best album artwork among iTunes search results.

    Args:
        results: Album results in service order.
        artist: Artist that was searched for.
        album: Album that was searched for.
        resolution: Requested edge length in pixels.

    Returns:
        The upscaled artwork URL, or None if no result carries artwork.
    """
    candidates = [r for r in results if r.artwork_url100]
    if not candidates:
        return None
    best = next(
        (
            r
            for r in candidates
            if _loosely_equal(r.artist_name, artist)
            and _loosely_equal(r.collection_name, album)
        ),
        candidates[0],
    )
    return best.artwork_url100.replace("100x100bb", f"{resolution}x{resolution}bb")


class ITunesArtworkSearch:
    """Album artwork search backed by the iTunes Search API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        covers: CoversSettings,
        search_url: str = ITUNES_SEARCH_URL,
    ) -> None:
        """Initializes the search.

        Args:
            session: Shared HTTP session.
            covers: Cover settings (resolution, format, storefront).
            search_url: Search endpoint, overridable for tests.
        """
        self._session = session
        self._covers = covers
        self._search_url = search_url
        self._decoder = msgspec.json.Decoder(_ITunesResponse)

    async def find_artwork_url(self, artist: str, album: str) -> str | None:
        """Searches album artwork by artist and album.

        Args:
            artist: Artist name.
            album: Album name.

        Returns:
            The artwork URL, or None when nothing was found.

        Raises:
            ArtworkLookupError: If the service fails or answers garbage.
        """
        params = {
            "term": f"{artist} {album}",
            "media": "music",
            "entity": "album",
            "limit": "5",
            "country": self._covers.itunes_country,
        }
        try:
            async with self._session.get(self._search_url, params=params) as response:
                response.raise_for_status()
                raw = await response.read()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ArtworkLookupError(artist, album, str(e)) from e

        try:
            data = self._decoder.decode(raw)
        except msgspec.DecodeError as e:
            raise ArtworkLookupError(artist, album, f"malformed response: {e}") from e

        return pick_artwork_url(data.results, artist, album, self._covers.resolution)

    async def download_as_persistable(self, url: str) -> str:
        """Downloads an image and converts it to a data URI.

        Args:
            url: Image URL.

        Returns:
            The re-encoded image as a base64 data URI.

        Raises:
            ArtworkDownloadError: If the download fails.
            InvalidImageError: If the payload is not an image.
        """
        try:
            async with self._session.get(url) as response:
                response.raise_for_status()
                data = await response.read()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise ArtworkDownloadError(url, str(e)) from e

        encoded, mime = await asyncify(reencode_artwork)(
            data,
            self._covers.resolution,
            self._covers.image_format,
            self._covers.compression,
        )
        return to_data_uri(encoded, mime)


# =============================================================================
# Source Chain
# =============================================================================


class CoverResolver:
    """Resolves artwork for one song through the prioritized source chain."""

    def __init__(
        self,
        metadata: MetadataLookup | None,
        search: ArtworkSearch | None,
    ) -> None:
        """Initializes the resolver.

        Args:
            metadata: Embedded-tag source, or None to skip it.
            search: External artwork search, or None to skip it.
        """
        self._metadata = metadata
        self._search = search

    async def _from_embedded(self, song: Song) -> str | None:
        if self._metadata is None:
            return None
        try:
            meta = await self._metadata.get_embedded_metadata(song.filename)
        except MetadataLookupError as e:
            logger.debug("No embedded artwork for %s: %s", song.filename, e)
            return None
        return meta.cover or None

    async def _from_search(self, song: Song) -> str | None:
        if self._search is None or is_generic(song.artist, song.album):
            return None
        try:
            url = await self._search.find_artwork_url(song.artist, song.album)
            if not url:
                logger.debug("No artwork found for %s - %s", song.artist, song.album)
                return None
            return await self._search.download_as_persistable(url)
        except (SourceError, InvalidImageError) as e:
            logger.warning(
                "Artwork lookup failed for %s - %s: %s", song.artist, song.album, e
            )
            return None

    async def resolve(self, song: Song) -> ResolvedCover | None:
        """Tries every source in order.

        Args:
            song: The representative song of a cover unit.

        Returns:
            The first artwork found, or None.
        """
        image = await self._from_embedded(song)
        if image:
            return ResolvedCover(image, CoverSource.EMBEDDED)

        image = await self._from_search(song)
        if image:
            return ResolvedCover(image, CoverSource.ITUNES)
        return None
