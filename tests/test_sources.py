"""Tests for artwork sources and the source chain."""

import base64
import io
from pathlib import Path

import pytest
from aiohttp import web
from conftest import FakeArtworkSearch, FakeMetadataLookup, make_song, serve
from PIL import Image

from sleeve.sources import (
    CoverResolver,
    ITunesArtworkSearch,
    LocalTagMetadataLookup,
    ServerMetadataLookup,
    _ITunesAlbum,
    pick_artwork_url,
)
from sleeve.utils.exceptions import (
    ArtworkDownloadError,
    ArtworkLookupError,
    InvalidImageError,
    MetadataLookupError,
)
from sleeve.utils.models import CoverSource, EmbeddedMetadata
from sleeve.utils.settings import CoversSettings
from sleeve.utils.utils import create_aiohttp_session, reencode_artwork

ART = "https://is1.example/image/thumb/Music/100x100bb.jpg"


def _png(size: tuple[int, int] = (1200, 1200)) -> bytes:
    out = io.BytesIO()
    Image.new("RGBA", size, (200, 30, 30, 255)).save(out, "PNG")
    return out.getvalue()


class TestPickArtworkUrl:
    """Tests for pick_artwork_url."""

    def test_prefers_matching_result(self) -> None:
        results = [
            _ITunesAlbum("Someone Else", "SOS (Cover)", ART.replace("Music", "a")),
            _ITunesAlbum("SZA", "SOS (Deluxe)", ART),
        ]
        url = pick_artwork_url(results, "SZA", "SOS", 600)
        assert url == ART.replace("100x100bb", "600x600bb")

    def test_falls_back_to_first_result(self) -> None:
        results = [_ITunesAlbum("Other", "Other", ART)]
        assert pick_artwork_url(results, "SZA", "SOS", 1000).endswith(
            "1000x1000bb.jpg"
        )

    def test_no_artwork(self) -> None:
        assert pick_artwork_url([], "SZA", "SOS", 600) is None
        no_art = [_ITunesAlbum("SZA", "SOS", "")]
        assert pick_artwork_url(no_art, "SZA", "SOS", 600) is None


class TestReencodeArtwork:
    """Tests for reencode_artwork."""

    def test_downscales_and_converts(self) -> None:
        data, mime = reencode_artwork(_png(), resolution=300, image_format="jpg")
        assert mime == "image/jpeg"
        with Image.open(io.BytesIO(data)) as im:
            assert im.size == (300, 300)
            assert im.format == "JPEG"

    def test_small_images_keep_size(self) -> None:
        data, mime = reencode_artwork(
            _png((100, 80)), resolution=600, image_format="png"
        )
        assert mime == "image/png"
        with Image.open(io.BytesIO(data)) as im:
            assert im.size == (100, 80)

    def test_rejects_garbage(self) -> None:
        with pytest.raises(InvalidImageError):
            reencode_artwork(b"<html>not an image</html>")


@pytest.mark.anyio
class TestCoverResolver:
    """Tests for the source chain order and failure handling."""

    async def test_embedded_first(self) -> None:
        metadata = FakeMetadataLookup({"a.mp3": "data:image/png;base64,E"})
        search = FakeArtworkSearch({("SZA", "SOS"): ART})

        resolved = await CoverResolver(metadata, search).resolve(make_song("a.mp3"))

        assert resolved is not None
        assert resolved.source is CoverSource.EMBEDDED
        assert search.calls == []

    async def test_falls_back_to_search(self) -> None:
        search = FakeArtworkSearch({("SZA", "SOS"): ART})

        resolved = await CoverResolver(FakeMetadataLookup(), search).resolve(
            make_song("a.mp3")
        )

        assert resolved is not None
        assert resolved.source is CoverSource.ITUNES
        assert search.downloads == [ART]

    async def test_empty_embedded_cover_falls_through(self) -> None:
        class NoCover:
            async def get_embedded_metadata(self, filename: str) -> EmbeddedMetadata:
                return EmbeddedMetadata(title="Kill Bill")

        search = FakeArtworkSearch({("SZA", "SOS"): ART})
        resolved = await CoverResolver(NoCover(), search).resolve(make_song("a.mp3"))
        assert resolved is not None
        assert resolved.source is CoverSource.ITUNES

    @pytest.mark.parametrize(
        ("artist", "album"),
        [("Unknown Artist", "SOS"), ("SZA", "Downloads"), ("SZA", "Unknown Album")],
    )
    async def test_generic_songs_never_searched(self, artist: str, album: str) -> None:
        search = FakeArtworkSearch({(artist, album): ART})

        resolved = await CoverResolver(FakeMetadataLookup(), search).resolve(
            make_song("x.mp3", artist=artist, album=album)
        )

        assert resolved is None
        assert search.calls == []

    async def test_search_failures_are_swallowed(self) -> None:
        class BrokenSearch(FakeArtworkSearch):
            async def find_artwork_url(self, artist: str, album: str) -> str | None:
                raise ArtworkLookupError(artist, album, "503")

        class BadImageSearch(FakeArtworkSearch):
            async def download_as_persistable(self, url: str) -> str:
                raise InvalidImageError("not an image")

        song = make_song("a.mp3")
        for search in (BrokenSearch(), BadImageSearch({("SZA", "SOS"): ART})):
            resolver = CoverResolver(FakeMetadataLookup(), search)
            assert await resolver.resolve(song) is None

    async def test_no_sources(self) -> None:
        assert await CoverResolver(None, None).resolve(make_song("a.mp3")) is None


@pytest.mark.anyio
class TestServerMetadataLookup:
    """Tests for the library server metadata endpoint."""

    async def test_cover_becomes_data_uri(self) -> None:
        routes = {
            "/api/metadata/My Song.mp3": {"cover": "QUJD", "title": "My Song"},
        }
        async with serve(routes) as url, create_aiohttp_session() as session:
            meta = await ServerMetadataLookup(session, url).get_embedded_metadata(
                "My Song.mp3"
            )

        assert meta.cover == "data:image/jpeg;base64,QUJD"
        assert meta.title == "My Song"
        assert meta.artist is None

    async def test_server_error(self) -> None:
        async with serve({"/api/metadata/a.mp3": 500}) as url:
            async with create_aiohttp_session() as session:
                lookup = ServerMetadataLookup(session, url)
                with pytest.raises(MetadataLookupError, match="a.mp3"):
                    await lookup.get_embedded_metadata("a.mp3")


@pytest.mark.anyio
class TestLocalTagMetadataLookup:
    """Tests for reading tags from a local music directory."""

    async def test_missing_file(self, tmp_path: Path) -> None:
        lookup = LocalTagMetadataLookup(tmp_path)
        with pytest.raises(MetadataLookupError, match="file not found"):
            await lookup.get_embedded_metadata("missing.mp3")

    async def test_path_outside_library(self, tmp_path: Path) -> None:
        (tmp_path / "secret.mp3").write_bytes(b"")
        lookup = LocalTagMetadataLookup(tmp_path / "music")
        with pytest.raises(MetadataLookupError, match="outside"):
            await lookup.get_embedded_metadata("../secret.mp3")

    async def test_reads_untagged_file(self, tmp_path: Path) -> None:
        (tmp_path / "a.mp3").write_bytes(b"")
        meta = await LocalTagMetadataLookup(tmp_path).get_embedded_metadata("a.mp3")
        assert meta == EmbeddedMetadata()


@pytest.mark.anyio
class TestITunesArtworkSearch:
    """Tests for the iTunes search client against a local server."""

    async def test_search_and_download(self) -> None:
        seen: dict[str, str] = {}

        def search(request: web.Request) -> dict:
            seen.update(request.query)
            return {
                "resultCount": 1,
                "results": [
                    {
                        "artistName": "SZA",
                        "collectionName": "SOS",
                        "artworkUrl100": f"http://{request.host}/art/100x100bb.jpg",
                    }
                ],
            }

        routes = {"/search": search, "/art/600x600bb.jpg": _png()}
        async with serve(routes) as url, create_aiohttp_session() as session:
            itunes = ITunesArtworkSearch(
                session, CoversSettings(), search_url=f"{url}/search"
            )
            found = await itunes.find_artwork_url("SZA", "SOS")
            assert found == f"{url}/art/600x600bb.jpg"
            image = await itunes.download_as_persistable(found)

        assert seen["term"] == "SZA SOS"
        assert seen["entity"] == "album"
        assert seen["country"] == "US"
        assert image.startswith("data:image/jpeg;base64,")
        decoded = base64.b64decode(image.split(",", 1)[1])
        with Image.open(io.BytesIO(decoded)) as im:
            assert im.size == (600, 600)

    async def test_search_error(self) -> None:
        async with serve({"/search": 503}) as url:
            async with create_aiohttp_session() as session:
                itunes = ITunesArtworkSearch(
                    session, CoversSettings(), search_url=f"{url}/search"
                )
                with pytest.raises(ArtworkLookupError):
                    await itunes.find_artwork_url("SZA", "SOS")

    async def test_no_results(self) -> None:
        routes = {"/search": {"resultCount": 0, "results": []}}
        async with serve(routes) as url, create_aiohttp_session() as session:
            itunes = ITunesArtworkSearch(
                session, CoversSettings(), search_url=f"{url}/search"
            )
            assert await itunes.find_artwork_url("SZA", "SOS") is None

    async def test_download_error(self) -> None:
        async with serve({}) as url, create_aiohttp_session() as session:
            itunes = ITunesArtworkSearch(session, CoversSettings())
            with pytest.raises(ArtworkDownloadError):
                await itunes.download_as_persistable(f"{url}/missing.jpg")
