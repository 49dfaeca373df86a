"""Data models for the music library and its cover pipeline."""

from enum import Enum

import msgspec

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
DOWNLOADS_ALBUM = "Downloads"


class LyricLine(msgspec.Struct, frozen=True):
    """A single timestamped lyric line.

    Attributes:
        time: Offset from the start of the song in seconds.
        text: Lyric text.
    """

    time: float
    text: str


class Song(msgspec.Struct, frozen=True, kw_only=True):
    """A song in the library.

    Songs are immutable; the cover pipeline produces updated copies with
    ``msgspec.structs.replace`` and matches them by ``filename``.

    Attributes:
        filename: Stable identity of the song.
        title: Display title.
        artist: Artist name.
        album: Album name.
        duration_sec: Length in seconds.
        file_url: Playable media locator.
        cover: Resolved static artwork reference (URL or data URI).
        animated_cover: Animated artwork reference (GIF/video URL).
        lyrics: Timestamped lyric lines, if any.
    """

    filename: str
    title: str
    artist: str = UNKNOWN_ARTIST
    album: str = UNKNOWN_ALBUM
    duration_sec: float = 0
    file_url: str = ""
    cover: str | None = None
    animated_cover: str | None = None
    lyrics: tuple[LyricLine, ...] | None = None

    @property
    def duration(self) -> str:
        """Display duration like ``3:45``."""
        return format_duration(self.duration_sec)


class LibrarySnapshot(msgspec.Struct, frozen=True):
    """Result of loading the library from the Library Provider.

    Attributes:
        songs: All songs of the library.
        album_orders: Album name to ordered filenames.
    """

    songs: tuple[Song, ...] = ()
    album_orders: dict[str, list[str]] = msgspec.field(default_factory=dict)


class EmbeddedMetadata(msgspec.Struct, frozen=True, kw_only=True):
    """Metadata read from the tags embedded in an audio file.

    Attributes:
        cover: Embedded artwork as a data URI.
        title: Embedded title.
        artist: Embedded artist.
    """

    cover: str | None = None
    title: str | None = None
    artist: str | None = None


class CoverSource(Enum):
    """Where a resolved cover came from."""

    CACHE = "cache"
    EMBEDDED = "embedded"
    ITUNES = "itunes"


class ResolvedCover(msgspec.Struct, frozen=True):
    """Artwork obtained by the source chain.

    Attributes:
        image: Persistable image reference.
        source: Source that produced the image.
    """

    image: str
    source: CoverSource


def format_duration(seconds: float | None) -> str:
    """Formats a duration in seconds as ``m:ss``.

    Args:
        seconds: Duration in seconds.

    Returns:
        The formatted duration; ``3:45`` when the duration is unknown.
    """
    if not seconds or seconds != seconds:
        return "3:45"
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"
