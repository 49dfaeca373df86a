"""Cover unit keys.

A cover unit is the group of songs sharing one artwork image: every track
of a named album, or a single track when its album or artist is unknown.
The key is used for both cache reads and cache writes, so every caller
must go through :func:`cover_unit_key`.
"""

from .models import DOWNLOADS_ALBUM, UNKNOWN_ALBUM, UNKNOWN_ARTIST, Song

GENERIC_ALBUMS = frozenset({UNKNOWN_ALBUM, DOWNLOADS_ALBUM})
SONG_PREFIX = "song:"
ALBUM_PREFIX = "album:"
SEPARATOR = "|"


def is_generic(artist: str | None, album: str | None) -> bool:
    """Whether artist/album carry too little information to group songs.

    Args:
        artist: Artist name.
        album: Album name.

    Returns:
        True for the "Unknown Artist" sentinel, an empty album or the
        "Unknown Album"/"Downloads" sentinels.
    """
    return artist == UNKNOWN_ARTIST or not album or album in GENERIC_ALBUMS


def cover_unit_key(artist: str | None, album: str | None, filename: str) -> str:
    """Maps a song to the cache key of its cover unit.

    Args:
        artist: Artist name.
        album: Album name.
        filename: Library filename of the song.

    Returns:
        ``song:<filename>`` for generic songs, otherwise
        ``album:<artist>|<album>`` with both parts trimmed.
    """
    if artist is None or album is None or is_generic(artist, album):
        return f"{SONG_PREFIX}{filename}"
    return f"{ALBUM_PREFIX}{artist.strip()}{SEPARATOR}{album.strip()}"


def song_key(song: Song) -> str:
    """Cover unit key of a song."""
    return cover_unit_key(song.artist, song.album, song.filename)
