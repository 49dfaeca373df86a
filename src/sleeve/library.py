"""In-memory library state.

Owns the song collection and the now-playing song. Both are replaced
wholesale, never mutated in place, and cover updates are matched by
filename or cover unit key so a playing song picks up new artwork even
after its record object has been replaced.
"""

import logging
from collections.abc import Callable

import msgspec

from .utils.cover_keys import song_key
from .utils.models import LibrarySnapshot, Song

logger = logging.getLogger(__name__)

LibraryListener = Callable[["LibraryState"], None]


class LibraryState:
    """Song collection and now-playing projection consumed by the UI."""

    def __init__(self) -> None:
        self._songs: tuple[Song, ...] = ()
        self._album_orders: dict[str, list[str]] = {}
        self._now_playing: Song | None = None
        self._listeners: list[LibraryListener] = []

    @property
    def songs(self) -> tuple[Song, ...]:
        """Current song collection."""
        return self._songs

    @property
    def album_orders(self) -> dict[str, list[str]]:
        """Album name to ordered filenames."""
        return self._album_orders

    @property
    def now_playing(self) -> Song | None:
        """The song currently selected for playback."""
        return self._now_playing

    def subscribe(self, listener: LibraryListener) -> Callable[[], None]:
        """Registers a listener called after every change.

        Args:
            listener: Callable receiving this state.

        Returns:
            A function that unregisters the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Library listener failed")

    def find(self, filename: str) -> Song | None:
        """Looks a song up by filename.

        Args:
            filename: Library filename.

        Returns:
            The current record, or None if it is not in the library.
        """
        return next((s for s in self._songs if s.filename == filename), None)

    def replace_library(self, snapshot: LibrarySnapshot) -> None:
        """Replaces the whole collection after a library load.

        Args:
            snapshot: The freshly loaded library.
        """
        self._songs = tuple(snapshot.songs)
        self._album_orders = dict(snapshot.album_orders)
        self._notify()

    def replace_songs(self, songs: tuple[Song, ...]) -> None:
        """Replaces the collection with an updated copy.

        Args:
            songs: The new collection.
        """
        self._songs = songs
        self._notify()

    def select(self, filename: str) -> Song | None:
        """Makes a song the now-playing song.

        Args:
            filename: Library filename.

        Returns:
            The selected song, or None if it is not in the library.
        """
        song = self.find(filename)
        if song is not None:
            self._now_playing = song
            self._notify()
        return song

    def apply_cover(self, key: str, image: str, overwrite: bool) -> int:
        """Broadcasts an image to every song of a cover unit.

        Args:
            key: Cover unit key.
            image: Image reference.
            overwrite: Replace covers songs already have; otherwise only
                songs without a cover receive the image.

        Returns:
            Number of songs in the collection that changed.
        """

        def receives(song: Song) -> bool:
            return (
                (overwrite or not song.cover)
                and song.cover != image
                and song_key(song) == key
            )

        changed = 0
        updated: list[Song] = []
        for song in self._songs:
            if receives(song):
                song = msgspec.structs.replace(song, cover=image)
                changed += 1
            updated.append(song)

        current = self._now_playing
        current_changed = current is not None and receives(current)
        if current_changed:
            self._now_playing = msgspec.structs.replace(current, cover=image)

        if changed:
            self._songs = tuple(updated)
        if changed or current_changed:
            self._notify()
        return changed

    def refresh_now_playing(self) -> bool:
        """Re-points the now-playing song at its current record.

        The match is by filename; only a differing cover triggers a refresh.

        Returns:
            True if the now-playing song was replaced.
        """
        current = self._now_playing
        if current is None:
            return False
        latest = self.find(current.filename)
        if latest is None or latest.cover == current.cover:
            return False
        self._now_playing = latest
        self._notify()
        return True

    def album_songs(self, album: str) -> list[Song]:
        """Songs of an album, in track order when the order is known.

        Args:
            album: Album name.

        Returns:
            The album's songs.
        """
        order = self._album_orders.get(album)
        if order:
            by_name = {s.filename: s for s in self._songs}
            ordered = [by_name[f] for f in order if f in by_name]
            if ordered:
                return ordered
        return [s for s in self._songs if s.album == album]


def display_cover(song: Song, disable_animated: bool) -> str | None:
    """Artwork a renderer should show for a song.

    Args:
        song: The song.
        disable_animated: Prefer the static cover over an animated one.

    Returns:
        The animated cover when allowed and present, else the static cover.
    """
    if song.animated_cover and not disable_animated:
        return song.animated_cover
    return song.cover
