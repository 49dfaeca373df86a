"""Persistent image cache.

Durable cover-unit-key to image-reference store. Each entry lives in its
own msgspec JSON file named after the BLAKE2b hash of the key. When the
cache directory cannot be used, the cache degrades: reads miss and writes
are dropped.
"""

import logging
import os
import time
from pathlib import Path

import anyio
import msgspec

from .exceptions import CacheUnavailableError
from .utils import hash_string

logger = logging.getLogger(__name__)

_SUFFIX = ".json"


class CacheEntry(msgspec.Struct, frozen=True):
    """A stored cache entry.

    Attributes:
        key: Cover unit key.
        image: Image reference (URL or data URI).
        stored_at: Unix timestamp of the write.
    """

    key: str
    image: str
    stored_at: float = 0.0


class ImageCache:
    """File-backed key to image store with async get/put.

    Attributes:
        path: Cache directory.
    """

    def __init__(self, path: Path | str) -> None:
        """Opens the cache, creating its directory if needed.

        Args:
            path: Cache directory.
        """
        self.path = Path(path)
        self._encoder = msgspec.json.Encoder()
        self._decoder = msgspec.json.Decoder(CacheEntry)
        try:
            self._open()
            self._available = True
        except CacheUnavailableError as e:
            logger.warning("%s; covers will not be cached", e)
            self._available = False

    def _open(self) -> None:
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheUnavailableError(str(self.path), str(e)) from e
        if not os.access(self.path, os.W_OK):
            raise CacheUnavailableError(str(self.path), "directory is not writable")

    @property
    def available(self) -> bool:
        """Whether the cache is backed by storage."""
        return self._available

    def _entry_path(self, key: str) -> anyio.Path:
        return anyio.Path(self.path / f"{hash_string(key)}{_SUFFIX}")

    async def get(self, key: str) -> str | None:
        """Reads the image stored under a key.

        Args:
            key: Cover unit key.

        Returns:
            The image reference, or None on a miss.
        """
        if not self._available:
            return None
        entry_path = self._entry_path(key)
        try:
            raw = await entry_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read cached cover %s: %s", key, e)
            return None

        try:
            entry = self._decoder.decode(raw)
        except msgspec.DecodeError as e:
            logger.warning("Discarding corrupt cache entry %s: %s", key, e)
            return None

        # Guard against hash collisions.
        if entry.key != key:
            return None
        return entry.image

    async def put(self, key: str, image: str) -> None:
        """Stores an image under a key, replacing any previous entry.

        Args:
            key: Cover unit key.
            image: Image reference.
        """
        if not self._available:
            return
        entry_path = self._entry_path(key)
        tmp_path = entry_path.with_suffix(".tmp")
        data = self._encoder.encode(
            CacheEntry(key=key, image=image, stored_at=time.time())
        )
        try:
            await tmp_path.write_bytes(data)
            await tmp_path.replace(entry_path)
        except OSError as e:
            logger.warning("Failed to cache cover %s: %s", key, e)
            return
        logger.debug("Cached cover %s", key)

    async def delete(self, key: str) -> bool:
        """Removes the entry stored under a key.

        Args:
            key: Cover unit key.

        Returns:
            True if an entry was removed.
        """
        if not self._available:
            return False
        try:
            await self._entry_path(key).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Failed to delete cached cover %s: %s", key, e)
            return False
        return True

    async def clear(self) -> int:
        """Removes every entry.

        Returns:
            Number of removed entries.
        """
        if not self._available:
            return 0
        removed = 0
        async for entry_path in anyio.Path(self.path).glob(f"*{_SUFFIX}"):
            try:
                await entry_path.unlink()
                removed += 1
            except OSError as e:
                logger.warning("Failed to delete %s: %s", entry_path, e)
        return removed

    async def stats(self) -> tuple[int, int]:
        """Counts entries and their total size.

        Returns:
            Tuple of (entry count, total bytes).
        """
        if not self._available:
            return 0, 0
        count = 0
        size = 0
        async for entry_path in anyio.Path(self.path).glob(f"*{_SUFFIX}"):
            count += 1
            size += (await entry_path.stat()).st_size
        return count, size
