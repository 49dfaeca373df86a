"""Utility functions for Sleeve.

This module provides common helpers used throughout the application,
including HTTP session management, hashing and artwork re-encoding.
"""

import base64
import hashlib
import io
import logging

import aiohttp
from PIL import Image, UnidentifiedImageError

from .exceptions import InvalidImageError

logger = logging.getLogger(__name__)

_PIL_FORMATS = {"jpg": "JPEG", "jpeg": "JPEG", "png": "PNG", "webp": "WEBP"}
_MIME_TYPES = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}


def hash_string(input_str: str) -> str:
    """Hashes a string with BLAKE2b.

    Args:
        input_str: The string to hash.

    Returns:
        The hexadecimal digest of the hash.
    """
    return hashlib.blake2b(input_str.encode("utf-8"), digest_size=20).hexdigest()


def create_aiohttp_session(
    timeout: int = 30,
    connector_limit: int = 10,
) -> aiohttp.ClientSession:
    """Creates an aiohttp ClientSession with connection pool settings.

    Args:
        timeout: Socket read timeout in seconds (time to wait for data chunks).
        connector_limit: Maximum number of concurrent connections.

    Returns:
        A configured aiohttp ClientSession.
    """
    timeout_config = aiohttp.ClientTimeout(total=None, sock_read=timeout)
    connector = aiohttp.TCPConnector(
        limit=connector_limit,
        enable_cleanup_closed=True,
    )
    return aiohttp.ClientSession(timeout=timeout_config, connector=connector)


def to_data_uri(data: bytes, mime: str = "image/jpeg") -> str:
    """Encodes binary image data as a base64 data URI.

    Args:
        data: Raw image bytes.
        mime: MIME type of the image.

    Returns:
        A ``data:<mime>;base64,...`` string.
    """
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def reencode_artwork(
    data: bytes,
    resolution: int = 600,
    image_format: str = "jpg",
    compression: str = "low",
) -> tuple[bytes, str]:
    """Resizes and re-encodes artwork.

    Images are only scaled down; smaller images keep their size.

    Args:
        data: Raw image bytes in any format Pillow can read.
        resolution: Maximum edge length in pixels.
        image_format: Target format (jpg/png/webp).
        compression: Compression level (low/high).

    Returns:
        Tuple of the encoded bytes and their MIME type.

    Raises:
        InvalidImageError: If the data is not a readable image.
    """
    pil_format = _PIL_FORMATS.get(image_format.lower(), "JPEG")
    quality = 90 if compression == "low" else 70

    try:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            if max(im.size) > resolution:
                im.thumbnail((resolution, resolution), Image.Resampling.BICUBIC)
            if pil_format == "JPEG" and im.mode not in ("RGB", "L"):
                im = im.convert("RGB")
            out = io.BytesIO()
            if pil_format == "PNG":
                im.save(out, pil_format)
            else:
                im.save(out, pil_format, quality=quality)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise InvalidImageError(f"Cannot re-encode artwork: {e}") from e

    return out.getvalue(), _MIME_TYPES[pil_format]
