"""Utility modules for Sleeve.

This package provides models, settings, the image cache, progress
reporting and the exception classes used throughout Sleeve.
"""

from .exceptions import (
    ArtworkDownloadError,
    ArtworkLookupError,
    CacheUnavailableError,
    ConfigurationError,
    InvalidImageError,
    LibraryLoadError,
    MetadataLookupError,
    SleeveError,
    SourceError,
)
from .image_cache import ImageCache

__all__ = [
    # Exceptions
    "SleeveError",
    "ConfigurationError",
    "SourceError",
    "LibraryLoadError",
    "MetadataLookupError",
    "ArtworkLookupError",
    "ArtworkDownloadError",
    "InvalidImageError",
    "CacheUnavailableError",
    # Cache
    "ImageCache",
]
