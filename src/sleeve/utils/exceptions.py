"""Custom exception hierarchy for Sleeve.

Collaborators (library server, metadata endpoint, artwork search, image
cache) raise these typed errors; the cover pipeline catches them at its
boundaries and degrades instead of failing.
"""


# =============================================================================
# Base Exception Classes
# =============================================================================


class SleeveError(Exception):
    """Base exception for all Sleeve errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str = "An error occurred in Sleeve") -> None:
        """Initializes the base exception.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(SleeveError):
    """Exception raised when the settings file or a setting value is invalid.

    Attributes:
        setting: Name of the offending setting, if known.
    """

    def __init__(self, message: str, setting: str | None = None) -> None:
        """Initializes the configuration error.

        Args:
            message: Human-readable error description.
            setting: Name of the offending setting.
        """
        self.setting = setting
        if setting:
            message = f"{setting}: {message}"
        super().__init__(message)


# =============================================================================
# Source Errors
# =============================================================================


class SourceError(SleeveError):
    """Base exception for failures of an external metadata or artwork source.

    Attributes:
        source: Name of the source that failed.
    """

    def __init__(self, message: str, source: str = "unknown") -> None:
        """Initializes the source error.

        Args:
            message: Human-readable error description.
            source: Name of the source that failed.
        """
        self.source = source
        super().__init__(f"[{source}] {message}")


class LibraryLoadError(SourceError):
    """Exception raised when the library registry cannot be loaded."""

    def __init__(self, message: str = "Library server unreachable") -> None:
        super().__init__(message, source="library")


class MetadataLookupError(SourceError):
    """Exception raised when embedded metadata of a file cannot be read.

    Attributes:
        filename: The library filename that was looked up.
    """

    def __init__(self, filename: str, reason: str, source: str = "metadata") -> None:
        """Initializes the metadata lookup error.

        Args:
            filename: The library filename that was looked up.
            reason: Why the lookup failed.
            source: Name of the metadata source.
        """
        self.filename = filename
        super().__init__(f"{filename}: {reason}", source=source)


class ArtworkLookupError(SourceError):
    """Exception raised when the artwork search service fails.

    Attributes:
        artist: Artist that was searched for.
        album: Album that was searched for.
    """

    def __init__(self, artist: str, album: str, reason: str) -> None:
        """Initializes the artwork lookup error.

        Args:
            artist: Artist that was searched for.
            album: Album that was searched for.
            reason: Why the lookup failed.
        """
        self.artist = artist
        self.album = album
        super().__init__(f"{artist} - {album}: {reason}", source="itunes")


class ArtworkDownloadError(SourceError):
    """Exception raised when an artwork image cannot be downloaded.

    Attributes:
        url: The image URL.
    """

    def __init__(self, url: str, reason: str) -> None:
        """Initializes the artwork download error.

        Args:
            url: The image URL.
            reason: Why the download failed.
        """
        self.url = url
        super().__init__(f"{url}: {reason}", source="artwork")


class InvalidImageError(SleeveError):
    """Exception raised when image data cannot be decoded or re-encoded."""

    pass


# =============================================================================
# Cache Errors
# =============================================================================


class CacheUnavailableError(SleeveError):
    """Exception raised when the image cache storage cannot be used.

    Attributes:
        path: The cache directory.
    """

    def __init__(self, path: str, reason: str) -> None:
        """Initializes the cache error.

        Args:
            path: The cache directory.
            reason: Why the storage is unusable.
        """
        self.path = path
        super().__init__(f"Image cache at {path} unavailable: {reason}")
