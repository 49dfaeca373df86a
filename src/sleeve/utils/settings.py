"""Settings data structures for Sleeve.

Settings are msgspec.Struct classes serialized to TOML. They are loaded
once and injected into the session object; nothing in the cover pipeline
reads them from ambient state.
"""

from pathlib import Path

import msgspec
import platformdirs

from .exceptions import ConfigurationError

IMAGE_FORMATS = ("jpg", "png", "webp")
COMPRESSION_LEVELS = ("low", "high")


class GeneralSettings(msgspec.Struct, kw_only=True):
    """General application settings.

    Attributes:
        server_url: Base URL of the library server.
        music_path: Local music directory. When set, embedded artwork is
            read from the files directly instead of the metadata endpoint.
        cache_path: Directory of the persistent image cache. Defaults to
            the user cache directory.
    """

    server_url: str = "http://localhost:3001"
    music_path: str = ""
    cache_path: str = ""


class CoversSettings(msgspec.Struct, kw_only=True):
    """Cover art handling settings.

    Attributes:
        auto_load_covers: Queue missing covers for network resolution
            automatically after each scan.
        disable_animated_covers: Surface the static cover even when an
            animated cover is available.
        resolution: Edge length in pixels of downloaded artwork.
        image_format: Format of persisted artwork (jpg/png/webp).
        compression: Compression of persisted artwork (low/high).
        itunes_country: Storefront used for artwork search.
    """

    auto_load_covers: bool = True
    disable_animated_covers: bool = False
    resolution: int = 600
    image_format: str = "jpg"
    compression: str = "low"
    itunes_country: str = "US"


class AdvancedSettings(msgspec.Struct, kw_only=True):
    """Advanced configuration settings.

    Attributes:
        debug_mode: Enable debug logging.
        request_timeout: Socket read timeout in seconds for HTTP calls.
        library_timeout: Overall timeout in seconds for loading the library.
    """

    debug_mode: bool = False
    request_timeout: int = 30
    library_timeout: float = 1.5


class AppSettings(msgspec.Struct, kw_only=True):
    """Complete application settings.

    Attributes:
        general: General application settings.
        covers: Cover art settings.
        advanced: Advanced configuration.
    """

    general: GeneralSettings = msgspec.field(default_factory=GeneralSettings)
    covers: CoversSettings = msgspec.field(default_factory=CoversSettings)
    advanced: AdvancedSettings = msgspec.field(default_factory=AdvancedSettings)

    @property
    def cache_path(self) -> Path:
        """Resolved image cache directory."""
        if self.general.cache_path:
            return Path(self.general.cache_path)
        return Path(platformdirs.user_cache_dir("sleeve")) / "covers"


def default_settings_path() -> Path:
    """Returns the default settings file location.

    Returns:
        Path to settings.toml in the user config directory.
    """
    return Path(platformdirs.user_config_dir("sleeve")) / "settings.toml"


def validate_settings(settings: AppSettings) -> AppSettings:
    """Checks setting values msgspec cannot express as types.

    Args:
        settings: Settings to validate.

    Returns:
        The same settings instance.

    Raises:
        ConfigurationError: If a value is out of range.
    """
    covers = settings.covers
    if covers.image_format not in IMAGE_FORMATS:
        raise ConfigurationError(
            f"must be one of {', '.join(IMAGE_FORMATS)}", "covers.image_format"
        )
    if covers.compression not in COMPRESSION_LEVELS:
        raise ConfigurationError(
            f"must be one of {', '.join(COMPRESSION_LEVELS)}", "covers.compression"
        )
    if covers.resolution <= 0:
        raise ConfigurationError("must be positive", "covers.resolution")
    if settings.advanced.request_timeout <= 0:
        raise ConfigurationError("must be positive", "advanced.request_timeout")
    return settings


def load_settings(path: Path) -> AppSettings:
    """Loads settings from a TOML file.

    Args:
        path: Path to the settings TOML file.

    Returns:
        AppSettings instance. Returns defaults if file doesn't exist.

    Raises:
        ConfigurationError: If the file cannot be parsed or holds invalid values.
    """
    if not path.exists():
        return AppSettings()
    try:
        settings = msgspec.toml.decode(path.read_bytes(), type=AppSettings)
    except (msgspec.DecodeError, msgspec.ValidationError) as e:
        raise ConfigurationError(f"Invalid settings file {path}: {e}") from e
    return validate_settings(settings)


def save_settings(path: Path, settings: AppSettings) -> None:
    """Saves settings to a TOML file.

    Args:
        path: Path to save the settings file.
        settings: AppSettings instance to save.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(msgspec.toml.encode(settings))
