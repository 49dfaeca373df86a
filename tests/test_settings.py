"""Tests for settings loading and validation."""

from pathlib import Path

import pytest

from sleeve.utils.exceptions import ConfigurationError
from sleeve.utils.settings import (
    AppSettings,
    load_settings,
    save_settings,
    validate_settings,
)


class TestLoadSettings:
    """Tests for load_settings and save_settings."""

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "settings.toml")
        assert settings == AppSettings()
        assert settings.covers.auto_load_covers
        assert not settings.covers.disable_animated_covers

    def test_save_then_load(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "settings.toml"
        settings = AppSettings()
        settings.general.server_url = "http://music.local:3001"
        settings.covers.auto_load_covers = False
        settings.covers.resolution = 1000

        save_settings(path, settings)

        assert load_settings(path) == settings

    def test_partial_file_keeps_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.toml"
        path.write_text("[covers]\ndisable_animated_covers = true\n")

        settings = load_settings(path)

        assert settings.covers.disable_animated_covers
        assert settings.covers.resolution == 600
        assert settings.general.server_url == "http://localhost:3001"

    def test_malformed_file(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.toml"
        path.write_text("[covers\nresolution = ")
        with pytest.raises(ConfigurationError, match="Invalid settings file"):
            load_settings(path)

    def test_wrong_type(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.toml"
        path.write_text('[covers]\nresolution = "big"\n')
        with pytest.raises(ConfigurationError):
            load_settings(path)

    def test_out_of_range_value(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.toml"
        path.write_text('[covers]\nimage_format = "bmp"\n')
        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(path)
        assert exc_info.value.setting == "covers.image_format"


class TestValidateSettings:
    """Tests for validate_settings."""

    @pytest.mark.parametrize(
        ("section", "field", "value"),
        [
            ("covers", "compression", "lossless"),
            ("covers", "resolution", 0),
            ("advanced", "request_timeout", -1),
        ],
    )
    def test_rejects_invalid_values(
        self, section: str, field: str, value: object
    ) -> None:
        settings = AppSettings()
        setattr(getattr(settings, section), field, value)
        with pytest.raises(ConfigurationError, match=field):
            validate_settings(settings)

    def test_cache_path_override(self, tmp_path: Path) -> None:
        settings = AppSettings()
        settings.general.cache_path = str(tmp_path)
        assert settings.cache_path == tmp_path

    def test_default_cache_path(self) -> None:
        assert AppSettings().cache_path.name == "covers"
