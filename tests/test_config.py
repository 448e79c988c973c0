"""Tests for the configuration model and the INI config manager."""

import configparser

import pytest
from pydantic import ValidationError

from spotiflac_cli.exceptions import ConfigurationError
from spotiflac_cli.models.config import DEFAULT_SERVICE_ORDER, DownloadConfig
from spotiflac_cli.storage.config_manager import ConfigManager


class TestDownloadConfig:
    def test_defaults(self):
        config = DownloadConfig()
        assert config.services == DEFAULT_SERVICE_ORDER
        assert config.max_workers == 10
        assert config.extension == "flac"

    def test_services_from_comma_string(self):
        config = DownloadConfig(services=" Qobuz, tidal ")
        assert config.services == ["qobuz", "tidal"]

    @pytest.mark.parametrize("services", ["", "spotify", "tidal,tidal"])
    def test_invalid_services(self, services):
        with pytest.raises(ValidationError):
            DownloadConfig(services=services)

    @pytest.mark.parametrize("workers", [0, 33])
    def test_worker_bounds(self, workers):
        with pytest.raises(ValidationError):
            DownloadConfig(max_workers=workers)

    def test_custom_filename_template(self):
        assert DownloadConfig(filename_format="{track} {title}").filename_format == (
            "{track} {title}"
        )
        with pytest.raises(ValidationError):
            DownloadConfig(filename_format="{artist}/{title}")
        with pytest.raises(ValidationError):
            DownloadConfig(filename_format="{artist}")

    def test_lyrics_require_flac(self):
        with pytest.raises(ValidationError):
            DownloadConfig(audio_format="mp3", embed_lyrics=True)
        assert DownloadConfig(audio_format="mp3").extension == "mp3"


class TestConfigManager:
    def test_missing_file(self, tmp_path):
        manager = ConfigManager(tmp_path / "config.ini")
        with pytest.raises(ConfigurationError):
            manager.load_config()
        assert manager.load_config(allow_missing=True).max_workers == 10

    def test_save_and_load_round_trip(self, tmp_path):
        path = tmp_path / "cfg" / "config.ini"
        ConfigManager(path).save_new_config(
            {"output_dir": "/music/100%", "services": ["qobuz", "amazon"], "max_workers": 4}
        )

        config = ConfigManager(path).load_config()
        assert config.output_dir == "/music/100%"
        assert config.services == ["qobuz", "amazon"]
        assert config.max_workers == 4
        assert config.config_path == str(path.parent)

    def test_cli_overrides_ignore_none(self, tmp_path):
        path = tmp_path / "config.ini"
        ConfigManager(path).save_new_config({"max_workers": 4})

        config = ConfigManager(path).load_config(
            {"max_workers": 16, "services": None, "embed_lyrics": True}
        )
        assert config.max_workers == 16
        assert config.services == DEFAULT_SERVICE_ORDER
        assert config.embed_lyrics is True

    def test_invalid_override_is_configuration_error(self, tmp_path):
        path = tmp_path / "config.ini"
        ConfigManager(path).save_new_config({})
        with pytest.raises(ConfigurationError):
            ConfigManager(path).load_config({"services": "napster"})

    def test_migration_adds_missing_keys(self, tmp_path):
        path = tmp_path / "config.ini"
        path.write_text("[DEFAULT]\noutput_dir = /music\n", encoding="utf-8")

        config = ConfigManager(path).load_config()

        assert config.output_dir == "/music"
        parser = configparser.ConfigParser()
        parser.read(path, encoding="utf-8")
        assert parser["DEFAULT"]["max_workers"] == "10"
        assert parser["DEFAULT"]["services"] == "tidal,qobuz,amazon"

    def test_bad_integer_in_file(self, tmp_path):
        path = tmp_path / "config.ini"
        ConfigManager(path).save_new_config({})
        text = path.read_text(encoding="utf-8").replace(
            "max_workers = 10", "max_workers = lots"
        )
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ConfigurationError):
            ConfigManager(path).load_config()
