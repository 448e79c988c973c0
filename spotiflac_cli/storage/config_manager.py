"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from spotiflac_cli.exceptions import ConfigurationError
from spotiflac_cli.models.config import DownloadConfig

log = logging.getLogger(__name__)


def _ini_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(map(str, value))
    # configparser uses % for interpolation
    return str(value).replace("%", "%%")


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    def load_config(
        self, cli_options: dict[str, Any] | None = None, allow_missing: bool = False
    ) -> DownloadConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.
                Entries whose value is None are ignored.
            allow_missing: Fall back to built-in defaults when no file exists.

        Raises:
            ConfigurationError: If the config file is missing (and not allowed to be),
            unparsable, or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Error parsing configuration file: {e}") from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_from_file = self._get_config_as_dict()
        elif not allow_missing:
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'spotiflac-cli init' first."
            )
        else:
            log.debug("No configuration file found; using built-in defaults.")

        if cli_options:
            config_from_file.update(
                {k: v for k, v in cli_options.items() if v is not None}
            )

        try:
            config_dir = self.config_file_path.parent
            return DownloadConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """Creates and saves a new configuration file, filling gaps with defaults."""
        try:
            validated = DownloadConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        config = configparser.ConfigParser()
        config["DEFAULT"] = {
            key: _ini_value(getattr(validated, key))
            for key in sorted(DownloadConfig.get_ini_keys())
        }

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = DownloadConfig()
        try:
            return {
                "output_dir": section.get("output_dir", defaults.output_dir),
                "filename_format": section.get(
                    "filename_format", defaults.filename_format
                ),
                "track_number": section.getboolean("track_number", False),
                "audio_format": section.get("audio_format", defaults.audio_format),
                "services": section.get("services", ",".join(defaults.services)),
                "max_workers": section.getint("max_workers", defaults.max_workers),
                "duration_tolerance": section.getint(
                    "duration_tolerance", defaults.duration_tolerance
                ),
                "min_existing_size": section.getint(
                    "min_existing_size", defaults.min_existing_size
                ),
                "embed_lyrics": section.getboolean("embed_lyrics", False),
                "lyrics_workers": section.getint(
                    "lyrics_workers", defaults.lyrics_workers
                ),
                "cover_workers": section.getint("cover_workers", defaults.cover_workers),
                "database_path": section.get("database_path", ""),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = DownloadConfig()
        config_section = self._parser["DEFAULT"]
        needs_saving = False

        for key in sorted(DownloadConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = _ini_value(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
