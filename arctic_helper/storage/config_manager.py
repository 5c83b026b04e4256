"""
Manages loading, validation, and migration of the INI settings file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from arctic_helper.exceptions import ConfigurationError
from arctic_helper.models.config import AppSettings
from arctic_helper.utils.env_flags import settings_overrides

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    @property
    def config_dir(self) -> Path:
        return self.config_file_path.parent

    def load_config(
        self,
        cli_options: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> AppSettings:
        """
        Loads settings from the INI file, applies environment and CLI overrides,
        and validates them.

        Args:
            cli_options: A dictionary of options provided via the command line.
            allow_missing: Fall back to defaults instead of failing when the
                file does not exist yet.

        Returns:
            A validated AppSettings object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
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
        elif allow_missing:
            config_from_file = {}
        else:
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'arctic-helper init' first."
            )

        config_from_file.update(settings_overrides())

        # Override with CLI options
        if cli_options:
            config_from_file.update(cli_options)

        try:
            return AppSettings(**config_from_file, cache_dir=self.config_dir)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = AppSettings()
        for key in sorted(AppSettings.get_ini_keys()):
            # Use provided settings first, then fall back to model defaults
            value = settings.get(key, getattr(defaults, key, None))
            config["DEFAULT"][key] = self._to_ini_value(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def update_config(self, changes: dict[str, Any]) -> None:
        """Rewrites the file with some keys changed, keeping the others."""
        current = self._get_config_as_dict() if self._read_if_present() else {}
        current.update(changes)
        self.save_new_config(current)

    def get_config_as_dict(self) -> dict[str, Any]:
        """Returns the raw file contents, or an empty dict if there is no file."""
        if not self._read_if_present():
            return {}
        return self._get_config_as_dict()

    def _read_if_present(self) -> bool:
        if not self.config_file_path.is_file():
            return False
        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e
        return True

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if value is None:
            return ""
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = AppSettings()
        try:
            return {
                "install_root": section.get("install_root", ""),
                "civitai_token": section.get("civitai_token", ""),
                "catalog_endpoint": section.get(
                    "catalog_endpoint", defaults.catalog_endpoint
                ),
                "update_manifest_url": section.get(
                    "update_manifest_url", defaults.update_manifest_url
                ),
                "max_workers": section.getint("max_workers", defaults.max_workers),
                "skip_remote_refresh": section.getboolean("skip_remote_refresh", False),
                "catalog_path": section.get("catalog_path", ""),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = AppSettings()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(AppSettings.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini_value(getattr(defaults, key))
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
