"""
Reads, migrates and writes the INI configuration file. Keys and their types
come from the LibraryConfig model, so a new setting only has to be declared
there.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from neko_cli.exceptions import ConfigurationError
from neko_cli.models.config import LibraryConfig

log = logging.getLogger(__name__)

SECTION = "DEFAULT"


def default_library_dir() -> Path:
    """Where library data lives unless the user chooses otherwise."""
    if os.name == "nt":
        base_dir = Path(os.getenv("LOCALAPPDATA", "~\\AppData\\Local"))
    else:
        base_dir = Path(os.getenv("XDG_DATA_HOME", "~/.local/share"))
    return base_dir.expanduser() / "neko-cli"


def _to_ini_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _default_settings() -> dict[str, Any]:
    defaults = LibraryConfig.model_construct(library_dir=default_library_dir())
    return {key: getattr(defaults, key) for key in LibraryConfig.get_ini_keys()}


class ConfigManager:
    """Owns the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> LibraryConfig:
        """
        Builds a validated LibraryConfig from the file, with `cli_options`
        taking precedence over stored values.

        Raises:
            ConfigurationError: If the file is missing or unparsable, or if the
            merged settings do not validate.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"No configuration at '{self.config_file_path}'. "
                "Please run 'neko-cli init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Config file is not valid INI: {e}") from e

        if self._migrate_if_needed():
            log.info("[yellow]Added new default settings to the config file.[/yellow]")

        try:
            settings = self.get_config_as_dict()
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in config file: {e}") from e
        settings.update(cli_options or {})

        try:
            return LibraryConfig(
                **settings, config_path=str(self.config_file_path.parent)
            )
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Writes a fresh config file. Keys missing from `settings` get the
        model default.
        """
        config = configparser.ConfigParser(interpolation=None)
        merged = {**_default_settings(), **settings}
        config[SECTION] = {
            key: _to_ini_value(merged[key])
            for key in sorted(LibraryConfig.get_ini_keys())
            if merged.get(key) is not None
        }

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as f:
                config.write(f)
        except OSError as e:
            raise ConfigurationError(f"Could not write config file: {e}") from e

    def read_raw(self) -> dict[str, Any]:
        """Reads the file without validation, for display purposes."""
        self._parser.read(self.config_file_path, encoding="utf-8")
        return self.get_config_as_dict()

    def get_config_as_dict(self) -> dict[str, Any]:
        """
        Returns every known key from the INI section, converted with the
        getter matching the model field's type. Unknown keys are ignored.
        """
        section = self._parser[SECTION]
        defaults = _default_settings()
        values: dict[str, Any] = {}
        for key, default in defaults.items():
            if isinstance(default, bool):
                values[key] = section.getboolean(key, default)
            elif isinstance(default, int):
                values[key] = section.getint(key, default)
            elif isinstance(default, float):
                values[key] = section.getfloat(key, default)
            else:
                values[key] = section.get(key, str(default))
        return values

    def _migrate_if_needed(self) -> bool:
        """Writes defaults for keys the file does not have yet."""
        section = self._parser[SECTION]
        missing = {
            key: value
            for key, value in _default_settings().items()
            if key not in section
        }
        if not missing:
            return False

        for key in sorted(missing):
            section[key] = _to_ini_value(missing[key])
            log.debug(f"Config migration: '{key}' = '{section[key]}'")

        try:
            with open(self.config_file_path, "w", encoding="utf-8") as f:
                self._parser.write(f)
        except OSError as e:
            log.error(f"Could not save migrated configuration file: {e}")
            return False
        return True
