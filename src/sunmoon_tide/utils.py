"""
Configuration helpers.

Settings live in an INI file (``conf/sunmoon_tide.conf`` by default, or
the path named by the ``SUNMOON_TIDE_CONFIG`` environment variable).
Every section has built-in defaults so the package works without a
config file on disk.
"""
from __future__ import annotations

import configparser
import logging
import os
from pathlib import Path

CONFIG_ENV_VAR = 'SUNMOON_TIDE_CONFIG'

DEFAULTS: dict[str, dict[str, str]] = {
    'urls': {
        'tile_base_url': 'https://tiles.sunmoontide.example/api',
    },
    'storage': {
        'db_path': 'data/tiles.sqlite',
        'quota_mb': '100',
        'max_tile_age_days': '30',
        'hot_capacity': '64',
        'verify_on_read': 'true',
    },
    'packaging': {
        'model': 'FES2022',
        'datum': 'MSL',
        'version': '1.0.0',
    },
    'prediction': {
        'tile_timeout_seconds': '5.0',
    },
}
"""Built-in values for every configuration section."""


class Utils:
    """Locate and read the package configuration file."""

    def __init__(self, config_file: str | os.PathLike | None = None):
        self.config_file = config_file

    def get_config_file(self) -> Path:
        """
        Return the path of the configuration file in use.

        An explicit path given to the constructor wins, then the
        ``SUNMOON_TIDE_CONFIG`` environment variable, then
        ``conf/sunmoon_tide.conf`` at the repository root.
        """
        if self.config_file is not None:
            return Path(self.config_file)
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return Path(env_path)
        return (Path(__file__).parent.parent.parent / 'conf'
                / 'sunmoon_tide.conf').resolve()

    def read_config_section(
        self,
        section: str,
        logger: logging.Logger | None = None,
    ) -> dict[str, str]:
        """
        Read one section of the configuration file.

        Parameters
        ----------
        section : str
            Section name, e.g. ``'urls'`` or ``'storage'``.
        logger : logging.Logger, optional
            Logger instance for diagnostic messages.

        Returns
        -------
        dict
            Section values merged over the built-in defaults.

        Raises
        ------
        KeyError
            If the section is neither in the file nor in the defaults.
        """
        _log = logger or logging.getLogger(__name__)

        config_file = self.get_config_file()
        parser = configparser.ConfigParser()
        if config_file.is_file():
            parser.read(config_file)
        else:
            _log.debug('Config file %s not found, using defaults.',
                       config_file)

        if section not in DEFAULTS and not parser.has_section(section):
            raise KeyError(f"Unknown configuration section '{section}'.")

        values = dict(DEFAULTS.get(section, {}))
        if parser.has_section(section):
            values.update(parser.items(section))
        return values
