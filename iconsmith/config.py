"""Manages application configuration via an INI file."""

import configparser
import logging

from iconsmith.logging_setup import get_app_data_dir

log = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "core": {
        "cache_size_mb": "256",
        "max_workers": "4",
        "default_size": "1024",
    },
    "cleanup": {
        # --- Background removal ---
        #
        # aggression: 0-200, added to a fixed offset of 15 to form the RGB
        #   distance under which a pixel counts as background.
        # keep_internal: True only removes background connected to the image
        #   border (highlights inside the icon survive). False wipes every
        #   background-colored pixel.
        # margin_fraction: share of the output square left empty around the
        #   centered icon (0.0625 leaves 960 of 1024 px for content).
        # min_fragment_size: opaque specks smaller than this many pixels in
        #   both directions are ignored when finding the icon's bounds.
        "aggression": "80",
        "keep_internal": "True",
        "output_size": "1024",
        "margin_fraction": "0.0625",
        "min_fragment_size": "4",
    },
    "compositor": {
        "margin_fraction": "0.12",
        "reference_size": "512",
    },
    "presets": {
        "directory": "",
    },
}


class AppConfig:
    def __init__(self, config_path=None):
        self.config_path = config_path or (get_app_data_dir() / "iconsmith.ini")
        self.config = configparser.ConfigParser()
        self.load()

    def load(self):
        """Loads the config, creating it with defaults if it doesn't exist."""
        if not self.config_path.exists():
            log.info(f"Creating default config at {self.config_path}")
            self.config.read_dict(DEFAULT_CONFIG)
            self.save()
        else:
            log.info(f"Loading config from {self.config_path}")
            try:
                self.config.read(self.config_path)
            except configparser.Error as e:
                log.error(f"Failed to parse {self.config_path}, using defaults: {e}")
                self.config = configparser.ConfigParser()
                self.config.read_dict(DEFAULT_CONFIG)
            # Ensure all sections and keys exist
            for section, keys in DEFAULT_CONFIG.items():
                if not self.config.has_section(section):
                    self.config.add_section(section)
                for key, value in keys.items():
                    if not self.config.has_option(section, key):
                        self.config.set(section, key, value)
            self.save()  # Save to add any missing keys

    def save(self):
        """Saves the current configuration to the INI file."""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with self.config_path.open("w") as f:
                self.config.write(f)
            log.info(f"Saved config to {self.config_path}")
        except IOError as e:
            log.error(f"Failed to save config to {self.config_path}: {e}")

    def get(self, section, key, fallback=None):
        return self.config.get(section, key, fallback=fallback)

    def getint(self, section, key, fallback=None):
        return self.config.getint(section, key, fallback=fallback)

    def getfloat(self, section, key, fallback=None):
        return self.config.getfloat(section, key, fallback=fallback)

    def getboolean(self, section, key, fallback=None):
        return self.config.getboolean(section, key, fallback=fallback)

    def set(self, section, key, value):
        if not self.config.has_section(section):
            self.config.add_section(section)
        self.config.set(section, key, str(value))


# Global config instance
config = AppConfig()
