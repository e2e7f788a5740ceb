"""Reads and writes named effect presets in a presets.json file."""

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from iconsmith.config import config
from iconsmith.logging_setup import get_app_data_dir
from iconsmith.models import EffectConfig

log = logging.getLogger(__name__)

PRESETS_VERSION = 1


def effects_from_dict(values: Mapping[str, Any]) -> EffectConfig:
    """Builds an EffectConfig from a dict, ignoring keys it doesn't know."""
    valid_keys = {f.name for f in dataclasses.fields(EffectConfig)}
    unknown = set(values) - valid_keys
    if unknown:
        log.debug(f"Ignoring unknown effect keys: {sorted(unknown)}")
    return EffectConfig(**{k: v for k, v in values.items() if k in valid_keys})


def merge_effects(base: EffectConfig, overrides: Mapping[str, Any]) -> EffectConfig:
    """Returns `base` with the known keys of `overrides` applied."""
    merged = base.to_dict()
    merged.update(overrides)
    return effects_from_dict(merged)


class PresetManager:
    def __init__(self, path: Optional[Path] = None):
        if path is None:
            directory = config.get("presets", "directory", fallback="").strip()
            path = (Path(directory) if directory else get_app_data_dir()) / "presets.json"
        self.path = Path(path)
        self.presets: Dict[str, EffectConfig] = self.load()

    def load(self) -> Dict[str, EffectConfig]:
        """Loads presets from disk; a missing or corrupt file yields no presets."""
        if not self.path.exists():
            log.info(f"No presets file found at {self.path}.")
            return {}
        try:
            with self.path.open("r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.error(f"Failed to load or parse presets file {self.path}: {e}")
            return {}

        if not isinstance(data, dict) or data.get("version") != PRESETS_VERSION:
            log.warning("Unrecognized presets format in %s. Starting fresh.", self.path)
            return {}

        presets = {}
        for name, values in data.get("presets", {}).items():
            try:
                presets[name] = effects_from_dict(values)
            except (TypeError, ValueError) as e:
                log.warning(f"Skipping invalid preset '{name}': {e}")
        return presets

    def save(self):
        """Saves presets to disk atomically."""
        temp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w") as f:
                json.dump(
                    {
                        "version": PRESETS_VERSION,
                        "presets": {name: fx.to_dict() for name, fx in self.presets.items()},
                    },
                    f,
                    indent=2,
                )
            temp_path.replace(self.path)
            log.debug(f"Saved presets file to {self.path}")
        except (IOError, TypeError) as e:
            log.error(f"Failed to save presets file {self.path}: {e}")

    def get(self, name: str) -> EffectConfig:
        return self.presets[name]

    def put(self, name: str, effects: EffectConfig):
        self.presets[name] = effects
        self.save()

    def remove(self, name: str) -> bool:
        if self.presets.pop(name, None) is None:
            return False
        self.save()
        return True

    def names(self) -> List[str]:
        return sorted(self.presets)
