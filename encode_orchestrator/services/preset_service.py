"""
Resolves encoding preset names into encoder configurations.

Presets are kept in a YAML catalogue that maps a preset name to the configuration
the encoder expects:

    presets:
      Sprites:
        file: presets/sprites.json        # a JSON/XML file, relative to the catalogue
      Adaptive Streaming: "Adaptive Streaming"   # a built-in preset of the encoder
      Thumbnails:                         # an inline configuration, sent as JSON
        Version: 1.0
        Codecs: [...]

A "preset name" that is itself a JSON object or an XML document is passed through
unchanged, so callers can submit ad-hoc configurations.
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from ..domain.exceptions import NotFoundError, ValidationError
from .interfaces import PresetResolver


def is_structured_configuration(text: str) -> bool:
    """Returns True if `text` looks like a JSON object or an XML document."""
    stripped = text.lstrip()
    return stripped.startswith("{") or stripped.startswith("<")


class YamlPresetResolver(PresetResolver):
    """
    A `PresetResolver` backed by a YAML preset catalogue.

    The catalogue is read once, when the resolver is created. Referenced preset
    files are read on every `resolve` call so they can be edited without a restart.
    """

    def __init__(self, presets: Optional[Dict[str, Any]] = None, base_dir: Optional[Path] = None):
        """
        Args:
            presets: Mapping of preset name to configuration (see the module docstring).
            base_dir: Directory `file:` references are resolved against.
        """
        self.presets: Dict[str, Any] = dict(presets or {})
        self.base_dir = base_dir or Path.cwd()

    @classmethod
    def from_file(cls, catalogue_path: Union[str, Path]) -> "YamlPresetResolver":
        """
        Loads a preset catalogue.

        Raises:
            ValidationError: If the catalogue is missing or malformed.
        """
        catalogue_path = Path(catalogue_path)
        if not catalogue_path.is_file():
            raise ValidationError(f"Preset catalogue '{catalogue_path}' does not exist.")
        try:
            with catalogue_path.open("r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValidationError(f"Could not parse preset catalogue '{catalogue_path}': {e}") from e

        presets = loaded.get("presets", {}) if isinstance(loaded, dict) else None
        if not isinstance(presets, dict):
            raise ValidationError(f"'{catalogue_path}' must contain a 'presets' mapping.")

        logger.debug(f"Loaded {len(presets)} preset(s) from '{catalogue_path}'")
        return cls(presets, base_dir=catalogue_path.parent)

    def resolve(self, preset_name: str) -> str:
        if is_structured_configuration(preset_name):
            return preset_name

        name = preset_name.strip()
        if name not in self.presets:
            raise NotFoundError(f"Unknown preset '{name}'.")

        entry = self.presets[name]
        if isinstance(entry, str):
            return entry
        if isinstance(entry, dict) and set(entry) == {"file"}:
            return self._read_preset_file(name, entry["file"])
        if isinstance(entry, (dict, list)):
            return json.dumps(entry)
        raise ValidationError(f"Preset '{name}' has an unsupported definition: {entry!r}")

    def _read_preset_file(self, name: str, file_name: str) -> str:
        preset_path = Path(file_name)
        if not preset_path.is_absolute():
            preset_path = self.base_dir / preset_path
        try:
            return preset_path.read_text(encoding="utf-8")
        except OSError as e:
            raise NotFoundError(f"Preset file '{preset_path}' of preset '{name}' could not be read: {e}") from e
