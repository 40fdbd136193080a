import json
import shutil
import logging
from pathlib import Path
from functools import lru_cache
from typing import Optional

import sppmon.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    A singleton class that merges default settings with JSON overrides.

    This class provides a unified, attribute-based access point for all
    configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from the `.env` file (handled by `python-dotenv` in settings.py).
    3. Overrides from `overrides.json` for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        """Initializes the settings object by loading defaults and overrides."""
        self._load_defaults()
        self.OVERRIDES_JSON_PATH: Path = Path(overrides_path or default_settings.OVERRIDES_JSON_PATH)
        self._load_overrides()

    def _load_defaults(self) -> None:
        """
        Loads all uppercase attributes from the settings.py module as defaults.
        """
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the `overrides.json` file.

        Only keys explicitly listed in `MODIFIABLE_SETTINGS` are applied.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return

        log.info(f"Loading configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue

            # Coerce path strings back to Path objects if necessary
            original_value = getattr(self, key)
            if isinstance(original_value, Path):
                setattr(self, key, Path(value))
            else:
                setattr(self, key, value)
            log.debug(f"Overridden setting: {key} = {value}")


@lru_cache(maxsize=None)
def resolve_tool(name: str) -> Optional[str]:
    """
    Resolves an external helper tool once per process.

    A vendored copy under `TOOLS_DIR` wins over the one on PATH.

    :param name: The executable name (e.g., 'ssh').
    :return: The absolute path to the tool, or None if it cannot be found.
    """
    vendored = Path(effective_settings.TOOLS_DIR) / name
    if vendored.is_file():
        log.debug(f"Using vendored tool '{name}' at '{vendored}'.")
        return str(vendored)
    found = shutil.which(name)
    if found:
        log.debug(f"Using system tool '{name}' at '{found}'.")
    return found


# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
