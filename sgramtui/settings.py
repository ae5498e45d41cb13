"""Persistent viewer preferences (sgram.config.json).

The file is optional: when it is missing the built-in defaults apply and
nothing is written.  Values found in it sit between the built-in
defaults and the command-line flags.

Locations:
    Windows : %APPDATA%\\sgram\\sgram.config.json
    macOS   : ~/Library/Application Support/sgram/sgram.config.json
    Linux   : $XDG_CONFIG_HOME/sgram/sgram.config.json
              (defaults to ~/.config/sgram/sgram.config.json)
"""

from __future__ import annotations

import json
import logging
import os
import platform
from typing import Any

from sgramlib.config import VIEW_PARAMS, validate_param_values

log = logging.getLogger(__name__)

APP_DIRNAME = "sgram"
CONFIG_FILENAME = "sgram.config.json"
LOG_FILENAME = "sgram.log"

SETTINGS_KEYS = ("detailed", "fullscreen", "device", "png_path", "csv_path", "palette")

_SETTINGS_PARAMS = [p for p in VIEW_PARAMS if p.key in SETTINGS_KEYS]


def config_dir() -> str:
    """The per-user configuration directory for sgram on this OS."""
    home = os.path.expanduser("~")
    system = platform.system()
    if system == "Windows":
        base = os.environ.get("APPDATA") or home
    elif system == "Darwin":
        base = os.path.join(home, "Library", "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(home, ".config")
    return os.path.join(base, APP_DIRNAME)


def config_path() -> str:
    return os.path.join(config_dir(), CONFIG_FILENAME)


def log_path() -> str:
    return os.path.join(config_dir(), LOG_FILENAME)


# ---------------------------------------------------------------------------
# Load / Save
# ---------------------------------------------------------------------------

def load_settings(path: str | None = None) -> dict[str, Any]:
    """Read saved preferences.

    Returns only the recognised keys present in the file.  A missing file
    gives an empty dict; an unreadable or invalid one is logged and
    ignored as a whole.
    """
    path = path or config_path()
    if not os.path.isfile(path):
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        log.warning("Cannot read settings %s (%s), using defaults", path, exc)
        return {}

    if not isinstance(data, dict):
        log.warning("Settings root is %s, expected object, using defaults",
                    type(data).__name__)
        return {}

    values = {k: v for k, v in data.items() if k in SETTINGS_KEYS}
    errors = validate_param_values(_SETTINGS_PARAMS, values)
    if errors:
        msgs = "; ".join(e.message for e in errors)
        log.warning("Settings validation failed (%s), using defaults", msgs)
        return {}
    return values


def save_settings(values: dict[str, Any], path: str | None = None) -> str:
    """Write the recognised keys of *values*; returns the path written."""
    path = path or config_path()
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    data = {k: values.get(k) for k in SETTINGS_KEYS if k in values}

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=4, ensure_ascii=False)
        f.write("\n")

    log.info("Settings saved to %s", path)
    return path
