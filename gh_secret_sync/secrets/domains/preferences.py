"""Preferences manager for gh-secret-sync.

Persistent user preferences live in the XDG Base Directory standard location:
~/.config/gh-secret-sync/preferences.json

Only recognized keys are stored; currently that is the config file path.
"""
import json
from pathlib import Path
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

# XDG Base Directory standard location
PREFERENCES_DIR = Path.home() / ".config" / "gh-secret-sync"
PREFERENCES_FILE = PREFERENCES_DIR / "preferences.json"

KNOWN_KEYS = ("config_path",)


class PreferenceError(Exception):
    """Unknown preference key or unwritable preferences file."""
    pass


def _load_preferences() -> Dict[str, Any]:
    """
    Load preferences from JSON file.

    A corrupt file is logged and treated as empty so that a bad preference
    never blocks a sync; it is overwritten on the next write.

    Returns:
        Dictionary of preferences, or empty dict if file doesn't exist
    """
    if not PREFERENCES_FILE.exists():
        return {}

    try:
        data = json.loads(PREFERENCES_FILE.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read preferences file {PREFERENCES_FILE}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.error(f"Ignoring preferences file {PREFERENCES_FILE}: expected a JSON object")
        return {}
    return data


def _save_preferences(preferences: Dict[str, Any]) -> None:
    try:
        PREFERENCES_DIR.mkdir(parents=True, exist_ok=True)
        PREFERENCES_FILE.write_text(json.dumps(preferences, indent=2, sort_keys=True))
    except OSError as e:
        raise PreferenceError(f"Failed to save preferences to {PREFERENCES_FILE}: {e}") from e


def _check_key(key: str) -> None:
    if key not in KNOWN_KEYS:
        raise PreferenceError(f"Unknown preference '{key}'. Known preferences: {', '.join(KNOWN_KEYS)}")


def get_preference(key: str) -> Optional[str]:
    """
    Get preference value by key.

    Returns:
        Preference value if set, None otherwise
    """
    _check_key(key)
    return _load_preferences().get(key)


def set_preference(key: str, value: str) -> None:
    """
    Set preference value.

    Raises:
        PreferenceError: If the key is unknown or the file cannot be written
    """
    _check_key(key)
    preferences = _load_preferences()
    preferences[key] = value
    _save_preferences(preferences)
    logger.info(f"Preference '{key}' set to: {value}")


def clear_preference(key: str) -> None:
    """Remove a preference. Clearing an unset preference is a no-op."""
    _check_key(key)
    preferences = _load_preferences()
    if preferences.pop(key, None) is None:
        logger.debug(f"Preference '{key}' not set, nothing to clear")
        return
    _save_preferences(preferences)
    logger.info(f"Preference '{key}' cleared")


def get_all_preferences() -> Dict[str, Any]:
    """All recognized preferences that are currently set."""
    return {k: v for k, v in _load_preferences().items() if k in KNOWN_KEYS}
