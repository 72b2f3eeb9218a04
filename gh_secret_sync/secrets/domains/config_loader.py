"""Configuration loader for gh-secret-sync."""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .preferences import get_preference

logger = logging.getLogger(__name__)

# Recognized sections and the keys each one accepts
KNOWN_SECTIONS = {
    "github": ("api_url", "token_env"),
    "retry": (
        "max_retries",
        "initial_interval",
        "multiplier",
        "randomization_factor",
        "max_interval",
        "max_elapsed",
    ),
    "rate_limit": ("enabled", "threshold"),
    "gcp": ("project_id",),
    "authentication": ("type", "service_account_path"),
}


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def default_config_path() -> Path:
    """Default config location, resolved against the current home directory."""
    return Path.home() / ".config" / "gh-secret-sync" / "config.yml"


def _get_config_path() -> Optional[str]:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. User preference (stored in ~/.config/gh-secret-sync/preferences.json)
    2. Default location: ~/.config/gh-secret-sync/config.yml

    The config file is optional: every setting has a default or an
    environment variable.

    Returns:
        Absolute path to config file, or None if no config file exists
    """
    # 1. Check user preference
    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.debug(f"Using config from preference: {config_path}")
            return str(config_path)
        else:
            logger.warning(f"Config path from preference doesn't exist: {config_path}")

    # 2. Check default location
    default_config = default_config_path()
    if default_config.exists():
        logger.debug(f"Using default config location: {default_config}")
        return str(default_config)

    logger.debug(f"No config file at {default_config}, using defaults")
    return None


def load_config() -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    Returns:
        Dict with any of the sections github, retry, rate_limit, gcp and
        authentication; empty when no config file exists

    Raises:
        ConfigError: If the config file is invalid, empty, has unknown or
            malformed sections, or names a service account file that doesn't exist
    """
    # Get config path dynamically each time (not cached at module level)
    config_path = _get_config_path()
    if config_path is None:
        return {}

    # Load YAML
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")

    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must be a mapping of sections")

    for section, values in config.items():
        if section not in KNOWN_SECTIONS:
            raise ConfigError(
                f"Unknown section '{section}' in config at {config_path}\n"
                f"Known sections: {', '.join(KNOWN_SECTIONS)}"
            )
        if not isinstance(values, dict):
            raise ConfigError(f"Section '{section}' in config at {config_path} must be a mapping")
        unknown = set(values) - set(KNOWN_SECTIONS[section])
        if unknown:
            raise ConfigError(
                f"Unknown key(s) in '{section}' section: {', '.join(sorted(unknown))}"
            )

    if "authentication" in config:
        _validate_authentication(config["authentication"], config_path)

    logger.debug(f"Configuration loaded successfully from {config_path}")
    return config


def _validate_authentication(auth: Dict[str, Any], config_path: str) -> None:
    if 'type' not in auth:
        raise ConfigError("Missing 'authentication.type' in config")

    if auth['type'] != 'service_account':
        raise ConfigError(
            f"Unsupported authentication type: {auth['type']}\n"
            f"Only 'service_account' is supported."
        )

    if 'service_account_path' not in auth:
        raise ConfigError(
            "Missing 'authentication.service_account_path' in config\n"
            "Please specify the absolute path to your service account JSON file."
        )

    service_account_path = auth['service_account_path']

    if not os.path.exists(service_account_path):
        raise ConfigError(
            f"Service account file not found at: {service_account_path}\n"
            f"Please ensure the file exists or update the path in {config_path}"
        )

    if not os.path.isfile(service_account_path):
        raise ConfigError(
            f"Service account path is not a file: {service_account_path}"
        )

    logger.debug(f"Using service account: {service_account_path}")
