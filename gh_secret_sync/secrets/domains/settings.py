"""Resolved run settings: CLI flag > environment variable > config file > default."""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .config_loader import ConfigError
from .github_client import DEFAULT_API_URL
from .resilience import RetryPolicy

logger = logging.getLogger(__name__)

SYNC_TYPES = ("actions", "dependabot", "codespaces")
DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"
DEFAULT_RATE_LIMIT_THRESHOLD = 0.05

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


@dataclass
class SyncSettings:
    """Everything a sync run needs, after precedence has been applied."""
    token: str
    target: Optional[str] = None
    query: Optional[str] = None
    secrets: str = ""
    variables: str = ""
    gcp_secret_names: List[str] = field(default_factory=list)
    gcp_project_id: Optional[str] = None
    sync_type: str = "actions"
    environment: Optional[str] = None
    prune: bool = False
    dry_run: bool = False
    rate_limit: bool = False
    rate_limit_threshold: float = DEFAULT_RATE_LIMIT_THRESHOLD
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    api_url: str = DEFAULT_API_URL


def parse_bool(value: Any, name: str) -> bool:
    """
    Interpret a boolean from the environment or a config file.

    Raises:
        ConfigError: If the value is not a recognized boolean
    """
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigError(f"Invalid boolean for {name}: {value!r} (use one of {', '.join(_TRUE_VALUES)})")


def _first(*candidates):
    """First candidate that is not None."""
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _env(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(name)
    return value if value not in (None, "") else None


def _number(value: Any, name: str, cast=float):
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {name}: {value!r}")


def build_retry_policy(section: Dict[str, Any], max_retries: Any = None) -> RetryPolicy:
    """
    Build and validate a RetryPolicy from the config 'retry' section.

    Args:
        section: The 'retry' section of the config file (may be empty)
        max_retries: Overriding value from the CLI or environment

    Raises:
        ConfigError: If max_retries is negative or an interval is not positive
    """
    defaults = RetryPolicy()
    retries = _number(_first(max_retries, section.get("max_retries"), defaults.max_retries), "max_retries", int)
    if retries < 0:
        raise ConfigError(f"max_retries must be >= 0, got {retries}")

    values = {}
    for key in ("initial_interval", "multiplier", "max_interval", "max_elapsed"):
        values[key] = _number(section.get(key, getattr(defaults, key)), f"retry.{key}")
        if values[key] <= 0:
            raise ConfigError(f"retry.{key} must be positive, got {values[key]}")

    factor = _number(section.get("randomization_factor", defaults.randomization_factor), "retry.randomization_factor")
    if not 0 <= factor <= 1:
        raise ConfigError(f"retry.randomization_factor must be between 0 and 1, got {factor}")

    return RetryPolicy(max_retries=retries, randomization_factor=factor, **values)


def resolve_settings(
    cli: Mapping[str, Any],
    config: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> SyncSettings:
    """
    Merge CLI flags, environment and config file into SyncSettings.

    Args:
        cli: Parsed CLI options; None means "not given"
        config: Loaded config file (see config_loader.load_config)
        environ: Environment mapping, os.environ by default

    Raises:
        ConfigError: On a missing token, invalid type or invalid numbers
    """
    environ = os.environ if environ is None else environ
    github = config.get("github", {})
    rate_limit_section = config.get("rate_limit", {})

    token_env = github.get("token_env", DEFAULT_TOKEN_ENV)
    token = _first(cli.get("github_token"), _env(environ, token_env))
    if not token:
        raise ConfigError(f"GitHub token is required (pass --github-token or set {token_env})")

    sync_type = (_first(cli.get("sync_type"), _env(environ, "TYPE")) or "actions").strip().lower()
    if sync_type not in SYNC_TYPES:
        raise ConfigError(f"Invalid type '{sync_type}', expected one of: {', '.join(SYNC_TYPES)}")

    rate_limit = parse_bool(
        _first(cli.get("rate_limit"), _env(environ, "RATE_LIMIT"), rate_limit_section.get("enabled"), False),
        "rate_limit",
    )
    threshold = _number(
        rate_limit_section.get("threshold", DEFAULT_RATE_LIMIT_THRESHOLD), "rate_limit.threshold"
    )
    if not 0 < threshold < 1:
        raise ConfigError(f"rate_limit.threshold must be between 0 and 1, got {threshold}")

    # Target selection comes as a pair: a CLI target or query hides both env values
    if cli.get("target") or cli.get("query"):
        target, query = cli.get("target"), cli.get("query")
    else:
        target, query = _env(environ, "TARGET"), _env(environ, "QUERY")

    gcp_names = cli.get("secrets_from_gcp") or []
    settings = SyncSettings(
        token=token,
        target=target,
        query=query,
        secrets=_first(cli.get("secrets"), environ.get("SECRETS"), ""),
        variables=_first(cli.get("variables"), environ.get("VARIABLES"), ""),
        gcp_secret_names=list(gcp_names),
        gcp_project_id=_first(cli.get("gcp_project_id"), config.get("gcp", {}).get("project_id")),
        sync_type=sync_type,
        environment=_first(cli.get("environment"), _env(environ, "ENVIRONMENT")),
        prune=parse_bool(_first(cli.get("prune"), _env(environ, "PRUNE"), False), "prune"),
        dry_run=parse_bool(_first(cli.get("dry_run"), _env(environ, "DRY_RUN"), False), "dry_run"),
        rate_limit=rate_limit,
        rate_limit_threshold=threshold,
        retry_policy=build_retry_policy(
            config.get("retry", {}), _first(cli.get("max_retries"), _env(environ, "MAX_RETRIES"))
        ),
        api_url=_first(cli.get("api_url"), github.get("api_url"), DEFAULT_API_URL),
    )
    logger.debug(
        f"Resolved settings: type={settings.sync_type} environment={settings.environment} "
        f"prune={settings.prune} dry_run={settings.dry_run} rate_limit={settings.rate_limit} "
        f"max_retries={settings.retry_policy.max_retries}"
    )
    return settings
