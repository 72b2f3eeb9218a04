"""Workflow resolving secret values from the environment or GCP Secret Manager."""
import os
import logging
from typing import Dict, Iterable, Optional
from ..domains.models import Secret
from ..domains.gcp_client import GCPSecretClient

logger = logging.getLogger(__name__)

# Module-level cache: {project_id:secret_name -> Secret}, per process
_secret_cache: Dict[str, Secret] = {}


class SecretNotFoundError(Exception):
    """A requested secret is neither in the environment nor in GCP."""

    def __init__(self, names):
        self.names = list(names)
        super().__init__(f"Secret(s) not found in GCP or env: {', '.join(self.names)}")


def get_secret(secret_name: str, client: Optional[GCPSecretClient] = None) -> Optional[str]:
    """
    Fetch a secret value with memory caching.

    Args:
        secret_name: Name of the secret to fetch
        client: GCP client to use; a default one is created when omitted

    Returns:
        Secret value as string, or None if not found

    Behavior:
        - Checks environment variables FIRST (no GCP round trip in local runs)
        - Caches secrets in memory (per-process only)
        - Falls back to GCP Secret Manager if the env var is not set
    """
    env_value = os.getenv(secret_name)
    if env_value:
        cache_key = f"env:{secret_name}"
        if cache_key not in _secret_cache:
            _secret_cache[cache_key] = Secret(name=secret_name, value=env_value, project_id="local", source="env")
            logger.debug(f"Secret '{secret_name}' taken from environment")
        return env_value

    client = client or GCPSecretClient()
    project_id = client.get_project_id()
    if not project_id:
        return None

    cache_key = f"{project_id}:{secret_name}"
    if cache_key in _secret_cache:
        return _secret_cache[cache_key].value

    secret_value = client.fetch_secret(secret_name, project_id)
    if secret_value:
        _secret_cache[cache_key] = Secret(name=secret_name, value=secret_value, project_id=project_id, source="gcp")
        logger.debug(f"Secret '{secret_name}' fetched from GCP project {project_id}")
        return secret_value

    return None


def resolve_secrets(names: Iterable[str], project_id: Optional[str] = None) -> Dict[str, str]:
    """
    Resolve several secrets into a desired mapping keyed by upper-cased name.

    All names are looked up before failing, so the error lists every missing one.

    Raises:
        SecretNotFoundError: If any secret could not be resolved
    """
    client = GCPSecretClient(project_id=project_id)
    resolved: Dict[str, str] = {}
    missing = []
    for name in names:
        value = get_secret(name, client)
        if value:
            resolved[name.upper()] = value
        else:
            missing.append(name)
    if missing:
        raise SecretNotFoundError(missing)
    logger.info(f"Resolved {len(resolved)} secret(s) from environment/GCP")
    return resolved


def clear_cache() -> None:
    """Drop every cached secret."""
    _secret_cache.clear()
