"""GCP Secret Manager client wrapper, used as a source of secret values."""
import os
import logging
from typing import Optional, Dict, Any
from google.cloud import secretmanager

logger = logging.getLogger(__name__)


def apply_credentials(config: Dict[str, Any]) -> None:
    """
    Point Google client libraries at the configured service account.

    Sets GOOGLE_APPLICATION_CREDENTIALS from the config's authentication
    section, unless it is already set in the environment.
    """
    path = config.get("authentication", {}).get("service_account_path")
    if not path:
        return
    if os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        logger.debug("GOOGLE_APPLICATION_CREDENTIALS already set, ignoring config service account")
        return
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = path
    logger.debug(f"Set GOOGLE_APPLICATION_CREDENTIALS from config: {path}")


class GCPSecretClient:
    """Wrapper around GCP Secret Manager client."""

    def __init__(self, project_id: Optional[str] = None):
        self._project_id = project_id
        self._client = None

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def get_project_id(self) -> Optional[str]:
        """
        Get GCP project ID from environment variable or configuration.

        Priority order:
        1. GCP_PROJECT environment variable (allows override)
        2. Project ID given at construction (CLI flag or config file)

        Returns:
            Project ID string, or None if not found
        """
        gcp_project_env = os.getenv("GCP_PROJECT")
        if gcp_project_env:
            logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
            return gcp_project_env

        if self._project_id:
            logger.debug(f"Using configured project_id: {self._project_id}")
            return self._project_id

        logger.error("Project ID not found. Please set GCP_PROJECT, pass --gcp-project-id or configure gcp.project_id")
        return None

    def fetch_secret(self, secret_name: str, project_id: str) -> Optional[str]:
        """
        Fetch the latest version of a secret from GCP Secret Manager.

        Args:
            secret_name: Name of the secret
            project_id: GCP project ID

        Returns:
            Secret value or None if fetch fails
        """
        try:
            name = f"projects/{project_id}/secrets/{secret_name}/versions/latest"
            response = self.client.access_secret_version(request={"name": name})
            return response.payload.data.decode("UTF-8")
        except Exception as e:
            # google-api-core raises a wide family of errors; all mean "not available"
            logger.warning(f"GCP fetch failed for {secret_name}: {e}")
            return None
