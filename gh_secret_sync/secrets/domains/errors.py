"""Error taxonomy for secret and variable synchronization."""
from typing import Optional


class SyncError(Exception):
    """Base exception for synchronization errors."""
    pass


class ParseError(SyncError):
    """Malformed desired-mapping input. Raised before any network call."""
    pass


class RemoteError(SyncError):
    """
    GitHub rejected a call or could not be reached.

    Attributes:
        status_code: HTTP status code, or None for network failures
        rate_limited: True when GitHub signalled a (secondary) rate limit
    """

    def __init__(self, message: str, status_code: Optional[int] = None, rate_limited: bool = False):
        self.status_code = status_code
        self.rate_limited = rate_limited
        super().__init__(message)

    @property
    def transient(self) -> bool:
        """Whether retrying the same call may succeed."""
        if self.status_code is None or self.rate_limited:
            return True
        return self.status_code == 429 or self.status_code >= 500


class NotFoundError(RemoteError):
    """The repository, environment or entry does not exist (HTTP 404)."""
    pass


class AuthzError(RemoteError):
    """The token is invalid or lacks permission (HTTP 401/403)."""
    pass


class EncryptionError(SyncError):
    """The public key material could not be used to seal a value."""
    pass


class PaginationError(SyncError):
    """
    Listing existing entries failed part-way through.

    The partially collected names are discarded; the page error is
    available as ``__cause__``.
    """

    def __init__(self, message: str, page: int):
        self.page = page
        super().__init__(message)
