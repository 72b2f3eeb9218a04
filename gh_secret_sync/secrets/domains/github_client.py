"""GitHub REST API client wrapper."""
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import requests

from .errors import AuthzError, NotFoundError, RemoteError
from .models import RateLimitStatus, RepositoryRef

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
USER_AGENT = "gh-secret-sync"
PAGE_SIZE = 100


class GitHubClient:
    """
    Thin authenticated wrapper around the GitHub REST API.

    Every non-2xx response is turned into a RemoteError subclass; network
    failures become a RemoteError without status code. Callers never see
    requests exceptions.
    """

    def __init__(self, token: str, api_url: str = DEFAULT_API_URL, timeout: float = 30.0):
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        """Lazy-initialize the HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": USER_AGENT,
            })
        return self._session

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Any, requests.Response]:
        """
        Make an API request.

        Args:
            method: HTTP method
            path: API path starting with '/'
            params: Query parameters
            json: JSON request body

        Returns:
            Tuple of (decoded JSON body or None, response)

        Raises:
            NotFoundError: On 404
            AuthzError: On 401, or 403 that is not a rate limit
            RemoteError: On any other failure
        """
        url = f"{self._api_url}{path}"
        start = time.time()
        try:
            response = self.session.request(method, url, params=params, json=json, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            raise RemoteError(f"{method} {path} failed: {e}") from e

        duration_ms = (time.time() - start) * 1000
        logger.debug(f"API call: {method} {path} -> {response.status_code} ({duration_ms:.0f}ms)")

        if response.status_code >= 400:
            raise _error_for(method, path, response)

        if response.status_code == 204 or not response.content:
            return None, response
        try:
            return response.json(), response
        except ValueError as e:
            raise RemoteError(f"{method} {path} returned invalid JSON: {e}", response.status_code) from e

    def get_rate_limit(self) -> RateLimitStatus:
        """Fetch the core REST quota. The rate_limit endpoint does not count against it."""
        data, _ = self.request("GET", "/rate_limit")
        core = (data or {}).get("resources", {}).get("core") or (data or {}).get("rate") or {}
        return RateLimitStatus(
            limit=int(core.get("limit", 0)),
            remaining=int(core.get("remaining", 0)),
            reset=float(core.get("reset", 0)),
        )

    def get_repository_id(self, repository: RepositoryRef) -> int:
        """Fetch the numeric id of a repository."""
        data, _ = self.request("GET", f"/repos/{repository.owner}/{repository.name}")
        try:
            return int(data["id"])
        except (TypeError, KeyError, ValueError) as e:
            raise RemoteError(f"repository {repository} response has no id") from e

    def search_repositories(self, query: str) -> List[RepositoryRef]:
        """
        Page through a repository search.

        Returns:
            Matching repositories in the order GitHub returned them
        """
        repositories: List[RepositoryRef] = []
        page = 1
        while True:
            data, response = self.request(
                "GET", "/search/repositories", params={"q": query, "per_page": PAGE_SIZE, "page": page}
            )
            for item in (data or {}).get("items", []):
                owner = (item.get("owner") or {}).get("login")
                name = item.get("name")
                if owner and name:
                    repositories.append(RepositoryRef(owner=owner, name=name))
            next_page = next_page_number(response)
            if next_page is None:
                break
            page = next_page
        logger.info(f"Search '{query}' matched {len(repositories)} repositories")
        return repositories


def next_page_number(response: requests.Response) -> Optional[int]:
    """Return the page number of the Link header's 'next' relation, if any."""
    next_link = response.links.get("next", {}).get("url")
    if not next_link:
        return None
    page = parse_qs(urlparse(next_link).query).get("page", [""])[0]
    return int(page) if page.isdigit() else None


def _error_for(method: str, path: str, response: requests.Response) -> RemoteError:
    status = response.status_code
    try:
        body = response.json()
        detail = body.get("message", "") if isinstance(body, dict) else ""
    except ValueError:
        detail = response.text[:200]
    message = f"{method} {path} failed: {status} {detail}".rstrip()

    if status == 404:
        return NotFoundError(message, status)
    rate_limited = status == 429 or (
        status == 403
        and (response.headers.get("X-RateLimit-Remaining") == "0" or "rate limit" in str(detail).lower())
    )
    if rate_limited:
        return RemoteError(message, status, rate_limited=True)
    if status in (401, 403):
        return AuthzError(message, status)
    return RemoteError(message, status)
