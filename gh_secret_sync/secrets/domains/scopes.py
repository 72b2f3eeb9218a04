"""Scope adapters: one request/response shape for every credential namespace."""
import logging
from dataclasses import dataclass
from typing import Dict, Set
from urllib.parse import quote

from .errors import NotFoundError, PaginationError, SyncError
from .github_client import PAGE_SIZE, GitHubClient, next_page_number
from .models import (
    EncryptedPayload,
    ListPage,
    PublicKey,
    RemoteEntry,
    RepositoryRef,
    Scope,
    ScopeKind,
    ScopeRef,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceSpec:
    """
    How one scope kind maps onto GitHub REST paths.

    Attributes:
        collection: Path template of the collection; formatted with owner,
            repo, repository_id and environment
        list_field: Key of the entry list in listing responses
        by_repository_id: Whether the path addresses the repository by numeric id
    """
    collection: str
    list_field: str
    by_repository_id: bool = False


RESOURCE_SPECS: Dict[ScopeKind, ResourceSpec] = {
    ScopeKind.REPOSITORY_SECRETS: ResourceSpec("/repos/{owner}/{repo}/actions/secrets", "secrets"),
    ScopeKind.REPOSITORY_VARIABLES: ResourceSpec("/repos/{owner}/{repo}/actions/variables", "variables"),
    ScopeKind.ENVIRONMENT_SECRETS: ResourceSpec(
        "/repositories/{repository_id}/environments/{environment}/secrets", "secrets", by_repository_id=True
    ),
    ScopeKind.ENVIRONMENT_VARIABLES: ResourceSpec(
        "/repos/{owner}/{repo}/environments/{environment}/variables", "variables"
    ),
    ScopeKind.DEPENDABOT_SECRETS: ResourceSpec("/repos/{owner}/{repo}/dependabot/secrets", "secrets"),
    ScopeKind.CODESPACES_SECRETS: ResourceSpec("/repos/{owner}/{repo}/codespaces/secrets", "secrets"),
}


class ScopeAdapter:
    """
    Stateless operations against one scope of a repository.

    The same class serves all scope kinds; only the ResourceSpec differs.
    Methods raise RemoteError subclasses on failure and never retry.
    """

    def __init__(self, client: GitHubClient, scope: Scope):
        self._client = client
        self.scope = scope
        self._spec = RESOURCE_SPECS[scope.kind]

    def resolve(self, repository: RepositoryRef) -> ScopeRef:
        """Build the target reference, fetching the repository id where the path needs it."""
        repository_id = None
        if self._spec.by_repository_id:
            repository_id = self._client.get_repository_id(repository)
        return ScopeRef(repository=repository, scope=self.scope, repository_id=repository_id)

    def list_page(self, ref: ScopeRef, page: int, per_page: int = PAGE_SIZE) -> ListPage:
        """Fetch one page of existing entry names."""
        data, response = self._client.request(
            "GET", self._collection(ref), params={"per_page": per_page, "page": page}
        )
        entries = (data or {}).get(self._spec.list_field, [])
        return ListPage(
            entries=[RemoteEntry(name=e["name"], updated_at=e.get("updated_at")) for e in entries if e.get("name")],
            next_page=next_page_number(response),
        )

    def get_public_key(self, ref: ScopeRef) -> PublicKey:
        """
        Fetch the sealing key for this scope.

        Raises:
            NotFoundError: If the repository or environment does not exist
            AuthzError: If the token may not read the key
        """
        data, _ = self._client.request("GET", f"{self._collection(ref)}/public-key")
        return PublicKey(key_id=str(data["key_id"]), key=data["key"])

    def create_or_update_secret(self, ref: ScopeRef, payload: EncryptedPayload) -> None:
        """Store a sealed secret. Overwrites an existing secret of the same name."""
        self._client.request(
            "PUT",
            self._item(ref, payload.name),
            json={"encrypted_value": payload.encrypted_value, "key_id": payload.key_id},
        )

    def create_or_update_variable(self, ref: ScopeRef, name: str, value: str) -> None:
        """
        Store a plaintext variable.

        GitHub has separate create and update calls; update is tried first
        and create only when the variable does not exist yet.
        """
        body = {"name": name, "value": value}
        try:
            self._client.request("PATCH", self._item(ref, name), json=body)
        except NotFoundError:
            logger.debug(f"Variable {name} not found in {ref.scope.label} of {ref.repository}, creating it")
            self._client.request("POST", self._collection(ref), json=body)

    def delete_entry(self, ref: ScopeRef, name: str) -> None:
        """Delete an entry. An entry that is already gone counts as deleted."""
        try:
            self._client.request("DELETE", self._item(ref, name))
        except NotFoundError:
            logger.debug(f"{name} already absent from {ref.scope.label} of {ref.repository}")

    def _collection(self, ref: ScopeRef) -> str:
        return self._spec.collection.format(
            owner=quote(ref.repository.owner, safe=""),
            repo=quote(ref.repository.name, safe=""),
            repository_id=ref.repository_id,
            environment=quote(ref.scope.environment or "", safe=""),
        )

    def _item(self, ref: ScopeRef, name: str) -> str:
        return f"{self._collection(ref)}/{quote(name, safe='')}"


def list_existing(adapter, ref: ScopeRef, per_page: int = PAGE_SIZE) -> Set[str]:
    """
    Collect every existing entry name across all pages.

    Pages are fetched through ``adapter.list_page`` so any retry or rate-limit
    wrapping applies to each page call.

    Raises:
        PaginationError: If any page fails; names gathered so far are discarded
    """
    names: Set[str] = set()
    page = 1
    while True:
        try:
            result = adapter.list_page(ref, page, per_page)
        except SyncError as e:
            raise PaginationError(
                f"failed to list {ref.scope.label} of {ref.repository} (page {page}): {e}", page
            ) from e
        names.update(result.names)
        if result.next_page is None or result.next_page <= page:
            break
        page = result.next_page
    logger.info(f"Listed {len(names)} existing {ref.scope.label} in {ref.repository}")
    return names
