"""Workflow fanning a sync out over one or many repositories."""
import logging
from typing import Callable, Dict, List, Optional

from ..domains.errors import SyncError
from ..domains.github_client import GitHubClient
from ..domains.models import RepositoryRef, RepositoryResult, Scope, ScopeKind
from ..domains.resilience import RateLimitGovernor, RetryPolicy, build_adapter, with_retry
from ..domains.scopes import ScopeAdapter
from .sync_operations import Synchronizer

logger = logging.getLogger(__name__)


def build_scopes(sync_type: str, environment: Optional[str] = None) -> List[Scope]:
    """
    Scopes to sync for a run type, secrets first.

    Args:
        sync_type: 'actions', 'dependabot' or 'codespaces'
        environment: Deployment environment; only meaningful for 'actions'

    Returns:
        [secret scope, variable scope] for actions, [secret scope] otherwise

    Raises:
        ValueError: On an unknown type
    """
    if sync_type == "actions":
        if environment:
            return [
                Scope(ScopeKind.ENVIRONMENT_SECRETS, environment),
                Scope(ScopeKind.ENVIRONMENT_VARIABLES, environment),
            ]
        return [Scope(ScopeKind.REPOSITORY_SECRETS), Scope(ScopeKind.REPOSITORY_VARIABLES)]
    if environment:
        logger.warning(f"Environment '{environment}' is ignored for type '{sync_type}'")
    if sync_type == "dependabot":
        return [Scope(ScopeKind.DEPENDABOT_SECRETS)]
    if sync_type == "codespaces":
        return [Scope(ScopeKind.CODESPACES_SECRETS)]
    raise ValueError(f"Unknown sync type: {sync_type}")


class RepositoryRunner:
    """
    Runs the Synchronizer for every scope of every target repository.

    Repositories are processed one after another. A failure in one
    repository is recorded on its RepositoryResult and never stops the next.
    """

    def __init__(
        self,
        client: GitHubClient,
        scopes: List[Scope],
        retry_policy: Optional[RetryPolicy] = None,
        governor: Optional[RateLimitGovernor] = None,
        synchronizer: Optional[Synchronizer] = None,
        adapter_factory: Callable = ScopeAdapter,
    ):
        self._client = client
        self._retry_policy = retry_policy
        self._governor = governor
        self._synchronizer = synchronizer or Synchronizer()
        self._adapters = [
            build_adapter(adapter_factory(client, scope), retry_policy, governor) for scope in scopes
        ]

    def find_repositories(self, target: Optional[str] = None, query: Optional[str] = None) -> List[RepositoryRef]:
        """
        Turn the target selection into a list of repositories.

        Exactly one of target and query must be given.

        Raises:
            ValueError: If both or neither are given, or target is malformed
            SyncError: If the repository search fails
        """
        if bool(target) == bool(query):
            raise ValueError("Exactly one of target or query is required")
        if target:
            return [RepositoryRef.parse(target)]

        search = self._client.search_repositories
        if self._retry_policy is not None:
            search = with_retry(search, self._retry_policy)
        if self._governor is not None:
            return self._governor.guard(search, query)
        return search(query)

    def run(
        self,
        repositories: List[RepositoryRef],
        secrets: Dict[str, str],
        variables: Dict[str, str],
        prune: bool = False,
        dry_run: bool = False,
    ) -> List[RepositoryResult]:
        """
        Sync the desired secrets and variables into every repository.

        Returns:
            One RepositoryResult per repository, in input order
        """
        results = []
        for repository in repositories:
            logger.info(f"Syncing {repository}")
            result = RepositoryResult(repository=repository)
            for adapter in self._adapters:
                desired = secrets if adapter.scope.is_secret else variables
                try:
                    report = self._synchronizer.sync(adapter, repository, desired, prune=prune, dry_run=dry_run)
                except SyncError as e:
                    logger.error(f"Sync of {repository} ({adapter.scope.label}) failed: {e}")
                    result.error = e
                    break
                result.reports.append(report)
                if not report.ok:
                    # A failed scope stops the remaining scopes of this repository
                    break
            results.append(result)

        log_summary(results, dry_run)
        return results


def log_summary(results: List[RepositoryResult], dry_run: bool = False) -> None:
    """One summary line per repository, then a total."""
    prefix = "Dry run: " if dry_run else ""
    for result in results:
        if result.ok:
            deleted = sum(len(r.deleted) for r in result.reports)
            upserted = sum(len(r.upserted) for r in result.reports)
            if dry_run:
                planned = sum(len(r.plan.to_delete) + len(r.plan.to_upsert) for r in result.reports if r.plan)
                logger.info(f"{prefix}{result.repository}: {planned} planned change(s)")
            else:
                logger.info(f"{result.repository}: {upserted} put, {deleted} deleted")
        else:
            error = result.error or next(r.error for r in result.reports if r.error is not None)
            logger.error(f"{prefix}{result.repository}: failed: {error}")
    failed = sum(1 for result in results if not result.ok)
    logger.info(f"{prefix}{len(results) - failed}/{len(results)} repositories synced successfully")
