"""Workflow converging one scope of one repository onto a desired mapping."""
import logging
from typing import Callable, Dict

from ..domains.errors import SyncError
from ..domains.models import EncryptedPayload, PublicKey, RepositoryRef, SyncPlan, SyncReport
from ..domains.scopes import list_existing
from ..domains.sealer import seal

logger = logging.getLogger(__name__)


class Synchronizer:
    """
    Diff-and-converge over a (possibly decorated) scope adapter.

    Failure policy: the first error in a phase stops that phase. A failed
    delete also skips the upsert phase. Errors are recorded on the returned
    SyncReport rather than raised, so the caller can move on to the next
    scope or repository.
    """

    def __init__(self, sealer: Callable[[PublicKey, str, str], EncryptedPayload] = seal):
        self._seal = sealer

    def sync(
        self,
        adapter,
        repository: RepositoryRef,
        desired: Dict[str, str],
        prune: bool = False,
        dry_run: bool = False,
    ) -> SyncReport:
        """
        Converge one scope of a repository.

        Args:
            adapter: Scope adapter, optionally wrapped by retry/rate-limit decorators
            repository: Target repository
            desired: Desired mapping of entry names to values
            prune: Delete existing entries that are not desired
            dry_run: Report intended actions without mutating anything

        Returns:
            SyncReport describing the plan and what was done
        """
        scope = adapter.scope
        report = SyncReport(repository=repository, scope=scope, dry_run=dry_run)

        if not desired:
            logger.debug(f"No {scope.label} given for {repository}, skipping")
            report.skipped = True
            return report

        try:
            ref = adapter.resolve(repository)
            # Listing only matters for pruning, or for an accurate dry-run report
            existing = list_existing(adapter, ref) if (dry_run or prune) else set()
        except SyncError as e:
            logger.error(f"Failed to prepare {scope.label} sync for {repository}: {e}")
            report.error = e
            return report

        report.plan = SyncPlan.compute(existing, desired, prune)

        if dry_run:
            for name in report.plan.to_delete:
                logger.info(f"Dry run: would delete {scope.noun} '{name}' from {repository} ({scope.label})")
            for name in report.plan.to_upsert:
                action = "update" if name in existing else "create"
                logger.info(f"Dry run: would {action} {scope.noun} '{name}' in {repository} ({scope.label})")
            return report

        for name in report.plan.to_delete:
            try:
                adapter.delete_entry(ref, name)
            except SyncError as e:
                logger.error(f"Failed to delete {scope.noun} '{name}' from {repository} ({scope.label}): {e}")
                report.failed[name] = str(e)
                report.error = e
                return report
            report.deleted.append(name)
            logger.info(f"Deleted {scope.noun} '{name}' from {repository} ({scope.label})")

        if scope.is_secret:
            self._upsert_secrets(adapter, ref, desired, report)
        else:
            self._upsert_variables(adapter, ref, desired, report)
        return report

    def _upsert_secrets(self, adapter, ref, desired: Dict[str, str], report: SyncReport) -> None:
        try:
            public_key = adapter.get_public_key(ref)
        except SyncError as e:
            logger.error(f"Failed to get public key for {ref.scope.label} of {ref.repository}: {e}")
            report.error = e
            return

        for name in report.plan.to_upsert:
            try:
                payload = self._seal(public_key, name, desired[name])
                adapter.create_or_update_secret(ref, payload)
            except SyncError as e:
                logger.error(f"Failed to put {ref.scope.noun} '{name}' in {ref.repository} ({ref.scope.label}): {e}")
                report.failed[name] = str(e)
                report.error = e
                return
            report.upserted.append(name)
            logger.info(f"Put {ref.scope.noun} '{name}' in {ref.repository} ({ref.scope.label})")

    def _upsert_variables(self, adapter, ref, desired: Dict[str, str], report: SyncReport) -> None:
        for name in report.plan.to_upsert:
            try:
                adapter.create_or_update_variable(ref, name, desired[name])
            except SyncError as e:
                logger.error(f"Failed to put {ref.scope.noun} '{name}' in {ref.repository} ({ref.scope.label}): {e}")
                report.failed[name] = str(e)
                report.error = e
                return
            report.upserted.append(name)
            logger.info(f"Put {ref.scope.noun} '{name}' in {ref.repository} ({ref.scope.label})")
