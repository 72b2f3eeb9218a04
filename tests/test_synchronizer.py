"""Tests for the Synchronizer against a recording fake adapter."""
import base64
import logging

import pytest
from nacl import public

from gh_secret_sync.secrets.domains.errors import EncryptionError, NotFoundError, RemoteError
from gh_secret_sync.secrets.domains.models import (
    ListPage,
    PublicKey,
    RemoteEntry,
    RepositoryRef,
    Scope,
    ScopeKind,
    ScopeRef,
    SyncPlan,
)
from gh_secret_sync.secrets.workflows.sync_operations import Synchronizer

REPO = RepositoryRef("octo", "repo")
MUTATIONS = ("get_public_key", "create_or_update_secret", "create_or_update_variable", "delete_entry")


class RecordingAdapter:
    """In-memory scope adapter that records every call."""

    def __init__(self, scope, existing=(), fail=None, page_size=2):
        self.scope = scope
        self.existing = sorted(existing)
        self.fail = fail or {}
        self.page_size = page_size
        self.calls = []
        self.private_key = public.PrivateKey.generate()

    def _record(self, op, *args):
        self.calls.append((op,) + args)
        error = self.fail.get((op,) + args[-1:]) or self.fail.get((op,))
        if error is not None:
            raise error

    def resolve(self, repository):
        self._record("resolve", repository)
        return ScopeRef(repository=repository, scope=self.scope)

    def list_page(self, ref, page, per_page=100):
        self._record("list_page", page)
        start = (page - 1) * self.page_size
        chunk = self.existing[start:start + self.page_size]
        has_more = start + self.page_size < len(self.existing)
        return ListPage(entries=[RemoteEntry(name) for name in chunk], next_page=page + 1 if has_more else None)

    def get_public_key(self, ref):
        self._record("get_public_key")
        return PublicKey(key_id="k1", key=base64.b64encode(bytes(self.private_key.public_key)).decode())

    def create_or_update_secret(self, ref, payload):
        self._record("create_or_update_secret", payload.name)
        opened = public.SealedBox(self.private_key).decrypt(base64.b64decode(payload.encrypted_value))
        self.calls[-1] = ("create_or_update_secret", payload.name, opened.decode())

    def create_or_update_variable(self, ref, name, value):
        self._record("create_or_update_variable", name, value)

    def delete_entry(self, ref, name):
        self._record("delete_entry", name)

    def ops(self, *names):
        return [call for call in self.calls if call[0] in names]


@pytest.fixture
def synchronizer():
    return Synchronizer()


def secrets_adapter(**kwargs):
    return RecordingAdapter(Scope(ScopeKind.REPOSITORY_SECRETS), **kwargs)


def variables_adapter(**kwargs):
    return RecordingAdapter(Scope(ScopeKind.REPOSITORY_VARIABLES), **kwargs)


class TestSyncPlan:
    def test_prune_deletes_undesired(self):
        plan = SyncPlan.compute({"A", "B", "C"}, {"B": "1", "D": "2"}, prune=True)

        assert plan.to_delete == ["A", "C"]
        assert plan.to_upsert == ["B", "D"]

    def test_no_prune_keeps_everything(self):
        plan = SyncPlan.compute({"A", "B", "C"}, {"B": "1", "D": "2"}, prune=False)

        assert plan.to_delete == []
        assert plan.to_upsert == ["B", "D"]


class TestSecretsSync:
    def test_prune_and_upsert(self, synchronizer):
        adapter = secrets_adapter(existing=["A", "B", "C"])

        report = synchronizer.sync(adapter, REPO, {"B": "bee", "D": "dee"}, prune=True)

        assert report.ok
        assert report.deleted == ["A", "C"]
        assert report.upserted == ["B", "D"]
        assert adapter.ops("delete_entry") == [("delete_entry", "A"), ("delete_entry", "C")]
        assert adapter.ops("create_or_update_secret") == [
            ("create_or_update_secret", "B", "bee"),
            ("create_or_update_secret", "D", "dee"),
        ]

    def test_deletes_happen_before_upserts(self, synchronizer):
        adapter = secrets_adapter(existing=["OLD"])

        synchronizer.sync(adapter, REPO, {"NEW": "v"}, prune=True)

        ops = [call[0] for call in adapter.ops(*MUTATIONS)]
        assert ops == ["delete_entry", "get_public_key", "create_or_update_secret"]

    def test_public_key_fetched_once(self, synchronizer):
        adapter = secrets_adapter()

        synchronizer.sync(adapter, REPO, {"A": "1", "B": "2", "C": "3"})

        assert len(adapter.ops("get_public_key")) == 1
        assert len(adapter.ops("create_or_update_secret")) == 3

    def test_without_prune_no_listing(self, synchronizer):
        adapter = secrets_adapter(existing=["A"])

        report = synchronizer.sync(adapter, REPO, {"B": "1"})

        assert adapter.ops("list_page") == []
        assert adapter.ops("delete_entry") == []
        assert report.upserted == ["B"]

    def test_sorted_order(self, synchronizer):
        adapter = secrets_adapter()

        synchronizer.sync(adapter, REPO, {"ZED": "1", "ALPHA": "2", "MID": "3"})

        assert [call[1] for call in adapter.ops("create_or_update_secret")] == ["ALPHA", "MID", "ZED"]

    def test_listing_follows_all_pages(self, synchronizer):
        adapter = secrets_adapter(existing=["A", "B", "C", "D", "E"], page_size=2)

        report = synchronizer.sync(adapter, REPO, {"C": "1"}, prune=True)

        assert [call[1] for call in adapter.ops("list_page")] == [1, 2, 3]
        assert report.deleted == ["A", "B", "D", "E"]


class TestVariablesSync:
    def test_variables_sent_in_clear(self, synchronizer):
        adapter = variables_adapter(existing=["X"])

        report = synchronizer.sync(adapter, REPO, {"REGION": "eu-west-1"}, prune=True)

        assert report.ok
        assert adapter.ops("get_public_key") == []
        assert adapter.ops("create_or_update_variable") == [("create_or_update_variable", "REGION", "eu-west-1")]
        assert report.deleted == ["X"]


class TestEmptyDesiredMapping:
    def test_scope_skipped(self, synchronizer):
        adapter = secrets_adapter(existing=["A", "B"])

        report = synchronizer.sync(adapter, REPO, {}, prune=True)

        assert report.skipped
        assert report.ok
        assert adapter.calls == []


class TestDryRun:
    @pytest.mark.parametrize("prune", [True, False])
    def test_no_mutations_but_lists(self, synchronizer, prune):
        adapter = secrets_adapter(existing=["A", "B", "C"])

        report = synchronizer.sync(adapter, REPO, {"B": "1", "D": "2"}, prune=prune, dry_run=True)

        assert adapter.ops(*MUTATIONS) == []
        assert adapter.ops("list_page")
        assert report.dry_run
        assert report.deleted == [] and report.upserted == []

    def test_variables_no_mutations(self, synchronizer):
        adapter = variables_adapter(existing=["A"])

        synchronizer.sync(adapter, REPO, {"A": "1"}, prune=True, dry_run=True)

        assert adapter.ops(*MUTATIONS) == []

    def test_transcript(self, synchronizer, caplog):
        adapter = secrets_adapter(existing=["A", "B", "C"])

        with caplog.at_level(logging.INFO):
            report = synchronizer.sync(adapter, REPO, {"B": "1", "D": "2"}, prune=True, dry_run=True)

        assert report.plan.to_delete == ["A", "C"]
        messages = [record.getMessage() for record in caplog.records]
        assert "Dry run: would delete secret 'A' from octo/repo (repository secrets)" in messages
        assert "Dry run: would delete secret 'C' from octo/repo (repository secrets)" in messages
        assert "Dry run: would update secret 'B' in octo/repo (repository secrets)" in messages
        assert "Dry run: would create secret 'D' in octo/repo (repository secrets)" in messages

    def test_values_never_logged(self, synchronizer, caplog):
        adapter = variables_adapter()

        with caplog.at_level(logging.DEBUG):
            synchronizer.sync(adapter, REPO, {"TOKEN": "very-secret-value"})
            synchronizer.sync(adapter, REPO, {"TOKEN": "very-secret-value"}, dry_run=True)

        assert "very-secret-value" not in caplog.text


class TestFailurePolicy:
    """The first error in a phase stops that phase and is recorded on the report."""

    def test_delete_failure_aborts_deletes_and_upserts(self, synchronizer):
        error = RemoteError("500 boom", 500)
        adapter = secrets_adapter(existing=["A", "B", "C"], fail={("delete_entry", "B"): error})

        report = synchronizer.sync(adapter, REPO, {"D": "1"}, prune=True)

        assert not report.ok
        assert report.error is error
        assert report.deleted == ["A"]
        assert "B" in report.failed
        assert adapter.ops("delete_entry") == [("delete_entry", "A"), ("delete_entry", "B")]
        assert adapter.ops("get_public_key", "create_or_update_secret") == []

    def test_upsert_failure_aborts_remaining(self, synchronizer):
        adapter = variables_adapter(fail={("create_or_update_variable", "2"): RemoteError("422 bad", 422)})

        report = synchronizer.sync(adapter, REPO, {"A": "1", "B": "2", "C": "3"})

        assert report.upserted == ["A"]
        assert set(report.failed) == {"B"}
        assert [call[1] for call in adapter.ops("create_or_update_variable")] == ["A", "B"]

    def test_public_key_failure(self, synchronizer):
        adapter = secrets_adapter(fail={("get_public_key",): NotFoundError("404", 404)})

        report = synchronizer.sync(adapter, REPO, {"A": "1"})

        assert isinstance(report.error, NotFoundError)
        assert adapter.ops("create_or_update_secret") == []

    def test_listing_failure_recorded(self, synchronizer):
        adapter = secrets_adapter(existing=["A", "B", "C"], fail={("list_page", 2): RemoteError("502", 502)})

        report = synchronizer.sync(adapter, REPO, {"A": "1"}, prune=True)

        assert not report.ok
        assert report.plan is None
        assert adapter.ops(*MUTATIONS) == []

    def test_encryption_failure_recorded(self):
        def bad_sealer(key, name, value):
            raise EncryptionError("invalid key")

        adapter = secrets_adapter()

        report = Synchronizer(sealer=bad_sealer).sync(adapter, REPO, {"A": "1", "B": "2"})

        assert isinstance(report.error, EncryptionError)
        assert report.failed == {"A": "invalid key"}
        assert adapter.ops("create_or_update_secret") == []
