"""Tests for the gh-secret-sync command line."""
from pathlib import Path
from unittest import mock

import pytest

from gh_secret_sync.cli import main as cli
from gh_secret_sync.secrets.domains import preferences
from gh_secret_sync.secrets.domains.errors import AuthzError, RemoteError
from gh_secret_sync.secrets.domains.models import RepositoryRef, RepositoryResult, Scope, ScopeKind, SyncReport

ENV_VARS = (
    "GITHUB_TOKEN", "TARGET", "QUERY", "SECRETS", "VARIABLES", "RATE_LIMIT",
    "MAX_RETRIES", "DRY_RUN", "PRUNE", "ENVIRONMENT", "TYPE", "GCP_PROJECT",
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """No real home directory config and no sync settings from the outer environment."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: fake_home)
    fake_config_dir = fake_home / ".config" / "gh-secret-sync"
    monkeypatch.setattr(preferences, "PREFERENCES_DIR", fake_config_dir)
    monkeypatch.setattr(preferences, "PREFERENCES_FILE", fake_config_dir / "preferences.json")
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GITHUB_TOKEN", "t0ken")
    return fake_home


@pytest.fixture
def runner_cls(monkeypatch):
    """Replace the RepositoryRunner used by the sync command."""
    from gh_secret_sync.secrets.workflows import repository_runner

    runner = mock.Mock()
    runner.find_repositories.return_value = [RepositoryRef("octo", "repo")]
    runner.run.side_effect = lambda repositories, *args, **kwargs: [
        RepositoryResult(repository=r) for r in repositories
    ]
    cls = mock.Mock(return_value=runner)
    monkeypatch.setattr(repository_runner, "RepositoryRunner", cls)
    return cls


def run_cli(*argv):
    """Run main() and return its exit code (0 when it returns normally)."""
    try:
        cli.main(list(argv))
    except SystemExit as e:
        return e.code
    return 0


class TestTopLevel:
    def test_no_command_is_usage_error(self, capsys):
        assert run_cli() == 2
        assert "usage" in capsys.readouterr().out.lower()

    def test_version(self, capsys):
        assert run_cli("version") == 0

        out = capsys.readouterr().out
        assert f"gh-secret-sync {cli.VERSION}" in out
        assert "Python:" in out

    def test_config_without_subcommand_is_usage_error(self):
        assert run_cli("config") == 2

    def test_unexpected_error_exit_1(self, runner_cls, capsys):
        runner_cls.return_value.run.side_effect = RuntimeError("kaboom")

        assert run_cli("sync", "--target", "octo/repo", "--secrets", "A=1") == 1
        assert "Error: kaboom" in capsys.readouterr().err


class TestSyncUsageErrors:
    def test_missing_token(self, monkeypatch, runner_cls, capsys):
        monkeypatch.delenv("GITHUB_TOKEN")

        assert run_cli("sync", "--target", "octo/repo") == 2
        assert "GITHUB_TOKEN" in capsys.readouterr().err
        runner_cls.assert_not_called()

    def test_malformed_secrets(self, runner_cls, capsys):
        assert run_cli("sync", "--target", "octo/repo", "--secrets", "SECRET1") == 2
        assert "KEY=VALUE" in capsys.readouterr().err
        runner_cls.assert_not_called()

    def test_negative_max_retries(self, runner_cls):
        assert run_cli("sync", "--target", "octo/repo", "--max-retries", "-1") == 2

    def test_negative_max_retries_from_env(self, monkeypatch, runner_cls):
        monkeypatch.setenv("MAX_RETRIES", "-2")

        assert run_cli("sync", "--target", "octo/repo") == 2

    def test_target_and_query_exclusive(self, runner_cls):
        assert run_cli("sync", "--target", "octo/repo", "--query", "org:octo") == 2

    def test_neither_target_nor_query(self, runner_cls, capsys):
        runner_cls.return_value.find_repositories.side_effect = ValueError("Exactly one of target or query is required")

        assert run_cli("sync", "--secrets", "A=1") == 2
        assert "Exactly one" in capsys.readouterr().err

    def test_malformed_target(self, runner_cls, capsys):
        assert run_cli("sync", "--target", "just-a-name") == 2
        assert "owner/name" in capsys.readouterr().err

    def test_invalid_gcp_secret_name(self, runner_cls):
        assert run_cli("sync", "--target", "octo/repo", "--secrets-from-gcp", "api.key") == 2

    def test_invalid_config_file(self, isolated_env, runner_cls, capsys):
        config_file = isolated_env / ".config" / "gh-secret-sync" / "config.yml"
        config_file.parent.mkdir(parents=True)
        config_file.write_text("retry: [")

        assert run_cli("sync", "--target", "octo/repo") == 2
        assert "YAML" in capsys.readouterr().err


class TestSync:
    def test_passes_parsed_mappings(self, runner_cls):
        assert run_cli(
            "sync", "--target", "octo/repo",
            "--secrets", "api_key=abc\nDB=x=y",
            "--variables", '{"region": "eu"}',
            "--prune",
        ) == 0

        runner = runner_cls.return_value
        runner.find_repositories.assert_called_once_with("octo/repo", None)
        runner.run.assert_called_once_with(
            [RepositoryRef("octo", "repo")],
            {"API_KEY": "abc", "DB": "x=y"},
            {"REGION": "eu"},
            prune=True,
            dry_run=False,
        )

    def test_scopes_from_type_and_environment(self, runner_cls):
        run_cli("sync", "--target", "octo/repo", "--secrets", "A=1", "--environment", "prod")

        scopes = runner_cls.call_args.args[1]
        assert scopes == [
            Scope(ScopeKind.ENVIRONMENT_SECRETS, "prod"),
            Scope(ScopeKind.ENVIRONMENT_VARIABLES, "prod"),
        ]

    def test_environment_fallbacks(self, monkeypatch, runner_cls):
        monkeypatch.setenv("QUERY", "org:octo")
        monkeypatch.setenv("SECRETS", "A=1")
        monkeypatch.setenv("DRY_RUN", "true")
        monkeypatch.setenv("TYPE", "codespaces")

        assert run_cli("sync") == 0

        runner = runner_cls.return_value
        runner.find_repositories.assert_called_once_with(None, "org:octo")
        assert runner.run.call_args.kwargs["dry_run"] is True
        assert runner_cls.call_args.args[1] == [Scope(ScopeKind.CODESPACES_SECRETS)]

    def test_variables_ignored_for_dependabot(self, runner_cls, caplog):
        assert run_cli("sync", "--target", "octo/repo", "--type", "dependabot",
                       "--secrets", "A=1", "--variables", "B=2") == 0

        assert runner_cls.return_value.run.call_args.args[2] == {}
        assert "will be ignored" in caplog.text

    def test_retry_and_rate_limit_wiring(self, runner_cls):
        run_cli("sync", "--target", "octo/repo", "--secrets", "A=1", "--max-retries", "0", "--rate-limit")

        kwargs = runner_cls.call_args.kwargs
        assert kwargs["retry_policy"].max_retries == 0
        assert kwargs["governor"] is not None
        assert kwargs["governor"].threshold == 0.05

    def test_no_governor_by_default(self, runner_cls):
        run_cli("sync", "--target", "octo/repo", "--secrets", "A=1")

        assert runner_cls.call_args.kwargs["governor"] is None

    def test_failed_repository_exit_1(self, runner_cls):
        def failing_run(repositories, *args, **kwargs):
            result = RepositoryResult(repository=repositories[0])
            report = SyncReport(repository=repositories[0], scope=Scope(ScopeKind.REPOSITORY_SECRETS))
            report.error = AuthzError("403", 403)
            result.reports.append(report)
            return [result]

        runner_cls.return_value.run.side_effect = failing_run

        assert run_cli("sync", "--target", "octo/repo", "--secrets", "A=1") == 1

    def test_search_failure_exit_1(self, runner_cls, capsys):
        runner_cls.return_value.find_repositories.side_effect = RemoteError("search failed", 500)

        assert run_cli("sync", "--query", "org:octo", "--secrets", "A=1") == 1
        assert "Failed to find repositories" in capsys.readouterr().err

    def test_no_matches_is_success(self, runner_cls):
        runner_cls.return_value.find_repositories.return_value = []

        assert run_cli("sync", "--query", "org:nobody", "--secrets", "A=1") == 0
        runner_cls.return_value.run.assert_not_called()

    def test_token_flag(self, monkeypatch, runner_cls):
        from gh_secret_sync.secrets.domains import github_client

        monkeypatch.delenv("GITHUB_TOKEN")
        client_cls = mock.Mock()
        monkeypatch.setattr(github_client, "GitHubClient", client_cls)

        run_cli("sync", "--target", "octo/repo", "--github-token", "cli-token", "--api-url", "https://ghe/api/v3")

        client_cls.assert_called_once_with("cli-token", "https://ghe/api/v3")


class TestSecretsFromGcp:
    def test_merged_into_secrets(self, monkeypatch, runner_cls):
        from gh_secret_sync.secrets.workflows import secret_operations

        resolve = mock.Mock(return_value={"DEPLOY_KEY": "k"})
        monkeypatch.setattr(secret_operations, "resolve_secrets", resolve)

        assert run_cli("sync", "--target", "octo/repo", "--secrets", "A=1",
                       "--secrets-from-gcp", "DEPLOY_KEY", "--gcp-project-id", "proj") == 0

        resolve.assert_called_once_with(["DEPLOY_KEY"], "proj")
        assert runner_cls.return_value.run.call_args.args[1] == {"A": "1", "DEPLOY_KEY": "k"}

    def test_duplicate_with_secrets_is_usage_error(self, monkeypatch, runner_cls):
        from gh_secret_sync.secrets.workflows import secret_operations

        monkeypatch.setattr(secret_operations, "resolve_secrets", mock.Mock(return_value={"A": "2"}))

        assert run_cli("sync", "--target", "octo/repo", "--secrets", "A=1", "--secrets-from-gcp", "A") == 2

    def test_missing_secret_is_usage_error(self, monkeypatch, runner_cls, capsys):
        from gh_secret_sync.secrets.workflows import secret_operations

        monkeypatch.setattr(
            secret_operations, "resolve_secrets",
            mock.Mock(side_effect=secret_operations.SecretNotFoundError(["NOPE"])),
        )

        assert run_cli("sync", "--target", "octo/repo", "--secrets-from-gcp", "NOPE") == 2
        assert "NOPE" in capsys.readouterr().err
        runner_cls.return_value.run.assert_not_called()
