"""CLI entrypoint for gh-secret-sync."""
import sys
import argparse
import logging
from pathlib import Path

from gh_secret_sync.secrets.domains.models import BuildInfo

from .validators import split_names, validate_max_retries, validate_secret_name, validate_target

VERSION = "0.1.0"

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _set_verbosity(args) -> None:
    """INFO by default, WARNING with -q, DEBUG with -v."""
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.getLogger().setLevel(level)


def _usage_error(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(2)


def cmd_version(args, build_info: BuildInfo):
    """Show version information."""
    print(build_info.describe())


def cmd_sync(args):
    """Sync secrets and variables into one or more repositories."""
    from gh_secret_sync.secrets.domains.config_loader import load_config, ConfigError
    from gh_secret_sync.secrets.domains.errors import ParseError, SyncError
    from gh_secret_sync.secrets.domains.github_client import GitHubClient
    from gh_secret_sync.secrets.domains.parsing import merge_mappings, parse_key_value_pairs
    from gh_secret_sync.secrets.domains.resilience import RateLimitGovernor, with_retry
    from gh_secret_sync.secrets.domains.settings import resolve_settings
    from gh_secret_sync.secrets.workflows.repository_runner import RepositoryRunner, build_scopes

    _set_verbosity(args)

    try:
        config = load_config()
        settings = resolve_settings(vars(args), config)
    except ConfigError as e:
        _usage_error(str(e))

    if settings.target:
        validate_target(settings.target)
    for name in settings.gcp_secret_names:
        validate_secret_name(name)

    try:
        secrets = parse_key_value_pairs(settings.secrets)
        variables = parse_key_value_pairs(settings.variables)
        if settings.gcp_secret_names:
            secrets = merge_mappings(secrets, _resolve_gcp_secrets(settings, config))
    except ParseError as e:
        _usage_error(str(e))

    if variables and settings.sync_type != "actions":
        logger.warning(f"Variables are not supported for type '{settings.sync_type}' and will be ignored")
        variables = {}

    client = GitHubClient(settings.token, settings.api_url)
    governor = None
    if settings.rate_limit:
        governor = RateLimitGovernor(
            with_retry(client.get_rate_limit, settings.retry_policy),
            threshold=settings.rate_limit_threshold,
        )
    runner = RepositoryRunner(
        client,
        build_scopes(settings.sync_type, settings.environment),
        retry_policy=settings.retry_policy,
        governor=governor,
    )

    try:
        repositories = runner.find_repositories(settings.target, settings.query)
    except ValueError as e:
        _usage_error(str(e))
    except SyncError as e:
        print(f"Error: Failed to find repositories: {e}", file=sys.stderr)
        sys.exit(1)

    if not repositories:
        logger.warning("No repositories matched, nothing to do")
        return

    results = runner.run(
        repositories, secrets, variables, prune=settings.prune, dry_run=settings.dry_run
    )
    if not all(result.ok for result in results):
        sys.exit(1)


def _resolve_gcp_secrets(settings, config):
    """Look up --secrets-from-gcp names; a missing secret is a usage error."""
    from gh_secret_sync.secrets.domains.gcp_client import apply_credentials
    from gh_secret_sync.secrets.workflows.secret_operations import SecretNotFoundError, resolve_secrets

    apply_credentials(config)
    try:
        return resolve_secrets(settings.gcp_secret_names, settings.gcp_project_id)
    except SecretNotFoundError as e:
        _usage_error(str(e))


def cmd_config_set_path(args):
    """Set config file path preference."""
    from gh_secret_sync.secrets.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    # Validate that the path exists
    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    # Store absolute path in preferences
    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path."""
    from gh_secret_sync.secrets.domains.config_loader import default_config_path
    from gh_secret_sync.secrets.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found, built-in defaults apply)")


def cmd_config_clear(args):
    """Clear config path preference."""
    from gh_secret_sync.secrets.domains.config_loader import default_config_path
    from gh_secret_sync.secrets.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def _add_sync_arguments(parser):
    target = parser.add_mutually_exclusive_group()
    target.add_argument(
        "--target",
        help="Repository to sync, as owner/name (env: TARGET)"
    )
    target.add_argument(
        "--query",
        help="GitHub repository search query selecting the repositories to sync (env: QUERY)"
    )
    parser.add_argument(
        "--secrets",
        help="Secrets as KEY=VALUE lines or a JSON object (env: SECRETS)"
    )
    parser.add_argument(
        "--variables",
        help="Variables as KEY=VALUE lines or a JSON object (env: VARIABLES)"
    )
    parser.add_argument(
        "--secrets-from-gcp",
        type=split_names,
        metavar="NAME[,NAME...]",
        help="Also sync these secrets, read from the environment or GCP Secret Manager"
    )
    parser.add_argument(
        "--gcp-project-id",
        help="GCP project ID for --secrets-from-gcp (default: GCP_PROJECT env var or config file)"
    )
    parser.add_argument(
        "--type",
        dest="sync_type",
        choices=["actions", "dependabot", "codespaces"],
        help="Which secret store to sync (env: TYPE, default: actions)"
    )
    parser.add_argument(
        "--environment",
        help="Deployment environment for actions secrets and variables (env: ENVIRONMENT)"
    )
    parser.add_argument(
        "--prune",
        action="store_true",
        default=None,
        help="Delete existing entries that are not in the desired set (env: PRUNE)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log intended changes without making them (env: DRY_RUN)"
    )
    parser.add_argument(
        "--rate-limit",
        action="store_true",
        default=None,
        help="Wait for the API quota to reset when it runs low (env: RATE_LIMIT)"
    )
    parser.add_argument(
        "--max-retries",
        type=validate_max_retries,
        help="Maximum attempts per API call; 0 disables retries (env: MAX_RETRIES, default: 3)"
    )
    parser.add_argument(
        "--github-token",
        help="GitHub token (default: GITHUB_TOKEN env var)"
    )
    parser.add_argument(
        "--api-url",
        help="GitHub API base URL, for GitHub Enterprise Server"
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only log warnings and errors"
    )
    verbosity.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Also log every API call"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gh-secret-sync",
        description="gh-secret-sync - sync secrets and variables into GitHub repositories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (authentication, network, a repository failed to sync, etc.)
  2 - Usage error (invalid arguments, malformed secrets input, invalid config, etc.)

Environment variables:
  GITHUB_TOKEN, TARGET, QUERY, SECRETS, VARIABLES, TYPE, ENVIRONMENT,
  PRUNE, DRY_RUN, RATE_LIMIT, MAX_RETRIES - fallbacks for the sync options
  GCP_PROJECT - GCP project ID for --secrets-from-gcp

Configuration:
  Default location: ~/.config/gh-secret-sync/config.yml (optional)
  Custom path: Set with 'gh-secret-sync config set-path <path>'
  View current: Run 'gh-secret-sync config show'
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sync command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Sync secrets and variables into repositories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Create or update the given secrets and variables in every target repository.

With --prune, entries that exist remotely but are not given are deleted.
With --dry-run, existing entries are listed and every intended change is
logged, but nothing is created, updated or deleted.
        """
    )
    _add_sync_arguments(sync_parser)

    # version command
    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of gh-secret-sync"
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage gh-secret-sync configuration"
    )
    config_parser.set_defaults(print_config_help=config_parser.print_help)
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="""
Set the configuration file path preference.

This stores the absolute path to your config file in:
~/.config/gh-secret-sync/preferences.json
        """
    )
    config_set_path_parser.add_argument(
        "path",
        help="Path to config file"
    )

    config_subparsers.add_parser(
        "show",
        help="Show current config path",
        description="Display the current configuration file path and its source (preference or default)"
    )

    config_subparsers.add_parser(
        "clear",
        help="Clear config path preference",
        description="Remove the config path preference; the default location is used afterwards"
    )

    return parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (authentication, network, failed repositories, etc.)
        2 - Usage errors (invalid arguments, malformed input, invalid config, etc.)
    """
    build_info = BuildInfo.current(VERSION)
    parser = build_parser()
    args = parser.parse_args(argv)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    # Route to command handlers
    try:
        if args.command == "sync":
            cmd_sync(args)
        elif args.command == "version":
            cmd_version(args, build_info)
        elif args.command == "config":
            if args.config_command == "set-path":
                cmd_config_set_path(args)
            elif args.config_command == "show":
                cmd_config_show(args)
            elif args.config_command == "clear":
                cmd_config_clear(args)
            else:
                args.print_config_help()
                sys.exit(2)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
