"""Input validation for CLI arguments."""
import argparse
import re
import sys

from gh_secret_sync.secrets.domains.models import RepositoryRef


def validate_secret_name(name: str) -> None:
    """
    Validate a --secrets-from-gcp name matches GCP requirements.

    GCP Secret Manager allows only: [a-zA-Z0-9_-]

    Args:
        name: Secret name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Secret name cannot be empty", file=sys.stderr)
        print("\nSecret names must match: [a-zA-Z0-9_-]", file=sys.stderr)
        sys.exit(2)

    # GCP secret name format: alphanumeric, underscores, hyphens only
    pattern = r'^[a-zA-Z0-9_-]+$'

    if not re.match(pattern, name):
        print(f"Error: Invalid secret name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        print("Not allowed: dots (.), spaces, special characters (@, $, !, etc.)", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ DEPLOY_KEY", file=sys.stderr)
        print("  ✓ npm-token", file=sys.stderr)
        sys.exit(2)


def validate_target(target: str) -> None:
    """
    Validate --target is an owner/name pair.

    Raises:
        SystemExit with code 2 if validation fails
    """
    try:
        RepositoryRef.parse(target)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("\nExample: --target octo-org/octo-repo", file=sys.stderr)
        sys.exit(2)


def validate_max_retries(value: str) -> int:
    """
    argparse type for --max-retries: a non-negative integer.

    0 means a single attempt without retries.
    """
    try:
        retries = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if retries < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {retries}")
    return retries


def split_names(value: str) -> list:
    """argparse type for comma-separated secret name lists."""
    return [name.strip() for name in value.split(",") if name.strip()]
