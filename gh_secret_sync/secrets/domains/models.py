"""Domain models for secret and variable synchronization."""
import platform
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


class ScopeKind(Enum):
    """Credential namespaces a repository exposes."""
    REPOSITORY_SECRETS = "repository_secrets"
    REPOSITORY_VARIABLES = "repository_variables"
    ENVIRONMENT_SECRETS = "environment_secrets"
    ENVIRONMENT_VARIABLES = "environment_variables"
    DEPENDABOT_SECRETS = "dependabot_secrets"
    CODESPACES_SECRETS = "codespaces_secrets"


_ENVIRONMENT_KINDS = (ScopeKind.ENVIRONMENT_SECRETS, ScopeKind.ENVIRONMENT_VARIABLES)
_VARIABLE_KINDS = (ScopeKind.REPOSITORY_VARIABLES, ScopeKind.ENVIRONMENT_VARIABLES)


@dataclass(frozen=True)
class Scope:
    """Where entries live: a scope kind plus, for environment kinds, the environment name."""
    kind: ScopeKind
    environment: Optional[str] = None

    def __post_init__(self):
        if self.kind in _ENVIRONMENT_KINDS and not self.environment:
            raise ValueError(f"{self.kind.value} requires an environment name")
        if self.kind not in _ENVIRONMENT_KINDS and self.environment:
            raise ValueError(f"{self.kind.value} does not take an environment name")

    @property
    def is_secret(self) -> bool:
        """Secrets are sealed before transmission; variables are sent in clear."""
        return self.kind not in _VARIABLE_KINDS

    @property
    def noun(self) -> str:
        return "secret" if self.is_secret else "variable"

    @property
    def label(self) -> str:
        """Human-readable scope name for the transcript."""
        text = self.kind.value.replace("_", " ")
        if self.environment:
            text = f"{text} '{self.environment}'"
        return text


@dataclass(frozen=True)
class RepositoryRef:
    """A repository identified by owner and name."""
    owner: str
    name: str

    @classmethod
    def parse(cls, full_name: str) -> "RepositoryRef":
        """
        Parse an ``owner/name`` string.

        Raises:
            ValueError: If either part is missing
        """
        owner, sep, name = (full_name or "").strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise ValueError(f"Invalid repository format: {full_name!r} (expected owner/name)")
        return cls(owner=owner, name=name)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class ScopeRef:
    """A resolved sync target. ``repository_id`` is only set for scopes addressed by numeric id."""
    repository: RepositoryRef
    scope: Scope
    repository_id: Optional[int] = None


@dataclass(frozen=True)
class RemoteEntry:
    """An existing secret or variable. Secret values are never readable."""
    name: str
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class PublicKey:
    """Per-scope sealing key; ``key`` is base64-encoded."""
    key_id: str
    key: str


@dataclass(frozen=True)
class EncryptedPayload:
    """A sealed secret ready to be sent."""
    name: str
    key_id: str
    encrypted_value: str


@dataclass(frozen=True)
class ListPage:
    """One page of listed entries."""
    entries: List[RemoteEntry]
    next_page: Optional[int] = None

    @property
    def names(self) -> List[str]:
        return [entry.name for entry in self.entries]


@dataclass(frozen=True)
class RateLimitStatus:
    """Core REST quota snapshot."""
    limit: int
    remaining: int
    reset: float  # epoch seconds

    @property
    def ratio(self) -> float:
        if self.limit <= 0:
            return 1.0
        return self.remaining / self.limit


@dataclass
class SyncPlan:
    """Entries to delete and entries to create or update, sorted by name."""
    to_delete: List[str]
    to_upsert: List[str]

    @classmethod
    def compute(cls, existing, desired: Dict[str, str], prune: bool) -> "SyncPlan":
        """
        Diff the existing names against the desired mapping.

        Existing names that are also desired are overwritten unconditionally,
        since stored secret values cannot be read back for comparison.
        """
        to_delete = sorted(set(existing) - set(desired)) if prune else []
        return cls(to_delete=to_delete, to_upsert=sorted(desired))


@dataclass
class SyncReport:
    """Outcome of syncing one scope of one repository."""
    repository: RepositoryRef
    scope: Scope
    dry_run: bool = False
    skipped: bool = False
    plan: Optional[SyncPlan] = None
    deleted: List[str] = field(default_factory=list)
    upserted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RepositoryResult:
    """All scope reports for one repository, or the error that stopped it."""
    repository: RepositoryRef
    reports: List[SyncReport] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and all(report.ok for report in self.reports)


@dataclass(frozen=True)
class Secret:
    """A secret value resolved from the environment or GCP Secret Manager."""
    name: str
    value: str
    project_id: str
    source: str  # "env" or "gcp"

    def __repr__(self) -> str:
        return f"Secret(name={self.name!r}, project_id={self.project_id!r}, source={self.source!r})"


@dataclass(frozen=True)
class BuildInfo:
    """Version metadata, built once at process start."""
    version: str
    python_version: str
    started_at: datetime

    @classmethod
    def current(cls, version: str) -> "BuildInfo":
        return cls(
            version=version,
            python_version=platform.python_version(),
            started_at=datetime.now(timezone.utc),
        )

    def describe(self) -> str:
        return (
            f"gh-secret-sync {self.version}\n"
            f"Python: {self.python_version}\n"
            f"Started: {self.started_at:%Y-%m-%d}"
        )
