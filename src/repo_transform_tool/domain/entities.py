from __future__ import annotations
"""Core domain entities shared by use cases, rules and phases.

These data models are framework-agnostic and reused across adapters (CLI,
tests, operator channels). Value objects are frozen; results produced while a
run progresses are plain slotted dataclasses.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Mapping


EcosystemId = str
PhaseId = str

UNKNOWN_ECOSYSTEM: EcosystemId = "unknown"
GENERIC_ECOSYSTEM: EcosystemId = "generic"


class Severity(IntEnum):
    """Finding severity; lower values sort first in audit output."""

    SECRET_EXPOSURE = 0
    STALE_REFERENCE = 1
    STRUCTURAL = 2
    STYLE = 3

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")


class FindingCategory(str, Enum):
    SECRET_EXPOSURE = "secret-exposure"
    TRACKED_ARTIFACT = "tracked-artifact"
    STALE_REFERENCE = "stale-reference"
    VERSION_MISMATCH = "version-mismatch"
    LINT_ERROR = "lint-error"
    MISSING_TEST = "missing-test"
    LARGE_FILE = "large-file"
    MISSING_MANIFEST = "missing-manifest"
    MISSING_CI = "missing-ci"
    MISSING_DOCS = "missing-docs"
    MISSING_SECURITY_POLICY = "missing-security-policy"
    RULE_FAILED = "rule-failed"


class PhaseState(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in {PhaseState.APPLIED, PhaseState.SKIPPED, PhaseState.FAILED}


class PhaseOutcome(str, Enum):
    APPLIED = "applied"
    SKIPPED_NOOP = "skipped-noop"
    FAILED = "failed"
    ROLLED_BACK = "rolled-back"
    NOT_STARTED = "not-started"


class ApprovalDecision(str, Enum):
    APPROVE_ALL = "approve-all"
    APPROVE_SUBSET = "approve-subset"
    REJECT = "reject"


class OperatorAction(str, Enum):
    """Responses an operator channel may return for one approval request."""

    APPROVE = "approve"
    APPROVE_SUBSET = "approve-subset"
    AMEND = "amend"
    REJECT = "reject"


class GateState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AMENDED = "amended"


@dataclass(frozen=True, slots=True)
class ManifestPredicate:
    """One detection predicate: an exact file (`file`) or any file matching a glob (`glob`)."""

    kind: str
    pattern: str

    def describe(self) -> str:
        return f"{self.kind}:{self.pattern}"


@dataclass(frozen=True, slots=True)
class DetectedEcosystem:
    """Ecosystem detected in a repository together with its matched evidence."""

    ecosystem: EcosystemId
    confidence: float
    evidence: tuple[str, ...] = ()

    @property
    def is_unknown(self) -> bool:
        return self.ecosystem == UNKNOWN_ECOSYSTEM


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """External tool invocation descriptor.

    Attributes:
        argv: Command and arguments, executed without a shell.
        timeout_seconds: Wall-clock budget of one invocation.
        output_pattern: Optional regex. Lint specs use it to select message
            lines; test specs use its first group as the coverage percentage.
    """

    argv: tuple[str, ...]
    timeout_seconds: float = 600.0
    output_pattern: str | None = None


@dataclass(frozen=True, slots=True)
class FileTemplate:
    path: str
    content: str


@dataclass(frozen=True, slots=True)
class VersionSource:
    """File declaring a version; the first regex group captures the value."""

    path: str
    pattern: str


@dataclass(frozen=True, slots=True)
class CapabilitySet:
    """Immutable per-ecosystem capability data.

    Everything the orchestration layer knows about an ecosystem lives here, so
    supporting a new ecosystem means registering a new entry, never branching
    on an ecosystem name.
    """

    ecosystem: EcosystemId
    signature: tuple[ManifestPredicate, ...] = ()
    ignore_patterns: tuple[str, ...] = ()
    secret_patterns: tuple[str, ...] = ()
    lint: CommandSpec | None = None
    test: CommandSpec | None = None
    build: CommandSpec | None = None
    manifest: FileTemplate | None = None
    version_sources: tuple[VersionSource, ...] = ()
    lint_config: FileTemplate | None = None
    test_scaffold: FileTemplate | None = None
    test_globs: tuple[str, ...] = ()
    ci_jobs: tuple[FileTemplate, ...] = ()
    source_extensions: tuple[str, ...] = ()
    large_file_lines: int | None = None
    readme: FileTemplate | None = None
    security_policy: FileTemplate | None = None


@dataclass(frozen=True, slots=True)
class AuditSnapshot:
    """Read-only view of a repository handed to audit rules.

    Attributes:
        root: Repository root directory.
        files: Sorted relative POSIX paths of every working-tree file.
        tracked: Paths tracked by version control.
        ignored_tracked: Tracked paths the repository ignore rules would exclude.
        content_hash: Hash over file contents and tracked flags.
    """

    root: Path
    files: tuple[str, ...]
    tracked: frozenset[str]
    ignored_tracked: frozenset[str]
    content_hash: str
    file_set: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "file_set", frozenset(self.files))

    def has_file(self, path: str) -> bool:
        return path in self.file_set

    def read_text(self, path: str) -> str | None:
        try:
            return (self.root / path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    @property
    def project_name(self) -> str:
        return self.root.resolve().name


@dataclass(frozen=True, slots=True)
class Finding:
    """Immutable audit result; re-auditing regenerates the whole set."""

    category: FindingCategory
    severity: Severity
    paths: tuple[str, ...]
    message: str
    remediation: str | None = None
    ecosystem: EcosystemId | None = None
    rule: str = ""

    @property
    def primary_path(self) -> str:
        return self.paths[0] if self.paths else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.label,
            "paths": list(self.paths),
            "message": self.message,
            "remediation": self.remediation,
            "ecosystem": self.ecosystem,
            "rule": self.rule,
        }


@dataclass(frozen=True, slots=True)
class CommandOutcome:
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass(frozen=True, slots=True)
class LintReport:
    error_count: int
    messages: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TestReport:
    passed: bool
    coverage: float | None = None
    detail: str = ""
    timed_out: bool = False

    __test__ = False


@dataclass(frozen=True, slots=True)
class VerificationOutcome:
    passed: bool
    detail: str = ""
    timed_out: bool = False
    coverage: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "detail": self.detail,
            "timed_out": self.timed_out,
            "coverage": self.coverage,
        }


@dataclass(frozen=True, slots=True)
class SnapshotEntry:
    """State of one write-set path: content digest (None when absent) and tracked flag."""

    path: str
    digest: str | None
    tracked: bool


@dataclass(frozen=True, slots=True)
class RepositorySnapshot:
    """Content-addressed capture of a phase write-set used for diffing and rollback."""

    snapshot_id: str
    entries: tuple[SnapshotEntry, ...]
    blobs: Mapping[str, bytes] = field(default_factory=dict, compare=False, repr=False)

    def entry(self, path: str) -> SnapshotEntry | None:
        for item in self.entries:
            if item.path == path:
                return item
        return None


@dataclass(frozen=True, slots=True)
class DiffSummary:
    added: tuple[str, ...] = ()
    modified: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    untracked: tuple[str, ...] = ()
    tracked: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed or self.untracked or self.tracked)

    @property
    def changed_paths(self) -> tuple[str, ...]:
        return tuple(sorted({*self.added, *self.modified, *self.removed, *self.untracked, *self.tracked}))

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "added": list(self.added),
            "modified": list(self.modified),
            "removed": list(self.removed),
            "untracked": list(self.untracked),
            "tracked": list(self.tracked),
        }


@dataclass(frozen=True, slots=True)
class ApprovalRecord:
    """Operator decision for one plan revision; persisted as audit trail."""

    plan_id: str
    plan_revision: int
    decision: ApprovalDecision
    approved_phase_ids: frozenset[PhaseId]
    destructive_phase_ids: frozenset[PhaseId]
    decided_at: str
    reason: str = ""

    @property
    def approved(self) -> bool:
        return self.decision is not ApprovalDecision.REJECT

    def covers(self, phase_id: PhaseId, *, destructive: bool) -> bool:
        """Whether this record authorizes `phase_id`.

        Destructive phases must additionally be named explicitly.
        """
        if not self.approved or phase_id not in self.approved_phase_ids:
            return False
        if destructive and phase_id not in self.destructive_phase_ids:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "plan_revision": self.plan_revision,
            "decision": self.decision.value,
            "approved_phase_ids": sorted(self.approved_phase_ids),
            "destructive_phase_ids": sorted(self.destructive_phase_ids),
            "decided_at": self.decided_at,
            "reason": self.reason,
        }


@dataclass(frozen=True, slots=True)
class PlannedPhaseView:
    """Operator-facing description of one planned phase."""

    phase_id: PhaseId
    kind: str
    ecosystem: EcosystemId | None
    depends_on: tuple[PhaseId, ...]
    write_set: tuple[str, ...]
    destructive: bool
    requires_verification: bool
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase_id": self.phase_id,
            "kind": self.kind,
            "ecosystem": self.ecosystem,
            "depends_on": list(self.depends_on),
            "write_set": list(self.write_set),
            "destructive": self.destructive,
            "requires_verification": self.requires_verification,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class ApprovalRequest:
    """Payload presented to an operator channel."""

    plan_id: str
    plan_revision: int
    phases: tuple[PlannedPhaseView, ...]
    findings: tuple[Finding, ...] = ()
    confirmation_of: PhaseId | None = None

    @property
    def phase_ids(self) -> tuple[PhaseId, ...]:
        return tuple(item.phase_id for item in self.phases)


@dataclass(frozen=True, slots=True)
class OperatorResponse:
    """Operator answer. `phase_ids` lists the subset for subset/amend actions."""

    action: OperatorAction
    phase_ids: tuple[PhaseId, ...] = ()
    destructive_phase_ids: tuple[PhaseId, ...] = ()
    reason: str = ""


@dataclass(slots=True)
class ExecutionResult:
    """Per-phase outcome returned by the phase executor."""

    phase_id: PhaseId
    state: PhaseState
    outcome: PhaseOutcome
    message: str = ""
    pre_hash: str | None = None
    post_hash: str | None = None
    diff: DiffSummary | None = None
    verification: VerificationOutcome | None = None
    restored: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase_id": self.phase_id,
            "state": self.state.value,
            "outcome": self.outcome.value,
            "message": self.message,
            "pre_hash": self.pre_hash,
            "post_hash": self.post_hash,
            "diff": self.diff.to_dict() if self.diff else None,
            "verification": self.verification.to_dict() if self.verification else None,
            "restored": self.restored,
        }
