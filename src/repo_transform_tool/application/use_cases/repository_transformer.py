from __future__ import annotations
"""Application use case: detect, audit, plan, approve and execute one repository."""

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from repo_transform_tool.adapters.git_client.no_version_control import NoVersionControlAdapter
from repo_transform_tool.adapters.state.jsonl_log import JsonlAppendOnlyLog
from repo_transform_tool.application.approval_gate import ApprovalGate
from repo_transform_tool.application.auditor import Auditor
from repo_transform_tool.application.capabilities import CapabilityRegistry
from repo_transform_tool.application.detection import EcosystemDetector
from repo_transform_tool.application.idempotency import IdempotencyTracker
from repo_transform_tool.application.phase_executor import PhaseExecutor
from repo_transform_tool.application.planner import Planner
from repo_transform_tool.application.snapshots import RepositoryInspector, SnapshotManager
from repo_transform_tool.application.verification import VerificationRunner
from repo_transform_tool.domain.audit import AuditRule
from repo_transform_tool.domain.entities import (
    ApprovalRecord,
    CapabilitySet,
    DetectedEcosystem,
    ExecutionResult,
    Finding,
    PhaseOutcome,
    PhaseState,
    PlannedPhaseView,
)
from repo_transform_tool.domain.errors import AccessError, UnknownEcosystemError
from repo_transform_tool.domain.ports import FileSystemPort, OperatorChannelPort, ToolRunnerPort, VersionControlPort
from repo_transform_tool.rules import default_rules


LOGGER = logging.getLogger(__name__)

STATE_DIR_NAME = "repolish"
IDEMPOTENCY_LOG_NAME = "idempotency.jsonl"
APPROVAL_LOG_NAME = "approvals.jsonl"

_SCP_LIKE_URL = re.compile(r"^[\w.-]+@[\w.-]+:")


@dataclass(slots=True)
class RunReport:
    """Outcome of one transformer run, printed by the CLI and serializable to JSON."""

    repository: str
    root: Path
    dry_run: bool
    ecosystems: tuple[DetectedEcosystem, ...]
    findings: tuple[Finding, ...]
    plan_id: str | None
    plan_revision: int | None
    planned_phases: tuple[PlannedPhaseView, ...]
    approval: ApprovalRecord | None
    results: tuple[ExecutionResult, ...]
    pre_hash: str
    post_hash: str

    @property
    def rejected(self) -> bool:
        return self.approval is not None and not self.approval.approved

    @property
    def failed_phase_ids(self) -> tuple[str, ...]:
        return tuple(result.phase_id for result in self.results if result.state is PhaseState.FAILED)

    @property
    def pending_phase_ids(self) -> tuple[str, ...]:
        return tuple(result.phase_id for result in self.results if result.state is PhaseState.NOT_STARTED)

    @property
    def success(self) -> bool:
        return not self.rejected and not self.failed_phase_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "root": str(self.root),
            "dry_run": self.dry_run,
            "ecosystems": [
                {"ecosystem": item.ecosystem, "confidence": item.confidence, "evidence": list(item.evidence)}
                for item in self.ecosystems
            ],
            "findings": [finding.to_dict() for finding in self.findings],
            "plan": {
                "plan_id": self.plan_id,
                "revision": self.plan_revision,
                "phases": [view.to_dict() for view in self.planned_phases],
            },
            "approval": self.approval.to_dict() if self.approval else None,
            "results": [result.to_dict() for result in self.results],
            "pending_phase_ids": list(self.pending_phase_ids),
            "pre_hash": self.pre_hash,
            "post_hash": self.post_hash,
            "success": self.success,
        }


@dataclass(slots=True)
class RepositoryTransformer:
    """Core orchestration use case.

    Responsibilities:
    - resolve the repository (local path, or clone/pull of a remote URL)
    - detect ecosystems and look up their capability sets
    - audit and plan without mutating anything
    - stop at the approval gate; mutate only approved phases through the executor
    - support dry-run planning with no side effects
    """

    registry: CapabilityRegistry
    filesystem: FileSystemPort
    version_control: VersionControlPort
    tool_runner: ToolRunnerPort
    operator: OperatorChannelPort
    rules: Sequence[AuditRule] | None = None
    planner: Planner = field(default_factory=Planner)
    max_workers: int = 4
    verify_timeout_seconds: float | None = None
    stage_applied: bool = False
    stop_on_error: bool = False
    state_dir: Path | None = None
    _cancel_event: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _gate: ApprovalGate | None = field(default=None, init=False, repr=False)

    def cancel(self) -> None:
        """Reject a pending approval and stop starting new phases."""
        self._cancel_event.set()
        if self._gate is not None:
            self._gate.cancel()

    def execute(self, repository: str, *, base_dir: Path | None = None, dry_run: bool = False) -> RunReport:
        """Run one repository transformation.

        Args:
            repository: Local path or remote clone URL.
            base_dir: Directory remote repositories are cloned into.
            dry_run: Detect, audit and plan only; nothing is written.

        Returns:
            `RunReport` with findings, the plan, the approval and per-phase results.

        Raises:
            AccessError: when the repository root cannot be read.
        """
        root = self._resolve_root(repository, base_dir=base_dir, dry_run=dry_run)
        version_control = self._version_control_for(root)
        state_dir = self._state_dir_for(root)
        snapshots = SnapshotManager(self.filesystem, version_control, excluded_dirs=_excluded_dirs(root, state_dir))

        LOGGER.info(
            "repository processing started",
            extra={
                "event": "transformer.repository.start",
                "repository": repository,
                "root": str(root),
                "state_dir": str(state_dir),
                "dry_run": dry_run,
                "version_control": version_control.__class__.__name__,
            },
        )

        detector = EcosystemDetector(self.registry, self.filesystem, excluded_dirs=snapshots.excluded_dirs)
        ecosystems = tuple(detector.detect(root))
        capability_sets = self._capability_sets(ecosystems)

        snapshot = RepositoryInspector(snapshots).capture(root)
        rules = self.rules if self.rules is not None else default_rules(self.tool_runner)
        findings = tuple(Auditor(rules).audit(snapshot, (self.registry.generic, *capability_sets)))

        tracker = IdempotencyTracker(JsonlAppendOnlyLog(state_dir / IDEMPOTENCY_LOG_NAME))
        plan = self.planner.plan(
            snapshot,
            findings,
            self.registry.generic,
            capability_sets,
            previously_applied=tracker.phase_ids(),
        )

        def report(approval: ApprovalRecord | None, results: Sequence[ExecutionResult], post_hash: str) -> RunReport:
            return RunReport(
                repository=repository,
                root=root,
                dry_run=dry_run,
                ecosystems=ecosystems,
                findings=findings,
                plan_id=plan.plan_id,
                plan_revision=plan.revision,
                planned_phases=plan.views(),
                approval=approval,
                results=tuple(results),
                pre_hash=snapshot.content_hash,
                post_hash=post_hash,
            )

        if dry_run:
            LOGGER.info(
                "repository dry-run planned",
                extra={"event": "transformer.repository.dry_run", "plan_id": plan.plan_id, "phases": list(plan.phase_ids)},
            )
            return report(None, (), snapshot.content_hash)

        if plan.is_empty:
            LOGGER.info("nothing to transform", extra={"event": "transformer.plan.empty", "root": str(root)})
            return report(None, (), snapshot.content_hash)

        gate = ApprovalGate(self.operator, history=JsonlAppendOnlyLog(state_dir / APPROVAL_LOG_NAME))
        self._gate = gate
        if self._cancel_event.is_set():
            gate.cancel()
        approval = gate.present(plan)
        plan = gate.plan or plan

        stage_applied = self.stage_applied
        if stage_applied and isinstance(version_control, NoVersionControlAdapter):
            LOGGER.warning(
                "staging requested without version control; skipping",
                extra={"event": "transformer.stage.unavailable", "root": str(root)},
            )
            stage_applied = False

        executor = PhaseExecutor(
            root,
            snapshots,
            tracker,
            VerificationRunner(self.tool_runner, timeout_seconds=self.verify_timeout_seconds),
            max_workers=self.max_workers,
            stage_applied=stage_applied,
            stop_on_error=self.stop_on_error,
            confirm_destructive=gate.confirm_destructive,
        )
        results = executor.execute(plan, approval, cancel_event=self._cancel_event)
        results.extend(
            ExecutionResult(
                phase.phase_id,
                PhaseState.NOT_STARTED,
                PhaseOutcome.NOT_STARTED,
                message="excluded by plan amendment",
            )
            for phase in plan.excluded
        )

        post_hash = snapshots.repository_hash(root)
        outcome = report(approval, results, post_hash)
        LOGGER.info(
            "repository processing completed",
            extra={
                "event": "transformer.repository.completed",
                "root": str(root),
                "decision": approval.decision.value,
                "failed": list(outcome.failed_phase_ids),
                "pending": list(outcome.pending_phase_ids),
                "success": outcome.success,
            },
        )
        return outcome

    def _resolve_root(self, repository: str, *, base_dir: Path | None, dry_run: bool) -> Path:
        if not is_remote_repository(repository):
            return Path(repository).expanduser().resolve()

        if base_dir is None:
            raise AccessError(f"A base directory is required to clone remote repository {repository}")
        local_path = base_dir.expanduser() / repository_slug(repository)
        if dry_run:
            if not self.filesystem.path_exists(local_path):
                raise AccessError(f"Dry run does not clone; no local copy of {repository} at {local_path}")
            return local_path.resolve()

        self.filesystem.ensure_directory(base_dir)
        if self.filesystem.path_exists(local_path):
            self.version_control.pull(local_path)
        else:
            self.version_control.clone(repository, local_path)
        return local_path.resolve()

    def _version_control_for(self, root: Path) -> VersionControlPort:
        if self.version_control.is_repository(root):
            return self.version_control
        LOGGER.warning(
            "directory is not a repository root; nothing counts as tracked",
            extra={"event": "transformer.version_control.absent", "root": str(root)},
        )
        return NoVersionControlAdapter()

    def _state_dir_for(self, root: Path) -> Path:
        if self.state_dir is not None:
            return self.state_dir
        if (root / ".git").is_dir():
            return root / ".git" / STATE_DIR_NAME
        return root / f".{STATE_DIR_NAME}"

    def _capability_sets(self, ecosystems: Sequence[DetectedEcosystem]) -> tuple[CapabilitySet, ...]:
        capability_sets: list[CapabilitySet] = []
        for detected in ecosystems:
            if detected.is_unknown:
                LOGGER.warning(
                    "no ecosystem detected; using common capabilities only",
                    extra={"event": "transformer.ecosystem.unknown"},
                )
                continue
            try:
                capability_sets.append(self.registry.get(detected.ecosystem))
            except UnknownEcosystemError as error:
                LOGGER.warning(
                    "capability set missing; falling back to common capabilities",
                    extra={"event": "transformer.capability.missing", "ecosystem": error.ecosystem},
                )
        return tuple(capability_sets)


def is_remote_repository(repository: str) -> bool:
    return "://" in repository or bool(_SCP_LIKE_URL.match(repository))


def repository_slug(repository: str) -> str:
    """Local directory name for a clone URL."""
    tail = re.split(r"[/:]", repository.rstrip("/"))[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail or "repository"


def _excluded_dirs(root: Path, state_dir: Path) -> tuple[str, ...]:
    excluded = [".git"]
    try:
        relative = state_dir.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return tuple(excluded)
    if relative not in excluded and not relative.startswith(".git/"):
        excluded.append(relative)
    return tuple(excluded)
