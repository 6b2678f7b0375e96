from __future__ import annotations
"""Approved plan execution: one checkpointed phase at a time per write-set.

Per phase, strictly in order: snapshot and hash the write-set, skip when
already converged, confirm destructive phases that would change something,
apply through a guarded workspace, verify, record.
Any failure after the snapshot restores it. Phases run concurrently on a
bounded worker pool once their dependencies are applied or skipped and no
running or earlier pending phase shares part of their write-set.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable

from repo_transform_tool.application.idempotency import IdempotencyTracker
from repo_transform_tool.application.snapshots import GuardedWorkspace, PreviewWorkspace, SnapshotManager
from repo_transform_tool.application.verification import VerificationRunner
from repo_transform_tool.domain.entities import (
    ApprovalRecord,
    ExecutionResult,
    PhaseId,
    PhaseOutcome,
    PhaseState,
    VerificationOutcome,
)
from repo_transform_tool.domain.errors import PhaseApplyError, VerificationFailure
from repo_transform_tool.domain.phases import Phase, TransformationPlan, write_sets_overlap


LOGGER = logging.getLogger(__name__)

_READY = "ready"
_WAIT = "wait"
_BLOCKED = "blocked"


class PhaseExecutor:
    def __init__(
        self,
        root: Path,
        snapshots: SnapshotManager,
        tracker: IdempotencyTracker,
        verifier: VerificationRunner,
        *,
        max_workers: int = 4,
        stage_applied: bool = False,
        stop_on_error: bool = False,
        confirm_destructive: Callable[[TransformationPlan, Phase], bool] | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._root = root
        self._snapshots = snapshots
        self._tracker = tracker
        self._verifier = verifier
        self._max_workers = max_workers
        self._stage_applied = stage_applied
        self._stop_on_error = stop_on_error
        self._confirm_destructive = confirm_destructive

    def execute(
        self,
        plan: TransformationPlan,
        approval: ApprovalRecord,
        cancel_event: threading.Event | None = None,
    ) -> list[ExecutionResult]:
        """Run every approved phase of `plan`; results follow plan order.

        Phases not covered by `approval`, halted by a failed dependency, or
        never started because of cancellation end as `not-started`.
        """
        cancel_event = cancel_event or threading.Event()
        plan.lock()
        results: dict[PhaseId, ExecutionResult] = {
            phase.phase_id: ExecutionResult(phase.phase_id, PhaseState.NOT_STARTED, PhaseOutcome.NOT_STARTED)
            for phase in plan.phases
        }

        if approval.plan_id != plan.plan_id or approval.plan_revision != plan.revision or not approval.approved:
            reason = approval.reason if not approval.approved else "approval does not cover this plan revision"
            for result in results.values():
                result.message = f"not approved: {reason}" if reason else "not approved"
            LOGGER.warning(
                "plan execution refused",
                extra={"event": "executor.plan.refused", "plan_id": plan.plan_id, "reason": reason},
            )
            return [results[phase.phase_id] for phase in plan.phases]

        pending: list[Phase] = []
        for phase in plan.phases:
            if approval.covers(phase.phase_id, destructive=phase.destructive):
                pending.append(phase)
            elif phase.destructive and phase.phase_id in approval.approved_phase_ids:
                results[phase.phase_id].message = "destructive phase was not named explicitly"
            else:
                results[phase.phase_id].message = "not approved"

        LOGGER.info(
            "plan execution started",
            extra={
                "event": "executor.plan.start",
                "plan_id": plan.plan_id,
                "revision": plan.revision,
                "approved": [phase.phase_id for phase in pending],
                "max_workers": self._max_workers,
            },
        )

        running: dict[Future[ExecutionResult], Phase] = {}
        stopped = False
        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="phase") as pool:
            while True:
                if not stopped and not cancel_event.is_set():
                    for phase in list(pending):
                        if len(running) >= self._max_workers:
                            break
                        readiness, reason = self._readiness(phase, plan, pending, running, results)
                        if readiness == _WAIT:
                            continue
                        pending.remove(phase)
                        if readiness == _BLOCKED:
                            results[phase.phase_id].message = reason
                            continue
                        results[phase.phase_id].state = PhaseState.RUNNING
                        future = pool.submit(self._run_phase, plan, phase, cancel_event)
                        running[future] = phase

                if not running:
                    break

                done, _ = wait(tuple(running), return_when=FIRST_COMPLETED)
                for future in done:
                    phase = running.pop(future)
                    result = self._collect(phase, future)
                    results[phase.phase_id] = result
                    if result.state is PhaseState.FAILED and self._stop_on_error:
                        stopped = True

        reason = "cancelled" if cancel_event.is_set() else "stopped after an earlier failure"
        for phase in pending:
            results[phase.phase_id].message = reason

        ordered = [results[phase.phase_id] for phase in plan.phases]
        LOGGER.info(
            "plan execution finished",
            extra={
                "event": "executor.plan.finished",
                "plan_id": plan.plan_id,
                "states": {result.phase_id: result.state.value for result in ordered},
                "cancelled": cancel_event.is_set(),
            },
        )
        return ordered

    def _readiness(
        self,
        phase: Phase,
        plan: TransformationPlan,
        pending: list[Phase],
        running: dict[Future[ExecutionResult], Phase],
        results: dict[PhaseId, ExecutionResult],
    ) -> tuple[str, str]:
        pending_ids = {item.phase_id for item in pending}
        running_ids = {item.phase_id for item in running.values()}

        for dependency in phase.depends_on:
            result = results.get(dependency)
            scheduled = dependency in pending_ids or dependency in running_ids
            if result is None or (not scheduled and result.state is PhaseState.NOT_STARTED):
                # excluded by amendment, not approved, or never started
                if self._dependency_converged(plan, dependency):
                    continue
                return _BLOCKED, f"blocked: dependency '{dependency}' has not been applied"
            if result.state is PhaseState.FAILED:
                return _BLOCKED, f"halted: dependency '{dependency}' failed"
            if result.state in {PhaseState.APPLIED, PhaseState.SKIPPED}:
                continue
            return _WAIT, ""

        for other in running.values():
            if write_sets_overlap(phase.write_set, other.write_set):
                return _WAIT, ""
        for other in pending:
            if other is phase:
                break
            if write_sets_overlap(phase.write_set, other.write_set):
                return _WAIT, ""
        return _READY, ""

    def _dependency_converged(self, plan: TransformationPlan, dependency: PhaseId) -> bool:
        try:
            phase = plan.get(dependency)
        except KeyError:
            return False
        state_hash = self._snapshots.hash_paths(self._root, phase.write_set)
        if self._tracker.is_converged(dependency, state_hash):
            return True
        # write-sets are rebuilt from the repository and can shrink once applied
        return dependency in self._tracker.phase_ids() and not self._has_pending_changes(phase)

    def _has_pending_changes(self, phase: Phase, cancel_event: threading.Event | None = None) -> bool:
        preview = PreviewWorkspace(
            repo_root=self._root,
            phase_id=phase.phase_id,
            write_set=frozenset(phase.write_set),
            filesystem=self._snapshots.filesystem,
            version_control=self._snapshots.version_control,
            cancel_event=cancel_event,
        )
        try:
            phase.apply(preview)
        except Exception:
            LOGGER.debug(
                "phase preview failed; assuming changes",
                extra={"event": "executor.phase.preview_failed", "phase_id": phase.phase_id},
                exc_info=True,
            )
            return True
        return bool(preview.changes)

    def _collect(self, phase: Phase, future: Future[ExecutionResult]) -> ExecutionResult:
        try:
            return future.result()
        except Exception as error:
            LOGGER.exception(
                "phase worker crashed",
                extra={"event": "executor.phase.crashed", "phase_id": phase.phase_id},
            )
            return ExecutionResult(
                phase.phase_id,
                PhaseState.FAILED,
                PhaseOutcome.FAILED,
                message=f"executor error: {error}",
            )

    def _run_phase(self, plan: TransformationPlan, phase: Phase, cancel_event: threading.Event) -> ExecutionResult:
        phase_id = phase.phase_id
        if cancel_event.is_set():
            return ExecutionResult(phase_id, PhaseState.NOT_STARTED, PhaseOutcome.NOT_STARTED, message="cancelled")

        snapshot = self._snapshots.capture(self._root, phase.write_set)
        pre_hash = snapshot.snapshot_id
        if self._tracker.is_converged(phase_id, pre_hash):
            LOGGER.info(
                "phase already converged",
                extra={"event": "executor.phase.skipped", "phase_id": phase_id, "pre_hash": pre_hash},
            )
            return ExecutionResult(
                phase_id,
                PhaseState.SKIPPED,
                PhaseOutcome.SKIPPED_NOOP,
                message="already converged",
                pre_hash=pre_hash,
                post_hash=pre_hash,
            )

        if phase.destructive and self._confirm_destructive is not None:
            if not self._has_pending_changes(phase, cancel_event):
                self._tracker.record_applied(phase_id, pre_hash, pre_hash)
                LOGGER.info(
                    "destructive phase has nothing to change",
                    extra={"event": "executor.phase.noop", "phase_id": phase_id, "pre_hash": pre_hash},
                )
                return ExecutionResult(
                    phase_id,
                    PhaseState.SKIPPED,
                    PhaseOutcome.SKIPPED_NOOP,
                    message="no changes",
                    pre_hash=pre_hash,
                    post_hash=pre_hash,
                )
            if not self._confirm_destructive(plan, phase):
                return ExecutionResult(
                    phase_id, PhaseState.NOT_STARTED, PhaseOutcome.NOT_STARTED, message="destructive phase not confirmed"
                )
            if cancel_event.is_set():
                return ExecutionResult(phase_id, PhaseState.NOT_STARTED, PhaseOutcome.NOT_STARTED, message="cancelled")

        LOGGER.info(
            "phase started",
            extra={"event": "executor.phase.start", "phase_id": phase_id, "write_set": list(phase.write_set)},
        )
        workspace = GuardedWorkspace(
            repo_root=self._root,
            phase_id=phase_id,
            write_set=frozenset(phase.write_set),
            filesystem=self._snapshots.filesystem,
            version_control=self._snapshots.version_control,
            cancel_event=cancel_event,
        )
        verification: VerificationOutcome | None = None
        try:
            message = phase.apply(workspace)
            if cancel_event.is_set():
                raise PhaseApplyError("cancelled during apply")

            applied_hash = self._snapshots.hash_paths(self._root, phase.write_set)
            if applied_hash == pre_hash:
                self._tracker.record_applied(phase_id, pre_hash, pre_hash)
                LOGGER.info(
                    "phase made no changes",
                    extra={"event": "executor.phase.noop", "phase_id": phase_id, "pre_hash": pre_hash},
                )
                return ExecutionResult(
                    phase_id,
                    PhaseState.SKIPPED,
                    PhaseOutcome.SKIPPED_NOOP,
                    message=message or "no changes",
                    pre_hash=pre_hash,
                    post_hash=pre_hash,
                )

            if phase.requires_verification:
                verification = self._verifier.verify(phase.capability, self._root)
                if not verification.passed:
                    raise VerificationFailure(verification.detail, timed_out=verification.timed_out)
            if cancel_event.is_set():
                raise PhaseApplyError("cancelled during verification")

            diff = self._snapshots.diff(self._root, snapshot)
            if self._stage_applied:
                to_stage = [*diff.added, *diff.modified]
                if to_stage:
                    self._snapshots.version_control.stage(self._root, to_stage)
                    diff = self._snapshots.diff(self._root, snapshot)
            post_hash = self._snapshots.hash_paths(self._root, phase.write_set)
        except Exception as error:
            LOGGER.exception(
                "phase failed; restoring snapshot",
                extra={"event": "executor.phase.failed", "phase_id": phase_id, "error": str(error)},
            )
            restored = self._snapshots.restore(self._root, snapshot)
            return ExecutionResult(
                phase_id,
                PhaseState.FAILED,
                PhaseOutcome.ROLLED_BACK if restored else PhaseOutcome.FAILED,
                message=str(error),
                pre_hash=pre_hash,
                post_hash=self._snapshots.hash_paths(self._root, phase.write_set),
                verification=verification,
                restored=restored,
            )

        self._tracker.record_applied(phase_id, pre_hash, post_hash)
        self._tracker.record_applied(phase_id, post_hash, post_hash)
        LOGGER.info(
            "phase applied",
            extra={
                "event": "executor.phase.applied",
                "phase_id": phase_id,
                "pre_hash": pre_hash,
                "post_hash": post_hash,
                "message": message,
                "changed_paths": list(diff.changed_paths),
            },
        )
        return ExecutionResult(
            phase_id,
            PhaseState.APPLIED,
            PhaseOutcome.APPLIED,
            message=message,
            pre_hash=pre_hash,
            post_hash=post_hash,
            diff=diff,
            verification=verification,
        )
