from __future__ import annotations
"""Blocking operator approval between planning and execution.

States: `pending -> approved | rejected | amended`; `amended` loops back to
`pending` with the next plan revision. The operator channel runs on a
helper thread while the caller waits on a condition, so `cancel()` (for
example from a SIGINT handler) resolves a pending request immediately as a
rejection with reason `cancelled`.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable

from repo_transform_tool.domain.entities import (
    ApprovalDecision,
    ApprovalRecord,
    ApprovalRequest,
    GateState,
    OperatorAction,
    OperatorResponse,
)
from repo_transform_tool.domain.errors import ApprovalCancelled, PlanError
from repo_transform_tool.domain.phases import Phase, TransformationPlan
from repo_transform_tool.domain.ports import AppendOnlyLogPort, OperatorChannelPort


LOGGER = logging.getLogger(__name__)

CANCELLED_REASON = "cancelled"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalGate:
    def __init__(
        self,
        channel: OperatorChannelPort,
        *,
        history: AppendOnlyLogPort | None = None,
        clock: Callable[[], datetime] = _utc_now,
        max_amendments: int = 10,
    ) -> None:
        self._channel = channel
        self._history = history
        self._clock = clock
        self._max_amendments = max_amendments
        self._condition = threading.Condition()
        self._request_lock = threading.Lock()
        self._cancelled = False
        self._state = GateState.PENDING
        self._plan: TransformationPlan | None = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def plan(self) -> TransformationPlan | None:
        """Latest plan revision presented (after any amendments)."""
        return self._plan

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Resolve any pending or future request as a rejection."""
        with self._condition:
            self._cancelled = True
            self._condition.notify_all()
        LOGGER.warning("approval gate cancelled", extra={"event": "approval.gate.cancelled"})

    def present(self, plan: TransformationPlan) -> ApprovalRecord:
        """Block until the operator approves, rejects or the gate is cancelled.

        Amendments produce new plan revisions that are presented again; the
        final revision is available as `plan` afterwards.
        """
        current = plan
        amendments = 0
        while True:
            self._plan = current
            self._state = GateState.PENDING
            request = ApprovalRequest(
                plan_id=current.plan_id,
                plan_revision=current.revision,
                phases=current.views(),
                findings=current.findings,
            )
            LOGGER.info(
                "approval requested",
                extra={
                    "event": "approval.requested",
                    "plan_id": current.plan_id,
                    "revision": current.revision,
                    "phases": list(current.phase_ids),
                },
            )

            try:
                response = self._await_response(request)
            except ApprovalCancelled:
                return self._resolve(current, ApprovalDecision.REJECT, reason=CANCELLED_REASON)

            if response.action is OperatorAction.REJECT:
                return self._resolve(current, ApprovalDecision.REJECT, reason=response.reason or "rejected")

            if response.action is OperatorAction.AMEND:
                amendments += 1
                if amendments > self._max_amendments:
                    return self._resolve(current, ApprovalDecision.REJECT, reason="too many amendments")
                try:
                    amended = current.amend(response.phase_ids)
                except PlanError as error:
                    return self._resolve(current, ApprovalDecision.REJECT, reason=str(error))
                self._state = GateState.AMENDED
                self._append(
                    {
                        "kind": "amendment",
                        "plan_id": current.plan_id,
                        "plan_revision": current.revision,
                        "next_revision": amended.revision,
                        "kept_phase_ids": list(amended.phase_ids),
                        "decided_at": self._clock().isoformat(),
                        "reason": response.reason,
                    }
                )
                LOGGER.info(
                    "plan amended",
                    extra={
                        "event": "approval.plan.amended",
                        "plan_id": current.plan_id,
                        "revision": amended.revision,
                        "phases": list(amended.phase_ids),
                    },
                )
                current = amended
                continue

            if response.action is OperatorAction.APPROVE:
                return self._resolve(
                    current,
                    ApprovalDecision.APPROVE_ALL,
                    approved=current.phase_ids,
                    destructive=response.destructive_phase_ids,
                    reason=response.reason,
                )

            unknown = sorted(set(response.phase_ids) - set(current.phase_ids))
            if unknown:
                return self._resolve(
                    current, ApprovalDecision.REJECT, reason=f"unknown phases in subset: {', '.join(unknown)}"
                )
            if not response.phase_ids:
                return self._resolve(current, ApprovalDecision.REJECT, reason="empty approval subset")
            return self._resolve(
                current,
                ApprovalDecision.APPROVE_SUBSET,
                approved=response.phase_ids,
                destructive=response.destructive_phase_ids,
                reason=response.reason,
            )

    def confirm_destructive(self, plan: TransformationPlan, phase: Phase) -> bool:
        """Ask for an explicit go-ahead right before a destructive phase starts."""
        request = ApprovalRequest(
            plan_id=plan.plan_id,
            plan_revision=plan.revision,
            phases=(phase.view(),),
            confirmation_of=phase.phase_id,
        )
        try:
            response = self._await_response(request)
        except ApprovalCancelled:
            response = OperatorResponse(action=OperatorAction.REJECT, reason=CANCELLED_REASON)

        confirmed = response.action is OperatorAction.APPROVE and phase.phase_id in response.destructive_phase_ids
        self._append(
            {
                "kind": "confirmation",
                "plan_id": plan.plan_id,
                "plan_revision": plan.revision,
                "phase_id": phase.phase_id,
                "confirmed": confirmed,
                "decided_at": self._clock().isoformat(),
                "reason": response.reason,
            }
        )
        LOGGER.info(
            "destructive phase confirmation resolved",
            extra={"event": "approval.confirmation.resolved", "phase_id": phase.phase_id, "confirmed": confirmed},
        )
        return confirmed

    def _await_response(self, request: ApprovalRequest) -> OperatorResponse:
        with self._request_lock:
            box: list[OperatorResponse] = []

            def ask() -> None:
                try:
                    response = self._channel.request(request)
                except Exception as error:
                    LOGGER.exception("operator channel failed", extra={"event": "approval.channel.failed"})
                    response = OperatorResponse(action=OperatorAction.REJECT, reason=f"operator channel failed: {error}")
                with self._condition:
                    box.append(response)
                    self._condition.notify_all()

            with self._condition:
                if self._cancelled:
                    raise ApprovalCancelled(CANCELLED_REASON)

            worker = threading.Thread(target=ask, name="approval-gate-operator", daemon=True)
            worker.start()

            with self._condition:
                self._condition.wait_for(lambda: bool(box) or self._cancelled)
                if self._cancelled:
                    raise ApprovalCancelled(CANCELLED_REASON)
                return box[0]

    def _resolve(
        self,
        plan: TransformationPlan,
        decision: ApprovalDecision,
        *,
        approved: tuple[str, ...] = (),
        destructive: tuple[str, ...] = (),
        reason: str = "",
    ) -> ApprovalRecord:
        approved_ids = frozenset(approved) if decision is not ApprovalDecision.REJECT else frozenset()
        destructive_candidates = {phase.phase_id for phase in plan.phases if phase.destructive}
        record = ApprovalRecord(
            plan_id=plan.plan_id,
            plan_revision=plan.revision,
            decision=decision,
            approved_phase_ids=approved_ids,
            destructive_phase_ids=frozenset(destructive) & approved_ids & destructive_candidates,
            decided_at=self._clock().isoformat(),
            reason=reason,
        )
        self._state = GateState.REJECTED if decision is ApprovalDecision.REJECT else GateState.APPROVED
        self._append({"kind": "decision", **record.to_dict()})
        LOGGER.info(
            "approval resolved",
            extra={
                "event": "approval.resolved",
                "plan_id": plan.plan_id,
                "revision": plan.revision,
                "decision": decision.value,
                "approved_phase_ids": sorted(record.approved_phase_ids),
                "reason": reason,
            },
        )
        return record

    def _append(self, record: dict[str, object]) -> None:
        if self._history is not None:
            self._history.append(record)
