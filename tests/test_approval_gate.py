from __future__ import annotations

import threading
from pathlib import Path

import pytest

from repo_transform_tool.adapters.state.jsonl_log import JsonlAppendOnlyLog
from repo_transform_tool.application.approval_gate import CANCELLED_REASON, ApprovalGate
from repo_transform_tool.domain.entities import (
    ApprovalDecision,
    ApprovalRequest,
    GateState,
    OperatorAction,
    OperatorResponse,
)
from repo_transform_tool.domain.errors import PlanLockedError
from repo_transform_tool.domain.phases import Phase, TransformationPlan
from repo_transform_tool.domain.ports import OperatorChannelPort
from tests.fakes import ScriptedOperator, approve_everything


class _Noop(Phase):
    def apply(self, workspace):
        return "noop"


def _plan() -> TransformationPlan:
    hygiene = _Noop(write_set=(".gitignore",), phase_id="git-hygiene", destructive=True)
    docs = _Noop(write_set=("README.md",), phase_id="docs")
    security = _Noop(write_set=("SECURITY.md",), phase_id="security", depends_on=("git-hygiene",))
    return TransformationPlan(plan_id="p1", phases=(hygiene, docs, security))


class BlockingOperator(OperatorChannelPort):
    def __init__(self) -> None:
        self.asked = threading.Event()
        self.release = threading.Event()

    def request(self, request: ApprovalRequest) -> OperatorResponse:
        self.asked.set()
        self.release.wait(timeout=10)
        return OperatorResponse(action=OperatorAction.APPROVE)


class BrokenOperator(OperatorChannelPort):
    def request(self, request: ApprovalRequest) -> OperatorResponse:
        raise OSError("terminal closed")


def test_approve_all_names_destructive_phases_explicitly() -> None:
    gate = ApprovalGate(ScriptedOperator([approve_everything]))

    record = gate.present(_plan())

    assert record.decision is ApprovalDecision.APPROVE_ALL
    assert record.approved_phase_ids == {"git-hygiene", "docs", "security"}
    assert record.destructive_phase_ids == {"git-hygiene"}
    assert record.covers("git-hygiene", destructive=True)
    assert gate.state is GateState.APPROVED


def test_plain_approval_does_not_authorize_destructive_phases() -> None:
    gate = ApprovalGate(ScriptedOperator([OperatorResponse(action=OperatorAction.APPROVE)]))

    record = gate.present(_plan())

    assert record.covers("docs", destructive=False)
    assert not record.covers("git-hygiene", destructive=True)


def test_subset_approval() -> None:
    gate = ApprovalGate(
        ScriptedOperator([OperatorResponse(action=OperatorAction.APPROVE_SUBSET, phase_ids=("docs",))])
    )

    record = gate.present(_plan())

    assert record.decision is ApprovalDecision.APPROVE_SUBSET
    assert record.approved_phase_ids == {"docs"}
    assert not record.covers("security", destructive=False)


def test_subset_with_unknown_phase_is_rejected() -> None:
    gate = ApprovalGate(
        ScriptedOperator([OperatorResponse(action=OperatorAction.APPROVE_SUBSET, phase_ids=("docs", "deploy"))])
    )

    record = gate.present(_plan())

    assert record.decision is ApprovalDecision.REJECT
    assert "deploy" in record.reason
    assert gate.state is GateState.REJECTED


def test_rejection_keeps_reason() -> None:
    gate = ApprovalGate(ScriptedOperator([OperatorResponse(action=OperatorAction.REJECT, reason="not today")]))

    record = gate.present(_plan())

    assert not record.approved
    assert record.reason == "not today"
    assert record.approved_phase_ids == frozenset()


def test_amendment_presents_the_next_revision_and_records_history(tmp_path: Path) -> None:
    history = JsonlAppendOnlyLog(tmp_path / "approvals.jsonl")
    operator = ScriptedOperator(
        [
            OperatorResponse(action=OperatorAction.AMEND, phase_ids=("docs", "security"), reason="later"),
            OperatorResponse(action=OperatorAction.APPROVE),
        ]
    )
    gate = ApprovalGate(operator, history=history)

    record = gate.present(_plan())

    assert [request.plan_revision for request in operator.requests] == [1, 2]
    assert operator.requests[1].phase_ids == ("docs", "security")
    assert record.plan_revision == 2
    assert gate.plan.revision == 2
    assert [phase.phase_id for phase in gate.plan.excluded] == ["git-hygiene"]
    assert [entry["kind"] for entry in history.read_all()] == ["amendment", "decision"]


def test_amending_a_locked_plan_fails() -> None:
    plan = _plan()
    plan.lock()

    with pytest.raises(PlanLockedError):
        plan.amend(("docs",))


def test_endless_amendments_are_rejected() -> None:
    amend = OperatorResponse(action=OperatorAction.AMEND, phase_ids=("docs",))
    gate = ApprovalGate(ScriptedOperator([amend, amend, amend]), max_amendments=2)

    record = gate.present(_plan())

    assert record.decision is ApprovalDecision.REJECT
    assert record.reason == "too many amendments"


def test_cancel_resolves_a_blocked_request() -> None:
    operator = BlockingOperator()
    gate = ApprovalGate(operator)
    records = []
    presenter = threading.Thread(target=lambda: records.append(gate.present(_plan())))

    presenter.start()
    assert operator.asked.wait(timeout=5)
    gate.cancel()
    presenter.join(timeout=5)
    operator.release.set()

    assert not presenter.is_alive()
    assert records[0].decision is ApprovalDecision.REJECT
    assert records[0].reason == CANCELLED_REASON
    assert gate.cancelled


def test_cancelled_gate_rejects_future_requests() -> None:
    operator = ScriptedOperator([approve_everything])
    gate = ApprovalGate(operator)
    gate.cancel()

    record = gate.present(_plan())

    assert record.reason == CANCELLED_REASON
    assert operator.requests == []


def test_channel_failure_is_a_rejection() -> None:
    record = ApprovalGate(BrokenOperator()).present(_plan())

    assert record.decision is ApprovalDecision.REJECT
    assert "terminal closed" in record.reason


def test_destructive_confirmation_is_recorded(tmp_path: Path) -> None:
    history = JsonlAppendOnlyLog(tmp_path / "approvals.jsonl")
    plan = _plan()

    confirmed = ApprovalGate(ScriptedOperator(confirm=True), history=history).confirm_destructive(
        plan, plan.get("git-hygiene")
    )
    declined = ApprovalGate(ScriptedOperator(confirm=False), history=history).confirm_destructive(
        plan, plan.get("git-hygiene")
    )

    assert confirmed and not declined
    assert [entry["confirmed"] for entry in history.read_all()] == [True, False]
