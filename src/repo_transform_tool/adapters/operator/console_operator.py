from __future__ import annotations
"""Interactive operator channel on a terminal."""

from typing import Callable, Sequence

from repo_transform_tool.domain.entities import ApprovalRequest, OperatorAction, OperatorResponse
from repo_transform_tool.domain.ports import OperatorChannelPort


class ConsoleOperatorChannel(OperatorChannelPort):
    """Prompt the operator for a decision; end of input counts as rejection."""

    _CHOICES = {
        "a": OperatorAction.APPROVE,
        "s": OperatorAction.APPROVE_SUBSET,
        "m": OperatorAction.AMEND,
        "r": OperatorAction.REJECT,
    }

    def __init__(
        self,
        *,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ) -> None:
        self._input = input_fn
        self._output = output_fn

    def request(self, request: ApprovalRequest) -> OperatorResponse:
        try:
            if request.confirmation_of is not None:
                return self._confirm(request)
            self._render(request)
            return self._ask(request)
        except EOFError:
            return OperatorResponse(action=OperatorAction.REJECT, reason="no operator input")

    def _confirm(self, request: ApprovalRequest) -> OperatorResponse:
        phase_id = request.confirmation_of or ""
        answer = self._input(f"Run destructive phase '{phase_id}' now? [y/N] ").strip().lower()
        if answer in {"y", "yes"}:
            return OperatorResponse(
                action=OperatorAction.APPROVE,
                phase_ids=(phase_id,),
                destructive_phase_ids=(phase_id,),
            )
        return OperatorResponse(action=OperatorAction.REJECT, reason="destructive phase declined")

    def _render(self, request: ApprovalRequest) -> None:
        self._output(f"Plan {request.plan_id} (revision {request.plan_revision})")
        if request.findings:
            self._output(f"Findings: {len(request.findings)}")
            for finding in request.findings:
                location = ", ".join(finding.paths) or "-"
                self._output(f"  [{finding.severity.label}] {finding.category.value}: {location} {finding.message}")
        self._output("Phases:")
        for index, phase in enumerate(request.phases, start=1):
            flags = []
            if phase.destructive:
                flags.append("destructive")
            if phase.requires_verification:
                flags.append("verified")
            suffix = f" ({', '.join(flags)})" if flags else ""
            self._output(f"  {index}. {phase.phase_id}{suffix}: {phase.description}")
            if phase.depends_on:
                self._output(f"     after: {', '.join(phase.depends_on)}")

    def _ask(self, request: ApprovalRequest) -> OperatorResponse:
        while True:
            choice = self._input("[a]pprove all, approve [s]ubset, a[m]end, [r]eject: ").strip().lower()[:1]
            action = self._CHOICES.get(choice)
            if action is None:
                self._output("Please answer a, s, m or r.")
                continue

            if action is OperatorAction.REJECT:
                reason = self._input("Reason (optional): ").strip()
                return OperatorResponse(action=action, reason=reason or "rejected by operator")

            phase_ids = request.phase_ids
            if action in {OperatorAction.APPROVE_SUBSET, OperatorAction.AMEND}:
                selected = self._select_phases(request)
                if selected is None:
                    continue
                phase_ids = selected

            if action is OperatorAction.AMEND:
                return OperatorResponse(action=action, phase_ids=phase_ids)

            destructive = self._select_destructive(request, phase_ids)
            return OperatorResponse(action=action, phase_ids=phase_ids, destructive_phase_ids=destructive)

    def _select_phases(self, request: ApprovalRequest) -> tuple[str, ...] | None:
        raw = self._input("Phases (numbers or ids, comma separated): ")
        selected = _parse_selection(raw, request.phase_ids)
        if selected is None:
            self._output("Unknown phase in selection.")
        return selected

    def _select_destructive(self, request: ApprovalRequest, phase_ids: Sequence[str]) -> tuple[str, ...]:
        destructive = [
            phase.phase_id for phase in request.phases if phase.destructive and phase.phase_id in phase_ids
        ]
        if not destructive:
            return ()
        self._output(f"Destructive phases must be named explicitly: {', '.join(destructive)}")
        raw = self._input("Destructive phases to allow (comma separated, empty for none): ")
        return _parse_selection(raw, tuple(destructive)) or ()


def _parse_selection(raw: str, phase_ids: Sequence[str]) -> tuple[str, ...] | None:
    selected: list[str] = []
    for token in (item.strip() for item in raw.split(",")):
        if not token:
            continue
        if token.isdigit() and 1 <= int(token) <= len(phase_ids):
            value = phase_ids[int(token) - 1]
        elif token in phase_ids:
            value = token
        else:
            return None
        if value not in selected:
            selected.append(value)
    return tuple(selected)
