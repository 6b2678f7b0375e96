from __future__ import annotations
"""Unattended operator channel reading a pre-recorded decision file.

File format (JSON)::

    {"action": "approve" | "approve-subset" | "amend" | "reject",
     "phases": ["git-hygiene", "packaging:python-like"],
     "destructive": ["git-hygiene"],
     "reason": "nightly hygiene run"}

The decision is written by a human ahead of time, so the channel never
approves on its own: a missing or unreadable file is a rejection.
"""

import json
import logging
from pathlib import Path

from repo_transform_tool.domain.entities import ApprovalRequest, OperatorAction, OperatorResponse
from repo_transform_tool.domain.ports import OperatorChannelPort


LOGGER = logging.getLogger(__name__)


class DecisionFileOperatorChannel(OperatorChannelPort):
    def __init__(self, decision_path: Path) -> None:
        self._decision_path = decision_path

    def request(self, request: ApprovalRequest) -> OperatorResponse:
        decision = self._load()
        if decision is None:
            return OperatorResponse(action=OperatorAction.REJECT, reason=f"decision file unavailable: {self._decision_path}")

        destructive = tuple(str(item) for item in decision.get("destructive", []) or [])
        if request.confirmation_of is not None:
            if request.confirmation_of in destructive:
                return OperatorResponse(
                    action=OperatorAction.APPROVE,
                    phase_ids=(request.confirmation_of,),
                    destructive_phase_ids=(request.confirmation_of,),
                )
            return OperatorResponse(action=OperatorAction.REJECT, reason="destructive phase not named in decision file")

        raw_action = str(decision.get("action", "")).strip().lower()
        try:
            action = OperatorAction(raw_action)
        except ValueError:
            LOGGER.error(
                "decision file has an invalid action",
                extra={"event": "operator.decision_file.invalid_action", "action": raw_action},
            )
            return OperatorResponse(action=OperatorAction.REJECT, reason=f"invalid decision action '{raw_action}'")

        phases = tuple(str(item) for item in decision.get("phases", []) or [])
        reason = str(decision.get("reason", "") or "")

        if action is OperatorAction.AMEND and request.plan_revision > 1:
            # the recorded amendment has been applied; the revised plan is what was approved
            action = OperatorAction.APPROVE
            phases = ()

        if action is OperatorAction.APPROVE:
            phases = request.phase_ids

        return OperatorResponse(action=action, phase_ids=phases, destructive_phase_ids=destructive, reason=reason)

    def _load(self) -> dict[str, object] | None:
        try:
            payload = json.loads(self._decision_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            LOGGER.warning(
                "decision file could not be read",
                extra={"event": "operator.decision_file.unreadable", "path": str(self._decision_path), "error": str(error)},
            )
            return None
        return payload if isinstance(payload, dict) else None
