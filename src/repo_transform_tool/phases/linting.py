from __future__ import annotations

from typing import Iterable, Sequence

from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, PhaseId
from repo_transform_tool.domain.errors import PlanError
from repo_transform_tool.domain.phases import Phase, PhaseWorkspace

from .templates import render_template


class LintConfigPhase(Phase):
    kind = "lint"
    requires_verification = True
    description = "Add the ecosystem linter configuration"

    def __init__(self, *, capability: CapabilitySet, depends_on: Iterable[PhaseId] = ()) -> None:
        if capability.lint_config is None:
            raise PlanError(f"Ecosystem '{capability.ecosystem}' has no lint configuration")
        super().__init__(
            write_set=(capability.lint_config.path,),
            depends_on=depends_on,
            ecosystem=capability.ecosystem,
            capability=capability,
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: AuditSnapshot,
        capability: CapabilitySet,
        *,
        capability_sets: Sequence[CapabilitySet] = (),
        depends_on: Iterable[PhaseId] = (),
    ) -> LintConfigPhase | None:
        if capability.lint_config is None:
            return None
        return cls(capability=capability, depends_on=depends_on)

    def apply(self, workspace: PhaseWorkspace) -> str:
        template = self.capability.lint_config
        if workspace.exists(template.path):
            return f"{template.path} already present"
        workspace.write_text(template.path, render_template(template, project_name=workspace.project_name))
        return f"created {template.path}"
