from __future__ import annotations

from typing import Iterable, Sequence

from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, PhaseId
from repo_transform_tool.domain.phases import Phase, PhaseWorkspace

from .templates import render_template


class CiWorkflowPhase(Phase):
    kind = "ci"
    description = "Add CI workflows running build, lint and tests"

    def __init__(self, *, capability: CapabilitySet, depends_on: Iterable[PhaseId] = ()) -> None:
        super().__init__(
            write_set=tuple(job.path for job in capability.ci_jobs),
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
    ) -> CiWorkflowPhase | None:
        if not capability.ci_jobs:
            return None
        return cls(capability=capability, depends_on=depends_on)

    def apply(self, workspace: PhaseWorkspace) -> str:
        created: list[str] = []
        for job in self.capability.ci_jobs:
            if workspace.cancelled():
                break
            if workspace.exists(job.path):
                continue
            workspace.write_text(job.path, render_template(job, project_name=workspace.project_name))
            created.append(job.path)
        return f"created {', '.join(created)}" if created else "CI workflows already present"
