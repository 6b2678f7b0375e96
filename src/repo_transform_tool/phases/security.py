from __future__ import annotations

from typing import Iterable, Sequence

from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, PhaseId
from repo_transform_tool.domain.errors import PlanError
from repo_transform_tool.domain.phases import Phase, PhaseWorkspace

from .templates import render_template


SECURITY_POLICY_CANDIDATES = ("SECURITY.md", ".github/SECURITY.md", "docs/SECURITY.md")


class SecurityPolicyPhase(Phase):
    kind = "security"
    description = "Add a security policy describing how to report vulnerabilities"

    def __init__(self, *, capability: CapabilitySet, depends_on: Iterable[PhaseId] = ()) -> None:
        if capability.security_policy is None:
            raise PlanError(f"Ecosystem '{capability.ecosystem}' has no security policy template")
        super().__init__(
            write_set=(capability.security_policy.path,),
            depends_on=depends_on,
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
    ) -> SecurityPolicyPhase | None:
        if capability.security_policy is None:
            return None
        return cls(capability=capability, depends_on=depends_on)

    def apply(self, workspace: PhaseWorkspace) -> str:
        template = self.capability.security_policy
        candidates = (template.path, *SECURITY_POLICY_CANDIDATES)
        if any(workspace.exists(candidate) for candidate in candidates):
            return "security policy already present"
        workspace.write_text(template.path, render_template(template, project_name=workspace.project_name))
        return f"created {template.path}"
