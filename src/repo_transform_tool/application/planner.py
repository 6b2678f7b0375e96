from __future__ import annotations
"""Build a `TransformationPlan` from audit findings.

The plan holds the phases remediating the findings, the phases recorded by
earlier runs (so their convergence is re-checked), and the transitive closure
of their required dependencies, in topological order.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Sequence

from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, PhaseId
from repo_transform_tool.domain.errors import PlanError
from repo_transform_tool.domain.phases import Phase, TransformationPlan
from repo_transform_tool.phases import (
    CiWorkflowPhase,
    DocsPhase,
    GitHygienePhase,
    LintConfigPhase,
    PackagingPhase,
    SecurityPolicyPhase,
    TestScaffoldPhase,
)


LOGGER = logging.getLogger(__name__)

PhaseFactory = Callable[..., "Phase | None"]


@dataclass(frozen=True, slots=True)
class PhaseKindSpec:
    """How one phase kind is built and sequenced.

    Attributes:
        factory: Builds the phase from a snapshot and capability set, or
            returns None when the capability set cannot support it.
        per_ecosystem: One phase per detected ecosystem instead of one common phase.
        requires: Kinds that are pulled into the plan and must converge first.
        after: Kinds ordered before this one only when both are planned.
    """

    factory: PhaseFactory
    per_ecosystem: bool
    requires: tuple[str, ...] = ()
    after: tuple[str, ...] = ()


DEFAULT_PHASE_KINDS: Mapping[str, PhaseKindSpec] = {
    "git-hygiene": PhaseKindSpec(GitHygienePhase.from_snapshot, per_ecosystem=False),
    "packaging": PhaseKindSpec(PackagingPhase.from_snapshot, per_ecosystem=True, after=("git-hygiene",)),
    "lint": PhaseKindSpec(LintConfigPhase.from_snapshot, per_ecosystem=True, after=("packaging",)),
    "tests": PhaseKindSpec(TestScaffoldPhase.from_snapshot, per_ecosystem=True, requires=("packaging",)),
    "ci": PhaseKindSpec(CiWorkflowPhase.from_snapshot, per_ecosystem=True, requires=("packaging", "lint", "tests")),
    "docs": PhaseKindSpec(DocsPhase.from_snapshot, per_ecosystem=False),
    "security": PhaseKindSpec(SecurityPolicyPhase.from_snapshot, per_ecosystem=False, after=("git-hygiene",)),
}


class Planner:
    """Turns findings into a dependency-ordered, deterministic plan.

    Identical snapshots, findings and capability data always produce the
    same plan id and phase order.
    """

    def __init__(self, phase_kinds: Mapping[str, PhaseKindSpec] | None = None) -> None:
        self._phase_kinds = dict(phase_kinds or DEFAULT_PHASE_KINDS)

    def plan(
        self,
        snapshot: AuditSnapshot,
        findings: Sequence[Finding],
        generic: CapabilitySet,
        capability_sets: Sequence[CapabilitySet],
        *,
        previously_applied: Iterable[PhaseId] = (),
    ) -> TransformationPlan:
        catalog = self._catalog(snapshot, generic, tuple(capability_sets))

        requested: list[PhaseId] = []
        for finding in findings:
            if finding.remediation is None:
                continue
            phase_id = _phase_id(finding.remediation, finding.ecosystem, self._phase_kinds)
            if phase_id in catalog:
                requested.append(phase_id)
            else:
                LOGGER.warning(
                    "finding has no applicable remediation phase",
                    extra={
                        "event": "planner.remediation.unavailable",
                        "category": finding.category.value,
                        "remediation": finding.remediation,
                        "ecosystem": finding.ecosystem,
                    },
                )
        requested.extend(phase_id for phase_id in previously_applied if phase_id in catalog)

        selected = self._closure(requested, catalog)
        dependencies = {phase_id: self._dependencies(phase_id, selected, catalog) for phase_id in selected}
        ordered = _topological_order(dependencies, list(catalog))

        phases: list[Phase] = []
        for phase_id in ordered:
            phase, _ = catalog[phase_id]
            phase.depends_on = dependencies[phase_id]
            phases.append(phase)

        plan = TransformationPlan(
            plan_id=_plan_id(snapshot.content_hash, ordered),
            phases=tuple(phases),
            findings=tuple(findings),
        )
        LOGGER.info(
            "transformation plan built",
            extra={
                "event": "planner.plan.built",
                "plan_id": plan.plan_id,
                "phases": list(plan.phase_ids),
                "findings": len(findings),
            },
        )
        return plan

    def _catalog(
        self,
        snapshot: AuditSnapshot,
        generic: CapabilitySet,
        capability_sets: tuple[CapabilitySet, ...],
    ) -> dict[PhaseId, tuple[Phase, PhaseKindSpec]]:
        catalog: dict[PhaseId, tuple[Phase, PhaseKindSpec]] = {}
        for kind, spec in self._phase_kinds.items():
            targets = capability_sets if spec.per_ecosystem else (generic,)
            for capability in targets:
                phase = spec.factory(snapshot, capability, capability_sets=capability_sets)
                if phase is None:
                    continue
                if phase.kind != kind:
                    raise PlanError(f"Factory for '{kind}' built a '{phase.kind}' phase")
                catalog[phase.phase_id] = (phase, spec)
        return catalog

    def _closure(
        self,
        requested: Sequence[PhaseId],
        catalog: Mapping[PhaseId, tuple[Phase, PhaseKindSpec]],
    ) -> set[PhaseId]:
        selected: set[PhaseId] = set()
        frontier = list(dict.fromkeys(requested))
        while frontier:
            phase_id = frontier.pop()
            if phase_id in selected:
                continue
            selected.add(phase_id)
            phase, spec = catalog[phase_id]
            for kind in spec.requires:
                dependency = _phase_id(kind, phase.ecosystem, self._phase_kinds)
                if dependency in catalog and dependency not in selected:
                    frontier.append(dependency)
        return selected

    def _dependencies(
        self,
        phase_id: PhaseId,
        selected: set[PhaseId],
        catalog: Mapping[PhaseId, tuple[Phase, PhaseKindSpec]],
    ) -> tuple[PhaseId, ...]:
        phase, spec = catalog[phase_id]
        dependencies = []
        for kind in (*spec.requires, *spec.after):
            dependency = _phase_id(kind, phase.ecosystem, self._phase_kinds)
            if dependency in selected and dependency != phase_id:
                dependencies.append(dependency)
        return tuple(dict.fromkeys(dependencies))


def _topological_order(dependencies: Mapping[PhaseId, Sequence[PhaseId]], catalog_order: Sequence[PhaseId]) -> list[PhaseId]:
    """Kahn's algorithm; ties broken by catalog order."""
    position = {phase_id: index for index, phase_id in enumerate(catalog_order)}
    ordered: list[PhaseId] = []
    done: set[PhaseId] = set()
    while len(ordered) < len(dependencies):
        ready = [
            phase_id
            for phase_id in dependencies
            if phase_id not in done and all(item in done for item in dependencies[phase_id])
        ]
        if not ready:
            remaining = sorted(set(dependencies) - done)
            raise PlanError(f"Dependency cycle between phases: {', '.join(remaining)}")
        chosen = min(ready, key=lambda phase_id: position.get(phase_id, len(position)))
        ordered.append(chosen)
        done.add(chosen)
    return ordered


def _phase_id(kind: str, ecosystem: str | None, phase_kinds: Mapping[str, PhaseKindSpec]) -> PhaseId:
    spec = phase_kinds.get(kind)
    if spec is not None and not spec.per_ecosystem:
        return kind
    return f"{kind}:{ecosystem}" if ecosystem else kind


def _plan_id(content_hash: str, phase_ids: Sequence[PhaseId]) -> str:
    hasher = hashlib.sha256(content_hash.encode("ascii"))
    for phase_id in phase_ids:
        hasher.update(b"\0")
        hasher.update(phase_id.encode("utf-8"))
    return hasher.hexdigest()[:16]
