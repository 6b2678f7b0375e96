from __future__ import annotations
"""Phase contracts and the transformation plan they compose into."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Iterable, Sequence

from .entities import CapabilitySet, EcosystemId, Finding, PhaseId, PlannedPhaseView
from .errors import PlanError, PlanLockedError


class PhaseWorkspace(ABC):
    """Mutation surface handed to `Phase.apply`.

    Reads are unrestricted; writes outside the phase write-set raise
    `WriteSetViolation`.
    """

    @property
    @abstractmethod
    def root(self) -> Path:
        raise NotImplementedError

    @property
    def project_name(self) -> str:
        return self.root.resolve().name

    @abstractmethod
    def exists(self, path: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def read_text(self, path: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def write_text(self, path: str, content: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def is_tracked(self, path: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def untrack(self, paths: Sequence[str]) -> None:
        raise NotImplementedError

    @abstractmethod
    def cancelled(self) -> bool:
        """Whether an external cancellation was requested; long phases should stop early."""
        raise NotImplementedError


class Phase(ABC):
    """One checkpointed repository transformation.

    Implementers must keep `apply` idempotent: applying to an already
    converged repository must leave every write-set path unchanged.
    """

    kind: ClassVar[str] = "phase"
    destructive: bool = False
    requires_verification: bool = False
    description: str = ""

    def __init__(
        self,
        *,
        write_set: Iterable[str],
        depends_on: Iterable[PhaseId] = (),
        ecosystem: EcosystemId | None = None,
        capability: CapabilitySet | None = None,
        phase_id: PhaseId | None = None,
        destructive: bool | None = None,
        requires_verification: bool | None = None,
    ) -> None:
        self.ecosystem = ecosystem
        self.capability = capability
        self.phase_id: PhaseId = phase_id or (f"{self.kind}:{ecosystem}" if ecosystem else self.kind)
        self.write_set: tuple[str, ...] = tuple(sorted({normalize_path(item) for item in write_set}))
        self.depends_on: tuple[PhaseId, ...] = tuple(dict.fromkeys(depends_on))
        if destructive is not None:
            self.destructive = destructive
        if requires_verification is not None:
            self.requires_verification = requires_verification

    @abstractmethod
    def apply(self, workspace: PhaseWorkspace) -> str:
        """Apply the transformation and return a short human-readable message."""
        raise NotImplementedError

    def view(self) -> PlannedPhaseView:
        return PlannedPhaseView(
            phase_id=self.phase_id,
            kind=self.kind,
            ecosystem=self.ecosystem,
            depends_on=self.depends_on,
            write_set=self.write_set,
            destructive=self.destructive,
            requires_verification=self.requires_verification,
            description=self.description,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.phase_id!r})"


@dataclass(slots=True)
class TransformationPlan:
    """Ordered phase sequence addressing a finding set.

    Amendable (producing a new revision) until `lock()` is called when
    execution starts.
    """

    plan_id: str
    phases: tuple[Phase, ...]
    revision: int = 1
    excluded: tuple[Phase, ...] = ()
    findings: tuple[Finding, ...] = ()
    locked: bool = False

    def __post_init__(self) -> None:
        seen: set[PhaseId] = set()
        planned = {phase.phase_id for phase in self.phases}
        excluded = {phase.phase_id for phase in self.excluded}
        for phase in self.phases:
            if phase.phase_id in seen:
                raise PlanError(f"Duplicate phase id in plan: {phase.phase_id}")
            for dependency in phase.depends_on:
                if dependency in seen or dependency in excluded:
                    continue
                if dependency in planned:
                    raise PlanError(f"Phase '{phase.phase_id}' is ordered before its dependency '{dependency}'")
                raise PlanError(f"Phase '{phase.phase_id}' depends on unknown phase '{dependency}'")
            seen.add(phase.phase_id)

    @property
    def phase_ids(self) -> tuple[PhaseId, ...]:
        return tuple(phase.phase_id for phase in self.phases)

    @property
    def is_empty(self) -> bool:
        return not self.phases

    def get(self, phase_id: PhaseId) -> Phase:
        for phase in (*self.phases, *self.excluded):
            if phase.phase_id == phase_id:
                return phase
        raise KeyError(phase_id)

    def views(self) -> tuple[PlannedPhaseView, ...]:
        return tuple(phase.view() for phase in self.phases)

    def lock(self) -> None:
        self.locked = True

    def amend(self, phase_ids: Iterable[PhaseId]) -> TransformationPlan:
        """Return the next revision keeping only `phase_ids`; the rest become excluded."""
        if self.locked:
            raise PlanLockedError(f"Plan {self.plan_id} is locked; execution already started")

        keep = set(phase_ids)
        unknown = keep - set(self.phase_ids)
        if unknown:
            raise PlanError(f"Amendment names phases outside the plan: {', '.join(sorted(unknown))}")

        kept = tuple(phase for phase in self.phases if phase.phase_id in keep)
        dropped = tuple(phase for phase in self.phases if phase.phase_id not in keep)
        return TransformationPlan(
            plan_id=self.plan_id,
            phases=kept,
            revision=self.revision + 1,
            excluded=(*self.excluded, *dropped),
            findings=self.findings,
        )

    def dependents_of(self, phase_id: PhaseId) -> set[PhaseId]:
        """Transitive dependents of `phase_id` within the plan."""
        result: set[PhaseId] = set()
        frontier = [phase_id]
        while frontier:
            current = frontier.pop()
            for phase in self.phases:
                if current in phase.depends_on and phase.phase_id not in result:
                    result.add(phase.phase_id)
                    frontier.append(phase.phase_id)
        return result


def normalize_path(path: str) -> str:
    """Normalize a repository-relative path to POSIX form without leading `./`."""
    value = path.replace("\\", "/").strip()
    while value.startswith("./"):
        value = value[2:]
    return value.rstrip("/") if value != "/" else value


def paths_overlap(left: str, right: str) -> bool:
    """True when two write-set paths are equal or one contains the other."""
    if left == right:
        return True
    return right.startswith(f"{left}/") or left.startswith(f"{right}/")


def write_sets_overlap(left: Iterable[str], right: Iterable[str]) -> bool:
    right_items = tuple(right)
    return any(paths_overlap(a, b) for a in left for b in right_items)
