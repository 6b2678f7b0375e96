from __future__ import annotations
"""Audit rule contract."""

from abc import ABC, abstractmethod
from typing import ClassVar, Iterable

from .entities import AuditSnapshot, CapabilitySet, EcosystemId, GENERIC_ECOSYSTEM, Finding


class AuditRule(ABC):
    """Pluggable read-only repository check.

    Implementers should:
    - declare in `requires` the `CapabilitySet` attributes they read; the
      auditor passes only capability sets providing all of them,
    - declare in `remediation` the phase kind that fixes their findings
      (None for advisory findings),
    - never mutate the repository.
    """

    requires: ClassVar[tuple[str, ...]] = ()
    remediation: ClassVar[str | None] = None

    @property
    def name(self) -> str:
        """Stable default rule name used in findings and logging."""
        return self.__class__.__name__

    def applicable(self, capability: CapabilitySet) -> bool:
        return all(getattr(capability, attribute) for attribute in self.requires)

    @abstractmethod
    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        """Produce findings for `snapshot` using the applicable capability sets."""
        raise NotImplementedError


def ecosystem_of(capability: CapabilitySet) -> EcosystemId | None:
    """Ecosystem attributed to findings; common checks carry none."""
    return None if capability.ecosystem == GENERIC_ECOSYSTEM else capability.ecosystem
