from __future__ import annotations

from typing import Iterable

from repo_transform_tool.domain.audit import AuditRule, ecosystem_of
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity
from repo_transform_tool.domain.patterns import matches_any


class MissingTestsRule(AuditRule):
    requires = ("test_globs",)
    remediation = "tests"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        for capability in capability_sets:
            if any(matches_any(path, capability.test_globs) for path in snapshot.files):
                continue
            yield Finding(
                category=FindingCategory.MISSING_TEST,
                severity=Severity.STRUCTURAL,
                paths=(),
                message=f"No test files matching {', '.join(capability.test_globs)}",
                remediation=self.remediation,
                ecosystem=ecosystem_of(capability),
                rule=self.name,
            )
