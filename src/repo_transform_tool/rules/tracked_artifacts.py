from __future__ import annotations
"""Rule detecting tracked build outputs, caches and editor files."""

from typing import Iterable

from repo_transform_tool.domain.audit import AuditRule
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity
from repo_transform_tool.domain.patterns import matches_any


class TrackedArtifactRule(AuditRule):
    """Tracked files matching ecosystem ignore patterns or the repository's own ignore rules.

    Secret-like files are left to `SecretExposureRule`.
    """

    requires = ("ignore_patterns",)
    remediation = "git-hygiene"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        patterns = tuple(dict.fromkeys(pattern for capability in capability_sets for pattern in capability.ignore_patterns))
        secret_patterns = tuple(
            pattern for capability in capability_sets for pattern in capability.secret_patterns
        )

        artifacts = sorted(
            path
            for path in snapshot.tracked
            if (path in snapshot.ignored_tracked or matches_any(path, patterns))
            and not matches_any(path, secret_patterns)
        )
        if not artifacts:
            return []

        return [
            Finding(
                category=FindingCategory.TRACKED_ARTIFACT,
                severity=Severity.STRUCTURAL,
                paths=tuple(artifacts),
                message=f"{len(artifacts)} generated or local-only file(s) are tracked",
                remediation=self.remediation,
                rule=self.name,
            )
        ]
