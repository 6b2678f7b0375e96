from __future__ import annotations
"""Rule detecting secret-like files exposed to version control."""

from typing import Iterable

from repo_transform_tool.domain.audit import AuditRule
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity
from repo_transform_tool.domain.patterns import matches_any


def gitignore_patterns(snapshot: AuditSnapshot) -> tuple[str, ...]:
    """Lines of the root `.gitignore`, negations included, in file order."""
    content = snapshot.read_text(".gitignore") if snapshot.has_file(".gitignore") else None
    if not content:
        return ()
    return tuple(line.rstrip() for line in content.splitlines() if line.strip())


class SecretExposureRule(AuditRule):
    """Flag secret-like files that are tracked, or present and not ignored.

    Tracked secrets are already in history; unignored ones are one `git add`
    away from it. Both are remediated by the git hygiene phase.
    """

    requires = ("secret_patterns",)
    remediation = "git-hygiene"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        patterns = tuple(dict.fromkeys(pattern for capability in capability_sets for pattern in capability.secret_patterns))
        ignored = gitignore_patterns(snapshot)

        for path in sorted(snapshot.tracked):
            if matches_any(path, patterns):
                yield Finding(
                    category=FindingCategory.SECRET_EXPOSURE,
                    severity=Severity.SECRET_EXPOSURE,
                    paths=(path,),
                    message="Secret-like file is tracked by version control",
                    remediation=self.remediation,
                    rule=self.name,
                )

        for path in snapshot.files:
            if path in snapshot.tracked or not matches_any(path, patterns):
                continue
            if matches_any(path, ignored):
                continue
            yield Finding(
                category=FindingCategory.SECRET_EXPOSURE,
                severity=Severity.SECRET_EXPOSURE,
                paths=(path,),
                message="Secret-like file is not covered by .gitignore",
                remediation=self.remediation,
                rule=self.name,
            )
