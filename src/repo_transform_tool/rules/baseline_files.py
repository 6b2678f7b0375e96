from __future__ import annotations
"""Rules checking for the baseline files every professional repository carries."""

from typing import Iterable

from repo_transform_tool.domain.audit import AuditRule, ecosystem_of
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity


class MissingManifestRule(AuditRule):
    requires = ("manifest",)
    remediation = "packaging"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        for capability in capability_sets:
            if capability.manifest is None:
                continue
            if snapshot.has_file(capability.manifest.path):
                continue
            yield Finding(
                category=FindingCategory.MISSING_MANIFEST,
                severity=Severity.STRUCTURAL,
                paths=(capability.manifest.path,),
                message="Packaging manifest is missing",
                remediation=self.remediation,
                ecosystem=ecosystem_of(capability),
                rule=self.name,
            )


class MissingCiRule(AuditRule):
    requires = ("ci_jobs",)
    remediation = "ci"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        for capability in capability_sets:
            missing = tuple(job.path for job in capability.ci_jobs if not snapshot.has_file(job.path))
            if not missing:
                continue
            yield Finding(
                category=FindingCategory.MISSING_CI,
                severity=Severity.STRUCTURAL,
                paths=missing,
                message="CI workflow is missing",
                remediation=self.remediation,
                ecosystem=ecosystem_of(capability),
                rule=self.name,
            )


class MissingReadmeRule(AuditRule):
    requires = ("readme",)
    remediation = "docs"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        if any(path.lower().startswith("readme") for path in snapshot.files if "/" not in path):
            return []
        return [
            Finding(
                category=FindingCategory.MISSING_DOCS,
                severity=Severity.STYLE,
                paths=(capability_sets[0].readme.path,) if capability_sets[0].readme else (),
                message="Repository has no README",
                remediation=self.remediation,
                ecosystem=ecosystem_of(capability_sets[0]),
                rule=self.name,
            )
        ]


class MissingSecurityPolicyRule(AuditRule):
    requires = ("security_policy",)
    remediation = "security"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        candidates = {"SECURITY.md", ".github/SECURITY.md", "docs/SECURITY.md"}
        for capability in capability_sets:
            if capability.security_policy is not None:
                candidates.add(capability.security_policy.path)
        if any(snapshot.has_file(path) for path in candidates):
            return []
        first = capability_sets[0].security_policy
        return [
            Finding(
                category=FindingCategory.MISSING_SECURITY_POLICY,
                severity=Severity.STYLE,
                paths=(first.path,) if first else (),
                message="Repository has no security policy",
                remediation=self.remediation,
                ecosystem=ecosystem_of(capability_sets[0]),
                rule=self.name,
            )
        ]
