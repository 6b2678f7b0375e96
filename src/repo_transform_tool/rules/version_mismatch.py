from __future__ import annotations

from typing import Iterable

from repo_transform_tool.domain.audit import AuditRule, ecosystem_of
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity
from repo_transform_tool.domain.versions import extract_version, version_source_paths


def declared_versions(snapshot: AuditSnapshot, capability: CapabilitySet) -> list[tuple[str, str]]:
    """`(path, version)` pairs in version-source declaration order."""
    declared: list[tuple[str, str]] = []
    for source in capability.version_sources:
        for path in version_source_paths(snapshot.files, source):
            content = snapshot.read_text(path)
            version = extract_version(content, source.pattern) if content is not None else None
            if version is not None:
                declared.append((path, version))
    return declared


class VersionMismatchRule(AuditRule):
    requires = ("version_sources",)
    remediation = "packaging"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        for capability in capability_sets:
            declared = declared_versions(snapshot, capability)
            versions = sorted({version for _, version in declared})
            if len(versions) < 2:
                continue
            yield Finding(
                category=FindingCategory.VERSION_MISMATCH,
                severity=Severity.STALE_REFERENCE,
                paths=tuple(path for path, _ in declared),
                message="Version declarations disagree: "
                + ", ".join(f"{path}={version}" for path, version in declared),
                remediation=self.remediation,
                ecosystem=ecosystem_of(capability),
                rule=self.name,
            )
