from __future__ import annotations
"""Rule flagging oversized source files as refactoring candidates (advisory)."""

from typing import Iterable

from repo_transform_tool.domain.audit import AuditRule, ecosystem_of
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity


class LargeFileRule(AuditRule):
    requires = ("source_extensions", "large_file_lines")

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        for capability in capability_sets:
            threshold = capability.large_file_lines or 0
            extensions = tuple(extension.lower() for extension in capability.source_extensions)
            for path in snapshot.files:
                if not path.lower().endswith(extensions):
                    continue
                content = snapshot.read_text(path)
                if content is None:
                    continue
                line_count = content.count("\n") + (0 if content.endswith("\n") or not content else 1)
                if line_count <= threshold:
                    continue
                yield Finding(
                    category=FindingCategory.LARGE_FILE,
                    severity=Severity.STRUCTURAL,
                    paths=(path,),
                    message=f"{line_count} lines exceeds the {threshold}-line refactoring threshold",
                    remediation=None,
                    ecosystem=ecosystem_of(capability),
                    rule=self.name,
                )
