from __future__ import annotations
"""Rule counting linter errors through the ecosystem lint capability."""

from typing import Iterable

from repo_transform_tool.domain.audit import AuditRule, ecosystem_of
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity
from repo_transform_tool.domain.ports import ToolRunnerPort


class LintErrorsRule(AuditRule):
    """Run the configured linter and report its error count.

    Linters may write caches into the working tree, so this rule is only
    enabled on request (`--audit-lint`).
    """

    requires = ("lint",)
    remediation = "lint"

    def __init__(self, tool_runner: ToolRunnerPort, *, max_listed_paths: int = 50) -> None:
        self._tool_runner = tool_runner
        self._max_listed_paths = max_listed_paths

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        for capability in capability_sets:
            if capability.lint is None:
                continue
            report = self._tool_runner.lint(capability.lint, snapshot.root)
            if report.error_count == 0:
                continue

            paths: list[str] = []
            for message in report.messages:
                candidate = message.split(":", 1)[0].strip()
                if snapshot.has_file(candidate) and candidate not in paths:
                    paths.append(candidate)

            yield Finding(
                category=FindingCategory.LINT_ERROR,
                severity=Severity.STYLE,
                paths=tuple(sorted(paths)[: self._max_listed_paths]),
                message=f"{report.error_count} lint error(s) reported by {capability.lint.argv[0]}",
                remediation=self.remediation,
                ecosystem=ecosystem_of(capability),
                rule=self.name,
            )
