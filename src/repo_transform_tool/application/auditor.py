from __future__ import annotations
"""Read-only repository audit against the professionalization baseline."""

import logging
from typing import Sequence

from repo_transform_tool.domain.audit import AuditRule
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity


LOGGER = logging.getLogger(__name__)


class Auditor:
    """Run every audit rule against one snapshot.

    A rule only sees the capability sets that provide all attributes it
    requires; a rule left without any is skipped. A rule that raises becomes a
    `rule-failed` finding and the remaining rules still run. Output is grouped
    by severity and stable by first path within a group.
    """

    def __init__(self, rules: Sequence[AuditRule]) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[AuditRule, ...]:
        return self._rules

    def audit(self, snapshot: AuditSnapshot, capability_sets: Sequence[CapabilitySet]) -> list[Finding]:
        findings: list[Finding] = []
        for rule in self._rules:
            applicable = tuple(capability for capability in capability_sets if rule.applicable(capability))
            if rule.requires and not applicable:
                LOGGER.debug(
                    "audit rule skipped",
                    extra={"event": "auditor.rule.skipped", "rule": rule.name, "requires": list(rule.requires)},
                )
                continue

            try:
                produced = list(rule.check(snapshot, applicable))
            except Exception as error:
                LOGGER.exception(
                    "audit rule failed",
                    extra={"event": "auditor.rule.failed", "rule": rule.name},
                )
                findings.append(
                    Finding(
                        category=FindingCategory.RULE_FAILED,
                        severity=Severity.STRUCTURAL,
                        paths=(),
                        message=f"Rule {rule.name} failed: {error}",
                        rule=rule.name,
                    )
                )
                continue

            LOGGER.debug(
                "audit rule completed",
                extra={"event": "auditor.rule.completed", "rule": rule.name, "findings": len(produced)},
            )
            findings.extend(produced)

        findings.sort(key=lambda finding: (finding.severity, finding.primary_path))
        LOGGER.info(
            "audit completed",
            extra={
                "event": "auditor.completed",
                "root": str(snapshot.root),
                "rules": len(self._rules),
                "findings": len(findings),
                "by_severity": {
                    severity.label: sum(1 for finding in findings if finding.severity is severity) for severity in Severity
                },
            },
        )
        return findings
