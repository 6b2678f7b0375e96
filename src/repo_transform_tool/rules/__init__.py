"""Pluggable read-only audit rules."""

from repo_transform_tool.domain.audit import AuditRule
from repo_transform_tool.domain.ports import ToolRunnerPort

from .baseline_files import MissingCiRule, MissingManifestRule, MissingReadmeRule, MissingSecurityPolicyRule
from .large_files import LargeFileRule
from .lint_errors import LintErrorsRule
from .missing_tests import MissingTestsRule
from .secrets import SecretExposureRule
from .stale_references import StaleReferenceRule
from .tracked_artifacts import TrackedArtifactRule
from .version_mismatch import VersionMismatchRule


def default_rules(tool_runner: ToolRunnerPort | None = None, *, include_lint: bool = False) -> list[AuditRule]:
    """Shipped rule set; the lint rule runs external tools and is opt-in."""
    rules: list[AuditRule] = [
        SecretExposureRule(),
        TrackedArtifactRule(),
        StaleReferenceRule(),
        VersionMismatchRule(),
        MissingTestsRule(),
        LargeFileRule(),
        MissingManifestRule(),
        MissingCiRule(),
        MissingReadmeRule(),
        MissingSecurityPolicyRule(),
    ]
    if include_lint:
        if tool_runner is None:
            raise ValueError("The lint rule needs a tool runner")
        rules.append(LintErrorsRule(tool_runner))
    return rules


__all__ = [
	"LargeFileRule",
	"LintErrorsRule",
	"MissingCiRule",
	"MissingManifestRule",
	"MissingReadmeRule",
	"MissingSecurityPolicyRule",
	"MissingTestsRule",
	"SecretExposureRule",
	"StaleReferenceRule",
	"TrackedArtifactRule",
	"VersionMismatchRule",
	"default_rules",
]
