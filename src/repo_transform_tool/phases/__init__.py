"""Concrete repository transformation phases."""

from .ci import CiWorkflowPhase
from .docs import DocsPhase
from .git_hygiene import GitHygienePhase
from .linting import LintConfigPhase
from .packaging import PackagingPhase
from .security import SecurityPolicyPhase
from .templates import project_slug, render_template
from .test_scaffold import TestScaffoldPhase

__all__ = [
	"CiWorkflowPhase",
	"DocsPhase",
	"GitHygienePhase",
	"LintConfigPhase",
	"PackagingPhase",
	"SecurityPolicyPhase",
	"TestScaffoldPhase",
	"project_slug",
	"render_template",
]
