from __future__ import annotations

from repo_transform_tool.application.auditor import Auditor
from repo_transform_tool.domain.audit import AuditRule
from repo_transform_tool.domain.entities import CapabilitySet, CommandOutcome, FindingCategory, Severity
from repo_transform_tool.rules import (
    LargeFileRule,
    LintErrorsRule,
    MissingManifestRule,
    MissingTestsRule,
    SecretExposureRule,
    StaleReferenceRule,
    TrackedArtifactRule,
    VersionMismatchRule,
    default_rules,
)
from tests.fakes import FakeToolRunner, FakeVersionControl


class ExplodingRule(AuditRule):
    def check(self, snapshot, capability_sets):
        raise RuntimeError("boom")


class NeedsLintRule(AuditRule):
    requires = ("lint",)

    def __init__(self) -> None:
        self.calls = 0

    def check(self, snapshot, capability_sets):
        self.calls += 1
        return []


def test_tracked_env_file_is_a_secret_exposure(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": "module demo\n", ".env": "TOKEN=1\n"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={"go.mod", ".env"}))

    findings = Auditor(default_rules()).audit(snapshot, (registry.generic, registry.get("go-like")))

    secrets = [finding for finding in findings if finding.category is FindingCategory.SECRET_EXPOSURE]
    assert len(secrets) == 1
    assert secrets[0].paths == (".env",)
    assert secrets[0].remediation == "git-hygiene"
    assert findings[0] == secrets[0]


def test_ignored_untracked_secret_is_not_reported(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({".gitignore": ".env\n", ".env": "TOKEN=1\n"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".gitignore"}))

    findings = Auditor([SecretExposureRule()]).audit(snapshot, (registry.generic,))

    assert findings == []


def test_unignored_untracked_secret_is_reported(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"deploy/server.pem": "-----BEGIN-----\n"})
    snapshot = capture_snapshot(root, FakeVersionControl())

    findings = Auditor([SecretExposureRule()]).audit(snapshot, (registry.generic,))

    assert [finding.paths for finding in findings] == [("deploy/server.pem",)]
    assert "not covered" in findings[0].message


def test_secret_below_ignored_nested_directory_is_not_reported(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({".gitignore": "config/secrets/\n", "config/secrets/.env": "TOKEN=1\n"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".gitignore"}))

    findings = Auditor([SecretExposureRule()]).audit(snapshot, (registry.generic,))

    assert findings == []


def test_secret_re_included_by_negation_is_reported(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({".gitignore": "*.key\n!prod.key\n", "prod.key": "k\n", "dev.key": "k\n"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".gitignore"}))

    findings = Auditor([SecretExposureRule()]).audit(snapshot, (registry.generic,))

    assert [finding.paths for finding in findings] == [("prod.key",)]


def test_findings_are_ordered_by_severity_then_first_path(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"z.pem": "k\n", ".env": "TOKEN=1\n", "README.md": "[gone](missing.md)\n"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={"z.pem"}))

    findings = Auditor([StaleReferenceRule(), SecretExposureRule()]).audit(snapshot, (registry.generic,))

    assert [finding.paths[0] for finding in findings] == [".env", "z.pem", "README.md"]


def test_tracked_artifacts_are_grouped_into_one_finding(registry, make_repo, capture_snapshot) -> None:
    root = make_repo(
        {
            "pyproject.toml": "",
            "app.py": "",
            "__pycache__/app.cpython-312.pyc": "x",
            "debug.log": "x",
            ".env": "x",
        }
    )
    tracked = {"pyproject.toml", "app.py", "__pycache__/app.cpython-312.pyc", "debug.log", ".env"}
    snapshot = capture_snapshot(root, FakeVersionControl(tracked=tracked))

    findings = Auditor([TrackedArtifactRule()]).audit(snapshot, (registry.generic, registry.get("python-like")))

    assert len(findings) == 1
    assert findings[0].paths == ("__pycache__/app.cpython-312.pyc", "debug.log")
    assert findings[0].severity is Severity.STRUCTURAL


def test_files_ignored_by_repository_rules_count_as_artifacts(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"generated/out.bin": "x", "main.go": ""})
    version_control = FakeVersionControl(tracked={"generated/out.bin", "main.go"}, ignore_patterns=("generated/",))
    snapshot = capture_snapshot(root, version_control)

    findings = Auditor([TrackedArtifactRule()]).audit(snapshot, (registry.generic,))

    assert findings[0].paths == ("generated/out.bin",)


def test_stale_markdown_links_are_reported_per_document(registry, make_repo, capture_snapshot) -> None:
    root = make_repo(
        {
            "README.md": "See [guide](docs/guide.md), [site](https://example.com) and [api](docs/api.md#top).\n",
            "docs/api.md": "Back to [readme](../README.md)\n",
        }
    )
    snapshot = capture_snapshot(root, FakeVersionControl())

    findings = Auditor([StaleReferenceRule()]).audit(snapshot, (registry.generic,))

    assert len(findings) == 1
    assert findings[0].paths == ("README.md",)
    assert "docs/guide.md" in findings[0].message
    assert findings[0].severity is Severity.STALE_REFERENCE


def test_version_mismatch_between_manifest_and_package(registry, make_repo, capture_snapshot) -> None:
    root = make_repo(
        {
            "pyproject.toml": '[project]\nname = "demo"\nversion = "1.2.0"\n',
            "demo/__init__.py": '__version__ = "1.1.0"\n',
        }
    )
    snapshot = capture_snapshot(root, FakeVersionControl())

    findings = Auditor([VersionMismatchRule()]).audit(snapshot, (registry.generic, registry.get("python-like")))

    assert len(findings) == 1
    assert findings[0].category is FindingCategory.VERSION_MISMATCH
    assert findings[0].paths == ("pyproject.toml", "demo/__init__.py")
    assert findings[0].ecosystem == "python-like"


def test_missing_tests_and_manifest_are_reported(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"index.js": "console.log(1)\n"})
    snapshot = capture_snapshot(root, FakeVersionControl())
    capability = registry.get("javascript-like")

    findings = Auditor([MissingTestsRule(), MissingManifestRule()]).audit(snapshot, (registry.generic, capability))

    assert {finding.category for finding in findings} == {
        FindingCategory.MISSING_TEST,
        FindingCategory.MISSING_MANIFEST,
    }
    assert {finding.remediation for finding in findings} == {"tests", "packaging"}


def test_large_file_is_advisory(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": "", "big.go": "x\n" * 900, "small.go": "x\n"})
    snapshot = capture_snapshot(root, FakeVersionControl())

    findings = Auditor([LargeFileRule()]).audit(snapshot, (registry.generic, registry.get("go-like")))

    assert [finding.paths for finding in findings] == [("big.go",)]
    assert findings[0].remediation is None


def test_lint_rule_reports_error_count(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"pyproject.toml": "", "app.py": "import os\n"})
    snapshot = capture_snapshot(root, FakeVersionControl())
    runner = FakeToolRunner(
        {"ruff": CommandOutcome(exit_code=1, stdout="app.py:1:8: F401 `os` imported but unused\nFound 1 error.\n")}
    )

    findings = Auditor([LintErrorsRule(runner)]).audit(snapshot, (registry.generic, registry.get("python-like")))

    assert len(findings) == 1
    assert findings[0].paths == ("app.py",)
    assert findings[0].message.startswith("1 lint error")


def test_rules_skip_capabilities_without_the_data_they_need(make_repo, capture_snapshot) -> None:
    root = make_repo({"notes.txt": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())
    bare = (CapabilitySet(ecosystem="bare"),)
    runner = FakeToolRunner()

    assert list(LintErrorsRule(runner).check(snapshot, bare)) == []
    assert list(MissingManifestRule().check(snapshot, bare)) == []
    assert runner.calls == []


def test_failing_rule_becomes_finding_and_others_still_run(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({".env": "x"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".env"}))

    findings = Auditor([ExplodingRule(), SecretExposureRule()]).audit(snapshot, (registry.generic,))

    categories = [finding.category for finding in findings]
    assert categories == [FindingCategory.SECRET_EXPOSURE, FindingCategory.RULE_FAILED]
    assert "boom" in findings[1].message


def test_rule_without_applicable_capability_is_skipped(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"notes.txt": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())
    rule = NeedsLintRule()

    Auditor([rule]).audit(snapshot, (registry.generic,))

    assert rule.calls == 0


def test_findings_are_grouped_by_severity(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"pyproject.toml": "", "app.py": "", ".env": "x", "README.md": "[x](missing.md)\n"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".env"}))

    findings = Auditor(default_rules()).audit(snapshot, (registry.generic, registry.get("python-like")))

    severities = [finding.severity for finding in findings]
    assert severities == sorted(severities)
    assert severities[0] is Severity.SECRET_EXPOSURE


def test_audit_does_not_touch_the_repository(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"pyproject.toml": "", "app.py": "", ".env": "x"})
    before = sorted(path.as_posix() for path in root.rglob("*"))
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".env"}))

    Auditor(default_rules()).audit(snapshot, (registry.generic, registry.get("python-like")))

    assert sorted(path.as_posix() for path in root.rglob("*")) == before
