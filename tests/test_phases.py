from __future__ import annotations

from pathlib import Path

import pytest

from repo_transform_tool.adapters.filesystem.local_filesystem import LocalFileSystemAdapter
from repo_transform_tool.application.snapshots import GuardedWorkspace
from repo_transform_tool.domain.entities import CapabilitySet, FileTemplate
from repo_transform_tool.domain.errors import PlanError, WriteSetViolation
from repo_transform_tool.domain.phases import Phase
from repo_transform_tool.phases import (
    CiWorkflowPhase,
    DocsPhase,
    GitHygienePhase,
    LintConfigPhase,
    PackagingPhase,
    SecurityPolicyPhase,
    TestScaffoldPhase,
    project_slug,
    render_template,
)
from tests.fakes import FakeVersionControl, tree


def _apply(phase: Phase, root: Path, version_control: FakeVersionControl) -> str:
    workspace = GuardedWorkspace(
        repo_root=root,
        phase_id=phase.phase_id,
        write_set=frozenset(phase.write_set),
        filesystem=LocalFileSystemAdapter(),
        version_control=version_control,
    )
    return phase.apply(workspace)


def test_project_slug_and_template_rendering() -> None:
    template = FileTemplate(path="x", content='name = "{{project_name}}"\nversion = "{{version}}"')

    assert project_slug("My Project!") == "my-project"
    assert project_slug("...") == "project"
    assert render_template(template, project_name="Demo App", version="2.0.0") == (
        'name = "demo-app"\nversion = "2.0.0"\n'
    )


def test_git_hygiene_appends_patterns_and_untracks_secrets(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({".gitignore": "node_modules/", ".env": "TOKEN=1\n", "go.mod": "module demo\n"})
    version_control = FakeVersionControl(tracked={".gitignore", ".env", "go.mod"})
    snapshot = capture_snapshot(root, version_control)
    phase = GitHygienePhase.from_snapshot(snapshot, registry.generic, capability_sets=(registry.get("go-like"),))

    message = _apply(phase, root, version_control)

    gitignore = (root / ".gitignore").read_text(encoding="utf-8")
    assert gitignore.startswith("node_modules/\n\n# repolish: ignore rules\n")
    assert ".env\n" in gitignore
    assert "/bin/\n" in gitignore
    assert version_control.tracked == {".gitignore", "go.mod"}
    assert (root / ".env").exists()
    assert "untracked 1 file(s)" in message


def test_git_hygiene_second_apply_changes_nothing(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({".env": "TOKEN=1\n", "go.mod": ""})
    version_control = FakeVersionControl(tracked={".env", "go.mod"})
    snapshot = capture_snapshot(root, version_control)
    phase = GitHygienePhase.from_snapshot(snapshot, registry.generic, capability_sets=(registry.get("go-like"),))

    _apply(phase, root, version_control)
    after_first = tree(root)
    message = _apply(phase, root, version_control)

    assert tree(root) == after_first
    assert message == "added 0 ignore pattern(s), untracked 0 file(s)"


def test_packaging_creates_missing_manifest(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"index.js": "console.log(1)\n"}, name="Web App")
    version_control = FakeVersionControl()
    snapshot = capture_snapshot(root, version_control)
    phase = PackagingPhase.from_snapshot(snapshot, registry.get("javascript-like"))

    message = _apply(phase, root, version_control)

    manifest = (root / "package.json").read_text(encoding="utf-8")
    assert '"name": "web-app"' in manifest
    assert '"version": "0.1.0"' in manifest
    assert message == "created package.json"


def test_packaging_aligns_versions_with_the_manifest(registry, make_repo, capture_snapshot) -> None:
    root = make_repo(
        {
            "pyproject.toml": '[project]\nname = "demo"\nversion = "1.2.0"\n',
            "demo/__init__.py": '__version__ = "1.1.0"\n',
        }
    )
    version_control = FakeVersionControl()
    snapshot = capture_snapshot(root, version_control)
    phase = PackagingPhase.from_snapshot(snapshot, registry.get("python-like"))

    assert phase.write_set == ("demo/__init__.py", "pyproject.toml")
    _apply(phase, root, version_control)

    assert (root / "demo/__init__.py").read_text(encoding="utf-8") == '__version__ = "1.2.0"\n'
    assert _apply(phase, root, version_control) == "packaging already consistent"


def test_scaffold_phases_only_create_missing_files(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"pyproject.toml": "", "ruff.toml": "line-length = 88\n"})
    version_control = FakeVersionControl()
    snapshot = capture_snapshot(root, version_control)
    python = registry.get("python-like")

    lint = LintConfigPhase.from_snapshot(snapshot, python)
    scaffold = TestScaffoldPhase.from_snapshot(snapshot, python)
    ci = CiWorkflowPhase.from_snapshot(snapshot, python)

    assert _apply(lint, root, version_control) == "ruff.toml already present"
    assert (root / "ruff.toml").read_text(encoding="utf-8") == "line-length = 88\n"
    assert _apply(scaffold, root, version_control) == "created tests/test_smoke.py"
    assert _apply(ci, root, version_control) == "created .github/workflows/python.yml"
    assert _apply(ci, root, version_control) == "CI workflows already present"
    assert lint.requires_verification and scaffold.requires_verification
    assert not ci.requires_verification


def test_phases_without_capability_support_are_not_built(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())
    bare = CapabilitySet(ecosystem="bare")

    assert TestScaffoldPhase.from_snapshot(snapshot, registry.get("go-like")) is None
    assert LintConfigPhase.from_snapshot(snapshot, bare) is None
    assert CiWorkflowPhase.from_snapshot(snapshot, bare) is None
    assert PackagingPhase.from_snapshot(snapshot, bare) is None
    assert SecurityPolicyPhase.from_snapshot(snapshot, bare) is None
    assert DocsPhase.from_snapshot(snapshot, bare) is None


@pytest.mark.parametrize("phase_type", [TestScaffoldPhase, LintConfigPhase, SecurityPolicyPhase])
def test_phase_requires_its_template(phase_type) -> None:
    with pytest.raises(PlanError, match="bare"):
        phase_type(capability=CapabilitySet(ecosystem="bare"))


def test_docs_phase_unlinks_missing_targets_and_keeps_valid_links(registry, make_repo, capture_snapshot) -> None:
    root = make_repo(
        {
            "README.md": "Read [the guide](docs/guide.md) or [the api](docs/api.md).\n",
            "docs/api.md": "# API\n",
        }
    )
    version_control = FakeVersionControl()
    snapshot = capture_snapshot(root, version_control)
    phase = DocsPhase.from_snapshot(snapshot, registry.generic)

    assert phase.write_set == ("README.md",)
    message = _apply(phase, root, version_control)

    assert (root / "README.md").read_text(encoding="utf-8") == "Read the guide or [the api](docs/api.md).\n"
    assert message == "README.md: unlinked docs/guide.md"
    assert _apply(phase, root, version_control) == "documentation already consistent"


def test_docs_phase_creates_readme_when_missing(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"main.go": ""}, name="tool")
    version_control = FakeVersionControl()
    snapshot = capture_snapshot(root, version_control)
    phase = DocsPhase.from_snapshot(snapshot, registry.generic)

    _apply(phase, root, version_control)

    assert (root / "README.md").read_text(encoding="utf-8").startswith("# tool\n")


def test_security_policy_respects_existing_alternative_location(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({".github/SECURITY.md": "policy\n"})
    version_control = FakeVersionControl()
    snapshot = capture_snapshot(root, version_control)
    phase = SecurityPolicyPhase.from_snapshot(snapshot, registry.generic)

    assert _apply(phase, root, version_control) == "security policy already present"
    assert not (root / "SECURITY.md").exists()


def test_write_outside_write_set_is_rejected(make_repo) -> None:
    root = make_repo({"a.txt": "a"})

    class Rogue(Phase):
        kind = "rogue"

        def apply(self, workspace):
            workspace.write_text("b.txt", "b")
            return "done"

    with pytest.raises(WriteSetViolation) as error:
        _apply(Rogue(write_set=("a.txt",)), root, FakeVersionControl())

    assert error.value.path == "b.txt"
    assert not (root / "b.txt").exists()


def test_phase_ids_include_the_ecosystem(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())

    assert LintConfigPhase.from_snapshot(snapshot, registry.get("go-like")).phase_id == "lint:go-like"
    assert SecurityPolicyPhase.from_snapshot(snapshot, registry.generic).phase_id == "security"
