from __future__ import annotations

from pathlib import Path

import pytest

from repo_transform_tool.application.detection import EcosystemDetector
from repo_transform_tool.domain.errors import AccessError


def test_go_module_is_detected_with_full_confidence(registry, filesystem, make_repo) -> None:
    root = make_repo({"go.mod": "module demo\n", ".env": "TOKEN=1\n"})

    detected = EcosystemDetector(registry, filesystem).detect(root)

    assert [item.ecosystem for item in detected] == ["go-like"]
    assert detected[0].confidence == 1.0
    assert detected[0].evidence == ("file:go.mod",)


def test_mixed_repository_returns_every_ecosystem_ordered_by_confidence(registry, filesystem, make_repo) -> None:
    root = make_repo({"package.json": "{}\n", "pyproject.toml": "[project]\nname = 'demo'\n"})

    detected = EcosystemDetector(registry, filesystem).detect(root)

    assert [item.ecosystem for item in detected] == ["javascript-like", "python-like"]
    assert detected[0].confidence == 1.0
    assert detected[1].confidence == 0.5


def test_confidence_ties_follow_registry_declaration_order(registry, filesystem, make_repo) -> None:
    root = make_repo({"Cargo.toml": "[package]\n", "go.mod": "module demo\n"})

    detected = EcosystemDetector(registry, filesystem).detect(root)

    assert [item.ecosystem for item in detected] == ["go-like", "rust-like"]


def test_nested_python_sources_count_as_evidence(registry, filesystem, make_repo) -> None:
    root = make_repo({"pyproject.toml": "", "src/demo/app.py": "print('hi')\n"})

    detected = EcosystemDetector(registry, filesystem).detect(root)

    assert detected[0].ecosystem == "python-like"
    assert detected[0].confidence == 1.0
    assert detected[0].evidence == ("file:pyproject.toml", "glob:*.py")


def test_unrecognised_repository_yields_unknown_sentinel(registry, filesystem, make_repo) -> None:
    root = make_repo({"notes.txt": "hello\n"})

    detected = EcosystemDetector(registry, filesystem).detect(root)

    assert len(detected) == 1
    assert detected[0].is_unknown
    assert detected[0].confidence == 0.0


def test_files_inside_git_directory_are_ignored(registry, filesystem, make_repo) -> None:
    root = make_repo({".git/go.mod": "module hidden\n", "README.md": "# demo\n"})

    detected = EcosystemDetector(registry, filesystem).detect(root)

    assert detected[0].is_unknown


def test_detection_is_deterministic(registry, filesystem, make_repo) -> None:
    root = make_repo({"package.json": "{}", "pyproject.toml": "", "main.py": "", "go.mod": ""})
    detector = EcosystemDetector(registry, filesystem)

    assert detector.detect(root) == detector.detect(root)


def test_missing_root_raises_access_error(registry, filesystem, tmp_path: Path) -> None:
    with pytest.raises(AccessError):
        EcosystemDetector(registry, filesystem).detect(tmp_path / "missing")
