from __future__ import annotations

import sys
from pathlib import Path
from typing import Mapping

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from repo_transform_tool.adapters.filesystem.local_filesystem import LocalFileSystemAdapter
from repo_transform_tool.application.capabilities import CapabilityRegistry, load_capability_registry
from repo_transform_tool.application.snapshots import RepositoryInspector, SnapshotManager
from repo_transform_tool.domain.entities import AuditSnapshot
from repo_transform_tool.domain.ports import VersionControlPort
from tests.fakes import write_files


@pytest.fixture(scope="session")
def registry() -> CapabilityRegistry:
    return load_capability_registry()


@pytest.fixture
def filesystem() -> LocalFileSystemAdapter:
    return LocalFileSystemAdapter()


@pytest.fixture
def make_repo(tmp_path: Path):
    def _make(files: Mapping[str, str], *, name: str = "demo") -> Path:
        root = tmp_path / name
        root.mkdir(parents=True, exist_ok=True)
        return write_files(root, files)

    return _make


@pytest.fixture
def capture_snapshot(filesystem: LocalFileSystemAdapter):
    def _capture(root: Path, version_control: VersionControlPort) -> AuditSnapshot:
        return RepositoryInspector(SnapshotManager(filesystem, version_control)).capture(root)

    return _capture
