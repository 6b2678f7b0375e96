from __future__ import annotations

from pathlib import Path
from typing import Sequence

from repo_transform_tool.domain.errors import VersionControlError
from repo_transform_tool.domain.ports import RepositoryStatus, VersionControlPort


class NoVersionControlAdapter(VersionControlPort):
    """Versioned-filesystem port for plain directories: nothing is tracked."""

    def clone(self, clone_url: str, local_path: Path) -> None:
        raise VersionControlError("Cannot clone without version control")

    def pull(self, local_path: Path) -> None:
        raise VersionControlError(f"Cannot pull: {local_path} is not under version control")

    def is_repository(self, root: Path) -> bool:
        return False

    def status(self, root: Path) -> RepositoryStatus:
        return RepositoryStatus(tracked=frozenset(), modified=frozenset(), untracked=frozenset())

    def stage(self, root: Path, paths: Sequence[str]) -> None:
        if paths:
            raise VersionControlError(f"Cannot stage files: {root} is not under version control")

    def unstage(self, root: Path, paths: Sequence[str]) -> None:
        if paths:
            raise VersionControlError(f"Cannot untrack files: {root} is not under version control")

    def diff(self, root: Path, paths: Sequence[str] = ()) -> str:
        return ""

    def check_ignored(self, root: Path, paths: Sequence[str]) -> frozenset[str]:
        return frozenset()
