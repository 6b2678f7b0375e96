from __future__ import annotations
"""Hexagonal architecture port interfaces.

Core use cases depend only on these abstractions. Adapters provide concrete
implementations for the filesystem, git, external tools, operator channels
and persisted state.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from .entities import (
    ApprovalRequest,
    CommandOutcome,
    CommandSpec,
    LintReport,
    OperatorResponse,
    TestReport,
)


class FileSystemPort(ABC):
    """Filesystem operations abstracted for testability and portability."""

    @abstractmethod
    def ensure_directory(self, path: Path) -> None:
        """Ensure target directory exists (create recursively if needed)."""
        raise NotImplementedError

    @abstractmethod
    def path_exists(self, path: Path) -> bool:
        """Return whether a path exists."""
        raise NotImplementedError

    @abstractmethod
    def list_files(self, root: Path, *, exclude_dirs: Iterable[str] = ()) -> list[str]:
        """Return sorted POSIX paths of every file under `root`, relative to it.

        Directories whose relative path (or name) is in `exclude_dirs` are pruned.
        Raises `AccessError` when `root` cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    def read_bytes(self, path: Path) -> bytes | None:
        """Return file content, or None when the file does not exist."""
        raise NotImplementedError

    @abstractmethod
    def write_bytes(self, path: Path, data: bytes) -> None:
        """Write file content, creating parent directories."""
        raise NotImplementedError

    @abstractmethod
    def remove_file(self, path: Path) -> None:
        """Remove a file if present."""
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class RepositoryStatus:
    tracked: frozenset[str]
    modified: frozenset[str]
    untracked: frozenset[str]


class VersionControlPort(ABC):
    """Versioned filesystem primitives (git in production)."""

    @abstractmethod
    def clone(self, clone_url: str, local_path: Path) -> None:
        """Clone remote repository into local path."""
        raise NotImplementedError

    @abstractmethod
    def pull(self, local_path: Path) -> None:
        """Update an existing local repository."""
        raise NotImplementedError

    @abstractmethod
    def is_repository(self, root: Path) -> bool:
        raise NotImplementedError

    @abstractmethod
    def status(self, root: Path) -> RepositoryStatus:
        raise NotImplementedError

    def tracked_files(self, root: Path) -> frozenset[str]:
        return self.status(root).tracked

    @abstractmethod
    def stage(self, root: Path, paths: Sequence[str]) -> None:
        """Start tracking (or record changes of) the given paths."""
        raise NotImplementedError

    @abstractmethod
    def unstage(self, root: Path, paths: Sequence[str]) -> None:
        """Stop tracking the given paths, keeping the working-tree files."""
        raise NotImplementedError

    @abstractmethod
    def diff(self, root: Path, paths: Sequence[str] = ()) -> str:
        """Return a short textual diff summary for the working tree."""
        raise NotImplementedError

    @abstractmethod
    def check_ignored(self, root: Path, paths: Sequence[str]) -> frozenset[str]:
        """Return the subset of `paths` matched by the repository ignore rules."""
        raise NotImplementedError


class ToolRunnerPort(ABC):
    """Runs ecosystem tools described by `CommandSpec` entries."""

    @abstractmethod
    def run(self, spec: CommandSpec, cwd: Path) -> CommandOutcome:
        """Run a command within its own timeout; timeouts set `timed_out`."""
        raise NotImplementedError

    def lint(self, spec: CommandSpec, cwd: Path) -> LintReport:
        """Run a linter and count its messages.

        A zero exit status means no errors. Otherwise every non-empty output
        line (or every line matching `spec.output_pattern`) is one message.
        """
        outcome = self.run(spec, cwd)
        if outcome.timed_out:
            return LintReport(error_count=1, messages=(f"lint timed out after {spec.timeout_seconds}s",))
        if outcome.exit_code == 0:
            return LintReport(error_count=0)

        lines = [line.strip() for line in f"{outcome.stdout}\n{outcome.stderr}".splitlines() if line.strip()]
        if spec.output_pattern:
            pattern = re.compile(spec.output_pattern)
            lines = [line for line in lines if pattern.search(line)]
        if not lines:
            lines = [f"lint exited with status {outcome.exit_code}"]
        return LintReport(error_count=len(lines), messages=tuple(lines))

    def test(self, spec: CommandSpec, cwd: Path) -> TestReport:
        """Run a test suite; extract coverage with `spec.output_pattern` when given."""
        outcome = self.run(spec, cwd)
        if outcome.timed_out:
            return TestReport(passed=False, detail="Timeout", timed_out=True)

        coverage: float | None = None
        if spec.output_pattern:
            match = re.search(spec.output_pattern, f"{outcome.stdout}\n{outcome.stderr}")
            if match:
                try:
                    coverage = float(match.group(1))
                except (IndexError, ValueError):
                    coverage = None

        detail = "" if outcome.exit_code == 0 else _tail(outcome.stderr or outcome.stdout)
        return TestReport(passed=outcome.exit_code == 0, coverage=coverage, detail=detail)


class OperatorChannelPort(ABC):
    """Request/response exchange with the human operator. Never auto-approves."""

    @abstractmethod
    def request(self, request: ApprovalRequest) -> OperatorResponse:
        """Block until the operator answers `request`."""
        raise NotImplementedError


class AppendOnlyLogPort(ABC):
    """Persisted append-only record log."""

    @abstractmethod
    def append(self, record: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def read_all(self) -> list[dict[str, Any]]:
        raise NotImplementedError


def _tail(text: str, lines: int = 20) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])
