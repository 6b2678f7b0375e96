from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import Sequence

from repo_transform_tool.domain.errors import VersionControlError
from repo_transform_tool.domain.ports import RepositoryStatus, VersionControlPort


_PATH_BATCH_SIZE = 500


class ShellGitClientAdapter(VersionControlPort):
    def __init__(self, *, git_executable: str = "git", timeout_seconds: float = 300.0) -> None:
        self._git_executable = git_executable
        self._timeout_seconds = timeout_seconds
        self._logger = logging.getLogger(__name__)
        # git serializes index writers through index.lock; concurrent phases must not race it
        self._index_lock = threading.Lock()

    def clone(self, clone_url: str, local_path: Path) -> None:
        if local_path.exists():
            self._logger.info(
                "clone skipped: path already exists",
                extra={"event": "git.clone.skip_exists", "local_path": str(local_path)},
            )
            return

        local_path.parent.mkdir(parents=True, exist_ok=True)
        self._logger.info(
            "cloning repository",
            extra={"event": "git.clone.start", "clone_url": clone_url, "local_path": str(local_path)},
        )
        self._run_git(["clone", clone_url, str(local_path)], cwd=local_path.parent)
        self._logger.info(
            "clone completed",
            extra={"event": "git.clone.success", "local_path": str(local_path)},
        )

    def pull(self, local_path: Path) -> None:
        if not (local_path / ".git").exists():
            raise VersionControlError(f"Cannot pull repository: not a git repository: {local_path}")

        self._logger.info("pulling repository", extra={"event": "git.pull.start", "local_path": str(local_path)})
        self._run_git(["fetch", "--prune", "origin"], cwd=local_path)
        if self._run_git_allow_fail(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"], cwd=local_path).returncode != 0:
            self._logger.info(
                "repository has no upstream tracking; pull skipped after fetch",
                extra={"event": "git.pull.no_upstream", "local_path": str(local_path)},
            )
            return
        self._run_git(["pull", "--ff-only"], cwd=local_path)
        self._logger.info("pull completed", extra={"event": "git.pull.success", "local_path": str(local_path)})

    def is_repository(self, root: Path) -> bool:
        if not root.is_dir():
            return False
        result = self._run_git_allow_fail(["rev-parse", "--show-toplevel"], cwd=root)
        if result.returncode != 0:
            return False
        # a directory nested inside another work tree is not a repository root
        return Path((result.stdout or "").strip()).resolve() == root.resolve()

    def status(self, root: Path) -> RepositoryStatus:
        tracked_output = self._run_git(["ls-files", "-z"], cwd=root).stdout or ""
        tracked = frozenset(item for item in tracked_output.split("\0") if item)

        status_output = self._run_git(
            ["status", "--porcelain=v1", "-z", "--untracked-files=all"],
            cwd=root,
        ).stdout or ""
        modified: set[str] = set()
        untracked: set[str] = set()
        tokens = status_output.split("\0")
        index = 0
        while index < len(tokens):
            token = tokens[index]
            index += 1
            if len(token) < 4:
                continue
            code, path = token[:2], token[3:]
            if code == "??":
                untracked.add(path)
                continue
            modified.add(path)
            if code[0] in {"R", "C"}:
                # rename/copy entries carry the source path as the next token
                index += 1

        return RepositoryStatus(tracked=tracked, modified=frozenset(modified), untracked=frozenset(untracked))

    def stage(self, root: Path, paths: Sequence[str]) -> None:
        existing = [path for path in paths if (root / path).exists()]
        if not existing:
            return
        with self._index_lock:
            for batch in _batched(existing):
                self._run_git(["add", "--force", "--", *batch], cwd=root)
        self._logger.debug("paths staged", extra={"event": "git.stage", "paths": existing})

    def unstage(self, root: Path, paths: Sequence[str]) -> None:
        if not paths:
            return
        with self._index_lock:
            for batch in _batched(list(paths)):
                self._run_git(["rm", "--cached", "--quiet", "--ignore-unmatch", "-r", "--", *batch], cwd=root)
        self._logger.debug("paths untracked", extra={"event": "git.unstage", "paths": list(paths)})

    def diff(self, root: Path, paths: Sequence[str] = ()) -> str:
        pathspec = ["--", *paths] if paths else []
        unstaged = self._run_git(["diff", "--stat", *pathspec], cwd=root).stdout or ""
        staged = self._run_git(["diff", "--cached", "--stat", *pathspec], cwd=root).stdout or ""
        return "\n".join(part.strip() for part in (staged, unstaged) if part.strip())

    def check_ignored(self, root: Path, paths: Sequence[str]) -> frozenset[str]:
        ignored: set[str] = set()
        for batch in _batched(list(paths)):
            result = self._run_git_allow_fail(["check-ignore", "--no-index", "-z", "--", *batch], cwd=root)
            if result.returncode not in {0, 1}:
                raise VersionControlError(
                    f"git check-ignore failed ({result.returncode}): {(result.stderr or '').strip()}"
                )
            ignored.update(item for item in (result.stdout or "").split("\0") if item)
        return frozenset(ignored)

    def _run_git_allow_fail(self, args: Sequence[str], cwd: Path) -> subprocess.CompletedProcess[str]:
        command = [self._git_executable, *args]
        try:
            return subprocess.run(
                command,
                cwd=str(cwd),
                check=False,
                text=True,
                capture_output=True,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as error:
            raise VersionControlError(
                f"Git executable '{self._git_executable}' was not found in PATH"
            ) from error
        except subprocess.TimeoutExpired as error:
            raise VersionControlError(
                f"Git command timed out after {self._timeout_seconds}s: {' '.join(command)}"
            ) from error

    def _run_git(self, args: Sequence[str], cwd: Path) -> subprocess.CompletedProcess[str]:
        command = [self._git_executable, *args]
        try:
            return subprocess.run(
                command,
                cwd=str(cwd),
                check=True,
                text=True,
                capture_output=True,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as error:
            raise VersionControlError(
                f"Git executable '{self._git_executable}' was not found in PATH"
            ) from error
        except subprocess.TimeoutExpired as error:
            raise VersionControlError(
                f"Git command timed out after {self._timeout_seconds}s: {' '.join(command)}"
            ) from error
        except subprocess.CalledProcessError as error:
            stderr = (error.stderr or "").strip()
            stdout = (error.stdout or "").strip()
            details = stderr or stdout or "No command output"
            self._logger.error(
                "git command failed",
                extra={
                    "event": "git.command.error",
                    "command": " ".join(command),
                    "cwd": str(cwd),
                    "return_code": error.returncode,
                    "details": details,
                },
            )
            raise VersionControlError(
                f"Git command failed ({error.returncode}): {' '.join(command)}\n{details}"
            ) from error


def _batched(paths: list[str]) -> list[list[str]]:
    return [paths[index : index + _PATH_BATCH_SIZE] for index in range(0, len(paths), _PATH_BATCH_SIZE)]
