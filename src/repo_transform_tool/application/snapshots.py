from __future__ import annotations
"""Content hashing, write-set snapshots and rollback.

A write-set state is hashed as the sorted list of `(path, content digest or
absence, tracked flag)` triples, so untracking a file changes the hash even
though its bytes do not.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from repo_transform_tool.domain.entities import AuditSnapshot, DiffSummary, RepositorySnapshot, SnapshotEntry
from repo_transform_tool.domain.errors import WriteSetViolation
from repo_transform_tool.domain.phases import PhaseWorkspace, normalize_path
from repo_transform_tool.domain.ports import FileSystemPort, VersionControlPort


LOGGER = logging.getLogger(__name__)

DEFAULT_EXCLUDED_DIRS = (".git",)


def digest_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_entries(entries: Iterable[SnapshotEntry]) -> str:
    hasher = hashlib.sha256()
    for entry in sorted(entries, key=lambda item: item.path):
        hasher.update(entry.path.encode("utf-8"))
        hasher.update(b"\0")
        hasher.update((entry.digest or "-").encode("ascii"))
        hasher.update(b"\0")
        hasher.update(b"T" if entry.tracked else b"U")
        hasher.update(b"\n")
    return hasher.hexdigest()


@dataclass(slots=True)
class SnapshotManager:
    """Captures, hashes, diffs and restores repository state through the ports."""

    filesystem: FileSystemPort
    version_control: VersionControlPort
    excluded_dirs: tuple[str, ...] = DEFAULT_EXCLUDED_DIRS

    def capture(self, root: Path, paths: Sequence[str]) -> RepositorySnapshot:
        tracked = self.version_control.tracked_files(root)
        entries: list[SnapshotEntry] = []
        blobs: dict[str, bytes] = {}
        for path in sorted({normalize_path(item) for item in paths}):
            data = self.filesystem.read_bytes(root / path)
            digest = digest_bytes(data) if data is not None else None
            if data is not None and digest is not None:
                blobs[digest] = data
            entries.append(SnapshotEntry(path=path, digest=digest, tracked=path in tracked))
        return RepositorySnapshot(snapshot_id=hash_entries(entries), entries=tuple(entries), blobs=blobs)

    def hash_paths(self, root: Path, paths: Sequence[str]) -> str:
        return self.capture(root, paths).snapshot_id

    def repository_hash(self, root: Path) -> str:
        """Hash of every working-tree file plus tracked paths (tracked-but-deleted included)."""
        files = self.filesystem.list_files(root, exclude_dirs=self.excluded_dirs)
        tracked = self.version_control.tracked_files(root)
        return self.capture(root, sorted({*files, *tracked})).snapshot_id

    def restore(self, root: Path, snapshot: RepositorySnapshot) -> bool:
        """Restore every snapshot path; return whether the restored hash matches the snapshot."""
        for entry in snapshot.entries:
            target = root / entry.path
            if entry.digest is None:
                self.filesystem.remove_file(target)
            else:
                current = self.filesystem.read_bytes(target)
                if current is None or digest_bytes(current) != entry.digest:
                    self.filesystem.write_bytes(target, snapshot.blobs[entry.digest])

        tracked_now = self.version_control.tracked_files(root)
        to_track = [entry.path for entry in snapshot.entries if entry.tracked and entry.path not in tracked_now]
        to_untrack = [entry.path for entry in snapshot.entries if not entry.tracked and entry.path in tracked_now]
        if to_track:
            self.version_control.stage(root, to_track)
        if to_untrack:
            self.version_control.unstage(root, to_untrack)

        restored_hash = self.hash_paths(root, [entry.path for entry in snapshot.entries])
        matched = restored_hash == snapshot.snapshot_id
        if not matched:
            LOGGER.error(
                "restored write-set does not match its snapshot",
                extra={
                    "event": "snapshot.restore.mismatch",
                    "snapshot_id": snapshot.snapshot_id,
                    "restored_hash": restored_hash,
                },
            )
        return matched

    def diff(self, root: Path, snapshot: RepositorySnapshot) -> DiffSummary:
        after = self.capture(root, [entry.path for entry in snapshot.entries])
        added: list[str] = []
        modified: list[str] = []
        removed: list[str] = []
        untracked: list[str] = []
        tracked: list[str] = []
        for before_entry, after_entry in zip(snapshot.entries, after.entries):
            if before_entry.digest is None and after_entry.digest is not None:
                added.append(after_entry.path)
            elif before_entry.digest is not None and after_entry.digest is None:
                removed.append(after_entry.path)
            elif before_entry.digest != after_entry.digest:
                modified.append(after_entry.path)
            if before_entry.tracked and not after_entry.tracked:
                untracked.append(after_entry.path)
            elif not before_entry.tracked and after_entry.tracked:
                tracked.append(after_entry.path)
        return DiffSummary(
            added=tuple(added),
            modified=tuple(modified),
            removed=tuple(removed),
            untracked=tuple(untracked),
            tracked=tuple(tracked),
        )


@dataclass(slots=True)
class RepositoryInspector:
    """Builds the read-only `AuditSnapshot` consumed by the auditor."""

    snapshots: SnapshotManager

    def capture(self, root: Path) -> AuditSnapshot:
        filesystem = self.snapshots.filesystem
        version_control = self.snapshots.version_control
        files = filesystem.list_files(root, exclude_dirs=self.snapshots.excluded_dirs)
        tracked = version_control.tracked_files(root)
        ignored_tracked = version_control.check_ignored(root, sorted(tracked)) if tracked else frozenset()
        content_hash = self.snapshots.capture(root, sorted({*files, *tracked})).snapshot_id
        return AuditSnapshot(
            root=root,
            files=tuple(files),
            tracked=frozenset(tracked),
            ignored_tracked=frozenset(ignored_tracked),
            content_hash=content_hash,
        )


@dataclass(slots=True)
class GuardedWorkspace(PhaseWorkspace):
    """`PhaseWorkspace` that only lets a phase mutate its declared write-set."""

    repo_root: Path
    phase_id: str
    write_set: frozenset[str]
    filesystem: FileSystemPort
    version_control: VersionControlPort
    cancel_event: threading.Event | None = None
    _tracked: frozenset[str] | None = field(default=None, init=False, repr=False)

    @property
    def root(self) -> Path:
        return self.repo_root

    def exists(self, path: str) -> bool:
        return self.filesystem.path_exists(self.repo_root / normalize_path(path))

    def read_text(self, path: str) -> str | None:
        data = self.filesystem.read_bytes(self.repo_root / normalize_path(path))
        return data.decode("utf-8", errors="replace") if data is not None else None

    def write_text(self, path: str, content: str) -> None:
        target = self._guard(path)
        self.filesystem.write_bytes(self.repo_root / target, content.encode("utf-8"))

    def is_tracked(self, path: str) -> bool:
        if self._tracked is None:
            self._tracked = self.version_control.tracked_files(self.repo_root)
        return normalize_path(path) in self._tracked

    def untrack(self, paths: Sequence[str]) -> None:
        targets = [self._guard(path) for path in paths]
        if targets:
            self.version_control.unstage(self.repo_root, targets)
            self._tracked = None

    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _guard(self, path: str) -> str:
        normalized = normalize_path(path)
        if normalized not in self.write_set:
            raise WriteSetViolation(self.phase_id, normalized)
        return normalized


@dataclass(slots=True)
class PreviewWorkspace(GuardedWorkspace):
    """`GuardedWorkspace` that records what `apply` would change and touches nothing.

    Writes of identical content and untracking of untracked paths are not
    changes, so a converged phase previews as an empty change list.
    """

    changes: list[str] = field(default_factory=list, init=False)
    _written: dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _untracked: set[str] = field(default_factory=set, init=False, repr=False)

    def exists(self, path: str) -> bool:
        return normalize_path(path) in self._written or GuardedWorkspace.exists(self, path)

    def read_text(self, path: str) -> str | None:
        normalized = normalize_path(path)
        if normalized in self._written:
            return self._written[normalized]
        return GuardedWorkspace.read_text(self, normalized)

    def write_text(self, path: str, content: str) -> None:
        target = self._guard(path)
        if self.read_text(target) != content:
            self.changes.append(target)
        self._written[target] = content

    def is_tracked(self, path: str) -> bool:
        return normalize_path(path) not in self._untracked and GuardedWorkspace.is_tracked(self, path)

    def untrack(self, paths: Sequence[str]) -> None:
        for path in paths:
            target = self._guard(path)
            if self.is_tracked(target):
                self.changes.append(target)
            self._untracked.add(target)
