from __future__ import annotations
"""Git hygiene: ignore rules for secrets and artifacts, and untracking of files already committed."""

from typing import Iterable, Sequence

from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, PhaseId
from repo_transform_tool.domain.patterns import matches_any
from repo_transform_tool.domain.phases import Phase, PhaseWorkspace

GITIGNORE_PATH = ".gitignore"
GITIGNORE_HEADER = "# repolish: ignore rules"


class GitHygienePhase(Phase):
    """Append missing ignore patterns to `.gitignore` and stop tracking matching files.

    Destructive: untracked files stay on disk but leave the index, so the
    operator has to name this phase explicitly when approving.
    """

    kind = "git-hygiene"
    destructive = True
    description = "Add ignore rules for secrets and build artifacts; stop tracking matching files"

    def __init__(
        self,
        *,
        patterns: Sequence[str],
        untrack_paths: Sequence[str] = (),
        depends_on: Iterable[PhaseId] = (),
        capability: CapabilitySet | None = None,
    ) -> None:
        self.patterns = tuple(dict.fromkeys(pattern.strip() for pattern in patterns if pattern.strip()))
        self.untrack_paths = tuple(sorted(set(untrack_paths)))
        super().__init__(
            write_set=(GITIGNORE_PATH, *self.untrack_paths),
            depends_on=depends_on,
            capability=capability,
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: AuditSnapshot,
        capability: CapabilitySet,
        *,
        capability_sets: Sequence[CapabilitySet] = (),
        depends_on: Iterable[PhaseId] = (),
    ) -> GitHygienePhase | None:
        sources = (capability, *capability_sets)
        secret_patterns = tuple(pattern for item in sources for pattern in item.secret_patterns)
        ignore_patterns = tuple(pattern for item in sources for pattern in item.ignore_patterns)
        patterns = (*ignore_patterns, *secret_patterns)
        if not patterns:
            return None

        untrack = [
            path
            for path in snapshot.tracked
            if path != GITIGNORE_PATH
            and (path in snapshot.ignored_tracked or matches_any(path, patterns))
        ]
        return cls(patterns=patterns, untrack_paths=untrack, depends_on=depends_on, capability=capability)

    def apply(self, workspace: PhaseWorkspace) -> str:
        existing = workspace.read_text(GITIGNORE_PATH) or ""
        present = {line.strip() for line in existing.splitlines()}
        missing = [pattern for pattern in self.patterns if pattern not in present]

        if missing:
            content = existing
            if content and not content.endswith("\n"):
                content += "\n"
            if content:
                content += "\n"
            if GITIGNORE_HEADER not in present:
                content += f"{GITIGNORE_HEADER}\n"
            content += "".join(f"{pattern}\n" for pattern in missing)
            workspace.write_text(GITIGNORE_PATH, content)

        to_untrack = [path for path in self.untrack_paths if workspace.is_tracked(path)]
        if to_untrack:
            workspace.untrack(to_untrack)
        return f"added {len(missing)} ignore pattern(s), untracked {len(to_untrack)} file(s)"
