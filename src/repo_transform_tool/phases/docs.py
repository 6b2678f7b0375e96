from __future__ import annotations
"""Documentation phase: README baseline and removal of links to missing files."""

from typing import Iterable, Sequence

from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, PhaseId
from repo_transform_tool.domain.phases import Phase, PhaseWorkspace
from repo_transform_tool.rules.stale_references import MARKDOWN_LINK_PATTERN, resolve_link_target, stale_links

from .templates import render_template


README_CANDIDATES = ("README.md", "README.rst", "README.txt", "README")


class DocsPhase(Phase):
    kind = "docs"
    description = "Add a README when missing and unlink references to missing files"

    def __init__(
        self,
        *,
        capability: CapabilitySet,
        documents: Sequence[str] = (),
        depends_on: Iterable[PhaseId] = (),
    ) -> None:
        self.documents = tuple(sorted(set(documents)))
        readme_paths = (capability.readme.path,) if capability.readme else ()
        super().__init__(
            write_set=(*readme_paths, *self.documents),
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
    ) -> DocsPhase | None:
        documents = []
        for path in snapshot.files:
            if not path.lower().endswith(".md"):
                continue
            content = snapshot.read_text(path)
            if content and stale_links(snapshot, path, content):
                documents.append(path)
        if capability.readme is None and not documents:
            return None
        return cls(capability=capability, documents=documents, depends_on=depends_on)

    def apply(self, workspace: PhaseWorkspace) -> str:
        actions: list[str] = []
        readme = self.capability.readme if self.capability else None
        if readme is not None and not any(workspace.exists(candidate) for candidate in README_CANDIDATES):
            workspace.write_text(readme.path, render_template(readme, project_name=workspace.project_name))
            actions.append(f"created {readme.path}")

        for document in self.documents:
            content = workspace.read_text(document)
            if content is None:
                continue
            removed: list[str] = []

            def unlink(match):
                resolved = resolve_link_target(document, match.group("target"))
                if resolved is None or workspace.exists(resolved):
                    return match.group(0)
                removed.append(match.group("target"))
                return match.group("text")

            updated = MARKDOWN_LINK_PATTERN.sub(unlink, content)
            if removed:
                workspace.write_text(document, updated)
                actions.append(f"{document}: unlinked {', '.join(removed)}")

        return "; ".join(actions) if actions else "documentation already consistent"
