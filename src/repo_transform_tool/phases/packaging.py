from __future__ import annotations

from typing import Iterable, Sequence

from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, PhaseId, VersionSource
from repo_transform_tool.domain.phases import Phase, PhaseWorkspace
from repo_transform_tool.domain.versions import extract_version, replace_version, version_source_paths

from .templates import DEFAULT_VERSION, render_template


class PackagingPhase(Phase):
    """Create a missing packaging manifest and align every declared version with the first one."""

    kind = "packaging"
    description = "Create the packaging manifest and synchronize version declarations"

    def __init__(
        self,
        *,
        capability: CapabilitySet,
        version_paths: Sequence[tuple[str, VersionSource]] = (),
        depends_on: Iterable[PhaseId] = (),
    ) -> None:
        self.version_paths = tuple(version_paths)
        manifest_paths = (capability.manifest.path,) if capability.manifest else ()
        super().__init__(
            write_set=(*manifest_paths, *(path for path, _ in self.version_paths)),
            depends_on=depends_on,
            ecosystem=capability.ecosystem,
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
    ) -> PackagingPhase | None:
        if capability.manifest is None and not capability.version_sources:
            return None
        version_paths = [
            (path, source)
            for source in capability.version_sources
            for path in version_source_paths(snapshot.files, source)
        ]
        if capability.manifest is None and not version_paths:
            return None
        return cls(capability=capability, version_paths=version_paths, depends_on=depends_on)

    def apply(self, workspace: PhaseWorkspace) -> str:
        declared: list[tuple[str, VersionSource, str]] = []
        for path, source in self.version_paths:
            content = workspace.read_text(path)
            version = extract_version(content, source.pattern) if content is not None else None
            if version is not None:
                declared.append((path, source, version))
        target = declared[0][2] if declared else DEFAULT_VERSION

        actions: list[str] = []
        manifest = self.capability.manifest if self.capability else None
        if manifest is not None and not workspace.exists(manifest.path):
            workspace.write_text(manifest.path, render_template(manifest, project_name=workspace.project_name, version=target))
            actions.append(f"created {manifest.path}")

        for path, source, version in declared:
            if version == target:
                continue
            content = workspace.read_text(path) or ""
            workspace.write_text(path, replace_version(content, source.pattern, target))
            actions.append(f"{path} {version} -> {target}")

        return "; ".join(actions) if actions else "packaging already consistent"
