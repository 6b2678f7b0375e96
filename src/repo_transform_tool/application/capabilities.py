from __future__ import annotations
"""Capability registry: immutable per-ecosystem capability sets.

The registry is built once at process start from static TOML configuration
(the packaged defaults, optionally merged with an operator override file) and
holds no mutable runtime state, so the same configuration always yields the
same plans.
"""

from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Sequence
import tomllib

from repo_transform_tool.domain.entities import (
    GENERIC_ECOSYSTEM,
    CapabilitySet,
    CommandSpec,
    EcosystemId,
    FileTemplate,
    ManifestPredicate,
    VersionSource,
)
from repo_transform_tool.domain.errors import CapabilityConfigError, UnknownEcosystemError


DEFAULT_CAPABILITIES_RESOURCE = "default_capabilities.toml"

_PREDICATE_KINDS = ("file", "glob")


class CapabilityRegistry:
    """Pure lookup table from ecosystem id to `CapabilitySet`."""

    def __init__(self, capability_sets: Sequence[CapabilitySet], *, generic: CapabilitySet) -> None:
        entries: dict[EcosystemId, CapabilitySet] = {}
        for capability in capability_sets:
            if capability.ecosystem in entries or capability.ecosystem == generic.ecosystem:
                raise CapabilityConfigError(f"Duplicate capability set for ecosystem '{capability.ecosystem}'")
            entries[capability.ecosystem] = capability
        self._entries = MappingProxyType(entries)
        self._generic = generic

    @property
    def generic(self) -> CapabilitySet:
        """Common capability set used for ecosystem-independent checks and as fallback."""
        return self._generic

    def ecosystems(self) -> tuple[CapabilitySet, ...]:
        """Registered ecosystem capability sets in declaration order."""
        return tuple(self._entries.values())

    def get(self, ecosystem: EcosystemId) -> CapabilitySet:
        try:
            return self._entries[ecosystem]
        except KeyError:
            raise UnknownEcosystemError(ecosystem) from None

    def __contains__(self, ecosystem: object) -> bool:
        return ecosystem in self._entries


def load_capability_registry(override_path: Path | None = None) -> CapabilityRegistry:
    """Build the registry from packaged defaults merged with an optional override file."""
    raw = resources.files("repo_transform_tool").joinpath(DEFAULT_CAPABILITIES_RESOURCE).read_text(encoding="utf-8")
    data = _parse_toml(raw, source=DEFAULT_CAPABILITIES_RESOURCE)

    if override_path is not None:
        try:
            override_raw = override_path.read_text(encoding="utf-8")
        except OSError as error:
            raise CapabilityConfigError(f"Cannot read capability override file {override_path}: {error}") from error
        data = merge_capability_data(data, _parse_toml(override_raw, source=str(override_path)))

    return registry_from_mapping(data)


def merge_capability_data(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Shallow-merge `common` keys; override ecosystems replace same ids and append new ones."""
    merged_common = dict(_table(base.get("common", {}), "common"))
    merged_common.update(_table(override.get("common", {}), "common"))

    merged_ecosystems = dict(_table(base.get("ecosystems", {}), "ecosystems"))
    for ecosystem, table in _table(override.get("ecosystems", {}), "ecosystems").items():
        merged_ecosystems[ecosystem] = table

    return {"common": merged_common, "ecosystems": merged_ecosystems}


def registry_from_mapping(data: Mapping[str, Any]) -> CapabilityRegistry:
    generic = _capability_from_table(GENERIC_ECOSYSTEM, _table(data.get("common", {}), "common"))
    capability_sets = [
        _capability_from_table(str(ecosystem), _table(table, f"ecosystems.{ecosystem}"))
        for ecosystem, table in _table(data.get("ecosystems", {}), "ecosystems").items()
    ]
    for capability in capability_sets:
        if not capability.signature:
            raise CapabilityConfigError(f"Ecosystem '{capability.ecosystem}' declares no detection signature")
    return CapabilityRegistry(capability_sets, generic=generic)


def _parse_toml(raw: str, *, source: str) -> dict[str, Any]:
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as error:
        raise CapabilityConfigError(f"Invalid capability configuration in {source}: {error}") from error


def _capability_from_table(ecosystem: EcosystemId, table: Mapping[str, Any]) -> CapabilitySet:
    where = f"ecosystem '{ecosystem}'"
    large_file_lines = table.get("large_file_lines")
    if large_file_lines is not None and (not isinstance(large_file_lines, int) or large_file_lines <= 0):
        raise CapabilityConfigError(f"{where}: large_file_lines must be a positive integer")

    return CapabilitySet(
        ecosystem=ecosystem,
        signature=tuple(_predicate(item, where) for item in _list(table.get("signature", []), "signature", where)),
        ignore_patterns=_strings(table.get("ignore_patterns", []), "ignore_patterns", where),
        secret_patterns=_strings(table.get("secret_patterns", []), "secret_patterns", where),
        lint=_command(table.get("lint"), "lint", where),
        test=_command(table.get("test"), "test", where),
        build=_command(table.get("build"), "build", where),
        manifest=_template(table.get("manifest"), "manifest", where),
        version_sources=tuple(
            _version_source(item, where) for item in _list(table.get("version_sources", []), "version_sources", where)
        ),
        lint_config=_template(table.get("lint_config"), "lint_config", where),
        test_scaffold=_template(table.get("test_scaffold"), "test_scaffold", where),
        test_globs=_strings(table.get("test_globs", []), "test_globs", where),
        ci_jobs=tuple(
            template
            for template in (_template(item, "ci_jobs", where) for item in _list(table.get("ci_jobs", []), "ci_jobs", where))
            if template is not None
        ),
        source_extensions=tuple(
            item if item.startswith(".") else f".{item}"
            for item in _strings(table.get("source_extensions", []), "source_extensions", where)
        ),
        large_file_lines=large_file_lines,
        readme=_template(table.get("readme"), "readme", where),
        security_policy=_template(table.get("security_policy"), "security_policy", where),
    )


def _predicate(item: Any, where: str) -> ManifestPredicate:
    if isinstance(item, Mapping) and len(item) == 1:
        kind, pattern = next(iter(item.items()))
        if kind in _PREDICATE_KINDS and isinstance(pattern, str) and pattern:
            return ManifestPredicate(kind=kind, pattern=pattern)
    raise CapabilityConfigError(f"{where}: signature entries must be {{ file = \"...\" }} or {{ glob = \"...\" }}")


def _command(value: Any, name: str, where: str) -> CommandSpec | None:
    if value is None:
        return None
    table = _table(value, f"{where}.{name}")
    argv = _strings(table.get("argv", []), f"{name}.argv", where)
    if not argv:
        raise CapabilityConfigError(f"{where}: {name}.argv must not be empty")
    timeout = table.get("timeout_seconds", 600.0)
    if not isinstance(timeout, (int, float)) or timeout <= 0:
        raise CapabilityConfigError(f"{where}: {name}.timeout_seconds must be a positive number")
    pattern = table.get("output_pattern")
    if pattern is not None and not isinstance(pattern, str):
        raise CapabilityConfigError(f"{where}: {name}.output_pattern must be a string")
    return CommandSpec(argv=argv, timeout_seconds=float(timeout), output_pattern=pattern)


def _template(value: Any, name: str, where: str) -> FileTemplate | None:
    if value is None:
        return None
    table = _table(value, f"{where}.{name}")
    path = table.get("path")
    content = table.get("content", "")
    if not isinstance(path, str) or not path or not isinstance(content, str):
        raise CapabilityConfigError(f"{where}: {name} needs a string 'path' and 'content'")
    return FileTemplate(path=path, content=content)


def _version_source(value: Any, where: str) -> VersionSource:
    table = _table(value, f"{where}.version_sources")
    path = table.get("path")
    pattern = table.get("pattern")
    if not isinstance(path, str) or not isinstance(pattern, str) or not path or not pattern:
        raise CapabilityConfigError(f"{where}: version_sources entries need 'path' and 'pattern'")
    return VersionSource(path=path, pattern=pattern)


def _table(value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise CapabilityConfigError(f"{where} must be a table")
    return value


def _list(value: Any, name: str, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise CapabilityConfigError(f"{where}: {name} must be a list")
    return value


def _strings(value: Any, name: str, where: str) -> tuple[str, ...]:
    items = _list(value, name, where)
    if not all(isinstance(item, str) for item in items):
        raise CapabilityConfigError(f"{where}: {name} must be a list of strings")
    return tuple(items)
