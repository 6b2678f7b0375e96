from __future__ import annotations

from pathlib import Path

import pytest

from repo_transform_tool.application.capabilities import (
    CapabilityRegistry,
    load_capability_registry,
    merge_capability_data,
    registry_from_mapping,
)
from repo_transform_tool.domain.entities import GENERIC_ECOSYSTEM, CapabilitySet, ManifestPredicate
from repo_transform_tool.domain.errors import CapabilityConfigError, UnknownEcosystemError


def test_packaged_defaults_declare_four_ecosystems_in_order(registry) -> None:
    assert [item.ecosystem for item in registry.ecosystems()] == [
        "go-like",
        "python-like",
        "javascript-like",
        "rust-like",
    ]
    assert registry.generic.ecosystem == GENERIC_ECOSYSTEM
    assert ".env" in registry.generic.secret_patterns
    assert registry.generic.readme is not None


def test_every_default_ecosystem_provides_lint_test_and_build(registry) -> None:
    for capability in registry.ecosystems():
        assert capability.lint is not None
        assert capability.test is not None
        assert capability.build is not None
        assert capability.manifest is not None
        assert capability.ci_jobs


def test_unknown_ecosystem_lookup_raises(registry) -> None:
    with pytest.raises(UnknownEcosystemError) as error:
        registry.get("cobol-like")

    assert error.value.ecosystem == "cobol-like"
    assert "cobol-like" not in registry


def test_override_file_replaces_and_appends_ecosystems(tmp_path: Path) -> None:
    override = tmp_path / "capabilities.toml"
    override.write_text(
        """
[ecosystems.go-like]
signature = [{ file = "go.work" }]

[ecosystems.elixir-like]
signature = [{ file = "mix.exs" }]
source_extensions = ["ex"]
""",
        encoding="utf-8",
    )

    registry = load_capability_registry(override)

    assert registry.get("go-like").signature == (ManifestPredicate(kind="file", pattern="go.work"),)
    assert registry.get("go-like").lint is None
    assert registry.ecosystems()[-1].ecosystem == "elixir-like"
    assert registry.get("elixir-like").source_extensions == (".ex",)


def test_merge_keeps_common_defaults_not_overridden() -> None:
    merged = merge_capability_data(
        {"common": {"secret_patterns": [".env"], "ignore_patterns": ["*.log"]}, "ecosystems": {}},
        {"common": {"ignore_patterns": ["*.tmp"]}},
    )

    assert merged["common"] == {"secret_patterns": [".env"], "ignore_patterns": ["*.tmp"]}


def test_ecosystem_without_signature_is_rejected() -> None:
    with pytest.raises(CapabilityConfigError):
        registry_from_mapping({"common": {}, "ecosystems": {"bare": {"test_globs": ["*_test.x"]}}})


def test_malformed_command_is_rejected() -> None:
    with pytest.raises(CapabilityConfigError):
        registry_from_mapping(
            {"ecosystems": {"x": {"signature": [{"file": "x.toml"}], "lint": {"argv": []}}}}
        )


def test_invalid_toml_override_is_reported(tmp_path: Path) -> None:
    override = tmp_path / "broken.toml"
    override.write_text("[ecosystems\n", encoding="utf-8")

    with pytest.raises(CapabilityConfigError):
        load_capability_registry(override)


def test_duplicate_ecosystems_are_rejected() -> None:
    generic = CapabilitySet(ecosystem=GENERIC_ECOSYSTEM)
    signature = (ManifestPredicate(kind="file", pattern="a"),)

    with pytest.raises(CapabilityConfigError):
        CapabilityRegistry(
            [CapabilitySet(ecosystem="a", signature=signature), CapabilitySet(ecosystem="a", signature=signature)],
            generic=generic,
        )
