from __future__ import annotations

import pytest

from repo_transform_tool.application.auditor import Auditor
from repo_transform_tool.application.planner import DEFAULT_PHASE_KINDS, PhaseKindSpec, Planner
from repo_transform_tool.domain.entities import Finding, FindingCategory, Severity
from repo_transform_tool.domain.errors import PlanError
from repo_transform_tool.domain.phases import Phase
from repo_transform_tool.rules import default_rules
from tests.fakes import FakeVersionControl


class _StubPhase(Phase):
    def apply(self, workspace):
        return "ok"


class _AlphaPhase(_StubPhase):
    kind = "alpha"


class _BetaPhase(_StubPhase):
    kind = "beta"


def _finding(remediation: str, ecosystem: str | None = None) -> Finding:
    return Finding(
        category=FindingCategory.MISSING_CI,
        severity=Severity.STRUCTURAL,
        paths=(),
        message="",
        remediation=remediation,
        ecosystem=ecosystem,
    )


def test_ci_finding_pulls_in_required_phases_in_dependency_order(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"pyproject.toml": "", "app.py": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())
    python = registry.get("python-like")

    plan = Planner().plan(snapshot, [_finding("ci", "python-like")], registry.generic, (python,))

    assert plan.phase_ids == ("packaging:python-like", "lint:python-like", "tests:python-like", "ci:python-like")
    assert set(plan.get("ci:python-like").depends_on) == {
        "packaging:python-like",
        "lint:python-like",
        "tests:python-like",
    }
    assert plan.get("tests:python-like").depends_on == ("packaging:python-like",)


def test_optional_ordering_applies_only_when_both_phases_are_planned(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": "module demo\n", ".env": "x"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".env", "go.mod"}))
    go = registry.get("go-like")
    planner = Planner()

    alone = planner.plan(snapshot, [_finding("security")], registry.generic, (go,))
    together = planner.plan(snapshot, [_finding("security"), _finding("git-hygiene")], registry.generic, (go,))

    assert alone.phase_ids == ("security",)
    assert alone.get("security").depends_on == ()
    assert together.phase_ids == ("git-hygiene", "security")
    assert together.get("security").depends_on == ("git-hygiene",)


def test_git_hygiene_write_set_covers_files_to_untrack(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": "", ".env": "x", "bin/tool": "x"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".env", "go.mod", "bin/tool"}))

    plan = Planner().plan(snapshot, [_finding("git-hygiene")], registry.generic, (registry.get("go-like"),))

    phase = plan.get("git-hygiene")
    assert phase.destructive
    assert phase.write_set == (".env", ".gitignore", "bin/tool")


def test_two_ecosystems_produce_independent_sub_plans(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"package.json": '{"name": "demo"}', "pyproject.toml": "", "app.py": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())
    capability_sets = (registry.get("javascript-like"), registry.get("python-like"))
    findings = [_finding("tests", "javascript-like"), _finding("tests", "python-like")]

    plan = Planner().plan(snapshot, findings, registry.generic, capability_sets)

    assert plan.phase_ids == (
        "packaging:javascript-like",
        "packaging:python-like",
        "tests:javascript-like",
        "tests:python-like",
    )
    js_phases = [phase for phase in plan.phases if phase.ecosystem == "javascript-like"]
    py_phases = [phase for phase in plan.phases if phase.ecosystem == "python-like"]
    for js_phase in js_phases:
        for py_phase in py_phases:
            assert not set(js_phase.write_set) & set(py_phase.write_set)
            assert py_phase.phase_id not in js_phase.depends_on


def test_plan_is_deterministic(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"pyproject.toml": "", "app.py": "", ".env": "x"})
    snapshot = capture_snapshot(root, FakeVersionControl(tracked={".env"}))
    capability_sets = (registry.get("python-like"),)
    findings = Auditor(default_rules()).audit(snapshot, (registry.generic, *capability_sets))

    first = Planner().plan(snapshot, findings, registry.generic, capability_sets)
    second = Planner().plan(snapshot, findings, registry.generic, capability_sets)

    assert first.plan_id == second.plan_id
    assert first.phase_ids == second.phase_ids


def test_advisory_findings_add_no_phase(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())
    advisory = Finding(
        category=FindingCategory.LARGE_FILE,
        severity=Severity.STRUCTURAL,
        paths=("big.go",),
        message="",
        remediation=None,
        ecosystem="go-like",
    )

    plan = Planner().plan(snapshot, [advisory], registry.generic, (registry.get("go-like"),))

    assert plan.is_empty


def test_previously_applied_phases_are_replanned(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": "", "SECURITY.md": "policy"})
    snapshot = capture_snapshot(root, FakeVersionControl())

    plan = Planner().plan(
        snapshot,
        [],
        registry.generic,
        (registry.get("go-like"),),
        previously_applied=("security", "retired-phase"),
    )

    assert plan.phase_ids == ("security",)


def test_unavailable_remediation_is_skipped(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())

    # go-like ships no test scaffold
    plan = Planner().plan(snapshot, [_finding("tests", "go-like")], registry.generic, (registry.get("go-like"),))

    assert plan.is_empty


def test_dependency_cycle_raises_plan_error(registry, make_repo, capture_snapshot) -> None:
    root = make_repo({"go.mod": ""})
    snapshot = capture_snapshot(root, FakeVersionControl())
    kinds = {
        "alpha": PhaseKindSpec(
            lambda snapshot, capability, **_: _AlphaPhase(write_set=("a",)), per_ecosystem=False, requires=("beta",)
        ),
        "beta": PhaseKindSpec(
            lambda snapshot, capability, **_: _BetaPhase(write_set=("b",)), per_ecosystem=False, requires=("alpha",)
        ),
    }

    with pytest.raises(PlanError):
        Planner(kinds).plan(snapshot, [_finding("alpha")], registry.generic, ())


def test_default_phase_kinds_cover_every_remediation() -> None:
    remediations = {rule.remediation for rule in default_rules()} - {None}

    assert remediations <= set(DEFAULT_PHASE_KINDS)
