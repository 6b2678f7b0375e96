from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path

from repo_transform_tool.domain.entities import CapabilitySet, CommandSpec, VerificationOutcome
from repo_transform_tool.domain.ports import ToolRunnerPort


LOGGER = logging.getLogger(__name__)


class VerificationRunner:
    """Run build then tests for one ecosystem after a phase was applied.

    Every attempt gets a wall-clock budget (`timeout_seconds`, capped by the
    capability's own command timeouts). Exceeding it fails with detail
    `Timeout`. A capability without build and test commands passes.
    """

    def __init__(self, tool_runner: ToolRunnerPort, *, timeout_seconds: float | None = None) -> None:
        self._tool_runner = tool_runner
        self._timeout_seconds = timeout_seconds

    def verify(self, capability: CapabilitySet | None, root: Path) -> VerificationOutcome:
        if capability is None or (capability.build is None and capability.test is None):
            return VerificationOutcome(passed=True, detail="no build or test capability")

        started = time.monotonic()
        if capability.build is not None:
            build_spec = self._budgeted(capability.build, 0.0)
            outcome = self._tool_runner.run(build_spec, root)
            if outcome.timed_out:
                return self._finish(capability, started, VerificationOutcome(passed=False, detail="Timeout", timed_out=True))
            if not outcome.succeeded:
                detail = (outcome.stderr or outcome.stdout).strip().splitlines()[-1:] or [f"exit status {outcome.exit_code}"]
                return self._finish(capability, started, VerificationOutcome(passed=False, detail=f"build failed: {detail[0]}"))

        if capability.test is not None:
            elapsed = time.monotonic() - started
            test_spec = self._budgeted(capability.test, elapsed)
            if test_spec.timeout_seconds <= 0:
                return self._finish(capability, started, VerificationOutcome(passed=False, detail="Timeout", timed_out=True))
            report = self._tool_runner.test(test_spec, root)
            if report.timed_out:
                return self._finish(capability, started, VerificationOutcome(passed=False, detail="Timeout", timed_out=True))
            if not report.passed:
                return self._finish(
                    capability,
                    started,
                    VerificationOutcome(passed=False, detail=f"tests failed: {report.detail}".strip(), coverage=report.coverage),
                )
            return self._finish(capability, started, VerificationOutcome(passed=True, detail="build and tests passed", coverage=report.coverage))

        return self._finish(capability, started, VerificationOutcome(passed=True, detail="build passed"))

    def _budgeted(self, spec: CommandSpec, elapsed: float) -> CommandSpec:
        if self._timeout_seconds is None:
            return spec
        remaining = self._timeout_seconds - elapsed
        return replace(spec, timeout_seconds=min(spec.timeout_seconds, remaining))

    def _finish(self, capability: CapabilitySet, started: float, outcome: VerificationOutcome) -> VerificationOutcome:
        LOGGER.info(
            "verification finished",
            extra={
                "event": "verification.completed" if outcome.passed else "verification.failed",
                "ecosystem": capability.ecosystem,
                "passed": outcome.passed,
                "timed_out": outcome.timed_out,
                "detail": outcome.detail,
                "coverage": outcome.coverage,
                "duration_seconds": round(time.monotonic() - started, 3),
            },
        )
        return outcome
