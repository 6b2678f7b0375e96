from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
from typing import Sequence

from repo_transform_tool.adapters.filesystem.local_filesystem import LocalFileSystemAdapter
from repo_transform_tool.adapters.git_client.shell_git_client import ShellGitClientAdapter
from repo_transform_tool.adapters.operator.console_operator import ConsoleOperatorChannel
from repo_transform_tool.adapters.operator.decision_file_operator import DecisionFileOperatorChannel
from repo_transform_tool.adapters.tools.shell_tool_runner import ShellToolRunner
from repo_transform_tool.application.capabilities import load_capability_registry
from repo_transform_tool.application.use_cases.repository_transformer import RepositoryTransformer, RunReport
from repo_transform_tool.cli.config import AppConfig, load_config
from repo_transform_tool.domain.errors import (
    AccessError,
    CapabilityConfigError,
    PlanError,
    VersionControlError,
)
from repo_transform_tool.domain.ports import OperatorChannelPort
from repo_transform_tool.logging_utils import configure_logging
from repo_transform_tool.rules import default_rules


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repolish",
        description="Audit a repository and apply approved, reversible professionalization phases.",
    )

    parser.add_argument(
        "repository",
        nargs="?",
        help="Local path or clone URL of the repository. Falls back to REPOLISH_REPOSITORY.",
    )
    parser.add_argument("--dry-run", action="store_true", help="Detect, audit and plan only.")
    parser.add_argument(
        "--workers",
        type=int,
        required=False,
        help="Maximum phases running concurrently. Falls back to REPOLISH_WORKERS (default 4).",
    )
    parser.add_argument(
        "--decision-file",
        required=False,
        help="JSON decision for unattended runs instead of the interactive prompt. Falls back to REPOLISH_DECISION_FILE.",
    )
    parser.add_argument(
        "--capabilities",
        required=False,
        help="TOML file overriding or extending the packaged capability data. Falls back to REPOLISH_CAPABILITIES.",
    )
    parser.add_argument(
        "--state-dir",
        required=False,
        help="Directory for idempotency and approval logs. Falls back to REPOLISH_STATE_DIR.",
    )
    parser.add_argument(
        "--base-dir",
        required=False,
        help="Directory remote repositories are cloned into. Falls back to REPOLISH_BASE_DIR or BASE_DIR.",
    )
    parser.add_argument(
        "--verify-timeout",
        type=float,
        required=False,
        help="Wall-clock budget in seconds for one verification attempt. Falls back to REPOLISH_VERIFY_TIMEOUT.",
    )
    parser.add_argument("--stage", action="store_true", help="Stage files changed by applied phases.")
    parser.add_argument("--stop-on-error", action="store_true", help="Start no further phase after a failure.")
    parser.add_argument("--audit-lint", action="store_true", help="Run linters during the audit.")
    parser.add_argument(
        "--report-json",
        required=False,
        help="Write the run report as JSON to this path. Falls back to REPOLISH_REPORT_JSON.",
    )
    parser.add_argument(
        "--log-level",
        required=False,
        help="Log level. Falls back to REPOLISH_LOG_LEVEL or LOG_LEVEL (default INFO).",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config(args=args, env=os.environ)
    except ValueError as error:
        parser.error(str(error))

    configure_logging(config.log_level)
    logger = logging.getLogger(__name__)
    logger.info(
        "cli configuration resolved",
        extra={
            "event": "cli.config.resolved",
            "repository": config.repository,
            "dry_run": config.dry_run,
            "workers": config.workers,
            "decision_file": str(config.decision_file) if config.decision_file else None,
            "capabilities_file": str(config.capabilities_file) if config.capabilities_file else None,
            "state_dir": str(config.state_dir) if config.state_dir else None,
            "base_dir": str(config.base_dir),
            "verify_timeout_seconds": config.verify_timeout_seconds,
            "stage": config.stage,
            "stop_on_error": config.stop_on_error,
            "audit_lint": config.audit_lint,
        },
    )

    try:
        transformer = _build_transformer(config)
    except CapabilityConfigError as error:
        parser.error(str(error))

    def _on_sigint(signum, frame) -> None:
        logger.warning("interrupt received; cancelling run", extra={"event": "cli.interrupt"})
        transformer.cancel()

    previous_handler = signal.signal(signal.SIGINT, _on_sigint)
    try:
        report = transformer.execute(config.repository, base_dir=config.base_dir, dry_run=config.dry_run)
    except (AccessError, VersionControlError, PlanError) as error:
        logger.exception("cli execution failed", extra={"event": "cli.execution.failed"})
        print(f"repolish: error: {error}", file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    _print_summary(report)
    if config.report_json is not None:
        config.report_json.parent.mkdir(parents=True, exist_ok=True)
        config.report_json.write_text(json.dumps(report.to_dict(), indent=2) + "\n", encoding="utf-8")
        logger.info("report written", extra={"event": "cli.report.written", "path": str(config.report_json)})

    return 0 if report.success else 1


def _build_transformer(config: AppConfig) -> RepositoryTransformer:
    registry = load_capability_registry(config.capabilities_file)
    tool_runner = ShellToolRunner()
    operator: OperatorChannelPort
    if config.decision_file is not None:
        operator = DecisionFileOperatorChannel(config.decision_file)
    else:
        operator = ConsoleOperatorChannel()

    return RepositoryTransformer(
        registry=registry,
        filesystem=LocalFileSystemAdapter(),
        version_control=ShellGitClientAdapter(),
        tool_runner=tool_runner,
        operator=operator,
        rules=default_rules(tool_runner, include_lint=config.audit_lint),
        max_workers=config.workers,
        verify_timeout_seconds=config.verify_timeout_seconds,
        stage_applied=config.stage,
        stop_on_error=config.stop_on_error,
        state_dir=config.state_dir,
    )


def _print_summary(report: RunReport) -> None:
    mode = "DRY-RUN" if report.dry_run else "RUN"
    print(f"[{mode}] Repository: {report.repository}")
    print(f"Root: {report.root}")
    ecosystems = ", ".join(f"{item.ecosystem} ({item.confidence:.2f})" for item in report.ecosystems)
    print(f"Ecosystems: {ecosystems}")
    print(f"Findings: {len(report.findings)}")
    for finding in report.findings:
        location = ", ".join(finding.paths) or "-"
        remediation = finding.remediation or "advisory"
        print(f"  [{finding.severity.label}] {finding.category.value}: {location} ({remediation})")
        print(f"    {finding.message}")

    if not report.planned_phases and not report.results:
        print("Plan: nothing to do")
    else:
        phase_list = ", ".join(view.phase_id for view in report.planned_phases) or "(none)"
        print(f"Plan {report.plan_id} revision {report.plan_revision}: {phase_list}")

    if report.approval is not None:
        reason = f" ({report.approval.reason})" if report.approval.reason else ""
        print(f"Approval: {report.approval.decision.value}{reason}")

    for result in report.results:
        print(f"- {result.phase_id}: {result.state.value} [{result.outcome.value}]")
        if result.message:
            print(f"  {result.message}")
        if result.verification is not None and not result.verification.passed:
            print(f"  verification: {result.verification.detail}")
        if result.restored is not None:
            print(f"  restored: {'yes' if result.restored else 'NO'}")

    if report.pending_phase_ids:
        print(f"Pending phases: {', '.join(report.pending_phase_ids)}")
    print(f"Content hash: {report.pre_hash[:12]} -> {report.post_hash[:12]}")


if __name__ == "__main__":
    sys.exit(main())
