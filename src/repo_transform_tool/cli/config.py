from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


SUPPORTED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(slots=True)
class AppConfig:
    repository: str
    dry_run: bool
    workers: int
    decision_file: Path | None
    capabilities_file: Path | None
    state_dir: Path | None
    base_dir: Path
    verify_timeout_seconds: float | None
    stage: bool
    stop_on_error: bool
    report_json: Path | None
    log_level: str
    audit_lint: bool


def load_config(args, env: Mapping[str, str]) -> AppConfig:
    repository = _normalize_empty(args.repository) or _normalize_empty(env.get("REPOLISH_REPOSITORY"))
    raw_workers = _normalize_empty(str(args.workers) if args.workers is not None else None) or _normalize_empty(
        env.get("REPOLISH_WORKERS")
    )
    decision_file = _normalize_empty(args.decision_file) or _normalize_empty(env.get("REPOLISH_DECISION_FILE"))
    capabilities_file = _normalize_empty(args.capabilities) or _normalize_empty(env.get("REPOLISH_CAPABILITIES"))
    state_dir = _normalize_empty(args.state_dir) or _normalize_empty(env.get("REPOLISH_STATE_DIR"))
    base_dir_raw = (
        _normalize_empty(args.base_dir)
        or _normalize_empty(env.get("REPOLISH_BASE_DIR"))
        or _normalize_empty(env.get("BASE_DIR"))
        or "."
    )
    raw_verify_timeout = _normalize_empty(
        str(args.verify_timeout) if args.verify_timeout is not None else None
    ) or _normalize_empty(env.get("REPOLISH_VERIFY_TIMEOUT"))
    report_json = _normalize_empty(args.report_json) or _normalize_empty(env.get("REPOLISH_REPORT_JSON"))
    log_level = (
        _normalize_empty(args.log_level)
        or _normalize_empty(env.get("REPOLISH_LOG_LEVEL"))
        or _normalize_empty(env.get("LOG_LEVEL"))
        or "INFO"
    ).upper()

    if not repository:
        raise ValueError("Missing repository. Pass a path or clone URL, or set REPOLISH_REPOSITORY")

    workers = 4
    if raw_workers is not None:
        try:
            workers = int(raw_workers)
        except ValueError as error:
            raise ValueError("REPOLISH_WORKERS/--workers must be an integer") from error
        if workers <= 0:
            raise ValueError("REPOLISH_WORKERS/--workers must be greater than 0")

    verify_timeout_seconds: float | None = None
    if raw_verify_timeout is not None:
        try:
            verify_timeout_seconds = float(raw_verify_timeout)
        except ValueError as error:
            raise ValueError("REPOLISH_VERIFY_TIMEOUT/--verify-timeout must be a number") from error
        if verify_timeout_seconds <= 0:
            raise ValueError("REPOLISH_VERIFY_TIMEOUT/--verify-timeout must be greater than 0")

    if log_level not in SUPPORTED_LOG_LEVELS:
        valid = ", ".join(sorted(SUPPORTED_LOG_LEVELS))
        raise ValueError(f"Unsupported log level '{log_level}'. Allowed values: {valid}")

    return AppConfig(
        repository=repository,
        dry_run=args.dry_run or _parse_bool(env.get("REPOLISH_DRY_RUN"), "REPOLISH_DRY_RUN"),
        workers=workers,
        decision_file=Path(decision_file).expanduser() if decision_file else None,
        capabilities_file=Path(capabilities_file).expanduser() if capabilities_file else None,
        state_dir=Path(state_dir).expanduser() if state_dir else None,
        base_dir=Path(base_dir_raw).expanduser(),
        verify_timeout_seconds=verify_timeout_seconds,
        stage=args.stage or _parse_bool(env.get("REPOLISH_STAGE"), "REPOLISH_STAGE"),
        stop_on_error=args.stop_on_error or _parse_bool(env.get("REPOLISH_STOP_ON_ERROR"), "REPOLISH_STOP_ON_ERROR"),
        report_json=Path(report_json).expanduser() if report_json else None,
        log_level=log_level,
        audit_lint=args.audit_lint or _parse_bool(env.get("REPOLISH_AUDIT_LINT"), "REPOLISH_AUDIT_LINT"),
    )


def _parse_bool(value: str | None, name: str) -> bool:
    normalized = (value or "").strip().lower()
    if not normalized:
        return False
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false)")


def _normalize_empty(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None
