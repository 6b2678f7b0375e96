from __future__ import annotations
"""Run ecosystem tools (linters, test runners, builds) as child processes."""

import logging
import subprocess
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Callable

from repo_transform_tool.domain.entities import CommandOutcome, CommandSpec
from repo_transform_tool.domain.ports import ToolRunnerPort


LOGGER = logging.getLogger(__name__)

_MISSING_EXECUTABLE_EXIT_CODE = 127


class ShellToolRunner(ToolRunnerPort):
    """Execute `CommandSpec` argv lists without a shell, bounded by their timeouts."""

    def __init__(
        self,
        *,
        default_timeout_seconds: float | None = None,
        env: Mapping[str, str] | None = None,
        runner: Callable[..., subprocess.CompletedProcess[str]] = subprocess.run,
    ) -> None:
        self._default_timeout_seconds = default_timeout_seconds
        self._env = dict(env) if env is not None else None
        self._runner = runner

    def run(self, spec: CommandSpec, cwd: Path) -> CommandOutcome:
        timeout = spec.timeout_seconds
        if self._default_timeout_seconds is not None:
            timeout = min(timeout, self._default_timeout_seconds)

        command = list(spec.argv)
        started = time.monotonic()
        LOGGER.info(
            "tool command started",
            extra={"event": "tool.command.start", "command": " ".join(command), "cwd": str(cwd), "timeout": timeout},
        )
        try:
            completed = self._runner(
                command,
                cwd=str(cwd),
                check=False,
                text=True,
                capture_output=True,
                timeout=timeout,
                env=self._env,
            )
        except FileNotFoundError:
            LOGGER.error(
                "tool executable not found",
                extra={"event": "tool.command.missing", "executable": command[0] if command else ""},
            )
            return CommandOutcome(
                exit_code=_MISSING_EXECUTABLE_EXIT_CODE,
                stderr=f"Executable '{command[0] if command else ''}' was not found in PATH",
                duration_seconds=time.monotonic() - started,
            )
        except subprocess.TimeoutExpired as error:
            LOGGER.warning(
                "tool command timed out",
                extra={"event": "tool.command.timeout", "command": " ".join(command), "timeout": timeout},
            )
            return CommandOutcome(
                exit_code=-1,
                stdout=_decode(error.stdout),
                stderr=_decode(error.stderr),
                timed_out=True,
                duration_seconds=time.monotonic() - started,
            )

        duration = time.monotonic() - started
        LOGGER.info(
            "tool command finished",
            extra={
                "event": "tool.command.finished",
                "command": " ".join(command),
                "return_code": completed.returncode,
                "duration_seconds": round(duration, 3),
            },
        )
        return CommandOutcome(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration_seconds=duration,
        )


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
