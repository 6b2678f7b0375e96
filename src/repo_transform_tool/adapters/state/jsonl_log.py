from __future__ import annotations
"""Append-only JSON-lines log used for idempotency and approval history."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from repo_transform_tool.domain.ports import AppendOnlyLogPort


LOGGER = logging.getLogger(__name__)


class JsonlAppendOnlyLog(AppendOnlyLogPort):
    """One JSON object per line; records are only ever appended.

    Unparseable lines (for example a torn final write) are skipped on read
    and reported through logging.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def append(self, record: dict[str, Any]) -> None:
        line = json.dumps(record, sort_keys=True, default=str)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
                handle.flush()
                os.fsync(handle.fileno())

    def read_all(self) -> list[dict[str, Any]]:
        with self._lock:
            if not self._path.exists():
                return []
            raw_lines = self._path.read_text(encoding="utf-8").splitlines()

        records: list[dict[str, Any]] = []
        for number, raw in enumerate(raw_lines, start=1):
            if not raw.strip():
                continue
            try:
                value = json.loads(raw)
            except json.JSONDecodeError:
                LOGGER.warning(
                    "skipping unreadable log line",
                    extra={"event": "state.log.corrupt_line", "path": str(self._path), "line": number},
                )
                continue
            if isinstance(value, dict):
                records.append(value)
        return records
