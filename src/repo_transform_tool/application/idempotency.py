from __future__ import annotations
"""Persisted `(phase id, pre-hash) -> post-hash` records."""

import logging
import threading
from datetime import datetime, timezone

from repo_transform_tool.domain.entities import PhaseId
from repo_transform_tool.domain.ports import AppendOnlyLogPort


LOGGER = logging.getLogger(__name__)


class IdempotencyTracker:
    """Append-only record of applied phases.

    Entries are never deleted; when the same key is recorded twice the latest
    entry wins. A phase is converged for a write-set state when that state is
    recorded as mapping onto itself.
    """

    def __init__(self, log: AppendOnlyLogPort) -> None:
        self._log = log
        self._lock = threading.Lock()
        self._entries: dict[tuple[PhaseId, str], str] | None = None

    def record_applied(self, phase_id: PhaseId, pre_hash: str, post_hash: str) -> None:
        with self._lock:
            entries = self._load()
            self._log.append(
                {
                    "phase_id": phase_id,
                    "pre_hash": pre_hash,
                    "post_hash": post_hash,
                    "recorded_at": datetime.now(timezone.utc).isoformat(),
                }
            )
            entries[(phase_id, pre_hash)] = post_hash
        LOGGER.debug(
            "idempotency entry recorded",
            extra={"event": "tracker.entry.recorded", "phase_id": phase_id, "pre_hash": pre_hash, "post_hash": post_hash},
        )

    def lookup(self, phase_id: PhaseId, pre_hash: str) -> str | None:
        with self._lock:
            return self._load().get((phase_id, pre_hash))

    def is_converged(self, phase_id: PhaseId, state_hash: str) -> bool:
        return self.lookup(phase_id, state_hash) == state_hash

    def phase_ids(self) -> tuple[PhaseId, ...]:
        """Phase ids ever recorded, in first-recorded order."""
        with self._lock:
            return tuple(dict.fromkeys(phase_id for phase_id, _ in self._load()))

    def _load(self) -> dict[tuple[PhaseId, str], str]:
        if self._entries is None:
            entries: dict[tuple[PhaseId, str], str] = {}
            for record in self._log.read_all():
                phase_id = record.get("phase_id")
                pre_hash = record.get("pre_hash")
                post_hash = record.get("post_hash")
                if isinstance(phase_id, str) and isinstance(pre_hash, str) and isinstance(post_hash, str):
                    entries[(phase_id, pre_hash)] = post_hash
            self._entries = entries
        return self._entries
