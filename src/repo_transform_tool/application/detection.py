from __future__ import annotations
"""Ecosystem detection from manifest predicates."""

import logging
from pathlib import Path

from repo_transform_tool.application.capabilities import CapabilityRegistry
from repo_transform_tool.domain.entities import UNKNOWN_ECOSYSTEM, DetectedEcosystem, ManifestPredicate
from repo_transform_tool.domain.patterns import matches
from repo_transform_tool.domain.ports import FileSystemPort


LOGGER = logging.getLogger(__name__)


class EcosystemDetector:
    """Detect the ecosystems of a repository.

    Each registered capability set carries a signature (a list of manifest
    predicates). Confidence is the share of matched predicates. Results are
    ordered by confidence, ties by registry declaration order, so identical
    repository contents always yield the same list. Read-only.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        filesystem: FileSystemPort,
        *,
        excluded_dirs: tuple[str, ...] = (".git",),
    ) -> None:
        self._registry = registry
        self._filesystem = filesystem
        self._excluded_dirs = excluded_dirs

    def detect(self, root: Path) -> list[DetectedEcosystem]:
        """Return detected ecosystems, or a single `unknown` entry when nothing matches.

        Raises:
            AccessError: when `root` is missing or unreadable.
        """
        files = self._filesystem.list_files(root, exclude_dirs=self._excluded_dirs)
        file_set = frozenset(files)

        ranked: list[tuple[float, int, DetectedEcosystem]] = []
        for position, capability in enumerate(self._registry.ecosystems()):
            signature = capability.signature
            evidence = [predicate.describe() for predicate in signature if _predicate_holds(predicate, files, file_set)]
            if not evidence:
                continue
            confidence = len(evidence) / len(signature)
            ranked.append(
                (
                    -confidence,
                    position,
                    DetectedEcosystem(ecosystem=capability.ecosystem, confidence=confidence, evidence=tuple(evidence)),
                )
            )

        ranked.sort(key=lambda item: (item[0], item[1]))
        detected = [item[2] for item in ranked] or [DetectedEcosystem(ecosystem=UNKNOWN_ECOSYSTEM, confidence=0.0)]

        LOGGER.info(
            "ecosystems detected",
            extra={
                "event": "detector.completed",
                "root": str(root),
                "ecosystems": [f"{item.ecosystem}:{item.confidence:.2f}" for item in detected],
            },
        )
        return detected


def _predicate_holds(predicate: ManifestPredicate, files: list[str], file_set: frozenset[str]) -> bool:
    if predicate.kind == "file":
        return predicate.pattern.strip("/") in file_set
    return any(matches(path, predicate.pattern) for path in files)
