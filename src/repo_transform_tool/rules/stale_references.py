from __future__ import annotations
"""Rule detecting markdown links that point at files no longer in the repository."""

import posixpath
import re
from typing import Iterable

from repo_transform_tool.domain.audit import AuditRule
from repo_transform_tool.domain.entities import AuditSnapshot, CapabilitySet, Finding, FindingCategory, Severity


MARKDOWN_LINK_PATTERN = re.compile(r"\[(?P<text>[^\]]*)\]\((?P<target>[^)\s]+)(?:\s+\"[^\"]*\")?\)")

_MAX_DOCUMENT_BYTES = 1_000_000


def resolve_link_target(document_path: str, target: str) -> str | None:
    """Repository-relative path a link points to, or None for external/anchor links."""
    if "://" in target or target.startswith(("mailto:", "#", "/", "data:")):
        return None
    target = target.split("#", 1)[0].split("?", 1)[0]
    if not target:
        return None
    resolved = posixpath.normpath(posixpath.join(posixpath.dirname(document_path), target))
    if resolved == ".." or resolved.startswith("../"):
        return None
    return resolved


def link_target_exists(snapshot: AuditSnapshot, resolved: str) -> bool:
    if resolved in (".", "") or snapshot.has_file(resolved):
        return True
    prefix = f"{resolved.rstrip('/')}/"
    return any(path.startswith(prefix) for path in snapshot.files)


def stale_links(snapshot: AuditSnapshot, document_path: str, content: str) -> list[str]:
    stale: list[str] = []
    for match in MARKDOWN_LINK_PATTERN.finditer(content):
        target = match.group("target")
        resolved = resolve_link_target(document_path, target)
        if resolved is not None and not link_target_exists(snapshot, resolved) and target not in stale:
            stale.append(target)
    return stale


class StaleReferenceRule(AuditRule):
    remediation = "docs"

    def check(self, snapshot: AuditSnapshot, capability_sets: tuple[CapabilitySet, ...]) -> Iterable[Finding]:
        for path in snapshot.files:
            if not path.lower().endswith(".md"):
                continue
            content = snapshot.read_text(path)
            if content is None or len(content) > _MAX_DOCUMENT_BYTES:
                continue
            targets = stale_links(snapshot, path, content)
            if targets:
                yield Finding(
                    category=FindingCategory.STALE_REFERENCE,
                    severity=Severity.STALE_REFERENCE,
                    paths=(path,),
                    message=f"Links to missing files: {', '.join(targets)}",
                    remediation=self.remediation,
                    rule=self.name,
                )
