from __future__ import annotations
"""Version declarations spread over manifest and source files."""

import re
from typing import Iterable

from .entities import VersionSource
from .patterns import matches


def version_source_paths(files: Iterable[str], source: VersionSource) -> list[str]:
    """Repository files a version source refers to (its path may be a pattern)."""
    if not any(char in source.path for char in "*?["):
        return [path for path in files if path == source.path]
    return sorted(path for path in files if matches(path, source.path))


def extract_version(text: str, pattern: str) -> str | None:
    match = re.search(pattern, text)
    if not match or match.lastindex is None:
        return None
    return match.group(1).strip() or None


def replace_version(text: str, pattern: str, version: str) -> str:
    """Rewrite the first version declaration matched by `pattern` to `version`."""
    match = re.search(pattern, text)
    if not match or match.lastindex is None:
        return text
    start, end = match.span(1)
    return f"{text[:start]}{version}{text[end:]}"
