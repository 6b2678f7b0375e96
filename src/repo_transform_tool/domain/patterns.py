from __future__ import annotations
"""Path pattern matching shared by detection, audit rules and phases.

Patterns use gitignore syntax (`gitwildmatch`): `name/` matches a directory
at any depth, a leading or inner `/` anchors to the repository root, and a
later `!pattern` re-includes what an earlier pattern matched.
"""

from functools import lru_cache
from typing import Iterable

import pathspec


@lru_cache(maxsize=256)
def compile_patterns(patterns: tuple[str, ...]) -> pathspec.PathSpec:
    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


def matches(path: str, pattern: str) -> bool:
    return compile_patterns((pattern,)).match_file(path)


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """True when the last pattern deciding `path` includes it, as git does for one ignore file."""
    return compile_patterns(tuple(patterns)).match_file(path)


def filter_matching(paths: Iterable[str], patterns: Iterable[str]) -> list[str]:
    spec = compile_patterns(tuple(patterns))
    return [path for path in paths if spec.match_file(path)]
