from __future__ import annotations
"""Placeholder rendering for capability file templates."""

import re

from repo_transform_tool.domain.entities import FileTemplate


DEFAULT_VERSION = "0.1.0"

_SLUG_PATTERN = re.compile(r"[^a-z0-9._-]+")


def project_slug(name: str) -> str:
    """Package-name friendly form of a directory name."""
    slug = _SLUG_PATTERN.sub("-", name.strip().lower()).strip("-._")
    return slug or "project"


def render_template(template: FileTemplate, *, project_name: str, version: str = DEFAULT_VERSION) -> str:
    content = template.content.replace("{{project_name}}", project_slug(project_name))
    content = content.replace("{{version}}", version)
    if content and not content.endswith("\n"):
        content += "\n"
    return content
