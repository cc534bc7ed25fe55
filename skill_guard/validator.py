"""Default content validator: SKILL.md frontmatter checks."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from .constants import SKILL_MD
from .names import validate_skill_name
from .types import ContentValidationResult


def parse_frontmatter(text: str) -> dict[str, Any] | None:
    """Return the YAML mapping between the leading ``---`` fences, if any."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return None
    for idx in range(1, len(lines)):
        if lines[idx].strip() == "---":
            data = yaml.safe_load("\n".join(lines[1:idx]))
            return data if isinstance(data, dict) else {}
    return None


def validate_skill_content(path: str | os.PathLike[str]) -> ContentValidationResult:
    """Check that a skill directory has a SKILL.md whose name matches the directory."""
    skill_dir = Path(path)
    errors: list[str] = []

    if not skill_dir.is_dir():
        return ContentValidationResult(valid=False, errors=[f"Not a directory: {skill_dir}"])

    skill_md = skill_dir / SKILL_MD
    if not skill_md.is_file():
        return ContentValidationResult(valid=False, errors=[f"Missing {SKILL_MD}"])

    try:
        frontmatter = parse_frontmatter(skill_md.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as err:
        return ContentValidationResult(valid=False, errors=[f"Cannot read {SKILL_MD}: {err}"])
    except yaml.YAMLError as err:
        return ContentValidationResult(valid=False, errors=[f"Invalid YAML frontmatter: {err}"])

    if frontmatter is None:
        return ContentValidationResult(valid=False, errors=[f"{SKILL_MD} has no YAML frontmatter"])

    name = frontmatter.get("name")
    if not isinstance(name, str) or not name:
        errors.append("Frontmatter is missing 'name'")
    else:
        name_check = validate_skill_name(name)
        if not name_check.valid:
            errors.append(f"Invalid name in frontmatter: {name_check.error}")
        elif name != skill_dir.name:
            errors.append(f"Frontmatter name {name!r} does not match directory {skill_dir.name!r}")

    description = frontmatter.get("description")
    if not isinstance(description, str) or not description.strip():
        errors.append("Frontmatter is missing 'description'")

    return ContentValidationResult(valid=not errors, errors=errors)
