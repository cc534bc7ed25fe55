"""Locate installed skills inside a scope root."""

from __future__ import annotations

import os
from pathlib import Path

from .constants import SKILL_MD
from .types import DiscoveryResult, ScopeInfo, SkillCaseMismatch, SkillFound, SkillNotFound


def verify_case_sensitivity(skill_path: str | os.PathLike[str], expected_name: str) -> str | None:
    """Return the on-disk entry name if it differs from ``expected_name``.

    On case-insensitive filesystems ``My-Skill`` resolves for ``my-skill``.
    The parent listing is compared byte for byte to catch that.
    """
    parent = Path(skill_path).parent
    try:
        entries = os.listdir(parent)
    except OSError:
        return None
    if expected_name in entries:
        return None
    lowered = expected_name.lower()
    return next((entry for entry in entries if entry.lower() == lowered), None)


def verify_skill_md(skill_path: str | os.PathLike[str]) -> bool:
    return (Path(skill_path) / SKILL_MD).is_file()


def discover_skill(name: str, scope: ScopeInfo) -> DiscoveryResult:
    """Map a validated name to its directory under the scope root."""
    skill_path = Path(scope.path) / name

    if not os.path.lexists(skill_path):
        return SkillNotFound(searched_path=str(skill_path))

    actual = verify_case_sensitivity(skill_path, name)
    if actual is not None:
        return SkillCaseMismatch(expected_name=name, actual_name=actual, path=str(skill_path.parent / actual))

    return SkillFound(path=str(skill_path), has_skill_md=verify_skill_md(skill_path))
