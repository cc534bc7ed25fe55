"""Scope root resolution."""

from __future__ import annotations

import os
from pathlib import Path

from .constants import SKILLS_DIR
from .types import Scope, ScopeInfo


def get_scope_path(scope: Scope, *, cwd: Path | None = None, home: Path | None = None) -> Path:
    """Absolute skills root for a validated scope."""
    if scope == "personal":
        return (home or Path.home()).absolute() / SKILLS_DIR
    return (cwd or Path.cwd()).absolute() / SKILLS_DIR


def get_scope_info(scope: Scope, *, cwd: Path | None = None, home: Path | None = None) -> ScopeInfo:
    return ScopeInfo(type=scope, path=str(get_scope_path(scope, cwd=cwd, home=home)))


def is_path_within(base: str | os.PathLike[str], target: str | os.PathLike[str]) -> bool:
    """Lexical, separator-bounded containment. ``base`` itself counts as within."""
    base_norm = os.path.normpath(os.path.abspath(base))
    target_norm = os.path.normpath(os.path.abspath(target))
    if target_norm == base_norm:
        return True
    prefix = base_norm if base_norm.endswith(os.sep) else base_norm + os.sep
    return target_norm.startswith(prefix)
