"""Path containment checks and the verify-before-delete gate."""

from __future__ import annotations

import os
import stat
from datetime import UTC, datetime
from pathlib import Path

from .scopes import is_path_within
from .types import (
    ContainmentResult,
    ContainmentValid,
    ContainmentViolation,
    PathType,
    VerifiedPath,
    VerifyError,
    VerifyFailed,
    VerifyOk,
    VerifyResult,
)

DANGEROUS_PATHS = (
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/var",
    "/boot",
    "/root",
    "/lib",
    "/opt",
    "/sys",
    "/proc",
    "/dev",
    "/tmp",
    "c:\\windows",
    "c:\\program files",
    "c:\\programdata",
    "c:\\users\\public",
)


def _normalize(path: str | os.PathLike[str]) -> str:
    return os.path.normpath(os.path.abspath(path))


def verify_containment(base: str | os.PathLike[str], target: str | os.PathLike[str]) -> ContainmentResult:
    """Check that ``target`` lies at or under ``base``.

    Both paths are normalized lexically. Symlinks are not followed here; the
    security scanner handles those.
    """
    base_norm = _normalize(base)
    target_norm = _normalize(target)

    if is_path_within(base_norm, target_norm):
        return ContainmentValid(normalized_path=target_norm)

    raw = os.fspath(target)
    if ".." in Path(raw).parts:
        reason = "Path traversal (..) escapes base directory"
    elif os.path.isabs(raw):
        reason = "Absolute path outside base directory"
    else:
        reason = "Path resolves outside base directory"

    return ContainmentViolation(target_path=target_norm, base_path=base_norm, reason=reason)


def is_dangerous_path(path: str | os.PathLike[str]) -> bool:
    """True for system locations and anything beneath them."""
    raw = os.fspath(path)
    if len(raw) >= 2 and raw[1] == ":":
        candidate = raw.replace("/", "\\").rstrip("\\").lower()
        sep = "\\"
    else:
        candidate = _normalize(raw).lower()
        sep = "/"

    for dangerous in DANGEROUS_PATHS:
        if candidate == dangerous or candidate.startswith(dangerous + sep):
            return True
    return False


def is_valid_scope_path(path: str | os.PathLike[str]) -> bool:
    """A scope root must end with ``.claude/skills``."""
    parts = Path(_normalize(path)).parts
    return len(parts) >= 2 and parts[-2] == ".claude" and parts[-1] == "skills"


def _path_type(mode: int) -> PathType:
    if stat.S_ISLNK(mode):
        return "symlink"
    if stat.S_ISDIR(mode):
        return "directory"
    return "file"


def verify_before_deletion(skill_path: str | os.PathLike[str], target: str | os.PathLike[str]) -> VerifyResult:
    """Re-check containment and lstat the target immediately before deleting it."""
    containment = verify_containment(skill_path, target)
    if containment.type == "violation":
        return VerifyFailed(reason="containment-violation", message=containment.reason)

    try:
        st = os.lstat(target)
    except FileNotFoundError:
        return VerifyFailed(reason="not-exists", message=f"Path no longer exists: {target}")
    except OSError as err:
        return VerifyError(message=f"Cannot stat {target}: {err.strerror or err}")

    return VerifyOk(path_type=_path_type(st.st_mode), size=st.st_size)


def create_verified_path(
    skill_path: str | os.PathLike[str], target: str | os.PathLike[str]
) -> VerifiedPath | VerifyError:
    result = verify_before_deletion(skill_path, target)
    if result.type != "ok":
        return VerifyError(message=result.message)
    return VerifiedPath(
        path=_normalize(target),
        skill_path=_normalize(skill_path),
        path_type=result.path_type,
        verified_at=datetime.now(UTC).isoformat(),
    )
