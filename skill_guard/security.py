"""Symlink and hard-link threat detection for skill directories."""

from __future__ import annotations

import os
import stat
from typing import TYPE_CHECKING

from .constants import MAX_REPORTED_FILES
from .fs_utils import enumerate_skill_files
from .path_verifier import is_dangerous_path
from .scopes import is_path_within
from .types import (
    HardLinkFinding,
    HardLinkWarning,
    SymlinkCheckError,
    SymlinkCheckResult,
    SymlinkEscape,
    SymlinkFinding,
    SymlinkSafe,
    SymlinkSummary,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


def _real(path: str | os.PathLike[str]) -> str:
    """Resolve the full symlink chain. Raises OSError on loops."""
    return os.path.realpath(path, strict=True)


def check_symlink_safety(path: str | os.PathLike[str], scope_path: str | os.PathLike[str]) -> SymlinkCheckResult:
    """Classify ``path`` as safe, escaping its scope, or unreadable.

    Both sides are canonicalized, so a scope root that itself sits behind a
    symlink (``/var`` -> ``/private/var``) does not produce false escapes.
    A symlink loop counts as an escape.
    """
    try:
        st = os.lstat(path)
    except OSError as err:
        return SymlinkCheckError(message=f"Cannot stat {path}: {err.strerror or err}")

    if not stat.S_ISLNK(st.st_mode):
        return SymlinkSafe(is_symlink=False)

    try:
        scope_real = _real(scope_path)
    except OSError as err:
        return SymlinkCheckError(message=f"Cannot resolve scope {scope_path}: {err.strerror or err}")

    try:
        resolved = _real(path)
    except OSError:
        try:
            target = os.readlink(path)
        except OSError:
            target = "<unreadable>"
        return SymlinkEscape(target_path=target, scope_boundary=scope_real)

    if not is_path_within(scope_real, resolved):
        return SymlinkEscape(target_path=resolved, scope_boundary=scope_real)

    return SymlinkSafe(is_symlink=True, resolved_path=resolved)


def check_directory_symlinks(directory: str | os.PathLike[str]) -> Iterator[SymlinkFinding]:
    """Yield a finding for every symlink under ``directory``.

    Escapes are judged against the real path of ``directory``. Links back
    to an ancestor resolve outside it and are never traversed.
    """
    try:
        base_real = _real(directory)
    except OSError:
        base_real = os.path.abspath(directory)

    for info in enumerate_skill_files(directory):
        if not info.is_symlink:
            continue

        try:
            resolved = _real(info.absolute_path)
        except OSError:
            try:
                raw_target = os.readlink(info.absolute_path)
            except OSError:
                raw_target = "<unreadable>"
            yield SymlinkFinding(
                relative_path=info.relative_path,
                absolute_path=info.absolute_path,
                is_directory_symlink=False,
                resolved_path=raw_target,
                escapes_scope=True,
                warning=f"Symlink {info.relative_path} is broken, looping or unreadable ({raw_target})",
            )
            continue

        is_dir = os.path.isdir(resolved)
        escapes = not is_path_within(base_real, resolved)
        warning = None
        if escapes:
            warning = f"Symlink {info.relative_path} points outside the skill directory: {resolved}"
            if is_dangerous_path(resolved):
                warning += " (system directory)"

        yield SymlinkFinding(
            relative_path=info.relative_path,
            absolute_path=info.absolute_path,
            is_directory_symlink=is_dir,
            resolved_path=resolved,
            escapes_scope=escapes,
            warning=warning,
        )


def check_hard_links(directory: str | os.PathLike[str]) -> Iterator[HardLinkFinding]:
    """Yield regular files with more than one link."""
    for info in enumerate_skill_files(directory):
        if info.is_directory or info.is_symlink:
            continue
        if info.link_count > 1:
            yield HardLinkFinding(
                relative_path=info.relative_path,
                absolute_path=info.absolute_path,
                link_count=info.link_count,
            )


def detect_hard_link_warnings(directory: str | os.PathLike[str]) -> HardLinkWarning | None:
    findings = list(check_hard_links(directory))
    if not findings:
        return None

    count = len(findings)
    noun = "file has" if count == 1 else "files have"
    return HardLinkWarning(
        count=count,
        files=findings[:MAX_REPORTED_FILES],
        message=(
            f"{count} {noun} multiple hard links. Deleting them removes only this link; "
            "the content stays reachable elsewhere. Use --force to proceed."
        ),
    )


def get_symlink_summary(directory: str | os.PathLike[str]) -> SymlinkSummary:
    """Aggregate symlink findings into the single pre-flight gate."""
    summary = SymlinkSummary()
    for finding in check_directory_symlinks(directory):
        summary.total_symlinks += 1
        if finding.is_directory_symlink:
            summary.directory_symlinks += 1
        if finding.escapes_scope:
            summary.escaping_symlinks += 1
            summary.escaping_paths.append(finding.relative_path)

    summary.has_security_concerns = summary.escaping_symlinks > 0
    if summary.has_security_concerns:
        summary.warning = (
            f"{summary.escaping_symlinks} symlink(s) point outside the skill directory. "
            "Only the links will be removed, never their targets."
        )
    return summary
