"""Remove installed skills through the gated deletion stream."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from .audit import write_audit_entry
from .cancellation import CancellationToken, check_cancelled
from .discovery import discover_skill
from .errors import CancellationError, ConcurrencyError
from .fs_utils import check_resource_limits, enumerate_skill_files, get_skill_summary
from .lock import skill_lock
from .logger import logger
from .names import validate_scope, validate_skill_name
from .path_verifier import is_valid_scope_path, verify_containment
from .pre_removal import detect_unexpected_files
from .safe_delete import execute_skill_deletion
from .scopes import get_scope_info
from .security import check_symlink_safety, detect_hard_link_warnings, get_symlink_summary
from .types import (
    ConcurrencyErrorDetail,
    FileSystemErrorDetail,
    MultiUninstallResult,
    PartialRemovalDetail,
    SecurityErrorDetail,
    SkillNotFoundDetail,
    UninstallCancelled,
    UninstallDryRunPreview,
    UninstallFailure,
    UninstallResult,
    ValidationErrorDetail,
)

if TYPE_CHECKING:
    from .types import Discoverer, ScopeInfo, UninstallError, UninstallOutcome


def _fail(skill_name: str, error: UninstallError) -> UninstallFailure:
    return UninstallFailure(skill_name=skill_name, error=error)


def _validation(skill_name: str, field: str, message: str, details: list[str] | None = None) -> UninstallFailure:
    return _fail(skill_name, ValidationErrorDetail(field=field, message=message, details=details or []))


def _security(skill_name: str, reason: str, message: str, details: list[str] | None = None) -> UninstallFailure:
    return _fail(
        skill_name,
        SecurityErrorDetail(reason=reason, message=message, details=details or []),  # type: ignore[arg-type]
    )


def _remaining_entries(skill_path: str) -> int:
    if not os.path.lexists(skill_path):
        return 0
    if os.path.islink(skill_path):
        return 1
    return sum(1 for _ in enumerate_skill_files(skill_path)) + 1


def _preflight(
    skill_name: str, scope_info: ScopeInfo, discover: Discoverer, force: bool
) -> tuple[str, list[str]] | UninstallFailure:
    """Read-only checks. Returns (skill_path, warnings) or a failure."""
    if not is_valid_scope_path(scope_info.path):
        return _security(skill_name, "containment-violation", f"Scope root {scope_info.path} is not a skills directory")

    found = discover(skill_name, scope_info)
    if found.type == "not-found":
        return _fail(
            skill_name,
            SkillNotFoundDetail(
                skill_name=skill_name,
                searched_path=found.searched_path,
                message=f'Skill "{skill_name}" not found in {scope_info.type} scope',
            ),
        )
    if found.type == "case-mismatch":
        return _security(
            skill_name,
            "case-mismatch",
            f'Skill name case mismatch: requested "{found.expected_name}" but found "{found.actual_name}"',
        )

    skill_path = found.path
    containment = verify_containment(scope_info.path, skill_path)
    if containment.type == "violation" or Path(skill_path).parent != Path(scope_info.path):
        return _security(skill_name, "containment-violation", f"Skill path {skill_path} is outside {scope_info.path}")

    safety = check_symlink_safety(skill_path, scope_info.path)
    if safety.type == "escape":
        return _security(
            skill_name,
            "symlink-escape",
            f"Skill directory is a symlink pointing outside the scope: {safety.target_path}",
        )
    if safety.type == "error":
        return _fail(skill_name, FileSystemErrorDetail(operation="stat", path=skill_path, message=safety.message))

    warnings: list[str] = []
    if safety.is_symlink:
        # Only the link itself is removed below
        warnings.append(f"Skill directory is a symlink to {safety.resolved_path}; only the link will be removed")
        return skill_path, warnings

    if not found.has_skill_md:
        if not force:
            return _validation(skill_name, "skill_path", "Directory has no SKILL.md; use --force to remove it anyway")
        warnings.append("Directory has no SKILL.md")

    unexpected = detect_unexpected_files(skill_path)
    if unexpected.requires_force:
        if not force:
            return _validation(
                skill_name,
                "skill_path",
                "Skill directory contains unexpected content; use --force to remove it anyway",
                unexpected.warnings,
            )
        warnings.extend(unexpected.warnings)

    limits = check_resource_limits(get_skill_summary(skill_path))
    if not limits.within_limits:
        if not force:
            return _validation(skill_name, "skill_path", limits.message or "Resource limits exceeded")
        warnings.append(limits.message or "Resource limits exceeded")

    hard_links = detect_hard_link_warnings(skill_path)
    if hard_links is not None:
        if not force:
            return _security(
                skill_name,
                "hard-link-detected",
                hard_links.message,
                [finding.relative_path for finding in hard_links.files],
            )
        warnings.append(hard_links.message)

    symlinks = get_symlink_summary(skill_path)
    if symlinks.warning:
        warnings.append(symlinks.warning)

    return skill_path, warnings


def uninstall_skill(
    skill_name: str,
    *,
    scope: str | None = None,
    force: bool = False,
    dry_run: bool = False,
    cwd: Path | None = None,
    home: Path | None = None,
    cancel_token: CancellationToken | None = None,
    discover: Discoverer | None = None,
) -> UninstallOutcome:
    """Uninstall one skill. There is no backup and no rollback."""
    discover = discover or discover_skill
    token = cancel_token or CancellationToken()

    name_check = validate_skill_name(skill_name)
    if not name_check.valid:
        return _validation(skill_name, "skill_name", name_check.error or "Invalid skill name")
    scope_check = validate_scope(scope)
    if not scope_check.valid or scope_check.scope is None:
        return _validation(skill_name, "scope", scope_check.error or "Invalid scope")

    scope_info = get_scope_info(scope_check.scope, cwd=cwd, home=home)
    preflight = _preflight(skill_name, scope_info, discover, force)
    if isinstance(preflight, UninstallFailure):
        logger.warning("Uninstall refused", skill=skill_name, error=preflight.error.type)
        _audit(preflight, scope_info.type, home)
        return preflight
    skill_path, warnings = preflight

    if dry_run:
        files = [] if os.path.islink(skill_path) else list(enumerate_skill_files(skill_path))
        return UninstallDryRunPreview(
            skill_name=skill_name,
            path=skill_path,
            files=[info.relative_path for info in files],
            file_count=sum(1 for info in files if not info.is_directory),
            total_size=sum(info.size for info in files),
            warnings=warnings,
        )

    outcome: UninstallOutcome
    try:
        check_cancelled(token)
        with skill_lock(skill_path, "uninstall"):
            summary = execute_skill_deletion(skill_path, token)
    except CancellationError:
        outcome = UninstallCancelled(
            skill_name=skill_name, files_removed=0, files_remaining=_remaining_entries(skill_path)
        )
    except ConcurrencyError as err:
        outcome = _fail(
            skill_name,
            ConcurrencyErrorDetail(
                lock_path=str(err.details.get("lock_path", "")),
                message=err.message,
                owner_pid=err.details.get("owner_pid"),
            ),
        )
    else:
        removed = summary.files_deleted + summary.symlinks_deleted
        if summary.cancelled:
            outcome = UninstallCancelled(
                skill_name=skill_name,
                files_removed=removed,
                files_remaining=_remaining_entries(skill_path),
            )
        elif summary.errors or os.path.lexists(skill_path):
            remaining = _remaining_entries(skill_path)
            outcome = _fail(
                skill_name,
                PartialRemovalDetail(
                    skill_name=skill_name,
                    files_removed=removed,
                    files_remaining=remaining,
                    errors=summary.error_messages,
                    message=f"Removed {removed} file(s) but {remaining} entr{'y' if remaining == 1 else 'ies'} remain",
                ),
            )
        else:
            outcome = UninstallResult(
                skill_name=skill_name,
                path=skill_path,
                files_removed=removed,
                directories_removed=summary.directories_deleted,
                bytes_freed=summary.bytes_freed,
                warnings=warnings,
            )

    logger.info("Uninstall finished", skill=skill_name, outcome=outcome.type)
    _audit(outcome, scope_info.type, home)
    return outcome


def _audit(outcome: UninstallOutcome, scope: str, home: Path | None) -> None:
    if isinstance(outcome, UninstallResult):
        write_audit_entry(
            "uninstall",
            outcome.skill_name,
            scope,
            "SUCCESS",
            home=home,
            files=outcome.files_removed,
            bytes=outcome.bytes_freed,
        )
    elif isinstance(outcome, UninstallCancelled):
        write_audit_entry(
            "uninstall",
            outcome.skill_name,
            scope,
            "CANCELLED",
            home=home,
            removed=outcome.files_removed,
            remaining=outcome.files_remaining,
        )
    elif isinstance(outcome, UninstallFailure):
        status = "PARTIAL" if outcome.error.type == "partial-removal" else "FAILED"
        write_audit_entry("uninstall", outcome.skill_name, scope, status, home=home, error=outcome.error.type)


def uninstall_skills(
    skill_names: list[str],
    *,
    scope: str | None = None,
    force: bool = False,
    dry_run: bool = False,
    cwd: Path | None = None,
    home: Path | None = None,
    cancel_token: CancellationToken | None = None,
    discover: Discoverer | None = None,
) -> MultiUninstallResult:
    """Uninstall several skills in order, each under its own lock.

    Stops early once the token is cancelled; remaining skills are reported
    as cancelled with nothing removed.
    """
    token = cancel_token or CancellationToken()
    result = MultiUninstallResult()

    for name in dict.fromkeys(skill_names):
        if token.cancelled:
            result.failed.append(UninstallCancelled(skill_name=name, files_removed=0, files_remaining=0))
            continue
        outcome = uninstall_skill(
            name,
            scope=scope,
            force=force,
            dry_run=dry_run,
            cwd=cwd,
            home=home,
            cancel_token=token,
            discover=discover,
        )
        if isinstance(outcome, UninstallResult):
            result.succeeded.append(outcome)
            result.total_files_removed += outcome.files_removed
            result.total_bytes_freed += outcome.bytes_freed
        elif isinstance(outcome, UninstallDryRunPreview):
            result.previews.append(outcome)
        else:
            result.failed.append(outcome)

    return result
