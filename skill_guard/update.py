"""Replace an installed skill with a new package, rolling back on failure.

The update runs as a state machine::

    locating -> validating-package -> comparing -> creating-backup
      -> removing-old -> extracting-new -> validating-updated -> complete

Any failure after the first destructive step goes through
``rolling-back`` and ends in ``rolled-back`` (original restored) or
``rollback-failed`` (critical, manual recovery needed). Everything before
``creating-backup`` is read-only, which is also where dry runs stop.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from .archive import check_archive_entries, extract_archive, raise_if_unsafe, validate_package_structure
from .audit import write_audit_entry
from .backup import cleanup_backup, create_backup, get_backup_path, restore_backup
from .cancellation import CancellationToken, check_cancelled
from .comparator import compare_versions, detect_downgrade, get_version_info
from .constants import PACKAGE_EXTENSION
from .discovery import discover_skill
from .errors import (
    BackupError,
    CancellationError,
    ConcurrencyError,
    FileSystemError,
    NotFoundError,
    PackageMismatchError,
    SecurityError,
    SkillGuardError,
    ValidationError,
)
from .fs_utils import check_resource_limits, get_skill_summary
from .lock import skill_lock
from .logger import logger
from .names import validate_scope, validate_skill_name
from .path_verifier import is_valid_scope_path, verify_containment
from .safe_delete import execute_skill_deletion
from .scopes import get_scope_info
from .security import check_symlink_safety, detect_hard_link_warnings, get_symlink_summary
from .types import (
    BackupCreationDetail,
    ConcurrencyErrorDetail,
    FileSystemErrorDetail,
    PackageMismatchDetail,
    SecurityErrorDetail,
    SkillNotFoundDetail,
    UpdateCancelled,
    UpdateDryRunPreview,
    UpdateFailure,
    UpdateRollbackFailed,
    UpdateRolledBack,
    UpdateSession,
    UpdateState,
    UpdateSuccess,
    ValidationErrorDetail,
)
from .validator import validate_skill_content

if TYPE_CHECKING:
    from .types import (
        ContentValidator,
        Discoverer,
        Extractor,
        ScopeInfo,
        UpdateError,
        UpdateOutcome,
    )


def _transition(session: UpdateSession, state: UpdateState) -> None:
    session.state = state
    logger.info("Update state", skill=session.skill_name, state=state.value)


def _error_detail(err: SkillGuardError, session: UpdateSession | None, skill_name: str) -> UpdateError:
    if isinstance(err, NotFoundError):
        return SkillNotFoundDetail(
            skill_name=skill_name,
            searched_path=str(err.details.get("searched_path", "")),
            message=err.message,
        )
    if isinstance(err, SecurityError):
        return SecurityErrorDetail(reason=err.reason, message=err.message, details=err.details.get("items", []))
    if isinstance(err, PackageMismatchError):
        return PackageMismatchDetail(
            installed_name=err.installed_name, package_name=err.package_name, message=err.message
        )
    if isinstance(err, ValidationError):
        return ValidationErrorDetail(
            field=str(err.details.get("field", "package")),
            message=err.message,
            details=err.details.get("errors", []),
        )
    if isinstance(err, ConcurrencyError):
        return ConcurrencyErrorDetail(
            lock_path=str(err.details.get("lock_path", "")),
            message=err.message,
            owner_pid=err.details.get("owner_pid"),
        )
    if isinstance(err, BackupError):
        return BackupCreationDetail(backup_path=str(err.details.get("path", "")), message=err.message)
    return FileSystemErrorDetail(
        operation=str(err.details.get("operation", session.state.value if session else "update")),
        path=str(err.details.get("path", session.installed_path if session else "")),
        message=err.message,
    )


def _locate(
    session: UpdateSession, scope_info: ScopeInfo, discover: Discoverer, validator: ContentValidator, force: bool
) -> None:
    _transition(session, UpdateState.LOCATING)

    if not is_valid_scope_path(scope_info.path):
        raise SecurityError(f"Scope root {scope_info.path} is not a skills directory", reason="containment-violation")

    found = discover(session.skill_name, scope_info)
    if found.type == "not-found":
        raise NotFoundError(
            f'Skill "{session.skill_name}" not found in {scope_info.type} scope',
            details={"searched_path": found.searched_path},
        )
    if found.type == "case-mismatch":
        raise SecurityError(
            f'Skill name case mismatch: requested "{found.expected_name}" but found "{found.actual_name}"',
            reason="case-mismatch",
        )

    containment = verify_containment(scope_info.path, found.path)
    if containment.type == "violation" or Path(found.path).parent != Path(scope_info.path):
        raise SecurityError(
            f"Skill path {found.path} is not a direct child of {scope_info.path}", reason="containment-violation"
        )
    session.installed_path = found.path

    safety = check_symlink_safety(found.path, scope_info.path)
    if safety.type == "escape":
        raise SecurityError(
            f"Skill directory is a symlink pointing outside the scope: {safety.target_path}",
            reason="symlink-escape",
        )
    if safety.type == "error":
        raise FileSystemError(safety.message, details={"operation": "stat", "path": found.path})
    if safety.is_symlink:
        raise ValidationError(
            "Skill directory is a symlink; update the link target directly",
            details={"field": "skill_path"},
        )

    hard_links = detect_hard_link_warnings(found.path)
    if hard_links is not None:
        if not force:
            raise SecurityError(
                hard_links.message,
                reason="hard-link-detected",
                details={"items": [finding.relative_path for finding in hard_links.files]},
            )
        session.warnings.append(hard_links.message)

    limits = check_resource_limits(get_skill_summary(found.path))
    if not limits.within_limits:
        if not force:
            raise ValidationError(limits.message or "Resource limits exceeded", details={"field": "skill_path"})
        session.warnings.append(limits.message or "Resource limits exceeded")

    symlinks = get_symlink_summary(found.path)
    if symlinks.warning:
        session.warnings.append(symlinks.warning)

    session.original_valid = validator(found.path).valid


def _validate_package(session: UpdateSession, validator: ContentValidator, extractor: Extractor) -> Path:
    _transition(session, UpdateState.VALIDATING_PACKAGE)
    package = session.package_path

    if not zipfile.is_zipfile(package):
        raise ValidationError(f"Not a valid zip archive: {package}", details={"field": "package"})

    # Hostile entry names are security errors, not structure errors
    raise_if_unsafe(check_archive_entries(package))

    structure = validate_package_structure(package)
    if not structure.valid:
        raise ValidationError("Invalid package structure", details={"field": "package", "errors": structure.errors})

    raise_if_unsafe(check_archive_entries(package, structure.root_dir))

    if structure.root_dir != session.skill_name:
        raise PackageMismatchError(session.skill_name, structure.root_dir or "")

    staging = Path(tempfile.mkdtemp(prefix="skill-guard-staging-"))
    session.staging_dir = str(staging)
    extractor(package, staging)

    staged = staging / session.skill_name
    if not staged.is_dir():
        raise ValidationError("Package did not extract to a skill directory", details={"field": "package"})

    result = validator(staged)
    if not result.valid:
        raise ValidationError("Package failed validation", details={"field": "package", "errors": result.errors})
    return staged


def _recovery_instructions(session: UpdateSession) -> str:
    if session.backup_path is None:
        return (
            "No backup was created for this update. "
            f"Remove {session.installed_path} if it exists and reinstall the skill from its original package."
        )
    return (
        "Automatic rollback failed. To restore the previous version manually:\n"
        f"  1. Remove the partially updated skill: rm -rf {session.installed_path}\n"
        f"  2. Extract the backup into the skills directory: unzip {session.backup_path} -d {session.scope_path}\n"
        f"  3. Confirm {session.installed_path}/SKILL.md exists.\n"
        f"The backup at {session.backup_path} has been kept."
    )


def _rollback(
    session: UpdateSession,
    validator: ContentValidator,
    extractor: Extractor,
    failure_reason: str,
) -> UpdateRolledBack | UpdateRollbackFailed:
    _transition(session, UpdateState.ROLLING_BACK)
    logger.warning("Rolling back update", skill=session.skill_name, reason=failure_reason)

    try:
        if session.backup_path is None:
            raise FileSystemError("No backup available to restore (backup was disabled)")

        if os.path.lexists(session.installed_path):
            summary = execute_skill_deletion(session.installed_path)
            if os.path.lexists(session.installed_path):
                raise FileSystemError(
                    "Could not remove partially updated files: " + "; ".join(summary.error_messages),
                    details={"operation": "remove", "path": session.installed_path},
                )

        restore_backup(session.backup_path, session.scope_path, extractor)

        if not Path(session.installed_path).is_dir():
            raise FileSystemError("Restored skill directory is missing", details={"path": session.installed_path})
        if session.original_valid:
            check = validator(session.installed_path)
            if not check.valid:
                raise ValidationError("Restored skill failed validation: " + "; ".join(check.errors))
    except Exception as err:
        _transition(session, UpdateState.ROLLBACK_FAILED)
        rollback_reason = err.message if isinstance(err, SkillGuardError) else str(err)
        logger.error(
            "Rollback failed",
            skill=session.skill_name,
            update_error=failure_reason,
            rollback_error=rollback_reason,
            backup=session.backup_path,
        )
        return UpdateRollbackFailed(
            skill_name=session.skill_name,
            path=session.installed_path,
            update_failure_reason=failure_reason,
            rollback_failure_reason=rollback_reason,
            backup_path=session.backup_path,
            recovery_instructions=_recovery_instructions(session),
        )

    _transition(session, UpdateState.ROLLED_BACK)
    return UpdateRolledBack(
        skill_name=session.skill_name,
        path=session.installed_path,
        failure_reason=failure_reason,
        backup_path=session.backup_path,
    )


def _apply(
    session: UpdateSession,
    *,
    home: Path | None,
    keep_backup: bool,
    no_backup: bool,
    token: CancellationToken,
    validator: ContentValidator,
    extractor: Extractor,
) -> UpdateOutcome:
    """Destructive phase. Must run while the update lock is held."""
    _transition(session, UpdateState.CREATING_BACKUP)
    if no_backup:
        logger.warning("Backup disabled; a failed update cannot be rolled back", skill=session.skill_name)
        session.warnings.append("Backup disabled: a failed update cannot be rolled back")
    else:
        backup = create_backup(session.installed_path, session.skill_name, home)
        if not backup.success:
            raise BackupError(backup.error or "Backup creation failed", details={"path": backup.path})
        session.backup_path = backup.path

    if token.cancelled:
        if session.backup_path is not None:
            cleanup_backup(session.backup_path, home)
            session.backup_path = None
        raise CancellationError("Update cancelled before any change was made")

    try:
        _transition(session, UpdateState.REMOVING_OLD)
        summary = execute_skill_deletion(session.installed_path, token)
        if summary.cancelled:
            raise CancellationError("Update interrupted")
        if summary.errors or not summary.skill_directory_deleted:
            raise FileSystemError(
                "Failed to remove the old version: " + ("; ".join(summary.error_messages) or "directory remains"),
                details={"operation": "remove", "path": session.installed_path},
            )

        _transition(session, UpdateState.EXTRACTING_NEW)
        check_cancelled(token)
        raise_if_unsafe(check_archive_entries(session.package_path, session.skill_name))
        extractor(session.package_path, session.scope_path)
        check_cancelled(token)

        _transition(session, UpdateState.VALIDATING_UPDATED)
        result = validator(session.installed_path)
        if not result.valid:
            raise ValidationError("Updated skill failed validation: " + "; ".join(result.errors))
    except Exception as err:
        if isinstance(err, CancellationError):
            reason = "Update interrupted"
        elif isinstance(err, SkillGuardError):
            reason = err.message
        else:
            reason = f"Unexpected error: {err}"
        return _rollback(session, validator, extractor, reason)

    _transition(session, UpdateState.COMPLETE)
    current = get_version_info(session.installed_path)
    previous = session.previous_version
    backup_removed = session.backup_path is not None and not keep_backup
    if backup_removed and session.backup_path is not None:
        cleanup_backup(session.backup_path, home)

    return UpdateSuccess(
        skill_name=session.skill_name,
        path=session.installed_path,
        previous_file_count=previous.file_count if previous else 0,
        current_file_count=current.file_count,
        previous_size=previous.size if previous else 0,
        current_size=current.size,
        backup_path=session.backup_path,
        backup_will_be_removed=backup_removed,
        warnings=session.warnings,
    )


def _audit(outcome: UpdateOutcome, scope: str, home: Path | None, package_path: str) -> None:
    status = {
        "update-success": "SUCCESS",
        "update-rolled-back": "ROLLED_BACK",
        "update-rollback-failed": "ROLLBACK_FAILED",
        "update-cancelled": "CANCELLED",
        "update-failure": "FAILED",
    }.get(outcome.type)
    if status is None:
        return
    fields: dict[str, object] = {"package": package_path}
    if isinstance(outcome, (UpdateSuccess, UpdateRolledBack, UpdateRollbackFailed)):
        fields["backup"] = outcome.backup_path
    if isinstance(outcome, UpdateFailure):
        fields["error"] = outcome.error.type
    if isinstance(outcome, UpdateRolledBack):
        fields["reason"] = repr(outcome.failure_reason)
    write_audit_entry("update", outcome.skill_name, scope, status, home=home, **fields)


def update_skill(
    skill_name: str,
    package_path: str | os.PathLike[str],
    *,
    scope: str | None = None,
    force: bool = False,
    dry_run: bool = False,
    keep_backup: bool = False,
    no_backup: bool = False,
    cwd: Path | None = None,
    home: Path | None = None,
    cancel_token: CancellationToken | None = None,
    validator: ContentValidator | None = None,
    extractor: Extractor | None = None,
    discover: Discoverer | None = None,
) -> UpdateOutcome:
    """Update an installed skill from a ``.skill`` package.

    Returns one of the tagged update outcomes; expected failures are never
    raised. ``cwd`` and ``home`` override the scope roots and data
    directory. ``validator``, ``extractor`` and ``discover`` replace the
    default collaborators.
    """
    validator = validator or validate_skill_content
    extractor = extractor or extract_archive
    discover = discover or discover_skill
    token = cancel_token or CancellationToken()

    name_check = validate_skill_name(skill_name)
    if not name_check.valid:
        return UpdateFailure(
            skill_name=skill_name,
            error=ValidationErrorDetail(field="skill_name", message=name_check.error or "Invalid skill name"),
        )
    scope_check = validate_scope(scope)
    if not scope_check.valid or scope_check.scope is None:
        return UpdateFailure(
            skill_name=skill_name,
            error=ValidationErrorDetail(field="scope", message=scope_check.error or "Invalid scope"),
        )

    package = Path(package_path).absolute()
    if not package.is_file():
        return UpdateFailure(
            skill_name=skill_name,
            error=ValidationErrorDetail(field="package", message=f"Package file not found: {package}"),
        )
    if package.suffix != PACKAGE_EXTENSION:
        return UpdateFailure(
            skill_name=skill_name,
            error=ValidationErrorDetail(
                field="package", message=f"Package must have a {PACKAGE_EXTENSION} extension: {package.name}"
            ),
        )

    scope_info = get_scope_info(scope_check.scope, cwd=cwd, home=home)
    session = UpdateSession(
        skill_name=skill_name,
        scope=scope_check.scope,
        scope_path=scope_info.path,
        installed_path=str(Path(scope_info.path) / skill_name),
        package_path=str(package),
    )

    outcome: UpdateOutcome
    try:
        _locate(session, scope_info, discover, validator, force)
        check_cancelled(token)
        staged = _validate_package(session, validator, extractor)
        check_cancelled(token)

        _transition(session, UpdateState.COMPARING)
        session.previous_version = get_version_info(session.installed_path)
        new_version = get_version_info(staged)
        session.comparison = compare_versions(session.installed_path, staged)
        downgrade = detect_downgrade(session.previous_version, new_version)
        if downgrade:
            session.warnings.append(downgrade)

        if dry_run:
            return UpdateDryRunPreview(
                skill_name=skill_name,
                path=session.installed_path,
                current_version=session.previous_version,
                new_version=new_version,
                comparison=session.comparison,
                backup_path=None if no_backup else str(get_backup_path(skill_name, home)),
                warnings=session.warnings,
            )

        check_cancelled(token)
        with skill_lock(session.installed_path, "update", session.package_path) as lock_path:
            session.lock_path = lock_path
            outcome = _apply(
                session,
                home=home,
                keep_backup=keep_backup,
                no_backup=no_backup,
                token=token,
                validator=validator,
                extractor=extractor,
            )
    except CancellationError:
        reason = "user-cancelled" if token.reason == "user-cancelled" else "interrupted"
        outcome = UpdateCancelled(skill_name=skill_name, reason=reason, cleanup_performed=True)
    except SkillGuardError as err:
        logger.warning("Update failed", skill=skill_name, state=session.state.value, error=err.message)
        outcome = UpdateFailure(skill_name=skill_name, error=_error_detail(err, session, skill_name))
    except OSError as err:
        logger.warning("Update failed", skill=skill_name, state=session.state.value, error=str(err))
        outcome = UpdateFailure(
            skill_name=skill_name,
            error=FileSystemErrorDetail(
                operation=session.state.value,
                path=err.filename or session.installed_path,
                message=err.strerror or str(err),
            ),
        )
    finally:
        if session.staging_dir is not None:
            shutil.rmtree(session.staging_dir, ignore_errors=True)

    _audit(outcome, session.scope, home, session.package_path)
    logger.info("Update finished", skill=skill_name, outcome=outcome.type)
    return outcome


def preview_update(skill_name: str, package_path: str | os.PathLike[str], **kwargs: object) -> UpdateOutcome:
    """Dry-run form of ``update_skill``: validates and compares, changes nothing."""
    kwargs["dry_run"] = True
    return update_skill(skill_name, package_path, **kwargs)  # type: ignore[arg-type]
