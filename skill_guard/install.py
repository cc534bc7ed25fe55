"""Install a skill from a ``.skill`` package.

The package goes through the same checks as an update package: zip entry
safety, single-root structure and content validation of a staged copy.
Installing over an existing skill requires ``force``; the existing skill is
backed up first and put back if anything after its removal fails.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from .archive import check_archive_entries, extract_archive, raise_if_unsafe, validate_package_structure
from .audit import write_audit_entry
from .backup import cleanup_backup, create_backup, restore_backup
from .cancellation import CancellationToken, check_cancelled
from .comparator import get_version_info
from .constants import PACKAGE_EXTENSION
from .errors import (
    BackupError,
    CancellationError,
    ConcurrencyError,
    FileSystemError,
    PackageMismatchError,
    SecurityError,
    SkillGuardError,
    ValidationError,
)
from .fs_utils import enumerate_skill_files
from .lock import skill_lock
from .logger import logger
from .names import validate_scope, validate_skill_name
from .path_verifier import is_valid_scope_path
from .safe_delete import execute_skill_deletion
from .scopes import get_scope_info
from .types import (
    BackupCreationDetail,
    ConcurrencyErrorDetail,
    FileSystemErrorDetail,
    InstallCancelled,
    InstallDryRunPreview,
    InstallFailure,
    InstallFileEntry,
    InstallOverwriteRequired,
    InstallSuccess,
    PackageMismatchDetail,
    SecurityErrorDetail,
    ValidationErrorDetail,
)
from .validator import validate_skill_content

if TYPE_CHECKING:
    from .types import ContentValidator, Extractor, InstallError, InstallOutcome


def _error_detail(err: SkillGuardError, target: str) -> InstallError:
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
        operation=str(err.details.get("operation", "install")),
        path=str(err.details.get("path", target)),
        message=err.message,
    )


def list_package_files(package_path: str | os.PathLike[str]) -> list[InstallFileEntry]:
    """Entries of a package relative to its root directory."""
    entries = []
    with zipfile.ZipFile(package_path, "r") as zf:
        for info in zf.infolist():
            parts = PurePosixPath(info.filename.replace("\\", "/")).parts[1:]
            if not parts:
                continue
            entries.append(
                InstallFileEntry(path="/".join(parts), size=info.file_size, is_directory=info.is_dir())
            )
    return entries


def _check_package(
    package: Path, skill_name: str | None, staging: Path, validator: ContentValidator, extractor: Extractor
) -> str:
    """Validate the package and return the name of the skill it installs."""
    if not zipfile.is_zipfile(package):
        raise ValidationError(f"Not a valid zip archive: {package}", details={"field": "package"})

    raise_if_unsafe(check_archive_entries(package))

    structure = validate_package_structure(package)
    if not structure.valid or structure.root_dir is None:
        raise ValidationError("Invalid package structure", details={"field": "package", "errors": structure.errors})

    root = structure.root_dir
    if skill_name is not None and root != skill_name:
        raise PackageMismatchError(skill_name, root)
    name_check = validate_skill_name(root)
    if not name_check.valid:
        raise ValidationError(
            f"Package root is not a valid skill name: {name_check.error}", details={"field": "package"}
        )

    raise_if_unsafe(check_archive_entries(package, root))

    extractor(package, staging)
    staged = staging / root
    if not staged.is_dir():
        raise ValidationError("Package did not extract to a skill directory", details={"field": "package"})
    result = validator(staged)
    if not result.valid:
        raise ValidationError("Package failed validation", details={"field": "package", "errors": result.errors})
    return root


def _check_target(target: Path) -> bool:
    """True when something is already installed at ``target``."""
    if not os.path.lexists(target):
        return False
    if target.is_symlink():
        raise ValidationError(
            f"{target} is a symlink; remove it before installing", details={"field": "skill_path"}
        )
    if not target.is_dir():
        raise ValidationError(f"{target} exists and is not a directory", details={"field": "skill_path"})
    return True


def _undo(
    skill_name: str, target: Path, scope_path: Path, backup_path: str | None, home: Path | None, extractor: Extractor
) -> bool:
    """Remove a partial install and restore the previous version, if any.

    Returns True when the previous version is back in place. The backup is
    kept whenever it could not be restored.
    """
    try:
        if os.path.lexists(target):
            summary = execute_skill_deletion(target)
            if os.path.lexists(target):
                raise FileSystemError(
                    "Could not remove partially installed files: " + "; ".join(summary.error_messages),
                    details={"operation": "remove", "path": str(target)},
                )
        if backup_path is None:
            return False
        restore_backup(backup_path, scope_path, extractor)
    except (SkillGuardError, OSError) as err:
        logger.error("Could not undo install", skill=skill_name, error=str(err), backup=backup_path)
        return False

    cleanup_backup(backup_path, home)
    return True


def _apply(
    skill_name: str,
    target: Path,
    scope_path: Path,
    package: Path,
    *,
    overwrite: bool,
    home: Path | None,
    token: CancellationToken,
    validator: ContentValidator,
    extractor: Extractor,
) -> InstallOutcome:
    """Destructive phase. Must run while the skill lock is held."""
    backup_path = None
    if overwrite:
        backup = create_backup(target, skill_name, home)
        if not backup.success:
            raise BackupError(backup.error or "Backup creation failed", details={"path": backup.path})
        backup_path = backup.path
        if token.cancelled:
            cleanup_backup(backup_path, home)
            raise CancellationError("Install cancelled before any change was made")

    try:
        if overwrite:
            summary = execute_skill_deletion(target, token)
            if summary.cancelled:
                raise CancellationError("Install interrupted")
            if summary.errors or not summary.skill_directory_deleted:
                raise FileSystemError(
                    "Failed to remove the existing skill: "
                    + ("; ".join(summary.error_messages) or "directory remains"),
                    details={"operation": "remove", "path": str(target)},
                )

        check_cancelled(token)
        raise_if_unsafe(check_archive_entries(package, skill_name))
        extractor(package, scope_path)

        result = validator(target)
        if not result.valid:
            raise ValidationError("Installed skill failed validation: " + "; ".join(result.errors))
    except Exception as err:
        logger.warning("Install failed, undoing", skill=skill_name, error=str(err))
        restored = _undo(skill_name, target, scope_path, backup_path, home, extractor)
        if isinstance(err, CancellationError):
            raise
        if isinstance(err, SkillGuardError):
            error = _error_detail(err, str(target))
        else:
            error = FileSystemErrorDetail(operation="install", path=str(target), message=f"Unexpected error: {err}")
        return InstallFailure(
            skill_name=skill_name,
            error=error,
            restored_previous=restored,
            backup_path=None if restored else backup_path,
        )

    if backup_path is not None:
        cleanup_backup(backup_path, home)
    info = get_version_info(target)
    return InstallSuccess(
        skill_name=skill_name,
        path=str(target),
        file_count=info.file_count,
        size=info.size,
        was_overwritten=overwrite,
    )


def _audit(outcome: InstallOutcome, scope: str, home: Path | None, package_path: str) -> None:
    status = {
        "install-success": "SUCCESS",
        "install-cancelled": "CANCELLED",
        "install-failure": "FAILED",
    }.get(outcome.type)
    if status is None:
        return
    fields: dict[str, object] = {"package": package_path}
    if isinstance(outcome, InstallSuccess):
        fields["overwritten"] = outcome.was_overwritten
    if isinstance(outcome, InstallFailure):
        fields["error"] = outcome.error.type
        fields["restored"] = outcome.restored_previous
    write_audit_entry("install", outcome.skill_name, scope, status, home=home, **fields)


def install_skill(
    package_path: str | os.PathLike[str],
    *,
    skill_name: str | None = None,
    scope: str | None = None,
    force: bool = False,
    dry_run: bool = False,
    cwd: Path | None = None,
    home: Path | None = None,
    cancel_token: CancellationToken | None = None,
    validator: ContentValidator | None = None,
    extractor: Extractor | None = None,
) -> InstallOutcome:
    """Install the skill in ``package_path`` into a scope.

    The skill name comes from the package root; passing ``skill_name``
    additionally requires the root to match it. An existing skill of the
    same name is only replaced with ``force``, otherwise the result is
    ``overwrite-required`` and nothing changes. Expected failures are
    returned, never raised.
    """
    validator = validator or validate_skill_content
    extractor = extractor or extract_archive
    token = cancel_token or CancellationToken()

    package = Path(package_path).absolute()
    display_name = skill_name or package.stem

    if skill_name is not None:
        name_check = validate_skill_name(skill_name)
        if not name_check.valid:
            return InstallFailure(
                skill_name=skill_name,
                error=ValidationErrorDetail(field="skill_name", message=name_check.error or "Invalid skill name"),
            )
    scope_check = validate_scope(scope)
    if not scope_check.valid or scope_check.scope is None:
        return InstallFailure(
            skill_name=display_name,
            error=ValidationErrorDetail(field="scope", message=scope_check.error or "Invalid scope"),
        )
    if not package.is_file():
        return InstallFailure(
            skill_name=display_name,
            error=ValidationErrorDetail(field="package", message=f"Package file not found: {package}"),
        )
    if package.suffix != PACKAGE_EXTENSION:
        return InstallFailure(
            skill_name=display_name,
            error=ValidationErrorDetail(
                field="package", message=f"Package must have a {PACKAGE_EXTENSION} extension: {package.name}"
            ),
        )

    scope_path = Path(get_scope_info(scope_check.scope, cwd=cwd, home=home).path)
    target = scope_path / display_name
    staging: Path | None = None

    outcome: InstallOutcome
    try:
        if not is_valid_scope_path(scope_path):
            raise SecurityError(f"Scope root {scope_path} is not a skills directory", reason="containment-violation")

        staging = Path(tempfile.mkdtemp(prefix="skill-guard-staging-"))
        display_name = _check_package(package, skill_name, staging, validator, extractor)
        target = scope_path / display_name
        check_cancelled(token)

        exists = _check_target(target)
        package_files = list_package_files(package)

        if dry_run:
            conflicts = [
                entry.path for entry in package_files if not entry.is_directory and (target / entry.path).exists()
            ]
            return InstallDryRunPreview(
                skill_name=display_name,
                path=str(target),
                files=package_files,
                total_size=sum(entry.size for entry in package_files),
                would_overwrite=exists,
                conflicts=conflicts,
            )

        if exists and not force:
            return InstallOverwriteRequired(
                skill_name=display_name,
                path=str(target),
                existing_files=[
                    info.relative_path for info in enumerate_skill_files(target) if not info.is_directory
                ],
            )

        scope_path.mkdir(parents=True, exist_ok=True)
        check_cancelled(token)
        with skill_lock(target, "install", package):
            outcome = _apply(
                display_name,
                target,
                scope_path,
                package,
                overwrite=exists,
                home=home,
                token=token,
                validator=validator,
                extractor=extractor,
            )
    except CancellationError:
        reason = "user-cancelled" if token.reason == "user-cancelled" else "interrupted"
        outcome = InstallCancelled(skill_name=display_name, reason=reason)
    except SkillGuardError as err:
        logger.warning("Install failed", skill=display_name, error=err.message)
        outcome = InstallFailure(skill_name=display_name, error=_error_detail(err, str(target)))
    except OSError as err:
        logger.warning("Install failed", skill=display_name, error=str(err))
        outcome = InstallFailure(
            skill_name=display_name,
            error=FileSystemErrorDetail(
                operation="install", path=err.filename or str(target), message=err.strerror or str(err)
            ),
        )
    finally:
        if staging is not None:
            shutil.rmtree(staging, ignore_errors=True)

    _audit(outcome, scope_check.scope, home, str(package))
    logger.info("Install finished", skill=display_name, outcome=outcome.type)
    return outcome
