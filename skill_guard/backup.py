"""Backup archives for skills that are about to be replaced.

Backups live under ``<data dir>/backups`` (0700) as ``.skill`` zips (0600)
with the skill name as their single root, so a backup can be installed
with the same extractor as any package.
"""

from __future__ import annotations

import contextlib
import os
import secrets
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from .archive import create_archive, extract_archive
from .config import get_backups_dir, get_data_dir
from .constants import BACKUP_DIR_MODE, BACKUP_FILE_MODE, PACKAGE_EXTENSION
from .errors import FileSystemError, SecurityError
from .logger import logger
from .scopes import is_path_within
from .types import BackupResult

if TYPE_CHECKING:
    from collections.abc import Callable

_UNIQUE_ATTEMPTS = 3
_MAX_NUMBERED_SUFFIX = 1000


def _ensure_private_dir(path: Path) -> None:
    if path.is_symlink():
        raise SecurityError(f"Refusing to use {path}: it is a symlink", reason="symlink-escape")
    path.mkdir(mode=BACKUP_DIR_MODE, exist_ok=True)
    if not path.is_dir():
        raise FileSystemError(f"{path} exists and is not a directory", details={"path": str(path)})
    os.chmod(path, BACKUP_DIR_MODE)


def ensure_backup_dir(home: Path | None = None) -> Path:
    """Create the data and backups directories, refusing symlinked ones."""
    data_dir = get_data_dir(home)
    backups_dir = get_backups_dir(home)
    data_dir.parent.mkdir(parents=True, exist_ok=True)
    _ensure_private_dir(data_dir)
    _ensure_private_dir(backups_dir)
    return backups_dir


def generate_backup_filename(skill_name: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%d-%H%M%S")
    return f"{skill_name}-{stamp}-{secrets.token_hex(4)}{PACKAGE_EXTENSION}"


def get_backup_path(skill_name: str, home: Path | None = None) -> Path:
    """A prospective backup path. Nothing is created."""
    return get_backups_dir(home) / generate_backup_filename(skill_name)


def get_unique_backup_path(skill_name: str, home: Path | None = None) -> Path:
    backups_dir = get_backups_dir(home)
    for _ in range(_UNIQUE_ATTEMPTS):
        candidate = backups_dir / generate_backup_filename(skill_name)
        if not candidate.exists():
            return candidate

    stem = generate_backup_filename(skill_name)[: -len(PACKAGE_EXTENSION)]
    for counter in range(1, _MAX_NUMBERED_SUFFIX):
        candidate = backups_dir / f"{stem}-{counter}{PACKAGE_EXTENSION}"
        if not candidate.exists():
            return candidate
    raise FileSystemError(f"Cannot find a free backup filename for {skill_name}")


def verify_backup_containment(backup_path: str | os.PathLike[str], home: Path | None = None) -> bool:
    backups_dir = get_backups_dir(home)
    return is_path_within(backups_dir, backup_path) and Path(backup_path) != backups_dir


def validate_backup_writability(home: Path | None = None) -> None:
    """Write and remove a marker file. Raises FileSystemError if that fails."""
    backups_dir = ensure_backup_dir(home)
    marker = backups_dir / f".write-test-{secrets.token_hex(4)}"
    try:
        marker.write_bytes(b"")
    except OSError as err:
        raise FileSystemError(
            f"Backup directory {backups_dir} is not writable: {err.strerror or err}",
            details={"path": str(backups_dir)},
        ) from err
    finally:
        with contextlib.suppress(FileNotFoundError):
            marker.unlink()


def create_backup(skill_path: str | os.PathLike[str], skill_name: str, home: Path | None = None) -> BackupResult:
    """Archive a skill directory. The archive is removed again on failure."""
    try:
        validate_backup_writability(home)
        backup_path = get_unique_backup_path(skill_name, home)
    except (SecurityError, FileSystemError) as err:
        return BackupResult(success=False, path="", error=err.message)

    if not verify_backup_containment(backup_path, home):
        return BackupResult(success=False, path=str(backup_path), error="Backup path escapes the backups directory")

    try:
        fd = os.open(str(backup_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, BACKUP_FILE_MODE)
        os.close(fd)
        file_count, size = create_archive(skill_path, backup_path, skill_name)
        os.chmod(backup_path, BACKUP_FILE_MODE)
    except OSError as err:
        with contextlib.suppress(FileNotFoundError):
            backup_path.unlink()
        logger.error("Backup creation failed", skill=skill_name, error=str(err))
        return BackupResult(success=False, path=str(backup_path), error=err.strerror or str(err))

    logger.info("Backup created", skill=skill_name, path=str(backup_path), files=file_count)
    return BackupResult(success=True, path=str(backup_path), size=size, file_count=file_count)


def restore_backup(
    backup_path: str | os.PathLike[str],
    scope_path: str | os.PathLike[str],
    extractor: Callable[[str | os.PathLike[str], str | os.PathLike[str]], None] = extract_archive,
) -> None:
    """Extract a backup into the scope root, recreating ``<scope>/<name>``."""
    if not Path(backup_path).is_file():
        raise FileSystemError(f"Backup not found: {backup_path}", details={"path": str(backup_path)})
    extractor(backup_path, scope_path)


def cleanup_backup(backup_path: str | os.PathLike[str], home: Path | None = None) -> bool:
    """Delete a backup, but only one that lives in the backups directory."""
    if not verify_backup_containment(backup_path, home):
        logger.warning("Refusing to delete file outside backups directory", path=str(backup_path))
        return False
    try:
        Path(backup_path).unlink()
    except FileNotFoundError:
        return False
    except OSError as err:
        logger.warning("Could not remove backup", path=str(backup_path), error=str(err))
        return False
    return True
