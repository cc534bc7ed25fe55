"""Zip handling for .skill packages: entry checks, structure, extract, create."""

from __future__ import annotations

import os
import shutil
import stat
import zipfile
from pathlib import Path, PurePosixPath

from .config import get_max_compression_ratio, get_max_size
from .constants import SKILL_MD
from .errors import SecurityError, ValidationError
from .fs_utils import enumerate_skill_files
from .logger import logger
from .types import ArchiveEntryIssue, PackageStructure

# Small entries compress absurdly well (a run of zeros) without being a threat.
_RATIO_CHECK_MIN_SIZE = 1024 * 1024


def _entry_parts(name: str) -> list[str]:
    return [part for part in name.replace("\\", "/").split("/") if part]


def _is_symlink_entry(info: zipfile.ZipInfo) -> bool:
    return stat.S_ISLNK(info.external_attr >> 16)


def check_entry(info: zipfile.ZipInfo, root_name: str | None = None) -> ArchiveEntryIssue | None:
    """Classify a single zip entry. Returns None when the entry is safe."""
    name = info.filename
    if "\x00" in name:
        return ArchiveEntryIssue(entry=name, reason="null-byte", message="Entry name contains a null byte")

    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or (len(normalized) >= 2 and normalized[1] == ":"):
        return ArchiveEntryIssue(entry=name, reason="absolute-path", message="Entry has an absolute path")

    parts = _entry_parts(name)
    if ".." in parts:
        return ArchiveEntryIssue(entry=name, reason="path-traversal", message="Entry contains '..'")

    if root_name is not None and (not parts or parts[0] != root_name):
        return ArchiveEntryIssue(
            entry=name, reason="outside-root", message=f"Entry is outside the root directory {root_name!r}"
        )

    if info.file_size > _RATIO_CHECK_MIN_SIZE:
        ratio = info.file_size / max(info.compress_size, 1)
        if ratio > get_max_compression_ratio():
            return ArchiveEntryIssue(
                entry=name, reason="zip-bomb", message=f"Suspicious compression ratio {ratio:.0f}:1"
            )

    return None


def check_archive_entries(archive_path: str | os.PathLike[str], root_name: str | None = None) -> list[ArchiveEntryIssue]:
    """Check every entry of a package, plus the total uncompressed size."""
    issues: list[ArchiveEntryIssue] = []
    with zipfile.ZipFile(archive_path, "r") as zf:
        infos = zf.infolist()
        for info in infos:
            issue = check_entry(info, root_name)
            if issue is not None:
                issues.append(issue)
        total = sum(info.file_size for info in infos)
        if total > get_max_size():
            issues.append(
                ArchiveEntryIssue(entry="*", reason="zip-bomb", message=f"Uncompressed size {total} exceeds limit")
            )
    return issues


def validate_package_structure(package_path: str | os.PathLike[str]) -> PackageStructure:
    """A package is a zip with one root directory that contains SKILL.md."""
    path = Path(package_path)
    if not path.is_file():
        return PackageStructure(valid=False, errors=[f"Package not found: {path}"])
    if not zipfile.is_zipfile(path):
        return PackageStructure(valid=False, errors=[f"Not a valid zip archive: {path}"])

    try:
        with zipfile.ZipFile(path, "r") as zf:
            infos = zf.infolist()
    except (zipfile.BadZipFile, OSError) as err:
        return PackageStructure(valid=False, errors=[f"Cannot read package: {err}"])

    if not infos:
        return PackageStructure(valid=False, errors=["Package is empty"])

    roots = {parts[0] for parts in (_entry_parts(info.filename) for info in infos) if parts}
    file_count = sum(1 for info in infos if not info.is_dir())
    uncompressed = sum(info.file_size for info in infos)

    if len(roots) != 1:
        return PackageStructure(
            valid=False,
            file_count=file_count,
            uncompressed_size=uncompressed,
            errors=[f"Package must contain exactly one root directory, found {len(roots)}"],
        )

    root_name = next(iter(roots))
    skill_md_entry = f"{root_name}/{SKILL_MD}"
    has_skill_md = any(info.filename.replace("\\", "/") == skill_md_entry for info in infos)
    # A lone file at the root is not a directory
    root_is_dir = any(len(_entry_parts(info.filename)) > 1 or info.is_dir() for info in infos)

    errors = []
    if not root_is_dir:
        errors.append("Package root must be a directory")
    if not has_skill_md:
        errors.append(f"Package is missing {skill_md_entry}")

    return PackageStructure(
        valid=not errors,
        root_dir=root_name,
        has_skill_md=has_skill_md,
        file_count=file_count,
        uncompressed_size=uncompressed,
        errors=errors,
    )


def extract_archive(archive_path: str | os.PathLike[str], dest_dir: str | os.PathLike[str]) -> None:
    """Extract a package into ``dest_dir``, refusing any entry that escapes it.

    Symlink entries are skipped. Raises SecurityError for unsafe entries and
    ValidationError for unreadable archives.
    """
    dest = Path(dest_dir)
    dest.mkdir(parents=True, exist_ok=True)
    base = dest.resolve()

    try:
        zf = zipfile.ZipFile(archive_path, "r")
    except (zipfile.BadZipFile, OSError) as err:
        raise ValidationError(f"Cannot open archive {archive_path}: {err}") from err

    with zf:
        for info in zf.infolist():
            name = info.filename
            if not name:
                continue
            issue = check_entry(info)
            if issue is not None:
                reason = "zip-bomb" if issue.reason == "zip-bomb" else "zip-entry-escape"
                raise SecurityError(f"Unsafe archive entry {name!r}: {issue.message}", reason=reason)

            target = (dest / name).resolve()
            if not str(target).startswith(str(base) + os.sep) and target != base:
                raise SecurityError(f"Archive entry escapes destination: {name!r}", reason="zip-entry-escape")

            if _is_symlink_entry(info):
                logger.warning("Skipping symlink entry in archive", entry=name)
                continue

            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue

            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info, "r") as src, target.open("wb") as out:
                shutil.copyfileobj(src, out)


def create_archive(source_dir: str | os.PathLike[str], archive_path: str | os.PathLike[str], root_name: str) -> tuple[int, int]:
    """Zip ``source_dir`` as ``root_name/...``. Symlinks are not archived.

    Returns (file_count, total_uncompressed_size).
    """
    file_count = 0
    total_size = 0
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(f"{root_name}/", "")
        for info in enumerate_skill_files(source_dir):
            arcname = str(PurePosixPath(root_name, *Path(info.relative_path).parts))
            if info.is_symlink:
                logger.debug("Not archiving symlink", path=info.relative_path)
                continue
            if info.is_directory:
                zf.writestr(f"{arcname}/", "")
                continue
            zf.write(info.absolute_path, arcname)
            file_count += 1
            total_size += info.size
    return file_count, total_size


def raise_if_unsafe(issues: list[ArchiveEntryIssue]) -> None:
    """Turn entry issues from ``check_archive_entries`` into a SecurityError."""
    if not issues:
        return
    reason = "zip-bomb" if any(issue.reason == "zip-bomb" for issue in issues) else "zip-entry-escape"
    raise SecurityError(
        f"Package contains {len(issues)} unsafe entr{'y' if len(issues) == 1 else 'ies'}",
        reason=reason,
        details={"items": [f"{issue.entry}: {issue.message}" for issue in issues]},
    )
