"""Filesystem walking utilities for skill directories."""

from __future__ import annotations

import hashlib
import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from .config import get_max_files, get_max_size
from .logger import logger
from .types import FileInfo, ResourceLimitResult, SkillSummary

if TYPE_CHECKING:
    from collections.abc import Iterator


def enumerate_skill_files(directory: str | os.PathLike[str]) -> Iterator[FileInfo]:
    """Yield every entry under ``directory`` without following symlinks.

    The walk is iterative with an explicit stack, so deep trees cannot
    exhaust the interpreter's recursion limit. Symlinked directories are
    reported but never descended into. Unreadable entries are skipped.
    """
    root = Path(directory)
    stack: list[Path] = [root]

    while stack:
        current = stack.pop()
        try:
            entries = sorted(os.listdir(current))
        except OSError as err:
            logger.debug("Skipping unreadable directory", path=str(current), error=str(err))
            continue

        for name in entries:
            full_path = current / name
            try:
                st = os.lstat(full_path)
            except OSError as err:
                logger.debug("Skipping unreadable entry", path=str(full_path), error=str(err))
                continue

            is_symlink = stat.S_ISLNK(st.st_mode)
            is_directory = not is_symlink and stat.S_ISDIR(st.st_mode)

            yield FileInfo(
                relative_path=str(full_path.relative_to(root)),
                absolute_path=str(full_path),
                size=0 if is_directory else st.st_size,
                is_directory=is_directory,
                is_symlink=is_symlink,
                link_count=st.st_nlink,
            )

            if is_directory:
                stack.append(full_path)


def get_skill_summary(directory: str | os.PathLike[str]) -> SkillSummary:
    summary = SkillSummary()
    for info in enumerate_skill_files(directory):
        if info.is_symlink:
            summary.symlink_count += 1
        elif info.is_directory:
            summary.directory_count += 1
        else:
            summary.file_count += 1
            summary.total_size += info.size
            if info.link_count > 1:
                summary.hard_link_count += 1
    return summary


def check_resource_limits(
    summary: SkillSummary, *, max_files: int | None = None, max_size: int | None = None
) -> ResourceLimitResult:
    """Flag trees that are too large to delete without an explicit override."""
    max_files = get_max_files() if max_files is None else max_files
    max_size = get_max_size() if max_size is None else max_size

    total_entries = summary.file_count + summary.directory_count + summary.symlink_count
    exceeds_count = total_entries > max_files
    exceeds_size = summary.total_size > max_size

    if not exceeds_count and not exceeds_size:
        return ResourceLimitResult(within_limits=True)

    problems = []
    if exceeds_count:
        problems.append(f"{total_entries} entries (limit {max_files})")
    if exceeds_size:
        problems.append(f"{format_size(summary.total_size)} (limit {format_size(max_size)})")
    return ResourceLimitResult(
        within_limits=False,
        exceeds_file_count=exceeds_count,
        exceeds_size=exceeds_size,
        message=f"Skill exceeds resource limits: {', '.join(problems)}. Use --force to proceed.",
    )


def compute_file_hash(file_path: Path) -> str:
    """Compute the SHA-256 hash of a file's contents."""
    digest = hashlib.sha256()
    with file_path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"
