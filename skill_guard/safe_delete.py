"""Gated deletion of a skill tree.

Every individual delete is preceded by ``verify_before_deletion``. A path
that fails verification at use time is skipped and counted; the batch keeps
going and the caller reports the partial outcome.
"""

from __future__ import annotations

import errno
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

from .cancellation import check_cancelled
from .constants import MAX_REPORTED_ERRORS
from .errors import CancellationError
from .fs_utils import enumerate_skill_files
from .logger import logger
from .path_verifier import verify_before_deletion, verify_containment
from .types import DeleteError, DeleteResult, DeleteSkipped, DeleteSuccess, DeletionProgress, DeletionSummary

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from .cancellation import CancellationToken
    from .types import FileInfo, PathType

_RETRY_ERRNOS = {errno.EBUSY, errno.ETXTBSY}
_RETRY_DELAY_S = 0.1


def _remove(target: str, path_type: PathType) -> None:
    if path_type == "directory":
        os.rmdir(target)
    else:
        os.unlink(target)


def safe_unlink(
    skill_path: str | os.PathLike[str],
    target: str | os.PathLike[str],
    expected_type: PathType | None = None,
) -> DeleteResult:
    """Verify, then remove a single path. Directories must already be empty."""
    target_str = os.fspath(target)
    verified = verify_before_deletion(skill_path, target_str)
    if verified.type == "failed":
        return DeleteSkipped(path=target_str, reason=verified.reason, message=verified.message)
    if verified.type == "error":
        return DeleteError(path=target_str, message=verified.message)

    if expected_type is not None and verified.path_type != expected_type:
        return DeleteSkipped(
            path=target_str,
            reason="type-changed",
            message=f"Expected {expected_type}, found {verified.path_type}",
        )

    for attempt in range(2):
        try:
            _remove(target_str, verified.path_type)
            return DeleteSuccess(path=target_str, path_type=verified.path_type, size=verified.size)
        except FileNotFoundError:
            return DeleteSkipped(path=target_str, reason="not-exists", message="Removed by another process")
        except OSError as err:
            if err.errno in (errno.ENOTEMPTY, errno.EEXIST) and verified.path_type == "directory":
                return DeleteSkipped(path=target_str, reason="not-empty", message="Directory not empty")
            if err.errno in _RETRY_ERRNOS and attempt == 0:
                time.sleep(_RETRY_DELAY_S)
                continue
            code = errno.errorcode.get(err.errno) if err.errno else None
            return DeleteError(path=target_str, message=err.strerror or str(err), code=code)

    return DeleteError(path=target_str, message="Resource busy")


def _deletion_order(entries: list[FileInfo]) -> list[FileInfo]:
    """Files and symlinks first, then directories deepest-first."""
    leaves = [e for e in entries if not e.is_directory]
    dirs = [e for e in entries if e.is_directory]
    dirs.sort(key=lambda e: len(Path(e.relative_path).parts), reverse=True)
    return leaves + dirs


def _expected_type(info: FileInfo) -> PathType:
    if info.is_symlink:
        return "symlink"
    if info.is_directory:
        return "directory"
    return "file"


def safe_recursive_delete(
    skill_path: str | os.PathLike[str],
    token: CancellationToken | None = None,
) -> Iterator[DeletionProgress]:
    """Delete a skill tree one gated step at a time, yielding progress.

    If the skill path is itself a symlink only the link is removed. Raises
    CancellationError between steps once ``token`` is cancelled.
    """
    skill_str = os.path.abspath(skill_path)
    parent = os.path.dirname(skill_str)

    if os.path.islink(skill_str):
        check_cancelled(token)
        result = safe_unlink(parent, skill_str, "symlink")
        yield DeletionProgress(
            current_path=skill_str,
            relative_path=".",
            result=result,
            processed_count=1,
            total_count=1,
        )
        return

    ordered = _deletion_order(list(enumerate_skill_files(skill_str)))
    total = len(ordered) + 1
    processed = 0

    for info in ordered:
        check_cancelled(token)
        result = safe_unlink(skill_str, info.absolute_path, _expected_type(info))
        processed += 1
        yield DeletionProgress(
            current_path=info.absolute_path,
            relative_path=info.relative_path,
            result=result,
            processed_count=processed,
            total_count=total,
        )

    check_cancelled(token)
    containment = verify_containment(parent, skill_str)
    if containment.type == "violation":
        result = DeleteSkipped(path=skill_str, reason="containment-violation", message=containment.reason)
    else:
        result = safe_unlink(parent, skill_str, "directory")
    yield DeletionProgress(
        current_path=skill_str,
        relative_path=".",
        result=result,
        processed_count=total,
        total_count=total,
    )


def execute_skill_deletion(
    skill_path: str | os.PathLike[str],
    token: CancellationToken | None = None,
    on_progress: Callable[[DeletionProgress], None] | None = None,
) -> DeletionSummary:
    """Drain the deletion stream into a summary. Cancellation is recorded, not raised."""
    summary = DeletionSummary()
    skill_str = os.path.abspath(skill_path)

    try:
        for progress in safe_recursive_delete(skill_str, token):
            summary.total_count = progress.total_count
            if on_progress is not None:
                on_progress(progress)

            result = progress.result
            if result.type == "success":
                if progress.current_path == skill_str:
                    summary.skill_directory_deleted = result.path_type == "directory"
                    if result.path_type == "symlink":
                        summary.symlinks_deleted += 1
                    continue
                if result.path_type == "file":
                    summary.files_deleted += 1
                    summary.bytes_freed += result.size
                elif result.path_type == "directory":
                    summary.directories_deleted += 1
                else:
                    summary.symlinks_deleted += 1
            elif result.type == "skipped":
                summary.skipped += 1
                logger.warning("Skipped during deletion", path=result.path, reason=result.reason)
                if result.reason in ("containment-violation", "type-changed", "not-empty"):
                    _record_error(summary, f"{progress.relative_path}: {result.message or result.reason}")
            else:
                summary.errors += 1
                _record_error(summary, f"{progress.relative_path}: {result.message}")
                logger.warning("Deletion error", path=result.path, error=result.message)
    except CancellationError:
        summary.cancelled = True
        logger.warning("Deletion cancelled", path=skill_str, removed=summary.removed_count)

    return summary


def _record_error(summary: DeletionSummary, message: str) -> None:
    if len(summary.error_messages) < MAX_REPORTED_ERRORS:
        summary.error_messages.append(message)
