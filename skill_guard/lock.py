"""Per-skill exclusive lock files.

A lock is one sidecar file per skill, next to the skill directory, created
atomically with ``O_CREAT | O_EXCL``. Install, update and uninstall all
contend for the same file, so only one of them can touch a skill at a time.
Holding the lock means the file exists. Its JSON content records which
operation holds it and is otherwise diagnostic. Locks are never broken
automatically: when acquisition fails the caller is told who owns the
lock, whether that process still looks alive, and how to remove the file
by hand.
"""

from __future__ import annotations

import contextlib
import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from .constants import LOCK_SUFFIX
from .errors import ConcurrencyError
from .logger import logger
from .types import LockAcquired, LockNotAcquired, LockResult

if TYPE_CHECKING:
    from collections.abc import Iterator

Operation = Literal["install", "uninstall", "update"]


class LockInfo:
    def __init__(
        self,
        pid: int,
        timestamp: str,
        operation_type: Operation,
        skill_path: str,
        package_path: str | None = None,
    ) -> None:
        self.pid = pid
        self.timestamp = timestamp
        self.operation_type = operation_type
        self.skill_path = skill_path
        self.package_path = package_path

    def to_dict(self) -> dict[str, int | str]:
        data: dict[str, int | str] = {
            "pid": self.pid,
            "timestamp": self.timestamp,
            "operationType": self.operation_type,
            "skillPath": self.skill_path,
        }
        if self.package_path is not None:
            data["packagePath"] = self.package_path
        return data

    @classmethod
    def from_dict(cls, data: dict[str, int | str]) -> LockInfo:
        package_path = data.get("packagePath")
        return cls(
            pid=int(data["pid"]),
            timestamp=str(data["timestamp"]),
            operation_type=str(data.get("operationType", "uninstall")),  # type: ignore[arg-type]
            skill_path=str(data.get("skillPath", "")),
            package_path=str(package_path) if package_path is not None else None,
        )


def get_lock_path(skill_path: str | os.PathLike[str]) -> Path:
    path = Path(skill_path)
    return path.parent / f"{path.name}{LOCK_SUFFIX}"


def _is_process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by another user
        return True
    except OSError:
        return False


def read_lock_info(lock_path: str | os.PathLike[str]) -> LockInfo | None:
    try:
        return LockInfo.from_dict(json.loads(Path(lock_path).read_text(encoding="utf-8")))
    except (OSError, ValueError, KeyError, TypeError):
        return None


def _acquire(skill_path: str | os.PathLike[str], operation: Operation, package_path: str | None = None) -> LockResult:
    lock_path = get_lock_path(skill_path)
    lock_info = LockInfo(
        pid=os.getpid(),
        timestamp=datetime.now(UTC).isoformat(),
        operation_type=operation,
        skill_path=str(skill_path),
        package_path=package_path,
    )

    try:
        # Atomic creation -- fails if file already exists
        fd = os.open(str(lock_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        existing = read_lock_info(lock_path)
        if existing is None:
            message = (
                f"Another operation holds the lock for this skill (lock file {lock_path} is unreadable). "
                f"If no other operation is running, remove it manually: rm {lock_path}"
            )
            return LockNotAcquired(lock_path=str(lock_path), reason="already-locked", message=message)

        alive = _is_process_alive(existing.pid)
        state = "still running" if alive else "no longer running"
        message = (
            f"Another {existing.operation_type} is in progress (pid {existing.pid}, {state}, "
            f"started {existing.timestamp}). "
        )
        if alive:
            message += "Wait for it to finish."
        else:
            message += f"The lock looks stale. Remove it manually if you are sure: rm {lock_path}"
        return LockNotAcquired(
            lock_path=str(lock_path),
            reason="already-locked",
            message=message,
            owner_pid=existing.pid,
            owner_alive=alive,
        )
    except OSError as err:
        return LockNotAcquired(
            lock_path=str(lock_path),
            reason="filesystem-error",
            message=f"Cannot create lock file {lock_path}: {err.strerror or err}",
        )

    try:
        os.write(fd, json.dumps(lock_info.to_dict()).encode())
    finally:
        os.close(fd)

    logger.debug("Lock acquired", lock_path=str(lock_path), operation=operation)
    return LockAcquired(lock_path=str(lock_path))


def _release(lock_path: str | os.PathLike[str]) -> None:
    with contextlib.suppress(FileNotFoundError):
        Path(lock_path).unlink()
    logger.debug("Lock released", lock_path=str(lock_path))


def acquire_uninstall_lock(skill_path: str | os.PathLike[str]) -> LockResult:
    """Take the uninstall lock for a skill. Never blocks or retries."""
    return _acquire(skill_path, "uninstall")


def release_uninstall_lock(lock_path: str | os.PathLike[str]) -> None:
    """Remove the lock file. Releasing an absent lock is a no-op."""
    _release(lock_path)


def has_skill_lock(skill_path: str | os.PathLike[str]) -> bool:
    """True while any operation holds the skill's lock."""
    return get_lock_path(skill_path).exists()


def _held_for(skill_path: str | os.PathLike[str], operation: Operation) -> bool:
    lock_path = get_lock_path(skill_path)
    if not lock_path.exists():
        return False
    info = read_lock_info(lock_path)
    # An unreadable lock could belong to anyone
    return info is None or info.operation_type == operation


def has_uninstall_lock(skill_path: str | os.PathLike[str]) -> bool:
    return _held_for(skill_path, "uninstall")


def acquire_update_lock(skill_path: str | os.PathLike[str], package_path: str | os.PathLike[str]) -> LockResult:
    return _acquire(skill_path, "update", str(package_path))


def release_update_lock(lock_path: str | os.PathLike[str]) -> None:
    _release(lock_path)


def has_update_lock(skill_path: str | os.PathLike[str]) -> bool:
    return _held_for(skill_path, "update")


@contextlib.contextmanager
def skill_lock(
    skill_path: str | os.PathLike[str],
    operation: Operation,
    package_path: str | os.PathLike[str] | None = None,
) -> Iterator[str]:
    """Hold a skill lock for the duration of the block.

    Raises ConcurrencyError if the lock is held. The lock is released on
    every exit, including exceptions and KeyboardInterrupt.
    """
    result = _acquire(skill_path, operation, str(package_path) if package_path is not None else None)
    if not result.acquired:
        raise ConcurrencyError(
            result.message,
            details={"lock_path": result.lock_path, "owner_pid": result.owner_pid, "reason": result.reason},
        )
    try:
        yield result.lock_path
    finally:
        _release(result.lock_path)
