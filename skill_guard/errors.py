"""Exception hierarchy for unexpected failures and internal control flow.

Expected outcomes are returned as result models (see ``types``). These
exceptions are raised inside the engine and translated into results at the
orchestrator boundary.
"""

from __future__ import annotations

from typing import Any

from .constants import ExitCode


class SkillGuardError(Exception):
    """Base error. Carries structured ``details`` and an exit code."""

    exit_code: ExitCode = ExitCode.GENERIC_FAILURE

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(SkillGuardError):
    exit_code = ExitCode.NOT_FOUND


class ValidationError(SkillGuardError):
    exit_code = ExitCode.VALIDATION_FAILURE


class SecurityError(SkillGuardError):
    exit_code = ExitCode.SECURITY_ERROR

    def __init__(self, message: str, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.reason = reason


class FileSystemError(SkillGuardError):
    exit_code = ExitCode.FILESYSTEM_ERROR


class ConcurrencyError(SkillGuardError):
    exit_code = ExitCode.CONCURRENCY


class CancellationError(SkillGuardError):
    exit_code = ExitCode.CANCELLED

    def __init__(self, message: str = "Operation cancelled", details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)


class PackageMismatchError(ValidationError):
    def __init__(self, installed_name: str, package_name: str) -> None:
        super().__init__(
            f'Package contains skill "{package_name}" but "{installed_name}" was expected',
            details={"installed_name": installed_name, "package_name": package_name},
        )
        self.installed_name = installed_name
        self.package_name = package_name


class BackupError(FileSystemError):
    pass
