"""Skill guard domain types.

Every expected outcome is a pydantic model tagged with a literal ``type``
field. Callers branch on ``result.type`` rather than catching exceptions.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Annotated, Literal, Protocol, Union

from pydantic import BaseModel, Field

from .constants import ExitCode

Scope = Literal["project", "personal"]
PathType = Literal["file", "directory", "symlink"]


# names / scopes


class NameValidationResult(BaseModel):
    valid: bool
    error: str | None = None


class ScopeValidationResult(BaseModel):
    valid: bool
    scope: Scope | None = None
    error: str | None = None


class ScopeInfo(BaseModel):
    type: Scope
    path: str


# path verification


class ContainmentValid(BaseModel):
    type: Literal["valid"] = "valid"
    normalized_path: str


class ContainmentViolation(BaseModel):
    type: Literal["violation"] = "violation"
    target_path: str
    base_path: str
    reason: str


ContainmentResult = Union[ContainmentValid, ContainmentViolation]


class VerifyOk(BaseModel):
    type: Literal["ok"] = "ok"
    path_type: PathType
    size: int


class VerifyFailed(BaseModel):
    type: Literal["failed"] = "failed"
    reason: Literal["not-exists", "containment-violation", "type-changed"]
    message: str


class VerifyError(BaseModel):
    type: Literal["error"] = "error"
    message: str


VerifyResult = Union[VerifyOk, VerifyFailed, VerifyError]


class VerifiedPath(BaseModel):
    """A path whose type and containment were re-stated right before use."""

    path: str
    skill_path: str
    path_type: PathType
    verified_at: str


# filesystem scanning


class FileInfo(BaseModel):
    relative_path: str
    absolute_path: str
    size: int
    is_directory: bool
    is_symlink: bool
    link_count: int = 1


class SkillSummary(BaseModel):
    file_count: int = 0
    directory_count: int = 0
    symlink_count: int = 0
    hard_link_count: int = 0
    total_size: int = 0


class ResourceLimitResult(BaseModel):
    within_limits: bool
    exceeds_file_count: bool = False
    exceeds_size: bool = False
    message: str | None = None


class SymlinkSafe(BaseModel):
    type: Literal["safe"] = "safe"
    is_symlink: bool
    resolved_path: str | None = None


class SymlinkEscape(BaseModel):
    type: Literal["escape"] = "escape"
    target_path: str
    scope_boundary: str


class SymlinkCheckError(BaseModel):
    type: Literal["error"] = "error"
    message: str


SymlinkCheckResult = Union[SymlinkSafe, SymlinkEscape, SymlinkCheckError]


class SymlinkFinding(BaseModel):
    relative_path: str
    absolute_path: str
    is_directory_symlink: bool
    resolved_path: str
    escapes_scope: bool
    warning: str | None = None


class HardLinkFinding(BaseModel):
    relative_path: str
    absolute_path: str
    link_count: int


class HardLinkWarning(BaseModel):
    count: int
    files: list[HardLinkFinding]
    message: str


class SymlinkSummary(BaseModel):
    total_symlinks: int = 0
    escaping_symlinks: int = 0
    directory_symlinks: int = 0
    escaping_paths: list[str] = Field(default_factory=list)
    has_security_concerns: bool = False
    warning: str | None = None


class PreRemovalFinding(BaseModel):
    kind: Literal["git-directory", "node-modules", "large-file", "temp-file"]
    relative_path: str
    size: int | None = None


class PreRemovalReport(BaseModel):
    findings: list[PreRemovalFinding] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def requires_force(self) -> bool:
        return bool(self.findings)


# locking


class LockAcquired(BaseModel):
    acquired: Literal[True] = True
    lock_path: str


class LockNotAcquired(BaseModel):
    acquired: Literal[False] = False
    lock_path: str
    reason: Literal["already-locked", "filesystem-error"]
    message: str
    owner_pid: int | None = None
    owner_alive: bool | None = None


LockResult = Union[LockAcquired, LockNotAcquired]


# deletion


class DeleteSuccess(BaseModel):
    type: Literal["success"] = "success"
    path: str
    path_type: PathType
    size: int


class DeleteSkipped(BaseModel):
    type: Literal["skipped"] = "skipped"
    path: str
    reason: Literal["not-exists", "containment-violation", "type-changed", "not-empty"]
    message: str = ""


class DeleteError(BaseModel):
    type: Literal["error"] = "error"
    path: str
    message: str
    code: str | None = None


DeleteResult = Union[DeleteSuccess, DeleteSkipped, DeleteError]


class DeletionProgress(BaseModel):
    current_path: str
    relative_path: str
    result: DeleteResult
    processed_count: int
    total_count: int


class DeletionSummary(BaseModel):
    files_deleted: int = 0
    directories_deleted: int = 0
    symlinks_deleted: int = 0
    bytes_freed: int = 0
    skipped: int = 0
    errors: int = 0
    error_messages: list[str] = Field(default_factory=list)
    skill_directory_deleted: bool = False
    cancelled: bool = False
    total_count: int = 0

    @property
    def removed_count(self) -> int:
        return self.files_deleted + self.directories_deleted + self.symlinks_deleted


# discovery / validation / packages


class SkillFound(BaseModel):
    type: Literal["found"] = "found"
    path: str
    has_skill_md: bool


class SkillNotFound(BaseModel):
    type: Literal["not-found"] = "not-found"
    searched_path: str


class SkillCaseMismatch(BaseModel):
    type: Literal["case-mismatch"] = "case-mismatch"
    expected_name: str
    actual_name: str
    path: str


DiscoveryResult = Union[SkillFound, SkillNotFound, SkillCaseMismatch]


class ContentValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class ArchiveEntryIssue(BaseModel):
    entry: str
    reason: Literal["absolute-path", "path-traversal", "null-byte", "outside-root", "zip-bomb"]
    message: str


class PackageStructure(BaseModel):
    valid: bool
    root_dir: str | None = None
    has_skill_md: bool = False
    file_count: int = 0
    uncompressed_size: int = 0
    errors: list[str] = Field(default_factory=list)


class BackupResult(BaseModel):
    success: bool
    path: str
    size: int = 0
    file_count: int = 0
    error: str | None = None


class FileChange(BaseModel):
    path: str
    change_type: Literal["added", "removed", "modified"]
    size_before: int = 0
    size_after: int = 0
    size_delta: int = 0


class VersionComparison(BaseModel):
    files_added: list[FileChange] = Field(default_factory=list)
    files_removed: list[FileChange] = Field(default_factory=list)
    files_modified: list[FileChange] = Field(default_factory=list)
    added_count: int = 0
    removed_count: int = 0
    modified_count: int = 0
    size_change: int = 0


class VersionInfo(BaseModel):
    path: str
    file_count: int
    size: int
    last_modified: str | None = None
    description: str | None = None


# error details


SecurityReason = Literal[
    "path-traversal",
    "symlink-escape",
    "hard-link-detected",
    "containment-violation",
    "case-mismatch",
    "zip-bomb",
    "zip-entry-escape",
]


class SkillNotFoundDetail(BaseModel):
    type: Literal["skill-not-found"] = "skill-not-found"
    skill_name: str
    searched_path: str
    message: str


class ValidationErrorDetail(BaseModel):
    type: Literal["validation-error"] = "validation-error"
    field: str
    message: str
    details: list[str] = Field(default_factory=list)


class SecurityErrorDetail(BaseModel):
    type: Literal["security-error"] = "security-error"
    reason: SecurityReason
    message: str
    details: list[str] = Field(default_factory=list)


class FileSystemErrorDetail(BaseModel):
    type: Literal["filesystem-error"] = "filesystem-error"
    operation: str
    path: str
    message: str


class ConcurrencyErrorDetail(BaseModel):
    type: Literal["concurrency-error"] = "concurrency-error"
    lock_path: str
    message: str
    owner_pid: int | None = None


class PackageMismatchDetail(BaseModel):
    type: Literal["package-mismatch"] = "package-mismatch"
    installed_name: str
    package_name: str
    message: str


class BackupCreationDetail(BaseModel):
    type: Literal["backup-creation-error"] = "backup-creation-error"
    backup_path: str
    message: str


class PartialRemovalDetail(BaseModel):
    type: Literal["partial-removal"] = "partial-removal"
    skill_name: str
    files_removed: int
    files_remaining: int
    errors: list[str] = Field(default_factory=list)
    message: str


UpdateError = Annotated[
    Union[
        SkillNotFoundDetail,
        ValidationErrorDetail,
        SecurityErrorDetail,
        FileSystemErrorDetail,
        ConcurrencyErrorDetail,
        PackageMismatchDetail,
        BackupCreationDetail,
    ],
    Field(discriminator="type"),
]

UninstallError = Annotated[
    Union[
        SkillNotFoundDetail,
        ValidationErrorDetail,
        SecurityErrorDetail,
        FileSystemErrorDetail,
        ConcurrencyErrorDetail,
        PartialRemovalDetail,
    ],
    Field(discriminator="type"),
]

InstallError = Annotated[
    Union[
        ValidationErrorDetail,
        SecurityErrorDetail,
        FileSystemErrorDetail,
        ConcurrencyErrorDetail,
        PackageMismatchDetail,
        BackupCreationDetail,
    ],
    Field(discriminator="type"),
]


# install results


class InstallFileEntry(BaseModel):
    path: str
    size: int
    is_directory: bool = False


class InstallSuccess(BaseModel):
    type: Literal["install-success"] = "install-success"
    skill_name: str
    path: str
    file_count: int
    size: int
    was_overwritten: bool = False
    warnings: list[str] = Field(default_factory=list)


class InstallOverwriteRequired(BaseModel):
    """The target exists and ``force`` was not given. Nothing was changed."""

    type: Literal["overwrite-required"] = "overwrite-required"
    skill_name: str
    path: str
    existing_files: list[str] = Field(default_factory=list)


class InstallDryRunPreview(BaseModel):
    type: Literal["install-dry-run-preview"] = "install-dry-run-preview"
    skill_name: str
    path: str
    files: list[InstallFileEntry]
    total_size: int
    would_overwrite: bool
    conflicts: list[str] = Field(default_factory=list)


class InstallCancelled(BaseModel):
    type: Literal["install-cancelled"] = "install-cancelled"
    skill_name: str
    reason: Literal["user-cancelled", "interrupted"]


class InstallFailure(BaseModel):
    type: Literal["install-failure"] = "install-failure"
    skill_name: str
    error: InstallError
    # True when a failed overwrite put the previous version back
    restored_previous: bool = False
    # Kept only when the previous version could not be restored
    backup_path: str | None = None


InstallOutcome = Union[InstallSuccess, InstallOverwriteRequired, InstallDryRunPreview, InstallCancelled, InstallFailure]


# update results


class UpdateSuccess(BaseModel):
    type: Literal["update-success"] = "update-success"
    skill_name: str
    path: str
    previous_file_count: int
    current_file_count: int
    previous_size: int
    current_size: int
    backup_path: str | None = None
    backup_will_be_removed: bool = True
    warnings: list[str] = Field(default_factory=list)


class UpdateDryRunPreview(BaseModel):
    type: Literal["update-dry-run-preview"] = "update-dry-run-preview"
    skill_name: str
    path: str
    current_version: VersionInfo
    new_version: VersionInfo
    comparison: VersionComparison
    backup_path: str | None = None
    warnings: list[str] = Field(default_factory=list)


class UpdateRolledBack(BaseModel):
    type: Literal["update-rolled-back"] = "update-rolled-back"
    skill_name: str
    path: str
    failure_reason: str
    backup_path: str | None = None


class UpdateRollbackFailed(BaseModel):
    type: Literal["update-rollback-failed"] = "update-rollback-failed"
    skill_name: str
    path: str
    update_failure_reason: str
    rollback_failure_reason: str
    backup_path: str | None = None
    recovery_instructions: str


class UpdateCancelled(BaseModel):
    type: Literal["update-cancelled"] = "update-cancelled"
    skill_name: str
    reason: Literal["user-cancelled", "interrupted"]
    cleanup_performed: bool


class UpdateFailure(BaseModel):
    type: Literal["update-failure"] = "update-failure"
    skill_name: str
    error: UpdateError


UpdateOutcome = Union[
    UpdateSuccess,
    UpdateDryRunPreview,
    UpdateRolledBack,
    UpdateRollbackFailed,
    UpdateCancelled,
    UpdateFailure,
]


# uninstall results


class UninstallResult(BaseModel):
    type: Literal["uninstall-success"] = "uninstall-success"
    skill_name: str
    path: str
    files_removed: int
    directories_removed: int = 0
    bytes_freed: int
    warnings: list[str] = Field(default_factory=list)


class UninstallDryRunPreview(BaseModel):
    type: Literal["uninstall-dry-run-preview"] = "uninstall-dry-run-preview"
    skill_name: str
    path: str
    files: list[str]
    file_count: int
    total_size: int
    warnings: list[str] = Field(default_factory=list)


class UninstallCancelled(BaseModel):
    type: Literal["uninstall-cancelled"] = "uninstall-cancelled"
    skill_name: str
    files_removed: int
    files_remaining: int


class UninstallFailure(BaseModel):
    type: Literal["uninstall-failure"] = "uninstall-failure"
    skill_name: str
    error: UninstallError


UninstallOutcome = Union[UninstallResult, UninstallDryRunPreview, UninstallCancelled, UninstallFailure]


class MultiUninstallResult(BaseModel):
    succeeded: list[UninstallResult] = Field(default_factory=list)
    failed: list[Union[UninstallFailure, UninstallCancelled]] = Field(default_factory=list)
    previews: list[UninstallDryRunPreview] = Field(default_factory=list)
    total_files_removed: int = 0
    total_bytes_freed: int = 0


# exit codes

_ERROR_EXIT_CODES: dict[str, ExitCode] = {
    "skill-not-found": ExitCode.NOT_FOUND,
    "validation-error": ExitCode.VALIDATION_FAILURE,
    "security-error": ExitCode.SECURITY_ERROR,
    "filesystem-error": ExitCode.FILESYSTEM_ERROR,
    "concurrency-error": ExitCode.CONCURRENCY,
    "package-mismatch": ExitCode.VALIDATION_FAILURE,
    "backup-creation-error": ExitCode.FILESYSTEM_ERROR,
    "partial-removal": ExitCode.VALIDATION_FAILURE,
}


def exit_code_for(result: InstallOutcome | UpdateOutcome | UninstallOutcome | MultiUninstallResult) -> ExitCode:
    """Map a result variant to its process exit code."""
    if isinstance(result, MultiUninstallResult):
        if not result.failed:
            return ExitCode.SUCCESS
        if result.succeeded:
            return ExitCode.VALIDATION_FAILURE
        return exit_code_for(result.failed[0])
    if isinstance(result, (InstallFailure, UpdateFailure, UninstallFailure)):
        return _ERROR_EXIT_CODES.get(result.error.type, ExitCode.GENERIC_FAILURE)
    if isinstance(result, InstallOverwriteRequired):
        return ExitCode.VALIDATION_FAILURE
    if isinstance(result, (InstallCancelled, UpdateCancelled, UninstallCancelled)):
        return ExitCode.CANCELLED
    if isinstance(result, UpdateRolledBack):
        return ExitCode.ROLLED_BACK
    if isinstance(result, UpdateRollbackFailed):
        return ExitCode.ROLLBACK_FAILED
    return ExitCode.SUCCESS


# update session


class UpdateState(str, Enum):
    LOCATING = "locating"
    VALIDATING_PACKAGE = "validating-package"
    COMPARING = "comparing"
    CREATING_BACKUP = "creating-backup"
    REMOVING_OLD = "removing-old"
    EXTRACTING_NEW = "extracting-new"
    VALIDATING_UPDATED = "validating-updated"
    COMPLETE = "complete"
    ROLLING_BACK = "rolling-back"
    ROLLED_BACK = "rolled-back"
    ROLLBACK_FAILED = "rollback-failed"


class UpdateSession(BaseModel):
    """Mutable state of one update, owned by the orchestrator for its duration."""

    skill_name: str
    scope: Scope
    scope_path: str
    installed_path: str
    package_path: str
    state: UpdateState = UpdateState.LOCATING
    backup_path: str | None = None
    comparison: VersionComparison | None = None
    previous_version: VersionInfo | None = None
    lock_path: str | None = None
    staging_dir: str | None = None
    original_valid: bool = True
    warnings: list[str] = Field(default_factory=list)


# collaborators


class ContentValidator(Protocol):
    def __call__(self, path: str | os.PathLike[str]) -> ContentValidationResult: ...


class Extractor(Protocol):
    def __call__(self, archive_path: str | os.PathLike[str], dest_dir: str | os.PathLike[str]) -> None: ...


class Discoverer(Protocol):
    def __call__(self, name: str, scope: ScopeInfo) -> DiscoveryResult: ...
