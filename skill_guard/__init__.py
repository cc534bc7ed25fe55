"""Safety core for installing, updating and uninstalling skill bundles."""

from __future__ import annotations

from .archive import (
    check_archive_entries,
    create_archive,
    extract_archive,
    raise_if_unsafe,
    validate_package_structure,
)
from .audit import write_audit_entry
from .backup import cleanup_backup, create_backup, ensure_backup_dir, restore_backup
from .cancellation import CancellationToken, handle_signals
from .comparator import compare_versions, detect_downgrade, get_version_info
from .constants import SKILL_MD, SKILLS_DIR, ExitCode
from .discovery import discover_skill, verify_case_sensitivity, verify_skill_md
from .errors import (
    CancellationError,
    ConcurrencyError,
    NotFoundError,
    SecurityError,
    SkillGuardError,
    ValidationError,
)
from .fs_utils import check_resource_limits, enumerate_skill_files, get_skill_summary
from .install import install_skill
from .lock import (
    acquire_uninstall_lock,
    acquire_update_lock,
    has_skill_lock,
    has_uninstall_lock,
    has_update_lock,
    release_uninstall_lock,
    release_update_lock,
    skill_lock,
)
from .names import validate_scope, validate_skill_name
from .path_verifier import (
    create_verified_path,
    is_dangerous_path,
    is_valid_scope_path,
    verify_before_deletion,
    verify_containment,
)
from .pre_removal import detect_unexpected_files
from .safe_delete import execute_skill_deletion, safe_recursive_delete, safe_unlink
from .scopes import get_scope_info, get_scope_path, is_path_within
from .security import (
    check_directory_symlinks,
    check_hard_links,
    check_symlink_safety,
    detect_hard_link_warnings,
    get_symlink_summary,
)
from .types import exit_code_for
from .uninstall import uninstall_skill, uninstall_skills
from .update import preview_update, update_skill
from .validator import validate_skill_content

__all__ = [
    # archive
    "check_archive_entries",
    "create_archive",
    "extract_archive",
    "raise_if_unsafe",
    "validate_package_structure",
    # audit
    "write_audit_entry",
    # backup
    "cleanup_backup",
    "create_backup",
    "ensure_backup_dir",
    "restore_backup",
    # cancellation
    "CancellationToken",
    "handle_signals",
    # comparator
    "compare_versions",
    "detect_downgrade",
    "get_version_info",
    # constants
    "SKILL_MD",
    "SKILLS_DIR",
    "ExitCode",
    # discovery
    "discover_skill",
    "verify_case_sensitivity",
    "verify_skill_md",
    # errors
    "CancellationError",
    "ConcurrencyError",
    "NotFoundError",
    "SecurityError",
    "SkillGuardError",
    "ValidationError",
    # fs_utils
    "check_resource_limits",
    "enumerate_skill_files",
    "get_skill_summary",
    # install
    "install_skill",
    # lock
    "acquire_uninstall_lock",
    "acquire_update_lock",
    "has_skill_lock",
    "has_uninstall_lock",
    "has_update_lock",
    "release_uninstall_lock",
    "release_update_lock",
    "skill_lock",
    # names
    "validate_scope",
    "validate_skill_name",
    # path_verifier
    "create_verified_path",
    "is_dangerous_path",
    "is_valid_scope_path",
    "verify_before_deletion",
    "verify_containment",
    # pre_removal
    "detect_unexpected_files",
    # safe_delete
    "execute_skill_deletion",
    "safe_recursive_delete",
    "safe_unlink",
    # scopes
    "get_scope_info",
    "get_scope_path",
    "is_path_within",
    # security
    "check_directory_symlinks",
    "check_hard_links",
    "check_symlink_safety",
    "detect_hard_link_warnings",
    "get_symlink_summary",
    # types
    "exit_code_for",
    # uninstall
    "uninstall_skill",
    "uninstall_skills",
    # update
    "preview_update",
    "update_skill",
    # validator
    "validate_skill_content",
]
