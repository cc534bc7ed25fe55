"""Skill guard constants."""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path

SKILLS_DIR = Path(".claude/skills")
SKILL_MD = "SKILL.md"
PACKAGE_EXTENSION = ".skill"

DATA_DIR_NAME = ".skill-guard"
BACKUPS_DIR_NAME = "backups"
AUDIT_LOG_NAME = "audit.log"

LOCK_SUFFIX = ".skill-guard.lock"

MAX_NAME_LENGTH = 64
MAX_FILES = 10_000
MAX_TOTAL_SIZE = 1024 * 1024 * 1024  # 1 GiB
MAX_COMPRESSION_RATIO = 100
LARGE_FILE_THRESHOLD = 10 * 1024 * 1024  # 10 MB
MAX_REPORTED_FILES = 10
MAX_REPORTED_ERRORS = 10

BACKUP_DIR_MODE = 0o700
BACKUP_FILE_MODE = 0o600
AUDIT_FILE_MODE = 0o600


class ExitCode(IntEnum):
    SUCCESS = 0
    GENERIC_FAILURE = 1
    NOT_FOUND = 1
    FILESYSTEM_ERROR = 2
    CANCELLED = 3
    VALIDATION_FAILURE = 4
    SECURITY_ERROR = 5
    ROLLED_BACK = 6
    ROLLBACK_FAILED = 7
    CONCURRENCY = 8
