"""Append-only audit trail of destructive operations."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .config import get_audit_log_path
from .constants import AUDIT_FILE_MODE, BACKUP_DIR_MODE
from .logger import logger


def format_audit_entry(operation: str, skill_name: str, scope: str, status: str, **fields: Any) -> str:
    stamp = datetime.now(UTC).isoformat()
    extras = " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
    line = f"[{stamp}] {operation.upper()} {skill_name} {scope} {status}"
    return f"{line} {extras}" if extras else line


def write_audit_entry(
    operation: str,
    skill_name: str,
    scope: str,
    status: str,
    home: Path | None = None,
    **fields: Any,
) -> None:
    """Append one line to the audit log. Failures are logged, never raised."""
    line = format_audit_entry(operation, skill_name, scope, status, **fields)
    log_path = get_audit_log_path(home)
    try:
        log_path.parent.mkdir(mode=BACKUP_DIR_MODE, parents=True, exist_ok=True)
        fd = os.open(str(log_path), os.O_WRONLY | os.O_CREAT | os.O_APPEND, AUDIT_FILE_MODE)
        try:
            os.write(fd, (line + "\n").encode("utf-8"))
        finally:
            os.close(fd)
    except OSError as err:
        logger.warning("Could not write audit log", path=str(log_path), error=str(err))
