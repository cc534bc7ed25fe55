"""Scan a skill for content that suggests it is more than an installed bundle."""

from __future__ import annotations

import os
from pathlib import Path

from .constants import LARGE_FILE_THRESHOLD
from .fs_utils import enumerate_skill_files, format_size
from .types import PreRemovalFinding, PreRemovalReport

TEMP_FILE_SUFFIXES = (".swp", ".swo", "~", ".tmp", ".temp")
TEMP_FILE_NAMES = (".DS_Store", "Thumbs.db")
MAX_LARGE_FILES = 5


def _is_temp_file(name: str) -> bool:
    return name in TEMP_FILE_NAMES or name.endswith(TEMP_FILE_SUFFIXES)


def detect_unexpected_files(skill_path: str | os.PathLike[str]) -> PreRemovalReport:
    """Flag .git, node_modules, editor temp files and large binaries.

    Any finding means the directory may hold user work, so removal needs
    an explicit override.
    """
    report = PreRemovalReport()
    large_files: list[PreRemovalFinding] = []
    temp_count = 0

    for info in enumerate_skill_files(skill_path):
        name = Path(info.relative_path).name
        if info.is_directory and name == ".git":
            report.findings.append(PreRemovalFinding(kind="git-directory", relative_path=info.relative_path))
        elif info.is_directory and name == "node_modules":
            report.findings.append(PreRemovalFinding(kind="node-modules", relative_path=info.relative_path))
        elif not info.is_directory and not info.is_symlink:
            if info.size > LARGE_FILE_THRESHOLD and len(large_files) < MAX_LARGE_FILES:
                large_files.append(
                    PreRemovalFinding(kind="large-file", relative_path=info.relative_path, size=info.size)
                )
            if _is_temp_file(name):
                temp_count += 1
                report.findings.append(PreRemovalFinding(kind="temp-file", relative_path=info.relative_path))

    report.findings.extend(large_files)

    for finding in report.findings:
        if finding.kind == "git-directory":
            report.warnings.append(f"Contains a git repository ({finding.relative_path})")
        elif finding.kind == "node-modules":
            report.warnings.append(f"Contains node_modules ({finding.relative_path})")
        elif finding.kind == "large-file":
            report.warnings.append(f"Large file {finding.relative_path} ({format_size(finding.size or 0)})")
    if temp_count:
        report.warnings.append(f"Contains {temp_count} editor or OS temp file(s)")

    return report
