"""Compare an installed skill with an extracted package."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from pathlib import Path

import yaml

from .constants import SKILL_MD
from .fs_utils import compute_file_hash, enumerate_skill_files
from .types import FileChange, VersionComparison, VersionInfo
from .validator import parse_frontmatter


def _regular_files(directory: str | os.PathLike[str]) -> dict[str, int]:
    return {
        info.relative_path: info.size
        for info in enumerate_skill_files(directory)
        if not info.is_directory and not info.is_symlink
    }


def compare_versions(installed: str | os.PathLike[str], package: str | os.PathLike[str]) -> VersionComparison:
    """Diff two skill trees by path and content hash."""
    before = _regular_files(installed)
    after = _regular_files(package)
    comparison = VersionComparison()

    for rel in sorted(after.keys() - before.keys()):
        comparison.files_added.append(
            FileChange(path=rel, change_type="added", size_after=after[rel], size_delta=after[rel])
        )
    for rel in sorted(before.keys() - after.keys()):
        comparison.files_removed.append(
            FileChange(path=rel, change_type="removed", size_before=before[rel], size_delta=-before[rel])
        )
    for rel in sorted(before.keys() & after.keys()):
        if before[rel] == after[rel] and compute_file_hash(Path(installed) / rel) == compute_file_hash(
            Path(package) / rel
        ):
            continue
        comparison.files_modified.append(
            FileChange(
                path=rel,
                change_type="modified",
                size_before=before[rel],
                size_after=after[rel],
                size_delta=after[rel] - before[rel],
            )
        )

    comparison.added_count = len(comparison.files_added)
    comparison.removed_count = len(comparison.files_removed)
    comparison.modified_count = len(comparison.files_modified)
    comparison.size_change = sum(after.values()) - sum(before.values())
    return comparison


def get_version_info(directory: str | os.PathLike[str]) -> VersionInfo:
    files = _regular_files(directory)
    skill_md = Path(directory) / SKILL_MD
    last_modified = None
    description = None
    if skill_md.is_file():
        last_modified = datetime.fromtimestamp(skill_md.stat().st_mtime, tz=UTC).isoformat()
        try:
            frontmatter = parse_frontmatter(skill_md.read_text(encoding="utf-8"))
        except (OSError, ValueError, yaml.YAMLError):
            frontmatter = None
        if frontmatter and isinstance(frontmatter.get("description"), str):
            description = frontmatter["description"]
    return VersionInfo(
        path=str(directory),
        file_count=len(files),
        size=sum(files.values()),
        last_modified=last_modified,
        description=description,
    )


def detect_downgrade(installed: VersionInfo, package: VersionInfo) -> str | None:
    """Warn when the package's SKILL.md is older than the installed one."""
    if installed.last_modified is None or package.last_modified is None:
        return None
    if package.last_modified < installed.last_modified:
        return (
            f"Package SKILL.md ({package.last_modified}) is older than the installed one "
            f"({installed.last_modified}); this may be a downgrade."
        )
    return None
