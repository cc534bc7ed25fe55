"""Shared fixtures for skill guard tests."""

from __future__ import annotations

import zipfile
from typing import TYPE_CHECKING

import pytest
import yaml

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A project directory that is also the working directory."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    return project


@pytest.fixture()
def home_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A fake home directory with no data-dir override in the environment."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("SKILL_GUARD_HOME", raising=False)
    return home


@pytest.fixture()
def scope_root(project_dir: Path) -> Path:
    """The project scope root, <project>/.claude/skills."""
    root = project_dir / ".claude" / "skills"
    root.mkdir(parents=True)
    return root


def skill_md(name: str, description: str = "Test skill", body: str = "# Instructions\n") -> str:
    frontmatter = yaml.safe_dump({"name": name, "description": description}, sort_keys=False)
    return f"---\n{frontmatter}---\n\n{body}"


def write_skill(
    root: Path,
    name: str,
    *,
    files: dict[str, str] | None = None,
    description: str = "Test skill",
    with_skill_md: bool = True,
) -> Path:
    """Create an installed skill directory under ``root``."""
    skill_dir = root / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    if with_skill_md:
        (skill_dir / "SKILL.md").write_text(skill_md(name, description), encoding="utf-8")
    for rel_path, content in (files or {}).items():
        full_path = skill_dir / rel_path
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(content, encoding="utf-8")
    return skill_dir


def build_package(
    directory: Path,
    name: str,
    *,
    files: dict[str, str] | None = None,
    description: str = "Updated skill",
    root_name: str | None = None,
    extra_entries: dict[str, str] | None = None,
    with_skill_md: bool = True,
    filename: str | None = None,
) -> Path:
    """Write a .skill zip whose single root is ``root_name`` (default ``name``)."""
    root = root_name or name
    package_path = directory / (filename or f"{name}.skill")
    with zipfile.ZipFile(package_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(f"{root}/", "")
        if with_skill_md:
            zf.writestr(f"{root}/SKILL.md", skill_md(name, description))
        for rel_path, content in (files or {}).items():
            zf.writestr(f"{root}/{rel_path}", content)
        for entry, content in (extra_entries or {}).items():
            zf.writestr(entry, content)
    return package_path


def snapshot(directory: Path) -> dict[str, bytes]:
    """Map every regular file under ``directory`` to its bytes."""
    return {
        str(path.relative_to(directory)): path.read_bytes()
        for path in sorted(directory.rglob("*"))
        if path.is_file() and not path.is_symlink()
    }
