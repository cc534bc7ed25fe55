"""Tests for backup archives."""

from __future__ import annotations

import re
import shutil
import stat
from pathlib import Path

import pytest

from skill_guard.backup import (
    cleanup_backup,
    create_backup,
    ensure_backup_dir,
    generate_backup_filename,
    get_unique_backup_path,
    restore_backup,
    verify_backup_containment,
)
from skill_guard.errors import SecurityError

from .conftest import snapshot, write_skill


class TestBackupDirectory:
    def test_created_private(self, home_dir: Path) -> None:
        backups = ensure_backup_dir(home_dir)
        assert backups == home_dir / ".skill-guard" / "backups"
        assert stat.S_IMODE(backups.stat().st_mode) == 0o700
        assert stat.S_IMODE(backups.parent.stat().st_mode) == 0o700

    def test_symlinked_backup_dir_is_refused(self, home_dir: Path, tmp_path: Path) -> None:
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        (home_dir / ".skill-guard").symlink_to(elsewhere)
        with pytest.raises(SecurityError):
            ensure_backup_dir(home_dir)

    def test_environment_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SKILL_GUARD_HOME", str(tmp_path / "data"))
        assert ensure_backup_dir() == tmp_path / "data" / "backups"


class TestBackupNames:
    def test_filename_format(self) -> None:
        name = generate_backup_filename("my-skill")
        assert re.fullmatch(r"my-skill-\d{8}-\d{6}-[0-9a-f]{8}\.skill", name)

    def test_unique_path_is_inside_backups(self, home_dir: Path) -> None:
        ensure_backup_dir(home_dir)
        path = get_unique_backup_path("my-skill", home_dir)
        assert verify_backup_containment(path, home_dir) is True
        assert not path.exists()

    def test_containment_rejects_outside_paths(self, home_dir: Path, tmp_path: Path) -> None:
        assert verify_backup_containment(tmp_path / "x.skill", home_dir) is False
        assert verify_backup_containment(home_dir / ".skill-guard" / "backups", home_dir) is False


class TestCreateAndRestore:
    @pytest.fixture(autouse=True)
    def _setup(self, scope_root: Path, home_dir: Path) -> None:
        self.scope = scope_root
        self.home = home_dir
        self.skill = write_skill(scope_root, "my-skill", files={"docs/a.md": "alpha", "run.sh": "echo hi"})

    def test_backup_is_private_zip(self) -> None:
        result = create_backup(self.skill, "my-skill", self.home)
        assert result.success is True
        assert result.file_count == 3
        backup_path = Path(result.path)
        assert backup_path.parent == self.home / ".skill-guard" / "backups"
        assert backup_path.exists()
        assert stat.S_IMODE(backup_path.stat().st_mode) == 0o600

    def test_restore_reproduces_tree(self) -> None:
        before = snapshot(self.skill)
        result = create_backup(self.skill, "my-skill", self.home)

        shutil.rmtree(self.skill)

        restore_backup(result.path, self.scope)
        assert snapshot(self.skill) == before

    def test_cleanup_only_inside_backups(self, tmp_path: Path) -> None:
        result = create_backup(self.skill, "my-skill", self.home)
        stray = tmp_path / "stray.skill"
        stray.write_text("x")

        assert cleanup_backup(stray, self.home) is False
        assert stray.exists()
        assert cleanup_backup(result.path, self.home) is True
        assert cleanup_backup(result.path, self.home) is False
