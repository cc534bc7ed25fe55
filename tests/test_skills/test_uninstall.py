"""Tests for uninstall_skill and uninstall_skills."""

from __future__ import annotations

import errno
import os
from typing import TYPE_CHECKING

import pytest

from skill_guard import safe_delete
from skill_guard.cancellation import CancellationToken
from skill_guard.constants import ExitCode
from skill_guard.lock import (
    acquire_uninstall_lock,
    acquire_update_lock,
    has_uninstall_lock,
    release_uninstall_lock,
    release_update_lock,
)
from skill_guard.types import exit_code_for
from skill_guard.uninstall import uninstall_skill, uninstall_skills

from .conftest import snapshot, write_skill

if TYPE_CHECKING:
    from pathlib import Path


class TestUninstallSkill:
    @pytest.fixture(autouse=True)
    def _setup(self, scope_root: Path, home_dir: Path, project_dir: Path) -> None:
        self.scope_root = scope_root
        self.home = home_dir
        self.cwd = project_dir
        self.skill = write_skill(scope_root, "my-skill", files={"a.txt": "alpha", "sub/b.txt": "bravo!"})
        self.original = snapshot(self.skill)

    def _uninstall(self, name: str = "my-skill", **kwargs: object):  # type: ignore[no-untyped-def]
        kwargs.setdefault("cwd", self.cwd)
        kwargs.setdefault("home", self.home)
        return uninstall_skill(name, **kwargs)  # type: ignore[arg-type]

    def test_removes_skill_and_reports_counts(self) -> None:
        skill_md_size = (self.skill / "SKILL.md").stat().st_size

        result = self._uninstall()

        assert result.type == "uninstall-success"
        assert result.files_removed == 3
        assert result.directories_removed >= 1
        assert result.bytes_freed == skill_md_size + len("alpha") + len("bravo!")
        assert not self.skill.exists()
        assert exit_code_for(result) == ExitCode.SUCCESS

    def test_lock_released_and_audit_written(self) -> None:
        self._uninstall()
        assert has_uninstall_lock(self.skill) is False
        audit = (self.home / ".skill-guard" / "audit.log").read_text()
        assert "UNINSTALL my-skill project SUCCESS" in audit

    def test_dry_run_lists_files_without_removing(self) -> None:
        before = snapshot(self.skill)
        result = self._uninstall(dry_run=True)

        assert result.type == "uninstall-dry-run-preview"
        assert result.file_count == 3
        assert "sub/b.txt" in result.files
        assert snapshot(self.skill) == before

    def test_personal_scope(self) -> None:
        personal = write_skill(self.home / ".claude" / "skills", "my-skill")
        result = self._uninstall(scope="personal")
        assert result.type == "uninstall-success"
        assert not personal.exists()
        assert self.skill.exists()

    def test_not_found(self) -> None:
        result = self._uninstall("ghost-skill")
        assert result.type == "uninstall-failure"
        assert result.error.type == "skill-not-found"
        assert exit_code_for(result) == ExitCode.NOT_FOUND

    @pytest.mark.parametrize("name", ["../my-skill", "My-Skill", "", "my\x00skill"])
    def test_invalid_names_rejected(self, name: str) -> None:
        result = self._uninstall(name)
        assert result.type == "uninstall-failure"
        assert result.error.type == "validation-error"
        assert self.skill.exists()

    def test_scope_is_case_sensitive(self) -> None:
        result = self._uninstall(scope="PERSONAL")
        assert result.type == "uninstall-failure"
        assert result.error.field == "scope"  # type: ignore[union-attr]

    def test_missing_skill_md_requires_force(self) -> None:
        bare = write_skill(self.scope_root, "bare-dir", files={"x.txt": "x"}, with_skill_md=False)

        refused = self._uninstall("bare-dir")
        assert refused.type == "uninstall-failure"
        assert refused.error.type == "validation-error"
        assert bare.exists()

        forced = self._uninstall("bare-dir", force=True)
        assert forced.type == "uninstall-success"
        assert "Directory has no SKILL.md" in forced.warnings
        assert not bare.exists()

    def test_git_directory_requires_force(self) -> None:
        (self.skill / ".git").mkdir()
        (self.skill / ".git" / "HEAD").write_text("ref: refs/heads/main\n")

        refused = self._uninstall()
        assert refused.type == "uninstall-failure"
        assert refused.error.type == "validation-error"
        assert self.skill.exists()

        assert self._uninstall(force=True).type == "uninstall-success"

    def test_escaping_symlinked_skill_directory_is_refused(self, tmp_path: Path) -> None:
        target = write_skill(tmp_path, "outside-skill", files={"keep.txt": "keep"})
        (self.scope_root / "evil-skill").symlink_to(target)

        result = self._uninstall("evil-skill", force=True)

        assert result.type == "uninstall-failure"
        assert result.error.reason == "symlink-escape"  # type: ignore[union-attr]
        assert exit_code_for(result) == ExitCode.SECURITY_ERROR
        assert (target / "keep.txt").read_text() == "keep"

    def test_symlink_inside_scope_removes_only_the_link(self) -> None:
        real = write_skill(self.scope_root, "real-skill", files={"r.txt": "real"})
        (self.scope_root / "alias-skill").symlink_to(real)

        result = self._uninstall("alias-skill")

        assert result.type == "uninstall-success"
        assert not os.path.lexists(self.scope_root / "alias-skill")
        assert (real / "r.txt").read_text() == "real"

    def test_escaping_inner_symlink_target_survives(self, tmp_path: Path) -> None:
        outside = tmp_path / "precious.txt"
        outside.write_text("precious")
        (self.skill / "link.txt").symlink_to(outside)

        result = self._uninstall()

        assert result.type == "uninstall-success"
        assert result.warnings
        assert not self.skill.exists()
        assert outside.read_text() == "precious"

    def test_hard_links_require_force(self, tmp_path: Path) -> None:
        outside = tmp_path / "shared.txt"
        outside.write_text("shared")
        os.link(outside, self.skill / "hard.txt")

        refused = self._uninstall()
        assert refused.type == "uninstall-failure"
        assert refused.error.reason == "hard-link-detected"  # type: ignore[union-attr]
        assert self.skill.exists()

        forced = self._uninstall(force=True)
        assert forced.type == "uninstall-success"
        assert outside.read_text() == "shared"

    def test_held_lock_is_a_concurrency_error(self) -> None:
        held = acquire_uninstall_lock(self.skill)
        try:
            result = self._uninstall()
        finally:
            release_uninstall_lock(held.lock_path)

        assert result.type == "uninstall-failure"
        assert result.error.type == "concurrency-error"
        assert exit_code_for(result) == ExitCode.CONCURRENCY
        assert (self.skill / "a.txt").exists()

    def test_partial_removal_reports_exact_counts(self, monkeypatch: pytest.MonkeyPatch) -> None:
        real_remove = safe_delete._remove

        def remove(target: str, path_type: str) -> None:
            if target.endswith("a.txt"):
                raise OSError(errno.EACCES, "Permission denied", target)
            real_remove(target, path_type)  # type: ignore[arg-type]

        monkeypatch.setattr(safe_delete, "_remove", remove)
        result = self._uninstall()

        assert result.type == "uninstall-failure"
        assert result.error.type == "partial-removal"
        assert result.error.files_removed == 2  # type: ignore[union-attr]
        assert result.error.files_remaining == 2  # type: ignore[union-attr]
        assert any("a.txt" in e for e in result.error.errors)  # type: ignore[union-attr]
        assert exit_code_for(result) == ExitCode.VALIDATION_FAILURE
        assert (self.skill / "a.txt").exists()
        assert not (self.skill / "SKILL.md").exists()
        audit = (self.home / ".skill-guard" / "audit.log").read_text()
        assert "UNINSTALL my-skill project PARTIAL error=partial-removal" in audit

    def test_active_update_blocks_uninstall(self, tmp_path: Path) -> None:
        held = acquire_update_lock(self.skill, tmp_path / "my-skill.skill")
        try:
            result = self._uninstall(force=True)
        finally:
            release_update_lock(held.lock_path)

        assert result.type == "uninstall-failure"
        assert result.error.type == "concurrency-error"
        assert snapshot(self.skill) == self.original

    def test_cancelled_before_deletion(self) -> None:
        token = CancellationToken()
        token.cancel()

        result = self._uninstall(cancel_token=token)

        assert result.type == "uninstall-cancelled"
        assert result.files_removed == 0
        assert result.files_remaining > 0
        assert exit_code_for(result) == ExitCode.CANCELLED
        assert (self.skill / "SKILL.md").exists()


class TestUninstallSkills:
    @pytest.fixture(autouse=True)
    def _setup(self, scope_root: Path, home_dir: Path, project_dir: Path) -> None:
        self.scope_root = scope_root
        self.home = home_dir
        self.cwd = project_dir
        write_skill(scope_root, "first-skill", files={"one.txt": "1"})
        write_skill(scope_root, "second-skill", files={"two.txt": "22"})

    def _run(self, names: list[str], **kwargs: object):  # type: ignore[no-untyped-def]
        return uninstall_skills(names, cwd=self.cwd, home=self.home, **kwargs)  # type: ignore[arg-type]

    def test_all_succeed(self) -> None:
        result = self._run(["first-skill", "second-skill"])
        assert [r.skill_name for r in result.succeeded] == ["first-skill", "second-skill"]
        assert result.failed == []
        assert result.total_files_removed == 4
        assert exit_code_for(result) == ExitCode.SUCCESS

    def test_duplicates_processed_once(self) -> None:
        result = self._run(["first-skill", "first-skill"])
        assert len(result.succeeded) == 1
        assert result.failed == []

    def test_mixed_results(self) -> None:
        result = self._run(["first-skill", "ghost-skill"])
        assert len(result.succeeded) == 1
        assert [f.skill_name for f in result.failed] == ["ghost-skill"]
        assert exit_code_for(result) == ExitCode.VALIDATION_FAILURE

    def test_all_fail_uses_first_failure_code(self) -> None:
        result = self._run(["ghost-skill", "../bad"])
        assert result.succeeded == []
        assert exit_code_for(result) == ExitCode.NOT_FOUND

    def test_dry_run_collects_previews(self) -> None:
        result = self._run(["first-skill", "second-skill"], dry_run=True)
        assert len(result.previews) == 2
        assert (self.scope_root / "first-skill").exists()
        assert exit_code_for(result) == ExitCode.SUCCESS

    def test_cancelled_token_stops_remaining(self) -> None:
        token = CancellationToken()
        token.cancel()
        result = self._run(["first-skill", "second-skill"], cancel_token=token)
        assert result.succeeded == []
        assert {f.type for f in result.failed} == {"uninstall-cancelled"}
        assert (self.scope_root / "first-skill").exists()
        assert (self.scope_root / "second-skill").exists()
