"""Tests for path containment and the verify-before-delete gate."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from skill_guard.path_verifier import (
    create_verified_path,
    is_dangerous_path,
    is_valid_scope_path,
    verify_before_deletion,
    verify_containment,
)
from skill_guard.scopes import get_scope_path, is_path_within

if TYPE_CHECKING:
    from pathlib import Path


class TestVerifyContainment:
    def test_base_itself_is_contained(self, tmp_path: Path) -> None:
        result = verify_containment(tmp_path, tmp_path)
        assert result.type == "valid"

    def test_child_is_contained(self, tmp_path: Path) -> None:
        result = verify_containment(tmp_path / "skill", tmp_path / "skill" / "a" / "b.txt")
        assert result.type == "valid"
        assert result.normalized_path == str(tmp_path / "skill" / "a" / "b.txt")

    def test_sibling_with_shared_prefix_is_a_violation(self, tmp_path: Path) -> None:
        base = tmp_path / "skills" / "my-skill"
        result = verify_containment(base, str(base) + "-evil")
        assert result.type == "violation"

    def test_traversal_is_a_violation(self, tmp_path: Path) -> None:
        base = tmp_path / "skill"
        result = verify_containment(base, os.path.join(str(base), "..", "..", "etc"))
        assert result.type == "violation"
        assert "traversal" in result.reason

    def test_absolute_outside_is_a_violation(self, tmp_path: Path) -> None:
        result = verify_containment(tmp_path / "skill", "/etc/passwd")
        assert result.type == "violation"
        assert "Absolute path" in result.reason

    def test_traversal_that_stays_inside_is_valid(self, tmp_path: Path) -> None:
        base = tmp_path / "skill"
        result = verify_containment(base, os.path.join(str(base), "a", "..", "b"))
        assert result.type == "valid"

    @pytest.mark.parametrize(
        ("target", "expected"),
        [("x", True), ("x/y", True), ("", True), ("../x", False), ("../skill-x", False), ("x/../../y", False)],
    )
    def test_matches_is_path_within(self, tmp_path: Path, target: str, expected: bool) -> None:
        base = tmp_path / "skill"
        full = os.path.join(str(base), target) if target else str(base)
        assert (verify_containment(base, full).type == "valid") is expected
        assert is_path_within(base, full) is expected


class TestDangerousPaths:
    @pytest.mark.parametrize(
        "path",
        ["/etc", "/etc/passwd", "/usr/bin", "/ETC/hosts", "/var/lib", "/proc/1", "C:\\Windows\\System32", "c:/windows"],
    )
    def test_system_locations_are_dangerous(self, path: str) -> None:
        assert is_dangerous_path(path) is True

    @pytest.mark.parametrize("path", ["/etcetera", "/home/user/.claude/skills/x", "/usrlocal", "C:\\Users\\me"])
    def test_lookalike_prefixes_are_not_dangerous(self, path: str) -> None:
        assert is_dangerous_path(path) is False


class TestScopePaths:
    def test_scope_roots_are_valid_scope_paths(self, tmp_path: Path) -> None:
        assert is_valid_scope_path(get_scope_path("project", cwd=tmp_path))
        assert is_valid_scope_path(get_scope_path("personal", home=tmp_path))

    def test_other_paths_are_not(self, tmp_path: Path) -> None:
        assert is_valid_scope_path(tmp_path / "skills") is False
        assert is_valid_scope_path(tmp_path / ".claude") is False
        assert is_valid_scope_path(tmp_path / ".claude" / "skills" / "x") is False


class TestVerifyBeforeDeletion:
    @pytest.fixture(autouse=True)
    def _setup(self, tmp_path: Path) -> None:
        self.skill = tmp_path / "my-skill"
        self.skill.mkdir()
        (self.skill / "file.txt").write_text("hello")
        (self.skill / "sub").mkdir()

    def test_reports_file_type_and_size(self) -> None:
        result = verify_before_deletion(self.skill, self.skill / "file.txt")
        assert result.type == "ok"
        assert result.path_type == "file"
        assert result.size == 5

    def test_reports_directories(self) -> None:
        result = verify_before_deletion(self.skill, self.skill / "sub")
        assert result.type == "ok"
        assert result.path_type == "directory"

    def test_reports_symlinks_without_following(self, tmp_path: Path) -> None:
        (self.skill / "link").symlink_to(tmp_path)
        result = verify_before_deletion(self.skill, self.skill / "link")
        assert result.type == "ok"
        assert result.path_type == "symlink"

    def test_missing_target(self) -> None:
        result = verify_before_deletion(self.skill, self.skill / "gone")
        assert result.type == "failed"
        assert result.reason == "not-exists"

    def test_outside_target(self, tmp_path: Path) -> None:
        outside = tmp_path / "outside.txt"
        outside.write_text("x")
        result = verify_before_deletion(self.skill, outside)
        assert result.type == "failed"
        assert result.reason == "containment-violation"

    def test_create_verified_path(self) -> None:
        verified = create_verified_path(self.skill, self.skill / "file.txt")
        assert verified.path_type == "file"  # type: ignore[union-attr]
        assert verified.verified_at  # type: ignore[union-attr]

    def test_create_verified_path_error(self) -> None:
        result = create_verified_path(self.skill, self.skill / "missing")
        assert result.type == "error"  # type: ignore[union-attr]
