"""Tests for directory enumeration and symlink / hard-link detection."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from skill_guard.fs_utils import check_resource_limits, enumerate_skill_files, get_skill_summary
from skill_guard.security import (
    check_directory_symlinks,
    check_hard_links,
    check_symlink_safety,
    detect_hard_link_warnings,
    get_symlink_summary,
)
from skill_guard.types import SkillSummary

if TYPE_CHECKING:
    from pathlib import Path


class TestEnumerateSkillFiles:
    def test_lists_nested_entries_with_relative_paths(self, tmp_path: Path) -> None:
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "a" / "b" / "c.txt").write_text("abc")
        (tmp_path / "top.txt").write_text("t")

        entries = {info.relative_path: info for info in enumerate_skill_files(tmp_path)}

        assert set(entries) == {"a", os.path.join("a", "b"), os.path.join("a", "b", "c.txt"), "top.txt"}
        assert entries["a"].is_directory is True
        assert entries[os.path.join("a", "b", "c.txt")].size == 3

    def test_does_not_descend_into_symlinked_directories(self, tmp_path: Path) -> None:
        target = tmp_path / "target"
        target.mkdir()
        (target / "secret.txt").write_text("s")
        skill = tmp_path / "skill"
        skill.mkdir()
        (skill / "link").symlink_to(target)

        entries = list(enumerate_skill_files(skill))

        assert [e.relative_path for e in entries] == ["link"]
        assert entries[0].is_symlink is True
        assert entries[0].is_directory is False

    def test_handles_deep_trees_without_recursion(self, tmp_path: Path) -> None:
        current = tmp_path
        for _ in range(300):
            current = current / "d"
        current.mkdir(parents=True)
        (current / "leaf.txt").write_text("x")

        assert sum(1 for _ in enumerate_skill_files(tmp_path)) == 301

    def test_is_restartable(self, tmp_path: Path) -> None:
        (tmp_path / "f").write_text("x")
        assert list(enumerate_skill_files(tmp_path)) == list(enumerate_skill_files(tmp_path))


class TestSymlinkSafety:
    @pytest.fixture(autouse=True)
    def _setup(self, tmp_path: Path) -> None:
        self.scope = tmp_path / "scope"
        self.scope.mkdir()
        self.outside = tmp_path / "outside"
        self.outside.mkdir()

    def test_regular_directory_is_safe(self) -> None:
        skill = self.scope / "skill"
        skill.mkdir()
        result = check_symlink_safety(skill, self.scope)
        assert result.type == "safe"
        assert result.is_symlink is False

    def test_link_inside_scope_is_safe(self) -> None:
        real = self.scope / "real"
        real.mkdir()
        link = self.scope / "link"
        link.symlink_to(real)
        result = check_symlink_safety(link, self.scope)
        assert result.type == "safe"
        assert result.is_symlink is True

    def test_link_outside_scope_escapes(self) -> None:
        link = self.scope / "link"
        link.symlink_to(self.outside)
        result = check_symlink_safety(link, self.scope)
        assert result.type == "escape"
        assert result.target_path == os.path.realpath(self.outside)

    def test_multi_hop_chain_is_followed(self) -> None:
        hop = self.scope / "hop"
        hop.symlink_to(self.outside)
        link = self.scope / "link"
        link.symlink_to(hop)
        assert check_symlink_safety(link, self.scope).type == "escape"

    def test_symlinked_scope_root_does_not_cause_false_escape(self, tmp_path: Path) -> None:
        aliased_scope = tmp_path / "alias"
        aliased_scope.symlink_to(self.scope)
        real = self.scope / "real"
        real.mkdir()
        (self.scope / "link").symlink_to(real)

        result = check_symlink_safety(aliased_scope / "link", aliased_scope)
        assert result.type == "safe"

    def test_symlink_loop_is_classified_as_escape(self) -> None:
        a = self.scope / "a"
        b = self.scope / "b"
        a.symlink_to(b)
        b.symlink_to(a)
        assert check_symlink_safety(a, self.scope).type == "escape"

    def test_missing_path_is_an_error(self) -> None:
        assert check_symlink_safety(self.scope / "missing", self.scope).type == "error"


class TestDirectorySymlinks:
    def test_findings_flag_escapes_and_directory_links(self, tmp_path: Path) -> None:
        skill = tmp_path / "skill"
        (skill / "docs").mkdir(parents=True)
        (skill / "docs" / "a.md").write_text("a")
        outside = tmp_path / "outside"
        outside.mkdir()
        (skill / "inner").symlink_to(skill / "docs")
        (skill / "escape").symlink_to(outside)

        findings = {f.relative_path: f for f in check_directory_symlinks(skill)}

        assert findings["inner"].escapes_scope is False
        assert findings["inner"].is_directory_symlink is True
        assert findings["escape"].escapes_scope is True
        assert findings["escape"].warning is not None

    def test_link_to_ancestor_is_an_escape(self, tmp_path: Path) -> None:
        skill = tmp_path / "skill"
        skill.mkdir()
        (skill / "up").symlink_to(tmp_path)

        findings = list(check_directory_symlinks(skill))

        assert len(findings) == 1
        assert findings[0].escapes_scope is True

    def test_summary_counts(self, tmp_path: Path) -> None:
        skill = tmp_path / "skill"
        skill.mkdir()
        (skill / "f.txt").write_text("x")
        (skill / "ok").symlink_to(skill / "f.txt")
        (skill / "bad").symlink_to(tmp_path)

        summary = get_symlink_summary(skill)

        assert summary.total_symlinks == 2
        assert summary.escaping_symlinks == 1
        assert summary.directory_symlinks == 1
        assert summary.escaping_paths == ["bad"]
        assert summary.has_security_concerns is True
        assert summary.warning

    def test_summary_without_links(self, tmp_path: Path) -> None:
        summary = get_symlink_summary(tmp_path)
        assert summary.total_symlinks == 0
        assert summary.has_security_concerns is False
        assert summary.warning is None


class TestHardLinks:
    def test_detects_hard_linked_files(self, tmp_path: Path) -> None:
        skill = tmp_path / "skill"
        skill.mkdir()
        original = tmp_path / "original.txt"
        original.write_text("shared")
        os.link(original, skill / "linked.txt")
        (skill / "plain.txt").write_text("p")

        findings = list(check_hard_links(skill))
        assert [f.relative_path for f in findings] == ["linked.txt"]
        assert findings[0].link_count == 2

        warning = detect_hard_link_warnings(skill)
        assert warning is not None
        assert warning.count >= 1
        assert "--force" in warning.message

    def test_no_warning_without_hard_links(self, tmp_path: Path) -> None:
        (tmp_path / "a.txt").write_text("a")
        assert detect_hard_link_warnings(tmp_path) is None

    def test_file_list_is_capped(self, tmp_path: Path) -> None:
        skill = tmp_path / "skill"
        skill.mkdir()
        for i in range(12):
            src = tmp_path / f"src{i}"
            src.write_text(str(i))
            os.link(src, skill / f"f{i}")

        warning = detect_hard_link_warnings(skill)
        assert warning is not None
        assert warning.count == 12
        assert len(warning.files) == 10


class TestResourceLimits:
    def test_summary_counts_entries(self, tmp_path: Path) -> None:
        (tmp_path / "d").mkdir()
        (tmp_path / "d" / "f").write_text("12345")
        summary = get_skill_summary(tmp_path)
        assert summary.file_count == 1
        assert summary.directory_count == 1
        assert summary.total_size == 5

    def test_within_limits(self) -> None:
        result = check_resource_limits(SkillSummary(file_count=3, total_size=10))
        assert result.within_limits is True

    def test_exceeding_limits_needs_force(self) -> None:
        result = check_resource_limits(SkillSummary(file_count=11, total_size=10), max_files=10)
        assert result.within_limits is False
        assert result.exceeds_file_count is True
        assert "--force" in (result.message or "")

    def test_size_limit_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SKILL_GUARD_MAX_SIZE", "100")
        result = check_resource_limits(SkillSummary(file_count=1, total_size=101))
        assert result.exceeds_size is True
