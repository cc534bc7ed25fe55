"""Tests for skill name and scope guards."""

from __future__ import annotations

import pytest

from skill_guard.names import LOOKALIKE_CHARACTERS, validate_scope, validate_skill_name


class TestValidateSkillName:
    @pytest.mark.parametrize("name", ["a", "my-skill", "skill2", "a1-b2-c3", "x" * 64])
    def test_accepts_valid_names(self, name: str) -> None:
        result = validate_skill_name(name)
        assert result.valid is True
        assert result.error is None

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_rejects_empty(self, name: str | None) -> None:
        result = validate_skill_name(name)
        assert result.valid is False
        assert "empty" in (result.error or "")

    def test_rejects_traversal_with_separator_message(self) -> None:
        result = validate_skill_name("my-skill/../../etc")
        assert result.valid is False
        assert "separator" in (result.error or "")

    @pytest.mark.parametrize("name", ["a/b", "a\\b", "/etc", "../x", "..", ".", "a..b"])
    def test_rejects_separators_and_dots(self, name: str) -> None:
        assert validate_skill_name(name).valid is False

    @pytest.mark.parametrize("name", ["bad\x00name", "tab\tname", "new\nline", "del\x7f"])
    def test_rejects_control_characters(self, name: str) -> None:
        result = validate_skill_name(name)
        assert result.valid is False
        assert "control" in (result.error or "")

    def test_rejects_names_over_64_bytes(self) -> None:
        result = validate_skill_name("x" * 65)
        assert result.valid is False
        assert "64" in (result.error or "")

    @pytest.mark.parametrize("name", ["my%2Fskill", "%2e%2e", "a%b"])
    def test_rejects_percent_encoding(self, name: str) -> None:
        result = validate_skill_name(name)
        assert result.valid is False
        assert "%" in (result.error or "") or "percent" in (result.error or "")

    @pytest.mark.parametrize("char", sorted(LOOKALIKE_CHARACTERS))
    def test_rejects_each_lookalike_by_code_point(self, char: str) -> None:
        result = validate_skill_name(f"my{char}skill")
        assert result.valid is False
        assert f"U+{ord(char):04X}" in (result.error or "")

    def test_rejects_other_non_ascii(self) -> None:
        result = validate_skill_name("café")
        assert result.valid is False
        assert "non-ASCII" in (result.error or "")

    def test_rejects_windows_absolute_paths(self) -> None:
        assert validate_skill_name("C:").valid is False
        assert validate_skill_name("\\\\server").valid is False

    def test_specific_format_messages(self) -> None:
        assert "lowercase" in (validate_skill_name("MySkill").error or "")
        assert "start" in (validate_skill_name("-skill").error or "")
        assert "end" in (validate_skill_name("skill-").error or "")
        assert "consecutive" in (validate_skill_name("my--skill").error or "")
        assert "only contain" in (validate_skill_name("my_skill").error or "")

    @pytest.mark.parametrize("char", ["/", "\\", "\x00", "\x01", "\x1f"])
    def test_any_name_with_dangerous_character_is_invalid(self, char: str) -> None:
        for template in ("{}", "a{}", "{}a", "ab{}cd"):
            assert validate_skill_name(template.format(char)).valid is False


class TestValidateScope:
    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_defaults_to_project(self, value: str | None) -> None:
        result = validate_scope(value)
        assert result.valid is True
        assert result.scope == "project"

    @pytest.mark.parametrize("value", ["project", "personal"])
    def test_accepts_literals(self, value: str) -> None:
        result = validate_scope(value)
        assert result.valid is True
        assert result.scope == value

    @pytest.mark.parametrize("value", ["PERSONAL", "Project", " project", "project ", "/tmp/skills", "global"])
    def test_rejects_everything_else(self, value: str) -> None:
        result = validate_scope(value)
        assert result.valid is False
        assert result.scope is None
        assert "Only 'project' or 'personal'" in (result.error or "")
