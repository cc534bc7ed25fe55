"""Skill name and scope guards.

These run before any path is built from user input. A name that passes
``validate_skill_name`` can only address a direct child of a scope root.

The Unicode look-alike check is an enumerated deny-list of characters that
render like ``/``, ``\\`` or ``.``. It is a partial defense: it is not
derived from a confusables database, and the final ASCII-only check is what
actually closes the gap.
"""

from __future__ import annotations

import re
import unicodedata

from .constants import MAX_NAME_LENGTH
from .types import NameValidationResult, ScopeValidationResult

NAME_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
_PERCENT_ENCODED = re.compile(r"%[0-9A-Fa-f]{2}")
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

LOOKALIKE_CHARACTERS: dict[str, str] = {
    "／": "fullwidth solidus (looks like /)",
    "＼": "fullwidth reverse solidus (looks like \\)",
    "∕": "division slash (looks like /)",
    "⁄": "fraction slash (looks like /)",
    "⧵": "reverse solidus operator (looks like \\)",
    "∖": "set minus (looks like \\)",
    "․": "one dot leader (looks like .)",
    "∙": "bullet operator (looks like .)",
    "·": "middle dot (looks like .)",
    "・": "katakana middle dot (looks like .)",
}

VALID_SCOPES = ("project", "personal")


def _invalid(message: str) -> NameValidationResult:
    return NameValidationResult(valid=False, error=message)


def validate_skill_name(value: str | None) -> NameValidationResult:
    """Validate a skill name against traversal, encoding and format rules."""
    if value is None or not value.strip():
        return _invalid("Skill name cannot be empty")

    if _CONTROL_CHARS.search(value):
        return _invalid("Skill name contains control characters")

    if len(value.encode("utf-8")) > MAX_NAME_LENGTH:
        return _invalid(f"Skill name must be {MAX_NAME_LENGTH} characters or fewer")

    if "%" in value:
        if _PERCENT_ENCODED.search(value):
            return _invalid("Skill name contains percent-encoded characters")
        return _invalid("Skill name cannot contain '%'")

    for char in value:
        if char in LOOKALIKE_CHARACTERS:
            return _invalid(
                f"Skill name contains Unicode look-alike character U+{ord(char):04X} "
                f"({LOOKALIKE_CHARACTERS[char]})"
            )

    if any(ord(char) > 127 for char in value):
        offending = next(char for char in value if ord(char) > 127)
        label = unicodedata.name(offending, "unknown")
        return _invalid(f"Skill name contains non-ASCII character U+{ord(offending):04X} ({label})")

    if value.startswith("\\\\"):
        return _invalid("Skill name cannot be an absolute path (UNC path)")

    if "/" in value or "\\" in value:
        return _invalid("Skill name cannot contain path separators")

    if value in (".", "..") or ".." in value:
        return _invalid("Skill name cannot contain path traversal sequences")

    if _DRIVE_LETTER.match(value):
        return _invalid("Skill name cannot be an absolute path")

    if not NAME_PATTERN.match(value):
        if any(char.isupper() for char in value):
            return _invalid("Skill name must be lowercase")
        if value.startswith("-"):
            return _invalid("Skill name cannot start with a hyphen")
        if value.endswith("-"):
            return _invalid("Skill name cannot end with a hyphen")
        if "--" in value:
            return _invalid("Skill name cannot contain consecutive hyphens")
        return _invalid("Skill name may only contain lowercase letters, numbers, and hyphens")

    return NameValidationResult(valid=True)


def validate_scope(value: str | None) -> ScopeValidationResult:
    """Accept only the literal 'project' or 'personal'. Missing means project."""
    if value is None or value == "":
        return ScopeValidationResult(valid=True, scope="project")

    if value in VALID_SCOPES:
        return ScopeValidationResult(valid=True, scope=value)  # type: ignore[arg-type]

    return ScopeValidationResult(
        valid=False,
        error=(
            f'Invalid scope "{value}". Only \'project\' or \'personal\' are supported; '
            "custom paths are not allowed for destructive operations."
        ),
    )
