"""
Shared validation functions for Pydantic schemas.

This module contains validators used across multiple schemas (bookmarks, tags,
collections, users). Schema-specific checks remain in their respective modules.
"""
import re

MAX_TAG_NAME_LENGTH = 100
MAX_NAME_LENGTH = 100

# At least one uppercase letter, one digit, and one special character
PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*])")
MIN_PASSWORD_LENGTH = 8


def validate_tag_name(name: str) -> str:
    """
    Trim and validate a single tag name.

    Tag names keep their case; "Work" and "work" are different tags.

    Raises:
        ValueError: If the name is empty or too long.
    """
    normalized = name.strip()
    if not normalized:
        raise ValueError("Tag name cannot be empty")
    if len(normalized) > MAX_TAG_NAME_LENGTH:
        raise ValueError(
            f"Tag name exceeds maximum length of {MAX_TAG_NAME_LENGTH} characters: "
            f"'{normalized[:20]}...'",
        )
    return normalized


def normalize_tag_names(names: list[str]) -> list[str]:
    """
    Normalize a list of tag names.

    Blank entries are dropped silently and duplicates collapse onto their
    first occurrence, so the result preserves input order.

    Raises:
        ValueError: If any name is too long.
    """
    normalized: list[str] = []
    seen: set[str] = set()
    for name in names:
        if not name or not name.strip():
            continue
        tag = validate_tag_name(name)
        if tag not in seen:
            seen.add(tag)
            normalized.append(tag)
    return normalized


def validate_name(value: str, label: str = "Name") -> str:
    """Trim a display name and require it to be non-empty."""
    trimmed = value.strip()
    if not trimmed:
        raise ValueError(f"{label} is required")
    if len(trimmed) > MAX_NAME_LENGTH:
        raise ValueError(f"{label} exceeds maximum length of {MAX_NAME_LENGTH} characters")
    return trimmed


def validate_password_strength(password: str) -> str:
    """
    Enforce the account password policy.

    Raises:
        ValueError: If the password is shorter than eight characters or lacks an
            uppercase letter, a digit, or a special character (!@#$%^&*).
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not PASSWORD_PATTERN.match(password):
        raise ValueError(
            "Password must include an uppercase letter, a number, and a special character",
        )
    return password
