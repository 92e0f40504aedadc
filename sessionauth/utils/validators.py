"""
Validation Utilities
====================

Input validation for usernames, passwords and the snapshot separators.
"""

from __future__ import annotations

import re
from typing import Final, Optional

from sessionauth.core.errors import ValidationError

MAX_USERNAME_LENGTH: Final[int] = 256
MAX_PASSWORD_LENGTH: Final[int] = 4096

# Hex output and the "$" used by encoded-hash formats must never collide
# with a separator.
_FORBIDDEN_SEPARATOR_CHARS: Final[re.Pattern[str]] = re.compile(r"[0-9a-fA-F$]")


def validate_string_safe(
    value: str,
    min_length: int = 0,
    max_length: int = 1000,
    allow_empty: bool = False,
    field_name: str = "value",
) -> str:
    """
    Validate a string value for safety.

    Args:
        value: The string to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length
        allow_empty: If False, empty strings are rejected
        field_name: Name of the field for error messages

    Returns:
        Validated string

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")

    if not allow_empty and not value:
        raise ValidationError(f"{field_name} cannot be empty")

    if len(value) < min_length:
        raise ValidationError(
            f"{field_name} must be at least {min_length} characters"
        )

    if len(value) > max_length:
        raise ValidationError(
            f"{field_name} must be at most {max_length} characters"
        )

    # Check for null bytes (security risk)
    if "\x00" in value:
        raise ValidationError(f"{field_name} contains invalid characters")

    _require_utf8(value, field_name)

    return value


def _require_utf8(value: str, field_name: str) -> None:
    """Reject strings (e.g. with lone surrogates) that cannot be stored as UTF-8."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValidationError(f"{field_name} is not valid UTF-8 text") from e


def validate_username(
    username: str,
    field_separator: Optional[str] = None,
    line_separator: Optional[str] = None,
) -> str:
    """
    Validate a username for storage in the vault snapshot.

    On disk the name is followed directly by the field separator, so
    besides containing neither separator it must not end with text that
    runs into one (``"a-|"`` followed by ``"-|-"`` splits as ``"a"``).

    Args:
        username: Candidate username
        field_separator: Separator written after the name
        line_separator: Separator between records

    Raises:
        ValidationError: If the name is empty, too long, not encodable,
            or would not split back out of a snapshot line
    """
    validate_string_safe(
        username, max_length=MAX_USERNAME_LENGTH, field_name="Username"
    )
    for separator in (field_separator, line_separator):
        if separator and separator in username:
            raise ValidationError(
                f"Username cannot contain the separator {separator!r}"
            )
    if field_separator:
        framed = username + field_separator
        if framed.find(field_separator) != len(username) or (
            line_separator and line_separator in framed
        ):
            raise ValidationError(
                "Username cannot end with part of a separator"
            )
    return username


def validate_password(password: str) -> str:
    """
    Validate a password before it is hashed.

    Only emptiness, length and UTF-8 encodability are checked;
    strength policy belongs to the caller.
    """
    if not isinstance(password, str):
        raise ValidationError("Password must be a string")
    if not password:
        raise ValidationError("Password cannot be empty")
    _require_utf8(password, "Password")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_LENGTH} characters"
        )
    return password


def validate_separators(field_separator: str, line_separator: str) -> None:
    """
    Validate the snapshot separators.

    Raises:
        ValidationError: If a separator is empty, the two are equal or
            one contains the other, or either contains a hex digit or "$"
    """
    for name, separator in (("field", field_separator), ("line", line_separator)):
        if not isinstance(separator, str) or not separator:
            raise ValidationError(f"The {name} separator cannot be empty")
        if _FORBIDDEN_SEPARATOR_CHARS.search(separator):
            raise ValidationError(
                f"The {name} separator {separator!r} must not contain hex "
                "digits or '$'"
            )
    if field_separator in line_separator or line_separator in field_separator:
        raise ValidationError("Field and line separators must not overlap")
