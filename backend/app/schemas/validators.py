"""Reusable validators for common input patterns.

- Email addresses (lower-cased, RFC 5321 length limit)
- Hex colours (#RGB / #RRGGBB)
- Free-text sanitisation

Usage in Pydantic models:

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return validate_email(v)
"""

import re

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
HEX_COLOR_REGEX = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """Trim and length-check a free-text value.

    Raises:
        ValueError: If the value is not a string or is too long
    """
    if not isinstance(value, str):
        raise ValueError("Must be a string")

    value = value.strip()

    if len(value) > max_length:
        raise ValueError(f"String too long (max {max_length} characters)")

    return value


def validate_email(value: str) -> str:
    """Validate an email address and return it lower-cased.

    Raises:
        ValueError: If email is missing or invalid
    """
    if not value or not value.strip():
        raise ValueError("Please enter an email address")

    value = value.strip().lower()

    if len(value) > 254:  # RFC 5321
        raise ValueError("Email address too long")

    if not EMAIL_REGEX.match(value):
        raise ValueError("Please enter a valid email address")

    return value


def validate_hex_color(value: str) -> str:
    """Validate a #RGB / #RRGGBB colour.

    Raises:
        ValueError: If the colour is not a hex code
    """
    if not value or not HEX_COLOR_REGEX.match(value.strip()):
        raise ValueError("Colour must be a hex code like #3B82F6")
    return value.strip()
