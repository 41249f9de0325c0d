import re
from typing import Optional


def clean_text(value: Optional[str], max_length: int = 500) -> str:
    """
    Trim user-supplied free text and strip control characters.

    Args:
        value: Input string
        max_length: Maximum allowed length after trimming

    Returns:
        Cleaned string ("" for missing input)

    Raises:
        ValueError: If input exceeds max_length
    """
    if not value:
        return ""

    value = str(value).strip()

    # Remove control characters except newline, carriage return and tab
    value = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", value)

    if len(value) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters")

    return value


def escape_like(value: str) -> str:
    """Escape SQL LIKE wildcards so user search text matches literally"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
