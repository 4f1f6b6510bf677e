"""
Sanitization helpers for untrusted text (generator output, perspective ids).
"""
import re

_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f-\x9f]')


def strip_control_characters(value: str) -> str:
    """Remove C0/C1 control characters, newlines and tabs included."""
    return _CONTROL_CHARS.sub('', value)


def sanitize_for_logging(value: str, max_length: int = 200) -> str:
    """
    Sanitize value for safe logging (prevents log injection).

    Args:
        value: Value to sanitize
        max_length: Maximum length

    Returns:
        Sanitized value safe for logging
    """
    if not value:
        return ""

    value = re.sub(r'[\r\n]', ' ', str(value))
    value = strip_control_characters(value)

    if len(value) > max_length:
        value = value[:max_length] + "..."

    return value
