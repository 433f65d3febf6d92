"""Text sanitization utilities."""

import re

_DIGIT_RE = re.compile(r"[0-9]")
_WHITESPACE_RE = re.compile(r"\s+")
_IMPERATIVE_RE = re.compile(r"\b(must|should|recommend|need to|you should|we should)\b", re.IGNORECASE)


def sanitize_text(text: str | None, max_length: int = 500) -> str | None:
    """
    Sanitize untrusted text fields.

    Removes control characters and truncates to max_length.
    Apply to: narrative-service strings, question text, labels.

    Args:
        text: Text to sanitize (may be None)
        max_length: Maximum length before truncation

    Returns:
        Sanitized text or None if input was None
    """
    if text is None:
        return None

    # Remove control characters (including \r, \x00-\x1f, \x7f-\x9f)
    text = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", text)

    # Truncate if needed
    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text.strip()


def has_digits(text: str) -> bool:
    return bool(_DIGIT_RE.search(text))


def strip_digits(text: str) -> str:
    """Remove every digit character and collapse the leftover whitespace."""
    return _WHITESPACE_RE.sub(" ", _DIGIT_RE.sub("", text)).strip()


def has_imperatives(text: str) -> bool:
    """True if text reads as advice (must, should, recommend, need to)."""
    return bool(_IMPERATIVE_RE.search(text))
