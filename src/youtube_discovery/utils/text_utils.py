"""Text processing utilities for keyword matching and cache keys."""

import re
from functools import lru_cache
from typing import Optional, Pattern

WHITESPACE_RE = re.compile(r'\s+')

# Loose RFC-5322 subset, good enough for channel "about" text
EMAIL_RE = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE)


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize text for keying and comparison.

    Lower-cases, trims and collapses every whitespace run to one space, so
    strings that differ only in case or spacing normalize identically.

    Args:
        text: Input text

    Returns:
        Normalized text ("" for None)
    """
    if not text:
        return ""
    return WHITESPACE_RE.sub(' ', text.lower()).strip()


@lru_cache(maxsize=1024)
def keyword_pattern(keyword: str) -> Pattern:
    """
    Compile a whole-word, case-insensitive pattern for a keyword.

    Internal whitespace in the keyword matches one or more whitespace
    characters in the text.

    Args:
        keyword: Keyword or phrase

    Returns:
        Compiled regex
    """
    parts = [re.escape(part) for part in keyword.strip().split()]
    return re.compile(r'\b' + r'\s+'.join(parts) + r'\b', re.IGNORECASE)


def count_matches(text: Optional[str], keyword: str) -> int:
    """
    Count whole-word occurrences of a keyword in text.

    Args:
        text: Text to scan
        keyword: Keyword or phrase

    Returns:
        Number of matches (0 for empty text or keyword)
    """
    if not text or not keyword.strip():
        return 0
    return len(keyword_pattern(keyword).findall(text))


def extract_contact_email(text: Optional[str]) -> Optional[str]:
    """Return the first e-mail address found in text, if any."""
    if not text:
        return None
    match = EMAIL_RE.search(text)
    return match.group(0) if match else None


def truncate_text(text: str, max_length: int = 300) -> str:
    """
    Truncate text to maximum length, breaking at word boundaries.

    Args:
        text: Text to truncate
        max_length: Maximum length in characters

    Returns:
        Truncated text with ellipsis if needed
    """
    if len(text) <= max_length:
        return text

    truncated = text[:max_length].rsplit(' ', 1)[0]
    return truncated + '...'
