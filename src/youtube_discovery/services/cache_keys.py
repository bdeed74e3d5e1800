"""Deterministic cache key generation.

Keys are built from normalized inputs so that queries differing only in case
or whitespace share a cache entry.
"""

import hashlib
import re
from typing import Iterable

from ..utils.text_utils import normalize_text

VALID_KEY_RE = re.compile(r'^[a-z0-9_-]+$')

L1_HASH_LENGTH = 12
QUERY_ARRAY_HASH_LENGTH = 16


def normalize_query(query: str) -> str:
    """Normalize a search query (lower-case, trimmed, single spaces)."""
    return normalize_text(query)


def normalize_competitor(competitor: str) -> str:
    """Normalize a competitor id or name."""
    return normalize_text(competitor)


def l1_cache_key(competitor: str, query: str) -> str:
    """
    Generate the L1 key for a competitor/query pair.

    Args:
        competitor: Competitor id
        query: Search query

    Returns:
        ``<competitor>_<md5(query)[:12]>``
    """
    digest = hashlib.md5(normalize_query(query).encode("utf-8")).hexdigest()
    return f"{normalize_competitor(competitor)}_{digest[:L1_HASH_LENGTH]}"


def query_array_key(queries: Iterable[str]) -> str:
    """
    Generate an order-independent key for a list of queries.

    Args:
        queries: Search queries

    Returns:
        First 16 hex chars of sha256 over the sorted normalized queries
    """
    normalized = sorted(q for q in (normalize_query(q) for q in queries) if q)
    digest = hashlib.sha256("||".join(normalized).encode("utf-8")).hexdigest()
    return digest[:QUERY_ARRAY_HASH_LENGTH]


def l2_cache_key(channel_id: str) -> str:
    """L2 key for a channel id."""
    return normalize_text(channel_id)


def l3_cache_key(video_id: str) -> str:
    """L3 key for a video id."""
    return normalize_text(video_id)


def is_valid_cache_key(key: str) -> bool:
    """True when key only uses the safe alphabet ``[a-z0-9_-]``."""
    return bool(key) and VALID_KEY_RE.match(key) is not None


def storage_name(key: str) -> str:
    """File name a key is stored under; the sha256 hex of the key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest() + ".json"
