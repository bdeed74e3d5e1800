"""File-backed TTL cache for search results, channel stats and video stats."""

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from ..config import settings
from ..exceptions import CacheIOError
from ..models import (
    CacheEntry,
    ChannelCacheData,
    QueryCacheData,
    VideoCacheData,
    YouTubeChannel,
    YouTubeVideo,
)
from .cache_keys import (
    l1_cache_key,
    l2_cache_key,
    l3_cache_key,
    normalize_competitor,
    normalize_query,
    storage_name,
)

logger = logging.getLogger(__name__)

L1_DIR = "l1-queries"
L2_DIR = "l2-channels"
L3_DIR = "l3-videos"


class CacheLayer:
    """
    One TTL-based key/value layer stored as a directory of JSON files.

    Each key lives in a file named by the sha256 of the key, holding
    ``{key, data, cachedAt, expiresAt, ttl}``. Expired entries are evicted on
    read. Storage errors are logged and never propagated: a failed read is a
    miss, a failed write is dropped.
    """

    def __init__(
        self,
        name: str,
        directory: Path,
        default_ttl: int,
        clock: Callable[[], float] = time.time,
        enabled: bool = True
    ):
        """
        Initialize a cache layer.

        Args:
            name: Layer name used in log messages
            directory: Directory holding the entry files
            default_ttl: TTL in seconds when set() gets none
            clock: Returns the current epoch time in seconds
            enabled: When False every read misses and writes are skipped
        """
        self.name = name
        self.directory = Path(directory)
        self.default_ttl = default_ttl
        self.clock = clock
        self.enabled = enabled

    def _path(self, key: str) -> Path:
        return self.directory / storage_name(key)

    def _read_entry(self, path: Path) -> Optional[CacheEntry]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as fh:
                raw = json.load(fh)
            return CacheEntry.model_validate(raw)
        except (OSError, ValueError, ValidationError) as e:
            raise CacheIOError(f"Unreadable cache entry: {e}", path=str(path)) from e

    def _write_entry(self, path: Path, entry: CacheEntry):
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=self.directory,
                suffix=".tmp",
                encoding="utf-8",
                delete=False
            ) as fh:
                tmp_name = fh.name
                json.dump(entry.model_dump(mode="json", by_alias=True), fh)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheIOError(f"Failed to write cache entry: {e}", path=str(path)) from e

    def get(self, key: str) -> Optional[Any]:
        """
        Get a cached value.

        Args:
            key: Cache key

        Returns:
            Stored data, or None when absent, expired or unreadable
        """
        if not self.enabled:
            return None

        path = self._path(key)
        try:
            entry = self._read_entry(path)
        except CacheIOError as e:
            logger.error(f"[{self.name}] Error reading cache entry {key}: {e}")
            return None

        if entry is None:
            return None

        if entry.is_expired(self.clock()):
            logger.debug(f"[{self.name}] Cache entry expired: {key}")
            self.delete(key)
            return None

        logger.debug(f"[{self.name}] Cache hit: {key}")
        return entry.data

    def set(self, key: str, data: Any, ttl: Optional[int] = None) -> bool:
        """
        Store a value, overwriting any existing entry.

        Args:
            key: Cache key
            data: JSON-serializable payload
            ttl: Time to live in seconds (layer default if not provided)

        Returns:
            True if successfully cached
        """
        if not self.enabled:
            return False

        ttl = self.default_ttl if ttl is None else ttl
        now = self.clock()
        entry = CacheEntry(key=key, data=data, cached_at=now, expires_at=now + ttl, ttl=ttl)

        try:
            self._write_entry(self._path(key), entry)
            logger.debug(f"[{self.name}] Cached {key} (ttl {ttl}s)")
            return True
        except CacheIOError as e:
            logger.error(f"[{self.name}] Error caching {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Remove an entry; returns True when a file was removed."""
        path = self._path(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"[{self.name}] Error deleting cache entry {key}: {e}")
            return False

    def get_batch(self, keys: Iterable[str]) -> Tuple[Dict[str, Any], List[str]]:
        """
        Partition keys into hits and misses.

        Args:
            keys: Cache keys

        Returns:
            Tuple of (hits keyed by cache key, missed keys in input order)
        """
        hits: Dict[str, Any] = {}
        misses: List[str] = []
        for key in keys:
            if key in hits or key in misses:
                continue
            value = self.get(key)
            if value is None:
                misses.append(key)
            else:
                hits[key] = value
        return hits, misses

    def set_batch(self, items: Dict[str, Any], ttl: Optional[int] = None) -> int:
        """Store several values; returns how many were written."""
        return sum(1 for key, data in items.items() if self.set(key, data, ttl))

    def clear(self) -> int:
        """
        Delete every entry in this layer.

        Returns:
            Number of entries removed
        """
        if not self.directory.exists():
            return 0

        removed = 0
        for path in self.directory.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.error(f"[{self.name}] Error removing {path.name}: {e}")

        logger.warning(f"[{self.name}] Cleared {removed} cached entries")
        return removed

    def stats(self) -> Dict[str, Any]:
        """Entry count and total size in bytes of this layer."""
        count = 0
        size = 0
        if self.directory.exists():
            for path in self.directory.glob("*.json"):
                try:
                    size += path.stat().st_size
                    count += 1
                except OSError:
                    continue
        return {"count": count, "size_bytes": size}


class CacheService:
    """
    Manages the three discovery cache layers.

    - L1: competitor + search query -> channel and video ids (short TTL)
    - L2: channel id -> channel statistics (long TTL)
    - L3: video id -> video statistics (long TTL)
    """

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        l1_ttl: Optional[int] = None,
        l2_ttl: Optional[int] = None,
        l3_ttl: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        enabled: Optional[bool] = None
    ):
        """
        Initialize cache service.

        Args:
            cache_dir: Root cache directory (uses settings if not provided)
            l1_ttl: L1 TTL in seconds (uses settings if not provided)
            l2_ttl: L2 TTL in seconds (uses settings if not provided)
            l3_ttl: L3 TTL in seconds (uses settings if not provided)
            clock: Epoch-seconds clock, injectable for tests
            enabled: Whether caching is on (uses settings if not provided)
        """
        self.enabled = settings.cache_enabled if enabled is None else enabled
        self.root = Path(cache_dir or settings.cache_dir)

        if not self.enabled:
            logger.info("Cache is disabled")

        self.l1 = CacheLayer(
            "L1", self.root / L1_DIR,
            settings.l1_cache_ttl_seconds if l1_ttl is None else l1_ttl,
            clock, self.enabled
        )
        self.l2 = CacheLayer(
            "L2", self.root / L2_DIR,
            settings.l2_cache_ttl_seconds if l2_ttl is None else l2_ttl,
            clock, self.enabled
        )
        self.l3 = CacheLayer(
            "L3", self.root / L3_DIR,
            settings.l3_cache_ttl_seconds if l3_ttl is None else l3_ttl,
            clock, self.enabled
        )

    # L1 -------------------------------------------------------------------

    def get_query_result(self, competitor: str, query: str) -> Optional[QueryCacheData]:
        """
        Get cached search ids for a competitor/query pair.

        Args:
            competitor: Competitor id
            query: Search query

        Returns:
            Cached ids or None on miss
        """
        key = l1_cache_key(competitor, query)
        data = self.l1.get(key)
        if data is None:
            return None
        try:
            return QueryCacheData.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed L1 entry {key}: {e}")
            return None

    def set_query_result(
        self,
        competitor: str,
        query: str,
        channel_ids: List[str],
        video_ids: List[str],
        ttl: Optional[int] = None
    ) -> QueryCacheData:
        """
        Cache search ids for a competitor/query pair.

        Args:
            competitor: Competitor id
            query: Search query
            channel_ids: Channel ids found by the search
            video_ids: Video ids found by the search
            ttl: TTL override in seconds

        Returns:
            The cached record
        """
        record = QueryCacheData(
            query=query,
            normalized_query=normalize_query(query),
            competitor=competitor,
            normalized_competitor=normalize_competitor(competitor),
            channel_ids=list(channel_ids),
            video_ids=list(video_ids),
            cache_key=l1_cache_key(competitor, query)
        )
        self.l1.set(record.cache_key, record.model_dump(mode="json"), ttl)
        return record

    # L2 -------------------------------------------------------------------

    def get_channels(self, channel_ids: List[str]) -> Tuple[Dict[str, YouTubeChannel], List[str]]:
        """
        Look up channels in L2.

        Args:
            channel_ids: Channel ids to look up

        Returns:
            Tuple of (cached channels keyed by id, ids that must be fetched)
        """
        key_to_id = {l2_cache_key(cid): cid for cid in channel_ids}
        hits, missed_keys = self.l2.get_batch(key_to_id.keys())

        channels: Dict[str, YouTubeChannel] = {}
        misses = [key_to_id[key] for key in missed_keys]
        for key, data in hits.items():
            try:
                channels[key_to_id[key]] = ChannelCacheData.model_validate(data).to_channel()
            except ValidationError as e:
                logger.error(f"Malformed L2 entry {key}: {e}")
                misses.append(key_to_id[key])

        logger.info(f"L2 cache: {len(channels)} hits, {len(misses)} misses")
        return channels, misses

    def set_channels(self, channels: Iterable[YouTubeChannel], ttl: Optional[int] = None) -> int:
        items = {
            l2_cache_key(ch.channel_id): ChannelCacheData.from_channel(ch).model_dump(mode="json")
            for ch in channels
        }
        return self.l2.set_batch(items, ttl)

    # L3 -------------------------------------------------------------------

    def get_videos(self, video_ids: List[str]) -> Tuple[Dict[str, YouTubeVideo], List[str]]:
        """
        Look up videos in L3.

        Args:
            video_ids: Video ids to look up

        Returns:
            Tuple of (cached videos keyed by id, ids that must be fetched)
        """
        key_to_id = {l3_cache_key(vid): vid for vid in video_ids}
        hits, missed_keys = self.l3.get_batch(key_to_id.keys())

        videos: Dict[str, YouTubeVideo] = {}
        misses = [key_to_id[key] for key in missed_keys]
        for key, data in hits.items():
            try:
                videos[key_to_id[key]] = VideoCacheData.model_validate(data).to_video()
            except ValidationError as e:
                logger.error(f"Malformed L3 entry {key}: {e}")
                misses.append(key_to_id[key])

        logger.info(f"L3 cache: {len(videos)} hits, {len(misses)} misses")
        return videos, misses

    def set_videos(self, videos: Iterable[YouTubeVideo], ttl: Optional[int] = None) -> int:
        items = {
            l3_cache_key(v.video_id): VideoCacheData.from_video(v).model_dump(mode="json")
            for v in videos
        }
        return self.l3.set_batch(items, ttl)

    # Maintenance ----------------------------------------------------------

    def clear_all(self) -> int:
        """
        Clear all cached data (use with caution).

        Returns:
            Number of entries removed across layers
        """
        return self.l1.clear() + self.l2.clear() + self.l3.clear()

    def get_cache_stats(self) -> dict:
        """
        Get cache statistics.

        Returns:
            Dictionary with per-layer counts and sizes
        """
        if not self.enabled:
            return {"enabled": False}

        return {
            "enabled": True,
            "root": str(self.root),
            "l1": self.l1.stats(),
            "l2": self.l2.stats(),
            "l3": self.l3.stats(),
            "ttl_hours": {
                "l1": self.l1.default_ttl / 3600,
                "l2": self.l2.default_ttl / 3600,
                "l3": self.l3.default_ttl / 3600,
            }
        }
