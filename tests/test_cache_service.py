"""Tests for the file-backed cache layers."""

import json

import pytest
from youtube_discovery.models import YouTubeChannel, YouTubeVideo
from youtube_discovery.services.cache_service import CacheLayer, CacheService


class TestCacheLayer:
    """Test cases for a single cache layer."""

    @pytest.fixture
    def layer(self, tmp_path, clock):
        """Create a layer with a one-hour default TTL."""
        return CacheLayer("test", tmp_path / "layer", default_ttl=3600, clock=clock)

    def test_set_and_get(self, layer):
        """Test a stored value is returned."""
        assert layer.set("key1", {"ids": ["a", "b"]}) is True
        assert layer.get("key1") == {"ids": ["a", "b"]}

    def test_missing_key(self, layer):
        """Test an absent key is a miss."""
        assert layer.get("nope") is None

    def test_entry_file_layout(self, layer, clock):
        """Test the stored entry carries data and expiry metadata."""
        layer.set("key1", [1, 2], ttl=60)

        with open(layer._path("key1"), encoding="utf-8") as fh:
            raw = json.load(fh)

        assert raw["data"] == [1, 2]
        assert raw["cachedAt"] == clock.now
        assert raw["expiresAt"] == clock.now + 60
        assert raw["ttl"] == 60

    def test_expired_entry_is_evicted(self, layer, clock):
        """Test reads past expiry miss and delete the file."""
        layer.set("key1", "value", ttl=60)
        clock.advance(61)

        assert layer.get("key1") is None
        assert not layer._path("key1").exists()

    def test_entry_valid_at_expiry_instant(self, layer, clock):
        """Test an entry is still served when now equals expiresAt."""
        layer.set("key1", "value", ttl=60)
        clock.advance(60)

        assert layer.get("key1") == "value"

    def test_set_overwrites(self, layer):
        """Test set replaces an existing value."""
        layer.set("key1", "old")
        layer.set("key1", "new")

        assert layer.get("key1") == "new"

    def test_corrupted_entry_is_miss(self, layer):
        """Test unreadable files are treated as a miss, not an error."""
        layer.directory.mkdir(parents=True, exist_ok=True)
        layer._path("key1").write_text("{not json", encoding="utf-8")

        assert layer.get("key1") is None

    def test_write_failure_is_swallowed(self, layer, monkeypatch):
        """Test a failed write returns False and leaves no temp file."""
        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("youtube_discovery.services.cache_service.os.replace", failing_replace)

        assert layer.set("key1", "value") is False
        assert list(layer.directory.iterdir()) == []

    def test_pathological_key_stays_in_directory(self, layer):
        """Test keys never escape the layer directory."""
        layer.set("../../escape", "value")

        files = list(layer.directory.iterdir())
        assert len(files) == 1
        assert files[0].parent == layer.directory
        assert layer.get("../../escape") == "value"

    def test_get_batch_partitions(self, layer):
        """Test batch lookups split hits and misses."""
        layer.set_batch({"a": 1, "c": 3})

        hits, misses = layer.get_batch(["a", "b", "c", "d", "b"])

        assert hits == {"a": 1, "c": 3}
        assert misses == ["b", "d"]

    def test_disabled_layer(self, tmp_path, clock):
        """Test a disabled layer never stores or serves."""
        layer = CacheLayer("off", tmp_path / "off", default_ttl=60, clock=clock, enabled=False)

        assert layer.set("k", "v") is False
        assert layer.get("k") is None

    def test_clear_and_stats(self, layer):
        """Test clearing and counting entries."""
        layer.set_batch({"a": 1, "b": 2})

        stats = layer.stats()
        assert stats["count"] == 2
        assert stats["size_bytes"] > 0

        assert layer.clear() == 2
        assert layer.stats()["count"] == 0


class TestCacheService:
    """Test cases for the three-layer cache service."""

    def test_query_result_roundtrip_with_normalized_query(self, cache_service):
        """Test L1 hits for case/whitespace variants of a query."""
        cache_service.set_query_result("weex", "WEEX futures  partnership", ["UC1"], ["v1", "v2"])

        cached = cache_service.get_query_result("weex", "weex futures partnership")

        assert cached is not None
        assert cached.video_ids == ["v1", "v2"]
        assert cached.channel_ids == ["UC1"]
        assert cached.normalized_query == "weex futures partnership"

    def test_query_result_expires_after_l1_ttl(self, cache_service, clock):
        """Test L1 entries expire after 24 hours."""
        cache_service.set_query_result("weex", "q", [], ["v1"])
        clock.advance(24 * 3600 + 1)

        assert cache_service.get_query_result("weex", "q") is None

    def test_channels_batch(self, cache_service):
        """Test L2 returns cached channels and lists misses."""
        cache_service.set_channels([
            YouTubeChannel(channel_id="UC1", title="One", subscriber_count=50000),
        ])

        channels, misses = cache_service.get_channels(["UC1", "UC2"])

        assert list(channels) == ["UC1"]
        assert channels["UC1"].subscriber_count == 50000
        assert misses == ["UC2"]

    def test_videos_batch(self, cache_service):
        """Test L3 returns cached videos keyed by original id."""
        cache_service.set_videos([
            YouTubeVideo(video_id="AbC123", title="Futures", channel_id="UC1", duration="PT5M"),
        ])

        videos, misses = cache_service.get_videos(["AbC123"])

        assert misses == []
        assert videos["AbC123"].title == "Futures"
        assert videos["AbC123"].duration_seconds == 300

    def test_l2_outlives_l1(self, cache_service, clock):
        """Test channel stats persist after query results expire."""
        cache_service.set_query_result("weex", "q", ["UC1"], ["v1"])
        cache_service.set_channels([YouTubeChannel(channel_id="UC1")])
        clock.advance(2 * 24 * 3600)

        assert cache_service.get_query_result("weex", "q") is None
        channels, _ = cache_service.get_channels(["UC1"])
        assert "UC1" in channels

    def test_clear_all_and_stats(self, cache_service):
        """Test clearing every layer."""
        cache_service.set_query_result("weex", "q", [], [])
        cache_service.set_channels([YouTubeChannel(channel_id="UC1")])
        cache_service.set_videos([YouTubeVideo(video_id="v1")])

        stats = cache_service.get_cache_stats()
        assert stats["enabled"] is True
        assert stats["l1"]["count"] == 1
        assert stats["l2"]["count"] == 1
        assert stats["l3"]["count"] == 1

        assert cache_service.clear_all() == 3

    def test_disabled_service(self, tmp_path):
        """Test a disabled cache reports itself and always misses."""
        service = CacheService(cache_dir=str(tmp_path), enabled=False)
        service.set_query_result("weex", "q", [], ["v1"])

        assert service.get_query_result("weex", "q") is None
        assert service.get_cache_stats() == {"enabled": False}
