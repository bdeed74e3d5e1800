"""Tests for the discovery engine pipeline."""

import asyncio

import pytest
from youtube_discovery.core.discovery_engine import DiscoveryEngine
from youtube_discovery.core.run_context import RunContext
from youtube_discovery.exceptions import (
    ConfigurationMissingError,
    UpstreamQuotaExhaustedError,
    UpstreamRequestError,
)
from youtube_discovery.models import QuotaGuardConfig, SearchPage
from youtube_discovery.services.competitors import CompetitorRegistry
from youtube_discovery.services.offline_store import OfflineStore
from youtube_discovery.services.quota_budget import QuotaBudgetManager
from youtube_discovery.services.quota_guard import QuotaGuard
from youtube_discovery.services.rate_limiter import ConcurrencyLimiter

WEEX_QUERY = "(weex OR weexchange) crypto futures partnership OR partner program"


def quota_exhausted(query):
    """Search error factory that aborts the run context like the real client."""
    def _raise(run_context):
        run_context.abort(query)
        return UpstreamQuotaExhaustedError("quota exhausted", query=query)
    return _raise


@pytest.fixture
def make_engine(cache_service, scoring_engine, tmp_path):
    """Factory for engines over a fake source."""
    def _make(source, guard="standard", budget="standard"):
        return DiscoveryEngine(
            youtube_client=source,
            cache=cache_service,
            registry=CompetitorRegistry(),
            quota_guard=guard if isinstance(guard, QuotaGuard) else QuotaGuard.from_preset(guard),
            budget_manager=QuotaBudgetManager.from_preset(budget),
            scoring_engine=scoring_engine,
            offline_store=OfflineStore(str(tmp_path / "offline")),
            limiter=ConcurrencyLimiter(max_concurrent=2)
        )
    return _make


class TestDiscover:
    """Test cases for DiscoveryEngine.discover."""

    def test_discover_ranks_target_channel(self, make_engine, fake_source):
        """Test the full pipeline keeps only the qualifying channel."""
        engine = make_engine(fake_source)

        response = engine.discover("weex")

        assert response.blocked is False
        assert response.queries == [WEEX_QUERY]
        assert response.executed_queries == [WEEX_QUERY]
        assert response.candidates_analyzed == 3
        assert response.video_filter.total == 4
        assert response.video_filter.passed == 2
        assert [r.channel_id for r in response.results] == ["UC1"]

        top = response.results[0]
        assert top.rank == 1
        assert top.channel_url == "https://www.youtube.com/@futuresdesk"
        assert top.contact_email == "deals@futuresdesk.io"
        assert top.has_links is True
        assert top.breakdown.competitor_score > 0
        assert all(e.type != "negative" for e in top.evidence)
        assert top.evidence[0].type == "commercial"
        assert top.relationship.has_strong_evidence is True
        assert "affiliate_link" in {s.type for s in top.relationship.signals}

    def test_usage_recorded(self, make_engine, fake_source):
        """Test one search and one batched call per detail endpoint."""
        response = make_engine(fake_source).discover("weex")

        assert response.usage.search_calls == 1
        assert response.usage.videos_calls == 1
        assert response.usage.channels_calls == 1
        assert response.usage.total_units_used == 102

    def test_second_run_served_from_cache(self, make_engine, fake_source):
        """Test a repeated run makes no upstream calls."""
        engine = make_engine(fake_source)
        first = engine.discover("weex")
        second = engine.discover("weex")

        assert len(fake_source.search_calls) == 1
        assert len(fake_source.video_calls) == 1
        assert len(fake_source.channel_calls) == 1
        assert second.usage.cache_hits == 1
        assert second.usage.total_units_used == 0
        assert [r.channel_id for r in second.results] == [r.channel_id for r in first.results]

    def test_unknown_competitor(self, make_engine, fake_source):
        """Test unknown competitors are rejected before any call."""
        with pytest.raises(ConfigurationMissingError):
            make_engine(fake_source).discover("binance")

        assert fake_source.search_calls == []

    def test_blocked_run_makes_no_calls(self, make_engine, fake_source):
        """Test an over-budget plan without auto-downgrade returns blocked."""
        guard = QuotaGuard(QuotaGuardConfig(
            max_search_units_per_run=50,
            enable_auto_downgrade=False,
            min_queries_per_competitor=1,
            max_results_per_query=10
        ))

        response = make_engine(fake_source, guard=guard).discover("weex")

        assert response.blocked is True
        assert response.results == []
        assert response.message
        assert fake_source.search_calls == []
        assert fake_source.video_calls == []

    def test_quota_exhaustion_propagates(self, make_engine, source_factory,
                                         discovery_videos, discovery_channels):
        """Test quota exhaustion aborts the run and later calls."""
        source = source_factory(
            discovery_videos, discovery_channels,
            search_errors={WEEX_QUERY: quota_exhausted(WEEX_QUERY)}
        )
        ctx = RunContext()

        with pytest.raises(UpstreamQuotaExhaustedError):
            make_engine(source).discover("weex", run_context=ctx)

        assert ctx.aborted is True
        assert source.video_calls == []

        with pytest.raises(UpstreamQuotaExhaustedError):
            make_engine(source).discover("weex", run_context=ctx)
        assert len(source.search_calls) == 1

    def test_failed_query_is_skipped(self, make_engine, source_factory,
                                     discovery_videos, discovery_channels):
        """Test a request error on one explore query leaves the others."""
        source = source_factory(
            discovery_videos, discovery_channels,
            search_errors={WEEX_QUERY: UpstreamRequestError("boom", status=500)}
        )
        engine = make_engine(source, guard="relaxed", budget="full")

        response = engine.discover("weex", explore_mode=True)

        assert len(response.queries) == 4
        assert WEEX_QUERY not in response.executed_queries
        assert len(response.executed_queries) == 3
        assert [r.channel_id for r in response.results] == ["UC1"]

    def test_search_budget_limits_queries(self, make_engine, fake_source):
        """Test fresh searches stop at the preset's search call limit."""
        engine = make_engine(fake_source, guard="relaxed", budget="standard")

        response = engine.discover("weex", explore_mode=True)

        assert len(fake_source.search_calls) == 3
        assert len(response.executed_queries) == 3
        assert response.usage.budget_exceeded is True

    def test_later_page_error_keeps_earlier_pages(self, make_engine, fake_source):
        """Test a failing second page keeps and caches the first page's ids."""
        def search(query, max_results=20, page_token=None, **kwargs):
            fake_source.search_calls.append(query)
            if page_token:
                raise UpstreamRequestError("backend error", status=503)
            return SearchPage(
                query=query,
                video_ids=["v1", "v2"],
                channel_ids=["UC1", "UC1"],
                next_page_token="P2"
            )

        fake_source.search = search
        engine = make_engine(fake_source, budget="full")

        response = engine.discover("weex", pages_per_query=2)

        assert len(fake_source.search_calls) == 2
        assert response.executed_queries == [WEEX_QUERY]
        assert fake_source.video_calls == [["v1", "v2"]]
        assert response.usage.search_calls == 1
        assert response.usage.total_units_used == 102
        assert [r.channel_id for r in response.results] == ["UC1"]
        assert engine.cache.get_query_result("weex", WEEX_QUERY).video_ids == ["v1", "v2"]

    def test_videos_per_channel_capped(self, make_engine, fake_source):
        """Test candidates carry at most the preset's videos per channel."""
        engine = make_engine(fake_source, budget="ultra_saving")
        channels = {c.channel_id: c for c in fake_source.channels.values()}

        candidates = engine.build_candidates(channels, fake_source.videos.values())
        uc1 = next(c for c in candidates if c.channel_id == "UC1")

        assert len(candidates) == 3
        assert [v.video_id for v in uc1.videos] == ["v1", "v2"]

    def test_build_queries_explore(self, make_engine, fake_source):
        """Test explore mode builds several variants."""
        engine = make_engine(fake_source)
        competitor = engine.registry.get("weex")

        assert engine.build_queries(competitor, "contract_partnership") == [WEEX_QUERY]
        assert len(engine.build_queries(competitor, "contract_partnership", explore_mode=True)) == 4


class TestOfflineDiscovery:
    """Test cases for snapshot save and offline ranking."""

    def test_save_and_replay(self, make_engine, fake_source):
        """Test a saved snapshot ranks the same channel offline."""
        engine = make_engine(fake_source)
        engine.discover("weex", save_offline=True)

        assert engine.offline_store.is_available()
        assert engine.offline_store.csv_path.exists()

        response = engine.discover_offline("weex")

        assert response.offline is True
        assert [r.channel_id for r in response.results] == ["UC1"]
        assert response.results[0].channel_url == "https://www.youtube.com/channel/UC1"
        assert len(fake_source.search_calls) == 1

    def test_no_snapshot(self, make_engine, fake_source):
        """Test offline discovery without data."""
        response = make_engine(fake_source).discover_offline("weex")

        assert response.offline is True
        assert response.results == []
        assert response.message

    def test_snapshot_for_other_competitor_ignored(self, make_engine, fake_source):
        """Test snapshots are matched by competitor."""
        engine = make_engine(fake_source)
        engine.discover("weex", save_offline=True)

        response = engine.discover_offline("bitunix")

        assert response.results == []


class TestAsyncSearch:
    """Test cases for concurrent searches."""

    def test_search_queries_async(self, make_engine, source_factory,
                                  discovery_videos, discovery_channels):
        """Test pages keyed by query with failures skipped."""
        source = source_factory(
            discovery_videos, discovery_channels,
            search_errors={"b": UpstreamRequestError("boom")}
        )
        engine = make_engine(source)

        pages = asyncio.run(engine.search_queries_async("weex", ["a", "b", "c"]))

        assert sorted(pages) == ["a", "c"]
        assert pages["a"].video_ids == ["v1", "v2", "v3", "v4"]
        assert engine.budget.get_stats().search_calls == 2
        assert engine.limiter.peak_in_flight <= 2

    def test_search_queries_async_quota(self, make_engine, source_factory,
                                        discovery_videos, discovery_channels):
        """Test quota exhaustion is re-raised."""
        source = source_factory(
            discovery_videos, discovery_channels,
            search_errors={"a": quota_exhausted("a")}
        )

        with pytest.raises(UpstreamQuotaExhaustedError):
            asyncio.run(make_engine(source).search_queries_async("weex", ["a"]))

    def test_async_batch_served_from_cache(self, make_engine, fake_source):
        """Test a repeated batch is answered from L1 without new searches."""
        engine = make_engine(fake_source)

        first = asyncio.run(engine.search_queries_async("weex", ["a", "b"]))
        second = asyncio.run(engine.search_queries_async("weex", ["a", "b"]))

        assert sorted(fake_source.search_calls) == ["a", "b"]
        assert second["a"].video_ids == first["a"].video_ids
        stats = engine.budget.get_stats()
        assert stats.search_calls == 2
        assert stats.cache_hits == 2

    def test_async_batches_share_search_budget(self, make_engine, fake_source):
        """Test fresh searches never exceed the preset's search call limit."""
        engine = make_engine(fake_source, guard="relaxed", budget="standard")

        first = asyncio.run(engine.search_queries_async("weex", ["q1", "q2", "q3", "q4"]))
        second = asyncio.run(engine.search_queries_async("weex", ["q5", "q6", "q7", "q8"]))

        assert list(first) == ["q1", "q2", "q3"]
        assert second == {}
        assert len(fake_source.search_calls) == 3
        assert engine.budget.get_stats().search_calls == 3

    def test_async_batch_downgraded_by_guard(self, make_engine, fake_source):
        """Test the quota guard trims the batch to its minimum query count."""
        engine = make_engine(fake_source, guard="standard", budget="full")

        pages = asyncio.run(engine.search_queries_async("weex", ["a", "b", "c", "d"]))

        assert list(pages) == ["a", "b"]
        assert sorted(fake_source.search_calls) == ["a", "b"]

    def test_async_blocked_plan_makes_no_calls(self, make_engine, fake_source):
        """Test an over-budget batch without auto-downgrade is not dispatched."""
        guard = QuotaGuard(QuotaGuardConfig(
            max_search_units_per_run=50,
            enable_auto_downgrade=False,
            min_queries_per_competitor=1,
            max_results_per_query=10
        ))

        pages = asyncio.run(make_engine(fake_source, guard=guard).search_queries_async("weex", ["a"]))

        assert pages == {}
        assert fake_source.search_calls == []

    def test_async_batches_on_separate_event_loops(self, make_engine, fake_source):
        """Test one engine runs contended batches from two asyncio.run calls."""
        engine = make_engine(fake_source, guard="relaxed", budget="full")
        engine.limiter = ConcurrencyLimiter(max_concurrent=1)

        first = asyncio.run(engine.search_queries_async("weex", ["a", "b", "c"]))
        second = asyncio.run(engine.search_queries_async("weex", ["d", "e"]))

        assert list(first) == ["a", "b", "c"]
        assert list(second) == ["d", "e"]
        assert engine.limiter.peak_in_flight == 1
