"""Main YouTube channel discovery engine."""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import (
    CandidateVideo,
    ChannelCandidate,
    ChannelResult,
    CompetitorConfig,
    DiscoveryResponse,
    DowngradedParams,
    OfflineChannel,
    OfflineData,
    OfflineVideo,
    ScoringResult,
    SearchPage,
    YouTubeChannel,
    YouTubeVideo,
)
from ..exceptions import UpstreamQuotaExhaustedError, UpstreamRequestError, log_error
from ..services.cache_service import CacheService
from ..services.competitors import CompetitorRegistry
from ..services.context_filter import filter_and_sort_videos
from ..services.offline_store import OfflineStore, offline_to_candidates, offline_to_records
from ..services.query_builder import QueryBuilder
from ..services.quota_budget import QuotaBudgetManager
from ..services.quota_guard import QuotaGuard
from ..services.rate_limiter import ConcurrencyLimiter
from ..services.relationship import RelationshipAnalyzer
from ..services.scoring_engine import ScoringEngine
from ..services.youtube_client import YouTubeClient, chunked
from ..utils.text_utils import extract_contact_email
from .run_context import RunContext

logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """
    Main engine for discovering partnership-target channels.

    Orchestrates the complete pipeline:
    1. Query building from competitor brands and a keyword template
    2. Quota estimation and downgrade (blocked runs make no network calls)
    3. Cached search (L1), video details (L3) and channel details (L2)
    4. Grouping videos into per-channel candidates
    5. Evidence extraction, scoring, threshold filtering and ranking

    Video-level relevance pre-filter statistics are reported alongside the
    ranking; they do not gate candidates.
    """

    def __init__(
        self,
        youtube_client: Optional[YouTubeClient] = None,
        cache: Optional[CacheService] = None,
        registry: Optional[CompetitorRegistry] = None,
        query_builder: Optional[QueryBuilder] = None,
        quota_guard: Optional[QuotaGuard] = None,
        budget_manager: Optional[QuotaBudgetManager] = None,
        scoring_engine: Optional[ScoringEngine] = None,
        offline_store: Optional[OfflineStore] = None,
        limiter: Optional[ConcurrencyLimiter] = None,
        relationship_analyzer: Optional[RelationshipAnalyzer] = None,
        youtube_api_key: Optional[str] = None,
        enable_cache: bool = True
    ):
        """
        Initialize the discovery engine.

        Args:
            youtube_client: Upstream data source (built on first use if not provided)
            cache: Cache layers
            registry: Competitor configurations
            query_builder: Query builder
            quota_guard: Pre-flight quota guard
            budget_manager: Per-run usage tracker
            scoring_engine: Channel scoring engine
            offline_store: Offline replay store
            limiter: Concurrency limiter for async searches
            relationship_analyzer: Grades each ranked channel's tie to the competitor
            youtube_api_key: YouTube Data API key
            enable_cache: Whether to enable caching
        """
        logger.info("Initializing YouTube Discovery Engine")

        self.registry = registry or CompetitorRegistry()
        self.query_builder = query_builder or QueryBuilder(
            negative_keywords={
                c.id: c.negative_keywords for c in self.registry.list() if c.negative_keywords
            }
        )
        self.quota_guard = quota_guard or QuotaGuard()
        self.budget = budget_manager or QuotaBudgetManager()
        self.scoring = scoring_engine or ScoringEngine()
        self.cache = cache or CacheService(enabled=enable_cache)
        self.offline_store = offline_store or OfflineStore()
        self.limiter = limiter or ConcurrencyLimiter()
        self.relationships = relationship_analyzer or RelationshipAnalyzer(self.scoring.extractor)

        self._youtube = youtube_client
        self._youtube_api_key = youtube_api_key

    @property
    def youtube(self) -> YouTubeClient:
        if self._youtube is None:
            self._youtube = YouTubeClient(api_key=self._youtube_api_key)
        return self._youtube

    def build_queries(
        self,
        competitor: CompetitorConfig,
        template_id: str,
        explore_mode: bool = False
    ) -> List[str]:
        """
        Build the queries for a competitor and template.

        Args:
            competitor: Competitor configuration
            template_id: Keyword template id
            explore_mode: Build up to four variants instead of one query

        Returns:
            Queries, highest priority first
        """
        if explore_mode:
            return self.query_builder.build_explore_queries(
                competitor.id, competitor.brand_names, template_id
            )
        result = self.query_builder.build_query(competitor.id, competitor.brand_names, template_id)
        return [result.final_query]

    def discover(
        self,
        competitor_id: str,
        template_id: str = "contract_partnership",
        explore_mode: bool = False,
        pages_per_query: int = 1,
        max_results_per_query: int = 20,
        published_after: Optional[str] = None,
        region_code: Optional[str] = None,
        run_context: Optional[RunContext] = None,
        save_offline: bool = False
    ) -> DiscoveryResponse:
        """
        Run a discovery for one competitor.

        Args:
            competitor_id: Competitor id
            template_id: Keyword template id
            explore_mode: Search query variants as well as the base query
            pages_per_query: Result pages per query
            max_results_per_query: Results per page
            published_after: RFC 3339 lower bound on video publish time
            region_code: Region override
            run_context: Abort state shared by the run's upstream calls
            save_offline: Write the fetched channels to the offline store

        Returns:
            Ranked channels, or a blocked response when over budget

        Raises:
            ConfigurationMissingError: If the competitor is unknown
            UpstreamQuotaExhaustedError: If the upstream quota runs out
        """
        competitor = self.registry.get(competitor_id)
        ctx = run_context or RunContext()
        ctx.check()

        logger.info(f"Starting discovery for {competitor.display_name} (template: {template_id})")

        queries = self.build_queries(competitor, template_id, explore_mode)
        decision = self.quota_guard.check_and_downgrade(
            len(queries), pages_per_query, max_results_per_query
        )
        logger.debug(self.quota_guard.generate_report(decision))

        if not decision.can_proceed:
            logger.warning(f"Discovery blocked for {competitor.id}: {decision.reason}")
            return DiscoveryResponse(
                competitor=competitor.id,
                template_id=template_id,
                queries=queries,
                quota_decision=decision,
                blocked=True,
                message=decision.recommendation or decision.reason
            )

        params = self.quota_guard.apply_downgrade(queries, decision)
        params.pages_per_query = min(params.pages_per_query, self.budget.preset.max_pages_per_query)
        self.budget.reset()

        executed, video_ids, search_channel_ids = self._run_searches(
            competitor, params, published_after, region_code, ctx
        )
        video_ids = video_ids[:self.budget.preset.max_candidates_per_competitor]

        videos = self._fetch_videos(video_ids, ctx)
        video_filter = filter_and_sort_videos(videos.values()).stats

        channel_ids = self._unique(
            [v.channel_id for v in videos.values() if v.channel_id] + search_channel_ids
        )[:self.budget.preset.max_channels_to_analyze]
        channels = self._fetch_channels(channel_ids, ctx)

        candidates = self.build_candidates(channels, videos.values())
        ranked = self.scoring.rank(candidates, competitor.brand_names)
        results = self._to_results(ranked, channels, candidates, competitor)

        if save_offline and channels:
            self.save_offline_snapshot(competitor.id, channels, videos.values())

        logger.info(
            f"Discovery complete: {len(results)} channels ranked from "
            f"{len(candidates)} candidates"
        )
        logger.debug(self.budget.generate_report())

        return DiscoveryResponse(
            competitor=competitor.id,
            template_id=template_id,
            queries=queries,
            executed_queries=executed,
            quota_decision=decision,
            usage=self.budget.get_stats(),
            candidates_analyzed=len(candidates),
            video_filter=video_filter,
            results=results,
            message=f"{len(results)} channels passed all thresholds"
        )

    def discover_offline(self, competitor_id: str) -> DiscoveryResponse:
        """
        Rank channels from the offline snapshot without any quota use.

        Args:
            competitor_id: Competitor id

        Returns:
            Ranked channels (empty when no snapshot exists)
        """
        competitor = self.registry.get(competitor_id)
        data = self.offline_store.load(competitor.id)

        if data is None:
            return DiscoveryResponse(
                competitor=competitor.id,
                template_id="offline",
                offline=True,
                message="No offline data available for this competitor"
            )

        channels, _ = offline_to_records(data)
        candidates = offline_to_candidates(data)
        ranked = self.scoring.rank(candidates, competitor.brand_names)

        return DiscoveryResponse(
            competitor=competitor.id,
            template_id="offline",
            candidates_analyzed=len(candidates),
            results=self._to_results(ranked, channels, candidates, competitor),
            offline=True,
            message=f"{len(ranked)} channels ranked from offline data"
        )

    async def search_queries_async(
        self,
        competitor_id: str,
        queries: Sequence[str],
        max_results: int = 20,
        run_context: Optional[RunContext] = None
    ) -> Dict[str, SearchPage]:
        """
        Run several searches with bounded concurrency.

        The batch goes through the same controls as discover(): the quota
        guard may trim or block it, L1 hits are served from cache, and only
        as many misses as the search budget has left are dispatched. Usage
        accumulates on the current budget; call ``budget.reset()`` to start
        a new run. Failed queries are logged and left out; quota exhaustion
        is re-raised once the completed searches are recorded.

        Args:
            competitor_id: Competitor id the results are cached under
            queries: Search queries, highest priority first
            max_results: Results per query
            run_context: Abort state shared by the searches

        Returns:
            Search pages keyed by query, in query order

        Raises:
            ConfigurationMissingError: If the competitor is unknown
            UpstreamQuotaExhaustedError: If the upstream quota runs out
        """
        competitor = self.registry.get(competitor_id)
        ctx = run_context or RunContext()
        ctx.check()

        decision = self.quota_guard.check_and_downgrade(len(queries), 1, max_results)
        if not decision.can_proceed:
            logger.warning(f"Async search blocked for {competitor.id}: {decision.reason}")
            return {}
        params = self.quota_guard.apply_downgrade(list(queries), decision)

        pages: Dict[str, SearchPage] = {}
        misses: List[str] = []
        for query in params.queries:
            cached = self.cache.get_query_result(competitor.id, query)
            if cached is None:
                misses.append(query)
                continue
            self.budget.record_search_call(cached=True)
            pages[query] = SearchPage(
                query=query, video_ids=cached.video_ids, channel_ids=cached.channel_ids
            )

        allowed = self.budget.remaining_search_calls()
        if len(misses) > allowed:
            logger.warning(
                f"Search budget allows {allowed} of {len(misses)} uncached queries, "
                f"skipping {len(misses) - allowed}"
            )
            misses = misses[:allowed]

        if misses:
            outcomes = await self.limiter.run_batch(
                lambda q: self.youtube.search(
                    q, max_results=params.max_results_per_query, run_context=ctx
                ),
                misses,
                return_exceptions=True
            )

            quota_error: Optional[UpstreamQuotaExhaustedError] = None
            for query, outcome in zip(misses, outcomes):
                if isinstance(outcome, UpstreamQuotaExhaustedError):
                    quota_error = quota_error or outcome
                    continue
                if isinstance(outcome, UpstreamRequestError):
                    log_error(outcome, context="youtube_search", extra={"query": query})
                    continue
                if isinstance(outcome, BaseException):
                    raise outcome
                self.budget.record_search_call(cached=False)
                self.cache.set_query_result(
                    competitor.id, query,
                    self._unique(outcome.channel_ids), self._unique(outcome.video_ids)
                )
                pages[query] = outcome

            if quota_error is not None:
                raise quota_error

        return {q: pages[q] for q in params.queries if q in pages}

    def _run_searches(
        self,
        competitor: CompetitorConfig,
        params: DowngradedParams,
        published_after: Optional[str],
        region_code: Optional[str],
        ctx: RunContext
    ) -> Tuple[List[str], List[str], List[str]]:
        executed: List[str] = []
        video_ids: List[str] = []
        channel_ids: List[str] = []

        for query in params.queries:
            cached = self.cache.get_query_result(competitor.id, query)
            if cached is not None:
                logger.info(f"L1 cache hit for '{query}'")
                self.budget.record_search_call(cached=True)
                executed.append(query)
                video_ids.extend(cached.video_ids)
                channel_ids.extend(cached.channel_ids)
                continue

            query_videos: List[str] = []
            query_channels: List[str] = []
            page_token = None
            searched = False
            for _ in range(params.pages_per_query):
                if not self.budget.can_make_search_call():
                    logger.warning(f"Search budget exhausted, skipping '{query}'")
                    break
                try:
                    page = self.youtube.search(
                        query,
                        max_results=params.max_results_per_query,
                        page_token=page_token,
                        published_after=published_after,
                        region_code=region_code,
                        run_context=ctx
                    )
                except UpstreamRequestError as e:
                    # Pages already fetched are paid for and kept
                    log_error(e, context="youtube_search", extra={"query": query, "page_token": page_token})
                    break
                self.budget.record_search_call(cached=False)
                searched = True
                query_videos.extend(page.video_ids)
                query_channels.extend(page.channel_ids)
                page_token = page.next_page_token
                if not page_token:
                    break

            if not searched:
                continue

            self.cache.set_query_result(
                competitor.id, query, self._unique(query_channels), self._unique(query_videos)
            )
            executed.append(query)
            video_ids.extend(query_videos)
            channel_ids.extend(query_channels)

        return executed, self._unique(video_ids), self._unique(channel_ids)

    def _fetch_videos(self, video_ids: List[str], ctx: RunContext) -> Dict[str, YouTubeVideo]:
        cached, misses = self.cache.get_videos(video_ids)
        fetched: Dict[str, YouTubeVideo] = {}

        for batch in chunked(misses):
            try:
                videos = self.youtube.get_videos(batch, run_context=ctx)
            except UpstreamRequestError as e:
                log_error(e, context="youtube_videos", extra={"batch_size": len(batch)})
                continue
            self.budget.record_videos_call(1)
            self.cache.set_videos(videos)
            fetched.update((v.video_id, v) for v in videos)

        merged = {**cached, **fetched}
        return {vid: merged[vid] for vid in video_ids if vid in merged}

    def _fetch_channels(self, channel_ids: List[str], ctx: RunContext) -> Dict[str, YouTubeChannel]:
        cached, misses = self.cache.get_channels(channel_ids)
        fetched: Dict[str, YouTubeChannel] = {}

        for batch in chunked(misses):
            try:
                channels = self.youtube.get_channels(batch, run_context=ctx)
            except UpstreamRequestError as e:
                log_error(e, context="youtube_channels", extra={"batch_size": len(batch)})
                continue
            self.budget.record_channels_call(1)
            self.cache.set_channels(channels)
            fetched.update((c.channel_id, c) for c in channels)

        merged = {**cached, **fetched}
        return {cid: merged[cid] for cid in channel_ids if cid in merged}

    def build_candidates(
        self,
        channels: Dict[str, YouTubeChannel],
        videos: Iterable[YouTubeVideo]
    ) -> List[ChannelCandidate]:
        """
        Group videos under their channels.

        Args:
            channels: Channel records keyed by id
            videos: Video records

        Returns:
            One candidate per channel, in channel order
        """
        per_channel: Dict[str, List[CandidateVideo]] = {cid: [] for cid in channels}
        for video in videos:
            if video.channel_id in per_channel:
                per_channel[video.channel_id].append(CandidateVideo(
                    video_id=video.video_id,
                    title=video.title,
                    description=video.description,
                    published_at=video.published_at
                ))

        max_videos = self.budget.preset.max_videos_per_channel
        candidates = []
        for cid, channel in channels.items():
            recent = sorted(per_channel[cid], key=lambda v: v.published_at, reverse=True)
            candidates.append(ChannelCandidate(
                channel_id=cid,
                channel_title=channel.title,
                channel_description=channel.description,
                subscriber_count=channel.subscriber_count,
                videos=recent[:max_videos]
            ))
        return candidates

    def _to_results(
        self,
        ranked: List[ScoringResult],
        channels: Dict[str, YouTubeChannel],
        candidates: Sequence[ChannelCandidate] = (),
        competitor: Optional[CompetitorConfig] = None
    ) -> List[ChannelResult]:
        by_id = {c.channel_id: c for c in candidates}
        results = []
        for rank, scored in enumerate(ranked, start=1):
            channel = channels.get(scored.channel_id) or YouTubeChannel(channel_id=scored.channel_id)
            results.append(ChannelResult(
                rank=rank,
                channel_id=scored.channel_id,
                channel_title=channel.title,
                channel_url=channel.channel_url,
                thumbnail_url=channel.thumbnail_url,
                subscriber_count=channel.subscriber_count,
                video_count=channel.video_count,
                country=channel.country,
                total_score=scored.total_score,
                breakdown=scored.breakdown,
                evidence=self.scoring.format_evidence(scored.evidence_list),
                evidence_tags=self.scoring.evidence_tags(scored.evidence_list),
                contact_email=extract_contact_email(channel.description),
                has_links=scored.links.has_links,
                link_types=scored.links.link_types,
                relationship=(
                    self.relationships.analyze(by_id[scored.channel_id], competitor)
                    if competitor is not None and scored.channel_id in by_id else None
                )
            ))
        return results

    def save_offline_snapshot(
        self,
        competitor_id: str,
        channels: Dict[str, YouTubeChannel],
        videos: Iterable[YouTubeVideo]
    ):
        """Persist fetched channels and their videos for offline replay."""
        by_channel: Dict[str, List[OfflineVideo]] = {cid: [] for cid in channels}
        for video in videos:
            if video.channel_id in by_channel:
                by_channel[video.channel_id].append(OfflineVideo(
                    video_id=video.video_id,
                    title=video.title,
                    description=video.description,
                    published_at=video.published_at,
                    view_count=video.view_count,
                    like_count=video.like_count
                ))

        data = OfflineData(
            competitor=competitor_id,
            channels=[
                OfflineChannel(
                    channel_id=cid,
                    channel_title=channel.title,
                    subscriber_count=channel.subscriber_count,
                    video_count=channel.video_count,
                    country=channel.country,
                    recent_videos=by_channel[cid]
                )
                for cid, channel in channels.items()
            ]
        )
        self.offline_store.save(data)

    @staticmethod
    def _unique(items: Iterable[str]) -> List[str]:
        return list(dict.fromkeys(items))
