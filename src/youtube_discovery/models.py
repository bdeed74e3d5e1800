"""Data models for YouTube channel discovery."""

from typing import Any, Dict, List, Literal, Optional
from datetime import datetime, timezone
import isodate
from pydantic import BaseModel, ConfigDict, Field

EvidenceType = Literal["contract", "mechanism", "commercial", "competitor", "negative"]
EvidenceSource = Literal["title", "description", "channelDescription"]
KeywordCategory = Literal["contract", "mechanism", "commercial", "quality", "risk"]
RelationshipSignalType = Literal["affiliate_link", "promo_code", "sponsored_disclosure", "cta_mention"]
RelationshipLevel = Literal[
    "confirmed_partner", "likely_partner", "potential_partner", "casual_mention", "unrelated"
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_int(value: Any) -> int:
    """Statistics arrive from the API as strings; missing means zero."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _best_thumbnail(thumbnails: Dict[str, Any]) -> str:
    for size in ("high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return ""


# ---------------------------------------------------------------------------
# Lexicon and evidence
# ---------------------------------------------------------------------------

class KeywordWeight(BaseModel):
    """A weighted lexicon keyword."""

    model_config = ConfigDict(frozen=True)

    keyword: str
    weight: int
    category: KeywordCategory


class Evidence(BaseModel):
    """A keyword, brand or link match found in candidate text."""

    model_config = ConfigDict(frozen=True)

    type: EvidenceType
    keyword: str
    count: int = Field(..., ge=1, description="Raw match count, never capped")
    source: EvidenceSource


class LinkScan(BaseModel):
    """External link detection result."""

    has_links: bool = False
    link_types: List[str] = Field(default_factory=list)


class CandidateEvidence(BaseModel):
    """Merged evidence for one channel candidate."""

    evidence: List[Evidence] = Field(default_factory=list)
    links: LinkScan = Field(default_factory=LinkScan)
    quality_indicators: List[str] = Field(default_factory=list)
    risk_flags: List[str] = Field(default_factory=list)


class RelationshipSignal(BaseModel):
    """A sign of a commercial tie to the competitor, with surrounding text."""

    model_config = ConfigDict(frozen=True)

    type: RelationshipSignalType
    matched_term: str
    snippet: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    position: int = 0
    source: EvidenceSource = "description"


class RelationshipReport(BaseModel):
    """How a channel relates to the competitor, judged from its signals."""

    signals: List[RelationshipSignal] = Field(default_factory=list)
    has_strong_evidence: bool = False
    evidence_score: float = 0.0
    risk_terms: List[str] = Field(default_factory=list)
    risk_penalty: int = 0
    confidence_score: float = 0.0
    relationship: RelationshipLevel = "unrelated"
    reasons: List[str] = Field(default_factory=list)


class ScoringBreakdown(BaseModel):
    """Per-category score subtotals and raw hit counts."""

    contract_score: int = 0
    mechanism_score: int = 0
    commercial_score: int = 0
    competitor_score: int = 0
    negative_score: int = Field(0, le=0)
    contract_count: int = 0
    mechanism_count: int = 0
    commercial_count: int = 0
    competitor_count: int = 0
    negative_count: int = 0


class ThresholdFlags(BaseModel):
    """Which hard thresholds a candidate meets."""

    subscribers: bool = False
    contract_words: bool = False
    commercial_words: bool = False
    total_score: bool = False

    @property
    def all_met(self) -> bool:
        """True only when every threshold holds."""
        return self.subscribers and self.contract_words and self.commercial_words and self.total_score


class ScoringThresholds(BaseModel):
    """Hard gates a candidate must pass before ranking."""

    model_config = ConfigDict(frozen=True)

    min_subscribers: int = 10000
    min_contract_words: int = 2
    min_commercial_words: int = 1
    min_total_score: int = 12


class ScoringResult(BaseModel):
    """Score of one candidate channel for one ranking pass."""

    model_config = ConfigDict(frozen=True)

    channel_id: str
    total_score: int
    subscriber_count: int = 0
    evidence_list: List[Evidence] = Field(default_factory=list)
    breakdown: ScoringBreakdown = Field(default_factory=ScoringBreakdown)
    meets: ThresholdFlags = Field(default_factory=ThresholdFlags)
    links: LinkScan = Field(default_factory=LinkScan)
    quality_indicators: List[str] = Field(default_factory=list)
    risk_flags: List[str] = Field(default_factory=list)

    @property
    def passes_thresholds(self) -> bool:
        return self.meets.all_met


# ---------------------------------------------------------------------------
# Candidates and upstream records
# ---------------------------------------------------------------------------

class CandidateVideo(BaseModel):
    """A video text sample attached to a channel candidate."""

    video_id: str = ""
    title: str = ""
    description: str = ""
    published_at: str = ""


class ChannelCandidate(BaseModel):
    """Channel text and stats handed to the scoring engine."""

    channel_id: str
    channel_title: str = ""
    channel_description: str = ""
    subscriber_count: int = 0
    videos: List[CandidateVideo] = Field(default_factory=list)


class YouTubeVideo(BaseModel):
    """Video record validated from raw videos.list JSON."""

    video_id: str
    title: str = ""
    description: str = ""
    channel_id: str = ""
    channel_title: str = ""
    published_at: str = ""
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    duration: str = ""
    duration_seconds: int = 0
    thumbnail_url: str = ""

    @classmethod
    def from_api_item(cls, item: Dict[str, Any]) -> "YouTubeVideo":
        """
        Build a video from a videos.list item, defaulting missing fields.

        Args:
            item: Raw API item

        Returns:
            Validated video record
        """
        snippet = item.get("snippet") or {}
        stats = item.get("statistics") or {}
        duration = (item.get("contentDetails") or {}).get("duration", "")

        try:
            duration_seconds = int(isodate.parse_duration(duration).total_seconds()) if duration else 0
        except (isodate.ISO8601Error, ValueError):
            duration_seconds = 0

        return cls(
            video_id=item.get("id", ""),
            title=snippet.get("title", ""),
            description=snippet.get("description", ""),
            channel_id=snippet.get("channelId", ""),
            channel_title=snippet.get("channelTitle", ""),
            published_at=snippet.get("publishedAt", ""),
            view_count=_to_int(stats.get("viewCount")),
            like_count=_to_int(stats.get("likeCount")),
            comment_count=_to_int(stats.get("commentCount")),
            duration=duration,
            duration_seconds=duration_seconds,
            thumbnail_url=_best_thumbnail(snippet.get("thumbnails") or {})
        )

    @property
    def youtube_url(self) -> str:
        """Full YouTube URL."""
        return f"https://www.youtube.com/watch?v={self.video_id}"


class YouTubeChannel(BaseModel):
    """Channel record validated from raw channels.list JSON."""

    channel_id: str
    title: str = ""
    description: str = ""
    custom_url: Optional[str] = None
    country: Optional[str] = None
    subscriber_count: int = 0
    video_count: int = 0
    view_count: int = 0
    published_at: str = ""
    thumbnail_url: str = ""

    @classmethod
    def from_api_item(cls, item: Dict[str, Any]) -> "YouTubeChannel":
        snippet = item.get("snippet") or {}
        stats = item.get("statistics") or {}
        return cls(
            channel_id=item.get("id", ""),
            title=snippet.get("title", ""),
            description=snippet.get("description", ""),
            custom_url=snippet.get("customUrl"),
            country=snippet.get("country"),
            subscriber_count=_to_int(stats.get("subscriberCount")),
            video_count=_to_int(stats.get("videoCount")),
            view_count=_to_int(stats.get("viewCount")),
            published_at=snippet.get("publishedAt", ""),
            thumbnail_url=_best_thumbnail(snippet.get("thumbnails") or {})
        )

    @property
    def channel_url(self) -> str:
        """Public channel URL, preferring the custom handle."""
        if self.custom_url:
            return f"https://www.youtube.com/{self.custom_url}"
        return f"https://www.youtube.com/channel/{self.channel_id}"


class SearchPage(BaseModel):
    """Identifiers returned by one search.list call."""

    query: str
    video_ids: List[str] = Field(default_factory=list)
    channel_ids: List[str] = Field(default_factory=list)
    next_page_token: Optional[str] = None
    total_results: int = 0


# ---------------------------------------------------------------------------
# Cache records
# ---------------------------------------------------------------------------

class CacheEntry(BaseModel):
    """A stored cache value with its expiry window (epoch seconds)."""

    model_config = ConfigDict(populate_by_name=True)

    key: str
    data: Any
    cached_at: float = Field(..., alias="cachedAt")
    expires_at: float = Field(..., alias="expiresAt")
    ttl: int

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class QueryCacheData(BaseModel):
    """L1 payload: search query to discovered ids."""

    query: str
    normalized_query: str
    competitor: str
    normalized_competitor: str
    channel_ids: List[str] = Field(default_factory=list)
    video_ids: List[str] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=_utcnow)
    cache_key: str


class ChannelCacheData(BaseModel):
    """L2 payload: channel statistics."""

    channel_id: str
    title: str = ""
    description: str = ""
    subscriber_count: int = 0
    video_count: int = 0
    view_count: int = 0
    country: Optional[str] = None
    custom_url: Optional[str] = None
    published_at: str = ""
    thumbnail_url: str = ""

    @classmethod
    def from_channel(cls, channel: YouTubeChannel) -> "ChannelCacheData":
        return cls(**channel.model_dump())

    def to_channel(self) -> YouTubeChannel:
        return YouTubeChannel(**self.model_dump())


class VideoCacheData(BaseModel):
    """L3 payload: video statistics."""

    video_id: str
    title: str = ""
    description: str = ""
    channel_id: str = ""
    channel_title: str = ""
    published_at: str = ""
    view_count: int = 0
    like_count: int = 0
    comment_count: int = 0
    duration: str = ""
    thumbnail_url: str = ""

    @classmethod
    def from_video(cls, video: YouTubeVideo) -> "VideoCacheData":
        return cls(**video.model_dump(exclude={"duration_seconds"}))

    def to_video(self) -> YouTubeVideo:
        return YouTubeVideo.from_api_item({
            "id": self.video_id,
            "snippet": {
                "title": self.title,
                "description": self.description,
                "channelId": self.channel_id,
                "channelTitle": self.channel_title,
                "publishedAt": self.published_at,
                "thumbnails": {"high": {"url": self.thumbnail_url}} if self.thumbnail_url else {}
            },
            "statistics": {
                "viewCount": self.view_count,
                "likeCount": self.like_count,
                "commentCount": self.comment_count
            },
            "contentDetails": {"duration": self.duration}
        })


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------

class QuotaEstimate(BaseModel):
    """Pre-flight quota cost of a planned run."""

    queries_count: int
    pages_per_query: int
    max_results_per_query: int
    estimated_search_calls: int
    estimated_search_units: int
    estimated_videos_units: int
    estimated_channels_units: int
    estimated_total_units: int
    exceeds_budget: bool
    budget_limit: int


class DowngradeDecision(BaseModel):
    """Outcome of a budget check. Blocked runs are a decision, not an error."""

    should_downgrade: bool
    reason: str
    original_estimate: QuotaEstimate
    downgraded_estimate: Optional[QuotaEstimate] = None
    downgrade_actions: List[str] = Field(default_factory=list)
    can_proceed: bool
    recommendation: Optional[str] = None

    @property
    def effective_estimate(self) -> QuotaEstimate:
        return self.downgraded_estimate or self.original_estimate


class DowngradedParams(BaseModel):
    """Run parameters after applying a downgrade decision."""

    queries: List[str]
    pages_per_query: int
    max_results_per_query: int


class QuotaGuardConfig(BaseModel):
    """Guard parameters of a named quota preset."""

    model_config = ConfigDict(frozen=True)

    max_search_units_per_run: int
    enable_auto_downgrade: bool = True
    min_queries_per_competitor: int
    max_results_per_query: int
    allow_pagination: bool = False


class BudgetPreset(BaseModel):
    """Per-run call ceilings of a named budget preset."""

    model_config = ConfigDict(frozen=True)

    max_search_calls_per_run: int
    max_pages_per_query: int
    max_candidates_per_competitor: int
    max_channels_to_analyze: int
    max_videos_per_channel: int


class QuotaUsageStats(BaseModel):
    """Actual quota usage recorded during a run."""

    search_calls: int = 0
    videos_calls: int = 0
    channels_calls: int = 0
    cache_hits: int = 0
    total_units_used: int = 0
    budget_exceeded: bool = False


class RunCostEstimate(BaseModel):
    """Upper-bound cost of a full run under a budget preset."""

    search_calls: int
    videos_calls: int
    channels_calls: int
    total_units: int


# ---------------------------------------------------------------------------
# Competitors and queries
# ---------------------------------------------------------------------------

class CompetitorConfig(BaseModel):
    """Competitor brand and keyword configuration."""

    id: str
    brand_names: List[str]
    intent_terms: List[str] = Field(default_factory=list)
    partnership_patterns: List[str] = Field(default_factory=list)
    sponsor_terms: List[str] = Field(default_factory=list)
    risk_terms: List[str] = Field(default_factory=list)
    negative_keywords: List[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.brand_names[0] if self.brand_names else self.id


class QueryComponents(BaseModel):
    """The anchors a search query is assembled from."""

    competitor_anchor: str
    industry_anchor: str
    commercial_anchor: str
    negative_keywords: str = ""


class QueryBuildResult(BaseModel):
    """A built search query and its parts."""

    final_query: str
    components: QueryComponents


# ---------------------------------------------------------------------------
# Context pre-filter
# ---------------------------------------------------------------------------

class ContextEvidence(BaseModel):
    """Keyword and link signals found in one video's text."""

    commercial_keywords: List[str] = Field(default_factory=list)
    contract_keywords: List[str] = Field(default_factory=list)
    has_links: bool = False
    link_types: List[str] = Field(default_factory=list)
    quality_indicators: List[str] = Field(default_factory=list)
    risk_flags: List[str] = Field(default_factory=list)


class FilteredItem(BaseModel):
    """Pre-filter verdict for one video."""

    video_id: str = ""
    title: str
    description: str = ""
    relevance_score: int = Field(..., ge=0, le=100)
    passed: bool
    evidence: ContextEvidence
    reasons: List[str] = Field(default_factory=list)


class FilterStats(BaseModel):
    """Aggregate pre-filter statistics."""

    total: int = 0
    passed: int = 0
    rejected: int = 0
    average_score: float = 0.0
    median_score: float = 0.0


class FilterResult(BaseModel):
    """Pre-filter output, passed items sorted by relevance."""

    passed: List[FilteredItem] = Field(default_factory=list)
    rejected: List[FilteredItem] = Field(default_factory=list)
    stats: FilterStats = Field(default_factory=FilterStats)


# ---------------------------------------------------------------------------
# Offline replay data
# ---------------------------------------------------------------------------

class OfflineVideo(BaseModel):
    video_id: str
    title: str = ""
    description: str = ""
    published_at: str = ""
    view_count: int = 0
    like_count: int = 0


class OfflineChannel(BaseModel):
    channel_id: str
    channel_title: str = ""
    subscriber_count: int = 0
    video_count: int = 0
    country: Optional[str] = None
    recent_videos: List[OfflineVideo] = Field(default_factory=list)


class OfflineData(BaseModel):
    """Saved channel/video snapshot used when quota is unavailable."""

    competitor: str
    generated_at: datetime = Field(default_factory=_utcnow)
    channels: List[OfflineChannel] = Field(default_factory=list)
    total_channels: int = 0


# ---------------------------------------------------------------------------
# Discovery output
# ---------------------------------------------------------------------------

class ChannelResult(BaseModel):
    """A ranked channel ready for presentation."""

    rank: int
    channel_id: str
    channel_title: str
    channel_url: str
    thumbnail_url: str = ""
    subscriber_count: int
    video_count: int = 0
    country: Optional[str] = None
    total_score: int
    breakdown: ScoringBreakdown
    evidence: List[Evidence]
    evidence_tags: List[str] = Field(default_factory=list)
    contact_email: Optional[str] = None
    has_links: bool = False
    link_types: List[str] = Field(default_factory=list)
    relationship: Optional[RelationshipReport] = None


class DiscoveryResponse(BaseModel):
    """Response of one discovery run."""

    competitor: str
    template_id: str
    generated_at: datetime = Field(default_factory=_utcnow)
    queries: List[str] = Field(default_factory=list)
    executed_queries: List[str] = Field(default_factory=list)
    quota_decision: Optional[DowngradeDecision] = None
    usage: QuotaUsageStats = Field(default_factory=QuotaUsageStats)
    candidates_analyzed: int = 0
    video_filter: Optional[FilterStats] = None
    results: List[ChannelResult] = Field(default_factory=list)
    blocked: bool = False
    offline: bool = False
    message: str = ""
