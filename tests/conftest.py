"""Shared pytest fixtures for testing."""
import pytest
from unittest.mock import MagicMock

from youtube_discovery.models import (
    CandidateVideo,
    ChannelCandidate,
    ScoringThresholds,
    SearchPage,
    YouTubeChannel,
    YouTubeVideo,
)
from youtube_discovery.services.cache_service import CacheService
from youtube_discovery.services.scoring_engine import ScoringEngine


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    """Controllable clock for cache expiry tests."""
    return FakeClock()


@pytest.fixture
def cache_service(tmp_path, clock):
    """Cache service rooted in a temporary directory."""
    return CacheService(
        cache_dir=str(tmp_path / "cache"),
        l1_ttl=24 * 3600,
        l2_ttl=7 * 24 * 3600,
        l3_ttl=7 * 24 * 3600,
        clock=clock,
        enabled=True
    )


@pytest.fixture
def scoring_engine():
    """Scoring engine with explicit, settings-independent parameters."""
    return ScoringEngine(
        thresholds=ScoringThresholds(
            min_subscribers=10000,
            min_contract_words=2,
            min_commercial_words=1,
            min_total_score=12
        ),
        source_multipliers={"title": 1.5, "description": 1.0, "channelDescription": 0.8},
        count_cap=3,
        competitor_weight=2,
        top_n=5
    )


@pytest.fixture
def make_candidate():
    """Factory for single-video channel candidates."""
    def _make(channel_id, subscribers=50000, title="", description="", channel_description=""):
        return ChannelCandidate(
            channel_id=channel_id,
            channel_title=f"Channel {channel_id}",
            channel_description=channel_description,
            subscriber_count=subscribers,
            videos=[
                CandidateVideo(
                    video_id=f"{channel_id}-v1",
                    title=title,
                    description=description,
                    published_at="2024-01-15T10:00:00Z"
                )
            ]
        )
    return _make


@pytest.fixture
def referral_text():
    """Referral promotion text."""
    return "Use my referral code for WEEX futures trading, https://weex.com/ref/1"


@pytest.fixture
def sample_video_item():
    """Raw videos.list item."""
    return {
        'id': 'video1',
        'snippet': {
            'title': 'WEEX Futures Trading Tutorial',
            'description': 'Use my referral code https://weex.com/ref/1',
            'channelId': 'UC_channel1',
            'channelTitle': 'Crypto Futures Daily',
            'publishedAt': '2024-01-15T10:00:00Z',
            'thumbnails': {
                'default': {'url': 'https://i.ytimg.com/vi/video1/default.jpg'},
                'high': {'url': 'https://i.ytimg.com/vi/video1/hqdefault.jpg'}
            }
        },
        'statistics': {'viewCount': '15000', 'likeCount': '900', 'commentCount': '45'},
        'contentDetails': {'duration': 'PT10M30S'}
    }


@pytest.fixture
def sample_channel_item():
    """Raw channels.list item."""
    return {
        'id': 'UC_channel1',
        'snippet': {
            'title': 'Crypto Futures Daily',
            'description': 'Futures trading every day. Business: deals@futuresdaily.io',
            'customUrl': '@futuresdaily',
            'country': 'US',
            'publishedAt': '2019-05-01T00:00:00Z',
            'thumbnails': {'medium': {'url': 'https://yt3.ggpht.com/channel1.jpg'}}
        },
        'statistics': {'subscriberCount': '52000', 'videoCount': '340', 'viewCount': '4100000'}
    }


@pytest.fixture
def mock_youtube_client(sample_video_item, sample_channel_item):
    """Mock YouTube API resource."""
    mock_client = MagicMock()

    mock_client.search.return_value.list.return_value.execute.return_value = {
        'items': [
            {
                'id': {'kind': 'youtube#video', 'videoId': 'video1'},
                'snippet': {'channelId': 'UC_channel1', 'title': 'WEEX Futures Trading Tutorial'}
            },
            {
                'id': {'kind': 'youtube#video', 'videoId': 'video2'},
                'snippet': {'channelId': 'UC_channel1', 'title': 'Perps Fee Rebate'}
            },
            {
                'id': {'kind': 'youtube#video', 'videoId': 'video3'},
                'snippet': {'channelId': 'UC_channel2', 'title': 'Bitcoin News'}
            },
        ],
        'nextPageToken': 'PAGE2',
        'pageInfo': {'totalResults': 120}
    }
    mock_client.videos.return_value.list.return_value.execute.return_value = {
        'items': [sample_video_item]
    }
    mock_client.channels.return_value.list.return_value.execute.return_value = {
        'items': [sample_channel_item]
    }

    return mock_client


class FakeYouTubeSource:
    """In-memory stand-in for YouTubeClient used by engine tests."""

    def __init__(self, videos, channels, search_results=None, search_errors=None):
        self.videos = {v.video_id: v for v in videos}
        self.channels = {c.channel_id: c for c in channels}
        self.search_results = search_results or {}
        self.search_errors = search_errors or {}
        self.search_calls = []
        self.video_calls = []
        self.channel_calls = []

    def search(self, query, max_results=20, page_token=None, published_after=None,
               region_code=None, run_context=None):
        if run_context is not None:
            run_context.check()
        self.search_calls.append(query)
        if query in self.search_errors:
            error = self.search_errors[query]
            if callable(error):
                error = error(run_context)
            raise error
        video_ids = self.search_results.get(query, list(self.videos))
        return SearchPage(
            query=query,
            video_ids=video_ids,
            channel_ids=[self.videos[v].channel_id for v in video_ids if v in self.videos]
        )

    def get_videos(self, video_ids, run_context=None):
        self.video_calls.append(list(video_ids))
        return [self.videos[v] for v in video_ids if v in self.videos]

    def get_channels(self, channel_ids, run_context=None):
        self.channel_calls.append(list(channel_ids))
        return [self.channels[c] for c in channel_ids if c in self.channels]


@pytest.fixture
def discovery_videos():
    """Videos for three channels: one strong target, one small, one music."""
    return [
        YouTubeVideo(
            video_id="v1",
            title="WEEX futures trading referral code",
            description="Sign up with my referral code https://weex.com/ref/1 for a fee discount",
            channel_id="UC1",
            channel_title="Futures Desk",
            published_at="2024-03-01T12:00:00Z"
        ),
        YouTubeVideo(
            video_id="v2",
            title="Perpetual futures funding rate explained",
            description="Leverage, liquidation and open interest for beginners",
            channel_id="UC1",
            channel_title="Futures Desk",
            published_at="2024-02-01T12:00:00Z"
        ),
        YouTubeVideo(
            video_id="v3",
            title="WEEX futures referral code",
            description="Futures trading partnership",
            channel_id="UC2",
            channel_title="Tiny Trader",
            published_at="2024-03-02T12:00:00Z"
        ),
        YouTubeVideo(
            video_id="v4",
            title="Weex song lyrics",
            description="Official music video",
            channel_id="UC3",
            channel_title="Weex Music",
            published_at="2024-03-03T12:00:00Z"
        ),
    ]


@pytest.fixture
def discovery_channels():
    """Channel records matching discovery_videos."""
    return [
        YouTubeChannel(
            channel_id="UC1",
            title="Futures Desk",
            description="Daily futures trading. Partnerships: deals@futuresdesk.io",
            custom_url="@futuresdesk",
            subscriber_count=52000,
            video_count=310
        ),
        YouTubeChannel(
            channel_id="UC2",
            title="Tiny Trader",
            description="Small channel",
            subscriber_count=2000,
            video_count=12
        ),
        YouTubeChannel(
            channel_id="UC3",
            title="Weex Music",
            description="Music and lyrics",
            subscriber_count=900000,
            video_count=80
        ),
    ]


@pytest.fixture
def fake_source(discovery_videos, discovery_channels):
    """Fake upstream source over the discovery fixtures."""
    return FakeYouTubeSource(discovery_videos, discovery_channels)


@pytest.fixture
def source_factory():
    """FakeYouTubeSource class for tests that need custom search behaviour."""
    return FakeYouTubeSource
