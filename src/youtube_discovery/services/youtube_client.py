"""YouTube Data API wrapper returning validated search, video and channel records."""

import json
import logging
from typing import Any, Iterator, List, Optional, Sequence

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import settings
from ..core.run_context import RunContext
from ..exceptions import (
    ConfigurationMissingError,
    UpstreamQuotaExhaustedError,
    UpstreamRequestError,
)
from ..models import SearchPage, YouTubeChannel, YouTubeVideo

logger = logging.getLogger(__name__)

MAX_IDS_PER_REQUEST = 50
MAX_SEARCH_RESULTS = 50
QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded"}


def chunked(items: Sequence[str], size: int = MAX_IDS_PER_REQUEST) -> Iterator[List[str]]:
    """Yield consecutive slices of at most size items."""
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


def error_reason(error: HttpError) -> str:
    """Extract the first ``reason`` from an API error body, or ""."""
    try:
        payload = json.loads(error.content.decode("utf-8"))
    except (AttributeError, UnicodeDecodeError, ValueError):
        return ""
    if not isinstance(payload, dict):
        return ""
    errors = (payload.get("error") or {}).get("errors") or []
    return errors[0].get("reason", "") if errors else ""


class YouTubeClient:
    """
    Thin, quota-aware client for search.list, videos.list and channels.list.

    Every call first checks the run context. A quota error aborts the run
    context and raises UpstreamQuotaExhaustedError; any other API error is
    raised as UpstreamRequestError and leaves the run context untouched.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        youtube: Optional[Any] = None,
        run_context: Optional[RunContext] = None
    ):
        """
        Initialize YouTube client.

        Args:
            api_key: YouTube Data API key (uses settings if not provided)
            youtube: Prebuilt API resource, mainly for tests
            run_context: Default run context for calls that pass none

        Raises:
            ConfigurationMissingError: If no API key is available
        """
        self.run_context = run_context or RunContext()
        self.region_code = settings.youtube_region_code
        self.relevance_language = settings.youtube_relevance_language

        if youtube is not None:
            self.youtube = youtube
            return

        self.api_key = api_key or settings.youtube_api_key
        if not self.api_key:
            raise ConfigurationMissingError("YouTube API key is required", key="youtube_api_key")

        self.youtube = build('youtube', 'v3', developerKey=self.api_key)

    def _execute(self, request, query: str, run_context: RunContext) -> dict:
        try:
            return request.execute()
        except HttpError as e:
            reason = error_reason(e)
            status = getattr(e.resp, "status", None)

            if reason in QUOTA_REASONS:
                run_context.abort(query)
                raise UpstreamQuotaExhaustedError(
                    f"YouTube quota exhausted at query '{query}'",
                    query=query,
                    reset_at=run_context.reset_at
                ) from e

            logger.error(f"YouTube API error ({status}, {reason or 'unknown'}) for '{query}': {e}")
            raise UpstreamRequestError(
                f"YouTube API request failed for '{query}'",
                status=int(status) if status is not None else None,
                detail=reason or str(e)
            ) from e

    def search(
        self,
        query: str,
        max_results: int = 20,
        page_token: Optional[str] = None,
        published_after: Optional[str] = None,
        region_code: Optional[str] = None,
        run_context: Optional[RunContext] = None
    ) -> SearchPage:
        """
        Search videos for a query.

        Args:
            query: Search query
            max_results: Results per page (max 50)
            page_token: Token of the page to fetch
            published_after: RFC 3339 lower bound on publish time
            region_code: Region override
            run_context: Abort state for this run

        Returns:
            Video and channel ids in result order
        """
        ctx = run_context or self.run_context
        ctx.check()

        params = {
            'part': 'snippet',
            'q': query,
            'type': 'video',
            'maxResults': min(max_results, MAX_SEARCH_RESULTS),
            'order': 'relevance',
            'regionCode': region_code or self.region_code,
            'relevanceLanguage': self.relevance_language,
        }
        if page_token:
            params['pageToken'] = page_token
        if published_after:
            params['publishedAfter'] = published_after

        logger.info(f"Searching YouTube for: '{query}' (max results: {params['maxResults']})")
        response = self._execute(self.youtube.search().list(**params), query, ctx)

        video_ids: List[str] = []
        channel_ids: List[str] = []
        for item in response.get('items', []):
            video_id = (item.get('id') or {}).get('videoId')
            channel_id = (item.get('snippet') or {}).get('channelId')
            if video_id and video_id not in video_ids:
                video_ids.append(video_id)
            if channel_id and channel_id not in channel_ids:
                channel_ids.append(channel_id)

        if not video_ids:
            logger.warning(f"No videos found for query: '{query}'")

        return SearchPage(
            query=query,
            video_ids=video_ids,
            channel_ids=channel_ids,
            next_page_token=response.get('nextPageToken'),
            total_results=(response.get('pageInfo') or {}).get('totalResults', 0)
        )

    def get_videos(
        self,
        video_ids: Sequence[str],
        run_context: Optional[RunContext] = None
    ) -> List[YouTubeVideo]:
        """
        Fetch video details in batches of 50.

        Args:
            video_ids: Video ids
            run_context: Abort state for this run

        Returns:
            Videos the API returned (unknown ids are skipped)
        """
        ctx = run_context or self.run_context
        videos: List[YouTubeVideo] = []

        for batch in chunked(list(video_ids)):
            ctx.check()
            response = self._execute(
                self.youtube.videos().list(
                    part='snippet,statistics,contentDetails',
                    id=','.join(batch)
                ),
                f"videos:{len(batch)}",
                ctx
            )
            videos.extend(YouTubeVideo.from_api_item(item) for item in response.get('items', []))

        logger.info(f"Fetched details for {len(videos)}/{len(video_ids)} videos")
        return videos

    def get_channels(
        self,
        channel_ids: Sequence[str],
        run_context: Optional[RunContext] = None
    ) -> List[YouTubeChannel]:
        """
        Fetch channel details in batches of 50.

        Args:
            channel_ids: Channel ids
            run_context: Abort state for this run

        Returns:
            Channels the API returned (unknown ids are skipped)
        """
        ctx = run_context or self.run_context
        channels: List[YouTubeChannel] = []

        for batch in chunked(list(channel_ids)):
            ctx.check()
            response = self._execute(
                self.youtube.channels().list(
                    part='snippet,statistics',
                    id=','.join(batch)
                ),
                f"channels:{len(batch)}",
                ctx
            )
            channels.extend(YouTubeChannel.from_api_item(item) for item in response.get('items', []))

        logger.info(f"Fetched details for {len(channels)}/{len(channel_ids)} channels")
        return channels
