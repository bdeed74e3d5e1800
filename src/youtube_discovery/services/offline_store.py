"""Offline replay data: channel/video snapshots scored without quota."""

import csv
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from ..config import settings
from ..models import (
    ChannelCandidate,
    CandidateVideo,
    OfflineData,
    YouTubeChannel,
    YouTubeVideo,
)

logger = logging.getLogger(__name__)

RESULTS_JSON = "results.json"
RESULTS_CSV = "results.csv"


class OfflineStore:
    """
    Reads and writes offline snapshots under a data directory.

    The JSON file is authoritative; a CSV summary is written alongside it
    for manual review.
    """

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir or settings.offline_data_dir)

    @property
    def json_path(self) -> Path:
        return self.data_dir / RESULTS_JSON

    @property
    def csv_path(self) -> Path:
        return self.data_dir / RESULTS_CSV

    def is_available(self) -> bool:
        return self.json_path.exists()

    def save(self, data: OfflineData) -> Path:
        """
        Save a snapshot as JSON plus a CSV summary.

        Args:
            data: Offline snapshot

        Returns:
            Path of the JSON file
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        data = data.model_copy(update={"total_channels": len(data.channels)})

        with open(self.json_path, "w", encoding="utf-8") as fh:
            fh.write(data.model_dump_json(indent=2))

        with open(self.csv_path, "w", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh)
            writer.writerow([
                "Channel ID", "Channel Title", "Subscriber Count",
                "Video Count", "Country", "Recent Videos Count"
            ])
            for channel in data.channels:
                writer.writerow([
                    channel.channel_id,
                    channel.channel_title,
                    channel.subscriber_count,
                    channel.video_count,
                    channel.country or "N/A",
                    len(channel.recent_videos),
                ])

        logger.info(f"Saved {len(data.channels)} offline channels to {self.data_dir}")
        return self.json_path

    def load(self, competitor: Optional[str] = None) -> Optional[OfflineData]:
        """
        Load the saved snapshot.

        Args:
            competitor: Only return the snapshot if it belongs to this competitor

        Returns:
            Snapshot, or None when missing, unreadable or for another competitor
        """
        if not self.json_path.exists():
            logger.info("No offline data found")
            return None

        try:
            with open(self.json_path, "r", encoding="utf-8") as fh:
                data = OfflineData.model_validate(json.load(fh))
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to load offline data: {e}")
            return None

        if competitor and data.competitor.lower() != competitor.lower():
            logger.info(f"Offline data is for {data.competitor}, not {competitor}")
            return None

        logger.info(f"Loaded {len(data.channels)} offline channels from {self.json_path}")
        return data


def offline_to_records(data: OfflineData) -> Tuple[Dict[str, YouTubeChannel], Dict[str, YouTubeVideo]]:
    """
    Convert a snapshot into channel and video records.

    Fields the snapshot does not carry are left at their defaults.
    """
    channels: Dict[str, YouTubeChannel] = {}
    videos: Dict[str, YouTubeVideo] = {}

    for ch in data.channels:
        channels[ch.channel_id] = YouTubeChannel(
            channel_id=ch.channel_id,
            title=ch.channel_title,
            subscriber_count=ch.subscriber_count,
            video_count=ch.video_count,
            country=ch.country
        )
        for v in ch.recent_videos:
            videos[v.video_id] = YouTubeVideo(
                video_id=v.video_id,
                title=v.title,
                description=v.description,
                channel_id=ch.channel_id,
                channel_title=ch.channel_title,
                published_at=v.published_at,
                view_count=v.view_count,
                like_count=v.like_count
            )

    return channels, videos


def offline_to_candidates(data: OfflineData) -> List[ChannelCandidate]:
    """Build scoring candidates straight from a snapshot."""
    return [
        ChannelCandidate(
            channel_id=ch.channel_id,
            channel_title=ch.channel_title,
            subscriber_count=ch.subscriber_count,
            videos=[
                CandidateVideo(
                    video_id=v.video_id,
                    title=v.title,
                    description=v.description,
                    published_at=v.published_at
                )
                for v in ch.recent_videos
            ]
        )
        for ch in data.channels
    ]
