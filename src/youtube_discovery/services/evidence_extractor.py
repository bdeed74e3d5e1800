"""Keyword, link and brand evidence extraction from channel and video text."""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..config import settings
from ..models import CandidateEvidence, ChannelCandidate, Evidence, LinkScan
from ..utils.text_utils import count_matches
from .keyword_lexicon import QUALITY_INDICATORS, RISK_FLAGS, KeywordLexicon, lexicon as default_lexicon

logger = logging.getLogger(__name__)

# (pattern, link type); a type is reported once however many patterns hit
LINK_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r'https?://', re.IGNORECASE), "http_link"),
    (re.compile(r'(?<![\w-])bit\.ly/', re.IGNORECASE), "bitly"),
    (re.compile(r'(?<![\w-])linktr\.ee/', re.IGNORECASE), "linktree"),
    (re.compile(r'(?<![\w-])t\.me/', re.IGNORECASE), "telegram"),
    (re.compile(r'(?<![\w-])discord\.gg/', re.IGNORECASE), "discord"),
    (re.compile(r'(?<![\w-])discord\.com/', re.IGNORECASE), "discord"),
    (re.compile(r'(?<![\w-])twitter\.com/', re.IGNORECASE), "twitter"),
    (re.compile(r'(?<![\w-])x\.com/', re.IGNORECASE), "twitter"),
)

# Lower value wins when the same keyword is found in several sources
SOURCE_PRIORITY: Dict[str, int] = {
    "title": 0,
    "description": 1,
    "channelDescription": 2,
}

EVIDENCE_TYPE_ORDER: Dict[str, int] = {
    "contract": 0,
    "mechanism": 1,
    "commercial": 2,
    "competitor": 3,
    "negative": 4,
}


def detect_links(text: Optional[str]) -> LinkScan:
    """
    Detect external links in text.

    Args:
        text: Text to scan

    Returns:
        Link presence and the matched link types in recognizer order
    """
    if not text:
        return LinkScan()

    link_types: List[str] = []
    for pattern, link_type in LINK_PATTERNS:
        if link_type not in link_types and pattern.search(text):
            link_types.append(link_type)

    return LinkScan(has_links=bool(link_types), link_types=link_types)


def find_terms(text: Optional[str], terms: Iterable[str]) -> List[str]:
    """Return the terms that occur in text as whole words."""
    if not text:
        return []
    return [term for term in terms if count_matches(text, term) > 0]


def merge_evidence(items: Iterable[Evidence]) -> List[Evidence]:
    """
    Merge evidence sharing a (type, keyword) pair.

    Counts are summed and the strongest source is kept (title over
    description over channel description), so the result does not depend on
    the order items arrive in. The kept source's multiplier then applies to
    the whole summed count when scoring: "futures" once in a title and twice
    in the channel description scores as three title hits (3 x 3 x 1.5).

    Args:
        items: Evidence from any number of scans

    Returns:
        Merged evidence sorted by type then keyword
    """
    merged: Dict[Tuple[str, str], Evidence] = {}
    for item in items:
        key = (item.type, item.keyword)
        existing = merged.get(key)
        if existing is None:
            merged[key] = item
            continue

        source = min(existing.source, item.source, key=SOURCE_PRIORITY.__getitem__)
        merged[key] = Evidence(
            type=item.type,
            keyword=item.keyword,
            count=existing.count + item.count,
            source=source
        )

    return sorted(
        merged.values(),
        key=lambda e: (EVIDENCE_TYPE_ORDER[e.type], e.keyword)
    )


class EvidenceExtractor:
    """
    Scans text for weighted keyword hits, external links and brand mentions.

    Counts are recorded uncapped; any cap is applied at scoring time since
    raw counts also drive the hard thresholds.
    """

    def __init__(
        self,
        lexicon: Optional[KeywordLexicon] = None,
        max_videos: Optional[int] = None
    ):
        """
        Initialize evidence extractor.

        Args:
            lexicon: Keyword tables (shared lexicon if not provided)
            max_videos: Most recent videos scanned per channel
        """
        self.lexicon = lexicon or default_lexicon
        self.max_videos = settings.max_videos_per_channel if max_videos is None else max_videos

    def extract(self, text: Optional[str], source: str = "description") -> List[Evidence]:
        """
        Extract lexicon evidence from one text.

        Args:
            text: Text to scan
            source: Where the text came from

        Returns:
            One Evidence per matched keyword, in table order
        """
        if not text:
            return []

        evidence: List[Evidence] = []
        for evidence_type, table in self.lexicon.items():
            for keyword in table:
                count = count_matches(text, keyword)
                if count:
                    evidence.append(Evidence(
                        type=evidence_type,
                        keyword=keyword,
                        count=count,
                        source=source
                    ))
        return evidence

    def extract_competitor_mentions(
        self,
        text: Optional[str],
        brand_names: Sequence[str],
        source: str = "description"
    ) -> List[Evidence]:
        """
        Extract competitor brand mentions.

        Args:
            text: Text to scan
            brand_names: Brand names and aliases
            source: Where the text came from

        Returns:
            Competitor evidence keyed by lower-cased brand name
        """
        if not text:
            return []

        evidence: List[Evidence] = []
        seen = set()
        for brand in brand_names:
            keyword = (brand or "").strip().lower()
            if not keyword or keyword in seen:
                continue
            seen.add(keyword)
            count = count_matches(text, keyword)
            if count:
                evidence.append(Evidence(type="competitor", keyword=keyword, count=count, source=source))
        return evidence

    def detect_links(self, text: Optional[str]) -> LinkScan:
        return detect_links(text)

    def scan(
        self,
        text: Optional[str],
        source: str,
        brand_names: Sequence[str] = ()
    ) -> List[Evidence]:
        """Lexicon plus brand evidence for one text."""
        return self.extract(text, source) + self.extract_competitor_mentions(text, brand_names, source)

    def candidate_sources(self, candidate: ChannelCandidate) -> List[Tuple[str, str]]:
        """
        List (text, source) pairs to scan for a candidate.

        The channel description plus title and description of the most
        recent videos, newest first.
        """
        sources: List[Tuple[str, str]] = []
        if candidate.channel_description:
            sources.append((candidate.channel_description, "channelDescription"))

        recent = sorted(candidate.videos, key=lambda v: v.published_at, reverse=True)
        for video in recent[:self.max_videos]:
            if video.title:
                sources.append((video.title, "title"))
            if video.description:
                sources.append((video.description, "description"))
        return sources

    def extract_candidate(
        self,
        candidate: ChannelCandidate,
        brand_names: Sequence[str] = ()
    ) -> CandidateEvidence:
        """
        Extract and merge all evidence for one channel candidate.

        Args:
            candidate: Channel text and videos
            brand_names: Competitor brand names and aliases

        Returns:
            Merged evidence with link, quality and risk signals
        """
        sources = self.candidate_sources(candidate)

        raw: List[Evidence] = []
        for text, source in sources:
            raw.extend(self.scan(text, source, brand_names))

        combined = "\n".join(text for text, _ in sources)

        result = CandidateEvidence(
            evidence=merge_evidence(raw),
            links=detect_links(combined),
            quality_indicators=find_terms(combined, QUALITY_INDICATORS),
            risk_flags=find_terms(combined, RISK_FLAGS)
        )

        logger.debug(
            f"Channel {candidate.channel_id}: {len(result.evidence)} evidence items "
            f"from {len(sources)} texts"
        )
        return result
