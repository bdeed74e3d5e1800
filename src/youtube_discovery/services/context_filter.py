"""Video-level relevance pre-filter.

Scores a single video's title and description on commercial intent, contract
trading vocabulary, external links, quality indicators and get-rich-quick
phrasing. A video passes when at least two of the three core signals
(commercial, contract, links) are present.
"""

import logging
import statistics
from typing import Iterable, List, Optional, Tuple

from ..models import ContextEvidence, FilteredItem, FilterResult, FilterStats, YouTubeVideo
from .evidence_extractor import detect_links, find_terms
from .keyword_lexicon import (
    COMMERCIAL_KEYWORDS,
    CONTRACT_KEYWORDS,
    QUALITY_INDICATORS,
    RISK_FLAGS,
)

logger = logging.getLogger(__name__)

CONTRACT_POINTS = 8
COMMERCIAL_POINTS = 10
LINK_POINTS = 15
QUALITY_POINTS = 8
RISK_PENALTY = 20
MIN_SIGNALS = 2


def relevance_score(evidence: ContextEvidence) -> int:
    """Relevance on a 0-100 scale."""
    score = (
        len(evidence.contract_keywords) * CONTRACT_POINTS
        + len(evidence.commercial_keywords) * COMMERCIAL_POINTS
        + (LINK_POINTS if evidence.has_links else 0)
        + len(evidence.quality_indicators) * QUALITY_POINTS
        - len(evidence.risk_flags) * RISK_PENALTY
    )
    return max(0, min(100, score))


def analyze_content(title: str, description: Optional[str] = "", video_id: str = "") -> FilteredItem:
    """
    Analyze one video's text.

    Args:
        title: Video title
        description: Video description
        video_id: Optional id carried through to the result

    Returns:
        Relevance verdict with the signals found
    """
    text = f"{title or ''}\n{description or ''}"
    links = detect_links(text)

    evidence = ContextEvidence(
        commercial_keywords=find_terms(text, COMMERCIAL_KEYWORDS),
        contract_keywords=find_terms(text, CONTRACT_KEYWORDS),
        has_links=links.has_links,
        link_types=links.link_types,
        quality_indicators=find_terms(text, QUALITY_INDICATORS),
        risk_flags=find_terms(text, RISK_FLAGS)
    )

    signals = [
        ("commercial intent", bool(evidence.commercial_keywords)),
        ("contract trading", bool(evidence.contract_keywords)),
        ("external links", evidence.has_links),
    ]
    present = [name for name, hit in signals if hit]
    passed = len(present) >= MIN_SIGNALS

    if passed:
        reasons = [f"Has {name}" for name in present]
    else:
        missing = [name for name, hit in signals if not hit]
        reasons = [f"Missing {name}" for name in missing]
    if evidence.risk_flags:
        reasons.append(f"Risk flags: {', '.join(evidence.risk_flags)}")

    return FilteredItem(
        video_id=video_id,
        title=title or "",
        description=description or "",
        relevance_score=relevance_score(evidence),
        passed=passed,
        evidence=evidence,
        reasons=reasons
    )


def filter_and_sort_videos(videos: Iterable[YouTubeVideo]) -> FilterResult:
    """
    Pre-filter videos and sort the passing ones by relevance.

    Args:
        videos: Videos to analyze

    Returns:
        Passed (best first) and rejected items with summary statistics
    """
    items = [analyze_content(v.title, v.description, v.video_id) for v in videos]
    passed = sorted((i for i in items if i.passed), key=lambda i: i.relevance_score, reverse=True)
    rejected = [i for i in items if not i.passed]

    scores = [i.relevance_score for i in items]
    stats = FilterStats(
        total=len(items),
        passed=len(passed),
        rejected=len(rejected),
        average_score=round(statistics.mean(scores), 1) if scores else 0.0,
        median_score=float(statistics.median(scores)) if scores else 0.0
    )

    logger.info(f"Context filter: {stats.passed}/{stats.total} videos passed")
    return FilterResult(passed=passed, rejected=rejected, stats=stats)


def evidence_summary(item: FilteredItem, limit: int = 3) -> List[str]:
    """
    Short human-readable labels for a filtered item.

    Args:
        item: Pre-filter result
        limit: Max keywords listed per category

    Returns:
        Labels such as ``Commercial: referral, rebate``
    """
    evidence = item.evidence
    groups: List[Tuple[str, List[str]]] = [
        ("Commercial", evidence.commercial_keywords),
        ("Contract", evidence.contract_keywords),
        ("Links", evidence.link_types),
        ("Quality", evidence.quality_indicators),
        ("Risk", evidence.risk_flags),
    ]
    return [f"{label}: {', '.join(values[:limit])}" for label, values in groups if values]
