"""Weighted channel scoring, threshold gating and ranking."""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence

from ..config import settings
from ..models import (
    ChannelCandidate,
    Evidence,
    ScoringBreakdown,
    ScoringResult,
    ScoringThresholds,
    ThresholdFlags,
)
from .evidence_extractor import EvidenceExtractor
from .keyword_lexicon import KeywordLexicon, lexicon as default_lexicon

logger = logging.getLogger(__name__)

SCORED_TYPES = ("contract", "mechanism", "commercial", "competitor", "negative")

# Presentation order of evidence categories; negatives are never shown
DISPLAY_PRIORITY: Dict[str, int] = {
    "commercial": 0,
    "contract": 1,
    "mechanism": 2,
    "competitor": 3,
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves towards +inf."""
    return int(math.floor(value + 0.5))


class ScoringEngine:
    """
    Scores channel candidates from keyword evidence.

    Each evidence item contributes ``weight * min(count, cap) * multiplier``
    to its category, where the multiplier depends on where the keyword was
    found. The total is the signed sum of category subtotals. Ranking keeps
    only candidates that pass every hard threshold.
    """

    def __init__(
        self,
        extractor: Optional[EvidenceExtractor] = None,
        lexicon: Optional[KeywordLexicon] = None,
        thresholds: Optional[ScoringThresholds] = None,
        source_multipliers: Optional[Dict[str, float]] = None,
        count_cap: Optional[int] = None,
        competitor_weight: Optional[int] = None,
        top_n: Optional[int] = None
    ):
        """
        Initialize scoring engine.

        Args:
            extractor: Evidence extractor (default one if not provided)
            lexicon: Keyword weights (shared lexicon if not provided)
            thresholds: Hard thresholds (uses settings if not provided)
            source_multipliers: Multiplier per evidence source
            count_cap: Max occurrences of one keyword that count towards score
            competitor_weight: Weight of one competitor brand mention
            top_n: Number of channels kept by rank()
        """
        self.lexicon = lexicon or default_lexicon
        self.extractor = extractor or EvidenceExtractor(lexicon=self.lexicon)
        self.thresholds = thresholds or ScoringThresholds(
            min_subscribers=settings.min_subscribers,
            min_contract_words=settings.min_contract_words,
            min_commercial_words=settings.min_commercial_words,
            min_total_score=settings.min_total_score
        )
        self.source_multipliers = source_multipliers or {
            "title": settings.title_multiplier,
            "description": settings.description_multiplier,
            "channelDescription": settings.channel_description_multiplier,
        }
        self.count_cap = settings.score_count_cap if count_cap is None else count_cap
        self.competitor_weight = (
            settings.competitor_mention_weight if competitor_weight is None else competitor_weight
        )
        self.top_n = settings.top_n_channels if top_n is None else top_n

    def keyword_weight(self, evidence: Evidence) -> int:
        if evidence.type == "competitor":
            return self.competitor_weight
        return self.lexicon.weight(evidence.type, evidence.keyword)

    def contribution(self, evidence: Evidence) -> float:
        """Unrounded score contribution of one evidence item."""
        multiplier = self.source_multipliers.get(evidence.source, 1.0)
        return self.keyword_weight(evidence) * min(evidence.count, self.count_cap) * multiplier

    def score_evidence(self, evidence_list: Iterable[Evidence]) -> ScoringBreakdown:
        """
        Aggregate evidence into category subtotals and raw counts.

        Args:
            evidence_list: Merged evidence of one candidate

        Returns:
            Rounded per-category subtotals and uncapped hit counts
        """
        subtotals = {t: 0.0 for t in SCORED_TYPES}
        counts = {t: 0 for t in SCORED_TYPES}

        for evidence in evidence_list:
            subtotals[evidence.type] += self.contribution(evidence)
            counts[evidence.type] += evidence.count

        return ScoringBreakdown(
            contract_score=round_half_up(subtotals["contract"]),
            mechanism_score=round_half_up(subtotals["mechanism"]),
            commercial_score=round_half_up(subtotals["commercial"]),
            competitor_score=round_half_up(subtotals["competitor"]),
            negative_score=min(0, round_half_up(subtotals["negative"])),
            contract_count=counts["contract"],
            mechanism_count=counts["mechanism"],
            commercial_count=counts["commercial"],
            competitor_count=counts["competitor"],
            negative_count=counts["negative"]
        )

    @staticmethod
    def total_score(breakdown: ScoringBreakdown) -> int:
        return (
            breakdown.contract_score
            + breakdown.mechanism_score
            + breakdown.commercial_score
            + breakdown.competitor_score
            + breakdown.negative_score
        )

    def check_thresholds(
        self,
        subscriber_count: int,
        breakdown: ScoringBreakdown,
        total_score: int
    ) -> ThresholdFlags:
        return ThresholdFlags(
            subscribers=subscriber_count >= self.thresholds.min_subscribers,
            contract_words=breakdown.contract_count >= self.thresholds.min_contract_words,
            commercial_words=breakdown.commercial_count >= self.thresholds.min_commercial_words,
            total_score=total_score >= self.thresholds.min_total_score
        )

    def score(
        self,
        candidate: ChannelCandidate,
        brand_names: Sequence[str] = ()
    ) -> ScoringResult:
        """
        Score one channel candidate.

        Args:
            candidate: Channel text and stats
            brand_names: Competitor brand names and aliases

        Returns:
            Scoring result with breakdown and threshold flags
        """
        extracted = self.extractor.extract_candidate(candidate, brand_names)
        breakdown = self.score_evidence(extracted.evidence)
        total = self.total_score(breakdown)

        return ScoringResult(
            channel_id=candidate.channel_id,
            total_score=total,
            subscriber_count=candidate.subscriber_count,
            evidence_list=extracted.evidence,
            breakdown=breakdown,
            meets=self.check_thresholds(candidate.subscriber_count, breakdown, total),
            links=extracted.links,
            quality_indicators=extracted.quality_indicators,
            risk_flags=extracted.risk_flags
        )

    def select_top(self, results: Iterable[ScoringResult]) -> List[ScoringResult]:
        """
        Keep passing results, best first, truncated to top_n.

        Ties keep their input order.
        """
        passing = [r for r in results if r.passes_thresholds]
        ranked = sorted(passing, key=lambda r: r.total_score, reverse=True)
        return ranked[:self.top_n]

    def rank(
        self,
        candidates: Iterable[ChannelCandidate],
        brand_names: Sequence[str] = ()
    ) -> List[ScoringResult]:
        """
        Score, filter and rank candidates.

        Args:
            candidates: Channel candidates
            brand_names: Competitor brand names and aliases

        Returns:
            At most top_n results that pass every threshold
        """
        results = [self.score(c, brand_names) for c in candidates]
        ranked = self.select_top(results)

        logger.info(
            f"Ranked {len(results)} candidates: {sum(r.passes_thresholds for r in results)} "
            f"passed thresholds, returning {len(ranked)}"
        )
        return ranked

    @staticmethod
    def format_evidence(evidence_list: Iterable[Evidence]) -> List[Evidence]:
        """
        Order evidence for display.

        Negative evidence is dropped; the rest is grouped commercial,
        contract, mechanism, competitor, then by descending count.
        """
        shown = [e for e in evidence_list if e.type in DISPLAY_PRIORITY]
        return sorted(shown, key=lambda e: (DISPLAY_PRIORITY[e.type], -e.count))

    def evidence_tags(self, evidence_list: Iterable[Evidence], limit: int = 5) -> List[str]:
        """Short labels such as ``commercial: referral code x2``."""
        tags = []
        for evidence in self.format_evidence(evidence_list)[:limit]:
            suffix = f" x{evidence.count}" if evidence.count > 1 else ""
            tags.append(f"{evidence.type}: {evidence.keyword}{suffix}")
        return tags
