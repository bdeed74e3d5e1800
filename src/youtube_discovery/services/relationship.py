"""Competitor relationship signals: affiliate links, promo codes, sponsorships and CTAs.

Signals come from a competitor's configured partnership patterns, intent,
sponsor and risk terms. They describe how a channel relates to the competitor
and are reported next to the ranking score, not folded into it.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import (
    ChannelCandidate,
    CompetitorConfig,
    RelationshipLevel,
    RelationshipReport,
    RelationshipSignal,
)
from ..utils.text_utils import count_matches
from .evidence_extractor import EvidenceExtractor

logger = logging.getLogger(__name__)

PROMO_KEYWORDS = (
    "promo code", "promocode", "discount code", "referral code",
    "invite code", "bonus code", "coupon code", "code:", "use code",
)
CTA_KEYWORDS = (
    "sign up", "signup", "register", "join", "get started",
    "click here", "check out", "visit", "use my link", "link below",
    "link in description", "link in bio",
)
PROMO_INTENT_MARKERS = ("code", "promo", "discount", "bonus", "referral", "invite")
CTA_INTENT_MARKERS = ("sign up", "signup", "register", "join", "ambassador")

SIGNAL_WEIGHTS: Dict[str, int] = {
    "affiliate_link": 35,
    "promo_code": 30,
    "sponsored_disclosure": 25,
    "cta_mention": 10,
}
STRONG_SIGNALS = frozenset({"affiliate_link", "promo_code", "sponsored_disclosure"})

# Characters between a phrase and a brand name for them to count as related
PROMO_BRAND_WINDOW = 200
CTA_BRAND_WINDOW = 150

SNIPPET_LENGTH = 160
SNIPPET_CONTEXT_BEFORE = 40
DEDUP_DISTANCE = 50

RISK_PENALTY_PER_TERM = 10
MAX_RISK_PENALTY = 30

RELATIONSHIP_LEVELS: Tuple[Tuple[int, RelationshipLevel], ...] = (
    (90, "confirmed_partner"),
    (70, "likely_partner"),
    (50, "potential_partner"),
    (30, "casual_mention"),
)

SIGNAL_LABELS: Dict[str, str] = {
    "affiliate_link": "partnership link",
    "promo_code": "promo code",
    "sponsored_disclosure": "sponsored disclosure",
    "cta_mention": "call to action",
}


def extract_snippet(text: str, term: str, max_length: int = SNIPPET_LENGTH) -> str:
    """
    Cut the part of text around a term.

    Args:
        text: Source text
        term: Matched term (case-insensitive)
        max_length: Snippet length before ellipses are added

    Returns:
        Text around the first match, or the start of text when absent
    """
    index = text.lower().find(term.lower())
    if index == -1:
        return text[:max_length]

    start = max(0, index - SNIPPET_CONTEXT_BEFORE)
    end = min(len(text), index + max(len(term), max_length - SNIPPET_CONTEXT_BEFORE))

    snippet = text[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def classify_relationship(score: float) -> RelationshipLevel:
    for threshold, level in RELATIONSHIP_LEVELS:
        if score >= threshold:
            return level
    return "unrelated"


def _brand_positions(lower_text: str, brand_names: Sequence[str]) -> List[int]:
    positions: List[int] = []
    for brand in brand_names:
        brand = (brand or "").strip().lower()
        if brand:
            positions.extend(m.start() for m in re.finditer(re.escape(brand), lower_text))
    return positions


def _near_brand(index: int, brand_positions: Sequence[int], window: int) -> bool:
    return any(abs(index - position) < window for position in brand_positions)


def deduplicate_signals(signals: Sequence[RelationshipSignal]) -> List[RelationshipSignal]:
    """
    Collapse signals found at nearly the same place in one text.

    Signals are walked in position order; one within DEDUP_DISTANCE of the
    previously kept signal replaces it only when more confident.
    """
    result: List[RelationshipSignal] = []
    for signal in sorted(signals, key=lambda s: s.position):
        if result and signal.position - result[-1].position < DEDUP_DISTANCE:
            if signal.confidence > result[-1].confidence:
                result[-1] = signal
            continue
        result.append(signal)
    return result


class RelationshipAnalyzer:
    """Finds relationship signals in channel text and grades the relationship."""

    def __init__(self, extractor: Optional[EvidenceExtractor] = None):
        """
        Initialize relationship analyzer.

        Args:
            extractor: Supplies the candidate texts to scan
        """
        self.extractor = extractor or EvidenceExtractor()

    def detect_partnership_links(
        self,
        text: str,
        patterns: Sequence[str],
        source: str = "description"
    ) -> List[RelationshipSignal]:
        """Whole tokens containing a partnership pattern such as ``weex.com/ref``."""
        signals = []
        for pattern in patterns:
            if not pattern:
                continue
            token_re = re.compile(r'\S*' + re.escape(pattern) + r'\S*', re.IGNORECASE)
            for match in token_re.finditer(text):
                signals.append(RelationshipSignal(
                    type="affiliate_link",
                    matched_term=pattern,
                    snippet=extract_snippet(text, match.group(0)),
                    confidence=0.9,
                    position=match.start(),
                    source=source
                ))
        return signals

    def detect_promo_codes(
        self,
        text: str,
        intent_terms: Sequence[str],
        brand_names: Sequence[str],
        source: str = "description"
    ) -> List[RelationshipSignal]:
        """Promo phrases near a brand name, plus promo-flavoured intent terms."""
        lower = text.lower()
        brands = _brand_positions(lower, brand_names)
        signals = []

        for keyword in PROMO_KEYWORDS:
            index = lower.find(keyword)
            if index != -1 and _near_brand(index, brands, PROMO_BRAND_WINDOW):
                signals.append(RelationshipSignal(
                    type="promo_code",
                    matched_term=keyword,
                    snippet=extract_snippet(text, keyword),
                    confidence=0.85,
                    position=index,
                    source=source
                ))

        for term in intent_terms:
            term_lower = term.lower()
            if not any(marker in term_lower for marker in PROMO_INTENT_MARKERS):
                continue
            index = lower.find(term_lower)
            if index != -1:
                signals.append(RelationshipSignal(
                    type="promo_code",
                    matched_term=term,
                    snippet=extract_snippet(text, term),
                    confidence=0.75,
                    position=index,
                    source=source
                ))
        return signals

    def detect_sponsored_disclosures(
        self,
        text: str,
        sponsor_terms: Sequence[str],
        source: str = "description"
    ) -> List[RelationshipSignal]:
        lower = text.lower()
        signals = []
        for term in sponsor_terms:
            term_lower = term.lower()
            index = lower.find(term_lower)
            if index == -1:
                continue
            explicit = "sponsored" in term_lower or "paid" in term_lower
            signals.append(RelationshipSignal(
                type="sponsored_disclosure",
                matched_term=term,
                snippet=extract_snippet(text, term),
                confidence=0.95 if explicit else 0.8,
                position=index,
                source=source
            ))
        return signals

    def detect_cta_mentions(
        self,
        text: str,
        intent_terms: Sequence[str],
        brand_names: Sequence[str],
        source: str = "description"
    ) -> List[RelationshipSignal]:
        """Calls to action near a brand name, plus sign-up intent terms."""
        lower = text.lower()
        brands = _brand_positions(lower, brand_names)
        signals = []

        for keyword in CTA_KEYWORDS:
            index = lower.find(keyword)
            if index != -1 and _near_brand(index, brands, CTA_BRAND_WINDOW):
                signals.append(RelationshipSignal(
                    type="cta_mention",
                    matched_term=keyword,
                    snippet=extract_snippet(text, keyword),
                    confidence=0.7,
                    position=index,
                    source=source
                ))

        for term in intent_terms:
            term_lower = term.lower()
            if not any(marker in term_lower for marker in CTA_INTENT_MARKERS):
                continue
            index = lower.find(term_lower)
            if index != -1:
                signals.append(RelationshipSignal(
                    type="cta_mention",
                    matched_term=term,
                    snippet=extract_snippet(text, term),
                    confidence=0.65,
                    position=index,
                    source=source
                ))
        return signals

    def extract(
        self,
        text: Optional[str],
        competitor: CompetitorConfig,
        source: str = "description"
    ) -> List[RelationshipSignal]:
        """
        Extract relationship signals from one text.

        Args:
            text: Text to scan
            competitor: Competitor whose patterns and terms are used
            source: Where the text came from

        Returns:
            Deduplicated signals in position order
        """
        if not text or not text.strip():
            return []

        signals = (
            self.detect_partnership_links(text, competitor.partnership_patterns, source)
            + self.detect_promo_codes(text, competitor.intent_terms, competitor.brand_names, source)
            + self.detect_sponsored_disclosures(text, competitor.sponsor_terms, source)
            + self.detect_cta_mentions(text, competitor.intent_terms, competitor.brand_names, source)
        )
        return deduplicate_signals(signals)

    def assess(
        self,
        signals: Sequence[RelationshipSignal],
        risk_terms: Sequence[str] = ()
    ) -> RelationshipReport:
        """
        Grade a set of signals.

        Args:
            signals: Signals from any number of texts
            risk_terms: Risk terms found in the channel's text

        Returns:
            Scores, relationship level and readable reasons
        """
        evidence_score = min(100.0, sum(SIGNAL_WEIGHTS[s.type] * s.confidence for s in signals))
        risk_penalty = min(MAX_RISK_PENALTY, RISK_PENALTY_PER_TERM * len(risk_terms))
        confidence = max(0.0, min(100.0, evidence_score - risk_penalty))

        per_type: Dict[str, int] = {}
        for signal in signals:
            per_type[signal.type] = per_type.get(signal.type, 0) + 1

        reasons = [
            f"{count} {SIGNAL_LABELS[signal_type]}{'s' if count > 1 else ''}"
            for signal_type, count in per_type.items()
        ]
        if not signals:
            reasons.append("no partnership evidence found")
        reasons.extend(f"risk term: {term}" for term in risk_terms)

        return RelationshipReport(
            signals=list(signals),
            has_strong_evidence=any(s.type in STRONG_SIGNALS for s in signals),
            evidence_score=round(evidence_score, 2),
            risk_terms=list(risk_terms),
            risk_penalty=risk_penalty,
            confidence_score=round(confidence, 2),
            relationship=classify_relationship(confidence),
            reasons=reasons
        )

    def analyze(self, candidate: ChannelCandidate, competitor: CompetitorConfig) -> RelationshipReport:
        """
        Grade a channel's relationship to a competitor.

        Scans the same texts as keyword evidence extraction: the channel
        description plus the titles and descriptions of the newest videos.

        Args:
            candidate: Channel text and videos
            competitor: Competitor configuration

        Returns:
            Relationship report
        """
        sources = self.extractor.candidate_sources(candidate)

        signals: List[RelationshipSignal] = []
        for text, source in sources:
            signals.extend(self.extract(text, competitor, source))

        combined = "\n".join(text for text, _ in sources)
        risk_terms = [term for term in competitor.risk_terms if count_matches(combined, term)]

        report = self.assess(signals, risk_terms)
        logger.debug(
            f"Channel {candidate.channel_id} vs {competitor.id}: {report.relationship} "
            f"({report.confidence_score:.1f}, {len(signals)} signals)"
        )
        return report
