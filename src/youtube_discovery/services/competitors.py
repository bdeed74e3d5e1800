"""Competitor configuration registry."""

import logging
from typing import Dict, Iterable, List, Optional

from ..exceptions import ConfigurationMissingError
from ..models import CompetitorConfig
from .query_builder import COMPETITOR_NEGATIVE_KEYWORDS

logger = logging.getLogger(__name__)

_COMMON_INTENT_TERMS = ["referral code", "promo code", "sign up bonus", "fee discount", "rebate"]
_COMMON_SPONSOR_TERMS = ["sponsored", "partnered with", "in partnership with", "paid promotion"]
_COMMON_RISK_TERMS = ["scam", "rug pull", "withdrawal problem", "exit scam"]

DEFAULT_COMPETITORS: List[CompetitorConfig] = [
    CompetitorConfig(
        id="weex",
        brand_names=["WEEX", "WeExchange"],
        intent_terms=_COMMON_INTENT_TERMS,
        partnership_patterns=["weex.com/register", "weex.com/ref", "weex.com/events"],
        sponsor_terms=_COMMON_SPONSOR_TERMS,
        risk_terms=_COMMON_RISK_TERMS
    ),
    CompetitorConfig(
        id="bitunix",
        brand_names=["Bitunix"],
        intent_terms=_COMMON_INTENT_TERMS,
        partnership_patterns=["bitunix.com/register", "bitunix.com/ref"],
        sponsor_terms=_COMMON_SPONSOR_TERMS,
        risk_terms=_COMMON_RISK_TERMS
    ),
    CompetitorConfig(
        id="blofin",
        brand_names=["BloFin"],
        intent_terms=_COMMON_INTENT_TERMS,
        partnership_patterns=["blofin.com/register", "blofin.com/invite"],
        sponsor_terms=_COMMON_SPONSOR_TERMS,
        risk_terms=_COMMON_RISK_TERMS
    ),
    CompetitorConfig(
        id="lbank",
        brand_names=["LBank", "LBank Exchange"],
        intent_terms=_COMMON_INTENT_TERMS,
        partnership_patterns=["lbank.com/login/register", "lbank.com/ref"],
        sponsor_terms=_COMMON_SPONSOR_TERMS,
        risk_terms=_COMMON_RISK_TERMS,
        negative_keywords=list(COMPETITOR_NEGATIVE_KEYWORDS["lbank"])
    ),
]


class CompetitorRegistry:
    """In-memory lookup of competitor configurations by id."""

    def __init__(self, competitors: Optional[Iterable[CompetitorConfig]] = None):
        self._competitors: Dict[str, CompetitorConfig] = {}
        for competitor in (DEFAULT_COMPETITORS if competitors is None else competitors):
            self.register(competitor)

    def register(self, competitor: CompetitorConfig):
        key = competitor.id.strip().lower()
        if key in self._competitors:
            logger.warning(f"Replacing competitor config '{key}'")
        self._competitors[key] = competitor

    def get(self, competitor_id: str) -> CompetitorConfig:
        """
        Get a competitor by id.

        Args:
            competitor_id: Competitor id (case-insensitive)

        Returns:
            Competitor configuration

        Raises:
            ConfigurationMissingError: If the id is unknown
        """
        competitor = self.get_safe(competitor_id)
        if competitor is None:
            available = ", ".join(self._competitors) or "none"
            raise ConfigurationMissingError(
                f"Competitor with id '{competitor_id}' not found. Available IDs: {available}",
                key=competitor_id
            )
        return competitor

    def get_safe(self, competitor_id: str) -> Optional[CompetitorConfig]:
        return self._competitors.get((competitor_id or "").strip().lower())

    def has(self, competitor_id: str) -> bool:
        return self.get_safe(competitor_id) is not None

    def list(self) -> List[CompetitorConfig]:
        return list(self._competitors.values())

    def count(self) -> int:
        return len(self._competitors)
