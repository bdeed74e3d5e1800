"""Weighted keyword tables used for evidence extraction and scoring."""

from types import MappingProxyType
from typing import Iterator, Mapping, Tuple

from ..models import KeywordWeight

# Contract (derivatives) trading vocabulary
CONTRACT_KEYWORDS: Mapping[str, int] = MappingProxyType({
    "futures": 3,
    "perps": 3,
    "perpetual": 3,
    "derivatives": 2,
    "perpetual futures": 4,
    "futures trading": 3,
    "leverage": 2,
    "margin": 1,
    "short position": 2,
    "long position": 2,
})

# Exchange mechanics that only come up on trading-focused channels
MECHANISM_KEYWORDS: Mapping[str, int] = MappingProxyType({
    "funding rate": 3,
    "open interest": 3,
    "liquidation": 2,
    "mark price": 2,
    "order book": 2,
    "cross margin": 2,
    "isolated margin": 2,
    "take profit": 1,
    "stop loss": 1,
    "limit order": 1,
})

# Commercial / partnership intent
COMMERCIAL_KEYWORDS: Mapping[str, int] = MappingProxyType({
    "partnership": 4,
    "partner program": 4,
    "referral": 3,
    "referral code": 4,
    "promo code": 3,
    "rebate": 3,
    "fee discount": 3,
    "sign up bonus": 2,
    "cashback": 2,
    "commission": 2,
    "sponsored": 3,
    "collaborate": 2,
})

# Same-name noise (banks, music); weights are negative
NEGATIVE_KEYWORDS: Mapping[str, int] = MappingProxyType({
    "loan": -3,
    "mortgage": -3,
    "credit": -2,
    "lyrics": -4,
    "song": -4,
    "music": -3,
    "banking": -2,
    "bank account": -3,
})

# Signals of topical authority, used by the context pre-filter
QUALITY_INDICATORS: Tuple[str, ...] = (
    "review",
    "fees",
    "best exchange",
    "comparison",
    "vs",
    "tutorial",
    "guide",
    "how to",
    "analysis",
    "trading strategy",
)

# Get-rich-quick phrasing
RISK_FLAGS: Tuple[str, ...] = (
    "guaranteed",
    "100x",
    "1000x",
    "10000x",
    "get rich",
    "easy money",
    "no risk",
    "sure profit",
    "guaranteed profit",
    "never lose",
    "can't lose",
    "risk free",
    "instant millionaire",
)


class KeywordLexicon:
    """
    Read-only view over the weighted keyword tables.

    Evidence type names map onto tables as follows: ``contract``,
    ``mechanism``, ``commercial`` and ``negative`` (the ``risk`` category).
    """

    TABLES: Mapping[str, Mapping[str, int]] = MappingProxyType({
        "contract": CONTRACT_KEYWORDS,
        "mechanism": MECHANISM_KEYWORDS,
        "commercial": COMMERCIAL_KEYWORDS,
        "negative": NEGATIVE_KEYWORDS,
    })

    _CATEGORY_BY_TYPE = {
        "contract": "contract",
        "mechanism": "mechanism",
        "commercial": "commercial",
        "negative": "risk",
    }

    def table(self, evidence_type: str) -> Mapping[str, int]:
        """Return the keyword table for an evidence type (empty if unknown)."""
        return self.TABLES.get(evidence_type, MappingProxyType({}))

    def items(self) -> Iterator[Tuple[str, Mapping[str, int]]]:
        return iter(self.TABLES.items())

    def weight(self, evidence_type: str, keyword: str) -> int:
        """
        Look up a keyword weight.

        Args:
            evidence_type: Evidence type name
            keyword: Lexicon keyword

        Returns:
            Integer weight, or 0 when the keyword is not in that table
        """
        return self.table(evidence_type).get(keyword, 0)

    def entries(self) -> Iterator[KeywordWeight]:
        """Yield every weighted keyword as a KeywordWeight record."""
        for evidence_type, table in self.TABLES.items():
            category = self._CATEGORY_BY_TYPE[evidence_type]
            for keyword, weight in table.items():
                yield KeywordWeight(keyword=keyword, weight=weight, category=category)
        for keyword in QUALITY_INDICATORS:
            yield KeywordWeight(keyword=keyword, weight=0, category="quality")


# Shared lexicon instance
lexicon = KeywordLexicon()
