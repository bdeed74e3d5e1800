"""Search query construction from competitor names and keyword templates."""

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import settings
from ..models import QueryBuildResult, QueryComponents

logger = logging.getLogger(__name__)

# Named search templates; {competitor} is filled with the display name
KEYWORD_TEMPLATES: Dict[str, str] = {
    "contract_rebate": "perps fee rebate",
    "contract_partnership": "futures partnership program",
    "contract_code": "crypto futures referral code",
    "competitor_partnership": "{competitor} futures partnership",
    "signals_vip": "futures signals VIP join",
    "tutorial_referral": "tutorial perps referral link",
}

# Commercial phrase tables, checked in this order against the template id
COMMERCIAL_TERMS: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("partnership",), ("partnership", "partner program", "collaborate", "sponsored")),
    (("referral", "code"), ("referral", "referral code", "ref code", "invite code", "sign up bonus")),
    (("rebate",), ("rebate", "fee discount", "cashback", "commission", "reward")),
    (("review", "tutorial"), ("review", "tutorial", "how to use", "guide")),
)
DEFAULT_COMMERCIAL_TERMS: Tuple[str, ...] = ("promo", "promo code", "discount", "bonus", "offer")

COMMERCIAL_TERMS_PER_QUERY = 2

# Competitors whose brand collides with unrelated content
COMPETITOR_NEGATIVE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "lbank": ("loan", "mortgage", "credit", "lyrics", "song", "music", "banking", "bank account"),
}

_PARTNERSHIP_RE = re.compile(r'partnership', re.IGNORECASE)
_REFERRAL_RE = re.compile(r'referral', re.IGNORECASE)


def render_template(template_id: str, competitor: str) -> Optional[str]:
    """
    Render a named keyword template.

    Args:
        template_id: Template id from KEYWORD_TEMPLATES
        competitor: Competitor display name

    Returns:
        Rendered phrase, or None for unknown templates
    """
    template = KEYWORD_TEMPLATES.get(template_id)
    if template is None:
        return None
    return template.format(competitor=competitor)


class QueryBuilder:
    """
    Builds bounded YouTube search queries.

    A query is three anchors joined in priority order: competitor names,
    an industry term, then commercial terms. Keeping the OR-list and the
    number of variants short keeps each run to a few search calls.
    """

    def __init__(
        self,
        max_aliases: Optional[int] = None,
        max_explore_queries: Optional[int] = None,
        negative_keywords: Optional[Dict[str, Sequence[str]]] = None
    ):
        """
        Initialize the query builder.

        Args:
            max_aliases: Max brand names in the competitor anchor
            max_explore_queries: Max query variants in explore mode
            negative_keywords: Per-competitor exclusion terms
        """
        self.max_aliases = settings.max_competitor_aliases if max_aliases is None else max_aliases
        self.max_explore_queries = (
            settings.max_explore_queries if max_explore_queries is None else max_explore_queries
        )
        self.negative_keywords = dict(
            COMPETITOR_NEGATIVE_KEYWORDS if negative_keywords is None else negative_keywords
        )

    def competitor_anchor(self, competitor: str, aliases: Sequence[str] = ()) -> str:
        """
        OR-join up to max_aliases distinct lower-cased brand names.

        Args:
            competitor: Primary competitor name
            aliases: Alternative brand names

        Returns:
            ``weex`` or ``(weex OR weexchange)``
        """
        names: List[str] = []
        for name in [competitor, *aliases]:
            name = (name or "").strip().lower()
            if name and name not in names:
                names.append(name)
        names = names[:self.max_aliases]

        if len(names) > 1:
            return f"({' OR '.join(names)})"
        return names[0] if names else ""

    @staticmethod
    def industry_anchor(template_id: str) -> str:
        template_id = (template_id or "").lower()
        return "crypto perps" if "perp" in template_id else "crypto futures"

    @staticmethod
    def commercial_terms(template_id: str) -> Tuple[str, ...]:
        """Phrase table selected by the template id; promotion terms by default."""
        template_id = (template_id or "").lower()
        for markers, terms in COMMERCIAL_TERMS:
            if any(marker in template_id for marker in markers):
                return terms
        return DEFAULT_COMMERCIAL_TERMS

    def commercial_anchor(self, template_id: str) -> str:
        return " OR ".join(self.commercial_terms(template_id)[:COMMERCIAL_TERMS_PER_QUERY])

    def negative_block(self, competitor: str) -> str:
        terms = self.negative_keywords.get((competitor or "").strip().lower(), ())
        return " ".join(f"-{term}" for term in terms)

    def build_query(
        self,
        competitor: str,
        aliases: Sequence[str] = (),
        template_id: str = ""
    ) -> QueryBuildResult:
        """
        Build the search query for a competitor and template.

        Args:
            competitor: Competitor name or id
            aliases: Alternative brand names
            template_id: Keyword template id

        Returns:
            Final query string and its components
        """
        components = QueryComponents(
            competitor_anchor=self.competitor_anchor(competitor, aliases),
            industry_anchor=self.industry_anchor(template_id),
            commercial_anchor=self.commercial_anchor(template_id),
            negative_keywords=self.negative_block(competitor)
        )

        parts = [
            components.competitor_anchor,
            components.industry_anchor,
            components.commercial_anchor,
            components.negative_keywords,
        ]
        final_query = " ".join(part for part in parts if part)

        logger.debug(f"Built query for {competitor}/{template_id}: '{final_query}'")
        return QueryBuildResult(final_query=final_query, components=components)

    def build_explore_queries(
        self,
        competitor: str,
        aliases: Sequence[str] = (),
        template_id: str = ""
    ) -> List[str]:
        """
        Build the base query plus a few cheap variants.

        Args:
            competitor: Competitor name or id
            aliases: Alternative brand names
            template_id: Keyword template id

        Returns:
            Up to max_explore_queries unique queries, base query first
        """
        result = self.build_query(competitor, aliases, template_id)
        base = result.final_query
        template = (template_id or "").lower()

        candidates = [base]

        if "review" not in template:
            candidates.append(f"{base} tutorial")

        if "partnership" in template:
            candidates.append(_PARTNERSHIP_RE.sub("referral program", base))
        elif "referral" in template:
            candidates.append(_REFERRAL_RE.sub("partnership", base))

        components = result.components
        candidates.append(f"{components.competitor_anchor} {components.industry_anchor}".strip())

        queries: List[str] = []
        for query in candidates:
            if query and query not in queries:
                queries.append(query)

        return queries[:self.max_explore_queries]
