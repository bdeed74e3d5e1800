"""Pre-flight quota estimation and automatic downgrade.

A run is estimated before any network call. If it is over budget the guard
shrinks it (fewer queries, one page, fewer results) and re-estimates; if it is
still over budget the run is blocked with a recommendation instead of raising.
"""

import logging
import math
from typing import Dict, List, Optional

from ..config import settings
from ..exceptions import ConfigurationMissingError
from ..models import DowngradeDecision, DowngradedParams, QuotaEstimate, QuotaGuardConfig

logger = logging.getLogger(__name__)

SEARCH_UNIT_COST = 100
DETAIL_UNIT_COST = 1
DETAIL_BATCH_SIZE = 50
UNIQUE_CHANNEL_RATIO = 0.5

QUOTA_PRESETS: Dict[str, QuotaGuardConfig] = {
    "relaxed": QuotaGuardConfig(
        max_search_units_per_run=500,
        enable_auto_downgrade=True,
        min_queries_per_competitor=3,
        max_results_per_query=25,
        allow_pagination=True
    ),
    "standard": QuotaGuardConfig(
        max_search_units_per_run=300,
        enable_auto_downgrade=True,
        min_queries_per_competitor=2,
        max_results_per_query=20,
        allow_pagination=False
    ),
    "strict": QuotaGuardConfig(
        max_search_units_per_run=200,
        enable_auto_downgrade=True,
        min_queries_per_competitor=2,
        max_results_per_query=15,
        allow_pagination=False
    ),
    "ultra_strict": QuotaGuardConfig(
        max_search_units_per_run=100,
        enable_auto_downgrade=True,
        min_queries_per_competitor=1,
        max_results_per_query=10,
        allow_pagination=False
    ),
}


def get_quota_preset(name: str) -> QuotaGuardConfig:
    """
    Look up a named quota preset.

    Args:
        name: Preset name

    Returns:
        Guard configuration

    Raises:
        ConfigurationMissingError: If the preset does not exist
    """
    try:
        return QUOTA_PRESETS[name]
    except KeyError:
        available = ", ".join(QUOTA_PRESETS)
        raise ConfigurationMissingError(
            f"Unknown quota preset '{name}'. Available presets: {available}",
            key=name
        )


class QuotaGuard:
    """Estimates run cost and downgrades or blocks runs that exceed budget."""

    def __init__(self, config: Optional[QuotaGuardConfig] = None):
        self.config = config or get_quota_preset(settings.quota_guard_preset)

    @classmethod
    def from_preset(cls, name: str) -> "QuotaGuard":
        return cls(get_quota_preset(name))

    def estimate_quota(
        self,
        queries_count: int,
        pages_per_query: int = 1,
        max_results_per_query: int = 20
    ) -> QuotaEstimate:
        """
        Estimate the quota cost of a run.

        Args:
            queries_count: Number of search queries
            pages_per_query: Result pages fetched per query
            max_results_per_query: Results per search page

        Returns:
            Cost estimate against this guard's budget
        """
        search_calls = queries_count * pages_per_query
        search_units = search_calls * SEARCH_UNIT_COST

        total_videos = search_calls * max_results_per_query
        videos_units = math.ceil(total_videos / DETAIL_BATCH_SIZE) * DETAIL_UNIT_COST

        estimated_channels = math.ceil(total_videos * UNIQUE_CHANNEL_RATIO)
        channels_units = math.ceil(estimated_channels / DETAIL_BATCH_SIZE) * DETAIL_UNIT_COST

        budget = self.config.max_search_units_per_run
        return QuotaEstimate(
            queries_count=queries_count,
            pages_per_query=pages_per_query,
            max_results_per_query=max_results_per_query,
            estimated_search_calls=search_calls,
            estimated_search_units=search_units,
            estimated_videos_units=videos_units,
            estimated_channels_units=channels_units,
            estimated_total_units=search_units + videos_units + channels_units,
            exceeds_budget=search_units > budget,
            budget_limit=budget
        )

    def check_and_downgrade(
        self,
        queries_count: int,
        pages_per_query: int = 1,
        max_results_per_query: int = 20
    ) -> DowngradeDecision:
        """
        Decide whether a run may proceed, downgrading it if needed.

        Steps are applied in a fixed order: cap query count, force a single
        page, cap results per query. The decision never reports
        ``can_proceed=True`` for an estimate over budget.

        Args:
            queries_count: Planned number of queries
            pages_per_query: Planned pages per query
            max_results_per_query: Planned results per page

        Returns:
            Downgrade decision
        """
        original = self.estimate_quota(queries_count, pages_per_query, max_results_per_query)

        if not original.exceeds_budget:
            return DowngradeDecision(
                should_downgrade=False,
                reason="Within budget",
                original_estimate=original,
                can_proceed=True
            )

        if not self.config.enable_auto_downgrade:
            logger.warning(
                f"Run over budget ({original.estimated_search_units} > "
                f"{original.budget_limit} units) and auto-downgrade is disabled"
            )
            return DowngradeDecision(
                should_downgrade=False,
                reason="Over budget and auto-downgrade disabled",
                original_estimate=original,
                can_proceed=False,
                recommendation=self._block_recommendation(original)
            )

        actions: List[str] = []
        queries = queries_count
        pages = pages_per_query
        results = max_results_per_query

        if queries > self.config.min_queries_per_competitor:
            actions.append(f"Reduce queries from {queries} to {self.config.min_queries_per_competitor}")
            queries = self.config.min_queries_per_competitor

        if pages > 1 and (
            not self.config.allow_pagination
            or self.estimate_quota(queries, pages, results).exceeds_budget
        ):
            actions.append(f"Disable pagination ({pages} pages -> 1 page)")
            pages = 1

        if results > self.config.max_results_per_query:
            actions.append(f"Reduce max results from {results} to {self.config.max_results_per_query}")
            results = self.config.max_results_per_query

        downgraded = self.estimate_quota(queries, pages, results)
        can_proceed = not downgraded.exceeds_budget

        if can_proceed:
            logger.info(
                f"Downgraded run to {downgraded.estimated_search_units} search units "
                f"({'; '.join(actions)})"
            )
        else:
            logger.warning(
                f"Run still over budget after downgrade: {downgraded.estimated_search_units} > "
                f"{downgraded.budget_limit} units"
            )

        return DowngradeDecision(
            should_downgrade=True,
            reason=(
                f"Estimated {original.estimated_search_units} search units exceeds "
                f"budget of {original.budget_limit}"
            ),
            original_estimate=original,
            downgraded_estimate=downgraded,
            downgrade_actions=actions,
            can_proceed=can_proceed,
            recommendation=None if can_proceed else self._block_recommendation(downgraded)
        )

    def _block_recommendation(self, estimate: QuotaEstimate) -> str:
        return (
            f"Estimated {estimate.estimated_search_units} search units exceeds the budget of "
            f"{estimate.budget_limit}. Options: use offline or cached data; wait for the "
            f"daily quota reset at 00:00 UTC; or switch to a preset with a larger budget "
            f"(current limit {self.config.max_search_units_per_run} units)."
        )

    def apply_downgrade(
        self,
        queries: List[str],
        decision: DowngradeDecision
    ) -> DowngradedParams:
        """
        Apply a decision to a concrete query list.

        Args:
            queries: Planned queries, highest priority first
            decision: Decision from check_and_downgrade

        Returns:
            Queries and paging parameters to run with
        """
        estimate = decision.effective_estimate
        return DowngradedParams(
            queries=list(queries[:estimate.queries_count]),
            pages_per_query=estimate.pages_per_query,
            max_results_per_query=estimate.max_results_per_query
        )

    def generate_report(self, decision: DowngradeDecision) -> str:
        """Render a decision as a plain-text report."""
        original = decision.original_estimate
        lines = [
            "=== Quota Guard Report ===",
            f"Budget: {original.budget_limit} search units",
            "",
            "Original plan:",
            f"  Queries: {original.queries_count}",
            f"  Pages per query: {original.pages_per_query}",
            f"  Max results per query: {original.max_results_per_query}",
            f"  Search units: {original.estimated_search_units}",
            f"  Total units: {original.estimated_total_units}",
            "",
            f"Decision: {decision.reason}",
        ]

        if decision.should_downgrade and decision.downgraded_estimate:
            downgraded = decision.downgraded_estimate
            lines.append("")
            lines.append("Downgrade actions:")
            lines.extend(f"  - {action}" for action in decision.downgrade_actions)
            lines.append(
                f"Downgraded plan: {downgraded.queries_count} queries x "
                f"{downgraded.pages_per_query} page(s), "
                f"{downgraded.estimated_search_units} search units, "
                f"{downgraded.estimated_total_units} total units"
            )

        lines.append("")
        lines.append("Status: PROCEED" if decision.can_proceed else "Status: BLOCKED")
        if decision.recommendation:
            lines.append(f"Recommendation: {decision.recommendation}")

        return "\n".join(lines)
