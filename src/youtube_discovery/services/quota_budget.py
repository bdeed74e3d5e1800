"""Per-run quota usage tracking against a budget preset."""

import logging
import math
from typing import Dict, Optional

from ..config import settings
from ..exceptions import ConfigurationMissingError
from ..models import BudgetPreset, QuotaUsageStats, RunCostEstimate
from .quota_guard import DETAIL_BATCH_SIZE, SEARCH_UNIT_COST, UNIQUE_CHANNEL_RATIO

logger = logging.getLogger(__name__)

RESULTS_PER_SEARCH = 20

BUDGET_PRESETS: Dict[str, BudgetPreset] = {
    "ultra_saving": BudgetPreset(
        max_search_calls_per_run=1,
        max_pages_per_query=1,
        max_candidates_per_competitor=10,
        max_channels_to_analyze=10,
        max_videos_per_channel=3
    ),
    "test": BudgetPreset(
        max_search_calls_per_run=2,
        max_pages_per_query=1,
        max_candidates_per_competitor=20,
        max_channels_to_analyze=20,
        max_videos_per_channel=5
    ),
    "standard": BudgetPreset(
        max_search_calls_per_run=3,
        max_pages_per_query=1,
        max_candidates_per_competitor=50,
        max_channels_to_analyze=50,
        max_videos_per_channel=10
    ),
    "full": BudgetPreset(
        max_search_calls_per_run=5,
        max_pages_per_query=2,
        max_candidates_per_competitor=100,
        max_channels_to_analyze=80,
        max_videos_per_channel=15
    ),
}


def get_budget_preset(name: str) -> BudgetPreset:
    """
    Look up a named budget preset.

    Raises:
        ConfigurationMissingError: If the preset does not exist
    """
    try:
        return BUDGET_PRESETS[name]
    except KeyError:
        raise ConfigurationMissingError(
            f"Unknown budget preset '{name}'. Available presets: {', '.join(BUDGET_PRESETS)}",
            key=name
        )


class QuotaBudgetManager:
    """
    Records actual quota usage during one run.

    Callers record every upstream call after it happens. Search calls served
    from cache cost nothing; fresh searches cost 100 units and each batched
    detail call costs 1 unit.
    """

    def __init__(self, preset: Optional[BudgetPreset] = None):
        self.preset = preset or get_budget_preset(settings.quota_budget_preset)
        self.stats = QuotaUsageStats()

    @classmethod
    def from_preset(cls, name: str) -> "QuotaBudgetManager":
        return cls(get_budget_preset(name))

    def reset(self):
        self.stats = QuotaUsageStats()

    def can_make_search_call(self) -> bool:
        """True while fresh search calls remain in this run's budget."""
        return self.stats.search_calls < self.preset.max_search_calls_per_run

    def remaining_search_calls(self) -> int:
        return max(0, self.preset.max_search_calls_per_run - self.stats.search_calls)

    def record_search_call(self, cached: bool = False):
        """
        Record one search, fresh or served from cache.

        Args:
            cached: True when the result came from the L1 cache
        """
        if cached:
            self.stats.cache_hits += 1
            logger.debug("Search served from cache (0 units)")
            return

        self.stats.search_calls += 1
        self.stats.total_units_used += SEARCH_UNIT_COST

        if self.stats.search_calls >= self.preset.max_search_calls_per_run:
            self.stats.budget_exceeded = True
            logger.warning(
                f"Search call budget reached: {self.stats.search_calls}/"
                f"{self.preset.max_search_calls_per_run}"
            )

    def record_videos_call(self, count: int = 1):
        """Record batched videos.list calls (1 unit each)."""
        self.stats.videos_calls += count
        self.stats.total_units_used += count

    def record_channels_call(self, count: int = 1):
        """Record batched channels.list calls (1 unit each)."""
        self.stats.channels_calls += count
        self.stats.total_units_used += count

    def estimate_full_run_cost(self) -> RunCostEstimate:
        """
        Upper-bound cost of a run that uses the whole preset.

        Returns:
            Estimated calls and units
        """
        search_calls = self.preset.max_search_calls_per_run * self.preset.max_pages_per_query
        total_videos = search_calls * RESULTS_PER_SEARCH
        videos_calls = math.ceil(total_videos / DETAIL_BATCH_SIZE)

        channels = min(
            math.ceil(total_videos * UNIQUE_CHANNEL_RATIO),
            self.preset.max_channels_to_analyze
        )
        channels_calls = math.ceil(channels / DETAIL_BATCH_SIZE)

        return RunCostEstimate(
            search_calls=search_calls,
            videos_calls=videos_calls,
            channels_calls=channels_calls,
            total_units=search_calls * SEARCH_UNIT_COST + videos_calls + channels_calls
        )

    def get_stats(self) -> QuotaUsageStats:
        return self.stats.model_copy()

    def generate_report(self) -> str:
        """Render current usage as a plain-text report."""
        stats = self.stats
        total_searches = stats.search_calls + stats.cache_hits
        hit_rate = (stats.cache_hits / total_searches * 100) if total_searches else 0.0
        estimate = self.estimate_full_run_cost()

        lines = [
            "=== Quota Usage Report ===",
            f"Search calls: {stats.search_calls}/{self.preset.max_search_calls_per_run}",
            f"Cache hits: {stats.cache_hits} ({hit_rate:.1f}% of searches)",
            f"Videos calls: {stats.videos_calls}",
            f"Channels calls: {stats.channels_calls}",
            f"Units used: {stats.total_units_used}",
            f"Estimated full-run cost: {estimate.total_units} units",
        ]
        if stats.budget_exceeded:
            lines.append("Budget exhausted for this run")
        return "\n".join(lines)
