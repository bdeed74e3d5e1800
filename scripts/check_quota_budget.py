#!/usr/bin/env python3
"""Check discovery configuration, cache state and quota presets before a run."""
import sys
from collections import Counter
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from youtube_discovery.config import settings
from youtube_discovery.services.cache_service import CacheService
from youtube_discovery.services.competitors import CompetitorRegistry
from youtube_discovery.services.keyword_lexicon import lexicon
from youtube_discovery.services.query_builder import KEYWORD_TEMPLATES, QueryBuilder, render_template
from youtube_discovery.services.quota_budget import BUDGET_PRESETS, QuotaBudgetManager
from youtube_discovery.services.quota_guard import QUOTA_PRESETS, QuotaGuard


def check_youtube_setup():
    """Check if YouTube API is configured."""
    print("\n" + "="*80)
    print("YOUTUBE API CONFIGURATION")
    print("="*80)

    if settings.youtube_api_key:
        print("✅ YouTube API Key: CONFIGURED")
        print(f"   Key prefix: {settings.youtube_api_key[:8]}...")
        print(f"   Region: {settings.youtube_region_code}, language: {settings.youtube_relevance_language}")
        return True

    print("❌ YouTube API Key: NOT CONFIGURED")
    print("\n📝 To fix:")
    print("   1. Get API key from: https://console.cloud.google.com/")
    print("   2. Enable YouTube Data API v3")
    print("   3. Add to .env file: YOUTUBE_API_KEY=your-key-here")
    print("   Offline replay still works without a key")
    return False


def check_cache():
    """Show cache layer sizes."""
    print("\n" + "="*80)
    print("CACHE LAYERS")
    print("="*80)

    stats = CacheService().get_cache_stats()
    if not stats.get("enabled"):
        print("⚠️  Cache: DISABLED (every search costs quota)")
        return None

    print(f"✅ Cache root: {stats['root']}")
    for layer in ("l1", "l2", "l3"):
        info = stats[layer]
        print(
            f"   {layer.upper()}: {info['count']} entries, {info['size_bytes']} bytes, "
            f"TTL {stats['ttl_hours'][layer]:.0f}h"
        )
    return True


def check_quota_presets():
    """Estimate each competitor's default query against the configured presets."""
    print("\n" + "="*80)
    print("QUOTA PRESETS")
    print("="*80)

    print(f"Guard preset: {settings.quota_guard_preset} (available: {', '.join(QUOTA_PRESETS)})")
    print(f"Budget preset: {settings.quota_budget_preset} (available: {', '.join(BUDGET_PRESETS)})")

    guard = QuotaGuard()
    budget = QuotaBudgetManager()
    builder = QueryBuilder()
    registry = CompetitorRegistry()

    cost = budget.estimate_full_run_cost()
    print(f"Full run upper bound: {cost.search_calls} searches, {cost.total_units} units")

    ok = True
    for competitor in registry.list():
        queries = builder.build_explore_queries(competitor.id, competitor.brand_names, "contract_partnership")
        decision = guard.check_and_downgrade(len(queries))
        status = "✅" if decision.can_proceed else "❌"
        estimate = decision.effective_estimate
        print(
            f"{status} {competitor.display_name}: {len(queries)} explore queries -> "
            f"{estimate.queries_count} x {estimate.pages_per_query} page(s), "
            f"{estimate.estimated_total_units} units"
        )
        ok = ok and decision.can_proceed

    print("\nKeyword templates:")
    for template_id in KEYWORD_TEMPLATES:
        print(f"   {template_id}: {render_template(template_id, 'WEEX')}")

    counts = Counter(entry.category for entry in lexicon.entries())
    print("Lexicon: " + ", ".join(f"{category} {count}" for category, count in counts.items()))
    return ok


def main():
    results = {
        "youtube": check_youtube_setup(),
        "cache": check_cache(),
        "quota": check_quota_presets(),
    }

    print("\n" + "="*80)
    print("SUMMARY")
    print("="*80)
    for name, result in results.items():
        label = "OK" if result else ("SKIPPED" if result is None else "NEEDS ATTENTION")
        print(f"   {name}: {label}")

    return 0 if results["quota"] else 1


if __name__ == "__main__":
    sys.exit(main())
