#!/usr/bin/env python3
"""
Run a channel discovery for one competitor and print the ranked channels.

Usage:
    python scripts/run_discovery.py weex [template_id] [--explore] [--offline] [--save-offline]

Environment Variables:
    YOUTUBE_API_KEY - YouTube Data API key (not needed with --offline)
"""
import logging
import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from youtube_discovery.config import settings
from youtube_discovery.core.discovery_engine import DiscoveryEngine
from youtube_discovery.exceptions import DiscoveryError, build_error_payload
from youtube_discovery.utils.text_utils import truncate_text

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main(argv):
    flags = {arg for arg in argv if arg.startswith("--")}
    positional = [arg for arg in argv if not arg.startswith("--")]

    if not positional:
        print(__doc__)
        return 2

    competitor_id = positional[0]
    template_id = positional[1] if len(positional) > 1 else "contract_partnership"

    engine = DiscoveryEngine()

    try:
        if "--offline" in flags:
            response = engine.discover_offline(competitor_id)
        else:
            response = engine.discover(
                competitor_id,
                template_id=template_id,
                explore_mode="--explore" in flags,
                save_offline="--save-offline" in flags
            )
    except DiscoveryError as e:
        logger.error(f"Discovery failed: {e.message}")
        print(build_error_payload(e))
        return 1

    print("\n" + "="*80)
    print(f"{response.competitor.upper()} - {response.message}")
    print("="*80)

    if response.blocked and response.quota_decision:
        print(engine.quota_guard.generate_report(response.quota_decision))
        return 1

    for query in response.executed_queries:
        print(f"Query: {truncate_text(query, max_length=70)}")
    if response.video_filter:
        stats = response.video_filter
        print(f"Video pre-filter: {stats.passed}/{stats.total} passed (median relevance {stats.median_score})")

    for result in response.results:
        print(f"\n#{result.rank} {result.channel_title} ({result.subscriber_count:,} subscribers)")
        print(f"   {result.channel_url}")
        print(f"   Score: {result.total_score}")
        if result.relationship:
            relationship = result.relationship
            print(f"   Relationship: {relationship.relationship} ({relationship.confidence_score:.0f}/100)")
        for tag in result.evidence_tags:
            print(f"   - {tag}")
        if result.contact_email:
            print(f"   Contact: {result.contact_email}")

    if not response.offline:
        print("\n" + engine.budget.generate_report())

    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
