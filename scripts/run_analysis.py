#!/usr/bin/env python3
"""
Competitor Analysis Runner

Runs one comparison through the same service the API uses, against the
configured database and providers.

Usage:
    # Provider keys come from the environment or .env:
    export PAGESPEED_API_KEY=...
    export SE_RANKING_API_KEY=...
    export RAPIDAPI_KEY=...
    export APIFY_API_TOKEN=...

    python scripts/run_analysis.py acme.com rival.com

    # With options:
    python scripts/run_analysis.py acme.com rival.com \
        --tier pro \
        --competitor-instagram rival \
        --force

    # Refresh one section group of a cached report:
    python scripts/run_analysis.py acme.com rival.com --section social
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

PLATFORMS = ("facebook", "instagram", "linkedin")


def print_summary(body: dict):
    your = body["your_site"]
    theirs = body["competitor_site"]
    summary = body["comparison"].get("summary", {})

    print()
    print("=" * 60)
    print(f"{your['domain']} vs {theirs['domain']}  [{body['plan']['name']} plan]")
    print("=" * 60)
    print(f"Cached:            {body.get('cached')}")
    if "partial_refresh" in body:
        print(f"Partial refresh:   {body['partial_refresh']}")
    print(f"Partial failure:   {body.get('partial_failure')}")
    if body.get("failed_providers"):
        print(f"Failed providers:  {', '.join(body['failed_providers'])}")
    print()
    print(f"Your wins:         {summary.get('your_wins', 0)}")
    print(f"Competitor wins:   {summary.get('competitor_wins', 0)}")
    print(f"Overall winner:    {summary.get('overall_winner', 'n/a')}")
    for name, dimension in body["comparison"].items():
        if name == "summary":
            continue
        if dimension.get("blocked"):
            state = f"locked (upgrade to {dimension['upgrade_required']})"
        elif not dimension.get("available"):
            state = "not available"
        else:
            state = dimension.get("winner", "compared")
        print(f"  {name:<12} {state}")
    print()


async def run(args) -> int:
    from competiscope.analysis.errors import CompetiscopeError
    from competiscope.analysis.service import create_analysis_service
    from competiscope.database import init_db
    from competiscope.plans.features import PlanTier

    init_db()
    service = create_analysis_service()

    if args.tier:
        service.plans.set_tier(args.identity, PlanTier.parse(args.tier))

    own = {p: getattr(args, f"own_{p}") for p in PLATFORMS if getattr(args, f"own_{p}")}
    competitor = {p: getattr(args, f"competitor_{p}") for p in PLATFORMS if getattr(args, f"competitor_{p}")}

    try:
        if args.section:
            body = await service.refresh_section(
                args.identity, args.your_site, args.competitor_site, args.section,
                own_handles=own, competitor_handles=competitor,
            )
        else:
            body = await service.analyze(
                args.identity, args.your_site, args.competitor_site,
                own_handles=own, competitor_handles=competitor, force_refresh=args.force,
            )
    except CompetiscopeError as e:
        logger.error(f"{e.code}: {e.message}")
        print(json.dumps(e.to_dict(), indent=2))
        return 1
    finally:
        await service.orchestrator.registry.close()

    if args.json:
        print(json.dumps(body, indent=2, default=str))
    else:
        print_summary(body)
    return 0


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Compare a site against a competitor")
    parser.add_argument("your_site", help="Your domain or URL")
    parser.add_argument("competitor_site", help="Competitor domain or URL")
    parser.add_argument("--identity", default="cli", help="Caller identity (default: cli)")
    parser.add_argument("--tier", choices=["starter", "growth", "pro"], help="Set the caller's plan first")
    parser.add_argument("--force", action="store_true", help="Bypass the cached report")
    parser.add_argument(
        "--section",
        choices=["seo", "technical", "content", "traffic", "social", "ads"],
        help="Refresh one section group instead of a full analysis",
    )
    parser.add_argument("--json", action="store_true", help="Print the full JSON response")
    for platform in PLATFORMS:
        parser.add_argument(f"--own-{platform}", help=f"Your {platform} handle")
        parser.add_argument(f"--competitor-{platform}", help=f"Competitor {platform} handle")

    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
