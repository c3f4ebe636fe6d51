#!/usr/bin/env python3
"""
Print contributor attribution for one or more repositories.

Usage:
    python scripts/attribution_report.py --sources owner/repo[,owner/repo...]
        [--since 2024-01-01] [--until 2024-06-30] [--author LOGIN] [--bucket N]
        [--by-pr] [--page N] [--page-size N] [--json]
"""

import argparse
import json
import sys
from datetime import datetime

from src.attribution.filters import AttributionQuery
from src.attribution.service import AttributionService
from src.providers import get_store
from src.utils.config_loader import ConfigLoader, ConfigurationError
from src.utils.errors import AttributionAppError
from src.utils.logging_config import configure_logging


def _print_authors(page) -> None:
    print(f"{'Author':<30} {'Credit':>8}  {'B0':>4} {'B1':>4} {'B2':>4} {'B3':>4}")
    for entry in page.items:
        counts = " ".join(f"{c:>4}" for c in entry.bucket_counts)
        print(f"{entry.author:<30} {entry.pct * 100:>7.2f}%  {counts}")


def _print_contributions(page) -> None:
    print(f"{'Pull request':<40} {'Author':<20} {'Bucket':>6} {'Credit':>8}")
    for credit in page.items:
        name = f"{credit.owner}/{credit.repo}#{credit.number}"
        print(f"{name:<40} {credit.author:<20} {credit.bucket:>6} {credit.pct * 100:>7.3f}%")


def main():
    parser = argparse.ArgumentParser(description="Contributor attribution report")
    parser.add_argument("--sources", required=True, help="Comma-separated owner/repo list")
    parser.add_argument("--since", type=datetime.fromisoformat, default=None, help="Merged on or after (ISO date)")
    parser.add_argument("--until", type=datetime.fromisoformat, default=None, help="Merged on or before (ISO date)")
    parser.add_argument("--author", default=None)
    parser.add_argument("--bucket", type=int, default=None)
    parser.add_argument("--by-pr", action="store_true", help="List pull requests instead of authors")
    parser.add_argument("--quartiles", action="store_true", help="Also print per-bucket totals")
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--page-size", type=int, default=20)
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    parser.add_argument("--config", default=None, help="Path to configuration file")
    args = parser.parse_args()

    try:
        config = ConfigLoader().load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(log_level="WARNING", json_logs=config.logging.json_logs)

    query = AttributionQuery(
        merged_since=args.since,
        merged_until=args.until,
        sources=[s.strip() for s in args.sources.split(",") if s.strip()],
        author=args.author,
        bucket=args.bucket,
    )

    try:
        service = AttributionService(get_store(config))
        if args.by_pr:
            page = service.by_contribution(query, args.page, args.page_size)
        else:
            page = service.by_author(query, args.page, args.page_size)
        quartiles = service.quartiles(query) if args.quartiles else None
    except AttributionAppError as e:
        print(f"Error: {e}\n{e.user_message}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        output = {"page": page.model_dump(mode="json")}
        if quartiles is not None:
            output["quartiles"] = [q.model_dump() for q in quartiles]
        print(json.dumps(output, indent=2))
        return

    if args.by_pr:
        _print_contributions(page)
    else:
        _print_authors(page)
    print(f"\nPage {page.page}, {len(page.items)} of {page.total_count}" + (" (more)" if page.has_next else ""))

    if quartiles is not None:
        print("\nBucket  Count   Credit")
        for stat in quartiles:
            print(f"{stat.bucket:>6} {stat.count:>6} {stat.aggregate_pct * 100:>7.2f}%")


if __name__ == "__main__":
    main()
