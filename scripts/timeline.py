#!/usr/bin/env python3
"""
Print top contributors at points along merge history.

Single repository:
    python scripts/timeline.py --sources octo/hello --prefix 50 --prefix 100

Several repositories, with weights:
    python scripts/timeline.py --sources octo/hello:2.0,octo/world --every 25
"""

import argparse
import json
import sys

from src.attribution.filters import AttributionQuery
from src.attribution.service import AttributionService
from src.attribution.timeline import parse_source_weights
from src.providers import get_store
from src.utils.config_loader import ConfigLoader, ConfigurationError
from src.utils.errors import AttributionAppError
from src.utils.logging_config import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Attribution timeline snapshots")
    parser.add_argument("--sources", required=True, help="owner/repo[:weight],... (weight defaults to 1.0)")
    parser.add_argument("--prefix", type=int, action="append", default=[], help="Number of merges in scope (repeatable)")
    parser.add_argument("--every", type=int, default=None, help="Snapshot every N merges")
    parser.add_argument("--top", type=int, default=10, help="Authors per snapshot")
    parser.add_argument("--check-ready", action="store_true", help="Report classification coverage first")
    parser.add_argument("--json", action="store_true")
    parser.add_argument("--config", default=None)
    args = parser.parse_args()

    try:
        config = ConfigLoader().load_config(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(log_level="WARNING", json_logs=config.logging.json_logs)

    try:
        weights = parse_source_weights(args.sources)
        service = AttributionService(get_store(config))

        if args.check_ready:
            for source in weights:
                owner, repo = source.split("/", 1)
                readiness = service.readiness(owner, repo)
                print(
                    f"{source}: {readiness.scored}/{readiness.total_merged} scored "
                    f"({readiness.coverage_pct:.1f}%){'' if readiness.is_ready else ' - not ready'}"
                )

        # Weights only matter when something differs from the default
        explicit = {s: w for s, w in weights.items() if w != 1.0}
        calculator = service.timeline(
            AttributionQuery(sources=list(weights)),
            source_weights=explicit or None,
            top_n=max(args.top, 1),
        )

        prefixes = list(args.prefix)
        if args.every:
            prefixes.extend(range(args.every, calculator.max_prefix + 1, args.every))
        if not prefixes:
            prefixes = [calculator.max_prefix]

        snapshots = calculator.snapshots(sorted(set(prefixes)))
    except AttributionAppError as e:
        print(f"Error: {e}\n{e.user_message}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(
            json.dumps(
                {
                    str(prefix): [entry.model_dump() for entry in ranking]
                    for prefix, ranking in snapshots.items()
                },
                indent=2,
            )
        )
        return

    for prefix, ranking in snapshots.items():
        print(f"\nAfter {prefix} of {calculator.max_prefix} merges")
        for position, entry in enumerate(ranking, start=1):
            print(f"  {position:>2}. {entry.author:<30} {entry.pct * 100:>7.2f}%")


if __name__ == "__main__":
    main()
