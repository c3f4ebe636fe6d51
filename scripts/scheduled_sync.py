#!/usr/bin/env python3
"""
Scheduled synchronization script for PR attribution.

This script performs an incremental pull request sync for one repository:
- Skips the run when local and remote watermarks already match
- Catches up on new pull requests, then on updated ones
- Optionally classifies merged pull requests that have no score yet

Designed to be run on a schedule (e.g., via cron or Airflow).

Usage:
    python scripts/scheduled_sync.py --owner OWNER --repo REPO [--config CONFIG_PATH] [--classify] [--force] [--token-env VAR]
"""

import argparse
import os
import sys
from datetime import datetime

import structlog

from src.providers import get_job_runner, get_store
from src.utils.config_loader import ConfigLoader, ConfigurationError
from src.utils.errors import AttributionAppError
from src.utils.logging_config import configure_logging

log = structlog.stdlib.get_logger()


def perform_sync(
    owner: str,
    repo: str,
    config_path: str | None = None,
    classify: bool = False,
    force: bool = False,
    full_resync: bool = False,
    token: str | None = None,
) -> dict:
    """
    Sync one repository, optionally followed by classification.

    Returns:
        Dictionary with sync statistics
    """
    start_time = datetime.now()

    try:
        config_loader = ConfigLoader()
        config = config_loader.load_config(config_path)
        config_loader.validate_config(config)
    except ConfigurationError as e:
        return {"success": False, "error": str(e), "error_kind": "configuration"}

    configure_logging(
        log_level=config.logging.log_level,
        json_logs=config.logging.json_logs,
        log_file=config.logging.log_file,
    )

    log.info(
        "scheduled_sync_started",
        owner=owner,
        repo=repo,
        classify=classify,
        timestamp=start_time.isoformat(),
    )

    stats: dict = {"owner": owner, "repo": repo, "start_time": start_time.isoformat()}

    try:
        runner = get_job_runner(config, get_store(config))

        if classify:
            sync_result, report = runner.run_pipeline(owner, repo, full_resync=full_resync, force=force, token=token)
            stats.update(classified=report.classified, classification_failures=report.failed)
        else:
            sync_result = runner.run_sync(owner, repo, force=force, token=token)

        stats.update(
            success=True,
            skipped=sync_result.skipped,
            phase_one_synced=sync_result.phase_one_synced,
            phase_two_synced=sync_result.phase_two_synced,
            total_synced=sync_result.total_synced,
            latest_number=sync_result.latest_item.number if sync_result.latest_item else None,
        )

    except AttributionAppError as e:
        log.error(
            "scheduled_sync_failed",
            owner=owner,
            repo=repo,
            error=str(e),
            error_kind=e.kind.value,
        )
        stats.update(success=False, error=str(e), error_kind=e.kind.value, hint=e.user_message)

    stats["duration_seconds"] = (datetime.now() - start_time).total_seconds()
    return stats


def main():
    """Main entry point for scheduled sync script."""
    parser = argparse.ArgumentParser(description="Incremental pull request sync")
    parser.add_argument("--owner", required=True, help="Repository owner")
    parser.add_argument("--repo", required=True, help="Repository name")
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")
    parser.add_argument(
        "--classify",
        action="store_true",
        help="Classify unscored merged pull requests after syncing",
    )
    parser.add_argument("--force", action="store_true", help="Sync even when nothing looks stale")
    parser.add_argument(
        "--full-resync",
        action="store_true",
        help="With --classify, reclassify every merged pull request",
    )
    parser.add_argument(
        "--token-env",
        type=str,
        default=None,
        help="Environment variable holding a token for this repository (overrides the configured token)",
    )

    args = parser.parse_args()
    token = os.environ.get(args.token_env) if args.token_env else None

    stats = perform_sync(
        args.owner,
        args.repo,
        config_path=args.config,
        classify=args.classify,
        force=args.force,
        full_resync=args.full_resync,
        token=token,
    )

    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)

    if stats.get("success"):
        print("Status: SUCCESS")
        print(f"Repository: {stats['owner']}/{stats['repo']}")
        if stats.get("skipped"):
            print("Nothing to sync, local copy is current")
        print(f"New pull requests: {stats.get('phase_one_synced', 0)}")
        print(f"Updated pull requests: {stats.get('phase_two_synced', 0)}")
        if "classified" in stats:
            print(f"Classified: {stats['classified']} ({stats['classification_failures']} failed)")
    else:
        print("Status: FAILED")
        print(f"Error: {stats.get('error', 'Unknown error')}")
        if stats.get("hint"):
            print(stats["hint"])

    if "duration_seconds" in stats:
        print(f"Duration: {stats['duration_seconds']:.2f} seconds")
    print("=" * 60)

    sys.exit(0 if stats.get("success") else 1)


if __name__ == "__main__":
    main()
