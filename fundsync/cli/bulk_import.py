"""FundSync - Bulk Import CLI.

Import every profile from a Raisely export file into Storyblok.

Examples:
  fundsync-bulk --dry-run
  fundsync-bulk --type teams --status ACTIVE
  fundsync-bulk --type individuals --campaign "Sunderland" --limit 10 --verbose
  fundsync-bulk --force-update --campaign "Sunderland"
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from fundsync.config import settings
from fundsync.connectors.raisely.transformer import load_export
from fundsync.connectors.storyblok.client import StoryblokClient
from fundsync.core.logging import get_logger, set_level
from fundsync.models.sync_models import BulkOptions, BulkSummary, ProfileFilters
from fundsync.sync.bulk import BulkRunner, format_summary

logger = get_logger("cli.bulk")

DEFAULT_DATA_PATH = "sync/all-data.json"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fundsync-bulk",
        description="Import all profiles from a Raisely export file to Storyblok.",
    )
    parser.add_argument(
        "--file",
        default=settings.bulk_data_path or DEFAULT_DATA_PATH,
        help="Raisely export JSON ({data: [...]} or [...])",
    )
    parser.add_argument(
        "-n", "--dry-run", action="store_true",
        help="Run the sync logic but only report the store changes it would make",
    )
    parser.add_argument(
        "-f", "--force-update", action="store_true",
        help="Update profiles that already exist instead of skipping them",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug logging"
    )
    parser.add_argument(
        "--batch-size", type=int, default=settings.bulk_batch_size,
        help="Profiles per batch (default: %(default)s)",
    )
    parser.add_argument(
        "--delay", type=float, default=settings.bulk_delay_seconds,
        help="Seconds to wait between batches (default: %(default)s)",
    )
    parser.add_argument(
        "--type", dest="kind", choices=["individuals", "teams"],
        help="Only import one profile type (default: teams, then individuals)",
    )
    parser.add_argument("--status", help="Only import profiles with this status (ACTIVE, DRAFT, ...)")
    parser.add_argument("--campaign", help="Only import profiles whose campaign name contains this")
    parser.add_argument("--limit", type=int, help="Only process the first N profiles")
    return parser


def options_from_args(args: argparse.Namespace) -> BulkOptions:
    return BulkOptions(
        dry_run=args.dry_run,
        force_update=args.force_update,
        batch_size=args.batch_size,
        delay_seconds=args.delay,
        filters=ProfileFilters(
            kind=args.kind,
            status=args.status,
            campaign=args.campaign,
            limit=args.limit,
        ),
    )


async def run_bulk(args: argparse.Namespace) -> BulkSummary:
    profiles = load_export(args.file)
    client = StoryblokClient()
    runner = BulkRunner(client, options_from_args(args))

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, runner.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl-C will abort immediately")

    try:
        return await runner.run(profiles)
    finally:
        await client.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        set_level("DEBUG")

    try:
        summary = asyncio.run(run_bulk(args))
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Bulk import failed: {e}")
        return 1

    print(format_summary(summary))
    return 1 if summary.errors else 0


if __name__ == "__main__":
    sys.exit(main())
