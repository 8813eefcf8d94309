"""
Command-line interface for the consistency reconciliation pass.

Connects directly to MongoDB with the server's settings, reports committed
approvals whose role grant or manager promotion is missing, and (unless
`--dry-run` is given) replays the missing writes.

Exit status is 0 when no drift remains, 1 when a repair failed, and 2 when
`--dry-run` found drift.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from clubsphere.database import db_manager
from clubsphere.managers.consistency_manager import consistency_propagator
from clubsphere.managers.logging_manager import configure_logging, get_logger

logger = get_logger(prefix="[ReconcileCLI]")


async def run_reconciliation(dry_run: bool) -> int:
    await db_manager.connect()
    try:
        result = await consistency_propagator.reconcile(dry_run=dry_run)
    finally:
        await db_manager.disconnect()

    print(json.dumps(result.model_dump(mode="json"), indent=2))

    if result.failures:
        logger.error("%d repairs failed", len(result.failures))
        return 1
    if dry_run and result.drift.total:
        return 2
    return 0


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="ClubSphere consistency reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report drift without repairing it",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run",
    )
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    sys.exit(asyncio.run(run_reconciliation(args.dry_run)))


if __name__ == "__main__":
    main()
