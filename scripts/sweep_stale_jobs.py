#!/usr/bin/env python3
"""
Stale Job Sweeper
Finalizes generation jobs left in_progress by a crashed process.

Usage:
    python scripts/sweep_stale_jobs.py                 # Jobs older than STALE_JOB_MINUTES
    python scripts/sweep_stale_jobs.py --minutes 15
    python scripts/sweep_stale_jobs.py --dry-run
"""

import argparse
import logging
import os
import sys
from datetime import timedelta

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dreamboat.core.config import settings
from dreamboat.core.database import SessionLocal
from dreamboat.services.tracker import GenerationTracker, JobStateError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("sweeper")


def sweep(db, older_than: timedelta, dry_run: bool = False) -> int:
    """
    Close every orphaned job.

    Returns:
        Number of jobs closed (or found, in dry-run mode)
    """
    tracker = GenerationTracker(db)
    orphans = tracker.find_orphans(older_than)
    logger.info(f"Found {len(orphans)} orphaned job(s) older than {older_than}")

    closed = 0
    for job in orphans:
        if dry_run:
            logger.info(f"[dry-run] {job.id} owner={job.owner_id} created={job.created_at}")
            closed += 1
            continue
        try:
            tracker.close_orphan(job)
            closed += 1
        except JobStateError as e:
            # Finalized by its own process since the query ran
            logger.info(f"Skipped {job.id}: {e}")

    return closed


def main():
    parser = argparse.ArgumentParser(description="Close orphaned generation jobs")
    parser.add_argument(
        "--minutes", "-m",
        type=int,
        default=settings.STALE_JOB_MINUTES,
        help=f"Age threshold in minutes (default: {settings.STALE_JOB_MINUTES})"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List orphaned jobs without closing them"
    )
    args = parser.parse_args()

    db = SessionLocal()
    try:
        count = sweep(db, timedelta(minutes=args.minutes), dry_run=args.dry_run)
    finally:
        db.close()

    logger.info(f"{'Found' if args.dry_run else 'Closed'} {count} job(s)")


if __name__ == "__main__":
    main()
