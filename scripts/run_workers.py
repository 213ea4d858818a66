#!/usr/bin/env python3
"""
RQ Worker Startup Script
Runs workers for paid generation runs and free preview images.

Usage:
    python scripts/run_workers.py                          # One worker on every queue
    python scripts/run_workers.py --role samples           # Preview images only
    python scripts/run_workers.py --role generation -w 4   # Four generation workers
    python scripts/run_workers.py --burst                  # Drain the queues and exit
"""

import argparse
import logging
import os
import sys
from multiprocessing import Process
from typing import List

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rq import Worker

from dreamboat.core.config import settings
from dreamboat.core.redis import Queues, get_redis, redis_health_check

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("dreamboat.workers")

# A generation run holds its worker for minutes; sample workers stay
# free for previews.
ROLES = {
    "all": list(Queues.PRIORITY),
    "generation": [Queues.GENERATION, Queues.DEFAULT],
    "samples": [Queues.SAMPLES],
}


def queues_for(role: str) -> List[str]:
    """Queue names a worker of `role` listens to, highest priority first."""
    try:
        return ROLES[role]
    except KeyError:
        raise ValueError(f"Unknown worker role {role!r}; expected one of {sorted(ROLES)}")


def work(queue_names: List[str], name: str, burst: bool = False):
    """Run one worker in this process until stopped (or drained, in burst mode)."""
    worker = Worker(queue_names, connection=get_redis(), name=name)
    logger.info(f"{name} listening on {', '.join(queue_names)}")
    worker.work(burst=burst)


def main():
    parser = argparse.ArgumentParser(description="Start DreamBoat RQ workers")
    parser.add_argument("--role", "-r", choices=sorted(ROLES), default="all", help="Which queues to serve")
    parser.add_argument("--workers", "-w", type=int, default=1, help="Worker processes (default: 1)")
    parser.add_argument("--burst", "-b", action="store_true", help="Exit once the queues are empty")
    args = parser.parse_args()

    health = redis_health_check()
    if not health["connected"]:
        logger.error(f"Cannot reach Redis at {health['url']}: {health['error']}")
        sys.exit(1)

    queue_names = queues_for(args.role)
    if args.workers == 1:
        work(queue_names, f"{args.role}-{os.getpid()}", args.burst)
        return

    # RQ workers install their own SIGTERM/SIGINT handlers for a warm shutdown
    processes = [
        Process(target=work, args=(queue_names, f"{args.role}-{os.getpid()}-{i}", args.burst), name=f"{args.role}-{i}")
        for i in range(1, args.workers + 1)
    ]
    for p in processes:
        p.start()
        logger.info(f"Started {p.name} (PID: {p.pid})")
    for p in processes:
        p.join()


if __name__ == "__main__":
    main()
