"""Worker: daily sweep that unlocks reports whose lock period has elapsed.

Usage:
    python -m worker.unlock_reports
    python -m worker.unlock_reports --as-of 2026-05-01T00:00:00+00:00
"""

import argparse
import sys

import structlog

from db.connection import get_session, get_session_factory
from payouts.services._helpers import parse_iso
from payouts.services.lock_unlocker import LockUnlocker

logger = structlog.get_logger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Unlock reports past their lock period")
    parser.add_argument(
        "--as-of", type=parse_iso, default=None,
        help="Evaluate lock expiry at this ISO timestamp instead of now",
    )
    parser.add_argument(
        "--sequential", action="store_true", default=False,
        help="Process reports one at a time on a single session",
    )
    args = parser.parse_args(argv)

    with get_session() as session:
        factory = None if args.sequential else get_session_factory()
        result = LockUnlocker(session, session_factory=factory).sweep(args.as_of)

    logger.info(
        "Unlock sweep complete",
        run_id=result.run_id,
        as_of=result.as_of,
        total_unlocked=str(result.total_unlocked),
        **result.results.tally(),
    )
    for failure in result.results.failed:
        logger.error("unlock_failure", **failure)
    return 0 if result.results.ok else 1


if __name__ == "__main__":
    sys.exit(main())
