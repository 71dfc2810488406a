"""Worker: consistency sweep over every creator ledger.

Usage:
    python -m worker.reconcile_ledgers
    python -m worker.reconcile_ledgers --creator CREATOR_ID
"""

import argparse
import sys

import structlog

from db.connection import get_session
from payouts.services.reconciliation import ReconciliationService

logger = structlog.get_logger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recompute ledgers and report mismatches")
    parser.add_argument("--creator", "-c", help="Check a single creator")
    args = parser.parse_args(argv)

    with get_session() as session:
        result = ReconciliationService(session).run(args.creator)

    logger.info(
        "Consistency check complete",
        run_id=result.run_id,
        creators_checked=result.creators_checked,
        mismatches=len(result.mismatches),
    )
    return 0 if result.consistent else 1


if __name__ == "__main__":
    sys.exit(main())
