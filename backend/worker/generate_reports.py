"""Worker: close a period and generate monthly reports (period rollover trigger).

Usage:
    python -m worker.generate_reports                   # the month before today (UTC)
    python -m worker.generate_reports --period 2026-01
    python -m worker.generate_reports --period 2026-01 --creator CREATOR_ID
"""

import argparse
import sys

import structlog

from db.connection import get_session, get_session_factory
from payouts.services._helpers import validate_period
from payouts.services.errors import DuplicateReportError
from payouts.services.report_generator import ReportGenerator

logger = structlog.get_logger(__name__)


def parse_period(raw: str) -> str:
    try:
        return validate_period(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate monthly creator reports")
    parser.add_argument(
        "--period", "-p", type=parse_period,
        help="Period to close (YYYY-MM). Defaults to the previous calendar month",
    )
    parser.add_argument("--creator", "-c", help="Generate for a single creator only")
    parser.add_argument(
        "--sequential", action="store_true", default=False,
        help="Process creators one at a time on a single session",
    )
    args = parser.parse_args(argv)

    if args.creator and not args.period:
        parser.error("--period is required with --creator")

    with get_session() as session:
        if args.creator:
            gen = ReportGenerator(session)
            try:
                report = gen.generate_for_creator(args.creator, args.period)
            except DuplicateReportError as e:
                logger.info("Report already exists", creator_id=args.creator, detail=str(e))
                return 0
            if report is None:
                logger.info("No earnings for period", creator_id=args.creator, period=args.period)
            else:
                logger.info(
                    "Report generated",
                    report_id=report.report_id,
                    amount=str(report.payout_amount),
                )
            return 0

        factory = None if args.sequential else get_session_factory()
        result = ReportGenerator(session, session_factory=factory).run(args.period)

    logger.info(
        "Report generation complete",
        run_id=result.run_id,
        period=result.period,
        total_payout=str(result.total_payout),
        **result.results.tally(),
    )
    for failure in result.results.failed:
        logger.warning("report_generation_failure", **failure)
    return 0 if result.results.ok else 1


if __name__ == "__main__":
    sys.exit(main())
