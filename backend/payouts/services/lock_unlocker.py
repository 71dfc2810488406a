"""Moves elapsed reports from locked to available balance.

The report row is claimed with ``UPDATE ... WHERE status = 'locked'``; only
the caller whose update hits a row credits the ledger, so an overlapping
sweep and manual unlock credit once between them.
"""

from collections.abc import Iterable
from datetime import datetime

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from config import PayoutSettings, get_settings
from db.enums import SYSTEM_ACTOR, AuditAction, NotificationKind, ReportStatus, RunType
from db.models import MonthlyReports
from payouts.services._helpers import parse_iso, to_iso, utc_now
from payouts.services._tx import atomic
from payouts.services.audit import AuditLogService
from payouts.services.batch import BatchRunner, SessionFactory
from payouts.services.errors import AlreadyProcessedError, StillLockedError
from payouts.services.ledger import LedgerService
from payouts.services.notifications import NotificationOutbox
from payouts.services.reports import ReportService
from payouts.services.schemas.results import BatchResult, UnitOutcome, UnlockSweepResult

logger = structlog.get_logger(__name__)


class LockUnlocker:
    def __init__(
        self,
        session: Session,
        settings: PayoutSettings | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.session: Session = session
        self.settings: PayoutSettings = settings or get_settings().payout
        self.runner: BatchRunner = BatchRunner(
            session, session_factory, self.settings.max_parallel_creators
        )

    def sweep(self, now: datetime | None = None) -> UnlockSweepResult:
        """Unlock every locked report whose lock period has elapsed.

        Reports unlocked concurrently by someone else count as skipped.
        """
        now = now or utc_now()
        run_id: str = self.runner.start_run(RunType.UNLOCK_SWEEP)
        try:
            with self.runner.scope() as session:
                report_ids: list[str] = ReportService(session).ready_to_unlock_ids(now)
            results: BatchResult = self.runner.run(
                report_ids,
                lambda s, rid: _unlock(s, rid, SYSTEM_ACTOR, now),
                benign=(AlreadyProcessedError,),
            )
        except Exception as e:
            logger.exception("Unlock sweep failed", run_id=run_id)
            self.runner.finish_run(run_id, error=e)
            raise

        self.runner.finish_run(run_id, results)
        logger.info(
            "Unlock sweep complete",
            run_id=run_id,
            total_unlocked=str(results.total_amount),
            **results.tally(),
        )
        return UnlockSweepResult(run_id=run_id, as_of=to_iso(now), results=results)

    def unlock_report(
        self, report_id: str, operator_id: str, now: datetime | None = None
    ) -> MonthlyReports:
        """Operator unlock of one report. There is no early unlock."""
        with atomic(self.session):
            _unlock(self.session, report_id, operator_id, now or utc_now())
        return ReportService(self.session).get_report(report_id)

    def unlock_many(
        self, report_ids: Iterable[str], operator_id: str, now: datetime | None = None
    ) -> BatchResult:
        """Manual rules per id; already-unlocked ids are reported as failures."""
        now = now or utc_now()
        return self.runner.run(
            report_ids,
            lambda s, rid: _unlock(s, rid, operator_id, now),
        )


def _unlock(session: Session, report_id: str, actor_id: str, now: datetime) -> UnitOutcome:
    report: MonthlyReports = ReportService(session).get_report(report_id)
    if report.status != ReportStatus.LOCKED.value:
        raise AlreadyProcessedError(f"Report {report_id} is already {report.status}")
    if parse_iso(report.locked_until) > now:
        raise StillLockedError(f"Report {report_id} is locked until {report.locked_until}")

    ts: str = to_iso(now)
    claimed = session.execute(
        update(MonthlyReports)
        .where(
            MonthlyReports.report_id == report_id,
            MonthlyReports.status == ReportStatus.LOCKED.value,
        )
        .values(status=ReportStatus.UNLOCKED.value, unlocked_at=ts, unlocked_by=actor_id)
        .execution_options(synchronize_session="fetch")
    )
    if claimed.rowcount != 1:
        raise AlreadyProcessedError(f"Report {report_id} was unlocked concurrently")

    LedgerService(session).unlock_to_available(
        report.creator_id, report.payout_amount, actor_id=actor_id, target_id=report_id
    )
    AuditLogService(session).record(
        AuditAction.REPORT_UNLOCKED,
        actor_id,
        report_id,
        creator_id=report.creator_id,
        amount=report.payout_amount,
        before={"status": ReportStatus.LOCKED.value},
        after={"status": ReportStatus.UNLOCKED.value, "unlocked_at": ts, "unlocked_by": actor_id},
    )
    NotificationOutbox(session).notify(
        report.creator_id,
        NotificationKind.REPORT_UNLOCKED,
        {"period": report.period, "amount": str(report.payout_amount), "report_id": report_id},
    )
    logger.info(
        "Report unlocked",
        report_id=report_id,
        creator_id=report.creator_id,
        amount=str(report.payout_amount),
        unlocked_by=actor_id,
    )
    return UnitOutcome(amount=report.payout_amount)
