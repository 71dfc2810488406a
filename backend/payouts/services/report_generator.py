"""Monthly report generation.

Per creator and period, in one transaction: insert the report (the
``(creator_id, period)`` unique constraint is the idempotency guard), credit the
locked balance, zero the period counters of every video it covers, queue the
notification. A retried run skips what already exists.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import PayoutSettings, get_settings
from db.enums import (
    SYSTEM_ACTOR,
    AuditAction,
    CreatorRole,
    CreatorStatus,
    NotificationKind,
    ReportStatus,
    RunType,
)
from db.models import Creators, MonthlyReports, VideoAccruals
from payouts.services._helpers import (
    dump_json,
    previous_period,
    to_iso,
    to_money,
    utc_now,
    validate_period,
)
from payouts.services._tx import atomic
from payouts.services._types import VideoBreakdownItem
from payouts.services.audit import AuditLogService
from payouts.services.batch import BatchRunner, SessionFactory
from payouts.services.errors import DuplicateReportError, NotFoundError
from payouts.services.ledger import LedgerService
from payouts.services.notifications import NotificationOutbox
from payouts.services.schemas.results import BatchResult, ReportGenerationResult, UnitOutcome

logger = structlog.get_logger(__name__)


def report_id_for(creator_id: str, period: str) -> str:
    return f"{creator_id}_{period}"


class ReportGenerator:
    """Turns current-period accruals into locked monthly reports."""

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

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _eligible_creator_ids(session: Session) -> list[str]:
        stmt: Select[tuple[str]] = (
            select(Creators.id)
            .where(
                Creators.role == CreatorRole.CREATOR.value,
                Creators.status == CreatorStatus.ACTIVE.value,
            )
            .order_by(Creators.id)
        )
        return list(session.scalars(stmt).all())

    @staticmethod
    def _earning_videos(session: Session, creator_id: str) -> list[VideoAccruals]:
        stmt: Select[tuple[VideoAccruals]] = (
            select(VideoAccruals)
            .where(
                VideoAccruals.creator_id == creator_id,
                VideoAccruals.is_active.is_(True),
                VideoAccruals.period_earnings > 0,
            )
            .order_by(VideoAccruals.video_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(session.scalars(stmt).all())

    @staticmethod
    def _report_exists(session: Session, creator_id: str, period: str) -> bool:
        stmt = select(MonthlyReports.report_id).where(
            MonthlyReports.creator_id == creator_id,
            MonthlyReports.period == period,
        )
        return session.scalar(stmt) is not None

    # ------------------------------------------------------------------
    # Core generation
    # ------------------------------------------------------------------

    def run(self, period: str | None = None, now: datetime | None = None) -> ReportGenerationResult:
        """Generate reports for every active creator. Defaults to the month before ``now``."""
        now = now or utc_now()
        target: str = validate_period(period) if period else previous_period(now)
        run_id: str = self.runner.start_run(RunType.REPORT_GENERATION, target)

        try:
            with self.runner.scope() as session:
                creator_ids: list[str] = self._eligible_creator_ids(session)
            results: BatchResult = self.runner.run(
                creator_ids,
                lambda s, cid: self._generate_unit(s, cid, target, now, run_id),
                benign=(DuplicateReportError,),
            )
        except Exception as e:
            logger.exception("Report generation failed", run_id=run_id, period=target)
            self.runner.finish_run(run_id, error=e)
            raise

        self.runner.finish_run(run_id, results)
        logger.info(
            "Report generation complete",
            run_id=run_id,
            period=target,
            total_payout=str(results.total_amount),
            **results.tally(),
        )
        return ReportGenerationResult(run_id=run_id, period=target, results=results)

    def generate_for_creator(
        self, creator_id: str, period: str, now: datetime | None = None
    ) -> MonthlyReports | None:
        """Single-creator generation. Raises DuplicateReportError if already generated.

        Returns None when the creator earned nothing in the period.
        """
        target: str = validate_period(period)
        if self.session.get(Creators, creator_id) is None:
            raise NotFoundError(f"Creator {creator_id} not found")
        with atomic(self.session):
            outcome: UnitOutcome = self._generate_unit(
                self.session, creator_id, target, now or utc_now(), None
            )
        if outcome.skipped:
            return None
        return self.session.get(MonthlyReports, report_id_for(creator_id, target))

    def _generate_unit(
        self,
        session: Session,
        creator_id: str,
        period: str,
        now: datetime,
        run_id: str | None,
    ) -> UnitOutcome:
        if self._report_exists(session, creator_id, period):
            raise DuplicateReportError(f"Report for {creator_id} {period} already exists")

        videos: list[VideoAccruals] = self._earning_videos(session, creator_id)
        total: Decimal = to_money(sum((v.period_earnings for v in videos), Decimal(0)))
        if total <= 0:
            return UnitOutcome(skipped=True, reason="no_earnings")

        breakdown: list[VideoBreakdownItem] = [
            VideoBreakdownItem(
                video_id=v.video_id,
                title=v.title,
                views=v.period_views,
                premium_views=v.period_premium_views,
                earnings=str(v.period_earnings),
            )
            for v in videos
        ]
        report_id: str = report_id_for(creator_id, period)
        report: MonthlyReports = MonthlyReports(
            report_id=report_id,
            creator_id=creator_id,
            period=period,
            payout_amount=total,
            status=ReportStatus.LOCKED.value,
            locked_until=to_iso(now + timedelta(days=self.settings.lock_period_days)),
            video_breakdown=dump_json(breakdown),
            video_count=len(videos),
            total_views=sum(v.period_views for v in videos),
            total_premium_views=sum(v.period_premium_views for v in videos),
            run_id=run_id,
            created_at=to_iso(now),
        )
        try:
            with session.begin_nested():
                session.add(report)
        except IntegrityError as e:
            raise DuplicateReportError(
                f"Report for {creator_id} {period} already exists"
            ) from e

        LedgerService(session).credit_locked(creator_id, total, target_id=report_id)

        for v in videos:
            v.period_earnings = Decimal(0)
            v.period_views = 0
            v.period_premium_views = 0
            v.updated_at = to_iso(now)
        session.flush()

        AuditLogService(session).record(
            AuditAction.REPORT_GENERATED,
            SYSTEM_ACTOR,
            report_id,
            creator_id=creator_id,
            amount=total,
            after={
                "period": period,
                "payout_amount": str(total),
                "locked_until": report.locked_until,
                "video_count": len(videos),
            },
        )
        NotificationOutbox(session).notify(
            creator_id,
            NotificationKind.REPORT_GENERATED,
            {
                "period": period,
                "amount": str(total),
                "report_id": report_id,
                "locked_until": report.locked_until,
            },
        )
        logger.info(
            "Report generated",
            creator_id=creator_id,
            report_id=report_id,
            period=period,
            amount=str(total),
        )
        return UnitOutcome(amount=total)
