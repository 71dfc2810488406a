"""Read models over monthly reports."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from db.enums import ReportStatus
from db.models import MonthlyReports
from payouts.services._helpers import MONEY_QUANT, load_json_list, to_iso, utc_now
from payouts.services._types import ReportDict, ReportStatsDict
from payouts.services.errors import NotFoundError


def report_to_dict(r: MonthlyReports) -> ReportDict:
    return ReportDict(
        report_id=r.report_id,
        creator_id=r.creator_id,
        period=r.period,
        payout_amount=str(r.payout_amount),
        status=r.status,
        locked_until=r.locked_until,
        unlocked_at=r.unlocked_at,
        unlocked_by=r.unlocked_by,
        video_breakdown=load_json_list(r.video_breakdown),
        video_count=r.video_count,
        total_views=r.total_views,
        total_premium_views=r.total_premium_views,
        created_at=r.created_at,
    )


class ReportService:
    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def get_report(self, report_id: str) -> MonthlyReports:
        report: MonthlyReports | None = self.session.get(MonthlyReports, report_id)
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        return report

    def list_reports(
        self,
        creator_id: str | None = None,
        status: ReportStatus | None = None,
        period: str | None = None,
        limit: int = 500,
    ) -> list[ReportDict]:
        stmt: Select[tuple[MonthlyReports]] = select(MonthlyReports)
        if creator_id:
            stmt = stmt.where(MonthlyReports.creator_id == creator_id)
        if status is not None:
            stmt = stmt.where(MonthlyReports.status == status.value)
        if period:
            stmt = stmt.where(MonthlyReports.period == period)
        stmt = stmt.order_by(MonthlyReports.period.desc(), MonthlyReports.creator_id).limit(limit)
        return [report_to_dict(r) for r in self.session.scalars(stmt).all()]

    def ready_to_unlock_ids(self, now: datetime | None = None) -> list[str]:
        stmt: Select[tuple[str]] = (
            select(MonthlyReports.report_id)
            .where(
                MonthlyReports.status == ReportStatus.LOCKED.value,
                MonthlyReports.locked_until <= to_iso(now or utc_now()),
            )
            .order_by(MonthlyReports.locked_until)
        )
        return list(self.session.scalars(stmt).all())

    def reports_ready_to_unlock(self, now: datetime | None = None) -> list[ReportDict]:
        stmt: Select[tuple[MonthlyReports]] = (
            select(MonthlyReports)
            .where(
                MonthlyReports.status == ReportStatus.LOCKED.value,
                MonthlyReports.locked_until <= to_iso(now or utc_now()),
            )
            .order_by(MonthlyReports.locked_until)
        )
        return [report_to_dict(r) for r in self.session.scalars(stmt).all()]

    def report_stats(self, now: datetime | None = None) -> ReportStatsDict:
        rows = self.session.execute(
            select(
                MonthlyReports.status,
                func.count(MonthlyReports.report_id),
                func.coalesce(func.sum(MonthlyReports.payout_amount), 0),
            ).group_by(MonthlyReports.status)
        ).all()
        counts: dict[str, int] = {}
        amounts: dict[str, Decimal] = {}
        for status, count, amount in rows:
            counts[status] = int(count)
            amounts[status] = Decimal(str(amount))

        total: int = sum(counts.values())
        total_amount: Decimal = sum(amounts.values(), Decimal(0))
        average: Decimal = (total_amount / total).quantize(MONEY_QUANT) if total else Decimal(0)
        return ReportStatsDict(
            total_reports=total,
            locked_reports=counts.get(ReportStatus.LOCKED.value, 0),
            unlocked_reports=counts.get(ReportStatus.UNLOCKED.value, 0),
            total_locked_amount=str(amounts.get(ReportStatus.LOCKED.value, Decimal(0))),
            total_unlocked_amount=str(amounts.get(ReportStatus.UNLOCKED.value, Decimal(0))),
            ready_to_unlock=len(self.ready_to_unlock_ids(now)),
            average_payout=str(average),
        )
