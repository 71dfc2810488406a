"""Consistency sweep: recompute every ledger from reports and withdrawals.

Read-only with respect to balances. Mismatches are reported, never corrected;
each one means a bug and needs an audit-log review.
"""

from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.enums import ReportStatus, RunType, WithdrawalStatus
from db.models import CreatorLedgers, MonthlyReports, WithdrawalRequests
from payouts.services._types import BatchFailure, LedgerMismatch
from payouts.services.batch import BatchRunner
from payouts.services.ledger import buckets_balance
from payouts.services.schemas.results import BatchResult, ReconciliationResult

logger = structlog.get_logger(__name__)

ZERO: Decimal = Decimal(0)


class ReconciliationService:
    def __init__(self, session: Session) -> None:
        self.session: Session = session
        self.runner: BatchRunner = BatchRunner(session)

    def _report_sums(self) -> dict[tuple[str, str], Decimal]:
        rows = self.session.execute(
            select(
                MonthlyReports.creator_id,
                MonthlyReports.status,
                func.sum(MonthlyReports.payout_amount),
            ).group_by(MonthlyReports.creator_id, MonthlyReports.status)
        ).all()
        return {(cid, status): Decimal(str(amount)) for cid, status, amount in rows}

    def _approved_withdrawals(self) -> dict[str, Decimal]:
        rows = self.session.execute(
            select(WithdrawalRequests.creator_id, func.sum(WithdrawalRequests.amount))
            .where(WithdrawalRequests.status == WithdrawalStatus.APPROVED.value)
            .group_by(WithdrawalRequests.creator_id)
        ).all()
        return {cid: Decimal(str(amount)) for cid, amount in rows}

    def check_ledger(
        self,
        ledger: CreatorLedgers,
        report_sums: dict[tuple[str, str], Decimal],
        withdrawn: dict[str, Decimal],
    ) -> list[LedgerMismatch]:
        cid: str = ledger.creator_id
        locked: Decimal = report_sums.get((cid, ReportStatus.LOCKED.value), ZERO)
        unlocked: Decimal = report_sums.get((cid, ReportStatus.UNLOCKED.value), ZERO)
        approved: Decimal = withdrawn.get(cid, ZERO)

        expected: list[tuple[str, Decimal, Decimal]] = [
            ("total_earnings", locked + unlocked, ledger.total_earnings),
            ("locked_balance", locked, ledger.locked_balance),
            ("available_balance", unlocked - approved, ledger.available_balance),
            ("total_withdrawn", approved, ledger.total_withdrawn),
        ]
        mismatches: list[LedgerMismatch] = [
            LedgerMismatch(creator_id=cid, check=name, expected=str(want), actual=str(got))
            for name, want, got in expected
            if want != got
        ]
        if not buckets_balance(ledger):
            mismatches.append(
                LedgerMismatch(
                    creator_id=cid,
                    check="bucket_sum",
                    expected=str(ledger.total_earnings),
                    actual=str(
                        ledger.locked_balance + ledger.available_balance + ledger.total_withdrawn
                    ),
                )
            )
        for name, _, got in expected:
            if got < ZERO:
                mismatches.append(
                    LedgerMismatch(
                        creator_id=cid, check=f"{name}_negative", expected="0", actual=str(got)
                    )
                )
        return mismatches

    def run(self, creator_id: str | None = None) -> ReconciliationResult:
        run_id: str = self.runner.start_run(RunType.CONSISTENCY_CHECK)
        stmt = select(CreatorLedgers).order_by(CreatorLedgers.creator_id)
        if creator_id:
            stmt = stmt.where(CreatorLedgers.creator_id == creator_id)
        ledgers: list[CreatorLedgers] = list(self.session.scalars(stmt).all())
        report_sums = self._report_sums()
        withdrawn = self._approved_withdrawals()

        mismatches: list[LedgerMismatch] = []
        tally: BatchResult = BatchResult()
        for ledger in ledgers:
            found: list[LedgerMismatch] = self.check_ledger(ledger, report_sums, withdrawn)
            if found:
                for m in found:
                    logger.error("Ledger mismatch", **m)
                mismatches.extend(found)
                tally.failed.append(
                    BatchFailure(
                        id=ledger.creator_id,
                        error=f"{len(found)} mismatches",
                        code="ledger_mismatch",
                    )
                )
            else:
                tally.succeeded.append(ledger.creator_id)

        self.runner.finish_run(run_id, tally)
        logger.info(
            "Consistency check complete",
            run_id=run_id,
            creators_checked=len(ledgers),
            mismatches=len(mismatches),
        )
        return ReconciliationResult(
            run_id=run_id, creators_checked=len(ledgers), mismatches=mismatches
        )
