"""Withdrawal requests: creator submission, operator approve/reject, bulk processing.

A request moves ``pending -> approved`` or ``pending -> rejected`` exactly once,
claimed with ``UPDATE ... WHERE status = 'pending'``. Approval debits the
ledger in the same transaction as the claim; rejection never touches it.
"""

from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal, InvalidOperation

import structlog
from sqlalchemy import Select, func, select, update
from sqlalchemy.orm import Session

from config import PayoutSettings, get_settings
from db.enums import (
    AuditAction,
    BulkAction,
    NotificationKind,
    WithdrawalMethod,
    WithdrawalStatus,
)
from db.models import WithdrawalRequests
from payouts.services._helpers import dump_json, load_json, new_id, now_iso, to_cents
from payouts.services._tx import atomic
from payouts.services._types import BucketStatsDict, WithdrawalDict, WithdrawalStatsDict
from payouts.services.audit import AuditLogService
from payouts.services.batch import BatchRunner, SessionFactory
from payouts.services.creators import CreatorService
from payouts.services.errors import (
    AlreadyProcessedError,
    InsufficientAvailableError,
    InvalidAmountError,
    InvalidWithdrawalError,
    NotFoundError,
    PayoutDispatchError,
)
from payouts.services.ledger import LedgerService
from payouts.services.notifications import NotificationOutbox
from payouts.services.schemas.results import BatchResult, UnitOutcome

logger = structlog.get_logger(__name__)

# Hands an approved request to the (manual, external) payment step.
PayoutDispatcher = Callable[[WithdrawalRequests], None]

REQUIRED_DETAILS: dict[WithdrawalMethod, tuple[str, ...]] = {
    WithdrawalMethod.PAYPAL: ("paypal_email",),
    WithdrawalMethod.BANK: ("bank_name", "account_number", "routing_number"),
}


def withdrawal_to_dict(w: WithdrawalRequests) -> WithdrawalDict:
    return WithdrawalDict(
        request_id=w.request_id,
        creator_id=w.creator_id,
        amount=str(w.amount),
        method=w.method,
        status=w.status,
        available_at_request=str(w.available_at_request),
        requested_at=w.requested_at,
        processed_at=w.processed_at,
        processed_by=w.processed_by,
        rejection_reason=w.rejection_reason,
        receipt_url=w.receipt_url,
    )


class WithdrawalProcessor:
    def __init__(
        self,
        session: Session,
        settings: PayoutSettings | None = None,
        session_factory: SessionFactory | None = None,
        dispatcher: PayoutDispatcher | None = None,
    ) -> None:
        self.session: Session = session
        self.settings: PayoutSettings = settings or get_settings().payout
        self.session_factory: SessionFactory | None = session_factory
        self.dispatcher: PayoutDispatcher | None = dispatcher

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_amount(self, amount: Decimal | int | str) -> Decimal:
        try:
            value: Decimal = to_cents(amount)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmountError(f"Invalid amount: {amount!r}")
        if not value.is_finite() or value <= 0:
            raise InvalidAmountError(f"Amount must be positive, got {amount}")
        if value < self.settings.minimum_withdrawal:
            raise InvalidWithdrawalError(
                f"Minimum withdrawal is {self.settings.minimum_withdrawal}, got {value}"
            )
        return value

    def _validate_method(
        self, method: str, details: Mapping[str, object] | None
    ) -> tuple[WithdrawalMethod, dict[str, str]]:
        try:
            wm: WithdrawalMethod = WithdrawalMethod(method)
        except ValueError:
            raise InvalidWithdrawalError(f"Unsupported withdrawal method '{method}'")
        if wm.value not in self.settings.withdrawal_methods:
            raise InvalidWithdrawalError(f"Withdrawal method '{method}' is disabled")

        given: dict[str, str] = {
            k: str(v).strip() for k, v in (details or {}).items() if v is not None
        }
        missing: list[str] = [k for k in REQUIRED_DETAILS[wm] if not given.get(k)]
        if missing:
            raise InvalidWithdrawalError(
                f"Missing payment details for {wm.value}: {', '.join(missing)}"
            )
        return wm, {k: given[k] for k in REQUIRED_DETAILS[wm]}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> WithdrawalRequests:
        req: WithdrawalRequests | None = self.session.get(WithdrawalRequests, request_id)
        if req is None:
            raise NotFoundError(f"Withdrawal request {request_id} not found")
        return req

    def _claim(
        self,
        request_id: str,
        expected: WithdrawalStatus,
        new_status: WithdrawalStatus,
        **values: object,
    ) -> None:
        result = self.session.execute(
            update(WithdrawalRequests)
            .where(
                WithdrawalRequests.request_id == request_id,
                WithdrawalRequests.status == expected.value,
            )
            .values(status=new_status.value, updated_at=now_iso(), **values)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise AlreadyProcessedError(
                f"Withdrawal request {request_id} is no longer {expected.value}"
            )

    # ------------------------------------------------------------------
    # Creator-facing
    # ------------------------------------------------------------------

    def request_withdrawal(
        self,
        creator_id: str,
        amount: Decimal | int | str,
        method: str,
        details: Mapping[str, object] | None = None,
    ) -> WithdrawalRequests:
        """Create a pending request. Balance is checked, not reserved."""
        value: Decimal = self._validate_amount(amount)
        wm, payment_details = self._validate_method(method, details)

        with atomic(self.session):
            CreatorService(self.session).require_active_creator(creator_id)
            ledger = LedgerService(self.session).get_ledger(creator_id)
            available: Decimal = ledger.available_balance
            if value > available:
                raise InsufficientAvailableError(
                    f"Requested {value} exceeds available balance {available}"
                )
            ts: str = now_iso()
            req: WithdrawalRequests = WithdrawalRequests(
                request_id=new_id(),
                creator_id=creator_id,
                amount=value,
                method=wm.value,
                payment_details=dump_json(payment_details),
                status=WithdrawalStatus.PENDING.value,
                available_at_request=available,
                requested_at=ts,
                updated_at=ts,
            )
            self.session.add(req)
            self.session.flush()
            AuditLogService(self.session).record(
                AuditAction.WITHDRAWAL_REQUESTED,
                creator_id,
                req.request_id,
                creator_id=creator_id,
                amount=value,
                after={"status": req.status, "method": req.method},
            )
        logger.info(
            "Withdrawal requested",
            request_id=req.request_id,
            creator_id=creator_id,
            amount=str(value),
            method=wm.value,
        )
        return req

    def list_withdrawals(
        self,
        creator_id: str | None = None,
        status: WithdrawalStatus | None = None,
        method: WithdrawalMethod | None = None,
        limit: int = 500,
    ) -> list[WithdrawalDict]:
        stmt: Select[tuple[WithdrawalRequests]] = select(WithdrawalRequests)
        if creator_id:
            stmt = stmt.where(WithdrawalRequests.creator_id == creator_id)
        if status is not None:
            stmt = stmt.where(WithdrawalRequests.status == status.value)
        if method is not None:
            stmt = stmt.where(WithdrawalRequests.method == method.value)
        stmt = stmt.order_by(WithdrawalRequests.requested_at.desc()).limit(limit)
        return [withdrawal_to_dict(w) for w in self.session.scalars(stmt).all()]

    def payment_details(self, request_id: str) -> dict[str, object]:
        return load_json(self.get_request(request_id).payment_details) or {}

    # ------------------------------------------------------------------
    # Operator-facing
    # ------------------------------------------------------------------

    def approve(self, request_id: str, operator_id: str) -> WithdrawalRequests:
        """Debit the ledger and mark approved, in one transaction.

        On InsufficientAvailableError the request stays pending.
        When the processor was built with a ``dispatcher`` (a library-level hook for
        embedding code; the API and CLI do not set one), it is called after commit.
        A dispatcher failure reverts the approval and raises PayoutDispatchError.
        """
        with atomic(self.session):
            req: WithdrawalRequests = self.get_request(request_id)
            if req.status != WithdrawalStatus.PENDING.value:
                raise AlreadyProcessedError(f"Withdrawal request {request_id} is {req.status}")
            ts: str = now_iso()
            self._claim(
                request_id,
                WithdrawalStatus.PENDING,
                WithdrawalStatus.APPROVED,
                processed_at=ts,
                processed_by=operator_id,
            )
            LedgerService(self.session).debit_available(
                req.creator_id, req.amount, actor_id=operator_id, target_id=request_id
            )
            AuditLogService(self.session).record(
                AuditAction.WITHDRAWAL_APPROVED,
                operator_id,
                request_id,
                creator_id=req.creator_id,
                amount=req.amount,
                before={"status": WithdrawalStatus.PENDING.value},
                after={"status": WithdrawalStatus.APPROVED.value, "processed_at": ts},
            )

        if self.dispatcher is not None:
            try:
                self.dispatcher(req)
            except Exception as e:
                logger.exception("Payout dispatch failed", request_id=request_id)
                self._revert_approval(req, operator_id)
                raise PayoutDispatchError(
                    f"Payout dispatch failed for {request_id}; approval reverted"
                ) from e

        with atomic(self.session):
            NotificationOutbox(self.session).notify(
                req.creator_id,
                NotificationKind.WITHDRAWAL_APPROVED,
                {"request_id": request_id, "amount": str(req.amount), "method": req.method},
            )
        logger.info(
            "Withdrawal approved",
            request_id=request_id,
            creator_id=req.creator_id,
            amount=str(req.amount),
            operator_id=operator_id,
        )
        return req

    def _revert_approval(self, req: WithdrawalRequests, operator_id: str) -> None:
        with atomic(self.session):
            self._claim(
                req.request_id,
                WithdrawalStatus.APPROVED,
                WithdrawalStatus.PENDING,
                processed_at=None,
                processed_by=None,
            )
            LedgerService(self.session).reverse_debit(
                req.creator_id, req.amount, actor_id=operator_id, target_id=req.request_id
            )
            AuditLogService(self.session).record(
                AuditAction.WITHDRAWAL_REVERSED,
                operator_id,
                req.request_id,
                creator_id=req.creator_id,
                amount=req.amount,
                before={"status": WithdrawalStatus.APPROVED.value},
                after={"status": WithdrawalStatus.PENDING.value},
            )

    def reject(self, request_id: str, operator_id: str, reason: str) -> WithdrawalRequests:
        """Mark rejected. Funds stay available for a new request."""
        if not (reason or "").strip():
            raise InvalidWithdrawalError("A rejection reason is required")
        with atomic(self.session):
            req: WithdrawalRequests = self.get_request(request_id)
            if req.status != WithdrawalStatus.PENDING.value:
                raise AlreadyProcessedError(f"Withdrawal request {request_id} is {req.status}")
            ts: str = now_iso()
            self._claim(
                request_id,
                WithdrawalStatus.PENDING,
                WithdrawalStatus.REJECTED,
                processed_at=ts,
                processed_by=operator_id,
                rejection_reason=reason.strip(),
            )
            AuditLogService(self.session).record(
                AuditAction.WITHDRAWAL_REJECTED,
                operator_id,
                request_id,
                creator_id=req.creator_id,
                amount=req.amount,
                before={"status": WithdrawalStatus.PENDING.value},
                after={"status": WithdrawalStatus.REJECTED.value, "reason": reason.strip()},
            )
            NotificationOutbox(self.session).notify(
                req.creator_id,
                NotificationKind.WITHDRAWAL_REJECTED,
                {"request_id": request_id, "amount": str(req.amount), "reason": reason.strip()},
            )
        logger.info("Withdrawal rejected", request_id=request_id, operator_id=operator_id)
        return req

    def bulk_process(
        self,
        request_ids: Iterable[str],
        action: BulkAction,
        operator_id: str,
        reason: str | None = None,
    ) -> BatchResult:
        """Approve or reject each id independently and report per id."""
        if action == BulkAction.REJECT and not (reason or "").strip():
            raise InvalidWithdrawalError("A rejection reason is required")

        def unit(session: Session, request_id: str) -> UnitOutcome:
            processor = WithdrawalProcessor(session, self.settings, dispatcher=self.dispatcher)
            if action == BulkAction.APPROVE:
                req = processor.approve(request_id, operator_id)
            else:
                req = processor.reject(request_id, operator_id, reason or "")
            return UnitOutcome(amount=req.amount)

        runner = BatchRunner(
            self.session, self.session_factory, self.settings.max_parallel_creators
        )
        result: BatchResult = runner.run(request_ids, unit)
        logger.info(
            "Bulk withdrawal processing complete",
            action=action.value,
            operator_id=operator_id,
            **result.tally(),
        )
        return result

    def attach_receipt(
        self, request_id: str, receipt_url: str, operator_id: str
    ) -> WithdrawalRequests:
        with atomic(self.session):
            req: WithdrawalRequests = self.get_request(request_id)
            if req.status != WithdrawalStatus.APPROVED.value:
                raise InvalidWithdrawalError(
                    f"Receipts need an approved request, {request_id} is {req.status}"
                )
            req.receipt_url = receipt_url
            req.updated_at = now_iso()
            self.session.flush()
        logger.info("Receipt attached", request_id=request_id, operator_id=operator_id)
        return req

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def withdrawal_stats(self) -> WithdrawalStatsDict:
        def buckets(column) -> dict[str, BucketStatsDict]:
            rows = self.session.execute(
                select(
                    column,
                    func.count(WithdrawalRequests.request_id),
                    func.coalesce(func.sum(WithdrawalRequests.amount), 0),
                ).group_by(column)
            ).all()
            return {
                key: BucketStatsDict(count=int(count), amount=str(to_cents(amount)))
                for key, count, amount in rows
            }

        return WithdrawalStatsDict(
            by_status=buckets(WithdrawalRequests.status),
            by_method=buckets(WithdrawalRequests.method),
        )
