"""Tests for payouts.services.withdrawals."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from config import PayoutSettings
from db.enums import (
    AuditAction,
    BulkAction,
    CreatorRole,
    CreatorStatus,
    NotificationKind,
    WithdrawalStatus,
)
from db.models import CreatorLedgers, NotificationRequests, WithdrawalRequests
from payouts.services.accrual import AccrualStore
from payouts.services.audit import AuditLogService
from payouts.services.creators import CreatorService
from payouts.services.errors import (
    AlreadyProcessedError,
    InsufficientAvailableError,
    InvalidAmountError,
    InvalidWithdrawalError,
    PayoutDispatchError,
)
from payouts.services.ledger import LedgerService, buckets_balance
from payouts.services.lock_unlocker import LockUnlocker
from payouts.services.report_generator import ReportGenerator
from payouts.services.schemas.results import BatchResult
from payouts.services.withdrawals import WithdrawalProcessor

CLOSE: datetime = datetime(2026, 2, 1, tzinfo=UTC)
PAYPAL: dict[str, str] = {"paypal_email": "alice@example.com"}
BANK: dict[str, str] = {
    "bank_name": "First Bank",
    "account_number": "000123",
    "routing_number": "110000000",
}


def _fund(session: Session, settings: PayoutSettings, creator_id: str, amount: str) -> None:
    """Give ``creator_id`` an available balance through a real report cycle."""
    CreatorService(session).register_creator(creator_id.title(), creator_id=creator_id)
    store: AccrualStore = AccrualStore(session)
    store.register_video(f"{creator_id}-v", creator_id)
    store.record_accrual(f"{creator_id}-v", Decimal(amount), 100, 0)
    ReportGenerator(session, settings).generate_for_creator(creator_id, "2026-01", now=CLOSE)
    LockUnlocker(session, settings).sweep(now=CLOSE + timedelta(days=settings.lock_period_days))


def _ledger(session: Session, creator_id: str) -> CreatorLedgers:
    return LedgerService(session).get_ledger(creator_id)


class TestScenarioC:
    def test_request_then_approve(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "12.50")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)

        req: WithdrawalRequests = processor.request_withdrawal("alice", "10.00", "paypal", PAYPAL)
        assert req.status == WithdrawalStatus.PENDING.value
        assert req.available_at_request == Decimal("12.50")
        # Requesting reserves nothing.
        assert _ledger(session, "alice").available_balance == Decimal("12.50")

        approved: WithdrawalRequests = processor.approve(req.request_id, "op-1")

        assert approved.status == WithdrawalStatus.APPROVED.value
        assert approved.processed_by == "op-1"
        ledger: CreatorLedgers = _ledger(session, "alice")
        assert ledger.available_balance == Decimal("2.50")
        assert ledger.total_withdrawn == Decimal("10.00")
        assert buckets_balance(ledger)

        queued: list[NotificationRequests] = list(
            session.scalars(
                select(NotificationRequests).where(
                    NotificationRequests.kind == NotificationKind.WITHDRAWAL_APPROVED.value
                )
            ).all()
        )
        assert [n.creator_id for n in queued] == ["alice"]

    def test_audit_trail(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "12.50")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        req: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)
        processor.approve(req.request_id, "op-1")

        actions: list[str] = [
            e["action"] for e in AuditLogService(session).trail(target_id=req.request_id)
        ]
        assert actions == [
            AuditAction.WITHDRAWAL_REQUESTED.value,
            AuditAction.DEBIT_AVAILABLE.value,
            AuditAction.WITHDRAWAL_APPROVED.value,
        ]


class TestScenarioD:
    def test_approval_rechecks_balance(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "15.00")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        first: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)
        second: WithdrawalRequests = processor.request_withdrawal("alice", "10", "bank", BANK)
        processor.approve(second.request_id, "op-2")
        assert _ledger(session, "alice").available_balance == Decimal("5.00")

        with pytest.raises(InsufficientAvailableError):
            processor.approve(first.request_id, "op-1")

        still: WithdrawalRequests = processor.get_request(first.request_id)
        assert still.status == WithdrawalStatus.PENDING.value
        assert still.processed_at is None
        ledger: CreatorLedgers = _ledger(session, "alice")
        assert ledger.available_balance == Decimal("5.00")
        assert ledger.total_withdrawn == Decimal("10.00")


class TestRequestValidation:
    @pytest.mark.parametrize("amount", ["0", "-1", "abc"])
    def test_bad_amount(
        self, session: Session, payout_settings: PayoutSettings, amount: str
    ) -> None:
        _fund(session, payout_settings, "alice", "20")
        with pytest.raises(InvalidAmountError):
            WithdrawalProcessor(session, payout_settings).request_withdrawal(
                "alice", amount, "paypal", PAYPAL
            )

    def test_below_minimum(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "20")
        with pytest.raises(InvalidWithdrawalError, match="Minimum"):
            WithdrawalProcessor(session, payout_settings).request_withdrawal(
                "alice", "4.99", "paypal", PAYPAL
            )

    def test_exceeds_available(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "20")
        with pytest.raises(InsufficientAvailableError):
            WithdrawalProcessor(session, payout_settings).request_withdrawal(
                "alice", "20.01", "paypal", PAYPAL
            )

    def test_amount_rounded_to_cents(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "20")
        req: WithdrawalRequests = WithdrawalProcessor(session, payout_settings).request_withdrawal(
            "alice", "10.005", "paypal", PAYPAL
        )
        assert req.amount == Decimal("10.01")

    def test_unknown_method(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "20")
        with pytest.raises(InvalidWithdrawalError, match="Unsupported"):
            WithdrawalProcessor(session, payout_settings).request_withdrawal(
                "alice", "10", "crypto", {}
            )

    def test_disabled_method(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "20")
        settings: PayoutSettings = payout_settings.model_copy(
            update={"withdrawal_methods": ["paypal"]}
        )
        with pytest.raises(InvalidWithdrawalError, match="disabled"):
            WithdrawalProcessor(session, settings).request_withdrawal("alice", "10", "bank", BANK)

    def test_missing_bank_details(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "20")
        with pytest.raises(InvalidWithdrawalError, match="routing_number"):
            WithdrawalProcessor(session, payout_settings).request_withdrawal(
                "alice", "10", "bank", {"bank_name": "First Bank", "account_number": "1"}
            )

    def test_only_required_details_stored(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "20")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        req: WithdrawalRequests = processor.request_withdrawal(
            "alice", "10", "paypal", {**PAYPAL, "note": "thanks"}
        )
        assert processor.payment_details(req.request_id) == PAYPAL

    def test_inactive_creator(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "20")
        CreatorService(session).set_status("alice", CreatorStatus.INACTIVE)
        with pytest.raises(InvalidWithdrawalError):
            WithdrawalProcessor(session, payout_settings).request_withdrawal(
                "alice", "10", "paypal", PAYPAL
            )

    def test_admin_cannot_request(self, session: Session, payout_settings: PayoutSettings) -> None:
        CreatorService(session).register_creator("Ops", creator_id="ops", role=CreatorRole.ADMIN)
        with pytest.raises(InvalidWithdrawalError):
            WithdrawalProcessor(session, payout_settings).request_withdrawal(
                "ops", "10", "paypal", PAYPAL
            )


class TestTerminality:
    def test_reject_keeps_funds(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "20")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        req: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)

        rejected: WithdrawalRequests = processor.reject(req.request_id, "op-1", "  bad email ")

        assert rejected.status == WithdrawalStatus.REJECTED.value
        assert rejected.rejection_reason == "bad email"
        ledger: CreatorLedgers = _ledger(session, "alice")
        assert ledger.available_balance == Decimal("20")
        assert ledger.total_withdrawn == 0

    def test_reject_needs_reason(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "20")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        req: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)
        with pytest.raises(InvalidWithdrawalError):
            processor.reject(req.request_id, "op-1", "   ")
        assert processor.get_request(req.request_id).status == WithdrawalStatus.PENDING.value

    def test_no_second_transition(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "40")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        approved: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)
        rejected: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)
        processor.approve(approved.request_id, "op-1")
        processor.reject(rejected.request_id, "op-1", "duplicate")

        with pytest.raises(AlreadyProcessedError):
            processor.approve(approved.request_id, "op-1")
        with pytest.raises(AlreadyProcessedError):
            processor.reject(approved.request_id, "op-1", "late")
        with pytest.raises(AlreadyProcessedError):
            processor.approve(rejected.request_id, "op-1")

        ledger: CreatorLedgers = _ledger(session, "alice")
        assert ledger.total_withdrawn == Decimal("10")
        assert ledger.available_balance == Decimal("30")


class TestBulkProcess:
    def test_partial_failures_reported_per_id(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "15")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        ids: list[str] = [
            processor.request_withdrawal("alice", "10", "paypal", PAYPAL).request_id
            for _ in range(3)
        ]
        processor.reject(ids[0], "op-1", "fraud check")

        result: BatchResult = processor.bulk_process(ids, BulkAction.APPROVE, "op-2")

        assert result.succeeded == [ids[1]]
        codes: dict[str, str] = {f["id"]: f["code"] for f in result.failed}
        assert codes == {ids[0]: "already_processed", ids[2]: "insufficient_available"}
        assert result.total_amount == Decimal("10")
        assert processor.get_request(ids[2]).status == WithdrawalStatus.PENDING.value
        assert _ledger(session, "alice").available_balance == Decimal("5")

    def test_bulk_reject(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "25")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        ids: list[str] = [
            processor.request_withdrawal("alice", "10", "paypal", PAYPAL).request_id
            for _ in range(2)
        ]
        result: BatchResult = processor.bulk_process(
            [*ids, "missing"], BulkAction.REJECT, "op-1", "batch cleanup"
        )
        assert sorted(result.succeeded) == sorted(ids)
        assert [f["code"] for f in result.failed] == ["not_found"]

    def test_bulk_reject_needs_reason(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        with pytest.raises(InvalidWithdrawalError):
            WithdrawalProcessor(session, payout_settings).bulk_process(
                ["x"], BulkAction.REJECT, "op-1"
            )


class TestDispatch:
    def test_failed_dispatch_reverts_approval(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "20")

        def broken(_: WithdrawalRequests) -> None:
            raise ConnectionError("gateway down")

        processor: WithdrawalProcessor = WithdrawalProcessor(
            session, payout_settings, dispatcher=broken
        )
        req: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)

        with pytest.raises(PayoutDispatchError):
            processor.approve(req.request_id, "op-1")

        reverted: WithdrawalRequests = processor.get_request(req.request_id)
        assert reverted.status == WithdrawalStatus.PENDING.value
        assert reverted.processed_by is None
        ledger: CreatorLedgers = _ledger(session, "alice")
        assert ledger.available_balance == Decimal("20")
        assert ledger.total_withdrawn == 0
        actions: list[str] = [
            e["action"] for e in AuditLogService(session).trail(target_id=req.request_id)
        ]
        assert actions[-2:] == [
            AuditAction.REVERSE_DEBIT.value,
            AuditAction.WITHDRAWAL_REVERSED.value,
        ]

    def test_dispatcher_sees_approved_request(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "20")
        seen: list[str] = []
        processor: WithdrawalProcessor = WithdrawalProcessor(
            session, payout_settings, dispatcher=lambda r: seen.append(r.status)
        )
        req: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)
        processor.approve(req.request_id, "op-1")
        assert seen == [WithdrawalStatus.APPROVED.value]


class TestReceiptsAndStats:
    def test_receipt_only_on_approved(
        self, session: Session, payout_settings: PayoutSettings
    ) -> None:
        _fund(session, payout_settings, "alice", "20")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        req: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)
        with pytest.raises(InvalidWithdrawalError):
            processor.attach_receipt(req.request_id, "https://files/r.pdf", "op-1")

        processor.approve(req.request_id, "op-1")
        done: WithdrawalRequests = processor.attach_receipt(
            req.request_id, "https://files/r.pdf", "op-1"
        )
        assert done.receipt_url == "https://files/r.pdf"

    def test_stats_and_listing(self, session: Session, payout_settings: PayoutSettings) -> None:
        _fund(session, payout_settings, "alice", "50")
        processor: WithdrawalProcessor = WithdrawalProcessor(session, payout_settings)
        a: WithdrawalRequests = processor.request_withdrawal("alice", "10", "paypal", PAYPAL)
        processor.request_withdrawal("alice", "15", "bank", BANK)
        processor.approve(a.request_id, "op-1")

        stats = processor.withdrawal_stats()
        assert stats["by_status"]["approved"] == {"count": 1, "amount": "10.00"}
        assert stats["by_status"]["pending"] == {"count": 1, "amount": "15.00"}
        assert set(stats["by_method"]) == {"paypal", "bank"}

        pending = processor.list_withdrawals(creator_id="alice", status=WithdrawalStatus.PENDING)
        assert [Decimal(w["amount"]) for w in pending] == [Decimal("15")]


class TestConcurrentApproval:
    def test_same_request_approved_once(
        self, session_factory: sessionmaker[Session], payout_settings: PayoutSettings
    ) -> None:
        with session_factory() as seed:
            _fund(seed, payout_settings, "alice", "12.50")
            request_id: str = (
                WithdrawalProcessor(seed, payout_settings)
                .request_withdrawal("alice", "10.00", "paypal", PAYPAL)
                .request_id
            )
            seed.commit()

        with session_factory() as first, session_factory() as second:
            stale: WithdrawalRequests = WithdrawalProcessor(first, payout_settings).get_request(
                request_id
            )
            first.commit()
            assert stale.status == WithdrawalStatus.PENDING.value

            WithdrawalProcessor(second, payout_settings).approve(request_id, "op-2")
            second.commit()

            with pytest.raises(AlreadyProcessedError):
                WithdrawalProcessor(first, payout_settings).approve(request_id, "op-1")
            first.rollback()

        with session_factory() as check:
            assert _ledger(check, "alice").available_balance == Decimal("2.50")
            req = WithdrawalProcessor(check, payout_settings).get_request(request_id)
            assert req.processed_by == "op-2"

    def test_second_approval_rereads_balance(
        self, session_factory: sessionmaker[Session], payout_settings: PayoutSettings
    ) -> None:
        with session_factory() as seed:
            _fund(seed, payout_settings, "alice", "15.00")
            processor: WithdrawalProcessor = WithdrawalProcessor(seed, payout_settings)
            ids: list[str] = [
                processor.request_withdrawal("alice", "10.00", "paypal", PAYPAL).request_id
                for _ in range(2)
            ]
            seed.commit()

        with session_factory() as first, session_factory() as second:
            # ``first`` has seen 15.00 available.
            assert _ledger(first, "alice").available_balance == Decimal("15.00")
            first.commit()

            WithdrawalProcessor(second, payout_settings).approve(ids[0], "op-2")
            second.commit()

            with pytest.raises(InsufficientAvailableError):
                WithdrawalProcessor(first, payout_settings).approve(ids[1], "op-1")
            first.rollback()

        with session_factory() as check:
            assert _ledger(check, "alice").available_balance == Decimal("5.00")
            pending = WithdrawalProcessor(check, payout_settings).get_request(ids[1])
            assert pending.status == WithdrawalStatus.PENDING.value
