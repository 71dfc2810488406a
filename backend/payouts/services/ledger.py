"""Per-creator balance buckets and the four movements between them.

    creditLocked:      +locked,            +total_earnings
    unlockToAvailable: -locked, +available
    debitAvailable:    -available,         +total_withdrawn
    reverseDebit:      +available,         -total_withdrawn

Every movement takes the ledger row lock, re-checks the balance it draws from,
and writes one audit entry in the same transaction. Nothing else writes to
``creator_ledgers``.
"""

from decimal import Decimal

import structlog
from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.enums import SYSTEM_ACTOR, AuditAction
from db.models import CreatorLedgers
from payouts.services._helpers import now_iso, to_money
from payouts.services._tx import atomic
from payouts.services._types import LedgerDict
from payouts.services.audit import AuditLogService
from payouts.services.errors import (
    InsufficientAvailableError,
    InsufficientLockedError,
    InvalidAmountError,
    NotFoundError,
)

logger = structlog.get_logger(__name__)

ZERO: Decimal = Decimal(0)


def snapshot(ledger: CreatorLedgers) -> dict[str, str]:
    return {
        "total_earnings": str(ledger.total_earnings),
        "locked_balance": str(ledger.locked_balance),
        "available_balance": str(ledger.available_balance),
        "total_withdrawn": str(ledger.total_withdrawn),
    }


def ledger_to_dict(ledger: CreatorLedgers) -> LedgerDict:
    return LedgerDict(
        creator_id=ledger.creator_id,
        total_earnings=str(ledger.total_earnings),
        locked_balance=str(ledger.locked_balance),
        available_balance=str(ledger.available_balance),
        total_withdrawn=str(ledger.total_withdrawn),
        updated_at=ledger.updated_at,
    )


def buckets_balance(ledger: CreatorLedgers) -> bool:
    return (
        ledger.locked_balance + ledger.available_balance + ledger.total_withdrawn
        == ledger.total_earnings
    )


class LedgerService:
    """Balance movements for one creator ledger at a time."""

    def __init__(self, session: Session, audit: AuditLogService | None = None) -> None:
        self.session: Session = session
        self.audit: AuditLogService = audit or AuditLogService(session)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def open_ledger(self, creator_id: str, actor_id: str = SYSTEM_ACTOR) -> CreatorLedgers:
        """Create a zeroed ledger. Returns the existing one if already open."""
        existing: CreatorLedgers | None = self.session.get(CreatorLedgers, creator_id)
        if existing is not None:
            return existing
        ts: str = now_iso()
        ledger: CreatorLedgers = CreatorLedgers(
            creator_id=creator_id,
            total_earnings=ZERO,
            locked_balance=ZERO,
            available_balance=ZERO,
            total_withdrawn=ZERO,
            created_at=ts,
            updated_at=ts,
        )
        self.session.add(ledger)
        self.session.flush()
        self.audit.record(
            AuditAction.LEDGER_OPENED,
            actor_id,
            creator_id,
            creator_id=creator_id,
            after=snapshot(ledger),
        )
        return ledger

    def get_ledger(self, creator_id: str) -> CreatorLedgers:
        ledger: CreatorLedgers | None = self.session.get(CreatorLedgers, creator_id)
        if ledger is None:
            raise NotFoundError(f"No ledger for creator {creator_id}")
        return ledger

    def _lock_ledger(self, creator_id: str) -> CreatorLedgers:
        stmt: Select[tuple[CreatorLedgers]] = (
            select(CreatorLedgers)
            .where(CreatorLedgers.creator_id == creator_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        ledger: CreatorLedgers | None = self.session.scalar(stmt)
        if ledger is None:
            raise NotFoundError(f"No ledger for creator {creator_id}")
        return ledger

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def credit_locked(
        self,
        creator_id: str,
        amount: Decimal,
        *,
        actor_id: str = SYSTEM_ACTOR,
        target_id: str | None = None,
    ) -> CreatorLedgers:
        value: Decimal = _positive(amount)
        with atomic(self.session):
            ledger: CreatorLedgers = self._lock_ledger(creator_id)
            before: dict[str, str] = snapshot(ledger)
            ledger.locked_balance = to_money(ledger.locked_balance + value)
            ledger.total_earnings = to_money(ledger.total_earnings + value)
            self._finish(
                AuditAction.CREDIT_LOCKED, ledger, value, before, actor_id, target_id
            )
        return ledger

    def unlock_to_available(
        self,
        creator_id: str,
        amount: Decimal,
        *,
        actor_id: str = SYSTEM_ACTOR,
        target_id: str | None = None,
    ) -> CreatorLedgers:
        value: Decimal = _positive(amount)
        with atomic(self.session):
            ledger: CreatorLedgers = self._lock_ledger(creator_id)
            if ledger.locked_balance < value:
                logger.error(
                    "Locked balance below unlock amount",
                    creator_id=creator_id,
                    locked_balance=str(ledger.locked_balance),
                    amount=str(value),
                    target_id=target_id,
                )
                raise InsufficientLockedError(
                    f"Creator {creator_id} has {ledger.locked_balance} locked, "
                    f"cannot unlock {value}"
                )
            before: dict[str, str] = snapshot(ledger)
            ledger.locked_balance = to_money(ledger.locked_balance - value)
            ledger.available_balance = to_money(ledger.available_balance + value)
            self._finish(
                AuditAction.UNLOCK_TO_AVAILABLE, ledger, value, before, actor_id, target_id
            )
        return ledger

    def debit_available(
        self,
        creator_id: str,
        amount: Decimal,
        *,
        actor_id: str = SYSTEM_ACTOR,
        target_id: str | None = None,
    ) -> CreatorLedgers:
        value: Decimal = _positive(amount)
        with atomic(self.session):
            ledger: CreatorLedgers = self._lock_ledger(creator_id)
            if ledger.available_balance < value:
                raise InsufficientAvailableError(
                    f"Creator {creator_id} has {ledger.available_balance} available, "
                    f"cannot debit {value}"
                )
            before: dict[str, str] = snapshot(ledger)
            ledger.available_balance = to_money(ledger.available_balance - value)
            ledger.total_withdrawn = to_money(ledger.total_withdrawn + value)
            self._finish(
                AuditAction.DEBIT_AVAILABLE, ledger, value, before, actor_id, target_id
            )
        return ledger

    def reverse_debit(
        self,
        creator_id: str,
        amount: Decimal,
        *,
        actor_id: str = SYSTEM_ACTOR,
        target_id: str | None = None,
    ) -> CreatorLedgers:
        """Undo a debit whose payout could not be handed off."""
        value: Decimal = _positive(amount)
        with atomic(self.session):
            ledger: CreatorLedgers = self._lock_ledger(creator_id)
            if ledger.total_withdrawn < value:
                raise InvalidAmountError(
                    f"Creator {creator_id} has withdrawn {ledger.total_withdrawn}, "
                    f"cannot reverse {value}"
                )
            before: dict[str, str] = snapshot(ledger)
            ledger.total_withdrawn = to_money(ledger.total_withdrawn - value)
            ledger.available_balance = to_money(ledger.available_balance + value)
            self._finish(
                AuditAction.REVERSE_DEBIT, ledger, value, before, actor_id, target_id
            )
        return ledger

    def _finish(
        self,
        action: AuditAction,
        ledger: CreatorLedgers,
        amount: Decimal,
        before: dict[str, str],
        actor_id: str,
        target_id: str | None,
    ) -> None:
        ledger.updated_at = now_iso()
        self.session.flush()
        self.audit.record(
            action,
            actor_id,
            target_id or ledger.creator_id,
            creator_id=ledger.creator_id,
            amount=amount,
            before=before,
            after=snapshot(ledger),
        )
        logger.debug(
            "Ledger movement",
            action=action.value,
            creator_id=ledger.creator_id,
            amount=str(amount),
            target_id=target_id,
        )


def _positive(amount: Decimal | int | str) -> Decimal:
    try:
        value: Decimal = to_money(amount)
    except (ArithmeticError, ValueError, TypeError):
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    if not value.is_finite() or value <= ZERO:
        raise InvalidAmountError(f"Amount must be positive, got {amount}")
    return value
