"""Enumeration types for the creator payout ledger."""

from enum import Enum


class CreatorRole(str, Enum):
    """Account role. Only creators earn and withdraw."""

    CREATOR = "creator"
    ADMIN = "admin"


class CreatorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ReportStatus(str, Enum):
    """Monthly report lifecycle. Only LOCKED -> UNLOCKED is allowed."""

    LOCKED = "locked"
    UNLOCKED = "unlocked"


class WithdrawalStatus(str, Enum):
    """Withdrawal request lifecycle. APPROVED and REJECTED are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalMethod(str, Enum):
    PAYPAL = "paypal"
    BANK = "bank"


class BulkAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class AuditAction(str, Enum):
    """Actions recorded in the append-only audit log."""

    CREDIT_LOCKED = "credit_locked"
    UNLOCK_TO_AVAILABLE = "unlock_to_available"
    DEBIT_AVAILABLE = "debit_available"
    REVERSE_DEBIT = "reverse_debit"
    LEDGER_OPENED = "ledger_opened"
    REPORT_GENERATED = "report_generated"
    REPORT_UNLOCKED = "report_unlocked"
    WITHDRAWAL_REQUESTED = "withdrawal_requested"
    WITHDRAWAL_APPROVED = "withdrawal_approved"
    WITHDRAWAL_REJECTED = "withdrawal_rejected"
    WITHDRAWAL_REVERSED = "withdrawal_reversed"


class NotificationKind(str, Enum):
    REPORT_GENERATED = "report_generated"
    REPORT_UNLOCKED = "report_unlocked"
    WITHDRAWAL_APPROVED = "withdrawal_approved"
    WITHDRAWAL_REJECTED = "withdrawal_rejected"


class NotificationStatus(str, Enum):
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


class RunType(str, Enum):
    """Type of batch processing run."""

    REPORT_GENERATION = "report_generation"
    UNLOCK_SWEEP = "unlock_sweep"
    CONSISTENCY_CHECK = "consistency_check"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


SYSTEM_ACTOR: str = "system"
