"""Shared exception hierarchy for payout services.

Every error carries a stable ``code`` so batch results and HTTP bodies can
report failures without leaking class names.
"""


class PayoutError(Exception):
    """Base exception for payout ledger errors."""

    code: str = "payout_error"


# ── Amounts and balances ──────────────────────────────────────────────────────


class InvalidAmountError(PayoutError):
    """Amount is zero, negative, or otherwise unusable."""

    code = "invalid_amount"


class InsufficientLockedError(PayoutError):
    """Locked balance is below a report's payout.

    Indicates a prior ledger inconsistency. Never retried, never clamped.
    """

    code = "insufficient_locked"


class InsufficientAvailableError(PayoutError):
    """Available balance does not cover the requested debit."""

    code = "insufficient_available"


# ── Lifecycle ─────────────────────────────────────────────────────────────────


class NotFoundError(PayoutError):
    """Unknown creator, ledger, report, video or withdrawal request."""

    code = "not_found"


class AlreadyProcessedError(PayoutError):
    """A terminal report or request was targeted again."""

    code = "already_processed"


class StillLockedError(PayoutError):
    """Manual unlock attempted before the report's lock period elapsed."""

    code = "still_locked"


class DuplicateReportError(PayoutError):
    """A report for this (creator, period) already exists."""

    code = "duplicate_report"


class ConflictError(PayoutError):
    """The record exists with incompatible ownership or state."""

    code = "conflict"


# ── Withdrawals ───────────────────────────────────────────────────────────────


class InvalidWithdrawalError(PayoutError):
    """Unsupported method, missing payment details, or below the minimum."""

    code = "invalid_withdrawal"


class PayoutDispatchError(PayoutError):
    """Handing an approved withdrawal to the payment step failed; approval was rolled back."""

    code = "payout_dispatch_failed"
