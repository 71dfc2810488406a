"""Result dataclasses returned by service operations."""

from dataclasses import dataclass, field
from decimal import Decimal

from payouts.services._types import BatchFailure, LedgerMismatch
from payouts.services.errors import PayoutError


@dataclass
class UnitOutcome:
    """What one independent unit of a batch did."""

    skipped: bool = False
    amount: Decimal = Decimal(0)
    reason: str | None = None


@dataclass
class BatchResult:
    succeeded: list[str] = field(default_factory=list)
    failed: list[BatchFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    total_amount: Decimal = Decimal(0)

    def record_success(self, item_id: str, outcome: UnitOutcome) -> None:
        if outcome.skipped:
            self.skipped.append(item_id)
            return
        self.succeeded.append(item_id)
        self.total_amount += outcome.amount

    def record_failure(self, item_id: str, exc: Exception) -> None:
        code: str = exc.code if isinstance(exc, PayoutError) else "internal_error"
        self.failed.append(BatchFailure(id=item_id, error=str(exc), code=code))

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict[str, object]:
        return {
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
            "total_amount": str(self.total_amount),
        }

    def tally(self) -> dict[str, int]:
        return {
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }


@dataclass
class ReportGenerationResult:
    run_id: str
    period: str
    results: BatchResult

    @property
    def reports_created(self) -> int:
        return len(self.results.succeeded)

    @property
    def total_payout(self) -> Decimal:
        return self.results.total_amount


@dataclass
class UnlockSweepResult:
    run_id: str
    as_of: str
    results: BatchResult

    @property
    def reports_unlocked(self) -> int:
        return len(self.results.succeeded)

    @property
    def total_unlocked(self) -> Decimal:
        return self.results.total_amount


@dataclass
class ReconciliationResult:
    run_id: str
    creators_checked: int
    mismatches: list[LedgerMismatch]

    @property
    def consistent(self) -> bool:
        return not self.mismatches
