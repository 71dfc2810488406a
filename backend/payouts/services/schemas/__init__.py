"""Shared dataclasses for payout services."""

from payouts.services.schemas.results import (
    BatchResult,
    ReconciliationResult,
    ReportGenerationResult,
    UnitOutcome,
    UnlockSweepResult,
)

__all__ = [
    "BatchResult",
    "ReconciliationResult",
    "ReportGenerationResult",
    "UnitOutcome",
    "UnlockSweepResult",
]
