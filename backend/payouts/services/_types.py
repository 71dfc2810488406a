"""Typed dicts for service-layer return values.

Keeps route-facing methods explicit about their shape instead of returning bare dicts.
Money is rendered as strings so no precision is lost on the way out.
"""

import sys

if sys.version_info >= (3, 12):
    from typing import TypedDict
else:
    from typing_extensions import TypedDict

from payouts.services._helpers import JsonDict

# -- Creators / Ledger -----------------------------------------------------


class CreatorDict(TypedDict):
    id: str
    name: str
    email: str | None
    role: str
    status: str
    created_at: str


class LedgerDict(TypedDict):
    creator_id: str
    total_earnings: str
    locked_balance: str
    available_balance: str
    total_withdrawn: str
    updated_at: str


# -- Accruals --------------------------------------------------------------


class AccrualDict(TypedDict):
    video_id: str
    creator_id: str
    title: str | None
    is_active: bool
    lifetime_views: int
    lifetime_premium_views: int
    lifetime_earnings: str
    period_views: int
    period_premium_views: int
    period_earnings: str
    last_accrued_at: str | None


class PeriodTotalsDict(TypedDict):
    creator_id: str
    video_count: int
    period_views: int
    period_premium_views: int
    period_earnings: str


# -- Reports ---------------------------------------------------------------


class VideoBreakdownItem(TypedDict):
    video_id: str
    title: str | None
    views: int
    premium_views: int
    earnings: str


class ReportDict(TypedDict):
    report_id: str
    creator_id: str
    period: str
    payout_amount: str
    status: str
    locked_until: str
    unlocked_at: str | None
    unlocked_by: str | None
    video_breakdown: list[JsonDict]
    video_count: int
    total_views: int
    total_premium_views: int
    created_at: str


class ReportStatsDict(TypedDict):
    total_reports: int
    locked_reports: int
    unlocked_reports: int
    total_locked_amount: str
    total_unlocked_amount: str
    ready_to_unlock: int
    average_payout: str


# -- Withdrawals -----------------------------------------------------------


class WithdrawalDict(TypedDict):
    request_id: str
    creator_id: str
    amount: str
    method: str
    status: str
    available_at_request: str
    requested_at: str
    processed_at: str | None
    processed_by: str | None
    rejection_reason: str | None
    receipt_url: str | None


class BucketStatsDict(TypedDict):
    count: int
    amount: str


class WithdrawalStatsDict(TypedDict):
    by_status: dict[str, BucketStatsDict]
    by_method: dict[str, BucketStatsDict]


# -- Audit / Reconciliation ------------------------------------------------


class AuditEntryDict(TypedDict):
    id: int
    action: str
    actor_id: str
    target_id: str
    creator_id: str | None
    amount: str | None
    before_state: JsonDict | None
    after_state: JsonDict | None
    timestamp: str


class LedgerMismatch(TypedDict):
    creator_id: str
    check: str
    expected: str
    actual: str


# -- Batch -----------------------------------------------------------------


class BatchFailure(TypedDict):
    id: str
    error: str
    code: str


# -- Health ----------------------------------------------------------------


class DbInfoDict(TypedDict, total=False):
    backend_type: str
    database_url_or_path: str | None
    row_counts: dict[str, int]
    tables_missing: list[str]
    schema_initialized: bool
    pid: int
    error: str
