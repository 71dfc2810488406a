"""Monthly report schemas."""

from pydantic import Field

from app.schemas.common import BatchResultResponse, CamelModel


class GenerateReportsRequest(CamelModel):
    period: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}$")
    creator_id: str | None = None


class ReportGenerationResponse(CamelModel):
    run_id: str | None
    period: str
    reports_created: int
    total_payout: str
    results: BatchResultResponse


class SweepResponse(CamelModel):
    run_id: str
    as_of: str
    reports_unlocked: int
    total_unlocked: str
    results: BatchResultResponse


class BulkUnlockRequest(CamelModel):
    report_ids: list[str] = Field(min_length=1)
    operator_id: str


class VideoBreakdownResponse(CamelModel):
    video_id: str
    title: str | None = None
    views: int
    premium_views: int
    earnings: str


class ReportResponse(CamelModel):
    report_id: str
    creator_id: str
    period: str
    payout_amount: str
    status: str
    locked_until: str
    unlocked_at: str | None
    unlocked_by: str | None
    video_breakdown: list[VideoBreakdownResponse]
    video_count: int
    total_views: int
    total_premium_views: int
    created_at: str


class ReportStatsResponse(CamelModel):
    total_reports: int
    locked_reports: int
    unlocked_reports: int
    total_locked_amount: str
    total_unlocked_amount: str
    ready_to_unlock: int
    average_payout: str
