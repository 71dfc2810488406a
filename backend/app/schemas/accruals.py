"""Video accrual schemas."""

from decimal import Decimal

from pydantic import Field, model_validator

from app.schemas.common import CamelModel


class VideoCreate(CamelModel):
    video_id: str = Field(min_length=1)
    creator_id: str
    title: str | None = None


class AccrualIn(CamelModel):
    """One tick from the view feed."""

    earnings_delta: Decimal = Field(ge=0)
    views_delta: int = Field(default=0, ge=0)
    premium_views_delta: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _premium_within_views(self) -> "AccrualIn":
        if self.premium_views_delta > self.views_delta:
            raise ValueError("premium_views_delta cannot exceed views_delta")
        return self


class AccrualResponse(CamelModel):
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


class PeriodTotalsResponse(CamelModel):
    creator_id: str
    video_count: int
    period_views: int
    period_premium_views: int
    period_earnings: str
