"""Per-video accrual counters.

The external view feed calls ``record_accrual`` with non-negative deltas.
The report generator reads the period counters and subtracts what it reported.
"""

from decimal import Decimal, InvalidOperation

import structlog
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from db.models import VideoAccruals
from payouts.services._helpers import now_iso, to_money
from payouts.services._tx import atomic
from payouts.services._types import AccrualDict, PeriodTotalsDict
from payouts.services.creators import CreatorService
from payouts.services.errors import ConflictError, InvalidAmountError, NotFoundError

logger = structlog.get_logger(__name__)


def accrual_to_dict(v: VideoAccruals) -> AccrualDict:
    return AccrualDict(
        video_id=v.video_id,
        creator_id=v.creator_id,
        title=v.title,
        is_active=v.is_active,
        lifetime_views=v.lifetime_views,
        lifetime_premium_views=v.lifetime_premium_views,
        lifetime_earnings=str(v.lifetime_earnings),
        period_views=v.period_views,
        period_premium_views=v.period_premium_views,
        period_earnings=str(v.period_earnings),
        last_accrued_at=v.last_accrued_at,
    )


class AccrualStore:
    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def register_video(
        self, video_id: str, creator_id: str, title: str | None = None
    ) -> VideoAccruals:
        with atomic(self.session):
            CreatorService(self.session).get_creator(creator_id)
            existing: VideoAccruals | None = self.session.get(VideoAccruals, video_id)
            if existing is not None:
                if existing.creator_id != creator_id:
                    raise ConflictError(
                        f"Video {video_id} already belongs to creator {existing.creator_id}"
                    )
                return existing
            ts: str = now_iso()
            video: VideoAccruals = VideoAccruals(
                video_id=video_id,
                creator_id=creator_id,
                title=title,
                is_active=True,
                lifetime_views=0,
                lifetime_premium_views=0,
                lifetime_earnings=Decimal(0),
                period_views=0,
                period_premium_views=0,
                period_earnings=Decimal(0),
                created_at=ts,
                updated_at=ts,
            )
            self.session.add(video)
            self.session.flush()
        return video

    def get_video(self, video_id: str) -> VideoAccruals:
        video: VideoAccruals | None = self.session.get(VideoAccruals, video_id)
        if video is None:
            raise NotFoundError(f"Video {video_id} not found")
        return video

    def _lock_video(self, video_id: str) -> VideoAccruals:
        stmt: Select[tuple[VideoAccruals]] = (
            select(VideoAccruals)
            .where(VideoAccruals.video_id == video_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        video: VideoAccruals | None = self.session.scalar(stmt)
        if video is None:
            raise NotFoundError(f"Video {video_id} not found")
        return video

    def record_accrual(
        self,
        video_id: str,
        earnings_delta: Decimal | int | str,
        views_delta: int = 0,
        premium_views_delta: int = 0,
    ) -> VideoAccruals:
        """Add one feed tick to both the lifetime and current-period counters."""
        try:
            earnings: Decimal = to_money(earnings_delta)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmountError(f"Invalid earnings delta: {earnings_delta!r}")
        if not earnings.is_finite():
            raise InvalidAmountError(f"Invalid earnings delta: {earnings_delta!r}")
        if earnings < 0 or views_delta < 0 or premium_views_delta < 0:
            raise InvalidAmountError("Accrual deltas must be non-negative")
        if premium_views_delta > views_delta:
            raise InvalidAmountError("Premium views cannot exceed views")

        with atomic(self.session):
            video: VideoAccruals = self._lock_video(video_id)
            if not video.is_active:
                logger.warning("Accrual for inactive video", video_id=video_id)
            ts: str = now_iso()
            video.lifetime_views += views_delta
            video.lifetime_premium_views += premium_views_delta
            video.lifetime_earnings = to_money(video.lifetime_earnings + earnings)
            video.period_views += views_delta
            video.period_premium_views += premium_views_delta
            video.period_earnings = to_money(video.period_earnings + earnings)
            video.last_accrued_at = ts
            video.updated_at = ts
            self.session.flush()
        return video

    def deactivate_video(self, video_id: str) -> VideoAccruals:
        """Stop counting the video toward reports. Pending period earnings stay put."""
        with atomic(self.session):
            video: VideoAccruals = self.get_video(video_id)
            video.is_active = False
            video.updated_at = now_iso()
            self.session.flush()
        return video

    def videos_for_creator(self, creator_id: str, active_only: bool = False) -> list[VideoAccruals]:
        stmt: Select[tuple[VideoAccruals]] = select(VideoAccruals).where(
            VideoAccruals.creator_id == creator_id
        )
        if active_only:
            stmt = stmt.where(VideoAccruals.is_active.is_(True))
        return list(self.session.scalars(stmt.order_by(VideoAccruals.video_id)).all())

    def period_totals(self, creator_id: str) -> PeriodTotalsDict:
        """What the next report for this creator would contain right now."""
        stmt = select(
            func.count(VideoAccruals.video_id),
            func.coalesce(func.sum(VideoAccruals.period_views), 0),
            func.coalesce(func.sum(VideoAccruals.period_premium_views), 0),
            func.coalesce(func.sum(VideoAccruals.period_earnings), 0),
        ).where(
            VideoAccruals.creator_id == creator_id,
            VideoAccruals.is_active.is_(True),
            VideoAccruals.period_earnings > 0,
        )
        count, views, premium, earnings = self.session.execute(stmt).one()
        return PeriodTotalsDict(
            creator_id=creator_id,
            video_count=int(count),
            period_views=int(views),
            period_premium_views=int(premium),
            period_earnings=str(to_money(earnings)),
        )
