"""SQLAlchemy ORM models for the creator payout ledger.

Money columns are fixed-point ``Numeric(18, 6)`` read back as ``Decimal``.
Timestamps are UTC ISO-8601 strings, periods are ``YYYY-MM`` strings.
"""

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    MetaData,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

MONEY = Numeric(18, 6)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class Creators(Base):
    __tablename__ = "creators"

    id: Mapped[str] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(nullable=False)
    email: Mapped[str | None] = mapped_column()
    role: Mapped[str] = mapped_column(nullable=False, default="creator")
    status: Mapped[str] = mapped_column(nullable=False, default="active")
    created_at: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[str] = mapped_column(nullable=False)

    ledger = relationship("CreatorLedgers", back_populates="creator", uselist=False)
    videos = relationship(
        "VideoAccruals",
        back_populates="creator",
        order_by="VideoAccruals.video_id",
    )


class VideoAccruals(Base):
    __tablename__ = "video_accruals"

    video_id: Mapped[str] = mapped_column(primary_key=True)
    creator_id: Mapped[str] = mapped_column(ForeignKey("creators.id"), nullable=False)
    title: Mapped[str | None] = mapped_column()
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    lifetime_views: Mapped[int] = mapped_column(nullable=False, default=0)
    lifetime_premium_views: Mapped[int] = mapped_column(nullable=False, default=0)
    lifetime_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    period_views: Mapped[int] = mapped_column(nullable=False, default=0)
    period_premium_views: Mapped[int] = mapped_column(nullable=False, default=0)
    period_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    last_accrued_at: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[str] = mapped_column(nullable=False)

    __table_args__ = (
        CheckConstraint("period_earnings >= 0", name="period_earnings_non_negative"),
        CheckConstraint("period_premium_views <= period_views", name="premium_within_views"),
        Index("ix_video_accruals_creator", "creator_id", "is_active"),
    )
    creator = relationship("Creators", back_populates="videos")


class CreatorLedgers(Base):
    """The four balance buckets. Written only through ``payouts.services.ledger``."""

    __tablename__ = "creator_ledgers"

    creator_id: Mapped[str] = mapped_column(ForeignKey("creators.id"), primary_key=True)
    total_earnings: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    locked_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    available_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    total_withdrawn: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal(0))
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    created_at: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[str] = mapped_column(nullable=False)

    __table_args__ = (
        CheckConstraint("total_earnings >= 0", name="total_earnings_non_negative"),
        CheckConstraint("locked_balance >= 0", name="locked_non_negative"),
        CheckConstraint("available_balance >= 0", name="available_non_negative"),
        CheckConstraint("total_withdrawn >= 0", name="withdrawn_non_negative"),
    )
    __mapper_args__ = {"version_id_col": version}
    creator = relationship("Creators", back_populates="ledger")


class MonthlyReports(Base):
    __tablename__ = "monthly_reports"

    report_id: Mapped[str] = mapped_column(primary_key=True)
    creator_id: Mapped[str] = mapped_column(ForeignKey("creators.id"), nullable=False)
    period: Mapped[str] = mapped_column(nullable=False)
    payout_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(nullable=False, default="locked")
    locked_until: Mapped[str] = mapped_column(nullable=False)
    unlocked_at: Mapped[str | None] = mapped_column()
    unlocked_by: Mapped[str | None] = mapped_column()
    video_breakdown: Mapped[str] = mapped_column(nullable=False, default="[]")
    video_count: Mapped[int] = mapped_column(nullable=False, default=0)
    total_views: Mapped[int] = mapped_column(nullable=False, default=0)
    total_premium_views: Mapped[int] = mapped_column(nullable=False, default=0)
    run_id: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("creator_id", "period"),
        CheckConstraint("payout_amount > 0", name="payout_positive"),
        Index("ix_monthly_reports_status_locked_until", "status", "locked_until"),
    )


class WithdrawalRequests(Base):
    __tablename__ = "withdrawal_requests"

    request_id: Mapped[str] = mapped_column(primary_key=True)
    creator_id: Mapped[str] = mapped_column(ForeignKey("creators.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    method: Mapped[str] = mapped_column(nullable=False)
    payment_details: Mapped[str] = mapped_column(nullable=False, default="{}")
    status: Mapped[str] = mapped_column(nullable=False, default="pending")
    available_at_request: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    requested_at: Mapped[str] = mapped_column(nullable=False)
    processed_at: Mapped[str | None] = mapped_column()
    processed_by: Mapped[str | None] = mapped_column()
    rejection_reason: Mapped[str | None] = mapped_column()
    receipt_url: Mapped[str | None] = mapped_column()
    updated_at: Mapped[str] = mapped_column(nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        Index("ix_withdrawal_requests_creator_status", "creator_id", "status"),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(nullable=False)
    actor_id: Mapped[str] = mapped_column(nullable=False)
    target_id: Mapped[str] = mapped_column(nullable=False)
    creator_id: Mapped[str | None] = mapped_column()
    amount: Mapped[Decimal | None] = mapped_column(MONEY)
    before_state: Mapped[str | None] = mapped_column()
    after_state: Mapped[str | None] = mapped_column()
    timestamp: Mapped[str] = mapped_column(nullable=False)

    __table_args__ = (
        Index("ix_audit_log_target", "target_id"),
        Index("ix_audit_log_creator", "creator_id"),
    )


class NotificationRequests(Base):
    __tablename__ = "notification_requests"

    id: Mapped[str] = mapped_column(primary_key=True)
    creator_id: Mapped[str] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(nullable=False)
    params: Mapped[str] = mapped_column(nullable=False, default="{}")
    status: Mapped[str] = mapped_column(nullable=False, default="queued")
    created_at: Mapped[str] = mapped_column(nullable=False)


class ProcessingRuns(Base):
    __tablename__ = "processing_runs"

    run_id: Mapped[str] = mapped_column(primary_key=True)
    run_type: Mapped[str] = mapped_column(nullable=False)
    started_at: Mapped[str] = mapped_column(nullable=False)
    completed_at: Mapped[str | None] = mapped_column()
    status: Mapped[str] = mapped_column(nullable=False, default="running")
    period: Mapped[str | None] = mapped_column()
    records_processed: Mapped[int] = mapped_column(nullable=False, default=0)
    records_created: Mapped[int] = mapped_column(nullable=False, default=0)
    records_skipped: Mapped[int] = mapped_column(nullable=False, default=0)
    records_failed: Mapped[int] = mapped_column(nullable=False, default=0)
    error_details: Mapped[str | None] = mapped_column()
