"""Withdrawal request schemas."""

from decimal import Decimal

from pydantic import Field

from app.schemas.common import CamelModel
from db.enums import BulkAction, WithdrawalMethod


class WithdrawalCreate(CamelModel):
    creator_id: str
    amount: Decimal = Field(gt=0)
    method: WithdrawalMethod
    details: dict[str, str] = Field(default_factory=dict)


class RejectRequest(CamelModel):
    operator_id: str
    reason: str = Field(min_length=1)


class BulkProcessRequest(CamelModel):
    request_ids: list[str] = Field(min_length=1)
    action: BulkAction
    operator_id: str
    reason: str | None = None


class ReceiptRequest(CamelModel):
    operator_id: str
    receipt_url: str = Field(min_length=1)


class WithdrawalResponse(CamelModel):
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


class BucketStatsResponse(CamelModel):
    count: int
    amount: str


class WithdrawalStatsResponse(CamelModel):
    by_status: dict[str, BucketStatsResponse]
    by_method: dict[str, BucketStatsResponse]
