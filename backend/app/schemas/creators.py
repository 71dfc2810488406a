"""Creator and ledger schemas."""

from pydantic import Field

from app.schemas.common import CamelModel
from db.enums import CreatorStatus


class CreatorCreate(CamelModel):
    name: str = Field(min_length=1)
    email: str | None = None
    creator_id: str | None = None


class CreatorStatusUpdate(CamelModel):
    status: CreatorStatus


class CreatorResponse(CamelModel):
    id: str
    name: str
    email: str | None
    role: str
    status: str
    created_at: str


class LedgerResponse(CamelModel):
    creator_id: str
    total_earnings: str
    locked_balance: str
    available_balance: str
    total_withdrawn: str
    updated_at: str


class AuditEntryResponse(CamelModel):
    id: int
    action: str
    actor_id: str
    target_id: str
    creator_id: str | None
    amount: str | None
    before_state: dict[str, object] | None
    after_state: dict[str, object] | None
    timestamp: str


class LedgerMismatchResponse(CamelModel):
    creator_id: str
    check: str
    expected: str
    actual: str


class ReconciliationResponse(CamelModel):
    run_id: str
    creators_checked: int
    consistent: bool
    mismatches: list[LedgerMismatchResponse]
