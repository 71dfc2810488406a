"""Reconciliation and audit-trail endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_api_key, get_db
from app.schemas.creators import AuditEntryResponse, ReconciliationResponse
from payouts.services._types import AuditEntryDict
from payouts.services.audit import AuditLogService
from payouts.services.reconciliation import ReconciliationService
from payouts.services.schemas.results import ReconciliationResult

router: APIRouter = APIRouter(prefix="/api", tags=["ledger"])


@router.post("/reconcile", response_model=ReconciliationResponse)
def reconcile(
    creator_id: str | None = Query(None),
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> dict[str, object]:
    result: ReconciliationResult = ReconciliationService(db).run(creator_id)
    return {
        "run_id": result.run_id,
        "creators_checked": result.creators_checked,
        "consistent": result.consistent,
        "mismatches": result.mismatches,
    }


@router.get("/audit", response_model=list[AuditEntryResponse])
def audit_trail(
    target_id: str | None = Query(None),
    creator_id: str | None = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[AuditEntryDict]:
    return AuditLogService(db).trail(target_id, creator_id, limit)
