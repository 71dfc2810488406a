"""Creator and ledger endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_api_key, get_db
from app.schemas.accruals import AccrualResponse, PeriodTotalsResponse
from app.schemas.creators import (
    CreatorCreate,
    CreatorResponse,
    CreatorStatusUpdate,
    LedgerResponse,
)
from app.schemas.reports import ReportResponse
from app.schemas.withdrawals import WithdrawalResponse
from db.enums import ReportStatus, WithdrawalStatus
from payouts.services._types import (
    AccrualDict,
    CreatorDict,
    LedgerDict,
    PeriodTotalsDict,
    ReportDict,
    WithdrawalDict,
)
from payouts.services.accrual import AccrualStore, accrual_to_dict
from payouts.services.creators import CreatorService, creator_to_dict
from payouts.services.ledger import LedgerService, ledger_to_dict
from payouts.services.reports import ReportService
from payouts.services.withdrawals import WithdrawalProcessor

router: APIRouter = APIRouter(prefix="/api/creators", tags=["creators"])


@router.post("", response_model=CreatorResponse, status_code=201)
def register_creator(
    body: CreatorCreate,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> CreatorDict:
    svc: CreatorService = CreatorService(db)
    return creator_to_dict(svc.register_creator(body.name, body.email, body.creator_id))


@router.get("", response_model=list[CreatorResponse])
def list_creators(db: Session = Depends(get_db)) -> list[CreatorDict]:
    return [creator_to_dict(c) for c in CreatorService(db).list_creators()]


@router.get("/{creator_id}", response_model=CreatorResponse)
def get_creator(creator_id: str, db: Session = Depends(get_db)) -> CreatorDict:
    return creator_to_dict(CreatorService(db).get_creator(creator_id))


@router.patch("/{creator_id}/status", response_model=CreatorResponse)
def set_creator_status(
    creator_id: str,
    body: CreatorStatusUpdate,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> CreatorDict:
    return creator_to_dict(CreatorService(db).set_status(creator_id, body.status))


@router.get("/{creator_id}/ledger", response_model=LedgerResponse)
def get_ledger(creator_id: str, db: Session = Depends(get_db)) -> LedgerDict:
    return ledger_to_dict(LedgerService(db).get_ledger(creator_id))


@router.get("/{creator_id}/reports", response_model=list[ReportResponse])
def list_creator_reports(
    creator_id: str,
    status: ReportStatus | None = Query(None),
    db: Session = Depends(get_db),
) -> list[ReportDict]:
    CreatorService(db).get_creator(creator_id)
    return ReportService(db).list_reports(creator_id=creator_id, status=status)


@router.get("/{creator_id}/withdrawals", response_model=list[WithdrawalResponse])
def list_creator_withdrawals(
    creator_id: str,
    status: WithdrawalStatus | None = Query(None),
    db: Session = Depends(get_db),
) -> list[WithdrawalDict]:
    CreatorService(db).get_creator(creator_id)
    return WithdrawalProcessor(db).list_withdrawals(creator_id=creator_id, status=status)


@router.get("/{creator_id}/videos", response_model=list[AccrualResponse])
def list_creator_videos(creator_id: str, db: Session = Depends(get_db)) -> list[AccrualDict]:
    CreatorService(db).get_creator(creator_id)
    return [accrual_to_dict(v) for v in AccrualStore(db).videos_for_creator(creator_id)]


@router.get("/{creator_id}/period-totals", response_model=PeriodTotalsResponse)
def creator_period_totals(creator_id: str, db: Session = Depends(get_db)) -> PeriodTotalsDict:
    CreatorService(db).get_creator(creator_id)
    return AccrualStore(db).period_totals(creator_id)
