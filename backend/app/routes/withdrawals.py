"""Withdrawal endpoints: creator requests, operator actions, stats."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_api_key, get_db
from app.schemas.common import BatchResultResponse, OperatorAction
from app.schemas.withdrawals import (
    BulkProcessRequest,
    ReceiptRequest,
    RejectRequest,
    WithdrawalCreate,
    WithdrawalResponse,
    WithdrawalStatsResponse,
)
from db.enums import WithdrawalMethod, WithdrawalStatus
from payouts.services._types import WithdrawalDict, WithdrawalStatsDict
from payouts.services.withdrawals import WithdrawalProcessor, withdrawal_to_dict

router: APIRouter = APIRouter(prefix="/api/withdrawals", tags=["withdrawals"])


@router.post("", response_model=WithdrawalResponse, status_code=201)
def request_withdrawal(body: WithdrawalCreate, db: Session = Depends(get_db)) -> WithdrawalDict:
    proc: WithdrawalProcessor = WithdrawalProcessor(db)
    req = proc.request_withdrawal(body.creator_id, body.amount, body.method.value, body.details)
    return withdrawal_to_dict(req)


@router.get("", response_model=list[WithdrawalResponse])
def list_withdrawals(
    creator_id: str | None = Query(None),
    status: WithdrawalStatus | None = Query(None),
    method: WithdrawalMethod | None = Query(None),
    db: Session = Depends(get_db),
) -> list[WithdrawalDict]:
    return WithdrawalProcessor(db).list_withdrawals(creator_id, status, method)


@router.get("/stats", response_model=WithdrawalStatsResponse)
def withdrawal_stats(db: Session = Depends(get_db)) -> WithdrawalStatsDict:
    return WithdrawalProcessor(db).withdrawal_stats()


@router.post("/bulk", response_model=BatchResultResponse)
def bulk_process(
    body: BulkProcessRequest,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> dict[str, object]:
    proc: WithdrawalProcessor = WithdrawalProcessor(db)
    return proc.bulk_process(body.request_ids, body.action, body.operator_id, body.reason).as_dict()


@router.get("/{request_id}", response_model=WithdrawalResponse)
def get_withdrawal(request_id: str, db: Session = Depends(get_db)) -> WithdrawalDict:
    return withdrawal_to_dict(WithdrawalProcessor(db).get_request(request_id))


@router.post("/{request_id}/approve", response_model=WithdrawalResponse)
def approve_withdrawal(
    request_id: str,
    body: OperatorAction,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> WithdrawalDict:
    return withdrawal_to_dict(WithdrawalProcessor(db).approve(request_id, body.operator_id))


@router.post("/{request_id}/reject", response_model=WithdrawalResponse)
def reject_withdrawal(
    request_id: str,
    body: RejectRequest,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> WithdrawalDict:
    proc: WithdrawalProcessor = WithdrawalProcessor(db)
    return withdrawal_to_dict(proc.reject(request_id, body.operator_id, body.reason))


@router.post("/{request_id}/receipt", response_model=WithdrawalResponse)
def attach_receipt(
    request_id: str,
    body: ReceiptRequest,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> WithdrawalDict:
    proc: WithdrawalProcessor = WithdrawalProcessor(db)
    return withdrawal_to_dict(proc.attach_receipt(request_id, body.receipt_url, body.operator_id))
