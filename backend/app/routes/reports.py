"""Monthly report endpoints: generation, unlock, read models."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_api_key, get_db
from app.schemas.common import BatchResultResponse, OperatorAction
from app.schemas.reports import (
    BulkUnlockRequest,
    GenerateReportsRequest,
    ReportGenerationResponse,
    ReportResponse,
    ReportStatsResponse,
    SweepResponse,
)
from db.enums import ReportStatus
from payouts.services._helpers import previous_period, utc_now
from payouts.services._types import ReportDict, ReportStatsDict
from payouts.services.lock_unlocker import LockUnlocker
from payouts.services.report_generator import ReportGenerator
from payouts.services.reports import ReportService, report_to_dict
from payouts.services.schemas.results import ReportGenerationResult, UnlockSweepResult

router: APIRouter = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("", response_model=list[ReportResponse])
def list_reports(
    creator_id: str | None = Query(None),
    status: ReportStatus | None = Query(None),
    period: str | None = Query(None),
    db: Session = Depends(get_db),
) -> list[ReportDict]:
    return ReportService(db).list_reports(creator_id, status, period)


@router.get("/stats", response_model=ReportStatsResponse)
def report_stats(db: Session = Depends(get_db)) -> ReportStatsDict:
    return ReportService(db).report_stats()


@router.get("/ready-to-unlock", response_model=list[ReportResponse])
def reports_ready_to_unlock(db: Session = Depends(get_db)) -> list[ReportDict]:
    return ReportService(db).reports_ready_to_unlock()


@router.get("/{report_id}", response_model=ReportResponse)
def get_report(report_id: str, db: Session = Depends(get_db)) -> ReportDict:
    return report_to_dict(ReportService(db).get_report(report_id))


@router.post("/generate", response_model=ReportGenerationResponse)
def generate_reports(
    body: GenerateReportsRequest,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> dict[str, object]:
    gen: ReportGenerator = ReportGenerator(db)
    if body.creator_id:
        period: str = body.period or previous_period(utc_now())
        report = gen.generate_for_creator(body.creator_id, period)
        amount: str = str(report.payout_amount) if report else "0"
        return {
            "run_id": None,
            "period": period,
            "reports_created": 1 if report else 0,
            "total_payout": amount,
            "results": {
                "succeeded": [body.creator_id] if report else [],
                "failed": [],
                "skipped": [] if report else [body.creator_id],
                "total_amount": amount,
            },
        }
    result: ReportGenerationResult = gen.run(body.period)
    return {
        "run_id": result.run_id,
        "period": result.period,
        "reports_created": result.reports_created,
        "total_payout": str(result.total_payout),
        "results": result.results.as_dict(),
    }


@router.post("/sweep", response_model=SweepResponse)
def run_sweep(db: Session = Depends(get_db), _key: str = Depends(get_api_key)) -> dict[str, object]:
    result: UnlockSweepResult = LockUnlocker(db).sweep()
    return {
        "run_id": result.run_id,
        "as_of": result.as_of,
        "reports_unlocked": result.reports_unlocked,
        "total_unlocked": str(result.total_unlocked),
        "results": result.results.as_dict(),
    }


@router.post("/bulk-unlock", response_model=BatchResultResponse)
def bulk_unlock(
    body: BulkUnlockRequest,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> dict[str, object]:
    return LockUnlocker(db).unlock_many(body.report_ids, body.operator_id).as_dict()


@router.post("/{report_id}/unlock", response_model=ReportResponse)
def unlock_report(
    report_id: str,
    body: OperatorAction,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> ReportDict:
    return report_to_dict(LockUnlocker(db).unlock_report(report_id, body.operator_id))
