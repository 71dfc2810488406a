"""Video registration and the accrual feed endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.dependencies import get_api_key, get_db
from app.schemas.accruals import AccrualIn, AccrualResponse, VideoCreate
from payouts.services._types import AccrualDict
from payouts.services.accrual import AccrualStore, accrual_to_dict

router: APIRouter = APIRouter(prefix="/api", tags=["accruals"])


@router.post("/videos", response_model=AccrualResponse, status_code=201)
def register_video(
    body: VideoCreate,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> AccrualDict:
    store: AccrualStore = AccrualStore(db)
    return accrual_to_dict(store.register_video(body.video_id, body.creator_id, body.title))


@router.get("/videos/{video_id}", response_model=AccrualResponse)
def get_video(video_id: str, db: Session = Depends(get_db)) -> AccrualDict:
    return accrual_to_dict(AccrualStore(db).get_video(video_id))


@router.post("/videos/{video_id}/deactivate", response_model=AccrualResponse)
def deactivate_video(
    video_id: str,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> AccrualDict:
    return accrual_to_dict(AccrualStore(db).deactivate_video(video_id))


@router.post("/accruals/{video_id}", response_model=AccrualResponse)
def record_accrual(
    video_id: str,
    body: AccrualIn,
    db: Session = Depends(get_db),
    _key: str = Depends(get_api_key),
) -> AccrualDict:
    store: AccrualStore = AccrualStore(db)
    video = store.record_accrual(
        video_id, body.earnings_delta, body.views_delta, body.premium_views_delta
    )
    return accrual_to_dict(video)
