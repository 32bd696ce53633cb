"""评估提交、结果查询与限流状态路由。"""

import math

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.dependencies import get_db, get_engine
from app.schemas.assessment import AssessmentRecordResponse, AssessmentRequest, RateLimitStatus
from app.services.assessment import AssessmentEngine
from app.services.rate_limiter import AdmissionDenied
from app.services.records import RecordService


router = APIRouter(prefix="/assessments", tags=["assessments"])
record_service = RecordService()


@router.post("", response_model=AssessmentRecordResponse)
async def create_assessment(
    payload: AssessmentRequest,
    db: Session = Depends(get_db),
    engine: AssessmentEngine = Depends(get_engine),
) -> AssessmentRecordResponse:
    try:
        outcome = await engine.assess(
            payload.actor_id,
            payload.submission,
            payload.rubric,
            payload.reference_examples,
        )
    except AdmissionDenied as exc:
        raise HTTPException(
            status_code=429,
            detail=str(exc),
            headers={"Retry-After": str(max(1, math.ceil(exc.retry_after_seconds)))},
        ) from exc
    record = record_service.save(db, payload.actor_id, payload.submission.kind, outcome)
    return record_service.to_response(record)


@router.get("/rate-limit/{actor_id}", response_model=RateLimitStatus)
def get_rate_limit(
    actor_id: str, engine: AssessmentEngine = Depends(get_engine)
) -> RateLimitStatus:
    limiter = engine.limiter
    return RateLimitStatus(
        actor_id=actor_id,
        remaining=limiter.remaining(actor_id),
        limit=limiter.max_requests,
        window_seconds=limiter.window_seconds,
    )


@router.get("/{record_id}", response_model=AssessmentRecordResponse)
def get_assessment(record_id: int, db: Session = Depends(get_db)) -> AssessmentRecordResponse:
    record = record_service.get(db, record_id)
    if not record:
        raise HTTPException(status_code=404, detail="Assessment not found")
    return record_service.to_response(record)
