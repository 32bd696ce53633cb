"""评估结果落库与查询。"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models import AssessmentRecord, AssessmentStatus, SubmissionKind
from app.schemas.assessment import AssessmentOutcome, AssessmentRecordResponse
from app.services.normalizer import is_error_marker
from app.utils.sanitization import sanitize_object

logger = logging.getLogger(__name__)


class RecordService:
    """封装 ``AssessmentRecord`` 的写入与读取。"""

    def save(
        self, db: Session, actor_id: str, kind: SubmissionKind, outcome: AssessmentOutcome
    ) -> AssessmentRecord:
        result = outcome.result
        failed = is_error_marker(result.model_used)
        record = AssessmentRecord(
            actor_id=actor_id,
            kind=kind,
            status=AssessmentStatus.FAILED if failed else AssessmentStatus.COMPLETED,
            model_used=result.model_used,
            result_json=result.model_dump(mode="json", by_alias=True),
            outcome_json={
                "referenceExampleUsed": outcome.reference_example_used,
                "criteriaComparison": outcome.criteria_comparison.model_dump(by_alias=True),
                "analysis": sanitize_object(outcome.analysis),
            },
            error_message=result.feedback if failed else None,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        if failed:
            logger.warning("Stored failed assessment %s (%s)", record.id, result.model_used)
        return record

    def get(self, db: Session, record_id: int) -> Optional[AssessmentRecord]:
        return db.get(AssessmentRecord, record_id)

    def to_response(self, record: AssessmentRecord) -> AssessmentRecordResponse:
        outcome = AssessmentOutcome.model_validate({"result": record.result_json, **record.outcome_json})
        return AssessmentRecordResponse(
            id=record.id,
            actor_id=record.actor_id,
            kind=record.kind,
            status=record.status,
            outcome=outcome,
            created_at=record.created_at,
        )
