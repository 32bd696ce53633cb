"""评估记录模型定义。"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from app.db import Base
from app.models.enums import AssessmentStatus, SubmissionKind


class AssessmentRecord(Base):
    """一次评估的落库结果。

    ``result_json`` 原样保存规范化后的评估结果（camelCase 键），
    降级结果同样落库，只是状态为 ``failed``。
    """

    __tablename__ = "assessment_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    kind: Mapped[SubmissionKind] = mapped_column(Enum(SubmissionKind), nullable=False)
    status: Mapped[AssessmentStatus] = mapped_column(Enum(AssessmentStatus), nullable=False)
    model_used: Mapped[str] = mapped_column(String(100), nullable=False)

    # 格式: AssessmentResult.model_dump(by_alias=True)
    result_json: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    # 格式: {"referenceExampleUsed": ..., "criteriaComparison": {...}, "analysis": {...}}
    outcome_json: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AssessmentRecord(id={self.id}, actor={self.actor_id}, status={self.status.value})>"
