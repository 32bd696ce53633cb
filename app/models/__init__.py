"""SQLAlchemy 模型导出。"""

from app.models.assessment import AssessmentRecord
from app.models.enums import AssessmentStatus, ModelTier, Remark, SubmissionKind

__all__ = [
    "AssessmentRecord",
    "AssessmentStatus",
    "ModelTier",
    "Remark",
    "SubmissionKind",
]
