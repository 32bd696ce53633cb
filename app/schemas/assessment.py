"""Data contracts for the assessment engine.

Python attributes use snake_case; every model also accepts and emits the
camelCase names used by stored results and API clients, so a persisted
``AssessmentResult`` round-trips through the database unchanged.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.enums import AssessmentStatus, Remark, SubmissionKind

_ALIASED = {"populate_by_name": True}


class SubmissionContext(BaseModel):
    """One incoming submission. Immutable once built."""

    content: str
    kind: SubmissionKind
    question_title: str = Field(alias="questionTitle")
    question_description: str = Field(default="", alias="questionDescription")
    custom_instructions: Optional[str] = Field(default=None, alias="customInstructions")

    model_config = {"populate_by_name": True, "frozen": True}


class RubricSpec(BaseModel):
    """Instructor rubric. Empty lists disable the matching prompt section."""

    criteria: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list, alias="redFlags")
    bonus_checks: List[str] = Field(default_factory=list, alias="bonusChecks")

    model_config = _ALIASED


class ReferenceExample(BaseModel):
    """Pre-authored exemplary submission used as a comparison anchor."""

    title: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = _ALIASED


class SelectedFile(BaseModel):
    path: str
    truncated_content: str = Field(alias="truncatedContent")

    model_config = _ALIASED


class RepositorySummary(BaseModel):
    """Bounded digest of a repository. Derived, never persisted."""

    owner: str
    repo_name: str = Field(alias="repoName")
    file_count: int = Field(alias="fileCount")
    analyzed_file_count: int = Field(alias="analyzedFileCount")
    languages: Dict[str, int] = Field(default_factory=dict)
    has_readme: bool = Field(alias="hasReadme")
    has_tests: bool = Field(alias="hasTests")
    has_documentation: bool = Field(alias="hasDocumentation")
    structure_text: str = Field(alias="structureText")
    readme_excerpt: Optional[str] = Field(default=None, alias="readmeExcerpt")
    selected_files: List[SelectedFile] = Field(default_factory=list, alias="selectedFiles")
    total_size: int = Field(default=0, alias="totalSize")

    model_config = _ALIASED

    @property
    def main_language(self) -> str:
        if not self.languages:
            return "Unknown"
        return max(self.languages.items(), key=lambda item: item[1])[0]


class DetailedFeedback(BaseModel):
    summary: str = ""
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    comparison_to_example: Optional[str] = Field(default=None, alias="comparisonToExample")

    model_config = _ALIASED


class ScoreBreakdown(BaseModel):
    """Four sub-scores, each an integer in [0, 100]."""

    content_quality: int = Field(default=0, ge=0, le=100, alias="contentQuality")
    completeness: int = Field(default=0, ge=0, le=100)
    technical_accuracy: int = Field(default=0, ge=0, le=100, alias="technicalAccuracy")
    structure: int = Field(default=0, ge=0, le=100)

    model_config = _ALIASED


class AssessmentResult(BaseModel):
    """Validated, sanitized verdict handed to the caller for storage."""

    remark: Remark
    feedback: str
    detailed_feedback: DetailedFeedback = Field(
        default_factory=DetailedFeedback, alias="detailedFeedback"
    )
    score_breakdown: ScoreBreakdown = Field(
        default_factory=ScoreBreakdown, alias="scoreBreakdown"
    )
    criteria_met: List[str] = Field(default_factory=list, alias="criteriaMet")
    areas_for_improvement: List[str] = Field(
        default_factory=list, alias="areasForImprovement"
    )
    confidence: float
    processing_time_ms: int = Field(default=0, ge=0, alias="processingTimeMs")
    model_used: str = Field(alias="modelUsed")

    model_config = _ALIASED


class CriteriaComparison(BaseModel):
    total_criteria: int = Field(alias="totalCriteria")
    criteria_met: int = Field(alias="criteriaMet")
    completion_percentage: int = Field(alias="completionPercentage")

    model_config = _ALIASED


class AssessmentOutcome(BaseModel):
    """Result of one orchestrated assessment, degraded or not."""

    result: AssessmentResult
    reference_example_used: Optional[str] = Field(default=None, alias="referenceExampleUsed")
    criteria_comparison: CriteriaComparison = Field(alias="criteriaComparison")
    analysis: Dict[str, Any] = Field(default_factory=dict)

    model_config = _ALIASED


class AssessmentRequest(BaseModel):
    """Body of ``POST /assessments``."""

    actor_id: str = Field(alias="actorId", min_length=1)
    submission: SubmissionContext
    rubric: RubricSpec = Field(default_factory=RubricSpec)
    reference_examples: List[ReferenceExample] = Field(
        default_factory=list, alias="referenceExamples"
    )

    model_config = _ALIASED


class AssessmentRecordResponse(BaseModel):
    """Stored assessment as returned by the API."""

    id: int
    actor_id: str = Field(alias="actorId")
    kind: SubmissionKind
    status: AssessmentStatus
    outcome: AssessmentOutcome
    created_at: datetime = Field(alias="createdAt")

    model_config = _ALIASED


class RateLimitStatus(BaseModel):
    actor_id: str = Field(alias="actorId")
    remaining: int
    limit: int
    window_seconds: float = Field(alias="windowSeconds")

    model_config = _ALIASED
