"""模型返回结果的校验与规范化（Response Validator/Normalizer）。

``parse_assessment`` 为严格版本，遇到无法解析或缺少必填字段时抛出
``NormalizationError``；``normalize_response`` 永不抛出，失败时返回降级结果。
"""

from __future__ import annotations

import json
import logging
import math
import re
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.models.enums import Remark
from app.schemas.assessment import AssessmentResult, DetailedFeedback, ScoreBreakdown
from app.utils.sanitization import sanitize, sanitize_list

logger = logging.getLogger(__name__)

# 降级结果的 model_used 标记，调用方据此把记录标为失败
ERROR_HANDLER_MARKER = "error-handler"
NORMALIZATION_MARKER = "normalization-fallback"
ERROR_MARKERS = frozenset(
    {
        ERROR_HANDLER_MARKER,
        NORMALIZATION_MARKER,
        "github-fallback",
        "document-fallback",
        "website-fallback",
        "screenshot-fallback",
        "text-fallback",
    }
)

DEGRADED_CONFIDENCE = 0.1
DEFAULT_CONFIDENCE = 0.75
_REQUIRED_FIELDS = {
    "remark": ("remark",),
    "feedback": ("feedback",),
    "criteriaMet": ("criteriaMet", "criteria_met"),
    "areasForImprovement": ("areasForImprovement", "areas_for_improvement"),
}
_SCORE_FIELDS = {
    "content_quality": ("contentQuality", "content_quality"),
    "completeness": ("completeness",),
    "technical_accuracy": ("technicalAccuracy", "technical_accuracy"),
    "structure": ("structure",),
}
_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class NormalizationError(ValueError):
    """模型响应无法解析或缺少必填字段。"""


def is_error_marker(model_used: str) -> bool:
    return model_used in ERROR_MARKERS or model_used.endswith("-fallback")


def _lookup(data: Dict[str, Any], names: tuple) -> Any:
    for name in names:
        if data.get(name) is not None:
            return data[name]
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def coerce_remark(value: Any) -> Remark:
    """把任意评语归一到四个合法值之一。"""

    if isinstance(value, Remark):
        return value
    if not isinstance(value, str):
        return Remark.NEEDS_IMPROVEMENT
    for remark in Remark:
        if value == remark.value:
            return remark
    lowered = value.lower()
    if "excellent" in lowered:
        return Remark.EXCELLENT
    if "good" in lowered:
        return Remark.GOOD
    if "can improve" in lowered or "could improve" in lowered:
        return Remark.CAN_IMPROVE
    return Remark.NEEDS_IMPROVEMENT


def coerce_text_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def clamp_score(value: Any) -> int:
    if not _is_number(value):
        return 0
    return max(0, min(100, int(round(value))))


def clamp_confidence(value: Any) -> float:
    if not _is_number(value):
        return DEFAULT_CONFIDENCE
    return max(0.5, min(1.0, float(value)))


def _load_json(text: str) -> Dict[str, Any]:
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise NormalizationError(f"Invalid JSON response from model: {exc.msg}") from exc
    except RecursionError as exc:
        raise NormalizationError("Model response is nested too deeply") from exc
    if not isinstance(data, dict):
        raise NormalizationError("Model response is not a JSON object")
    return data


def parse_assessment(raw_text: str, model_used: str, processing_time_ms: int = 0) -> AssessmentResult:
    """严格解析并规范化模型输出。"""

    data = _load_json(sanitize(raw_text))

    missing = [field for field, names in _REQUIRED_FIELDS.items() if _lookup(data, names) is None]
    if missing:
        raise NormalizationError(f"Missing required field(s): {', '.join(missing)}")

    feedback = data["feedback"]
    if not isinstance(feedback, str):
        feedback = json.dumps(feedback, ensure_ascii=False)
    criteria_met = coerce_text_list(_lookup(data, _REQUIRED_FIELDS["criteriaMet"]))
    areas = coerce_text_list(_lookup(data, _REQUIRED_FIELDS["areasForImprovement"]))

    raw_detail = _lookup(data, ("detailedFeedback", "detailed_feedback"))
    if isinstance(raw_detail, dict):
        summary = raw_detail.get("summary")
        comparison = _lookup(raw_detail, ("comparisonToExample", "comparison_to_example"))
        detail = DetailedFeedback(
            summary=summary if isinstance(summary, str) else feedback,
            strengths=coerce_text_list(raw_detail.get("strengths")),
            weaknesses=coerce_text_list(raw_detail.get("weaknesses")),
            recommendations=coerce_text_list(raw_detail.get("recommendations")),
            comparison_to_example=comparison if isinstance(comparison, str) else None,
        )
    else:
        detail = DetailedFeedback(summary=feedback, weaknesses=list(areas))

    raw_scores = _lookup(data, ("scoreBreakdown", "score_breakdown"))
    if not isinstance(raw_scores, dict):
        raw_scores = {}
    scores = ScoreBreakdown(
        **{field: clamp_score(_lookup(raw_scores, names)) for field, names in _SCORE_FIELDS.items()}
    )

    # 解析后再清洗一遍，防止 JSON 解码还原出的控制字符进入存储
    comparison = detail.comparison_to_example
    return AssessmentResult(
        remark=coerce_remark(data["remark"]),
        feedback=sanitize(feedback),
        detailed_feedback=DetailedFeedback(
            summary=sanitize(detail.summary),
            strengths=sanitize_list(detail.strengths),
            weaknesses=sanitize_list(detail.weaknesses),
            recommendations=sanitize_list(detail.recommendations),
            comparison_to_example=sanitize(comparison) if comparison else None,
        ),
        score_breakdown=scores,
        criteria_met=sanitize_list(criteria_met),
        areas_for_improvement=sanitize_list(areas),
        confidence=clamp_confidence(data.get("confidence")),
        processing_time_ms=max(0, processing_time_ms),
        model_used=model_used,
    )


def degraded_result(
    marker: str,
    feedback: str,
    areas_for_improvement: List[str],
    recommendations: Optional[List[str]] = None,
    processing_time_ms: int = 0,
) -> AssessmentResult:
    """构造降级结果：评语固定为 Needs Improvement，置信度 0.1。"""

    feedback = sanitize(feedback)
    areas = sanitize_list(areas_for_improvement) or ["Please resubmit your work for assessment"]
    return AssessmentResult(
        remark=Remark.NEEDS_IMPROVEMENT,
        feedback=feedback,
        detailed_feedback=DetailedFeedback(
            summary=feedback,
            weaknesses=list(areas),
            recommendations=sanitize_list(recommendations or []),
        ),
        score_breakdown=ScoreBreakdown(),
        criteria_met=[],
        areas_for_improvement=areas,
        confidence=DEGRADED_CONFIDENCE,
        processing_time_ms=max(0, processing_time_ms),
        model_used=marker,
    )


def normalize_response(raw_text: str, model_used: str, started_at: float) -> AssessmentResult:
    """规范化模型输出；``started_at`` 为 ``time.monotonic()`` 记录的调用开始时间。"""

    def elapsed_ms() -> int:
        return int((time.monotonic() - started_at) * 1000)

    try:
        return parse_assessment(raw_text, model_used, elapsed_ms())
    except (NormalizationError, ValidationError) as exc:
        logger.warning("Could not normalize response from %s: %s", model_used, exc)
        return degraded_result(
            NORMALIZATION_MARKER,
            f"Assessment response could not be processed: {exc}",
            ["Resubmit for a fresh assessment"],
            recommendations=["Please resubmit your work", "If the error persists, contact support"],
            processing_time_ms=elapsed_ms(),
        )
