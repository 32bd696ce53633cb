import json
import time

import pytest

from app.models.enums import Remark
from app.services.normalizer import (
    DEFAULT_CONFIDENCE,
    NORMALIZATION_MARKER,
    NormalizationError,
    clamp_score,
    coerce_remark,
    degraded_result,
    is_error_marker,
    normalize_response,
    parse_assessment,
)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Excellent", Remark.EXCELLENT),
        ("Good", Remark.GOOD),
        ("Can Improve", Remark.CAN_IMPROVE),
        ("Needs Improvement", Remark.NEEDS_IMPROVEMENT),
        ("really excellent work", Remark.EXCELLENT),
        ("GOOD effort", Remark.GOOD),
        ("very good job!", Remark.GOOD),
        ("could improve a bit", Remark.CAN_IMPROVE),
        ("Satisfactory", Remark.NEEDS_IMPROVEMENT),
        (3, Remark.NEEDS_IMPROVEMENT),
    ],
)
def test_coerce_remark(raw, expected) -> None:
    assert coerce_remark(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [(150, 100), (-5, 0), (72.6, 73), ("80", 0), (None, 0), (True, 0), (float("nan"), 0)],
)
def test_clamp_score(raw, expected) -> None:
    assert clamp_score(raw) == expected


def test_parse_full_response(model_json) -> None:
    result = parse_assessment(model_json(), "gemini-2.0-flash", 120)

    assert result.remark == Remark.GOOD
    assert result.score_breakdown.technical_accuracy == 85
    assert result.criteria_met == ["Explains the concept", "Gives an example", "Uses correct terms"]
    assert result.confidence == 0.9
    assert result.processing_time_ms == 120
    assert result.model_used == "gemini-2.0-flash"


def test_parse_fills_defaults_for_optional_fields() -> None:
    raw = json.dumps(
        {
            "remark": "Good",
            "feedback": "Fine work",
            "criteria_met": ["A", 3, None],
            "areas_for_improvement": ["B"],
            "confidence": 0.2,
        }
    )
    result = parse_assessment(raw, "m")

    assert result.criteria_met == ["A"]
    assert result.detailed_feedback.summary == "Fine work"
    assert result.detailed_feedback.weaknesses == ["B"]
    assert result.score_breakdown.model_dump() == {
        "content_quality": 0,
        "completeness": 0,
        "technical_accuracy": 0,
        "structure": 0,
    }
    assert result.confidence == 0.5


def test_parse_accepts_code_fences(model_json) -> None:
    result = parse_assessment(f"```json\n{model_json()}\n```", "m")
    assert result.remark == Remark.GOOD


def test_missing_confidence_defaults(model_json) -> None:
    data = json.loads(model_json())
    del data["confidence"]
    assert parse_assessment(json.dumps(data), "m").confidence == DEFAULT_CONFIDENCE


def test_missing_required_field_raises(model_json) -> None:
    data = json.loads(model_json())
    del data["areasForImprovement"]
    with pytest.raises(NormalizationError, match="areasForImprovement"):
        parse_assessment(json.dumps(data), "m")


def test_invalid_json_raises() -> None:
    with pytest.raises(NormalizationError):
        parse_assessment("not json at all", "m")
    with pytest.raises(NormalizationError):
        parse_assessment("[1, 2]", "m")


def test_output_is_sanitized(model_json) -> None:
    raw = model_json(feedback="Nice\x00 work\x07", criteriaMet=["Clear\x01 intro"])
    result = parse_assessment(raw, "m")
    assert result.feedback == "Nice work"
    assert result.criteria_met == ["Clear intro"]


def test_normalize_response_never_raises() -> None:
    result = normalize_response('{"remark": "Good"', "gemini-2.0-flash", time.monotonic())

    assert result.model_used == NORMALIZATION_MARKER
    assert result.remark == Remark.NEEDS_IMPROVEMENT
    assert result.confidence == 0.1
    assert result.criteria_met == []
    assert result.areas_for_improvement


def test_degraded_result_shape() -> None:
    result = degraded_result("github-fallback", "Unable to access\x00 repo", [])

    assert result.feedback == "Unable to access repo"
    assert result.areas_for_improvement == ["Please resubmit your work for assessment"]
    assert result.score_breakdown.completeness == 0
    assert is_error_marker(result.model_used)
    assert not is_error_marker("gemini-2.0-flash")


def test_deeply_nested_response_degrades() -> None:
    raw = "[" * 5000 + "]" * 5000
    with pytest.raises(NormalizationError, match="nested too deeply"):
        parse_assessment(raw, "m")

    result = normalize_response(raw, "m", time.monotonic())
    assert result.model_used == NORMALIZATION_MARKER
