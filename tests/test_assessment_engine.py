import asyncio
import base64
from datetime import datetime, timezone

import httpx
import pytest

from app.models.enums import Remark, SubmissionKind
from app.schemas.assessment import AssessmentRequest, ReferenceExample, RubricSpec, SubmissionContext
from app.services.assessment import criteria_comparison, select_reference_example
from app.services.rate_limiter import AdmissionDenied

CRITERIA = ["Explains the concept", "Gives an example", "Uses correct terms", "Cites a source"]


def text_context(content: str = "Short answer about gravity.") -> SubmissionContext:
    return SubmissionContext(content=content, kind=SubmissionKind.TEXT, question_title="Gravity")


def repo_context() -> SubmissionContext:
    return SubmissionContext(
        content="https://github.com/octo/demo",
        kind=SubmissionKind.REPOSITORY,
        question_title="Build a CLI",
        question_description="Write a command line tool with tests",
    )


def repo_handler(request: httpx.Request) -> httpx.Response:
    readme = base64.b64encode(b"# Demo CLI").decode("ascii")
    routes = {
        "/repos/octo/demo": {"full_name": "octo/demo"},
        "/repos/octo/demo/languages": {"Python": 1000},
        "/repos/octo/demo/readme": {"content": readme},
        "/repos/octo/demo/contents/": [{"type": "file", "path": "cli.py", "size": 10}],
        "/repos/octo/demo/contents/cli.py": {"content": base64.b64encode(b"print(1)").decode("ascii")},
    }
    body = routes.get(request.url.path)
    if body is None:
        return httpx.Response(404)
    return httpx.Response(200, json=body)


def test_text_assessment_success(settings, make_engine, make_backend) -> None:
    backend = make_backend()
    engine = make_engine(backend)
    outcome = asyncio.run(engine.assess("student-1", text_context(), RubricSpec(criteria=CRITERIA)))

    assert outcome.result.remark == Remark.GOOD
    assert outcome.result.model_used == settings.model_light
    assert outcome.criteria_comparison.total_criteria == 4
    assert outcome.criteria_comparison.criteria_met == 3
    assert outcome.criteria_comparison.completion_percentage == 75
    assert outcome.reference_example_used is None
    assert "Short answer about gravity." in backend.calls[0]["prompt"]


def test_unreachable_repository_degrades(make_engine, make_backend) -> None:
    backend = make_backend()
    engine = make_engine(backend)
    outcome = asyncio.run(engine.assess("student-1", repo_context(), RubricSpec(criteria=CRITERIA)))
    result = outcome.result

    assert result.model_used == "github-fallback"
    assert result.remark == Remark.NEEDS_IMPROVEMENT
    assert result.confidence == 0.1
    assert result.criteria_met == []
    assert result.areas_for_improvement
    assert "GitHub repository" in result.feedback
    assert outcome.criteria_comparison.completion_percentage == 0
    assert backend.calls == []


def test_repository_success_appends_summary(settings, make_engine, make_backend) -> None:
    backend = make_backend()
    engine = make_engine(backend, handler=repo_handler)
    outcome = asyncio.run(engine.assess("student-1", repo_context()))

    assert outcome.result.model_used == settings.model_heavy
    assert "**Repository Analysis Summary:**" in outcome.result.feedback
    assert "- **Repository:** octo/demo" in outcome.result.feedback
    assert outcome.analysis["github"]["mainLanguage"] == "Python"
    assert "# Repository: octo/demo" in backend.calls[0]["prompt"]


def test_fallback_answer_comes_from_light_model(settings, make_engine, make_backend) -> None:
    backend = make_backend(failing_models={settings.model_heavy})
    engine = make_engine(backend)
    example = ReferenceExample(title="Model answer", content="Gravity is a force.")
    outcome = asyncio.run(engine.assess("student-1", text_context("g" * 600), examples=[example]))

    assert outcome.result.model_used == settings.model_light
    assert outcome.reference_example_used == "Model answer"
    assert [call["model"] for call in backend.calls] == [settings.model_heavy, settings.model_light]


def test_invocation_failure_degrades(settings, make_engine, make_backend) -> None:
    backend = make_backend(failing_models={settings.model_light})
    outcome = asyncio.run(make_engine(backend).assess("student-1", text_context()))

    assert outcome.result.model_used == "error-handler"
    assert outcome.result.confidence == 0.1
    assert outcome.result.remark == Remark.NEEDS_IMPROVEMENT


def test_malformed_response_degrades(make_engine, make_backend) -> None:
    backend = make_backend(responses=['{"remark": "Good", "feedback": "missing lists"}'])
    outcome = asyncio.run(make_engine(backend).assess("student-1", text_context()))

    assert outcome.result.model_used == "normalization-fallback"
    assert outcome.result.criteria_met == []


def test_rate_limit_rejects_before_any_work(make_engine, make_backend) -> None:
    backend = make_backend()
    engine = make_engine(backend)

    async def run():
        for _ in range(10):
            await engine.assess("student-1", text_context())
        await engine.assess("student-1", text_context())

    with pytest.raises(AdmissionDenied) as excinfo:
        asyncio.run(run())
    assert excinfo.value.retry_after_seconds == 60.0
    assert len(backend.calls) == 10


def example(title, metadata=None, created_at=None) -> ReferenceExample:
    return ReferenceExample(title=title, content="...", metadata=metadata or {}, created_at=created_at)


def test_select_reference_example_prefers_kind_specific_metadata() -> None:
    examples = [
        example("generic", {"notes": "x"}),
        example("repo-aware", {"fileStructure": "src/"}),
    ]
    assert select_reference_example(examples, SubmissionKind.REPOSITORY).title == "repo-aware"
    assert select_reference_example(examples, SubmissionKind.SCREENSHOT).title == "generic"


def test_select_reference_example_falls_back_to_earliest() -> None:
    early = datetime(2024, 1, 1, tzinfo=timezone.utc)
    late = datetime(2024, 6, 1, tzinfo=timezone.utc)
    examples = [example("late", created_at=late), example("early", created_at=early), example("undated")]
    assert select_reference_example(examples, SubmissionKind.TEXT).title == "early"

    same_day = [example("first", created_at=early), example("second", created_at=early)]
    assert select_reference_example(same_day, SubmissionKind.TEXT).title == "first"


def test_select_reference_example_edge_cases() -> None:
    assert select_reference_example([], SubmissionKind.TEXT) is None
    only = example("only")
    assert select_reference_example([only], SubmissionKind.WEBSITE) is only


def test_criteria_comparison_rounds_half_up() -> None:
    assert criteria_comparison(["a"], ["a"] * 8).completion_percentage == 13
    assert criteria_comparison([], []).completion_percentage == 0


def test_short_text_recovers_from_transient_light_failure(settings, make_engine, make_backend) -> None:
    backend = make_backend(responses=[""])
    outcome = asyncio.run(make_engine(backend).assess("student-1", text_context()))

    assert outcome.result.model_used == settings.model_light
    assert outcome.result.remark == Remark.GOOD
    assert len(backend.calls) == 2


def test_select_reference_example_with_mixed_timezones(make_engine, make_backend) -> None:
    request = AssessmentRequest.model_validate(
        {
            "actorId": "student-1",
            "submission": {"content": "Answer", "kind": "text", "questionTitle": "Gravity"},
            "referenceExamples": [
                {"title": "aware", "content": "...", "createdAt": "2024-01-02T00:00:00Z"},
                {"title": "naive", "content": "...", "createdAt": "2024-01-01T00:00:00"},
            ],
        }
    )
    assert select_reference_example(request.reference_examples, SubmissionKind.TEXT).title == "naive"

    outcome = asyncio.run(
        make_engine(make_backend()).assess(
            request.actor_id, request.submission, request.rubric, request.reference_examples
        )
    )
    assert outcome.reference_example_used == "naive"
