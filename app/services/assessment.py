"""评估编排：限流、预处理、选档、组装 prompt、调用模型、规范化结果。

``AssessmentEngine.assess`` 是唯一入口。除限流拒绝外，任何内容获取、
模型调用或结果解析失败都转换为带标记的降级结果，不向上抛出。
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from app.config import Settings
from app.models.enums import SubmissionKind
from app.schemas.assessment import (
    AssessmentOutcome,
    AssessmentResult,
    CriteriaComparison,
    ReferenceExample,
    RubricSpec,
    SubmissionContext,
)
from app.services.ai import AssessmentInvoker, EvaluationBackend, InvocationError
from app.services.fetch import ContentAcquisitionError
from app.services.github import GitHubClient, RepositorySummarizer
from app.services.model_selection import select_tier
from app.services.normalizer import (
    ERROR_HANDLER_MARKER,
    degraded_result,
    is_error_marker,
    normalize_response,
)
from app.services.preprocessing import PREPROCESSORS, PreparedSubmission, PreprocessingTools
from app.services.prompts import compile_prompt
from app.services.rate_limiter import AdmissionDenied, SlidingWindowRateLimiter
from app.utils.sanitization import sanitize

logger = logging.getLogger(__name__)

HttpClientFactory = Callable[[], httpx.AsyncClient]
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)

# 各类型参考样例的优先元数据键
EXAMPLE_METADATA_KEYS: Dict[SubmissionKind, Tuple[str, ...]] = {
    SubmissionKind.REPOSITORY: ("fileStructure", "features"),
    SubmissionKind.DOCUMENT: ("wordCount", "topics"),
    SubmissionKind.WEBSITE: ("pages", "features", "url"),
    SubmissionKind.SCREENSHOT: ("dimensions", "elements"),
    SubmissionKind.TEXT: ("wordCount", "keyPoints"),
}

# 内容获取失败时的降级标记、提示对象与补救建议
ACQUISITION_FALLBACKS: Dict[SubmissionKind, Tuple[str, str, List[str]]] = {
    SubmissionKind.REPOSITORY: (
        "github-fallback",
        "GitHub repository",
        [
            "Ensure repository is publicly accessible",
            "Verify the GitHub URL is correct",
            "Check that the repository exists",
        ],
    ),
    SubmissionKind.DOCUMENT: (
        "document-fallback",
        "document",
        [
            "Ensure the document URL is publicly accessible",
            "Upload the document as PDF, DOCX or plain text",
            "Check that the file is not corrupted",
        ],
    ),
    SubmissionKind.WEBSITE: (
        "website-fallback",
        "website",
        [
            "Ensure the website is deployed and publicly accessible",
            "Verify the URL is correct",
            "Check for server errors",
        ],
    ),
    SubmissionKind.SCREENSHOT: (
        "screenshot-fallback",
        "screenshot",
        ["Ensure the image URL is publicly accessible", "Upload the screenshot as PNG or JPEG"],
    ),
    SubmissionKind.TEXT: (
        "text-fallback",
        "submission",
        ["Resubmit the text of your answer"],
    ),
}


def select_reference_example(
    examples: Sequence[ReferenceExample], kind: SubmissionKind
) -> Optional[ReferenceExample]:
    """挑选最合适的参考样例。

    优先含当前类型专属元数据键的样例，其次任意带元数据的样例，
    都没有时取创建时间最早的一个（时间相同保持输入顺序）。
    """

    if not examples:
        return None
    if len(examples) == 1:
        return examples[0]

    with_metadata = [example for example in examples if example.metadata]
    keys = EXAMPLE_METADATA_KEYS.get(kind, ())
    for example in with_metadata:
        if any(key in example.metadata for key in keys):
            return example
    if with_metadata:
        return with_metadata[0]

    def created(example: ReferenceExample) -> Tuple[bool, datetime]:
        value = example.created_at
        if value is None:
            return True, _EARLIEST
        # 无时区的时间按 UTC 处理，避免与带时区的时间比较时报错
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return False, value

    return min(examples, key=created)


def criteria_comparison(criteria_met: Iterable[str], criteria: Sequence[str]) -> CriteriaComparison:
    met = len(list(criteria_met))
    total = len(criteria)
    percentage = math.floor(met * 100 / total + 0.5) if total else 0
    return CriteriaComparison(
        total_criteria=total, criteria_met=met, completion_percentage=percentage
    )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _with_report(result: AssessmentResult, prepared: PreparedSubmission) -> AssessmentResult:
    """在成功结果的反馈末尾附上预处理摘要。"""

    if not prepared.report_lines or is_error_marker(result.model_used):
        return result
    lines = "\n".join(f"- {line}" for line in prepared.report_lines)
    feedback = f"{result.feedback}\n\n---\n\n**{prepared.report_title}:**\n{lines}"
    return result.model_copy(update={"feedback": sanitize(feedback)})


class AssessmentEngine:
    """评估编排器。限流器与评估后端由调用方注入。"""

    def __init__(
        self,
        settings: Settings,
        limiter: SlidingWindowRateLimiter,
        backend: EvaluationBackend,
        http_client_factory: Optional[HttpClientFactory] = None,
    ) -> None:
        self.settings = settings
        self.limiter = limiter
        self.invoker = AssessmentInvoker(backend, settings)
        self._http_client_factory = http_client_factory or self._default_http_client

    def _default_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.fetch_timeout_seconds)

    async def _prepare(self, context: SubmissionContext, rubric: RubricSpec) -> PreparedSubmission:
        async with self._http_client_factory() as http:
            tools = PreprocessingTools(
                settings=self.settings,
                http=http,
                summarizer=RepositorySummarizer(GitHubClient(self.settings, http), self.settings),
            )
            return await PREPROCESSORS[context.kind](context, rubric, tools)

    def _outcome(
        self,
        result: AssessmentResult,
        reference: Optional[ReferenceExample],
        rubric: RubricSpec,
        analysis: dict,
    ) -> AssessmentOutcome:
        return AssessmentOutcome(
            result=result,
            reference_example_used=reference.title if reference else None,
            criteria_comparison=criteria_comparison(result.criteria_met, rubric.criteria),
            analysis=analysis,
        )

    async def assess(
        self,
        actor_id: str,
        context: SubmissionContext,
        rubric: Optional[RubricSpec] = None,
        examples: Sequence[ReferenceExample] = (),
    ) -> AssessmentOutcome:
        if not self.limiter.try_admit(actor_id):
            retry_after = self.limiter.retry_after(actor_id)
            logger.info("Rate limit hit for %s, retry after %.1fs", actor_id, retry_after)
            raise AdmissionDenied(actor_id, retry_after)

        started = time.monotonic()
        rubric = rubric or RubricSpec()
        reference = select_reference_example(examples, context.kind)

        try:
            prepared = await self._prepare(context, rubric)
        except ContentAcquisitionError as exc:
            marker, label, areas = ACQUISITION_FALLBACKS[context.kind]
            logger.warning("Content acquisition failed for %s submission: %s", context.kind.value, exc)
            result = degraded_result(
                marker,
                f"Unable to access the {label}: {exc}. "
                "Please make sure it is publicly reachable and resubmit.",
                areas,
                recommendations=["Fix the access problem and resubmit for assessment"],
                processing_time_ms=_elapsed_ms(started),
            )
            return self._outcome(result, reference, rubric, {"error": sanitize(str(exc))})

        tier = select_tier(context.kind, len(prepared.submission_text), reference is not None)
        logger.info(
            "Assessing %s submission for %s with %s tier (reference example: %s)",
            context.kind.value,
            actor_id,
            tier.value,
            reference.title if reference else "none",
        )
        prompt = compile_prompt(context, rubric, reference, prepared.submission_text)

        try:
            response = await self.invoker.invoke(prompt, tier)
        except InvocationError as exc:
            logger.warning("Assessment call failed for %s: %s", actor_id, exc)
            result = degraded_result(
                ERROR_HANDLER_MARKER,
                f"Assessment failed due to a system error: {exc}. Please try again.",
                ["System error occurred. Please resubmit your work."],
                recommendations=["Please resubmit your work", "If the error persists, contact support"],
                processing_time_ms=_elapsed_ms(started),
            )
            return self._outcome(result, reference, rubric, prepared.analysis)

        if response.tier != tier:
            logger.info("Assessment for %s answered by fallback model %s", actor_id, response.model)
        result = _with_report(normalize_response(response.text, response.model, started), prepared)
        return self._outcome(result, reference, rubric, prepared.analysis)
