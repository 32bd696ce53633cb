"""评估 prompt 组装。

纯字符串拼接，输入相同输出必然相同；各段落只在对应数据非空时出现。
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from app.models.enums import SubmissionKind
from app.schemas.assessment import ReferenceExample, RubricSpec, SubmissionContext
from app.utils.sanitization import sanitize

SYSTEM_INSTRUCTION = (
    "You are an expert educational assessor. "
    "Always respond with valid JSON only, in the exact format requested."
)

KIND_LABELS: Dict[SubmissionKind, str] = {
    SubmissionKind.TEXT: "Text response",
    SubmissionKind.DOCUMENT: "Document",
    SubmissionKind.REPOSITORY: "GitHub repository",
    SubmissionKind.WEBSITE: "Live website",
    SubmissionKind.SCREENSHOT: "Screenshot",
}

KIND_GUIDANCE: Dict[SubmissionKind, str] = {
    SubmissionKind.TEXT: (
        "**TEXT SUBMISSION EVALUATION:**\n"
        "- Assess clarity of writing and expression\n"
        "- Check technical accuracy and depth of explanation\n"
        "- Evaluate structure and organization of the argument\n"
        "- Look for evidence of understanding rather than memorization"
    ),
    SubmissionKind.REPOSITORY: (
        "**REPOSITORY EVALUATION:**\n"
        "- Assess code quality, readability and adherence to best practices\n"
        "- Check documentation (README, comments, API docs)\n"
        "- Check for tests and how much of the behavior they cover\n"
        "- Consider project structure and file organization\n"
        "- Look for working functionality and error handling"
    ),
    SubmissionKind.DOCUMENT: (
        "**DOCUMENT SUBMISSION EVALUATION:**\n"
        "- Assess content completeness and accuracy\n"
        "- Check formatting and professional presentation\n"
        "- Evaluate logical flow between sections\n"
        "- Look for correct use of technical terminology\n"
        "- Consider adherence to length and format requirements"
    ),
    SubmissionKind.WEBSITE: (
        "**WEBSITE SUBMISSION EVALUATION:**\n"
        "- Assess functionality and user experience\n"
        "- Check responsive design and accessibility signals\n"
        "- Evaluate web best practices (HTTPS, metadata, performance)\n"
        "- Look for proper implementation of the stated requirements"
    ),
    SubmissionKind.SCREENSHOT: (
        "**SCREENSHOT SUBMISSION EVALUATION:**\n"
        "- Assess whether all required visual elements are present\n"
        "- Evaluate clarity and legibility of the image\n"
        "- Check layout and composition against the requirements\n"
        "- Look for evidence that the pictured work actually functions"
    ),
}

REFERENCE_COMPARISON = """**DETAILED COMPARISON ANALYSIS REQUIRED:**
1. **Content Quality**: How does the submission compare to the reference in depth, accuracy and completeness?
2. **Structure & Organization**: Does it follow a similarly logical flow and structure?
3. **Technical Accuracy**: Are concepts, terminology and facts as correct as in the reference?
4. **Completeness**: Does it cover the key points the reference addresses?
5. **Originality & Insight**: Does it show original thinking while keeping the reference's quality bar?

**COMPARISON SCORING:**
- Close to the reference in quality: lean towards "Excellent" or "Good"
- Similar structure but noticeably shallower than the reference: "Can Improve"
- Substantial deviation from the reference's standard: "Needs Improvement"

The submission does not need to be identical to the reference; use it as the quality benchmark."""

CRITERIA_RULES = """**CRITERIA EVALUATION INSTRUCTIONS:**
- For each criterion decide whether it is "Met", "Partially Met" or "Not Met"
- Only fully met criteria go into the "criteriaMet" array
- "Excellent" requires meeting all or effectively all criteria
- "Good" requires meeting at least 70% of the criteria
- "Can Improve" for meeting 40-69% of the criteria
- "Needs Improvement" for meeting fewer than 40% of the criteria"""

RED_FLAG_RULES = """**RED FLAG IMPACT:**
- ANY red flag present rules out an "Excellent" rating
- Multiple red flags result in "Needs Improvement" regardless of other factors
- Name the red flags you found in the feedback"""

BONUS_RULES = """**BONUS EVALUATION:**
- Meeting bonus checks can elevate a "Good" submission to "Excellent"
- Mention bonus achievements in the feedback"""

RESPONSE_FORMAT = """**RESPONSE FORMAT:**
Respond with a single JSON object of exactly this shape:

{
  "remark": "Excellent|Good|Can Improve|Needs Improvement",
  "feedback": "Brief 2-3 sentence summary of the assessment",
  "detailedFeedback": {
    "summary": "4-6 sentence overview of quality, approach and results",
    "strengths": ["Specific strength citing the submission", "..."],
    "weaknesses": ["Specific weakness and why it matters", "..."],
    "recommendations": ["Actionable next step starting with a verb", "..."],
    "comparisonToExample": "Only when a reference example was provided: 2-3 sentences comparing the two"
  },
  "scoreBreakdown": {
    "contentQuality": 0,
    "completeness": 0,
    "technicalAccuracy": 0,
    "structure": 0
  },
  "criteriaMet": ["Criteria that were fully met"],
  "areasForImprovement": ["Specific areas to improve"],
  "confidence": 0.85
}

**FIELD GUIDANCE:**
- strengths: 2-4 items, each referencing concrete parts of the submission
- weaknesses: 2-4 items (may be empty for an excellent submission)
- recommendations: 3-5 concrete, actionable items
- scoreBreakdown: integers from 0 to 100; contentQuality is depth and insight, completeness is how fully the requirements were addressed, technicalAccuracy is correctness of facts, code and concepts, structure is organization and logical flow
- confidence: a number between 0.5 and 1.0 describing how certain you are

**REMARK GUIDELINES:**
- "Excellent": exceeds expectations, meets all criteria with exceptional quality
- "Good": meets most criteria, minor improvements needed
- "Can Improve": meets some criteria with notable gaps
- "Needs Improvement": fails most criteria or has significant issues

Be specific, cite the submission and keep the feedback actionable."""


def _enumerate(items: Sequence[str]) -> str:
    return "\n".join(f"{index}. {item}" for index, item in enumerate(items, start=1))


def _format_metadata(metadata: Dict[str, Any]) -> str:
    lines: List[str] = []
    for key, value in metadata.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value, ensure_ascii=False, default=str)
        lines.append(f"- {key}: {value}")
    return "\n".join(lines)


def compile_prompt(
    context: SubmissionContext,
    rubric: RubricSpec,
    reference_example: Optional[ReferenceExample] = None,
    submission_text: Optional[str] = None,
) -> str:
    """把提交、评分细则与参考范例渲染成一条评估 prompt。

    ``submission_text`` 为预处理后的内容（仓库摘要、文档提取文本等），
    未提供时直接使用 ``context.content``。
    """

    body = submission_text if submission_text is not None else context.content
    sections: List[str] = [
        "You are an expert educational assessor. Evaluate the following submission.",
        "**ASSESSMENT CONTEXT:**\n"
        f"Title: {context.question_title}\n"
        f"Description: {context.question_description}\n"
        f"Submission Type: {KIND_LABELS[context.kind]}",
        f"**SUBMISSION:**\n{body}",
    ]

    if reference_example is not None:
        reference = f"**REFERENCE EXAMPLE ({reference_example.title}):**\n{reference_example.content}"
        if reference_example.metadata:
            reference += (
                "\n\n**Why this example is a strong answer:**\n"
                f"{_format_metadata(reference_example.metadata)}"
            )
        sections.append(reference)
        sections.append(REFERENCE_COMPARISON)

    if rubric.criteria:
        sections.append(
            "**ASSESSMENT CRITERIA (must-have elements):**\n" + _enumerate(rubric.criteria)
        )
        sections.append(CRITERIA_RULES)

    if rubric.red_flags:
        sections.append(
            "**RED FLAGS (automatic deductions):**\n" + _enumerate(rubric.red_flags)
        )
        sections.append(RED_FLAG_RULES)

    if rubric.bonus_checks:
        sections.append(
            "**BONUS CHECKS (conditional upgrades):**\n" + _enumerate(rubric.bonus_checks)
        )
        sections.append(BONUS_RULES)

    sections.append(KIND_GUIDANCE[context.kind])

    if context.custom_instructions:
        sections.append(f"**SPECIFIC ASSESSMENT INSTRUCTIONS:**\n{context.custom_instructions}")

    sections.append(RESPONSE_FORMAT)
    return sanitize("\n\n".join(sections))
