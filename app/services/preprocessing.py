"""按提交类型预处理内容。

``PREPROCESSORS`` 是提交类型到预处理协程的唯一分发表；每个预处理函数
返回 ``PreparedSubmission``：写入 prompt 的提交文本、随结果返回的分析
元数据，以及成功时附在反馈末尾的摘要行。内容获取失败统一抛出
``ContentAcquisitionError``。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from app.config import Settings
from app.models.enums import SubmissionKind
from app.schemas.assessment import RubricSpec, SubmissionContext
from app.services.fetch import USER_AGENT, ContentAcquisitionError, fetch_bytes
from app.services.github import RepositorySummarizer, extract_keywords, render_digest
from app.utils.sanitization import sanitize
from app.utils.text_processing import (
    UnsupportedDocumentError,
    count_words,
    estimate_page_count,
    guess_mime_type,
    join_pages,
    parse_document,
    truncate_for_prompt,
)

WEBSITE_MAX_BYTES = 2 * 1024 * 1024
HTML_PREVIEW_CHARS = 500
SLOW_RESPONSE_MS = 3000
FAST_RESPONSE_MS = 1000
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}

_TITLE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_DESCRIPTION = re.compile(
    r"<meta\s+name=[\"']description[\"']\s+content=[\"']([^\"']+)[\"']", re.IGNORECASE
)
_VIEWPORT = re.compile(
    r"<meta\s+name=[\"']viewport[\"']\s+content=[\"']([^\"']+)[\"']", re.IGNORECASE
)
_FAVICON = re.compile(r"<link[^>]+rel=[\"'](?:icon|shortcut icon)[\"']", re.IGNORECASE)


@dataclass
class PreparedSubmission:
    submission_text: str
    analysis: Dict[str, Any] = field(default_factory=dict)
    report_title: Optional[str] = None
    report_lines: List[str] = field(default_factory=list)


@dataclass
class PreprocessingTools:
    """预处理依赖：配置、共享的 httpx 客户端与仓库摘要器。"""

    settings: Settings
    http: httpx.AsyncClient
    summarizer: RepositorySummarizer


Preprocessor = Callable[
    [SubmissionContext, RubricSpec, PreprocessingTools], Awaitable[PreparedSubmission]
]


def _is_url(text: str) -> bool:
    return text.strip().lower().startswith(("http://", "https://"))


def _filename_from_url(url: str) -> str:
    name = PurePosixPath(httpx.URL(url).path).name
    return name or "document"


def _check(flag: bool, present: str = "Present", absent: str = "Missing") -> str:
    return f"✓ {present}" if flag else f"✗ {absent}"


async def prepare_text(
    context: SubmissionContext, rubric: RubricSpec, tools: PreprocessingTools
) -> PreparedSubmission:
    return PreparedSubmission(submission_text=context.content)


async def prepare_document(
    context: SubmissionContext, rubric: RubricSpec, tools: PreprocessingTools
) -> PreparedSubmission:
    """URL 形式的文档先下载再按后缀解析，否则直接当作提取好的文本。"""

    settings = tools.settings
    if _is_url(context.content):
        url = context.content.strip()
        fetched = await fetch_bytes(tools.http, url, settings.document_max_bytes)
        filename = _filename_from_url(url)
        try:
            text = join_pages(parse_document(fetched.data, filename))
        except UnsupportedDocumentError as exc:
            raise ContentAcquisitionError(str(exc)) from exc
        file_type = guess_mime_type(filename)
        method = "url-fetch"
    else:
        text = context.content
        file_type = "text/plain"
        method = "direct-content"

    text = sanitize(text)
    if not text:
        raise ContentAcquisitionError("Document contains no extractable text")

    words = count_words(text)
    pages = estimate_page_count(text)
    metadata = {"wordCount": words, "pageCount": pages, "fileType": file_type}
    submission_text = (
        "Document Metadata:\n"
        f"- Word Count: {words} words\n"
        f"- Estimated Pages: {pages}\n"
        f"- File Type: {file_type}\n\n"
        "Document Content:\n"
        f"{truncate_for_prompt(text, settings.document_char_limit)}"
    )
    if len(text) > 5000:
        length_label = "Comprehensive"
    elif len(text) > 2000:
        length_label = "Moderate"
    else:
        length_label = "Brief"
    return PreparedSubmission(
        submission_text=submission_text,
        analysis={"document": metadata, "contentLength": len(text), "processingMethod": method},
        report_title="Document Analysis Summary",
        report_lines=[
            f"**Word Count:** {words} words",
            f"**Estimated Pages:** {pages}",
            f"**File Type:** {file_type}",
            f"**Content Length:** {length_label}",
        ],
    )


async def prepare_repository(
    context: SubmissionContext, rubric: RubricSpec, tools: PreprocessingTools
) -> PreparedSubmission:
    keywords = extract_keywords(
        context.question_title, context.question_description, rubric.criteria
    )
    summary = await tools.summarizer.summarize(context.content, keywords)
    return PreparedSubmission(
        submission_text=render_digest(summary),
        analysis={
            "github": {
                "owner": summary.owner,
                "repo": summary.repo_name,
                "fileCount": summary.file_count,
                "filesAnalyzed": summary.analyzed_file_count,
                "mainLanguage": summary.main_language,
                "hasReadme": summary.has_readme,
                "hasTests": summary.has_tests,
                "hasDocumentation": summary.has_documentation,
                "languages": summary.languages,
            },
            "repoUrl": context.content,
        },
        report_title="Repository Analysis Summary",
        report_lines=[
            f"**Repository:** {summary.owner}/{summary.repo_name}",
            f"**Main Language:** {summary.main_language}",
            f"**Files Analyzed:** {summary.analyzed_file_count} (out of {summary.file_count} total)",
            f"**README:** {_check(summary.has_readme)}",
            f"**Tests:** {_check(summary.has_tests, 'Found', 'Not detected')}",
            f"**Documentation:** {_check(summary.has_documentation, 'Present', 'Limited')}",
            f"**Repository Size:** {summary.total_size / 1024:.2f} KB",
        ],
    )


def normalize_website_url(url: str) -> str:
    normalized = url.strip()
    if not re.match(r"^https?://", normalized, re.IGNORECASE):
        normalized = f"https://{normalized}"
    try:
        parsed = httpx.URL(normalized)
    except httpx.InvalidURL as exc:
        raise ContentAcquisitionError(f"Invalid website URL: {url!r}") from exc
    if not parsed.host or "." not in parsed.host:
        raise ContentAcquisitionError(f"Invalid website URL: {url!r}")
    return str(parsed)


def extract_page_metadata(html: str) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"hasFavicon": bool(_FAVICON.search(html))}
    for key, pattern in (("title", _TITLE), ("description", _DESCRIPTION), ("viewport", _VIEWPORT)):
        match = pattern.search(html)
        if match:
            metadata[key] = sanitize(match.group(1))
    return metadata


def review_website(info: Dict[str, Any]) -> Dict[str, List[str]]:
    """根据抓取到的网站信息整理优点、问题与建议。"""

    strengths: List[str] = ["Website is accessible and responding"]
    issues: List[str] = []
    recommendations: List[str] = []
    metadata = info["metadata"]

    if info["hasHttps"]:
        strengths.append("Uses HTTPS for secure connections")
    else:
        issues.append("Website does not use HTTPS")
        recommendations.append("Serve the site over HTTPS with a valid certificate")

    response_time = info["responseTimeMs"]
    if response_time > SLOW_RESPONSE_MS:
        issues.append(f"Slow response time: {response_time}ms")
        recommendations.append("Optimize server response time (target < 1000ms)")
    elif response_time < FAST_RESPONSE_MS:
        strengths.append("Fast response time")

    if metadata.get("title"):
        strengths.append("Has page title")
    else:
        issues.append("Missing page title")
        recommendations.append("Add a descriptive page title")
    if metadata.get("description"):
        strengths.append("Has meta description")
    else:
        recommendations.append("Add a meta description for SEO")
    if metadata.get("viewport"):
        strengths.append("Has viewport meta tag (mobile-friendly)")
    else:
        recommendations.append("Add a viewport meta tag for responsive design")
    return {"strengths": strengths, "issues": issues, "recommendations": recommendations}


async def prepare_website(
    context: SubmissionContext, rubric: RubricSpec, tools: PreprocessingTools
) -> PreparedSubmission:
    url = normalize_website_url(context.content)
    fetched = await fetch_bytes(tools.http, url, WEBSITE_MAX_BYTES)
    html = fetched.data.decode("utf-8", errors="ignore")
    info: Dict[str, Any] = {
        "url": fetched.url,
        "statusCode": fetched.status_code,
        "responseTimeMs": fetched.elapsed_ms,
        "hasHttps": fetched.url.startswith("https://"),
        "metadata": extract_page_metadata(html),
    }
    review = review_website(info)
    metadata = info["metadata"]

    lines = [
        f"# Website Assessment: {info['url']}",
        "## Accessibility Status",
        f"- Status Code: {info['statusCode']}",
        f"- Response Time: {info['responseTimeMs']}ms",
        f"- Protocol: {'HTTPS' if info['hasHttps'] else 'HTTP (insecure)'}",
        "## Page Metadata",
        f"- Title: {metadata.get('title', 'N/A')}",
        f"- Description: {metadata.get('description', 'N/A')}",
        f"- Viewport: {metadata.get('viewport', 'N/A')}",
        f"- Favicon: {'Yes' if metadata['hasFavicon'] else 'No'}",
    ]
    for heading, key, bullet in (
        ("Strengths", "strengths", "✓"),
        ("Issues Found", "issues", "✗"),
        ("Recommendations", "recommendations", "→"),
    ):
        if review[key]:
            lines.append(f"## {heading}")
            lines.extend(f"- {bullet} {item}" for item in review[key])
    lines.append(f"## HTML Preview (first {HTML_PREVIEW_CHARS} characters)")
    lines.append(f"```html\n{html[:HTML_PREVIEW_CHARS]}\n```")

    return PreparedSubmission(
        submission_text=sanitize("\n".join(lines)),
        analysis={"website": info, **review},
        report_title="Website Assessment Summary",
        report_lines=[
            f"**URL:** {info['url']}",
            f"**Protocol:** {'HTTPS ✓' if info['hasHttps'] else 'HTTP'}",
            f"**Response Time:** {info['responseTimeMs']}ms",
            f"**Issues Found:** {len(review['issues'])}",
            f"**Strengths:** {len(review['strengths'])}",
        ],
    )


def _looks_like_image(url: str) -> bool:
    try:
        suffix = PurePosixPath(httpx.URL(url).path).suffix.lower()
    except httpx.InvalidURL:
        return False
    return suffix in IMAGE_EXTENSIONS


async def prepare_screenshot(
    context: SubmissionContext, rubric: RubricSpec, tools: PreprocessingTools
) -> PreparedSubmission:
    """图片链接读取 HEAD 元数据；其余内容视为学生提供的截图描述。"""

    content = context.content.strip()
    if not (_is_url(content) and _looks_like_image(content)):
        return PreparedSubmission(
            submission_text=f"Screenshot description / URL:\n{content}",
            analysis={"isImageUrl": False},
        )

    try:
        response = await tools.http.head(
            content, headers={"User-Agent": USER_AGENT}, follow_redirects=True
        )
    except httpx.HTTPError as exc:
        raise ContentAcquisitionError(f"Failed to fetch screenshot: {exc}") from exc
    if response.status_code >= 400:
        raise ContentAcquisitionError(f"Failed to fetch screenshot: HTTP {response.status_code}")

    file_type = response.headers.get("content-type", "unknown")
    size = int(response.headers.get("content-length") or 0)
    screenshot = {"imageUrl": content, "fileType": file_type, "fileSize": size}
    return PreparedSubmission(
        submission_text=(
            "Screenshot Details:\n"
            f"- Image URL: {content}\n"
            f"- File Size: {size / 1024:.2f} KB\n"
            f"- Format: {file_type}\n\n"
            "Assess based on the screenshot details and the assignment requirements."
        ),
        analysis={"isImageUrl": True, "screenshot": screenshot},
        report_title="Screenshot Analysis",
        report_lines=[
            f"**Image URL:** {content}",
            f"**File Size:** {size / 1024:.2f} KB",
            f"**Format:** {file_type}",
        ],
    )


PREPROCESSORS: Dict[SubmissionKind, Preprocessor] = {
    SubmissionKind.TEXT: prepare_text,
    SubmissionKind.DOCUMENT: prepare_document,
    SubmissionKind.REPOSITORY: prepare_repository,
    SubmissionKind.WEBSITE: prepare_website,
    SubmissionKind.SCREENSHOT: prepare_screenshot,
}
