"""GitHub 仓库抓取与摘要（Repository Summarizer）。

抓取仓库元数据与有限数量的文件内容，计算 README / 测试 / 文档等启发式
指标，按作业关键词挑选最相关的若干文件，渲染成供 prompt 使用的摘要。
抓取受目录深度、单文件大小与总字节数三重上限约束。

本模块失败时直接抛出 ``RepositoryAccessError``，由调用方负责降级。
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import httpx

from app.config import Settings
from app.schemas.assessment import RepositorySummary, SelectedFile
from app.services.fetch import ContentAcquisitionError
from app.utils.sanitization import sanitize

logger = logging.getLogger(__name__)

_GITHUB_URL = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(?:\.git)?(?:[/?#].*)?$",
    re.IGNORECASE,
)
_TEST_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"test", r"spec", r"__tests__", r"\.test\.", r"\.spec\.")
]
_DOC_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"docs?/", r"documentation", r"\.md$", r"\.rst$", r"\.txt$")
]
_WORD_EDGES = re.compile(r"^[^\w]+|[^\w]+$")
_STRUCTURE_LIMIT = 20
BINARY_PLACEHOLDER = "[Binary file content not displayable]"


class RepositoryAccessError(ContentAcquisitionError):
    """仓库无法访问：URL 非法、不存在或私有、触发 API 限额、网络失败。"""


@dataclass
class RepositoryFile:
    path: str
    content: str
    size: int


def parse_github_url(url: str) -> Tuple[str, str]:
    """解析 ``owner/repo``，支持省略协议、``.git`` 后缀与子路径。"""

    match = _GITHUB_URL.match((url or "").strip())
    if not match:
        raise RepositoryAccessError(f"Invalid GitHub repository URL: {url!r}")
    return match.group(1), match.group(2)


def extract_keywords(title: str, description: str, criteria: Iterable[str]) -> List[str]:
    """从题目、描述与评分标准中提取长度大于 3 的小写关键词（去重保序）。"""

    words: List[str] = []
    seen = set()
    for text in [title, description, *criteria]:
        for raw in (text or "").lower().split():
            word = _WORD_EDGES.sub("", raw)
            if len(word) > 3 and word not in seen:
                seen.add(word)
                words.append(word)
    return words


def has_test_files(paths: Sequence[str]) -> bool:
    return any(pattern.search(path) for path in paths for pattern in _TEST_PATTERNS)


def has_documentation_files(paths: Sequence[str]) -> bool:
    return any(
        "readme" not in path.lower() and any(p.search(path) for p in _DOC_PATTERNS)
        for path in paths
    )


def analyze_structure(paths: Sequence[str]) -> str:
    directories = set()
    for path in paths:
        parts = path.split("/")
        for index in range(1, len(parts)):
            directories.add("/".join(parts[:index]))
    if not directories:
        return "Flat structure (no subdirectories)"
    listing = sorted(directories)
    lines = [f"{directory}/" for directory in listing[:_STRUCTURE_LIMIT]]
    if len(listing) > _STRUCTURE_LIMIT:
        lines.append(f"... ({len(listing) - _STRUCTURE_LIMIT} more directories)")
    return "\n".join(lines)


def truncate(text: str, budget: int) -> str:
    if len(text) <= budget:
        return text
    return text[:budget] + "..."


def rank_files(
    files: Sequence[RepositoryFile], keywords: Sequence[str], limit: int
) -> List[RepositoryFile]:
    """按关键词命中数降序、路径长度升序、发现顺序升序选出前 ``limit`` 个文件。"""

    def relevance(item: RepositoryFile) -> int:
        path = item.path.lower()
        content = item.content.lower()
        return sum(1 for keyword in keywords if keyword in path or keyword in content)

    ranked = sorted(
        enumerate(files),
        key=lambda pair: (-relevance(pair[1]), len(pair[1].path), pair[0]),
    )
    return [item for _, item in ranked[:limit]]


def _decode_content(encoded: str) -> str:
    try:
        raw = base64.b64decode(encoded)
    except (binascii.Error, ValueError):
        return BINARY_PLACEHOLDER
    if b"\x00" in raw:
        return BINARY_PLACEHOLDER
    return sanitize(raw.decode("utf-8", errors="replace"))


class GitHubClient:
    """GitHub REST API 的只读封装。"""

    def __init__(self, settings: Settings, client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.client = client

    def _headers(self) -> dict:
        headers = {"Accept": "application/vnd.github+json"}
        if self.settings.github_token:
            headers["Authorization"] = f"Bearer {self.settings.github_token}"
        return headers

    async def _get_json(self, owner: str, repo: str, suffix: str = "") -> Any:
        url = f"{self.settings.github_api_url.rstrip('/')}/repos/{owner}/{repo}{suffix}"
        try:
            response = await self.client.get(url, headers=self._headers())
        except httpx.HTTPError as exc:
            raise RepositoryAccessError(f"Network error while contacting GitHub: {exc}") from exc
        if response.status_code == 404:
            raise RepositoryAccessError(
                f"Repository {owner}/{repo} not found or is private"
            )
        if response.status_code in (403, 429):
            raise RepositoryAccessError("GitHub API rate limit reached or access forbidden")
        if response.status_code >= 400:
            raise RepositoryAccessError(
                f"GitHub API returned HTTP {response.status_code} for {owner}/{repo}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RepositoryAccessError(f"Malformed response from GitHub for {owner}/{repo}") from exc

    async def get_repository(self, owner: str, repo: str) -> dict:
        return await self._get_json(owner, repo)

    async def get_languages(self, owner: str, repo: str) -> dict:
        data = await self._get_json(owner, repo, "/languages")
        return {str(k): int(v) for k, v in data.items()} if isinstance(data, dict) else {}

    async def get_readme(self, owner: str, repo: str) -> Optional[str]:
        try:
            data = await self._get_json(owner, repo, "/readme")
        except RepositoryAccessError:
            return None
        if isinstance(data, dict) and data.get("content"):
            return _decode_content(data["content"])
        return None

    async def list_files(self, owner: str, repo: str) -> Tuple[List[RepositoryFile], List[str]]:
        """递归抓取文件，返回（已抓取文件, 发现的全部文件路径）。

        因大小上限未抓取的文件也计入路径列表。

        根目录失败直接抛出；子目录与单文件失败只记录警告。
        """

        root = await self._get_json(owner, repo, "/contents/")
        files: List[RepositoryFile] = []
        state = {"paths": [], "budget": self.settings.repo_max_total_bytes}
        await self._walk(owner, repo, root, 0, files, state)
        return files, state["paths"]

    async def _walk(
        self,
        owner: str,
        repo: str,
        entries: Any,
        depth: int,
        files: List[RepositoryFile],
        state: dict,
    ) -> None:
        if not isinstance(entries, list):
            return
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            kind = entry.get("type")
            path = entry.get("path", "")
            if kind == "file":
                state["paths"].append(path)
                size = int(entry.get("size") or 0)
                if size >= self.settings.repo_max_file_bytes or size > state["budget"]:
                    continue
                try:
                    data = await self._get_json(owner, repo, f"/contents/{path}")
                except RepositoryAccessError as exc:
                    logger.warning("Skipping %s/%s:%s (%s)", owner, repo, path, exc)
                    continue
                if isinstance(data, dict) and data.get("content"):
                    state["budget"] -= size
                    files.append(
                        RepositoryFile(path=path, content=_decode_content(data["content"]), size=size)
                    )
            elif kind == "dir" and depth < self.settings.repo_max_depth:
                try:
                    children = await self._get_json(owner, repo, f"/contents/{path}")
                except RepositoryAccessError as exc:
                    logger.warning("Skipping directory %s/%s:%s (%s)", owner, repo, path, exc)
                    continue
                await self._walk(owner, repo, children, depth + 1, files, state)


class RepositorySummarizer:
    """把仓库 URL 变成有界的 ``RepositorySummary`` 与摘要文本。"""

    def __init__(self, client: GitHubClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    async def summarize(self, url: str, keywords: Sequence[str]) -> RepositorySummary:
        owner, repo = parse_github_url(url)
        await self.client.get_repository(owner, repo)
        languages = await self.client.get_languages(owner, repo)
        readme = await self.client.get_readme(owner, repo)
        files, paths = await self.client.list_files(owner, repo)

        selected = rank_files(files, keywords, self.settings.repo_selected_files)
        summary = RepositorySummary(
            owner=owner,
            repo_name=repo,
            file_count=len(paths),
            analyzed_file_count=len(files),
            languages=languages,
            has_readme=readme is not None,
            has_tests=has_test_files(paths),
            has_documentation=has_documentation_files(paths) or readme is not None,
            structure_text=analyze_structure(paths),
            readme_excerpt=readme[: self.settings.repo_readme_chars] if readme else None,
            selected_files=[
                SelectedFile(
                    path=item.path,
                    truncated_content=truncate(item.content, self.settings.repo_file_char_budget),
                )
                for item in selected
            ],
            total_size=sum(f.size for f in files),
        )
        logger.info(
            "Summarized %s/%s: %d files discovered, %d analyzed, %d selected",
            owner,
            repo,
            len(paths),
            len(files),
            len(selected),
        )
        return summary


def _flag(value: bool, present: str, absent: str) -> str:
    return present if value else absent


def render_digest(summary: RepositorySummary) -> str:
    """渲染摘要文本，供 prompt 的提交内容段使用。"""

    total = sum(summary.languages.values())
    if total:
        languages = "\n".join(
            f"- {name}: {count} bytes ({count * 100 / total:.1f}%)"
            for name, count in sorted(summary.languages.items(), key=lambda kv: -kv[1])
        )
    else:
        languages = "- No language data available"

    parts = [
        f"# Repository: {summary.owner}/{summary.repo_name}",
        f"Files discovered: {summary.file_count} (analyzed: {summary.analyzed_file_count})",
        f"## Languages\n{languages}",
        "## Quality Indicators\n"
        f"- README: {_flag(summary.has_readme, 'Present', 'Missing')}\n"
        f"- Tests: {_flag(summary.has_tests, 'Found', 'Not detected')}\n"
        f"- Documentation: {_flag(summary.has_documentation, 'Present', 'Limited')}",
        f"## Directory Structure\n{summary.structure_text}",
    ]
    if summary.readme_excerpt:
        parts.append(f"## README (excerpt)\n{summary.readme_excerpt}")
    if summary.selected_files:
        rendered = "\n\n".join(
            f"### {item.path}\n```\n{item.truncated_content}\n```"
            for item in summary.selected_files
        )
        parts.append(f"## Key Files\n{rendered}")
    return "\n\n".join(parts)
