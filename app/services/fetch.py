"""外部内容抓取的公共工具：异常类型与带大小上限的下载。"""

from __future__ import annotations

import time
from dataclasses import dataclass

import httpx

USER_AGENT = "Mozilla/5.0 (Assessment Agent Bot)"


class ContentAcquisitionError(RuntimeError):
    """仓库、文档、网站或截图内容获取失败（网络错误、404、私有资源等）。"""


@dataclass
class FetchedContent:
    url: str
    status_code: int
    content_type: str
    data: bytes
    elapsed_ms: int


async def fetch_bytes(client: httpx.AsyncClient, url: str, max_bytes: int) -> FetchedContent:
    """下载 ``url`` 的内容，超过 ``max_bytes`` 即中止。

    非 2xx 响应、网络错误与超限都转换为 ``ContentAcquisitionError``。
    """

    started = time.monotonic()
    try:
        async with client.stream(
            "GET", url, headers={"User-Agent": USER_AGENT}, follow_redirects=True
        ) as response:
            if response.status_code >= 400:
                raise ContentAcquisitionError(
                    f"Failed to fetch {url}: HTTP {response.status_code}"
                )
            chunks = bytearray()
            async for chunk in response.aiter_bytes():
                chunks.extend(chunk)
                if len(chunks) > max_bytes:
                    raise ContentAcquisitionError(
                        f"Content at {url} exceeds the {max_bytes} byte limit"
                    )
            return FetchedContent(
                url=str(response.url),
                status_code=response.status_code,
                content_type=response.headers.get("content-type", ""),
                data=bytes(chunks),
                elapsed_ms=int((time.monotonic() - started) * 1000),
            )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise ContentAcquisitionError(f"Failed to fetch {url}: {exc}") from exc
