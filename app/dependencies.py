"""FastAPI 依赖注入工具。"""

from collections.abc import Iterator
from functools import lru_cache

from sqlalchemy.orm import Session

from app.config import get_settings
from app.db import SessionLocal
from app.services.ai import GeminiJSONClient
from app.services.assessment import AssessmentEngine
from app.services.rate_limiter import SlidingWindowRateLimiter


def get_db() -> Iterator[Session]:
    """FastAPI 依赖，用于获取数据库会话。"""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache(maxsize=1)
def get_rate_limiter() -> SlidingWindowRateLimiter:
    """进程内共享的限流器。"""

    settings = get_settings()
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


@lru_cache(maxsize=1)
def get_engine() -> AssessmentEngine:
    settings = get_settings()
    return AssessmentEngine(settings, get_rate_limiter(), GeminiJSONClient(settings))
