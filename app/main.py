"""FastAPI 入口：日志配置、数据库表初始化与路由注册。"""

import logging

from fastapi import FastAPI

from app.api.assessments import router as assessments_router
from app.config import get_settings
from app.db import Base, engine
from app.models import AssessmentRecord  # noqa: F401


def create_app() -> FastAPI:
    """应用工厂，便于测试与拓展路由。"""

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app = FastAPI(title="Assessment Engine API", version="0.1.0")

    @app.on_event("startup")
    def init_models() -> None:
        """启动时确保表存在。"""

        Base.metadata.create_all(bind=engine)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(assessments_router)
    return app


app = create_app()
