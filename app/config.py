"""应用配置管理。

使用 Pydantic Settings 统一读取环境变量，便于在本地/生产之间切换。
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """核心配置项。

    - ``database_url``：默认使用本地 SQLite，评估结果落库使用。
    - ``gemini_api_key``：评估模型的 API Key，未配置时评估调用直接失败并降级。
    - ``model_light`` / ``model_balanced`` / ``model_heavy``：三档模型名称。
    - ``github_token``：可选，公开仓库无需配置，但可提升 GitHub API 限额。
    """

    database_url: str = Field(
        default="sqlite:///./assessments.db", description="SQLAlchemy 数据库 URL"
    )
    log_level: str = Field(default="INFO", description="日志级别")

    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API Key")
    model_light: str = Field(default="gemini-2.0-flash-lite", description="轻量档模型")
    model_balanced: str = Field(default="gemini-2.0-flash", description="均衡档模型")
    model_heavy: str = Field(default="gemini-2.5-pro", description="高配档模型")
    llm_temperature: float = Field(default=0.3, description="评估温度，保持较低以稳定输出")
    llm_max_output_tokens: int = Field(default=1000, description="单次评估输出上限")
    llm_timeout_seconds: float = Field(default=30.0, description="单次模型调用超时")

    rate_limit_max_requests: int = Field(default=10, description="窗口内最大请求数")
    rate_limit_window_seconds: float = Field(default=60.0, description="滑动窗口长度（秒）")

    github_token: Optional[str] = Field(default=None, description="GitHub API Token")
    github_api_url: str = Field(default="https://api.github.com", description="GitHub API 地址")
    repo_max_depth: int = Field(default=3, description="仓库目录递归深度上限")
    repo_max_file_bytes: int = Field(default=100_000, description="单文件抓取上限（字节）")
    repo_max_total_bytes: int = Field(default=500_000, description="单仓库抓取总量上限（字节）")
    repo_selected_files: int = Field(default=5, description="摘要中完整展示的文件数")
    repo_file_char_budget: int = Field(default=500, description="每个展示文件的字符预算")
    repo_readme_chars: int = Field(default=1000, description="README 摘录长度")

    fetch_timeout_seconds: float = Field(default=15.0, description="外部内容抓取超时")
    document_max_bytes: int = Field(default=10 * 1024 * 1024, description="文档下载上限")
    document_char_limit: int = Field(default=8000, description="写入 prompt 的文档字符上限")

    model_config = {
        "env_prefix": "ASSESS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """缓存后的全局配置实例。"""

    return Settings()
