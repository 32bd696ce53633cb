"""Gemini/LangChain 集成与评估调用（External Assessment Invoker）。

``AssessmentInvoker`` 负责超时控制与唯一的一次降级重试：所选档位失败
（异常、超时或空响应）后改用轻量档再试一次，两次都失败才向上抛出。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from app.config import Settings
from app.models.enums import ModelTier
from app.services.model_selection import model_name_for
from app.services.prompts import SYSTEM_INSTRUCTION

logger = logging.getLogger(__name__)


class GeminiNotConfiguredError(RuntimeError):
    """当未提供 Gemini API Key 时抛出。"""


class InvocationError(RuntimeError):
    """所选档位与轻量档位均调用失败。"""


class EvaluationBackend(Protocol):
    """评估能力的最小契约：给定模型名与 prompt，返回原始结构化文本。"""

    async def complete(self, model: str, system_prompt: str, user_prompt: str) -> str:
        ...


class GeminiJSONClient:
    """使用 LangChain 封装的 Gemini JSON 输出。"""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._chats: dict[str, ChatGoogleGenerativeAI] = {}

    @property
    def is_available(self) -> bool:
        return bool(self.settings.gemini_api_key)

    def _get_chat(self, model: str) -> ChatGoogleGenerativeAI:
        if not self.is_available:
            raise GeminiNotConfiguredError("Gemini API key is not configured")
        if model not in self._chats:
            self._chats[model] = ChatGoogleGenerativeAI(
                model=model,
                google_api_key=self.settings.gemini_api_key,
                temperature=self.settings.llm_temperature,
                max_output_tokens=self.settings.llm_max_output_tokens,
                response_mime_type="application/json",
            )
        return self._chats[model]

    async def complete(self, model: str, system_prompt: str, user_prompt: str) -> str:
        chat = self._get_chat(model)
        message = await chat.ainvoke(
            [
                SystemMessage(content=system_prompt),
                HumanMessage(content=user_prompt),
            ]
        )
        content = message.content
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return content or ""


@dataclass
class InvocationResponse:
    text: str
    tier: ModelTier
    model: str


class AssessmentInvoker:
    """带超时与单次降级的评估调用。"""

    def __init__(self, backend: EvaluationBackend, settings: Settings) -> None:
        self.backend = backend
        self.settings = settings

    async def _call(self, prompt: str, tier: ModelTier) -> InvocationResponse:
        model = model_name_for(tier, self.settings)
        try:
            text = await asyncio.wait_for(
                self.backend.complete(model, SYSTEM_INSTRUCTION, prompt),
                timeout=self.settings.llm_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutError(
                f"Model {model} timed out after {self.settings.llm_timeout_seconds:g} seconds"
            ) from exc
        if not text or not text.strip():
            raise ValueError(f"Model {model} returned an empty response")
        return InvocationResponse(text=text, tier=tier, model=model)

    async def invoke(self, prompt: str, tier: ModelTier) -> InvocationResponse:
        try:
            return await self._call(prompt, tier)
        except Exception as exc:  # noqa: BLE001 - 任意失败都走降级
            logger.warning("Tier %s failed (%s), retrying with light tier", tier.value, exc)

        try:
            return await self._call(prompt, ModelTier.LIGHT)
        except Exception as exc:  # noqa: BLE001
            raise InvocationError(
                f"Assessment model call failed on {tier.value} and light tiers: {exc}"
            ) from exc
