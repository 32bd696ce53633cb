"""评估模型档位选择。

规则按顺序匹配，首条命中即返回；同时满足多条规则的输入由顺序决定档位。
"""

from __future__ import annotations

from app.config import Settings
from app.models.enums import ModelTier, SubmissionKind

SHORT_TEXT_LIMIT = 500
MEDIUM_CONTENT_LIMIT = 1000
LONG_CONTENT_LIMIT = 5000


def select_tier(
    kind: SubmissionKind, content_length: int, has_reference_example: bool
) -> ModelTier:
    if kind == SubmissionKind.TEXT and content_length < SHORT_TEXT_LIMIT:
        return ModelTier.LIGHT

    if (
        kind in (SubmissionKind.REPOSITORY, SubmissionKind.WEBSITE)
        or content_length > LONG_CONTENT_LIMIT
        or has_reference_example
    ):
        return ModelTier.HEAVY

    if (
        kind in (SubmissionKind.DOCUMENT, SubmissionKind.SCREENSHOT)
        or content_length > MEDIUM_CONTENT_LIMIT
    ):
        return ModelTier.BALANCED

    return ModelTier.LIGHT


def model_name_for(tier: ModelTier, settings: Settings) -> str:
    """档位到具体模型名称的映射，由配置决定。"""

    return {
        ModelTier.LIGHT: settings.model_light,
        ModelTier.BALANCED: settings.model_balanced,
        ModelTier.HEAVY: settings.model_heavy,
    }[tier]
