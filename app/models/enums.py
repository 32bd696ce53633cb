"""评估相关枚举定义 - 提交类型、评语等级、模型档位、记录状态。"""

import enum


class SubmissionKind(str, enum.Enum):
    """提交内容的媒介类型。"""
    TEXT = "text"                # 自由文本
    DOCUMENT = "document"        # 文档（PDF/DOCX/TXT 或其提取文本）
    REPOSITORY = "repository"    # 版本库链接（GitHub）
    WEBSITE = "website"          # 在线网站
    SCREENSHOT = "screenshot"    # 截图（图片链接或描述）


class Remark(str, enum.Enum):
    """四级评语，评估结果中只能出现这四个值。"""
    EXCELLENT = "Excellent"
    GOOD = "Good"
    CAN_IMPROVE = "Can Improve"
    NEEDS_IMPROVEMENT = "Needs Improvement"


class ModelTier(str, enum.Enum):
    """评估模型档位，质量与成本递增。"""
    LIGHT = "light"
    BALANCED = "balanced"
    HEAVY = "heavy"


class AssessmentStatus(str, enum.Enum):
    """落库后的评估状态。"""
    COMPLETED = "completed"
    FAILED = "failed"
