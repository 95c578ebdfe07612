"""
用户反馈请求/响应模型
"""

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field

FeedbackType = Literal["general", "bug", "feature", "improvement", "question"]
FeedbackStatus = Literal["new", "in-progress", "resolved", "archived"]

_EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class FeedbackCreate(BaseModel):
    """
    提交反馈

    示例:
    ```json
    {
        "feedback_type": "bug",
        "subject": "模型列表为空",
        "message": "配置 OpenAI Key 后模型列表仍然为空",
        "rating": 3
    }
    ```
    """
    name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255, pattern=_EMAIL_PATTERN)
    feedback_type: FeedbackType = Field(
        default="general", validation_alias=AliasChoices("feedback_type", "feedbackType")
    )
    subject: str | None = Field(default=None, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)
    rating: int | None = Field(default=None, ge=1, le=5)


class FeedbackUpdate(BaseModel):
    status: FeedbackStatus | None = None
    resolved: bool | None = None
    notes: str | None = Field(default=None, max_length=5000)


class FeedbackResponse(BaseModel):
    id: str
    name: str | None = None
    email: str | None = None
    feedback_type: str
    subject: str | None = None
    message: str
    rating: int | None = None
    status: str
    resolved: bool
    resolved_at: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class FeedbackStats(BaseModel):
    total: int
    new: int
    resolved: int
    average_rating: float | None = None


class FeedbackListResponse(BaseModel):
    items: list[FeedbackResponse]
    total: int
    limit: int
    offset: int
    has_more: bool
    stats: FeedbackStats
