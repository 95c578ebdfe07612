"""
用户反馈模型
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from workbench.db.base import Base
from workbench.models.mixins import UUID_PK, TimestampMixin

FEEDBACK_TYPES = ("general", "bug", "feature", "improvement", "question")
FEEDBACK_STATUSES = ("new", "in-progress", "resolved", "archived")


class Feedback(TimestampMixin, Base):
    """
    反馈表

    - feedback_type: general / bug / feature / improvement / question
    - status: new / in-progress / resolved / archived
    - resolved_at: 首次标记为已解决的时间
    - notes: 管理员备注
    """
    __tablename__ = "feedback"

    id: Mapped[UUID_PK]
    name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    feedback_type: Mapped[str] = mapped_column(String(20), nullable=False, default="general")
    subject: Mapped[str | None] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text, nullable=False)
    rating: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="new", index=True)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
