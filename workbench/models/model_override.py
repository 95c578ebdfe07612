"""
模型能力覆盖

自动检测（按模型名关键字）不准确时，用户可以手动标记模型是否为推理模型。
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workbench.db.base import Base
from workbench.models.mixins import UUID_PK, TimestampMixin


class ModelOverride(TimestampMixin, Base):
    __tablename__ = "model_overrides"
    __table_args__ = (
        UniqueConstraint("provider", "model_id", name="uq_model_overrides_provider_model"),
    )

    id: Mapped[UUID_PK]
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model_id: Mapped[str] = mapped_column(String(255), nullable=False)
    is_reasoning: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
