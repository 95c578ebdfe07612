"""
应用设置模型（单行表，id 固定为 "default"）
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from workbench.db.base import Base
from workbench.models.mixins import utcnow

DEFAULT_SETTINGS_ID = "default"


class AppSettings(Base):
    """
    应用设置表

    - preferred_installer: 安装 MCP 服务器时使用的包管理器（npm / pnpm / bun）
    - github_token: 访问 GitHub API 的 Token，可选
    """
    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=DEFAULT_SETTINGS_ID)
    preferred_installer: Mapped[str] = mapped_column(String(10), nullable=False, default="npm")
    github_token: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
