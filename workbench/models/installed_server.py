"""
已安装的 MCP 工具服务器

config 保存安装时的信息：
    {
        "repo_url": "https://github.com/owner/repo",
        "package_name": "@owner/repo",
        "installer": "npm",
        "install_command": "npm install -g @owner/repo",
        "languages": ["TypeScript"]
    }
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, JSON, String, func
from sqlalchemy.orm import Mapped, mapped_column

from workbench.db.base import Base
from workbench.models.mixins import UUID_PK, utcnow


class InstalledServer(Base):
    __tablename__ = "installed_servers"

    id: Mapped[UUID_PK]
    server_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    config: Mapped[dict | None] = mapped_column(JSON)
    installed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
