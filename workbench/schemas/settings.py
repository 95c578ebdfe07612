"""
应用设置请求/响应模型
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

Installer = Literal["npm", "pnpm", "bun"]


class SettingsResponse(BaseModel):
    """应用设置（github_token 只返回是否已配置）"""
    preferred_installer: Installer
    has_github_token: bool
    updated_at: datetime


class SettingsUpdate(BaseModel):
    preferred_installer: Installer | None = None
    github_token: str | None = Field(default=None, description="空字符串表示清除")
