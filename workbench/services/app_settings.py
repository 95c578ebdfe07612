"""
应用设置服务（单行表）

github_token 与提供商 API Key 一样加密存储。
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from workbench.config import get_settings
from workbench.infra.encryption import DecryptionError, decrypt, encrypt
from workbench.models import AppSettings
from workbench.models.app_settings import DEFAULT_SETTINGS_ID

logger = logging.getLogger(__name__)


async def get_app_settings(session: AsyncSession) -> AppSettings:
    """读取设置，不存在时创建默认行"""
    settings = await session.get(AppSettings, DEFAULT_SETTINGS_ID)
    if settings is None:
        settings = AppSettings(id=DEFAULT_SETTINGS_ID, preferred_installer="npm")
        session.add(settings)
        await session.commit()
        await session.refresh(settings)
    return settings


def set_github_token(settings: AppSettings, token: str | None) -> None:
    """空值表示清除"""
    settings.github_token = encrypt(token) if token else None


async def resolve_github_token(session: AsyncSession) -> str | None:
    """数据库设置（解密） > 环境变量 GITHUB_TOKEN"""
    settings = await get_app_settings(session)
    token = None
    if settings.github_token:
        try:
            token = decrypt(settings.github_token)
        except DecryptionError:
            logger.warning("无法解密 GitHub Token，使用环境变量")
    return token or get_settings().github_token
