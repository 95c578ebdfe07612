"""
应用设置路由

- GET   /api/settings  读取设置（github_token 只返回是否已配置）
- PATCH /api/settings  更新设置
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.api.deps import get_db_session
from workbench.models import AppSettings
from workbench.schemas.settings import SettingsResponse, SettingsUpdate
from workbench.services.app_settings import get_app_settings, set_github_token

router = APIRouter(prefix="/api/settings", tags=["settings"])


def _to_response(settings: AppSettings) -> SettingsResponse:
    return SettingsResponse(
        preferred_installer=settings.preferred_installer,
        has_github_token=bool(settings.github_token),
        updated_at=settings.updated_at,
    )


@router.get("", response_model=SettingsResponse)
async def read_settings(db: AsyncSession = Depends(get_db_session)):
    return _to_response(await get_app_settings(db))


@router.patch("", response_model=SettingsResponse)
async def update_settings(
    payload: SettingsUpdate,
    db: AsyncSession = Depends(get_db_session),
):
    """github_token 传空字符串表示清除"""
    settings = await get_app_settings(db)
    if payload.preferred_installer is not None:
        settings.preferred_installer = payload.preferred_installer
    if payload.github_token is not None:
        set_github_token(settings, payload.github_token)

    await db.commit()
    await db.refresh(settings)
    return _to_response(settings)
