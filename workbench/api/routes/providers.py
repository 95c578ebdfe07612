"""
模型提供商管理路由

端点：
- GET    /api/providers                    已启用提供商的状态（同 /status）
- GET    /api/providers/status             已启用提供商的状态
- GET    /api/providers/registry           静态注册表（端点、能力、是否需要 Key）
- GET    /api/providers/config             提供商配置列表（不返回 API Key）
- POST   /api/providers/config             创建/更新配置
- DELETE /api/providers/config?provider=x  删除配置
- PUT    /api/providers/toggle             启用/禁用
- GET    /api/providers/{provider}         单个提供商状态
- GET    /api/providers/{provider}/models  模型列表
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.api.deps import get_db_session, not_found
from workbench.infra.providers import get_provider, list_providers
from workbench.schemas.provider import ProviderConfigResponse, ProviderConfigUpsert, ProviderToggle
from workbench.services import provider_status
from workbench.services.provider_config import config_to_dict, provider_config_resolver

router = APIRouter(prefix="/api/providers", tags=["providers"])


@router.get("")
async def list_provider_statuses(db: AsyncSession = Depends(get_db_session)) -> list[dict]:
    return await provider_status.get_all_providers_status(db)


@router.get("/status")
async def providers_status(db: AsyncSession = Depends(get_db_session)) -> list[dict]:
    return await provider_status.get_all_providers_status(db)


@router.get("/registry")
async def provider_registry() -> list[dict]:
    return [spec.to_public_dict() for spec in list_providers()]


# ==================== 配置 ====================

@router.get("/config", response_model=list[ProviderConfigResponse])
async def list_configs(db: AsyncSession = Depends(get_db_session)):
    return await provider_config_resolver.list_configs(db)


@router.post("/config", response_model=ProviderConfigResponse)
async def upsert_config(payload: ProviderConfigUpsert, db: AsyncSession = Depends(get_db_session)):
    """API Key 加密存储；不传 api_key 时保留原值"""
    config = await provider_config_resolver.upsert_config(
        db,
        payload.provider,
        name=payload.name,
        base_url=payload.base_url,
        api_key=payload.api_key,
        enabled=payload.enabled,
        config=payload.config,
    )
    return config_to_dict(config)


@router.delete("/config")
async def delete_config(
    provider: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    if not await provider_config_resolver.delete_config(db, provider):
        raise not_found("PROVIDER_CONFIG_NOT_FOUND", f"提供商配置不存在: {provider}")
    return {"success": True}


@router.put("/toggle", response_model=ProviderConfigResponse)
async def toggle_provider(payload: ProviderToggle, db: AsyncSession = Depends(get_db_session)):
    config = await provider_config_resolver.set_enabled(db, payload.provider, payload.enabled)
    return config_to_dict(config)


# ==================== 单个提供商 ====================

@router.get("/{provider}")
async def get_provider_status(
    provider: str,
    base_url: str | None = Query(None, description="临时覆盖 Base URL"),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    return await provider_status.get_status_for(db, provider, base_url)


@router.get("/{provider}/models")
async def get_provider_models(
    provider: str,
    base_url: str | None = Query(None, description="临时覆盖 Base URL"),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    spec = get_provider(provider)
    target = await provider_config_resolver.resolve(db, spec.name, base_url=base_url, require_key=False)
    models = await provider_status.fetch_provider_models(spec.name, target.api_key, target.base_url)
    await provider_status.apply_model_overrides(db, models)
    return {"provider": spec.name, "models": models}
