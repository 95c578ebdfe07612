"""
模型相关路由

- GET  /api/models/overrides     模型能力覆盖列表
- POST /api/models/overrides     创建/更新覆盖（按 provider + model_id 唯一）
- POST /api/models/check-loaded  检查本地模型是否已加载
"""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.api.deps import get_cache, get_db_session
from workbench.infra.redis_cache import CacheKeys, CacheTTL, RedisCache
from workbench.models import ModelOverride
from workbench.schemas.provider import CheckModelLoadedRequest, ModelOverrideResponse, ModelOverrideUpsert
from workbench.services import provider_status

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("/overrides", response_model=list[ModelOverrideResponse])
async def list_overrides(
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    async def load() -> list[dict]:
        result = await db.execute(
            select(ModelOverride).order_by(ModelOverride.provider, ModelOverride.model_id)
        )
        return [ModelOverrideResponse.model_validate(o).model_dump(mode="json") for o in result.scalars().all()]

    return await cache.get_or_set(CacheKeys.MODEL_OVERRIDES, load, CacheTTL.LONG)


@router.post("/overrides", response_model=ModelOverrideResponse)
async def upsert_override(
    payload: ModelOverrideUpsert,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    result = await db.execute(
        select(ModelOverride).where(
            ModelOverride.provider == payload.provider,
            ModelOverride.model_id == payload.model_id,
        )
    )
    override = result.scalar_one_or_none()
    if override is None:
        override = ModelOverride(provider=payload.provider, model_id=payload.model_id)
        db.add(override)
    override.is_reasoning = payload.is_reasoning

    await db.commit()
    await db.refresh(override)
    # 模型列表中的 is_reasoning 也随之变化
    await cache.delete(CacheKeys.MODEL_OVERRIDES, CacheKeys.PROVIDER_STATUS_ALL)
    return override


@router.post("/check-loaded")
async def check_loaded(payload: CheckModelLoadedRequest, db: AsyncSession = Depends(get_db_session)) -> dict:
    return await provider_status.check_model_loaded(db, payload.provider, payload.model_id)
