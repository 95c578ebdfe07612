"""
数据集管理路由

端点：
- GET    /api/datasets                 数据集列表
- POST   /api/datasets/upload          上传 CSV / JSON（multipart）
- GET    /api/datasets/{id}            数据集详情
- DELETE /api/datasets/{id}            删除数据集（同时删除文件）
- GET    /api/datasets/{id}/preview    预览前 N 行
- POST   /api/datasets/{id}/index      生成向量
"""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.api.deps import get_cache, get_db_session, not_found
from workbench.infra.redis_cache import CacheKeys, CacheTTL, RedisCache
from workbench.models import Dataset
from workbench.schemas.dataset import DatasetIndexRequest, DatasetPreviewResponse, DatasetResponse
from workbench.services import datasets as dataset_service
from workbench.services.provider_config import provider_config_resolver

router = APIRouter(prefix="/api/datasets", tags=["datasets"])


async def _get_dataset(db: AsyncSession, dataset_id: str) -> Dataset:
    dataset = await db.get(Dataset, dataset_id)
    if not dataset:
        raise not_found("DATASET_NOT_FOUND", "数据集不存在")
    return dataset


@router.get("", response_model=list[DatasetResponse])
async def list_datasets(
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    async def load() -> list[dict]:
        result = await db.execute(select(Dataset).order_by(Dataset.created_at.desc()))
        return [
            DatasetResponse.model_validate(d).model_dump(mode="json") for d in result.scalars().all()
        ]

    return await cache.get_or_set(CacheKeys.DATASETS_LIST, load, CacheTTL.MEDIUM)


@router.post("/upload", response_model=DatasetResponse, status_code=status.HTTP_201_CREATED)
async def upload_dataset(
    file: UploadFile = File(..., description="CSV 或 JSON 文件"),
    name: str | None = Form(None),
    db: AsyncSession = Depends(get_db_session),
):
    content = await file.read()
    return await dataset_service.save_dataset(
        db,
        filename=file.filename or "dataset.csv",
        content=content,
        mime=file.content_type,
        name=name,
    )


@router.get("/{dataset_id}", response_model=DatasetResponse)
async def get_dataset(dataset_id: str, db: AsyncSession = Depends(get_db_session)):
    return await _get_dataset(db, dataset_id)


@router.delete("/{dataset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dataset(dataset_id: str, db: AsyncSession = Depends(get_db_session)):
    dataset = await _get_dataset(db, dataset_id)
    await dataset_service.delete_dataset(db, dataset)


@router.get("/{dataset_id}/preview", response_model=DatasetPreviewResponse)
async def preview_dataset(
    dataset_id: str,
    rows: int | None = Query(None, ge=1, le=1000, description="预览行数，默认 20"),
    db: AsyncSession = Depends(get_db_session),
):
    dataset = await _get_dataset(db, dataset_id)
    return await dataset_service.preview_dataset(dataset, rows)


@router.post("/{dataset_id}/index")
async def index_dataset(
    dataset_id: str,
    payload: DatasetIndexRequest | None = None,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    payload = payload or DatasetIndexRequest()
    dataset = await _get_dataset(db, dataset_id)
    target = await provider_config_resolver.resolve(db, payload.provider, capability="embeddings")
    summary = await dataset_service.index_dataset(db, dataset, target, payload.model)
    return {"success": True, "embeddings": summary}
