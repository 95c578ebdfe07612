"""
数据集服务

支持的文件格式：
- CSV（首行为表头）
- JSON（对象数组）
- JSON Lines（每行一个对象）

文件保存在 settings.dataset_dir 下，文件名为数据集 ID + 原扩展名。
"""

import csv
import io
import json
import logging
from pathlib import Path

import aiofiles
import aiofiles.os
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.config import get_settings
from workbench.exceptions import DatasetError
from workbench.infra.llm import ProviderTarget, create_embeddings
from workbench.infra.redis_cache import get_redis_cache
from workbench.models import Dataset

logger = logging.getLogger(__name__)

CSV_EXTENSIONS = (".csv",)
JSON_EXTENSIONS = (".json", ".jsonl", ".ndjson")


def _detect_format(filename: str, mime: str | None) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix in CSV_EXTENSIONS or mime == "text/csv":
        return "csv"
    if suffix in JSON_EXTENSIONS or mime in ("application/json", "application/x-ndjson"):
        return "json"
    raise DatasetError("Invalid file type. Only CSV and JSON files are supported")


def _parse_csv(text: str) -> tuple[list[dict], list[str]]:
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise DatasetError("CSV file has no header row")
    columns = [c.strip() for c in reader.fieldnames]
    records = [
        {col: value for col, value in zip(columns, row.values())}
        for row in reader
    ]
    return records, columns


def _parse_json(text: str) -> tuple[list[dict], list[str]]:
    stripped = text.strip()
    if not stripped:
        raise DatasetError("JSON file is empty")
    try:
        if stripped.startswith("["):
            records = json.loads(stripped)
        else:
            records = [json.loads(line) for line in stripped.splitlines() if line.strip()]
    except json.JSONDecodeError as e:
        raise DatasetError(f"Invalid JSON: {e.msg} (line {e.lineno})") from e

    if not all(isinstance(r, dict) for r in records):
        raise DatasetError("JSON dataset must be an array of objects or JSON lines of objects")

    # 列顺序按首次出现排列
    columns: dict[str, None] = {}
    for record in records:
        columns.update(dict.fromkeys(record))
    return records, list(columns)


def parse_dataset(filename: str, content: bytes, mime: str | None = None) -> tuple[list[dict], list[str]]:
    """
    解析数据集文件

    Returns:
        (记录列表, 列名列表)

    Raises:
        DatasetError: 格式不支持或内容无法解析
    """
    fmt = _detect_format(filename, mime)
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise DatasetError("Dataset must be UTF-8 encoded") from e
    if fmt == "csv":
        return _parse_csv(text)
    return _parse_json(text)


async def read_records(dataset: Dataset, limit: int | None = None) -> list[dict]:
    if not await aiofiles.os.path.exists(dataset.path):
        raise DatasetError(f"Dataset file missing: {dataset.filename}", status_code=404, code="DATASET_FILE_MISSING")
    async with aiofiles.open(dataset.path, "rb") as f:
        content = await f.read()
    records, _ = parse_dataset(dataset.filename, content, dataset.mime)
    return records if limit is None else records[:limit]


async def save_dataset(
    session: AsyncSession,
    *,
    filename: str,
    content: bytes,
    mime: str | None,
    name: str | None = None,
) -> Dataset:
    """解析并保存上传的数据集"""
    records, columns = parse_dataset(filename, content, mime)

    dataset = Dataset(
        name=name or Path(filename).stem,
        filename=filename,
        mime=mime or "application/octet-stream",
        size=len(content),
        path="",
        rows=len(records),
        columns=len(columns),
        column_names=columns,
    )
    session.add(dataset)
    await session.flush()

    storage = Path(get_settings().dataset_dir)
    await aiofiles.os.makedirs(storage, exist_ok=True)
    path = storage / f"{dataset.id}{Path(filename).suffix.lower()}"
    async with aiofiles.open(path, "wb") as f:
        await f.write(content)
    dataset.path = str(path)

    await session.commit()
    await session.refresh(dataset)
    await get_redis_cache().invalidate_datasets()
    logger.info(f"上传数据集: {dataset.name} ({dataset.rows} 行, {dataset.columns} 列)")
    return dataset


async def delete_dataset(session: AsyncSession, dataset: Dataset) -> None:
    """删除记录和文件（先提交删除，文件已不存在时忽略）"""
    dataset_id, path = dataset.id, dataset.path
    await session.delete(dataset)
    await session.commit()
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
    await get_redis_cache().invalidate_datasets()
    logger.info(f"删除数据集: {dataset_id}")


async def preview_dataset(dataset: Dataset, rows: int | None = None) -> dict:
    limit = rows or get_settings().dataset_preview_rows
    return {
        "columns": dataset.column_names or [],
        "data": await read_records(dataset, limit),
        "rows": dataset.rows,
        "size": dataset.size,
    }


def render_record(record: dict) -> str:
    """把一行渲染为 `col: value; col: value` 文本，用于生成向量"""
    return "; ".join(f"{k}: {v}" for k, v in record.items() if v not in (None, ""))


async def index_dataset(
    session: AsyncSession,
    dataset: Dataset,
    target: ProviderTarget,
    model: str,
) -> dict:
    """
    为数据集生成向量

    最多处理 settings.dataset_index_max_rows 行，只保存摘要
    {provider, model, dimensions, count}。
    """
    records = await read_records(dataset, get_settings().dataset_index_max_rows)
    texts = [render_record(r) for r in records]
    texts = [t for t in texts if t]
    if not texts:
        raise DatasetError("Dataset has no rows to index")

    result = await create_embeddings(target, model, texts)
    vectors = [item["embedding"] for item in result.get("data") or []]
    summary = {
        "provider": target.name,
        "model": model,
        "dimensions": len(vectors[0]) if vectors else 0,
        "count": len(vectors),
    }

    dataset.embeddings = summary
    dataset.indexed = True
    await session.commit()
    await session.refresh(dataset)
    await get_redis_cache().invalidate_datasets()
    logger.info(f"数据集 {dataset.id} 向量化完成: {summary}")
    return summary
