"""
数据集请求/响应模型
"""

from datetime import datetime

from pydantic import BaseModel, Field


class DatasetResponse(BaseModel):
    id: str
    name: str
    filename: str
    mime: str
    size: int
    rows: int | None = None
    columns: int | None = None
    column_names: list[str] | None = None
    indexed: bool
    embeddings: dict | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DatasetPreviewResponse(BaseModel):
    columns: list[str]
    data: list[dict]
    rows: int | None = None
    size: int


class DatasetIndexRequest(BaseModel):
    """向量化请求，默认使用本地 Ollama 的 nomic-embed-text"""
    provider: str = Field(default="ollama", min_length=1)
    model: str = Field(default="nomic-embed-text", min_length=1)
