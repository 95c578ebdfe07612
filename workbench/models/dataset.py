"""
数据集模型

上传的 CSV / JSON 文件，记录文件位置、行列数和向量化摘要。
"""

from sqlalchemy import Boolean, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from workbench.db.base import Base
from workbench.models.mixins import UUID_PK, TimestampMixin


class Dataset(TimestampMixin, Base):
    """
    数据集表

    字段说明：
    - path: 服务端存储路径
    - column_names: 列名列表
    - indexed: 是否已生成向量
    - embeddings: 向量化摘要 {provider, model, dimensions, count}
    """
    __tablename__ = "datasets"

    id: Mapped[UUID_PK]
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    path: Mapped[str] = mapped_column(String(1000), nullable=False)
    rows: Mapped[int | None] = mapped_column(Integer)
    columns: Mapped[int | None] = mapped_column(Integer)
    column_names: Mapped[list | None] = mapped_column(JSON)
    indexed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    embeddings: Mapped[dict | None] = mapped_column(JSON)
