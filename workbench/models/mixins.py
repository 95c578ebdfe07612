"""
模型混入类 (Mixins)

使用示例：
    class MyModel(TimestampMixin, Base):
        __tablename__ = "my_table"
        id: Mapped[UUID_PK]
        # 自动获得 created_at 和 updated_at 字段
"""

from datetime import datetime, timezone
from typing import Annotated
from uuid import uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

# UUID 字符串主键：xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx
UUID_PK = Annotated[
    str,
    mapped_column(String(36), primary_key=True, default=lambda: str(uuid4())),
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreatedAtMixin:
    """只记录创建时间（消息、附件等不可变记录）"""

    # 应用侧生成微秒级时间戳，同一秒内插入的消息也能稳定排序
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class TimestampMixin(CreatedAtMixin):
    """
    时间戳混入类

    - created_at: 记录创建时间
    - updated_at: 每次 UPDATE 时自动刷新
    """

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
