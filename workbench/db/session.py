"""
数据库会话管理

这个模块负责：
1. 创建数据库引擎（连接池）
2. 提供异步会话工厂
3. 实现 FastAPI 依赖注入的数据库会话获取函数

使用方式（在 FastAPI 路由中）：
    from workbench.db.session import get_db

    @router.get("/chats")
    async def list_chats(db: AsyncSession = Depends(get_db)):
        result = await db.execute(select(Chat))
        return result.scalars().all()
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workbench.config import Settings, get_settings
from workbench.db.base import Base

settings = get_settings()


def engine_options(settings: Settings) -> dict[str, Any]:
    """
    根据数据库类型生成引擎参数

    PostgreSQL 使用固定大小连接池（空闲超时、最大存活时间回收）；
    SQLite 不支持这些连接池参数，使用 SQLAlchemy 的默认池。
    """
    if settings.is_sqlite:
        return {"echo": False}
    return {
        "echo": False,
        "pool_pre_ping": True,        # 取连接前先探活，避免使用已断开的连接
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
    }


engine = create_async_engine(settings.database_url, **engine_options(settings))

# 每个请求使用独立会话；提交后不过期对象，便于提交后继续读取属性
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话（FastAPI 依赖注入函数）

    为每个请求创建新会话，请求结束后自动关闭。
    """
    async with SessionLocal() as session:
        yield session


async def init_models() -> None:
    """
    初始化数据库表（仅开发环境使用）

    生产环境请使用 Alembic 迁移，此方法不会修改已存在的表结构。
    """
    from workbench import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
