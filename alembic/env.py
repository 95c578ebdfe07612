"""
Alembic 迁移环境配置

负责配置数据库迁移的运行环境，支持：
- 离线模式：生成 SQL 脚本
- 在线模式：直接执行迁移

注意事项：
- 导入 workbench.models 确保所有模型被注册
- 使用异步驱动（asyncpg / aiosqlite）连接数据库
- 数据库 URL 优先从环境变量读取
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config

from workbench import models  # noqa: F401 - 确保所有模型被导入和注册
from workbench.config import get_settings
from workbench.db.base import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    """获取数据库连接 URL，优先使用环境变量"""
    return os.getenv("DATABASE_URL") or get_settings().database_url


def run_migrations_offline() -> None:
    """离线模式：不连接数据库，仅生成 SQL 脚本"""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    """执行迁移操作（同步函数，被 run_sync 调用）"""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        # SQLite 不支持大部分 ALTER TABLE，使用批量模式重建表
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """在线模式：连接到实际数据库执行迁移"""
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,  # 迁移完成后立即释放连接
    )

    async def async_run_migrations():
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
        await connectable.dispose()

    asyncio.run(async_run_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
