"""
健康检查接口

- GET /healthz             存活探测
- GET /api/health          数据库、内存、磁盘检查（不健康时返回 503）
- GET /api/health/metrics  进程/系统资源、数据库计数、缓存与提供商调用统计
"""

import asyncio
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workbench import __version__
from workbench.api.deps import get_cache, get_db_session
from workbench.config import get_settings
from workbench.infra import system_metrics
from workbench.infra.logging import get_logger
from workbench.infra.metrics import metrics_collector
from workbench.infra.redis_cache import RedisCache
from workbench.models import Chat, InstalledServer, Message, ProviderConfig

logger = get_logger(__name__)

router = APIRouter()

DB_SLOW_THRESHOLD_MS = 1000
DB_COUNT_TIMEOUT = 3.0


@router.get("/healthz")
async def healthcheck() -> dict:
    """返回 {"status": "ok"} 表示服务进程存活"""
    return {"status": "ok"}


async def _check_database(db: AsyncSession) -> dict:
    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        # 开发环境离线时数据库不可用只算降级
        is_dev = get_settings().environment == "dev"
        return {
            "status": "degraded" if is_dev else "unhealthy",
            "response_time_ms": round((time.perf_counter() - start) * 1000, 1),
            "error": str(e),
        }
    elapsed = (time.perf_counter() - start) * 1000
    return {
        "status": "healthy" if elapsed < DB_SLOW_THRESHOLD_MS else "degraded",
        "response_time_ms": round(elapsed, 1),
    }


def overall_status(checks: dict) -> str:
    statuses = [c["status"] for c in checks.values()]
    if "unhealthy" in statuses:
        return "unhealthy"
    if "degraded" in statuses:
        return "degraded"
    return "healthy"


@router.get("/api/health")
async def health(db: AsyncSession = Depends(get_db_session)):
    """
    系统健康检查

    - 数据库：SELECT 1 耗时 < 1s 健康，否则降级
    - 内存：< 70% 健康，< 90% 降级
    - 磁盘：< 80% 健康，< 90% 降级；读取失败视为降级
    """
    settings = get_settings()
    memory = system_metrics.system_memory()
    memory["status"] = system_metrics.grade(memory["percentage"], 70, 90)
    disk = system_metrics.disk_usage()
    disk["status"] = "degraded" if disk.get("error") else system_metrics.grade(disk["percentage"], 80, 90)

    checks = {
        "database": await _check_database(db),
        "memory": memory,
        "disk": disk,
    }
    status = overall_status(checks)
    logger.info(
        f"健康检查: {status}",
        extra={"metrics": {k: v["status"] for k, v in checks.items()}},
    )
    return JSONResponse(
        status_code=503 if status == "unhealthy" else 200,
        content={
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": system_metrics.uptime_seconds(),
            "checks": checks,
            "version": __version__,
            "environment": settings.environment,
        },
    )


async def _count_rows(db: AsyncSession) -> dict:
    counts = {}
    for key, model in (
        ("chats", Chat),
        ("messages", Message),
        ("providers", ProviderConfig),
        ("installed_servers", InstalledServer),
    ):
        counts[key] = (await db.execute(select(func.count()).select_from(model))).scalar() or 0
    return counts


@router.get("/api/health/metrics")
async def health_metrics(
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
) -> dict:
    """详细运行指标"""
    start = time.perf_counter()

    database: dict = {"connected": False}
    try:
        database.update(await asyncio.wait_for(_count_rows(db), timeout=DB_COUNT_TIMEOUT))
        database["connected"] = True
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
        logger.warning(f"获取数据库统计失败: {e}")
        database["error"] = str(e) or "Database timeout"
    database["response_time_ms"] = round((time.perf_counter() - start) * 1000, 1)

    cache_stats = await cache.stats()
    cache_stats["total_requests"] = cache_stats["hits"] + cache_stats["misses"]

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "system": system_metrics.system_info(),
        "memory": system_metrics.process_memory(),
        "system_memory": system_metrics.system_memory(),
        "cpu": system_metrics.cpu_info(),
        "database": database,
        "cache": cache_stats,
        "providers": metrics_collector.get_stats(),
        "response_time_ms": round((time.perf_counter() - start) * 1000, 1),
    }
