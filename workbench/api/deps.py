"""
API 依赖注入函数

这个模块定义了所有 API 路由共用的依赖项。

使用示例：
    @router.get("/example")
    async def example_endpoint(
        db: AsyncSession = Depends(get_db_session),
        cache: RedisCache = Depends(get_cache),
    ):
        pass
"""

from fastapi import HTTPException, status

from workbench.db.session import get_db
from workbench.infra.redis_cache import RedisCache, get_redis_cache

# 重新导出数据库会话获取函数，方便路由模块导入
get_db_session = get_db


def get_cache() -> RedisCache:
    """缓存客户端（Redis 不可用时自动降级）"""
    return get_redis_cache()


def not_found(code: str, detail: str) -> HTTPException:
    """统一的 404 错误"""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": code, "detail": detail},
    )
