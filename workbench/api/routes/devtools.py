"""
开发辅助路由（仅限本机开发环境使用）

- POST /api/terminal/execute  执行 shell 命令（10 秒超时，1MB 输出上限）
- POST /api/notebook/execute  执行 Python 代码（30 秒超时）
- GET  /api/python/detect     列出本机 Python 解释器
- POST /api/python/detect     校验自定义解释器路径
- GET  /api/runtime           JavaScript 运行时与包管理器（缓存 1 小时，?refresh=true 重新探测）

命中危险命令/代码规则时返回 403 COMMAND_BLOCKED。
"""

from fastapi import APIRouter, Depends, Query

from workbench.api.deps import get_cache
from workbench.infra.redis_cache import CacheKeys, CacheTTL, RedisCache
from workbench.schemas.devtools import NotebookRequest, NotebookResponse, PythonPathRequest, TerminalRequest
from workbench.services import environment, sandbox

router = APIRouter(prefix="/api", tags=["devtools"])


@router.post("/terminal/execute")
async def execute_command(payload: TerminalRequest) -> dict:
    return await sandbox.run_command(payload.command)


@router.post("/notebook/execute", response_model=NotebookResponse)
async def execute_notebook(payload: NotebookRequest):
    return await sandbox.run_notebook(
        payload.code,
        files=[f.model_dump() for f in payload.files] if payload.files else None,
        python_path=payload.python_path,
    )


@router.get("/python/detect")
async def detect_python() -> dict:
    environments = await environment.detect_python_environments()
    return {"environments": environments, "count": len(environments)}


@router.post("/python/detect")
async def validate_python(payload: PythonPathRequest) -> dict:
    return await environment.validate_python(payload.path)


@router.get("/runtime")
async def detect_runtime(
    refresh: bool = Query(False),
    cache: RedisCache = Depends(get_cache),
) -> dict:
    if refresh:
        await cache.delete(CacheKeys.RUNTIME_ENVIRONMENT)
    return await cache.get_or_set(CacheKeys.RUNTIME_ENVIRONMENT, environment.detect_runtime, CacheTTL.VERY_LONG)
