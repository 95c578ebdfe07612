"""
FastAPI 应用实例

这是 FastAPI 应用的核心配置文件，负责：
1. 创建 FastAPI 应用实例
2. 配置应用生命周期（启动时建表，关闭时释放缓存连接）
3. 注册所有 API 路由
4. 配置结构化日志、请求追踪和统一错误格式
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from workbench import __version__
from workbench.api.routes import api_router
from workbench.config import get_settings
from workbench.db.session import init_models
from workbench.exceptions import WorkbenchError
from workbench.infra.logging import get_logger, setup_logging
from workbench.infra.redis_cache import get_redis_cache
from workbench.middleware import RequestTraceMiddleware

# 配置结构化日志
setup_logging()
logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器

    - 开发/测试环境：使用 init_models() 自动创建表
    - 生产环境：使用 Alembic 进行数据库迁移
    """
    logger.info(f"应用启动中... 环境: {settings.environment}")

    if settings.environment in ("dev", "development", "test"):
        await init_models()
        logger.info("数据库表初始化完成（开发模式）")
    else:
        logger.info("跳过自动建表，请使用 Alembic 迁移")

    yield

    await get_redis_cache().close()
    logger.info("应用已关闭")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    lifespan=lifespan,
)

# 注册中间件（注意顺序：后添加的先执行）
app.add_middleware(RequestTraceMiddleware)

# CORS 配置：允许前端跨域访问
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 开发环境允许所有来源，生产环境应限制
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_: Request, exc: StarletteHTTPException):
    """
    统一错误响应格式：
    {
        "detail": "<错误信息>",
        "code": "<ERROR_CODE>"
    }
    """
    code = "UNKNOWN_ERROR"
    detail = exc.detail
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code") or code
        detail = exc.detail.get("detail") or exc.detail.get("message") or detail
    elif exc.status_code == 404:
        code = "NOT_FOUND"
    elif exc.status_code == 405:
        code = "METHOD_NOT_ALLOWED"
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": detail, "code": code},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(WorkbenchError)
async def workbench_exception_handler(_: Request, exc: WorkbenchError):
    """业务异常（提供商错误、危险命令、数据集解析等）"""
    if exc.status_code >= 500:
        logger.error(f"[{exc.code}] {exc.detail}")
    else:
        logger.warning(f"[{exc.code}] {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    # 将 Pydantic 校验错误统一映射为 400 VALIDATION_ERROR
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors()), "code": "VALIDATION_ERROR"},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(_: Request, exc: Exception):
    """未预期的异常：记录堆栈，只返回通用错误信息"""
    logger.exception(f"未处理的异常: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
    )
