"""
请求追踪中间件

- 从 X-Request-ID 头获取请求 ID，或自动生成
- 在响应中返回 X-Request-ID 和 X-Response-Time
- 按状态码选择日志级别记录请求

使用示例：
    from workbench.middleware.request_trace import RequestTraceMiddleware

    app.add_middleware(RequestTraceMiddleware)
"""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from workbench.infra.logging import (
    set_request_id,
    get_logger,
    RequestTimer,
)

logger = get_logger(__name__)

# 高频低价值请求不记录成功日志
SKIP_PATHS = ("/healthz", "/api/health", "/api/health/metrics", "/favicon.ico")


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """请求追踪中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)

        timer = RequestTimer()

        try:
            response = await call_next(request)
        except Exception as e:
            metrics = timer.get_metrics()
            logger.error(
                f"{request.method} {request.url.path} - 500 - {metrics['total_ms']:.0f}ms",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": 500,
                    "duration_ms": metrics["total_ms"],
                    "error": str(e),
                },
            )
            raise

        metrics = timer.get_metrics()
        log_extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": metrics["total_ms"],
        }
        message = f"{request.method} {request.url.path} - {response.status_code} - {metrics['total_ms']:.0f}ms"

        if response.status_code >= 500:
            logger.error(message, extra=log_extra)
        elif response.status_code >= 400:
            logger.warning(message, extra=log_extra)
        elif request.url.path not in SKIP_PATHS:
            logger.info(message, extra=log_extra)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{metrics['total_ms']:.0f}ms"

        return response
