"""
中间件模块

- RequestTraceMiddleware: 请求追踪和日志记录
"""

from workbench.middleware.request_trace import RequestTraceMiddleware

__all__ = ["RequestTraceMiddleware"]
