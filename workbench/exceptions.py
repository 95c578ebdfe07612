"""
业务异常定义

每个异常携带 HTTP 状态码和错误码，由 workbench.main 中的异常处理器
统一渲染为 {"detail": "...", "code": "..."}。
"""


class WorkbenchError(Exception):
    """服务端业务错误基类"""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        detail: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class UnsupportedProviderError(WorkbenchError):
    """未知的模型提供商"""

    status_code = 400
    code = "UNSUPPORTED_PROVIDER"

    def __init__(self, provider: str):
        super().__init__(f"unsupported provider: {provider}")
        self.provider = provider


class CapabilityNotSupportedError(WorkbenchError):
    """提供商不具备请求的能力（如图像生成）"""

    status_code = 400
    code = "CAPABILITY_NOT_SUPPORTED"

    def __init__(self, provider: str, capability: str):
        super().__init__(f"Provider {provider} does not support {capability}")
        self.provider = provider
        self.capability = capability


class NotImplementedForProviderError(WorkbenchError):
    """提供商声明了能力，但没有对应的请求规范化实现"""

    status_code = 501
    code = "NOT_IMPLEMENTED"

    def __init__(self, provider: str, capability: str):
        super().__init__(f"{capability} not implemented for {provider}")


class MissingAPIKeyError(WorkbenchError):
    """缺少 API Key"""

    status_code = 401
    code = "MISSING_API_KEY"

    def __init__(self, provider: str):
        super().__init__(f"API key required for {provider}")
        self.provider = provider


class UpstreamError(WorkbenchError):
    """上游返回非 2xx，透传状态码和错误文本"""

    code = "UPSTREAM_ERROR"

    def __init__(self, provider: str, status_code: int, text: str):
        super().__init__(text or f"{provider} returned HTTP {status_code}", status_code=status_code)
        self.provider = provider


class ProviderUnreachableError(WorkbenchError):
    """连接失败或超时"""

    status_code = 502
    code = "PROVIDER_UNREACHABLE"

    def __init__(self, provider: str, reason: str):
        super().__init__(f"Failed to reach {provider}: {reason}")
        self.provider = provider


class CommandBlockedError(WorkbenchError):
    """命中危险命令或危险代码规则"""

    status_code = 403
    code = "COMMAND_BLOCKED"


class DatasetError(WorkbenchError):
    """数据集解析错误"""

    status_code = 400
    code = "INVALID_DATASET"
