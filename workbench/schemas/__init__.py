"""
数据模式层 (Schemas)

使用 Pydantic 定义 API 的请求和响应模型：
- 自动数据验证
- 自动生成 OpenAPI 文档
- 类型安全的序列化/反序列化
"""

from workbench.schemas.chat import (
    AttachmentCreate,
    AttachmentResponse,
    ChatCreate,
    ChatDetailResponse,
    ChatListResponse,
    ChatResponse,
    ChatUpdate,
    MessageCreate,
    MessageResponse,
)
from workbench.schemas.dataset import DatasetIndexRequest, DatasetPreviewResponse, DatasetResponse
from workbench.schemas.devtools import NotebookRequest, NotebookResponse, TerminalRequest
from workbench.schemas.feedback import (
    FeedbackCreate,
    FeedbackListResponse,
    FeedbackResponse,
    FeedbackStats,
    FeedbackUpdate,
)
from workbench.schemas.inference import (
    ChatCompletionResponse,
    ChatRequest,
    CompletionRequest,
    CompletionResponse,
    EmbeddingRequest,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ResponsesRequest,
    TranscriptionResponse,
)
from workbench.schemas.provider import (
    CheckModelLoadedRequest,
    ModelOverrideResponse,
    ModelOverrideUpsert,
    ProviderConfigResponse,
    ProviderConfigUpsert,
    ProviderToggle,
)
from workbench.schemas.registry import InstalledServerResponse, InstallRequest, RegistryServer
from workbench.schemas.settings import SettingsResponse, SettingsUpdate

__all__ = [
    "AttachmentCreate",
    "AttachmentResponse",
    "ChatCreate",
    "ChatDetailResponse",
    "ChatCompletionResponse",
    "ChatListResponse",
    "ChatRequest",
    "ChatResponse",
    "ChatUpdate",
    "CheckModelLoadedRequest",
    "CompletionRequest",
    "CompletionResponse",
    "DatasetIndexRequest",
    "DatasetPreviewResponse",
    "DatasetResponse",
    "EmbeddingRequest",
    "FeedbackCreate",
    "FeedbackListResponse",
    "FeedbackResponse",
    "FeedbackStats",
    "FeedbackUpdate",
    "ImageGenerationRequest",
    "ImageGenerationResponse",
    "InstallRequest",
    "InstalledServerResponse",
    "MessageCreate",
    "MessageResponse",
    "ModelOverrideResponse",
    "ModelOverrideUpsert",
    "NotebookRequest",
    "NotebookResponse",
    "ProviderConfigResponse",
    "ProviderConfigUpsert",
    "ProviderToggle",
    "RegistryServer",
    "ResponsesRequest",
    "SettingsResponse",
    "SettingsUpdate",
    "TerminalRequest",
    "TranscriptionResponse",
]
