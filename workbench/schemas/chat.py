"""
对话相关的请求/响应模型

用于前端聊天历史持久化的 API 接口。
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


# ==================== 附件 ====================

class AttachmentCreate(BaseModel):
    """附件（文件已上传到外部存储，这里只记录元信息）"""
    name: str = Field(..., min_length=1, max_length=255, description="文件名")
    mime: str = Field(..., min_length=1, max_length=100, description="MIME 类型")
    size: int = Field(..., ge=0, description="文件大小（字节）")
    url: str = Field(..., min_length=1, description="文件地址")


class AttachmentResponse(AttachmentCreate):
    id: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ==================== 消息 ====================

class MessageCreate(BaseModel):
    """创建消息请求"""
    role: Literal["user", "assistant", "tool", "system"] = Field(..., description="消息角色")
    content: str = Field(..., description="消息内容")
    reasoning: str | None = Field(default=None, description="推理过程")
    provider: str | None = Field(default=None, max_length=50)
    model_id: str | None = Field(default=None, max_length=255)
    tool_calls: list | None = None
    tool_results: list | None = None
    tokens_in: int | None = Field(default=None, ge=0)
    tokens_out: int | None = Field(default=None, ge=0)
    attachments: list[AttachmentCreate] = Field(default_factory=list)


class MessageResponse(BaseModel):
    """消息响应"""
    id: str
    chat_id: str
    role: str
    content: str
    reasoning: str | None = None
    provider: str | None = None
    model_id: str | None = None
    tool_calls: list | None = None
    tool_results: list | None = None
    tokens_in: int | None = None
    tokens_out: int | None = None
    attachments: list[AttachmentResponse] = Field(default_factory=list)
    created_at: datetime

    model_config = {"from_attributes": True}


# ==================== 对话 ====================

class ChatCreate(BaseModel):
    """创建对话请求

    示例:
    ```json
    {
        "title": "调试 MCP 工具",
        "default_provider": "ollama",
        "default_model_id": "qwen3:8b"
    }
    ```
    """
    title: str | None = Field(default=None, max_length=255, description="对话标题")
    system_prompt: str | None = None
    default_provider: str | None = Field(default=None, max_length=50)
    default_model_id: str | None = Field(default=None, max_length=255)
    tool_server_ids: list[str] | None = None
    meta: dict | None = None


class ChatUpdate(ChatCreate):
    """更新对话请求（只更新传入的字段）"""


class ChatResponse(BaseModel):
    """对话响应（不含消息）"""
    id: str
    title: str
    system_prompt: str | None = None
    default_provider: str
    default_model_id: str | None = None
    tool_server_ids: list[str] | None = None
    meta: dict | None = None
    created_at: datetime
    updated_at: datetime
    message_count: int = 0
    last_message: str | None = Field(default=None, description="最后一条消息（前 100 字符）")

    model_config = {"from_attributes": True}


class ChatDetailResponse(ChatResponse):
    """对话详情（含消息）"""
    messages: list[MessageResponse] = Field(default_factory=list)


class ChatListResponse(BaseModel):
    items: list[ChatResponse]
    total: int
    limit: int
    offset: int
