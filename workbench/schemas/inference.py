"""
推理接口的请求/响应模型

对话、文本补全、Embedding、Responses、图像生成。
语音转写使用 multipart 表单，参数直接在路由中声明。
"""

from typing import Literal

from pydantic import AliasChoices, BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str


class ProviderRequest(BaseModel):
    """所有推理请求的公共字段"""
    provider: str = Field(..., min_length=1, description="提供商，如 ollama / openai")
    model: str = Field(..., min_length=1, description="模型 ID")
    base_url: str | None = Field(default=None, description="临时覆盖 Base URL")


class ChatRequest(ProviderRequest):
    """
    对话补全请求

    示例:
    ```json
    {
        "provider": "ollama",
        "model": "qwen3:8b",
        "messages": [{"role": "user", "content": "你好"}],
        "system_prompt": "你是一个助手"
    }
    ```
    """
    messages: list[ChatMessage] = Field(..., min_length=1)
    system_prompt: str | None = Field(
        default=None, validation_alias=AliasChoices("system_prompt", "systemPrompt")
    )
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1)
    tools: list | None = Field(default=None, description="工具定义（目前只透传记录，不执行）")


class ChatCompletionResponse(BaseModel):
    content: str
    reasoning: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    tool_calls: list = Field(default_factory=list)
    provider: str
    model: str


class CompletionRequest(ProviderRequest):
    prompt: str = Field(..., min_length=1)
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1)


class CompletionResponse(BaseModel):
    completion: str
    usage: dict = Field(default_factory=dict)


class EmbeddingRequest(ProviderRequest):
    input: str | list[str] = Field(..., description="单条文本或文本列表")


class ResponsesRequest(BaseModel):
    """LM Studio Responses API（上游 JSON 原样返回）"""
    provider: str = "lmstudio"
    model: str = Field(..., min_length=1)
    input: str | list = Field(..., validation_alias=AliasChoices("input", "prompt"))
    instructions: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_output_tokens: int | None = Field(default=None, ge=1)
    base_url: str | None = None


class ImageGenerationRequest(ProviderRequest):
    prompt: str = Field(..., min_length=1, max_length=4000)
    n: int = Field(default=1, ge=1, le=10)
    size: str = Field(default="1024x1024", pattern=r"^\d+x\d+$")
    quality: Literal["standard", "hd"] = "standard"


class GeneratedImage(BaseModel):
    url: str | None = None
    b64_json: str | None = None


class ImageGenerationResponse(BaseModel):
    provider: str
    model: str
    prompt: str
    images: list[GeneratedImage]
    created: int


class TranscriptionResponse(BaseModel):
    provider: str
    model: str
    text: str
    language: str | None = None
    duration: float | None = None
