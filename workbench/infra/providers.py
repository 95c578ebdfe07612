"""
模型提供商注册表

静态表：提供商名称 → Base URL、各能力端点路径、认证头模板和能力标记。

- 端点为 None 表示提供商不具备该能力（如 anthropic 没有 embeddings）
- 认证头模板中的 {API_KEY} 在请求时替换为真实 Key
- Base URL 可被环境变量（{PROVIDER}_BASE_URL）覆盖
- api_style 决定请求规范化时使用哪一种请求/响应格式

使用示例：
    from workbench.infra.providers import get_provider, build_auth_headers

    spec = get_provider("openai")
    headers = build_auth_headers(spec, "sk-xxx")
    url = endpoint_url(spec, spec.chat_endpoint)
"""

from typing import Literal

from pydantic import BaseModel, Field

from workbench.config import get_settings
from workbench.exceptions import UnsupportedProviderError

ProviderType = Literal["local", "remote"]
ApiStyle = Literal["ollama", "openai", "anthropic", "google", "cohere", "replicate", "huggingface"]

API_KEY_PLACEHOLDER = "{API_KEY}"
_BEARER = {"Authorization": f"Bearer {API_KEY_PLACEHOLDER}"}


class ProviderSpec(BaseModel):
    """单个提供商的静态描述"""
    name: str = Field(..., description="提供商标识，如 openai")
    display_name: str = Field(..., description="展示名称")
    type: ProviderType
    api_style: ApiStyle
    default_base_url: str

    health_endpoint: str | None = None
    models_endpoint: str | None = None
    chat_endpoint: str | None = None
    completions_endpoint: str | None = None
    embeddings_endpoint: str | None = None
    responses_endpoint: str | None = None
    image_generation_endpoint: str | None = None
    audio_transcription_endpoint: str | None = None

    requires_api_key: bool = False
    api_key_env_var: str | None = None
    default_headers: dict[str, str] = Field(default_factory=dict)
    uses_query_param_auth: bool = False
    supports_streaming: bool = False

    model_config = {"frozen": True}

    @property
    def base_url(self) -> str:
        """环境变量覆盖优先，否则使用默认地址"""
        return get_settings().provider_base_url(self.name) or self.default_base_url

    @property
    def supports_chat(self) -> bool:
        return self.chat_endpoint is not None

    @property
    def supports_completions(self) -> bool:
        return self.completions_endpoint is not None

    @property
    def supports_embeddings(self) -> bool:
        return self.embeddings_endpoint is not None

    @property
    def supports_responses(self) -> bool:
        return self.responses_endpoint is not None

    @property
    def supports_image_generation(self) -> bool:
        return self.image_generation_endpoint is not None

    @property
    def supports_audio_transcription(self) -> bool:
        return self.audio_transcription_endpoint is not None

    def to_public_dict(self) -> dict:
        """对外展示用（不含认证头模板）"""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "type": self.type,
            "base_url": self.base_url,
            "requires_api_key": self.requires_api_key,
            "api_key_env_var": self.api_key_env_var,
            "capabilities": {
                "chat": self.supports_chat,
                "completions": self.supports_completions,
                "embeddings": self.supports_embeddings,
                "responses": self.supports_responses,
                "image_generation": self.supports_image_generation,
                "audio_transcription": self.supports_audio_transcription,
                "streaming": self.supports_streaming,
            },
        }


PROVIDER_REGISTRY: dict[str, ProviderSpec] = {
    spec.name: spec
    for spec in (
        ProviderSpec(
            name="ollama",
            display_name="Ollama",
            type="local",
            api_style="ollama",
            default_base_url="http://localhost:11434",
            health_endpoint="/api/tags",
            models_endpoint="/api/tags",
            chat_endpoint="/api/chat",
            completions_endpoint="/api/generate",
            embeddings_endpoint="/api/embeddings",
            supports_streaming=True,
        ),
        ProviderSpec(
            name="lmstudio",
            display_name="LM Studio",
            type="local",
            api_style="openai",
            default_base_url="http://localhost:1234",
            health_endpoint="/v1/models",
            models_endpoint="/v1/models",
            chat_endpoint="/v1/chat/completions",
            completions_endpoint="/v1/completions",
            embeddings_endpoint="/v1/embeddings",
            responses_endpoint="/v1/responses",
            supports_streaming=True,
        ),
        ProviderSpec(
            name="openai",
            display_name="OpenAI",
            type="remote",
            api_style="openai",
            default_base_url="https://api.openai.com/v1",
            health_endpoint="/models",
            models_endpoint="/models",
            chat_endpoint="/chat/completions",
            completions_endpoint="/completions",
            embeddings_endpoint="/embeddings",
            responses_endpoint="/responses",
            image_generation_endpoint="/images/generations",
            audio_transcription_endpoint="/audio/transcriptions",
            requires_api_key=True,
            api_key_env_var="OPENAI_API_KEY",
            default_headers=_BEARER,
            supports_streaming=True,
        ),
        ProviderSpec(
            name="anthropic",
            display_name="Anthropic (Claude)",
            type="remote",
            api_style="anthropic",
            default_base_url="https://api.anthropic.com/v1",
            health_endpoint="/models",
            models_endpoint="/models",
            chat_endpoint="/messages",
            requires_api_key=True,
            api_key_env_var="ANTHROPIC_API_KEY",
            default_headers={
                "x-api-key": API_KEY_PLACEHOLDER,
                "anthropic-version": "2023-06-01",
            },
            supports_streaming=True,
        ),
        ProviderSpec(
            name="google",
            display_name="Google AI (Gemini)",
            type="remote",
            api_style="google",
            default_base_url="https://generativelanguage.googleapis.com/v1beta",
            health_endpoint="/models",
            models_endpoint="/models",
            chat_endpoint="/models/{model}:generateContent",
            image_generation_endpoint="/models/{model}:generateImages",
            requires_api_key=True,
            api_key_env_var="GOOGLE_API_KEY",
            uses_query_param_auth=True,
        ),
        ProviderSpec(
            name="groq",
            display_name="Groq",
            type="remote",
            api_style="openai",
            default_base_url="https://api.groq.com/openai/v1",
            health_endpoint="/models",
            models_endpoint="/models",
            chat_endpoint="/chat/completions",
            audio_transcription_endpoint="/audio/transcriptions",
            requires_api_key=True,
            api_key_env_var="GROQ_API_KEY",
            default_headers=_BEARER,
            supports_streaming=True,
        ),
        ProviderSpec(
            name="openrouter",
            display_name="OpenRouter",
            type="remote",
            api_style="openai",
            default_base_url="https://openrouter.ai/api/v1",
            health_endpoint="/models",
            models_endpoint="/models",
            chat_endpoint="/chat/completions",
            requires_api_key=True,
            api_key_env_var="OPENROUTER_API_KEY",
            default_headers=_BEARER,
            supports_streaming=True,
        ),
        ProviderSpec(
            name="together",
            display_name="Together AI",
            type="remote",
            api_style="openai",
            default_base_url="https://api.together.xyz/v1",
            health_endpoint="/models",
            models_endpoint="/models",
            chat_endpoint="/chat/completions",
            completions_endpoint="/completions",
            embeddings_endpoint="/embeddings",
            image_generation_endpoint="/images/generations",
            requires_api_key=True,
            api_key_env_var="TOGETHER_API_KEY",
            default_headers=_BEARER,
            supports_streaming=True,
        ),
        ProviderSpec(
            name="mistral",
            display_name="Mistral AI",
            type="remote",
            api_style="openai",
            default_base_url="https://api.mistral.ai/v1",
            health_endpoint="/models",
            models_endpoint="/models",
            chat_endpoint="/chat/completions",
            embeddings_endpoint="/embeddings",
            requires_api_key=True,
            api_key_env_var="MISTRAL_API_KEY",
            default_headers=_BEARER,
            supports_streaming=True,
        ),
        ProviderSpec(
            name="cohere",
            display_name="Cohere",
            type="remote",
            api_style="cohere",
            default_base_url="https://api.cohere.ai/v1",
            health_endpoint="/models",
            models_endpoint="/models",
            chat_endpoint="/chat",
            embeddings_endpoint="/embed",
            requires_api_key=True,
            api_key_env_var="COHERE_API_KEY",
            default_headers=_BEARER,
        ),
        ProviderSpec(
            name="replicate",
            display_name="Replicate",
            type="remote",
            api_style="replicate",
            default_base_url="https://api.replicate.com/v1",
            health_endpoint="/models",
            models_endpoint=None,
            image_generation_endpoint="/predictions",
            audio_transcription_endpoint="/predictions",
            requires_api_key=True,
            api_key_env_var="REPLICATE_API_KEY",
            default_headers=_BEARER,
        ),
        ProviderSpec(
            name="huggingface",
            display_name="Hugging Face Inference",
            type="remote",
            api_style="huggingface",
            default_base_url="https://api-inference.huggingface.co",
            # Inference API 没有模型列表/健康检查端点，有 Key 即视为可用
            health_endpoint=None,
            models_endpoint=None,
            image_generation_endpoint="/models/{model}",
            audio_transcription_endpoint="/models/{model}",
            requires_api_key=True,
            api_key_env_var="HUGGINGFACE_API_KEY",
            default_headers=_BEARER,
        ),
        ProviderSpec(
            name="custom",
            display_name="Custom Provider",
            type="local",
            api_style="openai",
            default_base_url="http://localhost:8000",
            health_endpoint="/health",
            models_endpoint="/v1/models",
            chat_endpoint="/v1/chat/completions",
            completions_endpoint="/v1/completions",
            embeddings_endpoint="/v1/embeddings",
        ),
    )
}


def get_provider(name: str) -> ProviderSpec:
    """
    按名称获取提供商

    Raises:
        UnsupportedProviderError: 未知提供商
    """
    spec = PROVIDER_REGISTRY.get((name or "").lower())
    if spec is None:
        raise UnsupportedProviderError(name)
    return spec


def list_providers() -> list[ProviderSpec]:
    return list(PROVIDER_REGISTRY.values())


def build_auth_headers(spec: ProviderSpec, api_key: str | None) -> dict[str, str]:
    """
    生成认证请求头

    - 有模板：替换 {API_KEY}（不依赖 Key 的静态头如 anthropic-version 始终带上）
    - google：x-goog-api-key
    - 无模板且有 Key：Authorization: Bearer <key>
    """
    headers: dict[str, str] = {}
    if spec.default_headers:
        for header, template in spec.default_headers.items():
            if API_KEY_PLACEHOLDER in template:
                if api_key:
                    headers[header] = template.replace(API_KEY_PLACEHOLDER, api_key)
            else:
                headers[header] = template
        return headers

    if not api_key:
        return headers
    if spec.name == "google":
        headers["x-goog-api-key"] = api_key
    else:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def endpoint_url(
    spec: ProviderSpec,
    path: str,
    base_url: str | None = None,
    model: str | None = None,
) -> str:
    """拼接完整 URL，path 中的 {model} 替换为模型 ID"""
    root = (base_url or spec.base_url).rstrip("/")
    if model is not None:
        path = path.replace("{model}", model)
    return f"{root}{path}"


def openai_sdk_base_url(spec: ProviderSpec, base_url: str | None = None) -> str:
    """
    OpenAI SDK 需要的 base_url

    SDK 会自行拼接 /chat/completions，这里去掉 chat 端点的该后缀，
    例如 LM Studio：http://localhost:1234 + /v1/chat/completions → http://localhost:1234/v1
    """
    prefix = (spec.chat_endpoint or "").removesuffix("/chat/completions")
    return endpoint_url(spec, prefix, base_url)
