"""
提供商与模型管理的请求模型
"""

from pydantic import AliasChoices, BaseModel, Field


class ProviderConfigUpsert(BaseModel):
    """
    创建/更新提供商配置

    api_key 不传时保留原值，传空字符串时清除。
    """
    provider: str = Field(..., min_length=1, max_length=50)
    name: str | None = Field(default=None, max_length=100)
    base_url: str | None = Field(
        default=None, max_length=500, validation_alias=AliasChoices("base_url", "baseUrl")
    )
    api_key: str | None = Field(default=None, validation_alias=AliasChoices("api_key", "apiKey"))
    enabled: bool | None = None
    config: dict | None = None


class ProviderConfigResponse(BaseModel):
    """提供商配置（不含 API Key 明文）"""
    id: str
    provider: str
    name: str
    type: str
    base_url: str | None = None
    enabled: bool
    has_api_key: bool
    config: dict | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ProviderToggle(BaseModel):
    provider: str = Field(..., min_length=1)
    enabled: bool


class ModelOverrideUpsert(BaseModel):
    provider: str = Field(..., min_length=1, max_length=50)
    model_id: str = Field(
        ..., min_length=1, max_length=255, validation_alias=AliasChoices("model_id", "modelId")
    )
    is_reasoning: bool = Field(..., validation_alias=AliasChoices("is_reasoning", "isReasoning"))


class ModelOverrideResponse(BaseModel):
    id: str
    provider: str
    model_id: str
    is_reasoning: bool

    model_config = {"from_attributes": True}


class CheckModelLoadedRequest(BaseModel):
    provider: str = Field(..., min_length=1)
    model_id: str = Field(..., min_length=1, validation_alias=AliasChoices("model_id", "modelId"))
