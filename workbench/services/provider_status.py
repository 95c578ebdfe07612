"""
提供商连通性与模型列表

- check_provider_health: 探活（远程且需要 Key 的提供商请求模型列表端点，其余请求健康检查端点）
- fetch_provider_models: 拉取模型列表并按提供商格式解析，标注模型能力
- get_provider_status / get_all_providers_status: 汇总状态（后者缓存 MEDIUM）
- check_model_loaded: 本地提供商的模型是否已加载
"""

import asyncio
import logging

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.infra import llm
from workbench.infra.metrics import track_call
from workbench.infra.model_detection import (
    KNOWN_AUDIO_MODELS,
    KNOWN_IMAGE_MODELS,
    detect_capabilities,
)
from workbench.infra.providers import ProviderSpec, build_auth_headers, endpoint_url, get_provider
from workbench.infra.redis_cache import CacheKeys, CacheTTL, get_redis_cache
from workbench.models import ModelOverride, ProviderConfig
from workbench.services.provider_config import provider_config_resolver

logger = logging.getLogger(__name__)

REMOTE_PROBE_TIMEOUT = 10.0
LOCAL_PROBE_TIMEOUT = 5.0
DEFAULT_PROVIDERS = ("ollama", "lmstudio")

# Anthropic 模型列表固定
ANTHROPIC_MODELS = (
    ("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet"),
    ("claude-3-5-haiku-20241022", "Claude 3.5 Haiku"),
    ("claude-3-opus-20240229", "Claude 3 Opus"),
)


def _model_entry(provider: str, model_id: str, name: str | None = None, **extra) -> dict:
    entry = {"id": model_id, "name": name or model_id, "provider": provider}
    entry.update({k: v for k, v in extra.items() if v is not None})
    entry.update(detect_capabilities(model_id, provider))
    return entry


async def check_provider_health(
    provider: str,
    api_key: str | None = None,
    base_url: str | None = None,
) -> bool:
    """缺少必需的 Key 时直接返回 False，不发请求"""
    spec = get_provider(provider)
    if spec.requires_api_key and not api_key:
        logger.info(f"{spec.name} 需要 API Key，但未配置")
        return False

    if spec.type == "remote" and spec.requires_api_key:
        path = spec.models_endpoint or spec.health_endpoint
        timeout = REMOTE_PROBE_TIMEOUT
    else:
        path = spec.health_endpoint
        timeout = LOCAL_PROBE_TIMEOUT
    if path is None:
        # 没有可探测的端点（如 Hugging Face），有 Key 即视为可用
        return True

    try:
        async with llm._http_client(timeout) as client:
            response = await client.get(
                endpoint_url(spec, path, base_url),
                headers=build_auth_headers(spec, api_key),
            )
        return response.is_success
    except httpx.HTTPError as e:
        logger.warning(f"{spec.name} 健康检查失败: {e}")
        return False


def _parse_models(spec: ProviderSpec, data: dict) -> list[dict]:
    provider = spec.name
    if spec.api_style == "ollama":
        return [
            _model_entry(
                provider,
                m["name"],
                size=f"{m['size'] / 1e9:.1f}GB" if m.get("size") else None,
                modified=m.get("modified_at"),
            )
            for m in data.get("models") or []
        ]
    if spec.api_style == "openai":
        return [_model_entry(provider, m["id"]) for m in data.get("data") or []]
    if spec.api_style == "google":
        return [
            _model_entry(provider, m["name"].removeprefix("models/"), m.get("displayName") or m["name"])
            for m in data.get("models") or []
        ]
    if spec.api_style == "cohere":
        return [_model_entry(provider, m["name"]) for m in data.get("models") or []]
    return []


async def fetch_provider_models(
    provider: str,
    api_key: str | None = None,
    base_url: str | None = None,
) -> list[dict]:
    """
    获取模型列表

    失败时返回空列表（记录日志），不抛异常。
    """
    spec = get_provider(provider)
    if spec.api_style == "anthropic":
        return [_model_entry(spec.name, model_id, name) for model_id, name in ANTHROPIC_MODELS]
    if spec.models_endpoint is None:
        # 只做图像/语音的提供商没有模型列表端点，返回已知模型
        known = KNOWN_IMAGE_MODELS.get(spec.name, []) + KNOWN_AUDIO_MODELS.get(spec.name, [])
        return [_model_entry(spec.name, model_id) for model_id in dict.fromkeys(known)]

    try:
        with track_call("models", spec.name):
            async with llm._http_client(LOCAL_PROBE_TIMEOUT) as client:
                response = await client.get(
                    endpoint_url(spec, spec.models_endpoint, base_url),
                    headers=build_auth_headers(spec, api_key),
                )
            response.raise_for_status()
            models = _parse_models(spec, response.json())
    except (httpx.HTTPError, ValueError, KeyError) as e:
        logger.error(f"获取 {spec.name} 模型列表失败: {e}")
        return []

    logger.info(f"获取 {spec.name} 模型列表: {len(models)} 个")
    return models


async def apply_model_overrides(session: AsyncSession, models: list[dict]) -> list[dict]:
    """用户手动标记的 is_reasoning 覆盖自动检测结果"""
    if not models:
        return models
    result = await session.execute(select(ModelOverride))
    overrides = {(o.provider, o.model_id): o.is_reasoning for o in result.scalars().all()}
    for model in models:
        key = (model["provider"], model["id"])
        if key in overrides:
            model["is_reasoning"] = overrides[key]
    return models


async def get_provider_status(
    provider: str,
    api_key: str | None = None,
    base_url: str | None = None,
) -> dict:
    spec = get_provider(provider)
    connected = await check_provider_health(spec.name, api_key, base_url)
    status = {
        "provider": spec.name,
        "type": spec.type,
        "connected": connected,
        "models": [],
        "requires_api_key": spec.requires_api_key,
        "has_api_key": bool(api_key),
    }
    if not connected:
        status["error"] = "Provider not reachable"
        return status

    status["models"] = await fetch_provider_models(spec.name, api_key, base_url)
    return status


async def get_status_for(session: AsyncSession, provider: str, base_url: str | None = None) -> dict:
    """按数据库/环境变量解析 Key 和 Base URL 后获取状态"""
    target = await provider_config_resolver.resolve(
        session, provider, base_url=base_url, require_key=False
    )
    status = await get_provider_status(target.name, target.api_key, target.base_url)
    await apply_model_overrides(session, status["models"])
    return status


async def get_all_providers_status(session: AsyncSession) -> list[dict]:
    """
    已启用提供商的状态（缓存 MEDIUM）

    没有任何启用的配置时，返回本地提供商 Ollama 和 LM Studio 的状态。
    """

    async def load() -> list[dict]:
        result = await session.execute(
            select(ProviderConfig.provider).where(ProviderConfig.enabled.is_(True))
        )
        providers = list(result.scalars().all()) or list(DEFAULT_PROVIDERS)

        targets = [
            await provider_config_resolver.resolve(session, p, require_key=False)
            for p in providers
        ]
        statuses = await asyncio.gather(
            *(get_provider_status(t.name, t.api_key, t.base_url) for t in targets)
        )
        for status in statuses:
            await apply_model_overrides(session, status["models"])
        return list(statuses)

    return await get_redis_cache().get_or_set(CacheKeys.PROVIDER_STATUS_ALL, load, CacheTTL.MEDIUM)


async def check_model_loaded(session: AsyncSession, provider: str, model_id: str) -> dict:
    """
    检查模型是否可用

    - Ollama：首次请求时自动加载，始终视为已加载
    - LM Studio：模型必须出现在 /v1/models 中
    - 远程提供商：始终可用
    """
    target = await provider_config_resolver.resolve(session, provider, require_key=False)
    spec = target.spec

    if spec.type == "remote":
        return {"loaded": True}
    if spec.name not in ("ollama", "lmstudio"):
        return {"loaded": False, "error": "Unsupported provider"}

    path = "/api/ps" if spec.name == "ollama" else "/v1/models"
    try:
        async with llm._http_client(LOCAL_PROBE_TIMEOUT) as client:
            response = await client.get(target.url(path))
    except httpx.HTTPError as e:
        logger.error(f"检查 {spec.name} 模型状态失败: {e}")
        return {"loaded": False, "error": f"Failed to reach {spec.name}"}
    if not response.is_success:
        return {"loaded": False, "error": "Failed to check model status"}

    if spec.name == "ollama":
        return {"loaded": True}

    loaded = [m.get("id") for m in response.json().get("data") or []]
    if not loaded:
        return {"loaded": False, "error": "No model loaded in LM Studio. Please load a model first."}
    if model_id not in loaded:
        return {
            "loaded": False,
            "error": f'Model "{model_id}" is not loaded. Currently loaded: "{loaded[0]}"',
        }
    return {"loaded": True}
