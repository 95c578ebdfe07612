"""
提供商配置服务

按优先级解析一次调用使用的 API Key 和 Base URL：

- API Key：数据库 ProviderConfig（解密） > 环境变量 > 无
- Base URL：请求级覆盖 > 数据库 ProviderConfig > 注册表默认（可被环境变量覆盖）

并提供 ProviderConfig 的增删改查（API Key 加密存储，从不返回明文）。

使用示例：
    from workbench.services.provider_config import provider_config_resolver

    target = await provider_config_resolver.resolve(db, "openai", capability="chat")
    result = await chat_completion(target, "gpt-4o", messages)
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.config import get_settings
from workbench.exceptions import CapabilityNotSupportedError, MissingAPIKeyError
from workbench.infra.encryption import DecryptionError, decrypt, encrypt
from workbench.infra.llm import ProviderTarget
from workbench.infra.providers import ProviderSpec, get_provider
from workbench.infra.redis_cache import CacheKeys, CacheTTL, get_redis_cache
from workbench.models import ProviderConfig

logger = logging.getLogger(__name__)

# 能力名 → ProviderSpec 上的 supports_* 属性
CAPABILITIES = (
    "chat",
    "completions",
    "embeddings",
    "responses",
    "image_generation",
    "audio_transcription",
)


def config_to_dict(config: ProviderConfig) -> dict:
    """对外展示的配置，API Key 只返回是否已配置"""
    return {
        "id": config.id,
        "provider": config.provider,
        "name": config.name,
        "type": config.type,
        "base_url": config.base_url,
        "enabled": config.enabled,
        "has_api_key": bool(config.api_key),
        "config": config.config,
        "created_at": config.created_at.isoformat() if config.created_at else None,
        "updated_at": config.updated_at.isoformat() if config.updated_at else None,
    }


class ProviderConfigResolver:
    """提供商配置解析器"""

    async def get_config(self, session: AsyncSession, provider: str) -> ProviderConfig | None:
        result = await session.execute(
            select(ProviderConfig).where(ProviderConfig.provider == provider)
        )
        return result.scalar_one_or_none()

    def _decrypt_key(self, config: ProviderConfig | None) -> str | None:
        if not config or not config.api_key:
            return None
        try:
            return decrypt(config.api_key)
        except DecryptionError:
            # 加密密钥更换后旧密文无法解密，退回环境变量
            logger.warning(f"无法解密 {config.provider} 的 API Key，使用环境变量")
            return None

    async def resolve_api_key(
        self,
        session: AsyncSession,
        spec: ProviderSpec,
        config: ProviderConfig | None = None,
    ) -> str | None:
        if config is None:
            config = await self.get_config(session, spec.name)
        return self._decrypt_key(config) or get_settings().provider_api_key(spec.name)

    async def resolve(
        self,
        session: AsyncSession,
        provider: str,
        *,
        capability: str | None = None,
        base_url: str | None = None,
        require_key: bool = True,
    ) -> ProviderTarget:
        """
        解析调用目标

        检查顺序：提供商是否存在(400) → 能力(400) → API Key(401)

        Args:
            session: 数据库会话
            provider: 提供商名称
            capability: 需要的能力（见 CAPABILITIES），None 不检查
            base_url: 请求级 Base URL 覆盖
            require_key: 需要 Key 的提供商缺 Key 时是否报错

        Raises:
            UnsupportedProviderError / CapabilityNotSupportedError / MissingAPIKeyError
        """
        spec = get_provider(provider)
        if capability and not getattr(spec, f"supports_{capability}"):
            raise CapabilityNotSupportedError(spec.name, capability.replace("_", " "))

        config = await self.get_config(session, spec.name)
        api_key = await self.resolve_api_key(session, spec, config)
        if require_key and spec.requires_api_key and not api_key:
            raise MissingAPIKeyError(spec.name)

        return ProviderTarget(
            spec=spec,
            api_key=api_key,
            base_url=base_url or (config.base_url if config else None),
        )

    # ==================== 配置增删改查 ====================

    async def list_configs(self, session: AsyncSession) -> list[dict]:
        """全部提供商配置（缓存 MEDIUM）"""

        async def load() -> list[dict]:
            result = await session.execute(select(ProviderConfig).order_by(ProviderConfig.provider))
            return [config_to_dict(c) for c in result.scalars().all()]

        return await get_redis_cache().get_or_set(CacheKeys.PROVIDER_CONFIGS_ALL, load, CacheTTL.MEDIUM)

    async def upsert_config(
        self,
        session: AsyncSession,
        provider: str,
        *,
        name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        enabled: bool | None = None,
        config: dict | None = None,
    ) -> ProviderConfig:
        """
        创建或更新配置

        api_key 为 None 时保留原值，为空字符串时清除。
        """
        spec = get_provider(provider)
        row = await self.get_config(session, spec.name)
        if row is None:
            row = ProviderConfig(provider=spec.name, name=name or spec.display_name, type=spec.type)
            session.add(row)

        if name is not None:
            row.name = name
        if base_url is not None:
            row.base_url = base_url or None
        if api_key is not None:
            row.api_key = encrypt(api_key) or None
        if enabled is not None:
            row.enabled = enabled
        if config is not None:
            row.config = config

        await session.commit()
        await session.refresh(row)
        await get_redis_cache().invalidate_provider_configs()
        logger.info(f"保存提供商配置: {spec.name}")
        return row

    async def delete_config(self, session: AsyncSession, provider: str) -> bool:
        row = await self.get_config(session, provider)
        if row is None:
            return False
        await session.delete(row)
        await session.commit()
        await get_redis_cache().invalidate_provider_configs()
        logger.info(f"删除提供商配置: {provider}")
        return True

    async def set_enabled(self, session: AsyncSession, provider: str, enabled: bool) -> ProviderConfig:
        """启用/禁用（没有配置时自动创建）"""
        return await self.upsert_config(session, provider, enabled=enabled)


provider_config_resolver = ProviderConfigResolver()
