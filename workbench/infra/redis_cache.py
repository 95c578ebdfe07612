"""
Redis 缓存模块

Cache-aside 封装：读缓存，未命中则计算并按固定 TTL 档位写回。

缓存策略：
- TTL 档位：SHORT 1 分钟 / MEDIUM 5 分钟 / LONG 30 分钟 / VERY_LONG 1 小时
- 键前缀统一由 CacheKeys 定义，失效时按前缀通配删除
- Redis 未配置或不可用时自动降级：读取全部未命中，写入为空操作，不影响业务逻辑
- 命中/未命中/错误计数同时记在内存和 Redis Hash 中
"""

import hashlib
import json
import logging
from functools import lru_cache
from typing import Any, Awaitable, Callable, TypeVar

from workbench.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheTTL:
    """TTL 档位（秒）"""
    SHORT = 60
    MEDIUM = 300
    LONG = 1800
    VERY_LONG = 3600


class CacheKeys:
    """缓存键前缀"""
    PROVIDER_CONFIGS_ALL = "provider:configs:all"
    PROVIDER_STATUS_ALL = "provider:status:all"
    MODEL_OVERRIDES = "model:overrides"
    CHATS_LIST = "chats:list:"
    INSTALLED_SERVERS = "servers:installed"
    DATASETS_LIST = "datasets:list"
    REGISTRY_SERVERS = "registry:servers:all"
    FEEDBACK_LIST = "feedback:list:"
    RUNTIME_ENVIRONMENT = "runtime:environment"
    STATS = "cache:stats"


class RedisCache:
    """
    Redis 缓存客户端

    如果 Redis 不可用，自动降级为无缓存模式（不影响业务逻辑）。
    """

    def __init__(self):
        self.settings = get_settings()
        self._client = None
        self._available = False
        self._stats = {"hits": 0, "misses": 0, "errors": 0}
        self._init_client()

    def _init_client(self) -> None:
        """初始化 Redis 客户端"""
        if not self.settings.redis_url:
            logger.info("Redis 未配置，缓存功能已禁用")
            return

        if not self.settings.redis_cache_enabled:
            logger.info("Redis 缓存已禁用（redis_cache_enabled=False）")
            return

        try:
            import redis.asyncio as aioredis
            self._client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            self._available = True
            logger.info(f"Redis 缓存已启用: {self.settings.redis_url}")
        except Exception as e:
            logger.warning(f"Redis 连接失败: {e}，缓存功能已禁用")

    @property
    def available(self) -> bool:
        """Redis 是否可用"""
        return self._available

    def _full_key(self, key: str) -> str:
        return f"{self.settings.redis_cache_key_prefix}{key}"

    @staticmethod
    def make_key(prefix: str, **params: Any) -> str:
        """
        由参数生成稳定的缓存键

        参数排序后做 MD5，保证键长度固定：{prefix}{hash}
        """
        sorted_params = json.dumps(params, sort_keys=True, ensure_ascii=False, default=str)
        return f"{prefix}{hashlib.md5(sorted_params.encode()).hexdigest()}"

    async def _record(self, field: str) -> None:
        self._stats[field] += 1
        if not self.available:
            return
        try:
            await self._client.hincrby(self._full_key(CacheKeys.STATS), field, 1)
        except Exception as e:
            logger.debug(f"更新缓存统计失败: {e}")

    async def get(self, key: str) -> Any | None:
        """读取缓存，未命中或不可用时返回 None"""
        if not self.available:
            return None

        try:
            cached = await self._client.get(self._full_key(key))
        except Exception as e:
            logger.warning(f"获取缓存失败: key={key}, {e}")
            await self._record("errors")
            return None

        if cached is None:
            await self._record("misses")
            return None

        await self._record("hits")
        logger.debug(f"缓存命中: key={key}")
        return json.loads(cached)

    async def set(self, key: str, value: Any, ttl: int = CacheTTL.MEDIUM) -> None:
        """写入缓存（JSON 序列化）"""
        if not self.available:
            return

        try:
            await self._client.setex(
                self._full_key(key),
                ttl,
                json.dumps(value, ensure_ascii=False, default=str),
            )
        except Exception as e:
            logger.warning(f"设置缓存失败: key={key}, {e}")
            await self._record("errors")

    async def delete(self, *keys: str) -> None:
        """删除一个或多个键"""
        if not self.available or not keys:
            return

        try:
            await self._client.delete(*(self._full_key(k) for k in keys))
        except Exception as e:
            logger.warning(f"删除缓存失败: keys={keys}, {e}")
            await self._record("errors")

    async def delete_pattern(self, pattern: str) -> int:
        """
        按通配模式删除，如 "chats:list:*"

        使用 SCAN 迭代，避免 KEYS 阻塞 Redis。

        Returns:
            int: 删除的键数量
        """
        if not self.available:
            return 0

        deleted = 0
        try:
            batch: list[str] = []
            async for full_key in self._client.scan_iter(match=self._full_key(pattern), count=100):
                batch.append(full_key)
                if len(batch) >= 100:
                    deleted += await self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._client.delete(*batch)
        except Exception as e:
            logger.warning(f"按模式删除缓存失败: pattern={pattern}, {e}")
            await self._record("errors")
        return deleted

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl: int = CacheTTL.MEDIUM,
    ) -> T:
        """
        Cache-aside：命中直接返回，否则调用 factory 计算并写回

        factory 的返回值必须可 JSON 序列化。
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await factory()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    # ==================== 失效辅助 ====================

    async def invalidate_chats(self) -> None:
        """对话或其消息变化时调用（列表里带标题、消息数和最后一条消息）"""
        await self.delete_pattern(f"{CacheKeys.CHATS_LIST}*")

    async def invalidate_provider_configs(self) -> None:
        """提供商配置变化时调用，同时失效聚合状态"""
        await self.delete(CacheKeys.PROVIDER_CONFIGS_ALL, CacheKeys.PROVIDER_STATUS_ALL)

    async def invalidate_datasets(self) -> None:
        await self.delete(CacheKeys.DATASETS_LIST)

    async def invalidate_feedback(self) -> None:
        await self.delete_pattern(f"{CacheKeys.FEEDBACK_LIST}*")

    # ==================== 统计 ====================

    async def stats(self) -> dict:
        """
        缓存统计

        Redis 可用时优先返回 Hash 中的累计值（多进程共享），否则返回本进程计数。
        """
        counters = dict(self._stats)
        connected = False
        if self.available:
            try:
                await self._client.ping()
                connected = True
                shared = await self._client.hgetall(self._full_key(CacheKeys.STATS))
                if shared:
                    counters = {
                        field: int(shared.get(field, 0)) for field in ("hits", "misses", "errors")
                    }
            except Exception as e:
                logger.warning(f"读取缓存统计失败: {e}")

        lookups = counters["hits"] + counters["misses"]
        return {
            "enabled": self.available,
            "connected": connected,
            "hits": counters["hits"],
            "misses": counters["misses"],
            "errors": counters["errors"],
            "hit_rate": round(counters["hits"] / lookups, 4) if lookups else 0.0,
        }

    async def close(self) -> None:
        """关闭 Redis 连接"""
        if self._client:
            await self._client.aclose()
            logger.info("Redis 连接已关闭")


@lru_cache(maxsize=1)
def get_redis_cache() -> RedisCache:
    """获取 Redis 缓存单例"""
    return RedisCache()
