"""
测试公共夹具

- 测试环境使用 SQLite 内存库（aiosqlite），每个测试独立建表
- Redis 未配置，缓存自动降级为直通
- 上游 HTTP 请求通过 httpx.MockTransport 模拟
"""

import os

# 必须在导入 workbench 之前设置，Settings 会在导入时读取环境变量
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["REDIS_URL"] = ""
os.environ["REDIS_CACHE_ENABLED"] = "false"

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from workbench import models  # noqa: F401
from workbench.config import get_settings
from workbench.db.base import Base
from workbench.db.session import get_db
from workbench.infra import github_registry, llm
from workbench.infra.metrics import metrics_collector
from workbench.main import app

PROVIDER_KEY_FIELDS = [
    f"{name}_api_key"
    for name in (
        "openai", "anthropic", "google", "groq", "openrouter",
        "together", "mistral", "cohere", "replicate", "huggingface",
    )
]


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """清除环境中的 API Key，数据集和 Notebook 目录指向临时目录"""
    settings = get_settings()
    for field in PROVIDER_KEY_FIELDS:
        monkeypatch.setattr(settings, field, None)
    monkeypatch.setattr(settings, "github_token", None)
    monkeypatch.setattr(settings, "dataset_dir", str(tmp_path / "datasets"))
    monkeypatch.setattr(settings, "notebook_workspace_dir", str(tmp_path / "workspace"))
    yield settings


@pytest.fixture(autouse=True)
def reset_state():
    metrics_collector.reset()
    github_registry.clear_cache()
    llm._get_openai_compatible_client.cache_clear()
    yield
    metrics_collector.reset()
    github_registry.clear_cache()


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """绑定测试数据库的 API 客户端"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def mock_upstream():
    """
    替换提供商 HTTP 客户端

    用法：
        requests = mock_upstream(lambda request: httpx.Response(200, json={...}))
        # 调用后 requests 中是上游收到的全部请求
    """
    patches = []

    def install(handler):
        seen: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        transport = httpx.MockTransport(recording_handler)
        p = patch.object(llm, "_http_client", lambda timeout=None: httpx.AsyncClient(transport=transport))
        p.start()
        patches.append(p)
        return seen

    yield install
    for p in patches:
        p.stop()


@pytest.fixture
def mock_openai_sdk():
    """替换 OpenAI 兼容 SDK 客户端，返回 MagicMock 以便设置各接口的返回值"""
    sdk = MagicMock()
    sdk.chat.completions.create = AsyncMock()
    sdk.completions.create = AsyncMock()
    sdk.embeddings.create = AsyncMock()
    with patch.object(llm, "_get_openai_compatible_client", return_value=sdk) as factory:
        sdk.factory = factory
        yield sdk
