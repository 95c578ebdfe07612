"""
MCP 注册表与已安装工具服务器路由

端点：
- GET  /api/registry                         注册表服务器列表（缓存 1 小时）
- POST /api/registry/refresh                 清空缓存并重新抓取
- POST /api/registry/{server_id}/install     记录安装（生成首选包管理器的安装命令）
- POST /api/registry/{server_id}/uninstall   删除安装记录
- GET  /api/tools                            已安装服务器列表
- POST /api/tools/{server_id}/toggle         启用/禁用已安装服务器

只记录安装信息，不会实际执行安装命令或启动服务器。
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.api.deps import get_cache, get_db_session, not_found
from workbench.infra import github_registry
from workbench.infra.logging import get_logger
from workbench.infra.redis_cache import CacheKeys, CacheTTL, RedisCache
from workbench.models import InstalledServer
from workbench.schemas.registry import InstalledServerResponse, InstallRequest, RegistryServer
from workbench.services.app_settings import get_app_settings, resolve_github_token

logger = get_logger(__name__)

router = APIRouter(tags=["registry"])


async def _registry_servers(db: AsyncSession, cache: RedisCache) -> list[dict]:
    async def load() -> list[dict]:
        token = await resolve_github_token(db)
        if not token:
            logger.warning("未配置 GitHub Token，GitHub API 限额较低")
        return await github_registry.fetch_registry_servers(token)

    return await cache.get_or_set(CacheKeys.REGISTRY_SERVERS, load, CacheTTL.VERY_LONG)


async def _installed(db: AsyncSession, server_id: str) -> InstalledServer | None:
    result = await db.execute(select(InstalledServer).where(InstalledServer.server_id == server_id))
    return result.scalar_one_or_none()


@router.get("/api/registry", response_model=list[RegistryServer])
async def list_registry(
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    servers = await _registry_servers(db, cache)
    installed = set((await db.execute(select(InstalledServer.server_id))).scalars().all())
    return [{**s, "installed": s["id"] in installed} for s in servers]


@router.post("/api/registry/refresh")
async def refresh_registry(
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
) -> dict:
    github_registry.clear_cache()
    await cache.delete(CacheKeys.REGISTRY_SERVERS)
    servers = await _registry_servers(db, cache)
    return {"success": True, "count": len(servers)}


def install_command(server: dict, installer: str) -> str | None:
    """Python 服务器用 pip，其余用首选的包管理器"""
    snippets = server.get("install_snippets") or {}
    if "python" in snippets:
        return snippets["python"]
    if installer in snippets:
        return snippets[installer]
    snippets = github_registry.install_snippets(server.get("package_name"), server.get("languages") or [])
    return snippets.get(installer) or snippets.get("python")


@router.post(
    "/api/registry/{server_id}/install",
    response_model=InstalledServerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def install_server(
    server_id: str,
    payload: InstallRequest | None = None,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    """
    记录安装

    先在注册表中查找服务器；找不到时使用请求体中的 name / package_name。
    """
    if await _installed(db, server_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "SERVER_ALREADY_INSTALLED", "detail": f"服务器已安装: {server_id}"},
        )

    server = next((s for s in await _registry_servers(db, cache) if s["id"] == server_id), None)
    if server is None:
        if not payload or not payload.name or not payload.package_name:
            raise not_found("SERVER_NOT_FOUND", f"注册表中不存在该服务器: {server_id}")
        server = {
            "name": payload.name,
            "package_name": payload.package_name,
            "languages": payload.languages or [],
            "repo_url": payload.repo_url,
        }

    installer = (await get_app_settings(db)).preferred_installer
    installed = InstalledServer(
        server_id=server_id,
        name=server["name"],
        enabled=False,
        config={
            "repo_url": server.get("repo_url"),
            "package_name": server.get("package_name"),
            "installer": installer,
            "install_command": install_command(server, installer),
            "languages": server.get("languages") or [],
        },
    )
    db.add(installed)
    await db.commit()
    await db.refresh(installed)
    await cache.delete(CacheKeys.INSTALLED_SERVERS)
    logger.info(f"记录 MCP 服务器安装: {server_id} ({installed.config['install_command']})")
    return installed


@router.post("/api/registry/{server_id}/uninstall")
async def uninstall_server(
    server_id: str,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
) -> dict:
    installed = await _installed(db, server_id)
    if not installed:
        raise not_found("SERVER_NOT_INSTALLED", f"服务器未安装: {server_id}")
    await db.delete(installed)
    await db.commit()
    await cache.delete(CacheKeys.INSTALLED_SERVERS)
    return {"success": True, "server_id": server_id}


# ==================== 已安装工具 ====================

@router.get("/api/tools", response_model=list[InstalledServerResponse])
async def list_tools(
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    async def load() -> list[dict]:
        result = await db.execute(select(InstalledServer).order_by(InstalledServer.installed_at))
        return [
            InstalledServerResponse.model_validate(s).model_dump(mode="json")
            for s in result.scalars().all()
        ]

    return await cache.get_or_set(CacheKeys.INSTALLED_SERVERS, load, CacheTTL.MEDIUM)


@router.post("/api/tools/{server_id}/toggle", response_model=InstalledServerResponse)
async def toggle_tool(
    server_id: str,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    installed = await _installed(db, server_id)
    if not installed:
        raise not_found("SERVER_NOT_INSTALLED", f"服务器未安装: {server_id}")
    installed.enabled = not installed.enabled
    await db.commit()
    await db.refresh(installed)
    await cache.delete(CacheKeys.INSTALLED_SERVERS)
    return installed
