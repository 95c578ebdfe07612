"""
MCP 注册表与已安装工具接口测试

注册表抓取被替换为固定列表，不访问网络。
"""

from unittest.mock import AsyncMock, patch

import pytest

from workbench.api.routes.registry import install_command
from workbench.infra import github_registry

SERVERS = [
    {
        "id": "servers-repo-filesystem",
        "name": "Filesystem",
        "description": "Secure file operations",
        "homepage": None,
        "repo_url": "https://github.com/modelcontextprotocol/servers",
        "languages": ["TypeScript"],
        "package_name": "@modelcontextprotocol/servers",
        "install_snippets": github_registry.install_snippets("@modelcontextprotocol/servers", ["TypeScript"]),
        "tags": ["official"],
        "source": "servers-repo",
    },
    {
        "id": "mcp-org-pydb",
        "name": "PyDB",
        "description": "Query databases",
        "homepage": None,
        "repo_url": "https://github.com/acme/python-db",
        "languages": ["Python"],
        "package_name": "@acme/python-db",
        "install_snippets": {"python": "pip install @acme/python-db"},
        "tags": [],
        "source": "mcp-org",
    },
]


@pytest.fixture
def fetch_servers():
    with patch.object(github_registry, "fetch_registry_servers", AsyncMock(return_value=SERVERS)) as mock:
        yield mock


@pytest.mark.asyncio
async def test_list_registry_marks_installed(client, fetch_servers):
    await client.post("/api/registry/mcp-org-pydb/install")

    servers = (await client.get("/api/registry")).json()

    installed = {s["id"]: s["installed"] for s in servers}
    assert installed == {"servers-repo-filesystem": False, "mcp-org-pydb": True}


@pytest.mark.asyncio
async def test_github_token_from_settings(client, fetch_servers):
    await client.patch("/api/settings", json={"github_token": "ghp_db"})

    await client.get("/api/registry")

    fetch_servers.assert_awaited_once_with("ghp_db")


@pytest.mark.asyncio
async def test_install_uses_preferred_installer(client, fetch_servers):
    await client.patch("/api/settings", json={"preferred_installer": "bun"})

    resp = await client.post("/api/registry/servers-repo-filesystem/install")

    assert resp.status_code == 201
    body = resp.json()
    assert body["enabled"] is False
    assert body["config"]["installer"] == "bun"
    assert body["config"]["install_command"] == "bun add -g @modelcontextprotocol/servers"


@pytest.mark.asyncio
async def test_install_twice_conflicts(client, fetch_servers):
    await client.post("/api/registry/mcp-org-pydb/install")

    resp = await client.post("/api/registry/mcp-org-pydb/install")

    assert resp.status_code == 409
    assert resp.json()["code"] == "SERVER_ALREADY_INSTALLED"


@pytest.mark.asyncio
async def test_install_unknown_server(client, fetch_servers):
    resp = await client.post("/api/registry/nope/install")
    assert resp.status_code == 404
    assert resp.json()["code"] == "SERVER_NOT_FOUND"

    resp = await client.post(
        "/api/registry/custom-1/install",
        json={"name": "Custom", "package_name": "custom-mcp", "languages": ["TypeScript"]},
    )
    assert resp.status_code == 201
    assert resp.json()["config"]["install_command"] == "npm install -g custom-mcp"


@pytest.mark.asyncio
async def test_toggle_and_uninstall(client, fetch_servers):
    await client.post("/api/registry/mcp-org-pydb/install")

    toggled = (await client.post("/api/tools/mcp-org-pydb/toggle")).json()
    assert toggled["enabled"] is True

    tools = (await client.get("/api/tools")).json()
    assert [t["server_id"] for t in tools] == ["mcp-org-pydb"]

    assert (await client.post("/api/registry/mcp-org-pydb/uninstall")).json() == {
        "success": True,
        "server_id": "mcp-org-pydb",
    }
    resp = await client.post("/api/tools/mcp-org-pydb/toggle")
    assert resp.status_code == 404
    assert resp.json()["code"] == "SERVER_NOT_INSTALLED"


@pytest.mark.asyncio
async def test_refresh_clears_cache(client, fetch_servers):
    body = (await client.post("/api/registry/refresh")).json()
    assert body == {"success": True, "count": 2}


def test_install_command_python_always_pip():
    assert install_command(SERVERS[1], "pnpm") == "pip install @acme/python-db"
    assert install_command(SERVERS[0], "pnpm") == "pnpm add -g @modelcontextprotocol/servers"
