"""
MCP 服务器注册表抓取

数据来源（按顺序合并，按仓库 URL 去重）：
1. 官方 modelcontextprotocol/servers 的 README
2. 社区维护的 awesome-mcp-servers README
3. GitHub 仓库搜索

每个 URL 的响应带 ETag 缓存 1 小时；请求失败时返回过期的缓存数据。
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

OFFICIAL_README_URL = "https://raw.githubusercontent.com/modelcontextprotocol/servers/main/README.md"
AWESOME_README_URL = "https://raw.githubusercontent.com/punkpeye/awesome-mcp-servers/main/README.md"
GITHUB_SEARCH_URL = "https://api.github.com/search/repositories"
SEARCH_QUERIES = (
    "mcp-server in:name,description,topics",
    "model-context-protocol in:topics",
)

CACHE_DURATION = 60 * 60  # 1 小时
REQUEST_TIMEOUT = 30.0

OFFICIAL_BADGE = "🎖️"

# 行格式：**[Name](url)** - Description（也兼容 en dash）
_SERVER_RE = re.compile(r"\*\*\[([^\]]+)\]\(([^)]+)\)\*\*\s*[-–]\s*(.+?)$")
_CATEGORY_RE = re.compile(r"^##\s+(.+)$")
_GITHUB_REPO_RE = re.compile(r"github\.com/([^/]+)/([^/?#]+)")


@dataclass
class _CacheEntry:
    data: Any
    etag: str | None
    timestamp: float


_cache: dict[str, _CacheEntry] = {}


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=REQUEST_TIMEOUT, follow_redirects=True)


def clear_cache() -> None:
    _cache.clear()
    logger.info("MCP 注册表缓存已清空")


def validate_url(url: str) -> str | None:
    """只接受 http(s) 且带主机名的 URL"""
    trimmed = (url or "").strip()
    parsed = urlparse(trimmed)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return trimmed


async def _fetch_cached(url: str, token: str | None, *, as_json: bool) -> Any:
    """
    带 ETag 的 GET 请求

    - 304 → 返回缓存
    - 失败 → 有缓存返回过期缓存，否则抛出异常
    """
    cached = _cache.get(url)
    headers: dict[str, str] = {}
    # raw.githubusercontent.com 不需要 API 头
    if "raw.githubusercontent.com" not in url:
        headers["Accept"] = "application/vnd.github.v3+json"
        if token:
            headers["Authorization"] = f"Bearer {token}"
    if cached and cached.etag and time.time() - cached.timestamp < CACHE_DURATION:
        headers["If-None-Match"] = cached.etag

    try:
        async with _http_client() as client:
            response = await client.get(url, headers=headers)
        if response.status_code == 304 and cached:
            logger.debug(f"使用缓存: {url}")
            return cached.data
        response.raise_for_status()
        data = response.json() if as_json else response.text
    except (httpx.HTTPError, ValueError) as e:
        if cached:
            logger.warning(f"请求失败，返回过期缓存: {url} ({e})")
            return cached.data
        raise

    _cache[url] = _CacheEntry(data=data, etag=response.headers.get("ETag"), timestamp=time.time())
    return data


def _detect_languages(line: str, repo_url: str) -> list[str]:
    languages = []
    if "🐍" in line or "python" in repo_url:
        languages.append("Python")
    if "📇" in line or "typescript" in repo_url or "javascript" in repo_url:
        languages.append("TypeScript")
    if "🏎️" in line or "golang" in repo_url or "/go" in repo_url:
        languages.append("Go")
    if "☕" in line:
        languages.append("Java")
    if "🦀" in line or "rust" in repo_url:
        languages.append("Rust")
    if not languages and "github.com" in repo_url:
        languages.append("TypeScript")
    return languages


def install_snippets(package_name: str | None, languages: list[str], repo_url: str = "") -> dict[str, str]:
    """按语言生成安装命令：Python 用 pip，其余用 npm / pnpm / bun"""
    if "Python" in languages:
        return {"python": f"pip install {package_name}" if package_name else f"# Clone and install from {repo_url}"}
    if not package_name:
        return {}
    return {
        "npm": f"npm install -g {package_name}",
        "pnpm": f"pnpm add -g {package_name}",
        "bun": f"bun add -g {package_name}",
    }


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower())


def _clean_category(raw: str) -> str:
    return re.sub(r"[^\w\s-]", "", raw).strip()


def parse_readme_servers(readme: str, source: str) -> list[dict]:
    """
    解析 README 中的服务器列表

    Args:
        readme: Markdown 文本
        source: servers-repo（官方）/ mcp-org（社区）

    Returns:
        list[dict]: 注册表条目
    """
    servers = []
    category = "General"

    for line in readme.splitlines():
        category_match = _CATEGORY_RE.match(line)
        if category_match:
            category = _clean_category(category_match.group(1))
            continue

        match = _SERVER_RE.search(line)
        if not match:
            continue
        name, raw_url, description = match.groups()
        repo_url = validate_url(raw_url)
        if not repo_url:
            logger.warning(f"跳过无效 URL 的服务器 {name!r}: {raw_url!r}")
            continue

        tags = []
        if category and category != "General":
            tags.append(re.sub(r"\s+", "-", category.lower()))
        if OFFICIAL_BADGE in line:
            tags.append("official")

        languages = _detect_languages(line, repo_url)
        repo_match = _GITHUB_REPO_RE.search(repo_url)
        package_name = f"@{repo_match.group(1)}/{repo_match.group(2)}" if repo_match else None

        servers.append({
            "id": f"{source}-{_slug(name)}",
            "name": name,
            "description": description.strip(),
            "homepage": None,
            "repo_url": repo_url,
            "languages": languages,
            "package_name": package_name,
            "install_snippets": install_snippets(package_name, languages, repo_url),
            "tags": tags,
            "source": source,
        })
    return servers


def _repo_to_server(repo: dict) -> dict:
    language = repo.get("language")
    package_name = f"@{repo['owner']['login']}/{repo['name']}"
    if language == "Python":
        snippets = install_snippets(package_name, ["Python"])
    elif language in ("TypeScript", "JavaScript"):
        snippets = install_snippets(package_name, ["TypeScript"])
    else:
        snippets = {}
    return {
        "id": f"github-{repo['id']}",
        "name": repo["name"].replace("-", " ").title(),
        "description": repo.get("description") or "No description available",
        "homepage": validate_url(repo["homepage"]) if repo.get("homepage") else None,
        "repo_url": repo["html_url"],
        "languages": [language] if language else [],
        "package_name": package_name,
        "install_snippets": snippets,
        "tags": list(repo.get("topics") or []),
        "source": "mcp-org",
    }


async def search_github(token: str | None = None) -> list[dict]:
    """GitHub 仓库搜索，单个查询失败不影响其他查询"""
    servers = []
    seen: set[str] = set()
    for query in SEARCH_QUERIES:
        url = str(httpx.URL(GITHUB_SEARCH_URL, params={"q": query, "sort": "stars", "per_page": 30}))
        try:
            data = await _fetch_cached(url, token, as_json=True)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"GitHub 搜索失败 ({query}): {e}")
            continue
        for repo in data.get("items") or []:
            if repo["html_url"] in seen:
                continue
            seen.add(repo["html_url"])
            servers.append(_repo_to_server(repo))
    return servers


async def _fetch_readme(url: str, token: str | None) -> str | None:
    try:
        return await _fetch_cached(url, token, as_json=False)
    except httpx.HTTPError as e:
        logger.warning(f"获取 README 失败: {url} ({e})")
        return None


def _merge(target: list[dict], extra: list[dict]) -> int:
    existing = {s["repo_url"] for s in target}
    added = [s for s in extra if s["repo_url"] not in existing]
    target.extend(added)
    return len(added)


async def fetch_registry_servers(token: str | None = None) -> list[dict]:
    """汇总三个来源的 MCP 服务器列表"""
    servers: list[dict] = []

    official = await _fetch_readme(OFFICIAL_README_URL, token)
    if official:
        servers.extend(parse_readme_servers(official, "servers-repo"))

    community = await _fetch_readme(AWESOME_README_URL, token)
    if community:
        added = _merge(servers, parse_readme_servers(community, "mcp-org"))
        logger.info(f"社区列表新增 {added} 个服务器")

    added = _merge(servers, await search_github(token))
    logger.info(f"GitHub 搜索新增 {added} 个服务器，共 {len(servers)} 个")
    return servers
