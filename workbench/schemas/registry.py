"""
MCP 注册表与已安装服务器的模型
"""

from datetime import datetime

from pydantic import BaseModel, Field


class RegistryServer(BaseModel):
    id: str
    name: str
    description: str
    homepage: str | None = None
    repo_url: str
    languages: list[str] = Field(default_factory=list)
    package_name: str | None = None
    install_snippets: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    source: str
    installed: bool = False


class InstallRequest(BaseModel):
    """
    安装请求

    服务器不在当前注册表中时（如手动添加），需要提供 name 和 package_name。
    """
    name: str | None = Field(default=None, max_length=255)
    package_name: str | None = Field(default=None, max_length=255)
    languages: list[str] | None = None
    repo_url: str | None = None


class InstalledServerResponse(BaseModel):
    id: str
    server_id: str
    name: str
    enabled: bool
    config: dict | None = None
    installed_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
