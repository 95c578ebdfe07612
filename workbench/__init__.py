"""
MCP Workbench - 后端主包

统一多模型提供商对话、数据集管理、MCP 工具服务器安装和开发辅助工具的服务端。

子模块：
- api/        : API 路由和依赖注入
- db/         : 数据库连接和会话管理
- models/     : SQLAlchemy ORM 数据模型
- schemas/    : Pydantic 请求/响应模式
- services/   : 业务逻辑服务层
- infra/      : 基础设施（提供商注册表、请求规范化、缓存、日志）
- middleware/ : 请求追踪中间件

项目架构遵循分层设计：
    API层 → 服务层 → 数据访问层 → 基础设施层
"""

__version__ = "0.1.0"
