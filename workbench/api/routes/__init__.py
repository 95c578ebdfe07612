"""
API 路由汇总

将所有子路由注册到主路由器，统一对外暴露。

路由模块说明：
- health.py    : 健康检查（/healthz、/api/health、/api/health/metrics）
- chats.py     : 对话与消息持久化
- inference.py : 对话/补全/Embedding/Responses/图像生成/语音转写
- providers.py : 提供商状态、配置和模型列表
- models.py    : 模型能力覆盖、加载检查
- datasets.py  : 数据集上传、预览、向量化
- registry.py  : MCP 注册表与已安装工具服务器
- settings.py  : 应用设置
- feedback.py  : 用户反馈
- devtools.py  : 终端与 Notebook
"""

from fastapi import APIRouter

from workbench.api.routes import (
    chats,
    datasets,
    devtools,
    feedback,
    health,
    inference,
    models,
    providers,
    registry,
    settings,
)

# 主路由器，包含所有 API 端点
api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(chats.router)
api_router.include_router(inference.router)
api_router.include_router(providers.router)
api_router.include_router(models.router)
api_router.include_router(datasets.router)
api_router.include_router(registry.router)
api_router.include_router(settings.router)
api_router.include_router(feedback.router)
api_router.include_router(devtools.router)
