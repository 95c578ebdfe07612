"""
数据模型层 (ORM Models)

数据模型关系图：
    Chat (对话)
       └── Message (消息)
              └── Attachment (附件)

    ProviderConfig   提供商配置（API Key 加密存储）
    ModelOverride    模型能力覆盖
    Dataset          数据集
    InstalledServer  已安装的 MCP 工具服务器
    AppSettings      应用设置（单行）
    Feedback         用户反馈
"""

from workbench.models.app_settings import AppSettings
from workbench.models.chat import Attachment, Chat, Message
from workbench.models.dataset import Dataset
from workbench.models.feedback import Feedback
from workbench.models.installed_server import InstalledServer
from workbench.models.model_override import ModelOverride
from workbench.models.provider_config import ProviderConfig

__all__ = [
    "AppSettings",
    "Attachment",
    "Chat",
    "Dataset",
    "Feedback",
    "InstalledServer",
    "Message",
    "ModelOverride",
    "ProviderConfig",
]
