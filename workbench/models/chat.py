"""
对话模型 (Chat / Message / Attachment)

数据关系：
    Chat (对话)
       └── Message (消息)
              └── Attachment (附件)

删除对话时级联删除消息，删除消息时级联删除附件。
"""

from sqlalchemy import ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workbench.db.base import Base
from workbench.models.mixins import UUID_PK, CreatedAtMixin, TimestampMixin


class Chat(TimestampMixin, Base):
    """
    对话表

    字段说明：
    - title: 对话标题（首条用户消息自动生成）
    - system_prompt: 系统提示词
    - default_provider / default_model_id: 新消息默认使用的模型
    - tool_server_ids: 启用的 MCP 工具服务器 ID 列表
    - meta: 前端自定义元数据（避免使用 metadata 保留字）
    """
    __tablename__ = "chats"

    id: Mapped[UUID_PK]
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="New Chat")
    system_prompt: Mapped[str | None] = mapped_column(Text)
    default_provider: Mapped[str] = mapped_column(String(50), nullable=False, default="ollama")
    default_model_id: Mapped[str | None] = mapped_column(String(255))
    tool_server_ids: Mapped[list | None] = mapped_column(JSON, default=list)
    meta: Mapped[dict | None] = mapped_column(JSON)

    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )


class Message(CreatedAtMixin, Base):
    """
    消息表

    字段说明：
    - role: user / assistant / tool / system
    - reasoning: 推理模型输出的思考过程
    - tool_calls / tool_results: 工具调用及结果（JSON）
    - tokens_in / tokens_out: 提供商返回的 token 用量
    """
    __tablename__ = "messages"

    id: Mapped[UUID_PK]
    chat_id: Mapped[str] = mapped_column(
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    reasoning: Mapped[str | None] = mapped_column(Text)
    provider: Mapped[str | None] = mapped_column(String(50))
    model_id: Mapped[str | None] = mapped_column(String(255))
    tool_calls: Mapped[list | None] = mapped_column(JSON)
    tool_results: Mapped[list | None] = mapped_column(JSON)
    tokens_in: Mapped[int | None] = mapped_column(Integer)
    tokens_out: Mapped[int | None] = mapped_column(Integer)

    chat: Mapped["Chat"] = relationship("Chat", back_populates="messages")
    attachments: Mapped[list["Attachment"]] = relationship(
        "Attachment",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="Attachment.created_at",
    )


class Attachment(CreatedAtMixin, Base):
    """消息附件（文件本身存放在外部，这里只记录 URL 和元信息）"""
    __tablename__ = "attachments"

    id: Mapped[UUID_PK]
    message_id: Mapped[str] = mapped_column(
        ForeignKey("messages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)

    message: Mapped["Message"] = relationship("Message", back_populates="attachments")
