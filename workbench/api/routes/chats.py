"""
对话管理路由

提供聊天历史的 CRUD 操作，用于前端对话持久化。

端点：
- GET    /api/chats                 对话列表（含消息数和最后一条消息摘要）
- POST   /api/chats                 创建对话
- GET    /api/chats/{id}            对话详情（含消息和附件）
- PATCH  /api/chats/{id}            更新对话
- DELETE /api/chats/{id}            删除对话（级联删除消息和附件）
- GET    /api/chats/{id}/messages   消息列表
- POST   /api/chats/{id}/messages   添加消息（可带附件）
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from workbench.api.deps import get_cache, get_db_session, not_found
from workbench.infra.redis_cache import CacheKeys, CacheTTL, RedisCache
from workbench.models import Attachment, Chat, Message
from workbench.models.mixins import utcnow
from workbench.schemas.chat import (
    ChatCreate,
    ChatDetailResponse,
    ChatListResponse,
    ChatResponse,
    ChatUpdate,
    MessageCreate,
    MessageResponse,
)

router = APIRouter(prefix="/api/chats", tags=["chats"])

DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 50
SNIPPET_LENGTH = 100


async def _get_chat(db: AsyncSession, chat_id: str, with_messages: bool = False) -> Chat:
    stmt = select(Chat).where(Chat.id == chat_id)
    if with_messages:
        stmt = stmt.options(selectinload(Chat.messages).selectinload(Message.attachments))
    chat = (await db.execute(stmt)).scalar_one_or_none()
    if not chat:
        raise not_found("CHAT_NOT_FOUND", "对话不存在")
    return chat


async def _chat_summary(db: AsyncSession, chat: Chat) -> ChatResponse:
    """对话响应：消息数量 + 最后一条消息前 100 个字符"""
    msg_count = (
        await db.execute(select(func.count()).select_from(Message).where(Message.chat_id == chat.id))
    ).scalar() or 0
    last_content = (
        await db.execute(
            select(Message.content)
            .where(Message.chat_id == chat.id)
            .order_by(Message.created_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    response = ChatResponse.model_validate(chat)
    response.message_count = msg_count
    response.last_message = last_content[:SNIPPET_LENGTH] if last_content else None
    return response


# ==================== 对话 CRUD ====================

@router.get("", response_model=ChatListResponse)
async def list_chats(
    limit: int = Query(50, ge=1, le=200, description="每页数量"),
    offset: int = Query(0, ge=0, description="偏移量"),
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    """按更新时间倒序排列"""

    async def load() -> dict:
        total = (await db.execute(select(func.count()).select_from(Chat))).scalar() or 0
        result = await db.execute(
            select(Chat).order_by(Chat.updated_at.desc()).offset(offset).limit(limit)
        )
        items = [await _chat_summary(db, chat) for chat in result.scalars().all()]
        return ChatListResponse(
            items=items, total=total, limit=limit, offset=offset
        ).model_dump(mode="json")

    key = RedisCache.make_key(CacheKeys.CHATS_LIST, limit=limit, offset=offset)
    return await cache.get_or_set(key, load, CacheTTL.SHORT)


@router.post("", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
async def create_chat(
    payload: ChatCreate,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    chat = Chat(
        title=payload.title or DEFAULT_TITLE,
        system_prompt=payload.system_prompt,
        default_provider=payload.default_provider or "ollama",
        default_model_id=payload.default_model_id,
        tool_server_ids=payload.tool_server_ids or [],
        meta=payload.meta,
    )
    db.add(chat)
    await db.commit()
    await db.refresh(chat)
    await cache.invalidate_chats()
    return ChatResponse.model_validate(chat)


@router.get("/{chat_id}", response_model=ChatDetailResponse)
async def get_chat(chat_id: str, db: AsyncSession = Depends(get_db_session)):
    """返回对话信息和全部消息（按创建时间排序）"""
    chat = await _get_chat(db, chat_id, with_messages=True)
    summary = await _chat_summary(db, chat)
    return ChatDetailResponse(
        **summary.model_dump(),
        messages=[MessageResponse.model_validate(m) for m in chat.messages],
    )


@router.patch("/{chat_id}", response_model=ChatResponse)
async def update_chat(
    chat_id: str,
    payload: ChatUpdate,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    """只更新请求中出现的字段"""
    chat = await _get_chat(db, chat_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in ("title", "default_provider") and value is None:
            continue
        setattr(chat, field, value)

    await db.commit()
    await db.refresh(chat)
    await cache.invalidate_chats()
    return await _chat_summary(db, chat)


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(
    chat_id: str,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    """同时删除所有关联的消息和附件"""
    chat = await _get_chat(db, chat_id, with_messages=True)
    await db.delete(chat)
    await db.commit()
    await cache.invalidate_chats()


# ==================== 消息管理 ====================

@router.get("/{chat_id}/messages", response_model=list[MessageResponse])
async def list_messages(chat_id: str, db: AsyncSession = Depends(get_db_session)):
    await _get_chat(db, chat_id)
    result = await db.execute(
        select(Message)
        .options(selectinload(Message.attachments))
        .where(Message.chat_id == chat_id)
        .order_by(Message.created_at)
    )
    return [MessageResponse.model_validate(m) for m in result.scalars().all()]


@router.post(
    "/{chat_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_message(
    chat_id: str,
    payload: MessageCreate,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    """
    添加消息到对话

    对话仍是默认标题时，第一条用户消息的前 50 个字符作为标题。
    """
    chat = await _get_chat(db, chat_id)

    message = Message(
        chat_id=chat_id,
        **payload.model_dump(exclude={"attachments"}),
        attachments=[Attachment(**a.model_dump()) for a in payload.attachments],
    )
    db.add(message)

    if payload.role == "user" and chat.title == DEFAULT_TITLE:
        previous_user_messages = (
            await db.execute(
                select(func.count())
                .select_from(Message)
                .where(Message.chat_id == chat_id, Message.role == "user")
            )
        ).scalar() or 0
        # 上面的查询会 autoflush 新消息，所以第一条用户消息时计数为 1
        content = payload.content.strip()
        if previous_user_messages <= 1 and content:
            chat.title = content[:TITLE_MAX_LENGTH] + ("..." if len(content) > TITLE_MAX_LENGTH else "")
    chat.updated_at = utcnow()

    await db.commit()
    await cache.invalidate_chats()

    result = await db.execute(
        select(Message).options(selectinload(Message.attachments)).where(Message.id == message.id)
    )
    return MessageResponse.model_validate(result.scalar_one())
