"""
用户反馈路由

端点：
- POST   /api/feedback       提交反馈
- GET    /api/feedback       反馈列表（过滤、分页、统计，缓存 SHORT）
- PATCH  /api/feedback/{id}  更新状态/是否解决/备注
- DELETE /api/feedback/{id}  删除反馈
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from workbench.api.deps import get_cache, get_db_session, not_found
from workbench.infra.logging import get_logger
from workbench.infra.redis_cache import CacheKeys, CacheTTL, RedisCache
from workbench.models import Feedback
from workbench.models.mixins import utcnow
from workbench.schemas.feedback import (
    FeedbackCreate,
    FeedbackListResponse,
    FeedbackResponse,
    FeedbackStats,
    FeedbackStatus,
    FeedbackType,
    FeedbackUpdate,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/feedback", tags=["feedback"])


@router.post("", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    payload: FeedbackCreate,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    feedback = Feedback(**payload.model_dump())
    db.add(feedback)
    await db.commit()
    await db.refresh(feedback)
    await cache.invalidate_feedback()
    logger.info(f"收到反馈: {feedback.id} ({feedback.feedback_type})")
    return feedback


async def _stats(db: AsyncSession) -> FeedbackStats:
    """全量统计（不受过滤条件影响）"""
    row = (
        await db.execute(
            select(
                func.count(),
                func.sum(case((Feedback.status == "new", 1), else_=0)),
                func.sum(case((Feedback.resolved.is_(True), 1), else_=0)),
                func.avg(Feedback.rating),
            ).select_from(Feedback)
        )
    ).one()
    total, new, resolved, avg_rating = row
    return FeedbackStats(
        total=total or 0,
        new=new or 0,
        resolved=resolved or 0,
        average_rating=round(float(avg_rating), 2) if avg_rating is not None else None,
    )


@router.get("", response_model=FeedbackListResponse)
async def list_feedback(
    status_filter: FeedbackStatus | None = Query(None, alias="status"),
    feedback_type: FeedbackType | None = Query(None, alias="type"),
    resolved: bool | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    """按创建时间倒序"""
    conditions = []
    if status_filter:
        conditions.append(Feedback.status == status_filter)
    if feedback_type:
        conditions.append(Feedback.feedback_type == feedback_type)
    if resolved is not None:
        conditions.append(Feedback.resolved.is_(resolved))
    where = and_(*conditions) if conditions else None

    async def load() -> dict:
        stmt = select(Feedback).order_by(Feedback.created_at.desc()).offset(offset).limit(limit)
        count_stmt = select(func.count()).select_from(Feedback)
        if where is not None:
            stmt = stmt.where(where)
            count_stmt = count_stmt.where(where)

        items = (await db.execute(stmt)).scalars().all()
        total = (await db.execute(count_stmt)).scalar() or 0
        return FeedbackListResponse(
            items=[FeedbackResponse.model_validate(f) for f in items],
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
            stats=await _stats(db),
        ).model_dump(mode="json")

    key = RedisCache.make_key(
        CacheKeys.FEEDBACK_LIST,
        status=status_filter,
        type=feedback_type,
        resolved=resolved,
        limit=limit,
        offset=offset,
    )
    return await cache.get_or_set(key, load, CacheTTL.SHORT)


async def _get_feedback(db: AsyncSession, feedback_id: str) -> Feedback:
    feedback = await db.get(Feedback, feedback_id)
    if not feedback:
        raise not_found("FEEDBACK_NOT_FOUND", "反馈不存在")
    return feedback


@router.patch("/{feedback_id}", response_model=FeedbackResponse)
async def update_feedback(
    feedback_id: str,
    payload: FeedbackUpdate,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
):
    """resolved_at 只在第一次标记为已解决时写入"""
    feedback = await _get_feedback(db, feedback_id)
    if payload.status is not None:
        feedback.status = payload.status
    if payload.resolved is not None:
        feedback.resolved = payload.resolved
        if payload.resolved and feedback.resolved_at is None:
            feedback.resolved_at = utcnow()
    if payload.notes is not None:
        feedback.notes = payload.notes

    await db.commit()
    await db.refresh(feedback)
    await cache.invalidate_feedback()
    return feedback


@router.delete("/{feedback_id}")
async def delete_feedback(
    feedback_id: str,
    db: AsyncSession = Depends(get_db_session),
    cache: RedisCache = Depends(get_cache),
) -> dict:
    feedback = await _get_feedback(db, feedback_id)
    await db.delete(feedback)
    await db.commit()
    await cache.invalidate_feedback()
    return {"success": True}
