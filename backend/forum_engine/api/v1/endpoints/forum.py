"""
Forum API Endpoints.

Thin adapter over ForumService: parses parameters, checks capabilities and
turns absent results into 404s. Forum errors are mapped to status codes by
the handlers registered in main.py.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from forum_engine.core.config import settings
from forum_engine.core.database import get_db
from forum_engine.core.exceptions import ForumError
from forum_engine.modules.forum.permissions import Action, require
from forum_engine.modules.forum.schemas import (
    CategoryRead,
    CategoryWithStats,
    ForumStats,
    Page,
    ReplyRead,
    ReplyWithDetails,
    TopicRead,
    TopicWithDetails,
    UserInfo,
)
from forum_engine.modules.forum.service import ForumService

router = APIRouter()


# ==================== Schemas ====================


class CreateCategoryRequest(BaseModel):
    """Create new category."""

    name: str
    description: str = ""
    color: str
    icon: str | None = None


class UpdateCategoryRequest(BaseModel):
    """Update category display fields."""

    name: str | None = None
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    sort_order: int | None = None


class CreateTopicRequest(BaseModel):
    """Create new topic."""

    category_id: UUID
    title: str
    content: str


class UpdateTopicRequest(BaseModel):
    """Update topic title or moderation flags."""

    title: str | None = None
    is_pinned: bool | None = None
    is_locked: bool | None = None


class CreateReplyRequest(BaseModel):
    """Create new reply."""

    content: str
    reply_to_id: UUID | None = None


class UpdateReplyRequest(BaseModel):
    """Replace reply content."""

    content: str


# ==================== Helpers ====================


def get_forum(db: AsyncSession = Depends(get_db)) -> ForumService:
    return ForumService(db)


async def _acting_user(forum: ForumService, user_id: UUID) -> UserInfo:
    user = await forum.get_user_info(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


async def _check_reply_owner(
    forum: ForumService, reply_id: UUID, user: UserInfo, action: Action
) -> None:
    """Allow authors on their own replies, everyone else needs the capability."""
    reply = await forum.get_reply(reply_id)
    if not reply:
        raise HTTPException(status_code=404, detail="Reply not found")
    if reply.user_id != user.id:
        require(user.role, action)


# ==================== Categories ====================


@router.get("/categories", response_model=list[CategoryWithStats])
async def list_categories(
    forum: ForumService = Depends(get_forum),
) -> list[CategoryWithStats]:
    """Get all categories with their latest topic."""
    return await forum.list_categories()


@router.get("/categories/{category_id}", response_model=CategoryRead)
async def get_category(
    category_id: UUID,
    forum: ForumService = Depends(get_forum),
) -> CategoryRead:
    """Get category details."""
    category = await forum.get_category(category_id)
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return CategoryRead.model_validate(category)


@router.post("/categories", response_model=CategoryRead, status_code=201)
async def create_category(
    request: CreateCategoryRequest,
    user_id: UUID = Query(..., description="Acting user ID"),
    forum: ForumService = Depends(get_forum),
) -> CategoryRead:
    """Create new category (admins only)."""
    user = await _acting_user(forum, user_id)
    require(user.role, Action.MANAGE_CATEGORIES)

    category = await forum.create_category(
        name=request.name,
        description=request.description,
        color=request.color,
        icon=request.icon,
    )
    return CategoryRead.model_validate(category)


@router.patch("/categories/{category_id}", response_model=CategoryRead)
async def update_category(
    category_id: UUID,
    request: UpdateCategoryRequest,
    user_id: UUID = Query(..., description="Acting user ID"),
    forum: ForumService = Depends(get_forum),
) -> CategoryRead:
    """Update category (admins only)."""
    user = await _acting_user(forum, user_id)
    require(user.role, Action.MANAGE_CATEGORIES)

    category = await forum.update_category(
        category_id, **request.model_dump(exclude_unset=True)
    )
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")
    return CategoryRead.model_validate(category)


# ==================== Topics ====================


@router.get("/topics", response_model=Page[TopicWithDetails])
async def list_topics(
    category: UUID | None = Query(None, description="Category ID"),
    page: int = Query(1, ge=1),
    limit: int = Query(
        settings.forum_topics_per_page, ge=1, le=settings.forum_max_page_size
    ),
    forum: ForumService = Depends(get_forum),
) -> Page[TopicWithDetails]:
    """Get ranked topics, one page at a time."""
    return await forum.topics_page(category_id=category, page=page, limit=limit)


@router.get("/topics/{slug}", response_model=TopicWithDetails)
async def get_topic(
    slug: str,
    request: Request,
    user_id: UUID | None = Query(None, description="Viewer user ID"),
    forum: ForumService = Depends(get_forum),
) -> TopicWithDetails:
    """Get topic details and record the view."""
    topic = await forum.get_topic_by_slug(slug)
    if not topic:
        raise HTTPException(status_code=404, detail="Topic not found")

    # A failed view record must not fail the page
    ip = request.client.host if request.client else ""
    try:
        await forum.record_view(topic.id, user_id, ip)
    except ForumError as e:
        logger.warning(f"View of topic {topic.id} not recorded: {e}")

    return topic


@router.post("/topics", response_model=TopicRead, status_code=201)
async def create_topic(
    request: CreateTopicRequest,
    user_id: UUID = Query(..., description="Author user ID"),
    forum: ForumService = Depends(get_forum),
) -> TopicRead:
    """Create new topic with its opening post."""
    user = await _acting_user(forum, user_id)
    require(user.role, Action.CREATE_TOPIC)

    topic = await forum.create_topic(
        category_id=request.category_id,
        title=request.title,
        content=request.content,
        author_id=user.id,
    )
    if not topic:
        raise HTTPException(status_code=404, detail="Category not found")
    return TopicRead.model_validate(topic)


@router.patch("/topics/{topic_id}", response_model=TopicRead)
async def update_topic(
    topic_id: UUID,
    request: UpdateTopicRequest,
    user_id: UUID = Query(..., description="Acting user ID"),
    forum: ForumService = Depends(get_forum),
) -> TopicRead:
    """Rename, pin or lock a topic (moderators only)."""
    user = await _acting_user(forum, user_id)
    require(user.role, Action.MODERATE_TOPIC)

    topic = await forum.update_topic(topic_id, **request.model_dump(exclude_unset=True))
    if not topic:
        raise HTTPException(status_code=404, detail="Topic not found")
    return TopicRead.model_validate(topic)


# ==================== Replies ====================


@router.get("/topics/{topic_id}/replies", response_model=Page[ReplyWithDetails])
async def list_replies(
    topic_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(
        settings.forum_posts_per_page, ge=1, le=settings.forum_max_page_size
    ),
    forum: ForumService = Depends(get_forum),
) -> Page[ReplyWithDetails]:
    """Get replies in topic, oldest first."""
    return await forum.replies_page(topic_id, page=page, limit=limit)


@router.post("/topics/{topic_id}/replies", response_model=ReplyRead, status_code=201)
async def create_reply(
    topic_id: UUID,
    request: CreateReplyRequest,
    user_id: UUID = Query(..., description="Author user ID"),
    forum: ForumService = Depends(get_forum),
) -> ReplyRead:
    """Create new reply in topic."""
    user = await _acting_user(forum, user_id)
    require(user.role, Action.CREATE_REPLY)

    reply = await forum.create_reply(
        topic_id=topic_id,
        content=request.content,
        reply_to_id=request.reply_to_id,
        author_id=user.id,
    )
    if not reply:
        raise HTTPException(status_code=404, detail="Topic not found")
    return ReplyRead.model_validate(reply)


@router.post("/replies/{reply_id}/solution", response_model=ReplyRead)
async def mark_solution(
    reply_id: UUID,
    user_id: UUID = Query(..., description="Acting user ID"),
    forum: ForumService = Depends(get_forum),
) -> ReplyRead:
    """Mark reply as the topic's solution (topic author or moderators)."""
    user = await _acting_user(forum, user_id)

    reply = await forum.get_reply(reply_id)
    if not reply:
        raise HTTPException(status_code=404, detail="Reply not found")

    topic = await forum.get_topic(reply.topic_id)
    if not topic or topic.user_id != user.id:
        require(user.role, Action.MARK_SOLUTION)

    reply = await forum.mark_solution(reply_id)
    if not reply:
        raise HTTPException(status_code=404, detail="Reply not found")
    return ReplyRead.model_validate(reply)


@router.patch("/replies/{reply_id}", response_model=ReplyRead)
async def update_reply(
    reply_id: UUID,
    request: UpdateReplyRequest,
    user_id: UUID = Query(..., description="Acting user ID"),
    forum: ForumService = Depends(get_forum),
) -> ReplyRead:
    """Edit reply content (author or moderators)."""
    user = await _acting_user(forum, user_id)
    await _check_reply_owner(forum, reply_id, user, Action.MODERATE_REPLY)

    reply = await forum.update_reply(reply_id, request.content)
    if not reply:
        raise HTTPException(status_code=404, detail="Reply not found")
    return ReplyRead.model_validate(reply)


@router.delete("/replies/{reply_id}", status_code=204, response_class=Response)
async def delete_reply(
    reply_id: UUID,
    user_id: UUID = Query(..., description="Acting user ID"),
    forum: ForumService = Depends(get_forum),
) -> Response:
    """Delete a reply other than the opening post (author or moderators)."""
    user = await _acting_user(forum, user_id)
    await _check_reply_owner(forum, reply_id, user, Action.MODERATE_REPLY)

    if not await forum.delete_reply(reply_id):
        raise HTTPException(status_code=404, detail="Reply not found")
    return Response(status_code=204)


@router.post("/replies/{reply_id}/like", response_model=ReplyRead)
async def like_reply(
    reply_id: UUID,
    user_id: UUID = Query(..., description="Acting user ID"),
    forum: ForumService = Depends(get_forum),
) -> ReplyRead:
    """Like a reply. Liking twice changes nothing."""
    user = await _acting_user(forum, user_id)
    require(user.role, Action.LIKE_REPLY)

    if await forum.like_reply(reply_id, user.id) is None:
        raise HTTPException(status_code=404, detail="Reply not found")
    return ReplyRead.model_validate(await forum.get_reply(reply_id))


@router.delete("/replies/{reply_id}/like", response_model=ReplyRead)
async def unlike_reply(
    reply_id: UUID,
    user_id: UUID = Query(..., description="Acting user ID"),
    forum: ForumService = Depends(get_forum),
) -> ReplyRead:
    """Withdraw a like."""
    user = await _acting_user(forum, user_id)

    if await forum.unlike_reply(reply_id, user.id) is None:
        raise HTTPException(status_code=404, detail="Reply not found")
    return ReplyRead.model_validate(await forum.get_reply(reply_id))


# ==================== Stats ====================


@router.get("/stats", response_model=ForumStats)
async def get_stats(
    forum: ForumService = Depends(get_forum),
) -> ForumStats:
    """Get forum-wide totals."""
    return await forum.get_forum_stats()
