"""
Forum read models.

Composite views (TopicWithDetails, ReplyWithDetails, CategoryWithStats) are
built per request from loaded ORM rows and never persisted.
"""

from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from forum_engine.models.user import UserRole

T = TypeVar("T")


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserInfo(ORMModel):
    """Author projection owned by the user subsystem."""

    id: UUID
    username: str
    email: str
    role: UserRole


class CategoryRead(ORMModel):
    id: UUID
    name: str
    description: str
    color: str
    icon: str | None = None
    sort_order: int
    topics_count: int
    posts_count: int
    last_post_at: datetime | None = None
    created_at: datetime


class TopicRead(ORMModel):
    id: UUID
    category_id: UUID
    title: str
    slug: str
    user_id: UUID
    views: int
    replies_count: int
    is_pinned: bool
    is_locked: bool
    is_solved: bool
    last_reply_at: datetime | None = None
    last_reply_user_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class ReplyRead(ORMModel):
    id: UUID
    topic_id: UUID
    user_id: UUID
    content: str
    is_solution: bool
    is_edited: bool
    likes_count: int
    reply_to_id: UUID | None = None
    created_at: datetime
    updated_at: datetime


class TopicWithDetails(TopicRead):
    """Topic with its category, author and last replier."""

    category: CategoryRead
    user: UserInfo
    last_reply_user: UserInfo | None = None


class ReplyWithDetails(ReplyRead):
    """Reply with its author and the author it answers."""

    user: UserInfo
    reply_to_user: UserInfo | None = None


class CategoryWithStats(CategoryRead):
    """Category with its most recently created topic."""

    latest_topic: TopicWithDetails | None = None


class ForumStats(BaseModel):
    total_topics: int
    total_replies: int
    total_users: int
    active_users_today: int


class Page(BaseModel, Generic[T]):
    """
    One page of a listing.

    has_next is a heuristic: a full page is assumed to be followed by
    another one, so the last page of an exact multiple reports True.
    """

    items: list[T]
    page: int
    limit: int
    has_next: bool
