"""
Listing & ranking rules shared by every topic and reply query.
"""

from typing import Sequence, TypeVar

from sqlalchemy import Select

from forum_engine.core.exceptions import ValidationError
from forum_engine.models.forum import Reply, Topic
from forum_engine.modules.forum.schemas import Page

T = TypeVar("T")


def order_topics(query: Select) -> Select:
    """
    Apply topic ranking.

    Pinned topics first, then most recent reply (topics without replies
    after all that have one), then newest first.
    """
    return query.order_by(
        Topic.is_pinned.desc(),
        Topic.last_reply_at.desc().nulls_last(),
        Topic.created_at.desc(),
    )


def order_replies(query: Select) -> Select:
    """Apply thread order: oldest reply first."""
    return query.order_by(Reply.created_at.asc())


def check_window(limit: int, offset: int) -> None:
    """Reject empty or negative row windows."""
    if limit < 1:
        raise ValidationError(f"Limit must be >= 1, got {limit}")
    if offset < 0:
        raise ValidationError(f"Offset must be >= 0, got {offset}")


def page_offset(page: int, limit: int) -> int:
    """Translate a 1-based page number into a row offset."""
    if page < 1:
        raise ValidationError(f"Page must be >= 1, got {page}")
    offset = (page - 1) * limit
    check_window(limit, offset)
    return offset


def make_page(items: Sequence[T], page: int, limit: int) -> Page[T]:
    """Wrap a fetched slice, guessing has_next from a full page."""
    return Page(
        items=list(items),
        page=page,
        limit=limit,
        has_next=len(items) == limit,
    )
