"""
Forum Service - Category, topic and reply management.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

from loguru import logger
from sqlalchemy import delete, distinct, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from forum_engine.core.config import settings
from forum_engine.core.database import insert_ignoring_duplicates
from forum_engine.core.exceptions import StorageError, TopicLockedError, ValidationError
from forum_engine.models.forum import Category, Reply, ReplyLike, Topic
from forum_engine.models.user import User
from forum_engine.modules.forum.listing import (
    check_window,
    make_page,
    order_replies,
    order_topics,
    page_offset,
)
from forum_engine.modules.forum.schemas import (
    CategoryWithStats,
    ForumStats,
    Page,
    ReplyWithDetails,
    TopicWithDetails,
    UserInfo,
)
from forum_engine.modules.forum.slugs import SlugGenerator
from forum_engine.modules.forum.views import ViewTracker

MAX_TITLE_LENGTH = 255

_TOPIC_DETAILS = (
    selectinload(Topic.category),
    selectinload(Topic.user),
    selectinload(Topic.last_reply_user),
)
_REPLY_DETAILS = (
    selectinload(Reply.user),
    selectinload(Reply.reply_to).selectinload(Reply.user),
)


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} must not be blank")
    return value


def _require_title(title: str | None) -> str:
    title = _require_text(title, "title")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be at most {MAX_TITLE_LENGTH} characters")
    return title


class ForumService:
    """
    Service for managing forum categories, topics, and replies.

    The service owns the transaction boundaries of its writes: every
    mutating call commits on success and rolls back on failure. Storage
    failures on reads and writes alike surface as StorageError.

    Usage:
        forum = ForumService(db_session)
        topics = await forum.list_topics(category_id=category.id)
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize forum service with database session and clock."""
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[None]:
        """Commit the enclosed writes as one unit or none of them."""
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Failed to {action}")
            raise StorageError(f"Failed to {action}") from e
        except BaseException:
            # Cancellation included: nothing from an aborted unit stays pending
            await self.db.rollback()
            raise

    @asynccontextmanager
    async def _query(self, action: str) -> AsyncIterator[None]:
        """Report a failed read as StorageError."""
        try:
            yield
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Failed to {action}")
            raise StorageError(f"Failed to {action}") from e

    # ==================== Users ====================

    async def get_user_info(self, user_id: uuid.UUID) -> UserInfo | None:
        """Get author projection for a user."""
        async with self._query("load user"):
            user = await self.db.get(User, user_id)
        return UserInfo.model_validate(user) if user else None

    # ==================== Categories ====================

    async def list_categories(self) -> list[CategoryWithStats]:
        """
        Get all categories with their most recently created topic.

        Latest topics are fetched for every category in one query ranking
        topics per category, not one query per category.
        """
        ranked = select(
            Topic.id.label("topic_id"),
            func.row_number()
            .over(partition_by=Topic.category_id, order_by=Topic.created_at.desc())
            .label("rn"),
        ).subquery()

        async with self._query("list categories"):
            categories = await self.db.execute(
                select(Category)
                .order_by(Category.sort_order, Category.name)
                .execution_options(populate_existing=True)
            )
            latest = await self.db.execute(
                select(Topic)
                .join(ranked, ranked.c.topic_id == Topic.id)
                .where(ranked.c.rn == 1)
                .options(*_TOPIC_DETAILS)
                .execution_options(populate_existing=True)
            )
            latest_by_category = {
                topic.category_id: TopicWithDetails.model_validate(topic)
                for topic in latest.scalars().all()
            }

            return [
                CategoryWithStats.model_validate(category).model_copy(
                    update={"latest_topic": latest_by_category.get(category.id)}
                )
                for category in categories.scalars().all()
            ]

    async def get_category(self, category_id: uuid.UUID) -> Category | None:
        """Get category by ID."""
        async with self._query("load category"):
            return await self.db.get(Category, category_id, populate_existing=True)

    async def create_category(
        self,
        name: str,
        description: str,
        color: str,
        icon: str | None = None,
    ) -> Category:
        """Create new forum category."""
        name = _require_text(name, "name")
        color = _require_text(color, "color")

        category = Category(
            name=name,
            description=description or "",
            color=color,
            icon=icon,
            sort_order=0,
            topics_count=0,
            posts_count=0,
            last_post_at=None,
            created_at=self.clock(),
        )
        async with self._transaction("create category"):
            self.db.add(category)
            await self.db.flush()

        logger.info(f"Category created: {category.name} ({category.id})")
        return category

    async def update_category(
        self,
        category_id: uuid.UUID,
        name: str | None = None,
        description: str | None = None,
        color: str | None = None,
        icon: str | None = None,
        sort_order: int | None = None,
    ) -> Category | None:
        """Update category display fields. Counters are not editable."""
        async with self._transaction("update category"):
            category = await self.get_category(category_id)
            if not category:
                return None

            if name is not None:
                category.name = _require_text(name, "name")
            if description is not None:
                category.description = description
            if color is not None:
                category.color = _require_text(color, "color")
            if icon is not None:
                category.icon = icon
            if sort_order is not None:
                category.sort_order = sort_order

        return category

    # ==================== Topics ====================

    async def list_topics(
        self,
        category_id: uuid.UUID | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TopicWithDetails]:
        """
        Get ranked topics.

        Args:
            category_id: Filter by category, None for all categories
            limit: Max results (default from settings)
            offset: Rows to skip

        Returns:
            Topics with category, author and last replier

        Raises:
            ValidationError: limit below 1 or negative offset
        """
        if limit is None:
            limit = settings.forum_topics_per_page
        check_window(limit, offset)

        query = select(Topic).options(*_TOPIC_DETAILS)
        if category_id is not None:
            query = query.where(Topic.category_id == category_id)

        query = (
            order_topics(query)
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )

        async with self._query("list topics"):
            result = await self.db.execute(query)
            return [TopicWithDetails.model_validate(t) for t in result.scalars().all()]

    async def topics_page(
        self,
        category_id: uuid.UUID | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[TopicWithDetails]:
        """Get one 1-based page of ranked topics."""
        if limit is None:
            limit = settings.forum_topics_per_page
        offset = page_offset(page, limit)
        topics = await self.list_topics(category_id, limit=limit, offset=offset)
        return make_page(topics, page, limit)

    async def _load_topic(self, *criteria) -> TopicWithDetails | None:
        async with self._query("load topic"):
            result = await self.db.execute(
                select(Topic)
                .options(*_TOPIC_DETAILS)
                .where(*criteria)
                .execution_options(populate_existing=True)
            )
            topic = result.scalar_one_or_none()
            return TopicWithDetails.model_validate(topic) if topic else None

    async def get_topic(self, topic_id: uuid.UUID) -> TopicWithDetails | None:
        """Get topic by ID with category and author info."""
        return await self._load_topic(Topic.id == topic_id)

    async def get_topic_by_slug(self, slug: str) -> TopicWithDetails | None:
        """Get topic by slug with category and author info."""
        return await self._load_topic(Topic.slug == slug)

    async def create_topic(
        self,
        category_id: uuid.UUID,
        title: str,
        content: str,
        author_id: uuid.UUID,
    ) -> Topic | None:
        """
        Create new forum topic together with its opening reply.

        The topic row, the opening reply and the category counters are
        written in one transaction: readers see all of them or none.

        Args:
            category_id: Category ID
            title: Topic title
            content: Opening post content
            author_id: Author user ID

        Returns:
            Created topic, or None if the category does not exist
        """
        title = _require_title(title)
        content = _require_text(content, "content")

        async with self._transaction("create topic"):
            category = await self.get_category(category_id)
            if not category:
                return None

            slug = await SlugGenerator(self.db).generate(title)
            now = self.clock()

            topic = Topic(
                category_id=category_id,
                user_id=author_id,
                title=title,
                slug=slug,
                views=0,
                replies_count=0,
                is_pinned=False,
                is_locked=False,
                is_solved=False,
                last_reply_at=None,
                last_reply_user_id=None,
                created_at=now,
                updated_at=now,
            )
            self.db.add(topic)
            await self.db.flush()

            opening = Reply(
                topic_id=topic.id,
                user_id=author_id,
                content=content,
                reply_to_id=None,
                is_solution=False,
                is_edited=False,
                likes_count=0,
                created_at=now,
                updated_at=now,
            )
            self.db.add(opening)
            await self.db.flush()

            # Update category stats
            await self.db.execute(
                update(Category)
                .where(Category.id == category_id)
                .values(
                    topics_count=Category.topics_count + 1,
                    posts_count=Category.posts_count + 1,
                    last_post_at=now,
                )
            )

        logger.info(f"Topic created: {topic.slug} ({topic.id}) in category {category_id}")
        return topic

    async def update_topic(
        self,
        topic_id: uuid.UUID,
        title: str | None = None,
        is_pinned: bool | None = None,
        is_locked: bool | None = None,
    ) -> Topic | None:
        """
        Update topic title or moderation flags.

        The slug is assigned once at creation and survives title changes.
        """
        async with self._transaction("update topic"):
            topic = await self.db.get(Topic, topic_id, populate_existing=True)
            if not topic:
                return None

            if title is not None:
                topic.title = _require_title(title)
            if is_pinned is not None:
                topic.is_pinned = is_pinned
            if is_locked is not None:
                topic.is_locked = is_locked
            topic.updated_at = self.clock()

        return topic

    async def record_view(
        self,
        topic_id: uuid.UUID,
        viewer_user_id: uuid.UUID | None,
        ip_address: str,
    ) -> bool | None:
        """Record a topic view. See ViewTracker.record_view."""
        tracker = ViewTracker(self.db, clock=self.clock)
        return await tracker.record_view(topic_id, viewer_user_id, ip_address)

    # ==================== Replies ====================

    async def list_replies(
        self,
        topic_id: uuid.UUID,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ReplyWithDetails]:
        """
        Get replies in topic, oldest first.

        Args:
            topic_id: Topic ID
            limit: Max results (default from settings)
            offset: Rows to skip

        Returns:
            Replies with author and replied-to author

        Raises:
            ValidationError: limit below 1 or negative offset
        """
        if limit is None:
            limit = settings.forum_posts_per_page
        check_window(limit, offset)

        query = (
            order_replies(
                select(Reply).options(*_REPLY_DETAILS).where(Reply.topic_id == topic_id)
            )
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )

        async with self._query("list replies"):
            result = await self.db.execute(query)
            return [ReplyWithDetails.model_validate(r) for r in result.scalars().all()]

    async def replies_page(
        self,
        topic_id: uuid.UUID,
        page: int = 1,
        limit: int | None = None,
    ) -> Page[ReplyWithDetails]:
        """Get one 1-based page of a topic's replies."""
        if limit is None:
            limit = settings.forum_posts_per_page
        offset = page_offset(page, limit)
        replies = await self.list_replies(topic_id, limit=limit, offset=offset)
        return make_page(replies, page, limit)

    async def get_reply(self, reply_id: uuid.UUID) -> Reply | None:
        """Get reply by ID."""
        async with self._query("load reply"):
            return await self.db.get(Reply, reply_id, populate_existing=True)

    async def _opening_reply_id(self, topic_id: uuid.UUID) -> uuid.UUID | None:
        return await self.db.scalar(
            order_replies(select(Reply.id).where(Reply.topic_id == topic_id)).limit(1)
        )

    async def create_reply(
        self,
        topic_id: uuid.UUID,
        content: str,
        reply_to_id: uuid.UUID | None,
        author_id: uuid.UUID,
    ) -> Reply | None:
        """
        Create new reply in topic.

        Args:
            topic_id: Topic ID
            content: Reply content
            reply_to_id: Reply being answered, must belong to the same topic
            author_id: Author user ID

        Returns:
            Created reply, or None if the topic does not exist

        Raises:
            TopicLockedError: Topic is locked
            ValidationError: Blank content or foreign reply_to_id
        """
        content = _require_text(content, "content")

        async with self._transaction("create reply"):
            topic = await self.db.get(Topic, topic_id, populate_existing=True)
            if not topic:
                return None
            if topic.is_locked:
                raise TopicLockedError(topic_id)

            if reply_to_id is not None:
                parent = await self.db.get(Reply, reply_to_id)
                if not parent or parent.topic_id != topic.id:
                    raise ValidationError(
                        f"Reply {reply_to_id} does not belong to topic {topic_id}"
                    )

            now = self.clock()
            reply = Reply(
                topic_id=topic.id,
                user_id=author_id,
                content=content,
                reply_to_id=reply_to_id,
                is_solution=False,
                is_edited=False,
                likes_count=0,
                created_at=now,
                updated_at=now,
            )
            self.db.add(reply)
            await self.db.flush()

            # Update topic stats
            await self.db.execute(
                update(Topic)
                .where(Topic.id == topic.id)
                .values(
                    replies_count=Topic.replies_count + 1,
                    last_reply_at=now,
                    last_reply_user_id=author_id,
                    updated_at=now,
                )
            )

            # Update category stats
            await self.db.execute(
                update(Category)
                .where(Category.id == topic.category_id)
                .values(posts_count=Category.posts_count + 1, last_post_at=now)
            )

        logger.info(f"Reply {reply.id} created in topic {topic_id}")
        return reply

    async def update_reply(self, reply_id: uuid.UUID, content: str) -> Reply | None:
        """Replace reply content and flag the reply as edited."""
        content = _require_text(content, "content")

        async with self._transaction("update reply"):
            reply = await self.get_reply(reply_id)
            if not reply:
                return None

            reply.content = content
            reply.is_edited = True
            reply.updated_at = self.clock()

        logger.info(f"Reply {reply_id} edited")
        return reply

    async def delete_reply(self, reply_id: uuid.UUID) -> Reply | None:
        """
        Delete a reply and roll the topic and category stats back.

        The opening reply carries the topic itself and cannot be deleted on
        its own. Replies answering the deleted one keep their place in the
        thread but lose the pointer.

        Returns:
            The deleted reply, or None if it does not exist

        Raises:
            ValidationError: The reply is its topic's opening reply
        """
        async with self._transaction("delete reply"):
            reply = await self.get_reply(reply_id)
            if not reply:
                return None

            topic_id = reply.topic_id
            opening_id = await self._opening_reply_id(topic_id)
            if reply.id == opening_id:
                raise ValidationError(
                    "The opening reply cannot be deleted, delete the topic instead"
                )

            await self.db.execute(
                update(Reply).where(Reply.reply_to_id == reply.id).values(reply_to_id=None)
            )
            await self.db.execute(delete(ReplyLike).where(ReplyLike.reply_id == reply.id))
            await self.db.delete(reply)
            await self.db.flush()

            remaining = select(Reply).where(
                Reply.topic_id == topic_id, Reply.id != opening_id
            )
            replies_count = await self.db.scalar(
                select(func.count()).select_from(remaining.subquery())
            )
            last = (
                await self.db.execute(
                    remaining.with_only_columns(Reply.created_at, Reply.user_id)
                    .order_by(Reply.created_at.desc())
                    .limit(1)
                )
            ).first()

            # Update topic stats
            topic_values = {
                "replies_count": replies_count,
                "last_reply_at": last.created_at if last else None,
                "last_reply_user_id": last.user_id if last else None,
            }
            if reply.is_solution:
                topic_values["is_solved"] = False
            await self.db.execute(
                update(Topic).where(Topic.id == topic_id).values(**topic_values)
            )

            # Update category stats
            category_id = await self.db.scalar(
                select(Topic.category_id).where(Topic.id == topic_id)
            )
            await self.db.execute(
                update(Category)
                .where(Category.id == category_id, Category.posts_count > 0)
                .values(posts_count=Category.posts_count - 1)
            )

        logger.info(f"Reply {reply_id} deleted from topic {topic_id}")
        return reply

    async def like_reply(self, reply_id: uuid.UUID, user_id: uuid.UUID) -> bool | None:
        """
        Like a reply once per user.

        Returns:
            True if the like was added, False if the user already liked the
            reply, None if the reply does not exist
        """
        async with self._transaction("like reply"):
            reply = await self.get_reply(reply_id)
            if not reply:
                return None

            result = await self.db.execute(
                insert_ignoring_duplicates(self.db, ReplyLike.__table__).values(
                    id=uuid.uuid4(),
                    reply_id=reply_id,
                    user_id=user_id,
                    created_at=self.clock(),
                )
            )
            liked = result.rowcount == 1

            if liked:
                await self.db.execute(
                    update(Reply)
                    .where(Reply.id == reply_id)
                    .values(likes_count=Reply.likes_count + 1)
                )

        if not liked:
            logger.debug(f"Repeated like of reply {reply_id} by {user_id} ignored")
        return liked

    async def unlike_reply(self, reply_id: uuid.UUID, user_id: uuid.UUID) -> bool | None:
        """
        Withdraw a user's like.

        Returns:
            True if a like was removed, False if there was none, None if the
            reply does not exist
        """
        async with self._transaction("unlike reply"):
            reply = await self.get_reply(reply_id)
            if not reply:
                return None

            result = await self.db.execute(
                delete(ReplyLike).where(
                    ReplyLike.reply_id == reply_id, ReplyLike.user_id == user_id
                )
            )
            removed = result.rowcount == 1

            if removed:
                await self.db.execute(
                    update(Reply)
                    .where(Reply.id == reply_id, Reply.likes_count > 0)
                    .values(likes_count=Reply.likes_count - 1)
                )

        return removed

    async def mark_solution(self, reply_id: uuid.UUID) -> Reply | None:
        """
        Mark a reply as the solution of its topic.

        Any previous solution in the same topic is unmarked and the topic
        is flagged as solved.
        """
        async with self._transaction("mark solution"):
            reply = await self.get_reply(reply_id)
            if not reply:
                return None

            now = self.clock()
            await self.db.execute(
                update(Reply)
                .where(
                    Reply.topic_id == reply.topic_id,
                    Reply.id != reply.id,
                    Reply.is_solution == True,
                )
                .values(is_solution=False)
            )
            reply.is_solution = True
            reply.updated_at = now

            await self.db.execute(
                update(Topic)
                .where(Topic.id == reply.topic_id)
                .values(is_solved=True, updated_at=now)
            )

        logger.info(f"Reply {reply_id} marked as solution of topic {reply.topic_id}")
        return reply

    # ==================== Stats ====================

    async def get_forum_stats(self) -> ForumStats:
        """Get forum-wide totals."""
        start_of_day = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)

        async with self._query("load forum stats"):
            total_topics = await self.db.scalar(select(func.count(Topic.id)))
            total_replies = await self.db.scalar(select(func.count(Reply.id)))
            total_users = await self.db.scalar(select(func.count(User.id)))
            active_users_today = await self.db.scalar(
                select(func.count(distinct(Reply.user_id))).where(
                    Reply.created_at >= start_of_day
                )
            )

        return ForumStats(
            total_topics=total_topics or 0,
            total_replies=total_replies or 0,
            total_users=total_users or 0,
            active_users_today=active_users_today or 0,
        )
