"""
Forum models for community discussions.

Includes:
- Categories (sections)
- Topics (threads)
- Replies (posts, the first one being the topic's opening post)
- Reply likes (one per user and reply)
- Topic views (per-viewer dedup records)
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    literal_column,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forum_engine.core.database import Base
from forum_engine.models.user import utcnow

if TYPE_CHECKING:
    from forum_engine.models.user import User

# Stands in for anonymous viewers inside the topic_views dedup key
NIL_VIEWER_ID = uuid.UUID(int=0)


class Category(Base):
    """Forum category/section."""

    __tablename__ = "categories"
    __table_args__ = (
        CheckConstraint("topics_count >= 0", name="ck_categories_topics_count"),
        CheckConstraint("posts_count >= 0", name="ck_categories_posts_count"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text, default="")
    color: Mapped[str] = mapped_column(String(20))  # Hex color
    icon: Mapped[str | None] = mapped_column(String(50))  # Icon class name
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    # Stats (denormalized for performance)
    topics_count: Mapped[int] = mapped_column(Integer, default=0)
    posts_count: Mapped[int] = mapped_column(Integer, default=0)
    last_post_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    topics: Mapped[list["Topic"]] = relationship(back_populates="category")

    def __repr__(self) -> str:
        return f"<Category {self.name}>"


class Topic(Base):
    """Forum topic/thread."""

    __tablename__ = "topics"
    __table_args__ = (
        CheckConstraint("views >= 0", name="ck_topics_views"),
        CheckConstraint("replies_count >= 0", name="ck_topics_replies_count"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("categories.id"), index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))

    title: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(300), unique=True, index=True)

    # Stats
    views: Mapped[int] = mapped_column(Integer, default=0)
    replies_count: Mapped[int] = mapped_column(Integer, default=0)

    # Status
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    is_solved: Mapped[bool] = mapped_column(Boolean, default=False)

    # Last activity
    last_reply_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_reply_user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id")
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    category: Mapped["Category"] = relationship(back_populates="topics")
    user: Mapped["User"] = relationship(
        back_populates="topics", foreign_keys=[user_id]
    )
    last_reply_user: Mapped["User | None"] = relationship(
        foreign_keys=[last_reply_user_id]
    )
    replies: Mapped[list["Reply"]] = relationship(back_populates="topic")

    def __repr__(self) -> str:
        return f"<Topic {self.slug}>"


class Reply(Base):
    """Reply in a topic."""

    __tablename__ = "replies"
    __table_args__ = (
        CheckConstraint("likes_count >= 0", name="ck_replies_likes_count"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    topic_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("topics.id"), index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    # Flat pointer to another reply of the same topic, never walked
    reply_to_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("replies.id"))

    content: Mapped[str] = mapped_column(Text)

    is_solution: Mapped[bool] = mapped_column(Boolean, default=False)
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    likes_count: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # Relationships
    topic: Mapped["Topic"] = relationship(back_populates="replies")
    user: Mapped["User"] = relationship(back_populates="replies")
    reply_to: Mapped["Reply | None"] = relationship(remote_side="Reply.id")

    @property
    def reply_to_user(self) -> "User | None":
        """Author of the reply this one answers, if loaded."""
        return self.reply_to.user if self.reply_to is not None else None

    def __repr__(self) -> str:
        return f"<Reply {self.id} in topic {self.topic_id}>"


class ReplyLike(Base):
    """A user's like on a reply."""

    __tablename__ = "reply_likes"
    __table_args__ = (
        UniqueConstraint("reply_id", "user_id", name="uq_reply_likes_reply_user"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reply_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("replies.id"), index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    def __repr__(self) -> str:
        return f"<ReplyLike {self.user_id} on {self.reply_id}>"


class TopicView(Base):
    """One row per (topic, viewer, ip) that has opened a topic."""

    __tablename__ = "topic_views"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    topic_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("topics.id"))
    user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"))
    ip_address: Mapped[str] = mapped_column(String(45))
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    def __repr__(self) -> str:
        return f"<TopicView {self.topic_id} {self.user_id} {self.ip_address}>"


Index(
    "uq_topic_views_viewer",
    TopicView.topic_id,
    func.coalesce(TopicView.user_id, literal_column(f"'{NIL_VIEWER_ID}'")),
    TopicView.ip_address,
    unique=True,
)
