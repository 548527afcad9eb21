"""Replies, solutions and forum totals."""

import uuid

import pytest
from sqlalchemy import func, select

from forum_engine.core.exceptions import TopicLockedError, ValidationError
from forum_engine.models.forum import Category, Reply, Topic


@pytest.mark.asyncio
async def test_create_reply_updates_topic_and_category(session, forum, category, viewer, editor):
    topic = await forum.create_topic(category.id, "Question", "How?", viewer.id)

    reply = await forum.create_reply(topic.id, "Like this.", None, editor.id)

    assert reply.topic_id == topic.id
    assert reply.user_id == editor.id
    assert not reply.is_solution

    row = (
        await session.execute(
            select(Topic.replies_count, Topic.last_reply_at, Topic.last_reply_user_id).where(
                Topic.id == topic.id
            )
        )
    ).one()
    assert row.replies_count == 1
    assert row.last_reply_at is not None
    assert row.last_reply_user_id == editor.id

    posts = await session.scalar(select(Category.posts_count).where(Category.id == category.id))
    assert posts == 2


@pytest.mark.asyncio
async def test_reply_to_points_at_a_reply_in_the_same_topic(forum, category, viewer, editor):
    topic = await forum.create_topic(category.id, "Thread", "opening", viewer.id)
    answer = await forum.create_reply(topic.id, "answer", None, editor.id)
    follow_up = await forum.create_reply(topic.id, "thanks", answer.id, viewer.id)

    assert follow_up.reply_to_id == answer.id

    replies = await forum.list_replies(topic.id)
    assert replies[-1].reply_to_user.username == "editor"
    assert replies[0].reply_to_user is None


@pytest.mark.asyncio
async def test_reply_to_from_another_topic_is_rejected(session, forum, category, viewer):
    one = await forum.create_topic(category.id, "One", "body", viewer.id)
    two = await forum.create_topic(category.id, "Two", "body", viewer.id)
    foreign = await forum.create_reply(one.id, "over here", None, viewer.id)
    # Rollback expires loaded instances, keep plain ids
    two_id, foreign_id, viewer_id = two.id, foreign.id, viewer.id

    with pytest.raises(ValidationError):
        await forum.create_reply(two_id, "confused", foreign_id, viewer_id)
    with pytest.raises(ValidationError):
        await forum.create_reply(two_id, "confused", uuid.uuid4(), viewer_id)

    count = await session.scalar(select(func.count(Reply.id)).where(Reply.topic_id == two_id))
    assert count == 1


@pytest.mark.asyncio
async def test_locked_topic_rejects_replies(session, forum, category, viewer):
    topic = await forum.create_topic(category.id, "Closed", "body", viewer.id)
    await forum.update_topic(topic.id, is_locked=True)
    topic_id = topic.id

    with pytest.raises(TopicLockedError):
        await forum.create_reply(topic_id, "too late", None, viewer.id)

    assert await session.scalar(select(Topic.replies_count).where(Topic.id == topic_id)) == 0


@pytest.mark.asyncio
async def test_reply_to_unknown_topic_returns_none(forum, viewer):
    assert await forum.create_reply(uuid.uuid4(), "hello?", None, viewer.id) is None


@pytest.mark.asyncio
async def test_blank_reply_is_rejected(forum, category, viewer):
    topic = await forum.create_topic(category.id, "Topic", "body", viewer.id)

    with pytest.raises(ValidationError):
        await forum.create_reply(topic.id, "   ", None, viewer.id)


@pytest.mark.asyncio
async def test_mark_solution_moves_the_flag(session, forum, category, viewer, editor):
    topic = await forum.create_topic(category.id, "Bug", "It breaks", viewer.id)
    first = await forum.create_reply(topic.id, "Try A", None, editor.id)
    second = await forum.create_reply(topic.id, "Try B", None, editor.id)

    await forum.mark_solution(first.id)
    await forum.mark_solution(second.id)

    flags = dict(
        (await session.execute(select(Reply.id, Reply.is_solution).where(Reply.topic_id == topic.id))).all()
    )
    assert flags[second.id] is True
    assert flags[first.id] is False
    assert sum(flags.values()) == 1
    assert await session.scalar(select(Topic.is_solved).where(Topic.id == topic.id))

    assert await forum.mark_solution(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_forum_stats(forum, category, admin, viewer, editor):
    topic = await forum.create_topic(category.id, "Stats", "body", viewer.id)
    await forum.create_reply(topic.id, "reply", None, editor.id)
    await forum.create_reply(topic.id, "reply again", None, editor.id)

    stats = await forum.get_forum_stats()

    assert stats.total_topics == 1
    assert stats.total_replies == 3
    assert stats.total_users == 3
    assert stats.active_users_today == 2


@pytest.mark.asyncio
async def test_get_user_info(forum, editor):
    info = await forum.get_user_info(editor.id)

    assert info.username == "editor"
    assert info.email == "editor@example.com"
    assert info.role == "editor"
    assert await forum.get_user_info(uuid.uuid4()) is None
