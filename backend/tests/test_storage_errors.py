"""Storage failures reach callers as StorageError, on reads as well as writes."""

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from forum_engine.core.exceptions import StorageError


@pytest_asyncio.fixture
async def broken_topics(session, forum, category, viewer):
    await forum.create_topic(category.id, "Gone soon", "body", viewer.id)
    await session.execute(text("DROP TABLE topics"))
    await session.commit()


@pytest.mark.asyncio
async def test_list_topics_wraps_driver_error(forum, broken_topics):
    with pytest.raises(StorageError) as exc_info:
        await forum.list_topics()

    assert isinstance(exc_info.value.__cause__, SQLAlchemyError)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "read",
    [
        lambda forum: forum.get_topic_by_slug("gone-soon"),
        lambda forum: forum.list_categories(),
        lambda forum: forum.topics_page(page=1, limit=5),
        lambda forum: forum.get_forum_stats(),
    ],
    ids=["get_topic_by_slug", "list_categories", "topics_page", "get_forum_stats"],
)
async def test_reads_raise_storage_error(forum, broken_topics, read):
    with pytest.raises(StorageError):
        await read(forum)


@pytest.mark.asyncio
async def test_session_recovers_after_failed_read(forum, broken_topics, viewer):
    viewer_id = viewer.id

    with pytest.raises(StorageError):
        await forum.list_topics()

    info = await forum.get_user_info(viewer_id)
    assert info.username == "viewer"
