"""Category listing with latest topics."""

import uuid

import pytest

from forum_engine.core.exceptions import ValidationError


@pytest.mark.asyncio
async def test_categories_ordered_by_sort_order_then_name(forum):
    zeta = await forum.create_category("Zeta", "", "#000000")
    alpha = await forum.create_category("Alpha", "", "#000000")
    news = await forum.create_category("News", "", "#000000", icon="megaphone")
    await forum.update_category(news.id, sort_order=-1)

    categories = await forum.list_categories()

    assert [c.name for c in categories] == ["News", "Alpha", "Zeta"]
    assert categories[0].icon == "megaphone"
    assert {c.id for c in categories} == {zeta.id, alpha.id, news.id}


@pytest.mark.asyncio
async def test_latest_topic_is_most_recently_created(forum, category, viewer, editor):
    empty = await forum.create_category("Empty", "", "#ffffff")
    first = await forum.create_topic(category.id, "First", "body", viewer.id)
    latest = await forum.create_topic(category.id, "Latest", "body", editor.id)

    # Activity on an older topic does not make it the latest
    await forum.create_reply(first.id, "bump", None, viewer.id)

    by_name = {c.name: c for c in await forum.list_categories()}

    general = by_name["General"]
    assert general.latest_topic.id == latest.id
    assert general.latest_topic.user.username == "editor"
    assert general.latest_topic.category.name == "General"
    assert general.topics_count == 2
    assert general.posts_count == 3

    assert by_name["Empty"].id == empty.id
    assert by_name["Empty"].latest_topic is None


@pytest.mark.asyncio
async def test_get_and_update_category(forum, category):
    fetched = await forum.get_category(category.id)
    assert fetched.name == "General"
    assert fetched.topics_count == 0

    updated = await forum.update_category(category.id, name="Lobby", color="#123456")
    assert updated.name == "Lobby"
    assert updated.color == "#123456"
    assert updated.description == "Anything goes"

    assert await forum.get_category(uuid.uuid4()) is None
    assert await forum.update_category(uuid.uuid4(), name="Nope") is None


@pytest.mark.asyncio
async def test_create_category_requires_name(forum):
    with pytest.raises(ValidationError):
        await forum.create_category("  ", "desc", "#000000")
