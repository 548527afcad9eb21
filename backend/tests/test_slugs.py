"""Slug derivation and collision handling."""

import pytest
from sqlalchemy import select

from forum_engine.models.forum import Topic
from forum_engine.modules.forum.slugs import SlugGenerator, base_slug


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Hello World", "hello-world"),
        ("Hello, World!", "hello-world"),
        ("  lots   of\tspace  ", "lots-of-space"),
        ("C++ & Rust", "c-rust"),
        ("don't panic", "dont-panic"),
        ("v1.2 release", "v12-release"),
        ("pre-existing hyphens", "pre-existing-hyphens"),
        ("a - b", "a---b"),
        ("snake_case title", "snakecase-title"),
        ("Café Über", "café-über"),
        ("!!!", ""),
    ],
)
def test_base_slug(title, expected):
    assert base_slug(title) == expected


@pytest.mark.asyncio
async def test_identical_titles_get_numbered_suffixes(forum, category, viewer):
    first = await forum.create_topic(category.id, "Hello World", "first body", viewer.id)
    second = await forum.create_topic(category.id, "Hello World", "second body", viewer.id)
    third = await forum.create_topic(category.id, "hello   world!", "third body", viewer.id)

    assert first.slug == "hello-world"
    assert second.slug == "hello-world-1"
    assert third.slug == "hello-world-2"


@pytest.mark.asyncio
async def test_generate_skips_taken_suffixes(session, forum, category, viewer):
    await forum.create_topic(category.id, "Release notes", "body", viewer.id)
    await forum.create_topic(category.id, "Release notes 1", "body", viewer.id)

    # "release-notes-1" is taken by a different title, so the next one is -2
    slug = await SlugGenerator(session).generate("Release notes")
    assert slug == "release-notes-2"

    existing = (await session.execute(select(Topic.slug))).scalars().all()
    assert slug not in existing


@pytest.mark.asyncio
async def test_empty_base_slug_is_resolved_like_any_other(forum, category, viewer):
    first = await forum.create_topic(category.id, "???", "body", viewer.id)
    second = await forum.create_topic(category.id, "!!!", "body", viewer.id)

    assert first.slug == ""
    assert second.slug == "-1"


@pytest.mark.asyncio
async def test_exists(session, forum, category, viewer):
    slugs = SlugGenerator(session)
    assert not await slugs.exists("fresh")

    await forum.create_topic(category.id, "Fresh", "body", viewer.id)
    assert await slugs.exists("fresh")
