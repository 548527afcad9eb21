"""
Topic slug generation.

Slugs are derived from the title and made unique against stored topics by
appending -1, -2, ... The unique constraint on topics.slug still guards
against two writers picking the same candidate concurrently.
"""

import re

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from forum_engine.models.forum import Topic

_DISALLOWED = re.compile(r"[^\w\s-]|_")


def base_slug(title: str) -> str:
    """
    Turn a title into a URL-safe slug without checking for collisions.

    Lower-cases the title, drops every character that is not alphanumeric,
    whitespace or a hyphen, and joins the remaining words with hyphens.
    Hyphens already in the title are kept as they are.

    Examples:
        >>> base_slug("Hello, World!")
        'hello-world'
        >>> base_slug("C++ & Rust")
        'c-rust'
    """
    return "-".join(_DISALLOWED.sub("", title.lower()).split())


class SlugGenerator:
    """
    Collision-free slug generator backed by the topics table.

    Usage:
        slugs = SlugGenerator(db_session)
        slug = await slugs.generate("Hello World")
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def exists(self, slug: str) -> bool:
        """Check whether a topic already uses the slug."""
        result = await self.db.execute(select(exists().where(Topic.slug == slug)))
        return bool(result.scalar())

    async def generate(self, title: str) -> str:
        """
        Generate a slug for the title that no stored topic uses yet.

        An empty base slug is allowed; collisions on it resolve to "-1",
        "-2", ... like any other.
        """
        base = base_slug(title)
        slug = base

        counter = 1
        while await self.exists(slug):
            slug = f"{base}-{counter}"
            counter += 1

        return slug
