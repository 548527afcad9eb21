"""
Topic view tracking.

A view is recorded in two independent steps:
1. insert a topic_views row keyed by (topic, viewer or nil, ip), ignoring
   duplicates;
2. bump topics.views.

Step 2 runs even when step 1 hit a duplicate, so topics.views counts raw
hits while topic_views counts distinct viewers. Set
forum_unique_view_counter to bump the counter on first views only.
Views of topics that do not exist are not recorded.
"""

import ipaddress
import uuid
from datetime import datetime, timezone
from typing import Callable

from loguru import logger
from sqlalchemy import exists, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from forum_engine.core.config import settings
from forum_engine.core.database import insert_ignoring_duplicates
from forum_engine.core.exceptions import StorageError, ValidationError
from forum_engine.models.forum import Topic, TopicView


def normalize_ip(ip_address: str) -> str:
    """Parse and canonicalize an IPv4/IPv6 address."""
    try:
        return str(ipaddress.ip_address(ip_address.strip()))
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"Invalid IP address: {ip_address!r}") from e


class ViewTracker:
    """
    Records topic views.

    Usage:
        tracker = ViewTracker(db_session)
        await tracker.record_view(topic_id, None, "203.0.113.7")
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] | None = None,
        unique_counter: bool | None = None,
    ) -> None:
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.unique_counter = (
            settings.forum_unique_view_counter
            if unique_counter is None
            else unique_counter
        )

    async def _topic_exists(self, topic_id: uuid.UUID) -> bool:
        result = await self.db.execute(select(exists().where(Topic.id == topic_id)))
        return bool(result.scalar())

    async def record_view(
        self,
        topic_id: uuid.UUID,
        viewer_user_id: uuid.UUID | None,
        ip_address: str,
    ) -> bool | None:
        """
        Record that a viewer opened a topic.

        Args:
            topic_id: Viewed topic
            viewer_user_id: Signed-in viewer, None for anonymous
            ip_address: Viewer IP address

        Returns:
            True if this (topic, viewer, ip) had not been seen before,
            None if the topic does not exist
        """
        ip = normalize_ip(ip_address)

        stmt = insert_ignoring_duplicates(self.db, TopicView.__table__).values(
            id=uuid.uuid4(),
            topic_id=topic_id,
            user_id=viewer_user_id,
            ip_address=ip,
            viewed_at=self.clock(),
        )
        try:
            if not await self._topic_exists(topic_id):
                return None
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to record view of topic {topic_id}: {e}")
            raise StorageError("Failed to record topic view") from e

        created = result.rowcount == 1
        if not created:
            logger.debug(f"Duplicate view of topic {topic_id} from {ip} suppressed")

        if created or not self.unique_counter:
            try:
                await self.db.execute(
                    update(Topic)
                    .where(Topic.id == topic_id)
                    .values(views=Topic.views + 1)
                )
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to bump view counter of topic {topic_id}: {e}")
                raise StorageError("Failed to update topic views") from e

        return created
