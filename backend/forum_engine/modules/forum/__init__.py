"""
Forum Module - Community discussions.

Features:
- Categories with latest-topic summaries
- Topics with collision-free slugs and an atomic opening post
- Replies in chronological thread order
- Per-viewer view tracking
- Role capability table
"""

from forum_engine.modules.forum.service import ForumService
from forum_engine.modules.forum.slugs import SlugGenerator
from forum_engine.modules.forum.views import ViewTracker

__all__ = ["ForumService", "SlugGenerator", "ViewTracker"]
