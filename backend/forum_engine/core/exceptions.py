"""
Forum exceptions.

Lookup misses are not exceptions: store operations return None and the
caller decides what an absent record means.
"""


class ForumError(Exception):
    """Base exception for all forum engine errors."""


class ValidationError(ForumError):
    """Raised when input is malformed (blank title, bad IP address, ...)."""


class StorageError(ForumError):
    """Raised when the storage backend fails or a transaction is aborted."""


class TopicLockedError(ForumError):
    """Raised when replying to a locked topic."""

    def __init__(self, topic_id: object) -> None:
        super().__init__(f"Topic {topic_id} is locked")
        self.topic_id = topic_id


class PermissionDeniedError(ForumError):
    """Raised when a role lacks the capability for an action."""

    def __init__(self, role: str, action: str) -> None:
        super().__init__(f"Role '{role}' may not {action}")
        self.role = role
        self.action = action
