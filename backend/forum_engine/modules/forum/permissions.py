"""
Role capability table.

Capabilities are looked up, not derived from role comparisons. Adding a
role or action means adding a row or column here.
"""

from enum import Enum as PyEnum

from forum_engine.core.exceptions import PermissionDeniedError
from forum_engine.models.user import UserRole


class Action(str, PyEnum):
    """Forum action that needs a capability."""

    CREATE_TOPIC = "create_topic"
    CREATE_REPLY = "create_reply"
    MODERATE_TOPIC = "moderate_topic"
    MARK_SOLUTION = "mark_solution"
    LIKE_REPLY = "like_reply"
    MODERATE_REPLY = "moderate_reply"
    MANAGE_CATEGORIES = "manage_categories"


_VIEWER = frozenset({Action.CREATE_TOPIC, Action.CREATE_REPLY, Action.LIKE_REPLY})
_EDITOR = _VIEWER | {
    Action.MODERATE_TOPIC,
    Action.MARK_SOLUTION,
    Action.MODERATE_REPLY,
}

CAPABILITIES: dict[UserRole, frozenset[Action]] = {
    UserRole.VIEWER: _VIEWER,
    UserRole.EDITOR: _EDITOR,
    UserRole.ADMIN: frozenset(Action),
}


def can(role: UserRole, action: Action) -> bool:
    """Check whether the role holds the capability."""
    return action in CAPABILITIES.get(role, frozenset())


def require(role: UserRole, action: Action) -> None:
    """Raise PermissionDeniedError unless the role holds the capability."""
    if not can(role, action):
        raise PermissionDeniedError(role.value, action.value)
