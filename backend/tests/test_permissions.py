import pytest

from forum_engine.core.exceptions import PermissionDeniedError
from forum_engine.models.user import UserRole
from forum_engine.modules.forum.permissions import Action, can, require


@pytest.mark.parametrize(
    ("role", "allowed"),
    [
        (UserRole.VIEWER, {Action.CREATE_TOPIC, Action.CREATE_REPLY, Action.LIKE_REPLY}),
        (
            UserRole.EDITOR,
            {
                Action.CREATE_TOPIC,
                Action.CREATE_REPLY,
                Action.LIKE_REPLY,
                Action.MODERATE_TOPIC,
                Action.MARK_SOLUTION,
                Action.MODERATE_REPLY,
            },
        ),
        (UserRole.ADMIN, set(Action)),
    ],
)
def test_capability_table(role, allowed):
    assert {action for action in Action if can(role, action)} == allowed


def test_require_raises_for_missing_capability():
    require(UserRole.ADMIN, Action.MANAGE_CATEGORIES)

    with pytest.raises(PermissionDeniedError) as exc_info:
        require(UserRole.EDITOR, Action.MANAGE_CATEGORIES)

    assert exc_info.value.role == "editor"
    assert exc_info.value.action == "manage_categories"
