import pytest
from fastapi import HTTPException

from app.models.user import Role, User
from app.services.authorization import FORBIDDEN_MESSAGES, require_admin, require_principal


def _user(role: Role) -> User:
    return User(id=1, open_id="oid", name="Someone", role=role)


def test_admin_passes():
    admin = _user(Role.admin)
    assert require_admin(admin, "create_product") is admin


@pytest.mark.parametrize("action", sorted(FORBIDDEN_MESSAGES))
def test_user_is_forbidden_with_action_message(action):
    with pytest.raises(HTTPException) as exc_info:
        require_admin(_user(Role.user), action)
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == FORBIDDEN_MESSAGES[action]


def test_missing_principal_is_unauthorized_not_forbidden():
    with pytest.raises(HTTPException) as exc_info:
        require_admin(None, "create_product")
    assert exc_info.value.status_code == 401


def test_unknown_action_has_generic_message():
    with pytest.raises(HTTPException) as exc_info:
        require_admin(_user(Role.user), "launch_rocket")
    assert exc_info.value.detail == "Only administrators may perform this action"


def test_any_role_is_a_principal():
    user = _user(Role.user)
    assert require_principal(user) is user
