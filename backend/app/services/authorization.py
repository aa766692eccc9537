"""Role checks for catalog and group-order mutations.

Reads of the catalog and of the active order are public; per-user reads only
need a signed-in caller (enforced by ``app.dependencies.get_current_user``).
"""
import logging
from typing import Optional

from fastapi import HTTPException, status

from app.models.user import Role, User

logger = logging.getLogger(__name__)

FORBIDDEN_MESSAGES = {
    "create_product": "Only administrators may create products",
    "update_product": "Only administrators may update products",
    "delete_product": "Only administrators may delete products",
    "create_group_order": "Only administrators may create group orders",
    "update_delivery_cost": "Only administrators may update the delivery cost",
    "close_group_order": "Only administrators may close group orders",
    "view_consolidated": "Only administrators may view the consolidated order",
}


def require_principal(principal: Optional[User]) -> User:
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return principal


def require_admin(principal: Optional[User], action: str) -> User:
    """Return the principal if it is an admin, else raise 401/403 naming ``action``."""
    user = require_principal(principal)
    if user.role != Role.admin:
        logger.warning("User %s denied '%s' (role=%s)", user.id, action, Role(user.role).value)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=FORBIDDEN_MESSAGES.get(action, "Only administrators may perform this action"),
        )
    return user
