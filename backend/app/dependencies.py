"""Shared FastAPI dependencies: settings and the calling principal."""
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.config import Settings
from app.database import get_db
from app.models.user import User
from app.services import identity
from app.services.authorization import require_principal


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_optional_user(
    request: Request,
    db: Optional[Session] = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[User]:
    """The signed-in user, or ``None`` for anonymous or invalid sessions."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    return identity.resolve_principal(db, settings, token)


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    return require_principal(user)
