"""Session identity: signed session tokens, OAuth code exchange and principal lookup."""
import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

import httpx
import jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings
from app.models.user import User
from app.services import storage

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
OAUTH_TIMEOUT_SECONDS = 15.0
DEV_OPEN_ID = "dev-user-local"
DEV_USER_NAME = "Development User"


class OAuthError(Exception):
    """The provider rejected the exchange or returned an unusable profile."""


class MissingOpenId(OAuthError):
    """User info came back without an ``openId`` or ``sub``."""


@dataclass(frozen=True)
class OAuthProfile:
    open_id: str
    name: Optional[str]
    email: Optional[str]
    login_method: Optional[str]


def create_session_token(settings: Settings, open_id: str, name: str = "") -> str:
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET is not configured")
    now = storage.now_utc()
    payload = {
        "sub": open_id,
        "name": name,
        "appId": settings.OAUTH_CLIENT_ID,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.SESSION_TTL_SECONDS)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_session_token(settings: Settings, token: Optional[str]) -> Optional[str]:
    """Return the open id carried by a valid token, else ``None``."""
    if not token or not settings.JWT_SECRET:
        return None
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected session token: %s", exc)
        return None
    open_id = payload.get("sub")
    if not isinstance(open_id, str) or not open_id:
        logger.warning("Session token without subject")
        return None
    return open_id


def resolve_principal(db: Optional[Session], settings: Settings, token: Optional[str]) -> Optional[User]:
    """Map a session token to its user. Never raises."""
    open_id = verify_session_token(settings, token)
    if open_id is None:
        return None
    try:
        user = storage.get_user_by_open_id(db, open_id)
    except SQLAlchemyError:
        logger.exception("Failed to load user for session %s", open_id)
        return None
    if user is None:
        logger.warning("Session refers to unknown user %s", open_id)
    return user


def decode_state(state: str) -> str:
    """The OAuth ``state`` carries the redirect URI, base64 encoded."""
    padded = state + "=" * (-len(state) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode()).decode()
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise OAuthError("Invalid OAuth state") from exc


def _json_object(response: httpx.Response, what: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise OAuthError(f"{what} returned a non-JSON body") from exc
    if not isinstance(body, dict):
        raise OAuthError(f"{what} returned an unexpected body")
    return body


def exchange_code_for_token(settings: Settings, code: str, state: str) -> str:
    data = {
        "grant_type": "authorization_code",
        "client_id": settings.OAUTH_CLIENT_ID,
        "client_secret": settings.OAUTH_CLIENT_SECRET,
        "code": code,
        "redirect_uri": decode_state(state),
    }
    url = f"{settings.OAUTH_SERVER_URL.rstrip('/')}/oauth/token"
    response = httpx.post(url, data=data, timeout=OAUTH_TIMEOUT_SECONDS)
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        detail = response.text.strip()
        raise OAuthError(f"Token exchange failed ({response.status_code}). {detail}") from exc
    access_token = _json_object(response, "Token exchange").get("access_token")
    if not access_token:
        raise OAuthError("Token exchange returned no access_token")
    return access_token


def fetch_user_info(settings: Settings, access_token: str) -> dict[str, Any]:
    url = f"{settings.OAUTH_SERVER_URL.rstrip('/')}/userinfo"
    response = httpx.get(
        url,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=OAUTH_TIMEOUT_SECONDS,
    )
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise OAuthError(f"User info request failed ({response.status_code})") from exc
    return _json_object(response, "User info request")


def profile_from_user_info(info: dict[str, Any]) -> OAuthProfile:
    open_id = info.get("openId") or info.get("sub")
    if not open_id:
        raise MissingOpenId("openId missing from user info")
    return OAuthProfile(
        open_id=str(open_id),
        name=info.get("name") or None,
        email=info.get("email") or None,
        login_method=info.get("loginMethod") or info.get("platform") or None,
    )


def sign_in(db: Optional[Session], settings: Settings, profile: OAuthProfile) -> str:
    """Record the login and return a fresh session token."""
    storage.upsert_user(
        db,
        profile.open_id,
        owner_open_id=settings.OWNER_OPEN_ID,
        name=profile.name,
        email=profile.email,
        login_method=profile.login_method,
    )
    return create_session_token(settings, profile.open_id, profile.name or "")


def sign_in_dev_user(db: Optional[Session], settings: Settings) -> str:
    """Create (as admin) or refresh the local development user."""
    if storage.get_user_by_open_id(db, DEV_OPEN_ID) is None:
        storage.upsert_user(
            db,
            DEV_OPEN_ID,
            name=DEV_USER_NAME,
            email="dev@localhost",
            login_method="development",
            role="admin",
        )
    else:
        storage.upsert_user(db, DEV_OPEN_ID)
    return create_session_token(settings, DEV_OPEN_ID, DEV_USER_NAME)
