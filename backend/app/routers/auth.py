"""Auth API routes: current user, logout, OAuth callback and development login."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from app.config import Settings
from app.database import get_db
from app.dependencies import get_optional_user, get_settings
from app.models.user import User
from app.schemas.common import SuccessOut
from app.schemas.user import UserOut
from app.services import identity, storage

logger = logging.getLogger(__name__)
router = APIRouter()
oauth_router = APIRouter()
dev_router = APIRouter()


def _is_secure(request: Request) -> bool:
    forwarded = request.headers.get("x-forwarded-proto", "")
    protocols = [p.strip().lower() for p in forwarded.split(",") if p.strip()]
    return request.url.scheme == "https" or "https" in protocols


def set_session_cookie(response: Response, request: Request, settings: Settings, token: str) -> None:
    secure = _is_secure(request)
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.SESSION_TTL_SECONDS,
        path="/",
        httponly=True,
        secure=secure,
        samesite="none" if secure else "lax",
    )


def clear_session_cookie(response: Response, request: Request, settings: Settings) -> None:
    secure = _is_secure(request)
    response.delete_cookie(
        settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=secure,
        samesite="none" if secure else "lax",
    )


@router.get("/me", response_model=Optional[UserOut])
def me(user: Optional[User] = Depends(get_optional_user)):
    """The signed-in user, or null."""
    return user


@router.post("/logout", response_model=SuccessOut)
def logout(request: Request, response: Response, settings: Settings = Depends(get_settings)):
    clear_session_cookie(response, request, settings)
    return SuccessOut()


@oauth_router.get("/callback")
def oauth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    db: Optional[Session] = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Exchange the provider's code, upsert the user and start a session."""
    if not settings.oauth_configured:
        logger.error("OAuth callback called but OAuth is not configured")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "OAuth is not configured", "details": "Set OAUTH_SERVER_URL"},
        )
    if error:
        logger.error("OAuth provider error: %s %s", error, error_description)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "OAuth authentication failed", "details": error_description or error},
        )
    if not code or not state:
        logger.error("OAuth callback missing code or state (code=%s, state=%s)", bool(code), bool(state))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "code and state are required"},
        )

    try:
        access_token = identity.exchange_code_for_token(settings, code, state)
        profile = identity.profile_from_user_info(identity.fetch_user_info(settings, access_token))
        token = identity.sign_in(db, settings, profile)
    except identity.MissingOpenId as exc:
        logger.error("OAuth user info without open id")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})
    except identity.OAuthError as exc:
        logger.error("OAuth callback rejected: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "OAuth authentication failed", "details": str(exc)},
        )
    except Exception as exc:
        # includes network and storage failures
        logger.exception("OAuth callback failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "OAuth callback failed", "details": str(exc)},
        )

    logger.info("OAuth login for %s", profile.open_id)
    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    set_session_cookie(response, request, settings, token)
    return response


@dev_router.post("/login", response_model=SuccessOut)
def dev_login(
    request: Request,
    db: Optional[Session] = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Sign in as a local admin without an OAuth provider."""
    if not settings.JWT_SECRET.strip():
        details = "JWT_SECRET is not configured. Please set JWT_SECRET in your .env file."
        logger.error("Dev login refused: %s", details)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to create development session", "details": details},
        )

    connection = storage.check_connection(db)
    if not connection["success"]:
        logger.error("Dev login refused: %s", connection["error"])
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to create development session", "details": connection["error"]},
        )

    token = identity.sign_in_dev_user(db, settings)
    response = JSONResponse(content={"success": True, "message": "Logged in as development user"})
    set_session_cookie(response, request, settings, token)
    logger.info("Development login for %s", identity.DEV_OPEN_ID)
    return response
