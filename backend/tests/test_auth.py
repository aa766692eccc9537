"""Tests for session identity, user upsert and the auth endpoints."""
import base64
from datetime import timedelta

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.config import Settings, settings
from app.database import StorageUnavailable, get_db
from app.main import create_app
from app.models.user import Role, User
from app.services import identity, storage
from tests.conftest import SQLITE_URL, create_test_user, login

OAUTH_URL = "https://auth.example.test"


@pytest.fixture
def make_client(db_engine):
    """Build a separate app from explicit settings, wired to the test database."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    clients = []

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    def _make(**overrides):
        values = {"DATABASE_URL": SQLITE_URL, "JWT_SECRET": "test-secret", "OWNER_OPEN_ID": "owner-open-id"}
        values.update(overrides)
        app = create_app(Settings(**values))
        app.dependency_overrides[get_db] = _override_get_db
        c = TestClient(app, follow_redirects=False)
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.close()


def _state(redirect_uri: str = "http://localhost:3000/api/oauth/callback") -> str:
    return base64.b64encode(redirect_uri.encode()).decode()


class TestUserUpsert:
    """Insert-or-update keyed by open id."""

    def test_owner_is_promoted(self, db):
        user = storage.upsert_user(db, "owner-open-id", owner_open_id="owner-open-id", name="Owner")
        assert user.role == Role.admin

    def test_other_users_default_to_user(self, db):
        user = storage.upsert_user(db, "someone", owner_open_id="owner-open-id", name="Someone")
        assert user.role == Role.user

    def test_explicit_role_wins_over_owner_rule(self, db):
        user = storage.upsert_user(db, "owner-open-id", owner_open_id="owner-open-id", role="user")
        assert user.role == Role.user

    def test_update_keeps_single_row_and_unset_fields(self, db):
        storage.upsert_user(db, "abc", name="Ana", email="ana@example.com")
        storage.upsert_user(db, "abc", name="Ana María")
        rows = db.query(User).filter(User.open_id == "abc").all()
        assert len(rows) == 1
        assert rows[0].name == "Ana María"
        assert rows[0].email == "ana@example.com"

    def test_empty_login_method_is_stored_as_null(self, db):
        user = storage.upsert_user(db, "abc", login_method="")
        assert user.login_method is None

    def test_open_id_required(self, db):
        with pytest.raises(ValueError):
            storage.upsert_user(db, "")


class TestPrincipalResolution:
    """Bad sessions resolve to no principal rather than an error."""

    def test_valid_token_resolves_user(self, db):
        user = create_test_user(db, name="Alice")
        token = identity.create_session_token(settings, user.open_id, "Alice")
        principal = identity.resolve_principal(db, settings, token)
        assert principal is not None
        assert principal.id == user.id

    def test_missing_token(self, db):
        assert identity.resolve_principal(db, settings, None) is None

    def test_garbage_token(self, db):
        assert identity.resolve_principal(db, settings, "not-a-jwt") is None

    def test_token_signed_with_other_secret(self, db):
        create_test_user(db, name="Alice")
        forged = jwt.encode({"sub": "oid-alice"}, "other-secret", algorithm="HS256")
        assert identity.resolve_principal(db, settings, forged) is None

    def test_expired_token(self, db):
        create_test_user(db, name="Alice")
        expired = settings.model_copy(update={"SESSION_TTL_SECONDS": -60})
        token = identity.create_session_token(expired, "oid-alice")
        assert identity.resolve_principal(db, settings, token) is None

    def test_unknown_user(self, db):
        token = identity.create_session_token(settings, "nobody")
        assert identity.resolve_principal(db, settings, token) is None

    def test_no_storage(self):
        token = identity.create_session_token(settings, "oid-alice")
        assert identity.resolve_principal(None, settings, token) is None

    def test_token_expiry_follows_ttl(self):
        token = identity.create_session_token(settings, "oid-alice")
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        assert claims["sub"] == "oid-alice"
        assert timedelta(seconds=claims["exp"] - claims["iat"]) == timedelta(seconds=settings.SESSION_TTL_SECONDS)


class TestMeAndLogout:

    def test_me_anonymous(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 200
        assert resp.json() is None

    def test_me_signed_in(self, client, db):
        login(client, create_test_user(db, name="Admin", role="admin"))
        body = client.get("/api/auth/me").json()
        assert body["name"] == "Admin"
        assert body["role"] == "admin"

    def test_me_with_bad_cookie(self, client):
        client.cookies.set(settings.SESSION_COOKIE_NAME, "garbage")
        assert client.get("/api/auth/me").json() is None

    def test_logout_clears_cookie(self, client, db):
        login(client, create_test_user(db, name="Alice"))
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        cookie_header = resp.headers["set-cookie"]
        assert cookie_header.startswith(f"{settings.SESSION_COOKIE_NAME}=")
        assert "Max-Age=0" in cookie_header


class TestDevLogin:
    """Local admin login when no OAuth provider is configured."""

    def test_creates_admin_and_sets_cookie(self, client, db):
        resp = client.post("/api/dev/login")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Logged in as development user"}
        assert settings.SESSION_COOKIE_NAME in resp.cookies

        me = client.get("/api/auth/me").json()
        assert me["open_id"] == identity.DEV_OPEN_ID
        assert me["role"] == "admin"

    def test_second_login_reuses_user(self, client, db):
        client.post("/api/dev/login")
        client.post("/api/dev/login")
        assert db.query(User).filter(User.open_id == identity.DEV_OPEN_ID).count() == 1

    def test_dev_admin_can_create_products(self, client):
        client.post("/api/dev/login")
        assert client.post("/api/products/", json={"name": "Arepa", "price": 3000}).status_code == 201

    def test_refused_without_secret(self, make_client):
        c = make_client(JWT_SECRET="")
        resp = c.post("/api/dev/login")
        assert resp.status_code == 500
        assert "JWT_SECRET" in resp.json()["details"]

    def test_not_registered_when_oauth_configured(self, make_client):
        c = make_client(OAUTH_SERVER_URL=OAUTH_URL)
        assert c.post("/api/dev/login").status_code == 404


class TestOAuthCallback:

    def test_not_configured(self, client):
        resp = client.get("/api/oauth/callback", params={"code": "c", "state": _state()})
        assert resp.status_code == 400
        assert resp.json()["error"] == "OAuth is not configured"

    def test_provider_error(self, make_client):
        c = make_client(OAUTH_SERVER_URL=OAUTH_URL)
        resp = c.get("/api/oauth/callback", params={"error": "access_denied", "error_description": "User said no"})
        assert resp.status_code == 400
        assert resp.json()["details"] == "User said no"

    def test_missing_code(self, make_client):
        c = make_client(OAUTH_SERVER_URL=OAUTH_URL)
        resp = c.get("/api/oauth/callback", params={"state": _state()})
        assert resp.status_code == 400

    def test_success_upserts_and_redirects(self, make_client, db, monkeypatch):
        c = make_client(OAUTH_SERVER_URL=OAUTH_URL)
        monkeypatch.setattr(identity, "exchange_code_for_token", lambda s, code, state: "access-123")
        monkeypatch.setattr(identity, "fetch_user_info", lambda s, token: {
            "sub": "owner-open-id", "name": "Owner", "email": "owner@example.com", "platform": "google",
        })

        resp = c.get("/api/oauth/callback", params={"code": "abc", "state": _state()})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert settings.SESSION_COOKIE_NAME in resp.cookies

        user = db.query(User).filter(User.open_id == "owner-open-id").one()
        assert user.role == Role.admin
        assert user.login_method == "google"

    def test_profile_without_open_id(self, make_client, monkeypatch):
        c = make_client(OAUTH_SERVER_URL=OAUTH_URL)
        monkeypatch.setattr(identity, "exchange_code_for_token", lambda s, code, state: "access-123")
        monkeypatch.setattr(identity, "fetch_user_info", lambda s, token: {"name": "Nobody"})

        resp = c.get("/api/oauth/callback", params={"code": "abc", "state": _state()})
        assert resp.status_code == 400
        assert resp.json() == {"error": "openId missing from user info"}

    def test_non_json_user_info(self, make_client, monkeypatch):
        c = make_client(OAUTH_SERVER_URL=OAUTH_URL)
        monkeypatch.setattr(identity, "exchange_code_for_token", lambda s, code, state: "access-123")

        def _get(url, headers, timeout):
            return httpx.Response(200, text="<html>gateway</html>", request=httpx.Request("GET", url))

        monkeypatch.setattr(identity.httpx, "get", _get)
        resp = c.get("/api/oauth/callback", params={"code": "abc", "state": _state()})
        assert resp.status_code == 400
        assert resp.json() == {
            "error": "OAuth authentication failed",
            "details": "User info request returned a non-JSON body",
        }

    def test_storage_failure_during_sign_in(self, make_client, monkeypatch):
        c = make_client(OAUTH_SERVER_URL=OAUTH_URL)
        monkeypatch.setattr(identity, "exchange_code_for_token", lambda s, code, state: "access-123")
        monkeypatch.setattr(identity, "fetch_user_info", lambda s, token: {"sub": "abc"})

        def _unavailable(db, open_id, **kwargs):
            raise StorageUnavailable()

        monkeypatch.setattr(storage, "upsert_user", _unavailable)
        resp = c.get("/api/oauth/callback", params={"code": "abc", "state": _state()})
        assert resp.status_code == 500
        assert resp.json() == {"error": "OAuth callback failed", "details": "Database not available"}

    def test_network_failure(self, make_client, monkeypatch):
        c = make_client(OAUTH_SERVER_URL=OAUTH_URL)

        def _boom(s, code, state):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(identity, "exchange_code_for_token", _boom)
        resp = c.get("/api/oauth/callback", params={"code": "abc", "state": _state()})
        assert resp.status_code == 500
        assert resp.json()["error"] == "OAuth callback failed"


class TestOAuthExchange:
    """The token request sent to the provider."""

    def test_posts_code_and_decoded_redirect(self, monkeypatch):
        captured = {}

        def _post(url, data, timeout):
            captured.update(url=url, data=data)
            return httpx.Response(200, json={"access_token": "tok"}, request=httpx.Request("POST", url))

        monkeypatch.setattr(identity.httpx, "post", _post)
        cfg = Settings(OAUTH_SERVER_URL=OAUTH_URL + "/", OAUTH_CLIENT_ID="app", OAUTH_CLIENT_SECRET="shh")
        redirect = "https://orders.example.test/api/oauth/callback"

        assert identity.exchange_code_for_token(cfg, "abc", _state(redirect)) == "tok"
        assert captured["url"] == f"{OAUTH_URL}/oauth/token"
        assert captured["data"]["redirect_uri"] == redirect
        assert captured["data"]["grant_type"] == "authorization_code"
        assert captured["data"]["client_secret"] == "shh"

    def test_rejected_exchange(self, monkeypatch):
        def _post(url, data, timeout):
            return httpx.Response(401, text="bad code", request=httpx.Request("POST", url))

        monkeypatch.setattr(identity.httpx, "post", _post)
        cfg = Settings(OAUTH_SERVER_URL=OAUTH_URL)
        with pytest.raises(identity.OAuthError, match="401"):
            identity.exchange_code_for_token(cfg, "abc", _state())

    def test_exchange_with_non_json_body(self, monkeypatch):
        def _post(url, data, timeout):
            return httpx.Response(200, text="ok", request=httpx.Request("POST", url))

        monkeypatch.setattr(identity.httpx, "post", _post)
        cfg = Settings(OAUTH_SERVER_URL=OAUTH_URL)
        with pytest.raises(identity.OAuthError, match="non-JSON"):
            identity.exchange_code_for_token(cfg, "abc", _state())

    def test_profile_falls_back_to_sub_and_platform(self):
        profile = identity.profile_from_user_info({"sub": "x1", "name": "", "platform": "github"})
        assert profile.open_id == "x1"
        assert profile.name is None
        assert profile.login_method == "github"
