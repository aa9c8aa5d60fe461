# This project was developed with assistance from AI tools.
"""Tests for JWT authentication middleware."""

import json
import time

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from db.enums import UserRole
from fastapi import Depends, FastAPI, HTTPException, WebSocket
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from eservice.core.config import settings
from eservice.middleware import auth
from eservice.middleware.auth import (
    WS_UNAUTHORIZED,
    CurrentUser,
    _resolve_role,
    authenticate_websocket,
    require_roles,
)
from eservice.schemas.auth import TokenPayload

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
_KID = "test-key-1"


def _jwks() -> dict:
    jwk = json.loads(jwt.algorithms.RSAAlgorithm.to_jwk(_PRIVATE_KEY.public_key()))
    jwk.update({"kid": _KID, "use": "sig", "alg": "RS256"})
    return {"keys": [jwk]}


def _token(roles, *, expires_in=300, **claims) -> str:
    payload = {
        "sub": "staff-1",
        "email": "staff1@dede.go.th",
        "name": "Inspector One",
        "iss": f"{settings.KEYCLOAK_URL}/realms/{settings.KEYCLOAK_REALM}",
        "exp": int(time.time()) + expires_in,
        "realm_access": {"roles": roles},
    }
    payload.update(claims)
    return jwt.encode(payload, _PRIVATE_KEY, algorithm="RS256", headers={"kid": _KID})


@pytest.fixture
def keycloak(monkeypatch):
    """Serve the test JWKS instead of fetching from Keycloak."""
    monkeypatch.setattr(settings, "AUTH_DISABLED", False)
    monkeypatch.setattr(auth, "_jwks_data", None)
    monkeypatch.setattr(auth, "_jwks_fetched_at", 0)
    monkeypatch.setattr(auth, "_fetch_jwks", _jwks)


def _me_app() -> FastAPI:
    app = FastAPI()

    @app.get("/me")
    async def me(user: CurrentUser):
        return {"user_id": user.user_id, "role": user.role.value, "name": user.name}

    return app


# ---------------------------------------------------------------------------
# AUTH_DISABLED bypass
# ---------------------------------------------------------------------------


def test_auth_disabled_returns_dev_admin(monkeypatch):
    """When AUTH_DISABLED=true, any request gets a dev admin user."""
    monkeypatch.setattr(settings, "AUTH_DISABLED", True)

    resp = TestClient(_me_app()).get("/me")

    assert resp.status_code == 200
    body = resp.json()
    assert body["user_id"] == "dev-user"
    assert body["role"] == "admin"


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------


def test_missing_token_returns_401(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_DISABLED", False)

    resp = TestClient(_me_app()).get("/me")

    assert resp.status_code == 401
    assert "Missing authentication token" in resp.json()["detail"]
    assert resp.headers["www-authenticate"] == "Bearer"


def test_valid_token_yields_user_context(keycloak):
    token = _token(["offline_access", "dede_staff"])

    resp = TestClient(_me_app()).get("/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert resp.json() == {"user_id": "staff-1", "role": "dede_staff", "name": "Inspector One"}


def test_expired_token_returns_401(keycloak):
    token = _token(["dede_staff"], expires_in=-60)

    resp = TestClient(_me_app()).get("/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token has expired"


def test_wrong_issuer_returns_401(keycloak):
    token = _token(["dede_staff"], iss="https://elsewhere.example/realms/other")

    resp = TestClient(_me_app()).get("/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


def test_unknown_kid_refreshes_once_then_401(keycloak, monkeypatch):
    calls = []

    def empty_jwks():
        calls.append(1)
        return {"keys": []}

    monkeypatch.setattr(auth, "_fetch_jwks", empty_jwks)
    token = _token(["dede_staff"])

    resp = TestClient(_me_app()).get("/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 401
    assert len(calls) == 2


def test_keycloak_down_returns_503(keycloak, monkeypatch):
    def unreachable():
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(auth, "_fetch_jwks", unreachable)
    token = _token(["dede_staff"])

    resp = TestClient(_me_app()).get("/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 503


def test_token_without_known_role_returns_403(keycloak):
    token = _token(["offline_access", "uma_authorization"])

    resp = TestClient(_me_app()).get("/me", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 403


def test_jwks_is_cached(keycloak, monkeypatch):
    calls = []

    def counting_jwks():
        calls.append(1)
        return _jwks()

    monkeypatch.setattr(auth, "_fetch_jwks", counting_jwks)
    client = TestClient(_me_app())
    for _ in range(3):
        token = _token(["dede_head"])
        assert client.get("/me", headers={"Authorization": f"Bearer {token}"}).status_code == 200

    assert len(calls) == 1


# ---------------------------------------------------------------------------
# Role resolution
# ---------------------------------------------------------------------------


def test_resolve_role_picks_known_role():
    """_resolve_role returns the first known role from token claims."""
    payload = TokenPayload(
        sub="user-1",
        realm_access={"roles": ["offline_access", "dede_consult", "uma_authorization"]},
    )
    assert _resolve_role(payload) == UserRole.DEDE_CONSULT


def test_resolve_role_no_known_role_raises_403():
    payload = TokenPayload(
        sub="user-1",
        realm_access={"roles": ["offline_access", "uma_authorization"]},
    )

    with pytest.raises(HTTPException) as exc_info:
        _resolve_role(payload)

    assert exc_info.value.status_code == 403


# ---------------------------------------------------------------------------
# require_roles dependency
# ---------------------------------------------------------------------------


def test_require_roles_rejects_wrong_role(monkeypatch):
    """require_roles returns 403 when user's role is not in allowed set."""
    monkeypatch.setattr(settings, "AUTH_DISABLED", True)

    app = FastAPI()

    @app.get("/head-only", dependencies=[Depends(require_roles(UserRole.DEDE_HEAD))])
    async def head_only(user: CurrentUser):
        return {"ok": True}

    # dev-user is admin, not head
    resp = TestClient(app).get("/head-only")
    assert resp.status_code == 403
    assert "Insufficient permissions" in resp.json()["detail"]


def test_require_roles_allows_listed_role(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_DISABLED", True)

    app = FastAPI()

    @app.get("/ops", dependencies=[Depends(require_roles(UserRole.ADMIN, UserRole.DEDE_HEAD))])
    async def ops(user: CurrentUser):
        return {"ok": True}

    assert TestClient(app).get("/ops").status_code == 200


# ---------------------------------------------------------------------------
# WebSocket authentication
# ---------------------------------------------------------------------------


def _ws_app() -> FastAPI:
    app = FastAPI()

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket):
        await ws.accept()
        user = await authenticate_websocket(ws)
        if user is None:
            return
        await ws.send_json({"user_id": user.user_id, "role": user.role.value})
        await ws.close()

    return app


def test_websocket_valid_token(keycloak):
    token = _token(["dede_staff"])

    with TestClient(_ws_app()).websocket_connect(f"/ws?token={token}") as ws:
        assert ws.receive_json() == {"user_id": "staff-1", "role": "dede_staff"}


@pytest.mark.parametrize(
    "query",
    ["", "?token=garbage"],
    ids=["missing", "malformed"],
)
def test_websocket_rejected_with_4001(keycloak, query):
    with TestClient(_ws_app()).websocket_connect(f"/ws{query}") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()

    assert exc_info.value.code == WS_UNAUTHORIZED


def test_websocket_unrecognised_role_is_4001(keycloak):
    token = _token(["offline_access"])

    with TestClient(_ws_app()).websocket_connect(f"/ws?token={token}") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()

    assert exc_info.value.code == WS_UNAUTHORIZED
