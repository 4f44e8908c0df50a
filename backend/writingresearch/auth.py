from __future__ import annotations

import hmac
import secrets
import threading
import time
from typing import Any
from uuid import uuid4

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from writingresearch.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)
_TOKEN_ALGORITHM = "HS256"
_TOKEN_AUDIENCE = "writingresearch-admin"


def _auth_unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _auth_misconfigured(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


class AdminAuthenticator:
    """Password login issuing short-lived signed admin tokens; logout revokes by token id."""

    def __init__(self, settings: Settings) -> None:
        self._password = settings.admin_password
        # Without a configured secret, tokens stop validating after a restart.
        self._secret = settings.admin_token_secret or secrets.token_urlsafe(32)
        self.ttl_seconds = max(60, int(settings.admin_token_ttl_seconds))
        self._revoked: dict[str, float] = {}
        self._lock = threading.Lock()

    def login(self, password: str) -> dict[str, Any]:
        if not self._password:
            raise _auth_misconfigured("Admin login is disabled. Set ADMIN_PASSWORD to enable it.")
        if not hmac.compare_digest(str(password or "").encode("utf-8"), self._password.encode("utf-8")):
            raise _auth_unauthorized("Incorrect admin password.")
        return self.issue_token()

    def issue_token(self) -> dict[str, Any]:
        issued_at = int(time.time())
        expires_at = issued_at + self.ttl_seconds
        claims = {
            "sub": "admin",
            "aud": _TOKEN_AUDIENCE,
            "jti": uuid4().hex,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(claims, self._secret, algorithm=_TOKEN_ALGORITHM)
        return {"token": token, "expires_at": expires_at * 1000}

    def validate(self, token: str) -> dict[str, Any]:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[_TOKEN_ALGORITHM], audience=_TOKEN_AUDIENCE)
        except JWTError as exc:
            raise _auth_unauthorized(f"Invalid or expired admin token: {exc}") from exc
        with self._lock:
            if str(claims.get("jti") or "") in self._revoked:
                raise _auth_unauthorized("Admin token has been revoked.")
        return claims

    def revoke(self, claims: dict[str, Any]) -> None:
        now = time.time()
        with self._lock:
            self._revoked = {jti: expiry for jti, expiry in self._revoked.items() if expiry > now}
            self._revoked[str(claims.get("jti") or "")] = float(claims.get("exp") or now)


def get_admin_authenticator(request: Request) -> AdminAuthenticator:
    return request.app.state.admin_auth


def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    authenticator: AdminAuthenticator = Depends(get_admin_authenticator),
) -> dict[str, Any]:
    if credentials is None:
        raise _auth_unauthorized("Missing bearer token.")
    if credentials.scheme.lower() != "bearer":
        raise _auth_unauthorized("Unsupported authorization scheme.")
    token = credentials.credentials.strip()
    if not token:
        raise _auth_unauthorized("Missing bearer token.")
    return authenticator.validate(token)


def require_api_key(request: Request) -> None:
    expected = str(request.app.state.settings.api_key or "")
    if not expected:
        return
    provided = request.headers.get("X-API-Key", "")
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key.")
