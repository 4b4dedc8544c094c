"""
Admin session handling.

Login exchanges the admin password for a signed, expiring session token
stored in an HTTP-only cookie. ``AdminGuardMiddleware`` checks that cookie
on every guarded path.
"""

from __future__ import annotations

import hmac
import logging
import secrets
import time
import uuid
from typing import Any, Dict, Optional

import jwt
from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .configuration import AuthConfig

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SESSION_SUBJECT = "admin"


class SessionManager:
    def __init__(self, config: AuthConfig):
        self.config = config
        secret = config.session_secret
        if not secret:
            logger.warning("ADMIN_SESSION_SECRET is not set; sessions will not survive a restart.")
            secret = secrets.token_urlsafe(48)
        self._secret = secret

    @property
    def login_enabled(self) -> bool:
        return bool(self.config.admin_password)

    def verify_password(self, candidate: Any) -> bool:
        expected = self.config.admin_password
        if not expected or not isinstance(candidate, str):
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))

    def issue_token(self, now: Optional[float] = None) -> str:
        issued_at = int(now if now is not None else time.time())
        payload = {
            "sub": SESSION_SUBJECT,
            "iat": issued_at,
            "exp": issued_at + self.config.session_max_age_seconds,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def decode_token(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected admin session: %s", exc)
            return None
        if claims.get("sub") != SESSION_SUBJECT:
            return None
        return claims

    def is_authenticated(self, request: Request) -> bool:
        return self.decode_token(request.cookies.get(self.config.cookie_name)) is not None

    def set_session_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            key=self.config.cookie_name,
            value=token,
            max_age=self.config.session_max_age_seconds,
            httponly=True,
            secure=self.config.cookie_secure,
            samesite="strict",
            path="/",
        )

    def clear_session_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.config.cookie_name,
            path="/",
            httponly=True,
            secure=self.config.cookie_secure,
            samesite="strict",
        )

    def is_guarded(self, path: str) -> bool:
        cfg = self.config
        if not (path == cfg.protected_prefix or path.startswith(cfg.protected_prefix.rstrip("/") + "/")):
            return False
        if path == cfg.login_path:
            return False
        if path == cfg.api_prefix or path.startswith(cfg.api_prefix.rstrip("/") + "/"):
            return False
        return True


class AdminGuardMiddleware(BaseHTTPMiddleware):
    """Redirect guarded requests without a valid session to the login page."""

    def __init__(self, app, sessions: SessionManager):
        super().__init__(app)
        self.sessions = sessions

    async def dispatch(self, request: Request, call_next):
        if self.sessions.is_guarded(request.url.path) and not self.sessions.is_authenticated(request):
            return RedirectResponse(url=self.sessions.config.login_path, status_code=307)
        return await call_next(request)
