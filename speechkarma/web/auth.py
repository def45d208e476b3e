"""
Identity helpers for the statement API.

The caller's identity travels in a signed token (itsdangerous), either as
the sk_session cookie or as an "Authorization: Bearer <token>" header.
A missing, malformed or badly signed token means an anonymous caller.
Anonymous callers may read; every write path rejects them.

Token issuance (sign-up, login) belongs to the identity provider and is
not handled here. create_session_token() only exists so development
tools and tests can mint tokens with the same secret.

For production:
- Set SPEECHKARMA_SESSION_SECRET to a 32+ character random string
- Set SPEECHKARMA_PRODUCTION=1
"""

import os
import warnings
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Request
from itsdangerous import BadSignature, URLSafeSerializer


# ============================================================
# CONFIGURATION
# ============================================================

SESSION_COOKIE = "sk_session"
SESSION_SALT = "speechkarma-session-v1"
DEV_SECRET = "dev-insecure-secret-do-not-use-in-production-12345678"


def _is_production() -> bool:
    return os.environ.get("SPEECHKARMA_PRODUCTION", "").lower() in ("1", "true", "yes")


_dev_secret_warned = False


@lru_cache(maxsize=8)
def _build_serializer(secret: str) -> URLSafeSerializer:
    return URLSafeSerializer(secret_key=secret, salt=SESSION_SALT)


def _serializer() -> URLSafeSerializer:
    global _dev_secret_warned

    secret = os.environ.get("SPEECHKARMA_SESSION_SECRET", "")
    if not secret or len(secret) < 16:
        if _is_production():
            raise RuntimeError(
                "SPEECHKARMA_SESSION_SECRET must be set in production. "
                "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )
        # Warn once per process, not once per request
        if not _dev_secret_warned:
            _dev_secret_warned = True
            warnings.warn(
                "SPEECHKARMA_SESSION_SECRET not set. Using insecure default.",
                stacklevel=2
            )
        secret = DEV_SECRET
    return _build_serializer(secret)


# ============================================================
# SESSION TOKENS
# ============================================================

@dataclass(frozen=True)
class SessionUser:
    user_id: UUID
    display_name: str


def create_session_token(user: SessionUser) -> str:
    """Sign a token for a user (development and tests only)."""
    return _serializer().dumps({"uid": str(user.user_id), "name": user.display_name})


def read_session_token(token: Optional[str]) -> Optional[SessionUser]:
    if not token:
        return None
    try:
        data = _serializer().loads(token)
        return SessionUser(
            user_id=UUID(str(data["uid"])),
            display_name=str(data.get("name") or "Anonymous contributor"),
        )
    except (BadSignature, KeyError, TypeError, ValueError):
        return None


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def get_session_user(request: Request) -> Optional[SessionUser]:
    """
    Resolve the caller from the request.

    The Authorization header wins over the cookie when both are present.
    """
    token = _bearer_token(request) or request.cookies.get(SESSION_COOKIE)
    return read_session_token(token)


def get_caller_id(request: Request) -> Optional[UUID]:
    """The verified caller's id, or None for an anonymous caller."""
    user = get_session_user(request)
    return user.user_id if user else None
