"""Admin RBAC for the session operations API.

Admins authenticate with either the legacy shared `ADMIN_TOKEN` (sent as
``X-Admin-Token``) or a ``Bearer`` HS256 JWT signed with `ADMIN_JWT_SECRET`
that carries ``role: admin``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .config import Settings

logger = logging.getLogger(__name__)


class InvalidTokenError(Exception):
    """Raised when a JWT token cannot be verified."""


def _verify_jwt(token: str, secret: str) -> dict:
    """Verify and return the JWT payload."""
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.PyJWTError as exc:
        raise InvalidTokenError("Invalid JWT token") from exc


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def is_admin(authorization: Optional[str], x_admin_token: Optional[str], settings: Settings) -> bool:
    """Return True if the provided credentials authorize an admin action."""
    if settings.admin_token and x_admin_token and x_admin_token == settings.admin_token:
        return True

    token = _bearer(authorization)
    if settings.admin_jwt_secret and token:
        try:
            payload = _verify_jwt(token, settings.admin_jwt_secret)
        except InvalidTokenError as e:
            logger.info("Rejected admin bearer token: %s", e)
            return False
        return payload.get("role") == "admin" or bool(payload.get("is_admin"))

    return False


def mint_admin_token(settings: Settings, subject: str = "admin", minutes: int = 30) -> str:
    """Issue a short-lived admin JWT; requires `ADMIN_JWT_SECRET`."""
    if not settings.admin_jwt_secret:
        raise InvalidTokenError("ADMIN_JWT_SECRET not configured")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": "admin",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.admin_jwt_secret, algorithm="HS256")
