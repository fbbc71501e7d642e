"""Environment-driven settings for the session hub.

Every knob is read from an environment variable so the app can be
configured the same way locally, in CI and in containers.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in ("none", "null"):
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


DEFAULT_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


@dataclass
class Settings:
    """Runtime configuration for the middleware, the stores and the ops API."""

    secret: str = "dev-session-secret"
    cookie_name: str = "hub.sid"
    resave: bool = False
    save_uninitialized: bool = True
    rolling: bool = False
    cookie_max_age: Optional[float] = None
    cookie_secure: bool = False
    trust_proxy: bool = False

    store_backend: Optional[str] = None
    redis_url: Optional[str] = None
    sqlite_path: Optional[str] = None
    expiration: float = 86400
    check_expiration_interval: float = 900
    clear_expired: bool = True

    admin_token: Optional[str] = None
    admin_jwt_secret: Optional[str] = None
    audit_log_dir: str = "logs"
    cors_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    @property
    def admin_configured(self) -> bool:
        return bool(self.admin_token or self.admin_jwt_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            secret=os.getenv("SESSION_SECRET", cls.secret),
            cookie_name=os.getenv("SESSION_COOKIE_NAME", cls.cookie_name),
            resave=_env_bool("SESSION_RESAVE", cls.resave),
            save_uninitialized=_env_bool("SESSION_SAVE_UNINITIALIZED", cls.save_uninitialized),
            rolling=_env_bool("SESSION_ROLLING", cls.rolling),
            cookie_max_age=_env_float("SESSION_MAX_AGE", None),
            cookie_secure=_env_bool("SESSION_COOKIE_SECURE", cls.cookie_secure),
            trust_proxy=_env_bool("SESSION_TRUST_PROXY", cls.trust_proxy),
            store_backend=(os.getenv("SESSION_STORE") or None),
            redis_url=(os.getenv("REDIS_URL") or None),
            sqlite_path=(os.getenv("SESSION_SQLITE_PATH") or None),
            expiration=_env_float("SESSION_EXPIRATION", cls.expiration),
            check_expiration_interval=_env_float(
                "SESSION_CHECK_EXPIRATION_INTERVAL", cls.check_expiration_interval
            ),
            clear_expired=_env_bool("SESSION_CLEAR_EXPIRED", cls.clear_expired),
            admin_token=(os.getenv("ADMIN_TOKEN") or None),
            admin_jwt_secret=(os.getenv("ADMIN_JWT_SECRET") or None),
            audit_log_dir=os.getenv("AUDIT_LOG_DIR", cls.audit_log_dir),
            cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
        )
