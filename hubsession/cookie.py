"""Session cookie model and Set-Cookie/Cookie header helpers."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote, unquote


@dataclass
class CookieOptions:
    """Cookie attributes applied to every new session.

    ``max_age`` is in seconds; None issues a browser-session cookie that
    carries no Expires attribute.
    """
    path: str = "/"
    http_only: bool = True
    secure: bool = False
    max_age: Optional[float] = None
    domain: Optional[str] = None
    same_site: Optional[str] = "lax"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionCookie:
    """The cookie attached to one session, including its current expiry."""

    def __init__(self, options: Optional[CookieOptions] = None) -> None:
        opts = options or CookieOptions()
        self.path = opts.path
        self.http_only = opts.http_only
        self.secure = opts.secure
        self.domain = opts.domain
        self.same_site = opts.same_site
        self.original_max_age = opts.max_age
        self.expires: Optional[datetime] = None
        self.max_age = opts.max_age

    @property
    def max_age(self) -> Optional[float]:
        """Seconds until the cookie expires, or None for a session cookie."""
        if self.expires is None:
            return None
        return (self.expires - _utcnow()).total_seconds()

    @max_age.setter
    def max_age(self, value: Optional[float]) -> None:
        if value is None:
            self.expires = None
        else:
            self.expires = _utcnow() + timedelta(seconds=value)

    def reset_max_age(self) -> None:
        self.max_age = self.original_max_age

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalMaxAge": self.original_max_age,
            "expires": self.expires.isoformat() if self.expires else None,
            "secure": self.secure,
            "httpOnly": self.http_only,
            "domain": self.domain,
            "path": self.path,
            "sameSite": self.same_site,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], defaults: Optional[CookieOptions] = None) -> "SessionCookie":
        """Rebuild a cookie from its stored form, falling back to ``defaults``."""
        cookie = cls(defaults)
        if not data:
            return cookie
        cookie.original_max_age = data.get("originalMaxAge", cookie.original_max_age)
        cookie.secure = data.get("secure", cookie.secure)
        cookie.http_only = data.get("httpOnly", cookie.http_only)
        cookie.domain = data.get("domain", cookie.domain)
        cookie.path = data.get("path", cookie.path)
        cookie.same_site = data.get("sameSite", cookie.same_site)
        expires = data.get("expires")
        if expires:
            dt = datetime.fromisoformat(str(expires).replace("Z", "+00:00"))
            cookie.expires = dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
        else:
            cookie.expires = None
        return cookie

    def serialize(self, name: str, value: str) -> str:
        """Render a Set-Cookie header value for ``name=value``."""
        parts = [f"{name}={quote(value, safe='')}"]
        if self.path:
            parts.append(f"Path={self.path}")
        if self.expires is not None:
            parts.append(f"Expires={format_datetime(self.expires.astimezone(timezone.utc), usegmt=True)}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.http_only:
            parts.append("HttpOnly")
        if self.secure:
            parts.append("Secure")
        if self.same_site:
            parts.append(f"SameSite={self.same_site.capitalize()}")
        return "; ".join(parts)

    def __repr__(self) -> str:
        return f"SessionCookie(expires={self.expires!r}, path={self.path!r})"


def parse_cookie_header(header: Optional[str]) -> Dict[str, str]:
    """Parse a request ``Cookie`` header into a name -> decoded value dict.

    The first occurrence of a name wins.
    """
    cookies: Dict[str, str] = {}
    if not header:
        return cookies
    for chunk in header.split(";"):
        name, sep, value = chunk.partition("=")
        if not sep:
            continue
        name = name.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        if name and name not in cookies:
            cookies[name] = unquote(value)
    return cookies


def find_set_cookie(values: Iterable[str], name: str) -> Optional[str]:
    """Return the Set-Cookie value whose cookie name is ``name`` (case-insensitive)."""
    wanted = name.lower()
    for raw in values:
        first = raw.split(";", 1)[0]
        cookie_name = unquote(first.split("=", 1)[0].strip().lower())
        if cookie_name == wanted:
            return raw
    return None
