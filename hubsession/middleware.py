"""Cookie-based server-side session middleware.

The browser only ever holds a signed session id; the session data lives
in a `SessionStore`. On every HTTP request the middleware loads (or
generates) the session and installs it as ``scope["session"]`` so handlers
can use ``request.session``. When the response starts it decides whether
to send a cookie, write the session back, or only refresh its expiry.
"""

import logging
import secrets
from typing import Callable, Iterable, Optional, Tuple, Union

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from . import metrics
from .cookie import CookieOptions, SessionCookie, parse_cookie_header
from .session import Session
from .session_store_base import InMemorySessionStore, SessionStore
from .signing import normalize_secrets, sign, unsign

logger = logging.getLogger(__name__)

SIGNED_PREFIX = "s:"


def default_genid() -> str:
    return secrets.token_urlsafe(24)


class SessionMiddleware:
    """ASGI middleware giving each HTTP or WebSocket connection a server-side session.

    Options mirror express-session: `resave` writes back unchanged sessions,
    `save_uninitialized` stores new sessions that were never modified, and
    `rolling` resends the cookie on every response. Only HTTP responses carry
    cookies; WebSocket connections get a session but never a `Set-Cookie`.
    Store errors propagate, so a failing backend turns into a 500.
    """

    def __init__(
        self,
        app: ASGIApp,
        store: Optional[SessionStore] = None,
        secret: Union[str, Iterable[str], None] = None,
        name: str = "hub.sid",
        resave: bool = False,
        save_uninitialized: bool = True,
        rolling: bool = False,
        cookie: Optional[CookieOptions] = None,
        genid: Optional[Callable[[], str]] = None,
        proxy: bool = False,
    ) -> None:
        if secret is None:
            raise ValueError("a secret is required to sign session cookies")
        self.app = app
        self.secrets = normalize_secrets(secret)
        if store is None:
            logger.warning(
                "No session store configured; falling back to InMemorySessionStore, "
                "which does not survive restarts or scale past one process"
            )
            store = InMemorySessionStore()
        self.store = store
        self.name = name
        self.resave = resave
        self.save_uninitialized = save_uninitialized
        self.rolling = rolling
        self.cookie_options = cookie or CookieOptions()
        self.genid = genid or default_genid
        self.proxy = proxy

    def _generate(self) -> Tuple[str, SessionCookie]:
        return self.genid(), SessionCookie(self.cookie_options)

    def _new_session(self) -> Session:
        session_id, cookie = self._generate()
        metrics.SESSIONS_CREATED.inc()
        logger.debug("Generated new session %s", session_id)
        return Session(session_id, cookie, self.store, self._generate)

    def _cookie_id(self, connection: HTTPConnection) -> Optional[str]:
        """Return the verified session id from the request cookie, if any."""
        raw = parse_cookie_header(connection.headers.get("cookie")).get(self.name)
        if raw is None:
            return None
        if not raw.startswith(SIGNED_PREFIX):
            logger.debug("Ignoring unsigned session cookie %s", self.name)
            metrics.COOKIES_REJECTED.inc()
            return None
        value = unsign(raw[len(SIGNED_PREFIX):], self.secrets)
        if value is None:
            logger.debug("Ignoring session cookie %s with a bad signature", self.name)
            metrics.COOKIES_REJECTED.inc()
        return value

    def _is_secure(self, scope: Scope, connection: HTTPConnection) -> bool:
        if self.proxy:
            proto = connection.headers.get("x-forwarded-proto")
            if proto:
                return proto.split(",")[0].strip().lower() == "https"
        return scope.get("scheme") == "https"

    def _should_set_cookie(self, session: Session, cookie_id: Optional[str]) -> bool:
        if cookie_id != session.id:
            return self.save_uninitialized or session.is_modified()
        return self.rolling or (session.cookie.expires is not None and session.is_modified())

    def _should_save(self, session: Session, cookie_id: Optional[str]) -> bool:
        if not self.save_uninitialized and cookie_id != session.id:
            return session.is_modified()
        return not session.is_saved()

    async def _load(self, cookie_id: Optional[str]) -> Session:
        if cookie_id:
            document = await run_in_threadpool(self.store.get, cookie_id)
            if document is not None:
                session = Session.from_store(
                    cookie_id, document, self.store, self._generate, self.cookie_options
                )
                session.mark_loaded(saved=not self.resave)
                return session
            logger.debug("Session %s not found in store", cookie_id)
        return self._new_session()

    async def _commit(self, scope: Scope, connection: HTTPConnection, cookie_id: Optional[str], message: Message) -> None:
        session = scope.get("session")
        if not isinstance(session, Session) or session.destroyed:
            logger.debug("No session to commit")
            return

        session.touch()

        if self._should_set_cookie(session, cookie_id):
            if session.cookie.secure and not self._is_secure(scope, connection):
                logger.debug("Not setting secure session cookie over an insecure connection")
            else:
                value = SIGNED_PREFIX + sign(session.id, self.secrets[0])
                headers = MutableHeaders(scope=message)
                headers.append("Set-Cookie", session.cookie.serialize(self.name, value))

        if self._should_save(session, cookie_id):
            await run_in_threadpool(session.save)
        elif cookie_id == session.id:
            await run_in_threadpool(self.store.touch, session.id, session.to_store())
            metrics.SESSIONS_TOUCHED.inc()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        cookie_id = self._cookie_id(connection)
        scope["session"] = await self._load(cookie_id)

        if scope["type"] == "websocket":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                await self._commit(scope, connection, cookie_id, message)
            await send(message)

        await self.app(scope, receive, send_wrapper)
