"""Application entrypoint: session-backed demo routes and admin/ops API."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from . import metrics
from .audit import read_audit, record_audit
from .auth import InvalidTokenError, is_admin, mint_admin_token
from .config import Settings
from .cookie import CookieOptions
from .middleware import SessionMiddleware
from .session_store import create_default_store
from .session_store_base import SessionStore

logger = logging.getLogger(__name__)


class SessionInfo(BaseModel):
    session_id: str
    views: int
    expires: Optional[datetime] = None
    max_age: Optional[float] = None


class SessionRecord(BaseModel):
    session_id: str
    data: Dict[str, Any]
    expires: Optional[datetime] = None


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _store(request: Request) -> SessionStore:
    return request.app.state.session_store


def require_admin(
    request: Request,
    authorization: Optional[str] = Header(None),
    x_admin_token: Optional[str] = Header(None),
) -> None:
    """Enforce admin RBAC only if an admin mechanism is configured."""
    settings = _settings(request)
    if settings.admin_configured and not is_admin(authorization, x_admin_token, settings):
        raise HTTPException(status_code=403, detail="admin credentials required")


def _record(session_id: str, document: Dict[str, Any]) -> SessionRecord:
    data = dict(document)
    cookie = data.pop("cookie", None) or {}
    return SessionRecord(session_id=session_id, data=data, expires=cookie.get("expires"))


def create_app(settings: Optional[Settings] = None, store: Optional[SessionStore] = None) -> FastAPI:
    """Build the hub app; the store is closed when the app shuts down."""
    settings = settings or Settings.from_env()
    store = store or create_default_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.session_store.close()

    app = FastAPI(title="Central ERP Hub - Session Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_store = store

    app.add_middleware(
        SessionMiddleware,
        store=store,
        secret=settings.secret,
        name=settings.cookie_name,
        resave=settings.resave,
        save_uninitialized=settings.save_uninitialized,
        rolling=settings.rolling,
        cookie=CookieOptions(max_age=settings.cookie_max_age, secure=settings.cookie_secure),
        proxy=settings.trust_proxy,
    )
    # Credentials must be allowed for the session cookie to cross origins.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/health/sessions")
    def session_health(request: Request):
        return {
            "total_active_sessions": _store(request).length(),
            "last_refresh": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/session", response_model=SessionInfo)
    async def current_session(request: Request):
        """Return the caller's session, counting each visit."""
        session = request.session
        session["views"] = session.get("views", 0) + 1
        return SessionInfo(
            session_id=session.id,
            views=session["views"],
            expires=session.cookie.expires,
            max_age=session.cookie.max_age,
        )

    @app.post("/api/session/regenerate")
    def regenerate_session(request: Request):
        request.session.regenerate()
        return {"status": "regenerated"}

    @app.post("/api/session/logout")
    def logout(request: Request):
        request.session.destroy()
        return {"status": "logged_out"}

    @app.get("/api/sessions", response_model=List[SessionRecord], dependencies=[Depends(require_admin)])
    def list_sessions(request: Request):
        return [_record(sid, doc) for sid, doc in _store(request).all().items()]

    @app.post("/api/sessions/{session_id}/terminate")
    def terminate_session(
        session_id: str,
        request: Request,
        authorization: Optional[str] = Header(None),
        x_admin_token: Optional[str] = Header(None),
    ):
        metrics.MET_TERMINATE_ATTEMPTS.inc()
        try:
            require_admin(request, authorization, x_admin_token)
        except HTTPException:
            metrics.MET_TERMINATE_DENIED.inc()
            raise

        store = _store(request)
        if store.get(session_id) is None:
            raise HTTPException(status_code=404, detail="session not found")
        store.destroy(session_id)
        metrics.MET_TERMINATE_SUCCESS.inc()
        metrics.SESSIONS_DESTROYED.inc()

        record_audit(
            {"action": "terminate_session", "session_id": session_id, "by": "admin"},
            _settings(request).audit_log_dir,
        )
        return {"status": "terminated", "session_id": session_id}

    @app.post("/api/sessions/clear", dependencies=[Depends(require_admin)])
    def clear_sessions(request: Request):
        store = _store(request)
        removed = store.length()
        store.clear()
        record_audit({"action": "clear_sessions", "removed": removed, "by": "admin"}, _settings(request).audit_log_dir)
        return {"status": "cleared", "removed": removed}

    @app.post("/api/sessions/clear-expired", dependencies=[Depends(require_admin)])
    def clear_expired(request: Request):
        removed = _store(request).sweep_once()
        record_audit(
            {"action": "clear_expired_sessions", "removed": removed, "by": "admin"},
            _settings(request).audit_log_dir,
        )
        return {"status": "cleared", "removed": removed}

    @app.get('/metrics')
    async def prometheus_metrics():
        """Expose Prometheus metrics."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/api/ops/audit", dependencies=[Depends(require_admin)])
    def get_audit(request: Request, limit: int = 100):
        return {"events": read_audit(limit, _settings(request).audit_log_dir)}

    @app.post("/api/ops/token")
    async def mint_token(request: Request, x_admin_token: Optional[str] = Header(None)):
        """Mint a short-lived admin JWT in exchange for the legacy `ADMIN_TOKEN`."""
        settings = _settings(request)
        if not settings.admin_jwt_secret:
            raise HTTPException(status_code=400, detail="ADMIN_JWT_SECRET not configured")
        if not settings.admin_token or x_admin_token != settings.admin_token:
            raise HTTPException(status_code=403, detail="invalid admin token")
        try:
            token = mint_admin_token(settings)
        except InvalidTokenError as e:
            logger.exception("Admin token generation failed: %s", e)
            raise HTTPException(status_code=500, detail="token generation failed") from e
        return {"access_token": token, "token_type": "bearer"}

    return app


app = create_app()
