"""Prometheus counters for session lifecycle and admin operations."""

from prometheus_client import Counter

SESSIONS_CREATED = Counter('hub_sessions_created_total', 'Sessions generated for new visitors')
SESSIONS_SAVED = Counter('hub_sessions_saved_total', 'Session writes to the store')
SESSIONS_TOUCHED = Counter('hub_sessions_touched_total', 'Session expiry refreshes')
SESSIONS_DESTROYED = Counter('hub_sessions_destroyed_total', 'Sessions destroyed by the application')
SESSIONS_EXPIRED = Counter('hub_sessions_expired_total', 'Expired sessions removed by the sweeper')
COOKIES_REJECTED = Counter('hub_session_cookies_rejected_total', 'Session cookies failing signature checks')

MET_TERMINATE_ATTEMPTS = Counter('hub_terminate_attempts_total', 'Terminate attempts')
MET_TERMINATE_SUCCESS = Counter('hub_terminate_success_total', 'Terminate success')
MET_TERMINATE_DENIED = Counter('hub_terminate_denied_total', 'Terminate denied (auth)')
MET_AUDIT_EVENTS = Counter('hub_audit_events_total', 'Audit events written')
