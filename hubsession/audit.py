"""Append-only JSON-lines audit trail for session administration."""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List

from . import metrics

logger = logging.getLogger(__name__)

AUDIT_FILE = "audit.log"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def record_audit(event: Dict[str, Any], log_dir: str = "logs") -> None:
    """Append ``event`` (stamped with a UTC timestamp) to ``<log_dir>/audit.log``.

    Auditing is best-effort: write failures are logged, not raised.
    """
    event_copy = dict(event)
    event_copy.setdefault("timestamp", _now_iso())
    try:
        os.makedirs(log_dir, exist_ok=True)
        with open(os.path.join(log_dir, AUDIT_FILE), "a", encoding="utf-8") as fh:
            fh.write(json.dumps(event_copy, ensure_ascii=False) + "\n")
    except OSError as e:
        logger.exception("Failed writing audit to file: %s", e)
        return
    metrics.MET_AUDIT_EVENTS.inc()


def read_audit(limit: int = 100, log_dir: str = "logs") -> List[Dict[str, Any]]:
    """Return up to ``limit`` most recent audit events, oldest first."""
    path = os.path.join(log_dir, AUDIT_FILE)
    if not os.path.exists(path):
        return []
    try:
        with open(path, "r", encoding="utf-8") as fh:
            lines = fh.readlines()[-limit:] if limit > 0 else []
    except OSError as e:
        logger.warning("Failed reading audit log file %s: %s", path, e)
        return []

    events = []
    for ln in lines:
        if not ln.strip():
            continue
        try:
            events.append(json.loads(ln))
        except ValueError as e:
            logger.debug("Failed to parse audit line: %s", e)
            events.append({"raw": ln.strip()})
    return events
