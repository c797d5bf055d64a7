"""Security observability for tenant-scope incidents and allocator defects.

Incidents are kept in a bounded in-process ring and evaluated against
ALERT_RULES on demand. Each process keeps its own ring; shipping events
to a central store is the log pipeline's job (every event is also logged
by the code that records it).
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

from flask import g, has_request_context, request

_RING_SIZE = 5000
_events: deque[dict[str, Any]] = deque(maxlen=_RING_SIZE)
_lock = threading.Lock()


@dataclass(frozen=True)
class AlertRule:
    event_type: str
    threshold: int
    window_seconds: int
    severity: str
    code: str


ALERT_RULES = (
    AlertRule("tenant_mismatch", 3, 300, "high", "SEC-TENANT-MISMATCH-001"),
    AlertRule("tenant_context_rejected", 5, 300, "medium", "SEC-TENANT-CONTEXT-001"),
    # A single duplicate number means the allocator is broken.
    AlertRule("duplicate_sequence", 1, 3600, "critical", "SEC-SEQUENCE-DUP-001"),
)


def _request_fields() -> dict[str, Any]:
    """Tenant, actor and route of the active request, if there is one."""
    if not has_request_context():
        return {"tenant_id": None, "actor_id": None, "path": None, "method": None}
    ctx = getattr(g, "tenant_context", None)
    return {
        "tenant_id": ctx.tenant_id if ctx is not None else None,
        "actor_id": ctx.actor_id if ctx is not None else None,
        "path": request.path,
        "method": request.method,
    }


def record_security_event(
    *,
    event_type: str,
    reason: str,
    severity: str = "warning",
    tenant_id: int | None = None,
    actor_id: str | None = None,
    document_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Append one incident. Explicit arguments win over request context."""
    event = _request_fields()
    if tenant_id is not None:
        event["tenant_id"] = tenant_id
    if actor_id is not None:
        event["actor_id"] = actor_id
    event.update(
        ts=time.time(),
        event_type=event_type,
        severity=severity,
        reason=reason,
        document_id=document_id,
        details=dict(details or {}),
    )
    with _lock:
        _events.append(event)
    return event


def _snapshot() -> list[dict[str, Any]]:
    with _lock:
        return list(_events)


def get_recent_security_events(
    *,
    seconds: int = 3600,
    event_type: str | None = None,
    tenant_id: int | None = None,
) -> list[dict[str, Any]]:
    cutoff = time.time() - seconds
    return [
        e for e in _snapshot()
        if e["ts"] >= cutoff
        and (event_type is None or e["event_type"] == event_type)
        and (tenant_id is None or e["tenant_id"] == tenant_id)
    ]


def evaluate_security_alerts(*, now: float | None = None) -> dict[str, Any]:
    """Count events per rule window and list the rules whose threshold is met.

    Returns:
        {"counts": {event_type: n}, "alerts": [ {code, severity, observed, ...} ]}
    """
    now = now or time.time()
    events = _snapshot()
    counts: dict[str, int] = {}
    alerts = []

    for rule in ALERT_RULES:
        window_start = now - rule.window_seconds
        hits = [e for e in events if e["event_type"] == rule.event_type and e["ts"] >= window_start]
        counts[rule.event_type] = len(hits)
        if hits and len(hits) >= rule.threshold:
            alerts.append({
                "code": rule.code,
                "event_type": rule.event_type,
                "severity": rule.severity,
                "threshold": rule.threshold,
                "window_seconds": rule.window_seconds,
                "observed": len(hits),
                "tenants": sorted({e["tenant_id"] for e in hits if e["tenant_id"] is not None}),
                "latest": hits[-1],
            })

    return {"counts": counts, "alerts": alerts}


def reset_security_events() -> None:
    with _lock:
        _events.clear()
