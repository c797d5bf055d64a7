"""
Tenant Context Middleware — resolves the caller's tenant scope on API requests.

Authentication happens upstream. The gateway forwards the resolved
identity as headers:

    X-Tenant-ID     integer tenant id (required)
    X-Actor-ID      opaque actor/user id (required)
    X-Actor-Role    role name (optional, defaults to "member")

This middleware:
  1. Rejects API requests that carry no tenant or actor header
  2. Verifies the tenant exists and is active
  3. Sets g.tenant_context (TenantContext) for route handlers

No credential validation happens here; every service call still scopes
its storage access by the tenant id taken from g.tenant_context.
"""

import logging
from dataclasses import dataclass

from flask import g, jsonify, request

from docledger.models import db
from docledger.models.tenant import Tenant
from docledger.services.security_observability import record_security_event

logger = logging.getLogger(__name__)

# Paths that skip tenant context
TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
)


@dataclass(frozen=True)
class TenantContext:
    tenant_id: int
    actor_id: str
    role: str = "member"


def current_context() -> TenantContext:
    """Return the TenantContext resolved for this request."""
    ctx = getattr(g, "tenant_context", None)
    if ctx is None:
        raise RuntimeError("Tenant context accessed outside a tenant-scoped request")
    return ctx


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant_context = None

        if not request.path.startswith("/api/v1/"):
            return None

        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        raw_tenant = (request.headers.get("X-Tenant-ID") or "").strip()
        actor_id = (request.headers.get("X-Actor-ID") or "").strip()
        role = (request.headers.get("X-Actor-Role") or "member").strip()

        if not raw_tenant or not actor_id:
            return jsonify({"error": "X-Tenant-ID and X-Actor-ID headers are required"}), 400
        if not raw_tenant.isdigit():
            return jsonify({"error": "X-Tenant-ID must be an integer"}), 400
        tenant_id = int(raw_tenant)

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            record_security_event(
                event_type="tenant_context_rejected",
                reason="tenant_not_found",
                severity="high",
                tenant_id=tenant_id,
                actor_id=actor_id,
            )
            logger.warning("Tenant %d not found", tenant_id,
                           extra={"tenant_id": tenant_id, "actor_id": actor_id})
            return jsonify({"error": "Tenant not found"}), 403

        if not tenant.is_active:
            record_security_event(
                event_type="tenant_context_rejected",
                reason="tenant_deactivated",
                severity="high",
                tenant_id=tenant_id,
                actor_id=actor_id,
            )
            logger.warning("Tenant %d is deactivated", tenant_id,
                           extra={"tenant_id": tenant_id, "actor_id": actor_id})
            return jsonify({"error": "Tenant account is deactivated"}), 403

        g.tenant_context = TenantContext(tenant_id=tenant_id, actor_id=actor_id, role=role)
        return None

    logger.info("Tenant context middleware installed")
