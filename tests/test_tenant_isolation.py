"""
Tenant isolation tests.

Verifies:
  1. Cross-tenant reads and writes raise TenantMismatchError, never a silent empty result
  2. Every rejection is recorded as a security event and can trip an alert
  3. Listings and counters are partitioned by tenant
  4. API requests without a valid tenant context are refused
"""

import pytest
from flask import g

from docledger.core.exceptions import TenantMismatchError
from docledger.middleware.tenant_context import TenantContext
from docledger.models import db
from docledger.models.tenant import Tenant
from docledger.services import (
    document_service,
    draft_cache,
    promotion_engine,
    sequence_allocator,
    version_ledger,
)
from docledger.services.security_observability import (
    evaluate_security_alerts,
    get_recent_security_events,
)


def _make_document(tenant, payload=None, actor="alice"):
    return document_service.create_document(tenant.id, actor, payload or {"contact_info": {"business_name": "Acme"}})


def _headers(tenant_id, actor="alice"):
    return {"X-Tenant-ID": str(tenant_id), "X-Actor-ID": actor}


# ═════════════════════════════════════════════════════════════════════════════
# 1. Service-level isolation
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
class TestServiceIsolation:

    def test_read_other_tenants_document(self, tenant, other_tenant):
        doc = _make_document(tenant)
        with pytest.raises(TenantMismatchError) as exc:
            document_service.get_document(other_tenant.id, doc.id)
        assert exc.value.to_dict() == {"error": "Access denied", "code": "TENANT_MISMATCH"}

    def test_draft_on_other_tenants_document(self, tenant, other_tenant):
        doc = _make_document(tenant)
        with pytest.raises(TenantMismatchError):
            draft_cache.upsert_draft(other_tenant.id, doc.id, "mallory", {"notes": "x"})
        assert draft_cache.find_draft(doc, "mallory") is None

    def test_promote_other_tenants_document(self, tenant, other_tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "x"})
        with pytest.raises(TenantMismatchError):
            promotion_engine.promote_draft(other_tenant.id, doc.id, "alice")
        assert document_service.get_document(tenant.id, doc.id).version == 1

    def test_history_of_other_tenants_document(self, tenant, other_tenant):
        doc = _make_document(tenant)
        with pytest.raises(TenantMismatchError):
            version_ledger.get_history(other_tenant.id, doc.id)

    def test_tenant_id_required(self, tenant):
        doc = _make_document(tenant)
        with pytest.raises(ValueError):
            document_service.get_document(None, doc.id)


# ═════════════════════════════════════════════════════════════════════════════
# 2. Security events
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
class TestSecurityEvents:

    def test_mismatch_is_recorded(self, tenant, other_tenant):
        doc = _make_document(tenant)
        with pytest.raises(TenantMismatchError):
            document_service.get_document(other_tenant.id, doc.id)

        events = get_recent_security_events(event_type="tenant_mismatch")
        assert len(events) == 1
        assert events[0]["tenant_id"] == other_tenant.id
        assert events[0]["document_id"] == doc.id
        assert events[0]["details"]["owner_tenant_id"] == tenant.id

    def test_repeated_mismatches_raise_alert(self, tenant, other_tenant):
        doc = _make_document(tenant)
        for _ in range(3):
            with pytest.raises(TenantMismatchError):
                document_service.get_document(other_tenant.id, doc.id)

        result = evaluate_security_alerts()
        assert result["counts"]["tenant_mismatch"] == 3
        codes = {a["code"] for a in result["alerts"]}
        assert "SEC-TENANT-MISMATCH-001" in codes

    def test_single_mismatch_does_not_alert(self, tenant, other_tenant):
        doc = _make_document(tenant)
        with pytest.raises(TenantMismatchError):
            document_service.get_document(other_tenant.id, doc.id)
        assert evaluate_security_alerts()["alerts"] == []


# ═════════════════════════════════════════════════════════════════════════════
# 3. Partitioning
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
class TestPartitioning:

    def test_list_only_own_documents(self, tenant, other_tenant):
        _make_document(tenant)
        _make_document(tenant)
        _make_document(other_tenant)

        assert document_service.list_documents(tenant.id)["total"] == 2
        assert document_service.list_documents(other_tenant.id)["total"] == 1

    def test_counters_partitioned(self, tenant, other_tenant):
        assert sequence_allocator.allocate_document_number(tenant.id, "invoice", year=2026) == "INV-2026-0001"
        assert sequence_allocator.allocate_document_number(other_tenant.id, "invoice", year=2026) == "INV-2026-0001"


# ═════════════════════════════════════════════════════════════════════════════
# 4. API tenant context
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.unit
class TestApiTenantContext:

    def test_cross_tenant_request_is_403(self, client, tenant, other_tenant):
        doc = _make_document(tenant)
        res = client.get(f"/api/v1/documents/{doc.id}", headers=_headers(other_tenant.id, "mallory"))
        assert res.status_code == 403
        assert res.get_json() == {"error": "Access denied", "code": "TENANT_MISMATCH"}

    def test_missing_headers_is_400(self, client):
        res = client.get("/api/v1/documents")
        assert res.status_code == 400

    def test_missing_actor_is_400(self, client, tenant):
        res = client.get("/api/v1/documents", headers={"X-Tenant-ID": str(tenant.id)})
        assert res.status_code == 400

    def test_non_numeric_tenant_is_400(self, client):
        res = client.get("/api/v1/documents", headers={"X-Tenant-ID": "abc", "X-Actor-ID": "alice"})
        assert res.status_code == 400

    def test_unknown_tenant_is_403(self, client):
        res = client.get("/api/v1/documents", headers=_headers(4242))
        assert res.status_code == 403
        assert len(get_recent_security_events(event_type="tenant_context_rejected")) == 1

    def test_inactive_tenant_is_403(self, client):
        t = Tenant(name="Gone", slug="gone", is_active=False)
        db.session.add(t)
        db.session.commit()
        res = client.get("/api/v1/documents", headers=_headers(t.id))
        assert res.status_code == 403

    def test_health_needs_no_tenant(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"

    def test_resolved_context_is_all_handlers_get(self, app, tenant):
        with app.test_request_context("/api/v1/documents", headers=_headers(tenant.id, "alice")):
            assert app.preprocess_request() is None
            assert g.tenant_context == TenantContext(tenant_id=tenant.id, actor_id="alice")
            assert "tenant" not in g
