"""
Tests: draft cache — per-(document, actor) autosave.

Categories:
    1. Upsert semantics — baseline capture, idempotence, revision stamps
    2. Rejections — malformed deltas, archived documents, bad baselines
    3. Get / discard / reconcile / per-actor listing
    4. Abandoned-draft cleanup
"""

import time
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from docledger.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from docledger.models import db
from docledger.models.document import Draft, VersionRecord
from docledger.services import document_service, document_store, draft_cache, promotion_engine


def _make_document(tenant, payload=None, actor="alice"):
    return document_service.create_document(tenant.id, actor, payload or {"contact_info": {"business_name": "Acme"}})


def _version_count(doc_id):
    return db.session.execute(
        select(func.count()).select_from(VersionRecord).where(VersionRecord.document_id == doc_id)
    ).scalar_one()


# ── 1. Upsert semantics ──────────────────────────────────────────────────────


@pytest.mark.unit
class TestUpsert:

    def test_new_draft_captures_current_version(self, tenant):
        doc = _make_document(tenant)
        draft = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "wip"})
        assert draft.baseline_version == 1
        assert draft.payload_delta == {"notes": "wip"}
        assert draft.actor_id == "alice"
        assert draft.tenant_id == tenant.id

    def test_save_does_not_touch_document_or_ledger(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "wip"})
        assert document_service.get_document(tenant.id, doc.id).version == 1
        assert _version_count(doc.id) == 1

    def test_repeated_save_is_idempotent_except_timestamp(self, tenant):
        doc = _make_document(tenant)
        first = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "wip"})
        first_id, first_updated = first.id, first.updated_at
        time.sleep(0.01)
        second = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "wip"})

        assert second.id == first_id
        assert second.payload_delta == {"notes": "wip"}
        assert second.baseline_version == 1
        assert second.updated_at > first_updated
        assert db.session.execute(select(func.count()).select_from(Draft)).scalar_one() == 1
        assert _version_count(doc.id) == 1

    def test_existing_draft_keeps_its_baseline(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "alice"})

        draft_cache.upsert_draft(tenant.id, doc.id, "bob", {"notes": "bob"})
        promotion_engine.promote_draft(tenant.id, doc.id, "bob")

        draft = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "alice again"})
        assert draft.baseline_version == 1
        assert draft.payload_delta == {"notes": "alice again"}

    def test_explicit_baseline(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "bob", {"notes": "bob"})
        promotion_engine.promote_draft(tenant.id, doc.id, "bob")

        draft = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "x"}, baseline_version=1)
        assert draft.baseline_version == 1

    def test_delta_replaced_not_merged(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "wip"})
        draft = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"contact_info": {"phone": "1"}})
        assert draft.payload_delta == {"contact_info": {"phone": "1"}}

    def test_stale_revision_ignored(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "rev 5"}, revision=5)

        stale = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "rev 3"}, revision=3)
        assert stale.payload_delta == {"notes": "rev 5"}
        assert stale.revision == 5

        newer = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "rev 6"}, revision=6)
        assert newer.payload_delta == {"notes": "rev 6"}
        assert newer.revision == 6

    def test_unstamped_save_keeps_last_revision(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "a"}, revision=2)
        draft = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "b"})
        assert draft.payload_delta == {"notes": "b"}
        assert draft.revision == 2

    def test_drafts_are_per_actor(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "a"})
        draft_cache.upsert_draft(tenant.id, doc.id, "bob", {"notes": "b"})
        assert draft_cache.get_draft(tenant.id, doc.id, "alice").payload_delta == {"notes": "a"}
        assert draft_cache.get_draft(tenant.id, doc.id, "bob").payload_delta == {"notes": "b"}


# ── 2. Rejections ────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestRejections:

    def test_malformed_delta(self, tenant):
        doc = _make_document(tenant)
        with pytest.raises(ValidationError) as exc:
            draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"contact_info": {"team_size": 3}})
        assert "contact_info.team_size" in exc.value.details
        assert db.session.execute(select(func.count()).select_from(Draft)).scalar_one() == 0

    def test_baseline_out_of_range(self, tenant):
        doc = _make_document(tenant)
        with pytest.raises(ValidationError):
            draft_cache.upsert_draft(tenant.id, doc.id, "alice", {}, baseline_version=2)
        with pytest.raises(ValidationError):
            draft_cache.upsert_draft(tenant.id, doc.id, "alice", {}, baseline_version=0)

    def test_actor_required(self, tenant):
        doc = _make_document(tenant)
        with pytest.raises(ValidationError):
            draft_cache.upsert_draft(tenant.id, doc.id, "", {})

    def test_non_integer_revision(self, tenant):
        doc = _make_document(tenant)
        with pytest.raises(ValidationError):
            draft_cache.upsert_draft(tenant.id, doc.id, "alice", {}, revision="7")

    @pytest.mark.parametrize("baseline", ["abc", "1", True, 1.0])
    def test_non_integer_baseline(self, tenant, baseline):
        doc = _make_document(tenant)
        with pytest.raises(ValidationError) as exc:
            draft_cache.upsert_draft(tenant.id, doc.id, "alice", {}, baseline_version=baseline)
        assert exc.value.details == {"baseline_version": "must be an integer"}
        assert db.session.execute(select(func.count()).select_from(Draft)).scalar_one() == 0

    def test_archived_document_rejects_drafts(self, tenant, complete_payload):
        doc = _make_document(tenant, payload=complete_payload)
        promotion_engine.complete_document(tenant.id, doc.id, "alice")
        promotion_engine.archive_document(tenant.id, doc.id, "alice")

        with pytest.raises(InvalidTransitionError):
            draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "late"})

    def test_completed_document_accepts_drafts(self, tenant, complete_payload):
        doc = _make_document(tenant, payload=complete_payload)
        promotion_engine.complete_document(tenant.id, doc.id, "alice")
        draft = draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "after"})
        assert draft.baseline_version == 1

    def test_unknown_document(self, tenant):
        with pytest.raises(NotFoundError):
            draft_cache.upsert_draft(tenant.id, "missing", "alice", {})


# ── 3. Get / discard / reconcile ─────────────────────────────────────────────


@pytest.mark.unit
class TestLifecycle:

    def test_get_missing_draft(self, tenant):
        doc = _make_document(tenant)
        with pytest.raises(NotFoundError) as exc:
            draft_cache.get_draft(tenant.id, doc.id, "alice")
        assert exc.value.resource == "Draft"

    def test_delete_is_idempotent(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "wip"})
        assert draft_cache.delete_draft(tenant.id, doc.id, "alice") is True
        assert draft_cache.delete_draft(tenant.id, doc.id, "alice") is False
        with pytest.raises(NotFoundError):
            draft_cache.get_draft(tenant.id, doc.id, "alice")

    def test_reconcile_rebases_onto_current(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "alice"})
        draft_cache.upsert_draft(tenant.id, doc.id, "bob", {"contact_info": {"phone": "1"}})
        promotion_engine.promote_draft(tenant.id, doc.id, "bob")

        draft = draft_cache.reconcile_draft(tenant.id, doc.id, "alice")
        assert draft.baseline_version == 2
        assert draft.payload_delta == {"notes": "alice"}

        promoted = promotion_engine.promote_draft(tenant.id, doc.id, "alice")
        assert promoted.version == 3
        assert promoted.payload == {
            "contact_info": {"business_name": "Acme", "phone": "1"},
            "notes": "alice",
        }

    def test_reconcile_without_draft(self, tenant):
        doc = _make_document(tenant)
        with pytest.raises(NotFoundError):
            draft_cache.reconcile_draft(tenant.id, doc.id, "alice")

    def test_list_drafts_for_actor(self, tenant, other_tenant):
        older = _make_document(tenant, {"contact_info": {"business_name": "Acme"}})
        newer = _make_document(tenant, {"contact_info": {"business_name": "Globex"}})
        foreign = _make_document(other_tenant, {"contact_info": {"business_name": "Initech"}})
        draft_cache.upsert_draft(tenant.id, older.id, "alice", {"contact_info": {"business_name": "Acme Ltd"}})
        draft_cache.upsert_draft(tenant.id, newer.id, "alice", {"notes": "wip"})
        draft_cache.upsert_draft(tenant.id, newer.id, "bob", {"notes": "bob"})
        draft_cache.upsert_draft(other_tenant.id, foreign.id, "alice", {"notes": "elsewhere"})
        promotion_engine.promote_draft(tenant.id, newer.id, "bob")
        db.session.execute(
            update(Draft)
            .where(Draft.document_id == older.id)
            .values(updated_at=document_store.utcnow() - timedelta(hours=1))
        )
        db.session.commit()

        summaries = draft_cache.list_drafts_for_actor(tenant.id, "alice")

        assert [s["document_id"] for s in summaries] == [newer.id, older.id]
        assert summaries[0]["business_name"] == "Globex"
        assert summaries[0]["baseline_version"] == 1
        assert summaries[0]["current_version"] == 2
        assert summaries[0]["stale"] is True
        assert summaries[1]["business_name"] == "Acme Ltd"
        assert summaries[1]["stale"] is False
        assert draft_cache.list_drafts_for_actor(tenant.id, "carol") == []


# ── 4. Cleanup ───────────────────────────────────────────────────────────────


@pytest.mark.unit
class TestCleanup:

    def test_removes_only_old_drafts(self, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "old"})
        draft_cache.upsert_draft(tenant.id, doc.id, "bob", {"notes": "fresh"})
        db.session.execute(
            update(Draft)
            .where(Draft.actor_id == "alice")
            .values(updated_at=document_store.utcnow() - timedelta(days=45))
        )
        db.session.commit()

        assert draft_cache.cleanup_abandoned_drafts(30) == 1
        remaining = db.session.execute(select(Draft.actor_id)).scalars().all()
        assert remaining == ["bob"]

    def test_rejects_non_positive_age(self):
        with pytest.raises(ValidationError):
            draft_cache.cleanup_abandoned_drafts(0)

    def test_cli_command(self, app, tenant):
        doc = _make_document(tenant)
        draft_cache.upsert_draft(tenant.id, doc.id, "alice", {"notes": "old"})
        db.session.execute(
            update(Draft).values(updated_at=document_store.utcnow() - timedelta(days=90))
        )
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["cleanup-drafts"])
        assert result.exit_code == 0
        assert db.session.execute(select(func.count()).select_from(Draft)).scalar_one() == 0
