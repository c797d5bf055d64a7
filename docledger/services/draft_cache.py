"""
Draft Cache Service — per-(document, actor) autosave staging area.

Drafts are optimistic: saving one takes no document lock and writes nothing
to the version ledger. Staleness is caught later by the conflict detector
when the draft is promoted.

Design decisions:
    - upsert_draft() is a single INSERT ... ON CONFLICT (document_id, actor_id)
      DO UPDATE. A new row captures the document's current version as its
      baseline; later saves replace payload_delta and updated_at only.
    - Same-actor saves are last-write-wins. When the client sends a revision
      stamp, a save whose stamp is not newer than the stored one is ignored.
    - Deltas are shape-checked (sections, fields, types) on every save but are
      allowed to be incomplete.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import delete, func, or_, select

from docledger.core.exceptions import NotFoundError, ValidationError
from docledger.models import db
from docledger.models.document import Document, Draft
from docledger.services import document_store
from docledger.services.payload_schema import completion_percentage, merge_payload, validate_shape

logger = logging.getLogger(__name__)


def _select_draft(document_id: str, actor_id: str, *, for_update: bool = False):
    stmt = (
        select(Draft)
        .where(Draft.document_id == document_id, Draft.actor_id == actor_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.session.execute(stmt).scalar_one_or_none()


def find_draft(document: Document, actor_id: str, *, for_update: bool = False) -> Draft | None:
    """Draft for an already tenant-checked document, or None."""
    draft = _select_draft(document.id, actor_id, for_update=for_update)
    if draft is not None:
        document_store.ensure_tenant(draft, "Draft", f"{document.id}/{actor_id}", document.tenant_id)
    return draft


def upsert_draft(
    tenant_id: int,
    document_id: str,
    actor_id: str,
    payload_delta: dict | None,
    *,
    baseline_version: int | None = None,
    revision: int | None = None,
) -> Draft:
    """Save (create or overwrite) the actor's draft of a document.

    Args:
        baseline_version: Version the client started editing from. Defaults
            to the document's current version. Only used when the draft row
            is created; an existing draft keeps its baseline.
        revision: Optional monotonic stamp from the client's editing session.

    Raises:
        ValidationError: Malformed delta or baseline out of range.
        InvalidTransitionError: Document is archived.
    """
    if not actor_id:
        raise ValidationError("actor_id is required", details={"actor_id": "required"})
    if revision is not None and (isinstance(revision, bool) or not isinstance(revision, int)):
        raise ValidationError("revision must be an integer", details={"revision": "must be an integer"})
    if baseline_version is not None and (
        isinstance(baseline_version, bool) or not isinstance(baseline_version, int)
    ):
        raise ValidationError(
            "baseline_version must be an integer",
            details={"baseline_version": "must be an integer"},
        )

    with document_store.locked_transaction("save_draft"):
        document = document_store.get_document(tenant_id, document_id)
        document_store.ensure_editable(document, "save_draft")
        delta = validate_shape(payload_delta)

        baseline = document.version if baseline_version is None else baseline_version
        if baseline < 1 or baseline > document.version:
            raise ValidationError(
                f"baseline_version must be between 1 and {document.version}",
                details={"baseline_version": "out of range"},
            )

        now = document_store.utcnow()
        stmt = document_store.dialect_insert(Draft).values(
            tenant_id=tenant_id,
            document_id=document.id,
            actor_id=actor_id,
            baseline_version=baseline,
            payload_delta=delta,
            revision=revision,
            created_at=now,
            updated_at=now,
        )
        guard = None
        if revision is not None:
            guard = or_(Draft.revision.is_(None), Draft.revision < stmt.excluded.revision)
        stmt = stmt.on_conflict_do_update(
            index_elements=["document_id", "actor_id"],
            set_={
                "payload_delta": stmt.excluded.payload_delta,
                "revision": func.coalesce(stmt.excluded.revision, Draft.revision),
                "updated_at": stmt.excluded.updated_at,
            },
            where=guard,
        )
        db.session.execute(stmt)

    draft = _select_draft(document_id, actor_id)
    logger.debug(
        "Draft saved: %s by %s (baseline v%d)", document_id, actor_id, draft.baseline_version,
        extra={"tenant_id": tenant_id, "document_id": document_id, "actor_id": actor_id},
    )
    return draft


def get_draft(tenant_id: int, document_id: str, actor_id: str) -> Draft:
    """Return the actor's draft or raise NotFoundError."""
    document = document_store.get_document(tenant_id, document_id)
    draft = find_draft(document, actor_id)
    if draft is None:
        raise NotFoundError(resource="Draft", resource_id=f"{document_id}/{actor_id}", tenant_id=tenant_id)
    return draft


def list_drafts_for_actor(tenant_id: int, actor_id: str) -> list[dict]:
    """Summaries of the actor's pending drafts in one tenant, latest save first.

    Each entry shows the document as it would read with the draft applied
    and whether the draft's baseline has fallen behind the document.
    """
    rows = db.session.execute(
        select(Draft, Document)
        .join(Document, Document.id == Draft.document_id)
        .where(
            Draft.tenant_id == tenant_id,
            Draft.actor_id == actor_id,
            Document.tenant_id == tenant_id,
        )
        .order_by(Draft.updated_at.desc(), Draft.id)
    ).all()

    summaries = []
    for draft, document in rows:
        merged = merge_payload(document.payload or {}, draft.payload_delta or {})
        summaries.append({
            "document_id": document.id,
            "document_type": document.document_type,
            "business_name": (merged.get("contact_info") or {}).get("business_name"),
            "baseline_version": draft.baseline_version,
            "current_version": document.version,
            "stale": draft.baseline_version != document.version,
            "completion_percentage": completion_percentage(merged),
            "last_modified": draft.updated_at.isoformat() if draft.updated_at else None,
        })
    return summaries


def delete_draft(tenant_id: int, document_id: str, actor_id: str) -> bool:
    """Discard the actor's draft. Idempotent; returns whether a row was removed."""
    with document_store.locked_transaction("discard_draft"):
        document_store.get_document(tenant_id, document_id)
        result = db.session.execute(
            delete(Draft)
            .where(
                Draft.tenant_id == tenant_id,
                Draft.document_id == document_id,
                Draft.actor_id == actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        removed = result.rowcount > 0
    if removed:
        logger.info("Draft discarded: %s by %s", document_id, actor_id,
                    extra={"tenant_id": tenant_id, "document_id": document_id, "actor_id": actor_id})
    return removed


def remove_promoted_draft(draft: Draft) -> None:
    """Delete a draft inside the promotion transaction."""
    db.session.delete(draft)


def reconcile_draft(tenant_id: int, document_id: str, actor_id: str) -> Draft:
    """Re-base the actor's draft onto the document's current version.

    The caller's way to "re-merge" after a conflict: the delta is kept and
    will be overlaid on the newer payload at the next promotion.
    """
    with document_store.locked_transaction("reconcile_draft"):
        document = document_store.get_document(tenant_id, document_id)
        document_store.ensure_editable(document, "reconcile_draft")
        draft = find_draft(document, actor_id, for_update=True)
        if draft is None:
            raise NotFoundError(resource="Draft", resource_id=f"{document_id}/{actor_id}", tenant_id=tenant_id)
        previous = draft.baseline_version
        draft.baseline_version = document.version
        draft.updated_at = document_store.utcnow()

    logger.info(
        "Draft reconciled: %s by %s v%d -> v%d", document_id, actor_id, previous, draft.baseline_version,
        extra={"tenant_id": tenant_id, "document_id": document_id, "actor_id": actor_id},
    )
    return draft


def cleanup_abandoned_drafts(older_than_days: int) -> int:
    """Delete drafts, across all tenants, untouched for older_than_days days."""
    if older_than_days < 1:
        raise ValidationError("older_than_days must be at least 1",
                              details={"older_than_days": "must be >= 1"})
    cutoff = document_store.utcnow() - timedelta(days=older_than_days)
    with document_store.locked_transaction("cleanup_drafts"):
        result = db.session.execute(
            delete(Draft)
            .where(Draft.updated_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        removed = result.rowcount
    logger.info("Removed %d abandoned draft(s) older than %d day(s)", removed, older_than_days)
    return removed
