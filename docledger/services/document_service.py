"""
Document Service — create, read and list documents.

Write paths that change a document's payload or status live in
promotion_engine; drafts live in draft_cache. This module covers the
remaining entry points and assembles the read models the API returns.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, select

from docledger.core.exceptions import NotFoundError, ValidationError
from docledger.models import db
from docledger.models.document import DOCUMENT_STATUSES, DOCUMENT_TYPES, Document
from docledger.models.tenant import Tenant
from docledger.services import document_store, draft_cache, version_ledger
from docledger.services.conflict_detector import detect_conflict, diff_snapshots
from docledger.services.payload_schema import completion_percentage, validate_shape

logger = logging.getLogger(__name__)


def create_document(
    tenant_id: int,
    owner_actor_id: str,
    initial_payload: dict | None = None,
    *,
    document_type: str = "consultation",
) -> Document:
    """Create a document at version 1 / status draft and write ledger entry 1."""
    if not owner_actor_id:
        raise ValidationError("owner_actor_id is required", details={"owner_actor_id": "required"})
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError(
            f"Unknown document type: {document_type}",
            details={"document_type": f"must be one of: {', '.join(sorted(DOCUMENT_TYPES))}"},
        )
    payload = validate_shape(initial_payload)

    with document_store.locked_transaction("create_document"):
        if db.session.get(Tenant, tenant_id) is None:
            raise NotFoundError(resource="Tenant", resource_id=tenant_id)
        document = Document(
            tenant_id=tenant_id,
            document_type=document_type,
            owner_actor_id=owner_actor_id,
            status="draft",
            version=1,
            payload=payload,
            completion_percentage=completion_percentage(payload),
        )
        db.session.add(document)
        db.session.flush()
        version_ledger.append_version(
            document,
            payload,
            change_summary="Created",
            changed_fields=diff_snapshots({}, payload),
            actor_id=owner_actor_id,
        )

    logger.info("Document created: %s (%s)", document.id, document_type,
                extra={"tenant_id": tenant_id, "document_id": document.id, "actor_id": owner_actor_id})
    return document


def get_document(tenant_id: int, document_id: str) -> Document:
    return document_store.get_document(tenant_id, document_id)


def get_document_with_draft(tenant_id: int, document_id: str, actor_id: str) -> dict:
    """The document plus the actor's draft, flagging a stale draft as a conflict.

    Returns:
        {"document": {...}, "draft": {...} | None, "conflict": {...} | None}
    """
    document = document_store.get_document(tenant_id, document_id)
    draft = draft_cache.find_draft(document, actor_id)
    conflict = None
    if draft is not None:
        verdict = detect_conflict(
            draft.baseline_version,
            document.version,
            version_ledger.snapshot_at(tenant_id, document.id, draft.baseline_version),
            version_ledger.snapshot_at(tenant_id, document.id, document.version),
        )
        if verdict.is_conflict:
            conflict = {
                "draft_version": verdict.draft_version,
                "current_version": verdict.current_version,
                "diverged_fields": verdict.diverged_fields,
            }
    return {
        "document": document.to_dict(),
        "draft": draft.to_dict() if draft is not None else None,
        "conflict": conflict,
    }


# Payload fields the free-text search looks at
SEARCH_FIELDS = (
    ("contact_info", "business_name"),
    ("contact_info", "contact_person"),
    ("business_context", "industry"),
)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_documents(
    tenant_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
    document_type: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Page of document summaries for one tenant, newest first.

    search matches case-insensitively against the values in SEARCH_FIELDS;
    key names and other payload text are not searched.

    Returns:
        {"items": [...], "total": int, "page": int, "limit": int}
    """
    if status is not None and status not in DOCUMENT_STATUSES:
        raise ValidationError(
            f"Invalid status filter: {status}",
            details={"status": f"must be one of: {', '.join(sorted(DOCUMENT_STATUSES))}"},
        )
    page = max(int(page), 1)
    limit = max(int(limit), 1)

    stmt = Document.query_for_tenant(tenant_id)
    if status:
        stmt = stmt.where(Document.status == status)
    if document_type:
        stmt = stmt.where(Document.document_type == document_type)
    if search and search.strip():
        pattern = f"%{_escape_like(search.strip())}%"
        stmt = stmt.where(or_(*(
            Document.payload[path].as_string().ilike(pattern, escape="\\")
            for path in SEARCH_FIELDS
        )))

    total = db.session.execute(
        select(func.count()).select_from(stmt.subquery())
    ).scalar_one()
    rows = db.session.execute(
        stmt.order_by(Document.updated_at.desc(), Document.id)
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return {
        "items": [d.to_summary() for d in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }
