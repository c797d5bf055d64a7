"""
Version Ledger Service — append-only history of document snapshots.

Design decisions:
    - VersionRecord is APPEND-ONLY — no update or delete; rollback appends.
    - append_version() never computes max(version_number) itself. It runs
      inside the promotion transaction after the document's version has been
      compare-and-set incremented under the row lock, and writes exactly that
      number. The (document_id, version_number) unique constraint backs it.
    - tenant_id scoping on all queries; documents are resolved through the
      store so cross-tenant reads raise instead of returning nothing.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from docledger.core.exceptions import NotFoundError, ValidationError
from docledger.models import db
from docledger.models.document import Document, VersionRecord
from docledger.services import document_store
from docledger.services.conflict_detector import diff_values

logger = logging.getLogger(__name__)


def append_version(
    document: Document,
    snapshot: dict,
    *,
    change_summary: str | None,
    changed_fields: list[str],
    actor_id: str | None,
) -> VersionRecord:
    """Write the ledger entry for the document's current (just bumped) version.

    Must be called in the same transaction as the version increment.
    """
    record = VersionRecord(
        tenant_id=document.tenant_id,
        document_id=document.id,
        version_number=document.version,
        snapshot=snapshot,
        changed_fields=list(changed_fields),
        change_summary=change_summary,
        actor_id=actor_id,
    )
    db.session.add(record)
    db.session.flush()
    logger.info(
        "Version appended: %s v%d (%d field(s) changed)",
        document.id, document.version, len(changed_fields),
        extra={
            "tenant_id": document.tenant_id,
            "document_id": document.id,
            "actor_id": actor_id,
            "version": document.version,
        },
    )
    return record


def snapshot_at(tenant_id: int, document_id: str, version_number: int) -> dict:
    """Snapshot stored for one version, without the tenant check on the document."""
    snapshot = db.session.execute(
        select(VersionRecord.snapshot).where(
            VersionRecord.tenant_id == tenant_id,
            VersionRecord.document_id == document_id,
            VersionRecord.version_number == version_number,
        )
    ).scalar_one_or_none()
    if snapshot is None:
        raise NotFoundError(resource="VersionRecord", resource_id=f"{document_id}@v{version_number}",
                            tenant_id=tenant_id)
    return snapshot


def get_history(tenant_id: int, document_id: str, page: int = 1, limit: int = 20) -> dict:
    """Version summaries ordered by version_number descending.

    Returns:
        {"items": [...], "total": int, "page": int, "limit": int}
    """
    document_store.get_document(tenant_id, document_id)
    page = max(int(page), 1)
    limit = max(int(limit), 1)

    base = select(VersionRecord).where(
        VersionRecord.tenant_id == tenant_id,
        VersionRecord.document_id == document_id,
    )
    total = db.session.execute(
        select(func.count()).select_from(base.subquery())
    ).scalar_one()
    rows = db.session.execute(
        base.order_by(VersionRecord.version_number.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return {
        "items": [r.to_summary() for r in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def get_version(tenant_id: int, document_id: str, version_number: int) -> VersionRecord:
    """Fetch one version record, used by rollback and audit views."""
    document_store.get_document(tenant_id, document_id)
    record = db.session.execute(
        select(VersionRecord).where(
            VersionRecord.tenant_id == tenant_id,
            VersionRecord.document_id == document_id,
            VersionRecord.version_number == version_number,
        )
    ).scalar_one_or_none()
    if record is None:
        raise NotFoundError(resource="VersionRecord", resource_id=f"{document_id}@v{version_number}",
                            tenant_id=tenant_id)
    return record


def compare_versions(tenant_id: int, document_id: str, from_version: int, to_version: int) -> dict:
    """Field-level differences between two stored versions of a document."""
    if from_version == to_version:
        raise ValidationError(
            "Choose two different versions to compare",
            details={"to": "must differ from 'from'"},
        )
    older = get_version(tenant_id, document_id, from_version)
    newer = get_version(tenant_id, document_id, to_version)
    return {
        "document_id": document_id,
        "from_version": from_version,
        "to_version": to_version,
        "changes": diff_values(older.snapshot, newer.snapshot),
    }
