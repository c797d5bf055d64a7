"""
Document Store — persistence façade over the documents tables.

Provides the atomic primitives the versioning services are built on:

  locked_transaction()   one transaction with a bounded lock wait; commits on
                         success, rolls back on any exception
  get_document()         tenant-checked read, optionally SELECT ... FOR UPDATE
  compare_and_set()      UPDATE documents ... WHERE version = :observed
  increment_counter()    UPDATE ... SET n = n + 1 RETURNING n
  dialect_insert()       INSERT builder with ON CONFLICT support

Tenant scoping:
  Every lookup is by primary key first and then checked against the caller's
  tenant. A row owned by another tenant is never silently filtered: it raises
  TenantMismatchError and is escalated as a security event.

Locking:
  PostgreSQL takes a row lock (FOR UPDATE) bounded by SET LOCAL lock_timeout.
  SQLite has no row locks; writers are serialised by the database lock, whose
  wait is bounded by PRAGMA busy_timeout, and the compare-and-set update keeps
  only one promotion per observed version.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError

from docledger.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    TenantMismatchError,
    TransactionTimeoutError,
)
from docledger.models import db
from docledger.models.document import EDITABLE_STATUSES, Document
from docledger.models.sequence import SequenceCounter
from docledger.services.security_observability import record_security_event

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for lock_not_available
_PG_LOCK_NOT_AVAILABLE = "55P03"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dialect_name() -> str:
    return db.session.get_bind().dialect.name


def dialect_insert(model):
    """Return an INSERT construct that supports ON CONFLICT for the active dialect."""
    name = dialect_name()
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise RuntimeError(f"Unsupported database dialect for upserts: {name}")


def _is_lock_timeout(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == _PG_LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(orig or exc).lower()


@contextmanager
def locked_transaction(operation: str):
    """Run the block as one transaction with a bounded lock wait.

    Commits when the block exits normally. Any exception rolls the whole
    transaction back; a lock wait that runs out surfaces as the retryable
    TransactionTimeoutError.
    """
    timeout = float(current_app.config.get("LOCK_TIMEOUT_SECONDS", 3))
    try:
        millis = int(timeout * 1000)
        if dialect_name() == "postgresql":
            db.session.execute(text(f"SET LOCAL lock_timeout = '{millis}ms'"))
        elif dialect_name() == "sqlite":
            db.session.execute(text(f"PRAGMA busy_timeout = {millis}"))
        yield db.session
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        if _is_lock_timeout(exc):
            logger.warning("Lock wait timed out during %s", operation)
            raise TransactionTimeoutError(operation, timeout) from exc
        raise
    except Exception:
        db.session.rollback()
        raise


def reject_cross_tenant(resource: str, resource_id, tenant_id: int, owner_tenant_id: int):
    """Record, log and raise for an access outside the caller's tenant."""
    record_security_event(
        event_type="tenant_mismatch",
        reason=f"{resource.lower()}_outside_tenant",
        severity="high",
        tenant_id=tenant_id,
        document_id=str(resource_id),
        details={"owner_tenant_id": owner_tenant_id},
    )
    logger.error(
        "Cross-tenant access blocked: %s %s requested by tenant %s",
        resource, resource_id, tenant_id,
        extra={
            "tenant_id": tenant_id,
            "document_id": str(resource_id),
            "event_type": "tenant_mismatch",
            "security_code": "SEC-TENANT-MISMATCH-001",
        },
    )
    raise TenantMismatchError(resource, resource_id, tenant_id)


def ensure_tenant(obj, resource: str, resource_id, tenant_id: int):
    """Raise TenantMismatchError when obj belongs to another tenant."""
    if not obj.owned_by(tenant_id):
        reject_cross_tenant(resource, resource_id, tenant_id, obj.tenant_id)
    return obj


def ensure_editable(document: Document, action: str) -> None:
    """Raise InvalidTransitionError when the document is read-only."""
    if document.status not in EDITABLE_STATUSES:
        raise InvalidTransitionError(document.id, action, document.status,
                                     "archived documents are read-only")


def get_document(tenant_id: int, document_id: str, *, for_update: bool = False) -> Document:
    """Fetch a document by id, scoped to tenant_id.

    Args:
        tenant_id: Caller's tenant. Required.
        document_id: Document primary key.
        for_update: Take a row lock (PostgreSQL) for the rest of the transaction.

    Raises:
        NotFoundError: No document with that id.
        TenantMismatchError: The document belongs to another tenant.
    """
    if tenant_id is None:
        raise ValueError("get_document() requires a tenant_id")

    stmt = (
        select(Document)
        .where(Document.id == document_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        stmt = stmt.with_for_update()
    doc = db.session.execute(stmt).scalar_one_or_none()
    if doc is None:
        raise NotFoundError(resource="Document", resource_id=document_id, tenant_id=tenant_id)
    return ensure_tenant(doc, "Document", document_id, tenant_id)


def compare_and_set(
    document: Document,
    *,
    expected_version: int | None,
    expected_status: str,
    values: dict,
    bump_version: bool,
) -> bool:
    """Apply values only if the row still has the observed version and status.

    expected_version=None guards on status alone. Returns True when exactly
    one row was updated. The caller re-reads the document afterwards; the
    in-session object is not synchronised.
    """
    stmt = (
        update(Document)
        .where(
            Document.id == document.id,
            Document.tenant_id == document.tenant_id,
            Document.status == expected_status,
        )
        .values(**values)
    )
    if expected_version is not None:
        stmt = stmt.where(Document.version == expected_version)
    if bump_version:
        stmt = stmt.values(version=Document.version + 1)
    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    return result.rowcount == 1


def reload(document: Document) -> Document:
    """Re-read a document row inside the current transaction."""
    db.session.refresh(document)
    return document


def increment_counter(tenant_id: int, document_type: str) -> int:
    """Atomically take the next number for (tenant, document type).

    Creates the counter row on first use, then increments and returns the
    previous value in a single statement.
    """
    db.session.execute(
        dialect_insert(SequenceCounter)
        .values(tenant_id=tenant_id, document_type=document_type, next_number=1, updated_at=utcnow())
        .on_conflict_do_nothing(index_elements=["tenant_id", "document_type"])
    )
    stmt = (
        update(SequenceCounter)
        .where(
            SequenceCounter.tenant_id == tenant_id,
            SequenceCounter.document_type == document_type,
        )
        .values(next_number=SequenceCounter.next_number + 1, updated_at=utcnow())
        .returning(SequenceCounter.next_number)
        .execution_options(synchronize_session=False)
    )
    next_number = db.session.execute(stmt).scalar_one()
    return next_number - 1
