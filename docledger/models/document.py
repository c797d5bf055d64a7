"""
Document models — documents, their append-only version ledger and
per-actor drafts.

Tables:
    documents           canonical record, one row per business document
    document_versions   immutable snapshot per committed change
    document_drafts     per-(document, actor) autosave scratch space

Business rules:
    - documents.version always equals the highest version_number in
      document_versions for that document.
    - document_versions rows are never updated or deleted; rollback
      appends a new row whose snapshot equals an older one.
    - document_drafts is unique on (document_id, actor_id); a draft is
      removed on successful promotion or explicit discard.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import event as _sa_event

from docledger.models import db
from docledger.models.base import TenantModel

# ── Constants ─────────────────────────────────────────────────────────────────

DOCUMENT_TYPES = frozenset({
    "consultation",
    "proposal",
    "contract",
    "invoice",
    "quotation",
})

DOCUMENT_STATUSES = frozenset({"draft", "completed", "archived"})

# Allowed status transitions. There is no path back to "draft".
STATUS_TRANSITIONS = {
    "draft": ["completed"],
    "completed": ["archived"],
    "archived": ["completed"],
}

# Statuses in which the payload may still change through promotion.
EDITABLE_STATUSES = frozenset({"draft", "completed"})


def _utcnow():
    return datetime.now(timezone.utc)


class Document(TenantModel):
    """
    Canonical business record.

    `version` starts at 1 and is only ever incremented by the promotion
    engine's compare-and-set update; status transitions leave it alone.
    """

    __tablename__ = "documents"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_type = db.Column(
        db.String(30),
        nullable=False,
        default="consultation",
        comment="consultation | proposal | contract | invoice | quotation",
    )
    owner_actor_id = db.Column(db.String(64), nullable=False)
    status = db.Column(
        db.String(20),
        nullable=False,
        default="draft",
        comment="draft | completed | archived",
    )
    version = db.Column(db.Integer, nullable=False, default=1, server_default="1")
    payload = db.Column(db.JSON, nullable=False, default=dict)
    completion_percentage = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft', 'completed', 'archived')",
            name="ck_documents_status",
        ),
        db.CheckConstraint("version >= 1", name="ck_documents_version_positive"),
        TenantModel.tenant_composite_index("documents", "status"),
        TenantModel.tenant_composite_index("documents", "owner_actor_id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "document_type": self.document_type,
            "owner_actor_id": self.owner_actor_id,
            "status": self.status,
            "version": self.version,
            "payload": self.payload or {},
            "completion_percentage": self.completion_percentage,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def to_summary(self) -> dict:
        """Compact listing shape: headline contact fields, no full payload."""
        payload = self.payload or {}
        contact = payload.get("contact_info") or {}
        context = payload.get("business_context") or {}
        return {
            "id": self.id,
            "document_type": self.document_type,
            "owner_actor_id": self.owner_actor_id,
            "business_name": contact.get("business_name"),
            "contact_person": contact.get("contact_person"),
            "email": contact.get("email"),
            "industry": context.get("industry"),
            "status": self.status,
            "version": self.version,
            "completion_percentage": self.completion_percentage,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self) -> str:
        return f"<Document {self.id} v{self.version} {self.status}>"


class VersionRecord(TenantModel):
    """
    Immutable snapshot of a document at one committed version.

    Business rules:
    - Records are NEVER updated or deleted — append-only ledger.
    - version_number is contiguous from 1 per document, enforced by the
      unique constraint and by appending only under the document row lock.
    """

    __tablename__ = "document_versions"

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.String(36),
        db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_number = db.Column(db.Integer, nullable=False)
    snapshot = db.Column(
        db.JSON,
        nullable=False,
        comment="Full payload as of this version",
    )
    changed_fields = db.Column(
        db.JSON,
        nullable=False,
        default=list,
        comment="Dotted field paths that differ from the previous version",
    )
    change_summary = db.Column(db.String(500), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("document_id", "version_number", name="uq_document_versions_doc_number"),
        db.CheckConstraint("version_number >= 1", name="ck_document_versions_number_positive"),
    )

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "version_number": self.version_number,
            "changed_fields": self.changed_fields or [],
            "change_summary": self.change_summary,
            "actor_id": self.actor_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_dict(self) -> dict:
        data = self.to_summary()
        data["tenant_id"] = self.tenant_id
        data["snapshot"] = self.snapshot or {}
        return data

    def __repr__(self) -> str:
        return f"<VersionRecord {self.document_id} v{self.version_number}>"


@_sa_event.listens_for(VersionRecord, "before_update")
def _block_version_update(mapper, connection, target) -> None:  # noqa: ANN001
    """Refuse any ORM UPDATE of a persisted version record."""
    raise RuntimeError(
        f"document_versions is append-only; refusing to update "
        f"{target.document_id} v{target.version_number}"
    )


@_sa_event.listens_for(VersionRecord, "before_delete")
def _block_version_delete(mapper, connection, target) -> None:  # noqa: ANN001
    """Refuse any ORM DELETE of a persisted version record."""
    raise RuntimeError(
        f"document_versions is append-only; refusing to delete "
        f"{target.document_id} v{target.version_number}"
    )


class Draft(TenantModel):
    """
    Per-actor autosave staging area.

    baseline_version is captured when the draft is first created (or
    explicitly reconciled) and is what the conflict detector compares
    against the document's current version at promotion time.
    """

    __tablename__ = "document_drafts"

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.String(36),
        db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_id = db.Column(db.String(64), nullable=False)
    baseline_version = db.Column(db.Integer, nullable=False)
    payload_delta = db.Column(db.JSON, nullable=False, default=dict)
    revision = db.Column(
        db.BigInteger,
        nullable=True,
        comment="Optional client-side monotonic stamp; stale upserts are ignored",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("document_id", "actor_id", name="uq_document_drafts_doc_actor"),
        db.Index("ix_document_drafts_updated_at", "updated_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "document_id": self.document_id,
            "actor_id": self.actor_id,
            "baseline_version": self.baseline_version,
            "payload_delta": self.payload_delta or {},
            "revision": self.revision,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Draft {self.document_id}/{self.actor_id} base=v{self.baseline_version}>"
