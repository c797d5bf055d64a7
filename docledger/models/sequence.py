"""
Sequence models — per-(tenant, document type) counters and the register
of every formatted document number ever issued.

sequence_counters.next_number is only ever mutated through a single
UPDATE ... SET next_number = next_number + 1 RETURNING statement.
issued_document_numbers is a second, independent uniqueness check on the
formatted result.
"""

from datetime import datetime, timezone

from docledger.models import db
from docledger.models.base import TenantModel


class SequenceCounter(TenantModel):
    __tablename__ = "sequence_counters"

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(30), nullable=False)
    next_number = db.Column(
        db.Integer,
        nullable=False,
        default=1,
        comment="Number handed out by the next allocation",
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_sequence_counters_tenant_type"),
    )

    def __repr__(self) -> str:
        return f"<SequenceCounter t={self.tenant_id} {self.document_type} next={self.next_number}>"


class IssuedDocumentNumber(TenantModel):
    __tablename__ = "issued_document_numbers"

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(30), nullable=False)
    number = db.Column(db.Integer, nullable=False, comment="Raw allocator output")
    formatted = db.Column(db.String(64), nullable=False, comment="e.g. INV-2026-0042")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "formatted", name="uq_issued_document_numbers_tenant_formatted"),
    )

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "document_type": self.document_type,
            "number": self.number,
            "formatted": self.formatted,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<IssuedDocumentNumber {self.formatted}>"
