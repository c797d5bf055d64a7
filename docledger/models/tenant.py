"""
Tenant model — the isolation boundary for every document, draft,
version record and sequence counter.

Tenants are provisioned upstream; this service only reads them to
verify the forwarded tenant context and to pick per-tenant settings
(e.g. document number prefixes).
"""

from datetime import datetime, timezone

from docledger.models import db


class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    settings = db.Column(
        db.JSON,
        default=dict,
        comment='Free-form tenant settings, e.g. {"number_prefixes": {"invoice": "RE"}}',
    )
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def number_prefix(self, document_type: str) -> str | None:
        """Tenant override for the document number prefix, if configured."""
        prefixes = (self.settings or {}).get("number_prefixes") or {}
        return prefixes.get(document_type)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "settings": self.settings or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Tenant #{self.id} {self.slug}>"
