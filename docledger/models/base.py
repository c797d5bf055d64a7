"""
TenantModel — shared base for every table that holds tenant data.

Documents, version records, drafts and sequence rows all carry a
non-null tenant_id. Lookups by primary key are followed by an
ownership check (owned_by) rather than filtered, so a foreign row
surfaces as a mismatch instead of disappearing.
"""

from docledger.models import db


class TenantModel(db.Model):
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def owned_by(self, tenant_id: int) -> bool:
        return self.tenant_id == tenant_id

    @classmethod
    def query_for_tenant(cls, tenant_id: int):
        """select() of this model restricted to one tenant."""
        return db.select(cls).where(cls.tenant_id == tenant_id)

    @staticmethod
    def tenant_composite_index(table_name: str, *columns: str):
        """Index on (tenant_id, *columns) named ix_<table>_tenant_<cols>."""
        return db.Index(f"ix_{table_name}_tenant_{'_'.join(columns)}", "tenant_id", *columns)
