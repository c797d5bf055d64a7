"""
Sequence Allocator — collision-free document numbers per (tenant, document type).

Format:  {PREFIX}-{YYYY}-{NNNN}   e.g. INV-2026-0042, PROP-2026-0007

The counter is one row per (tenant, document type), mutated only by a
single UPDATE ... SET next_number = next_number + 1 RETURNING statement;
there is no read-then-write anywhere. The counter does not reset per year.
Gaps are acceptable (a rolled-back allocation burns nothing, a committed
number that goes unused stays a gap); duplicates are not.

Every formatted number is also written to issued_document_numbers in the
same transaction. If that uniqueness check ever fires, the allocator is
broken: the transaction is rolled back, the event is logged at CRITICAL
and DuplicateSequenceError is raised. It is never retried.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from docledger.core.exceptions import DuplicateSequenceError, NotFoundError, ValidationError
from docledger.models import db
from docledger.models.document import DOCUMENT_TYPES
from docledger.models.sequence import IssuedDocumentNumber
from docledger.models.tenant import Tenant
from docledger.services import document_store
from docledger.services.security_observability import record_security_event

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES = {
    "consultation": "CNS",
    "proposal": "PROP",
    "contract": "CON",
    "invoice": "INV",
    "quotation": "QUO",
}


def _check_type(document_type: str) -> None:
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError(
            f"Unknown document type: {document_type}",
            details={"document_type": f"must be one of: {', '.join(sorted(DOCUMENT_TYPES))}"},
        )


def resolve_prefix(tenant: Tenant, document_type: str) -> str:
    """Prefix for one document type: tenant override, else the default.

    Raises ValidationError when the tenant's overrides give this type the
    same prefix as another type.
    """
    effective = {
        name: tenant.number_prefix(name) or default
        for name, default in DEFAULT_PREFIXES.items()
    }
    prefix = effective[document_type]
    clashes = sorted(name for name, other in effective.items() if other == prefix and name != document_type)
    if clashes:
        raise ValidationError(
            f"Number prefix {prefix} is shared by {document_type} and {', '.join(clashes)}",
            details={"number_prefixes": f"{prefix} is used by more than one document type"},
        )
    return prefix


def format_document_number(prefix: str, number: int, year: int) -> str:
    return f"{prefix}-{year}-{number:04d}"


def allocate(tenant_id: int, document_type: str) -> int:
    """Return the next raw number for (tenant, document type).

    Unique across any number of concurrent callers.
    """
    _check_type(document_type)
    with document_store.locked_transaction("allocate_sequence"):
        number = document_store.increment_counter(tenant_id, document_type)
    logger.debug("Allocated %s #%d", document_type, number,
                 extra={"tenant_id": tenant_id, "document_type": document_type})
    return number


def allocate_document_number(tenant_id: int, document_type: str, *, year: int | None = None) -> str:
    """Allocate and record the next formatted document number.

    Raises:
        ValidationError: Unknown document type, or a prefix shared with another type.
        NotFoundError: Tenant does not exist.
        DuplicateSequenceError: The issued number already exists (allocator defect).
    """
    _check_type(document_type)
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    prefix = resolve_prefix(tenant, document_type)
    year = year or document_store.utcnow().year

    formatted = None
    try:
        with document_store.locked_transaction("allocate_document_number"):
            number = document_store.increment_counter(tenant_id, document_type)
            formatted = format_document_number(prefix, number, year)
            db.session.add(IssuedDocumentNumber(
                tenant_id=tenant_id,
                document_type=document_type,
                number=number,
                formatted=formatted,
            ))
            db.session.flush()
    except IntegrityError as exc:
        record_security_event(
            event_type="duplicate_sequence",
            reason="issued_number_collision",
            severity="critical",
            tenant_id=tenant_id,
            details={"document_type": document_type, "formatted": formatted},
        )
        logger.critical(
            "Sequence allocator issued a duplicate number %s (tenant=%s type=%s)",
            formatted, tenant_id, document_type,
            extra={"tenant_id": tenant_id, "document_type": document_type},
            exc_info=True,
        )
        raise DuplicateSequenceError(tenant_id, document_type, formatted) from exc

    logger.info("Issued document number %s", formatted,
                extra={"tenant_id": tenant_id, "document_type": document_type})
    return formatted
