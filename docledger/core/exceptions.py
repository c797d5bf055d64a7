"""
Exception hierarchy for the document ledger.

Services raise only these types. Blueprints register handlers against
them once and get consistent HTTP status codes everywhere; every class
exposes ``to_dict()`` so the handler can return a structured body the
caller can act on (retry, merge, fix input).

Usage:
    from docledger.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Document", resource_id=doc_id)
    raise ValidationError("Document is incomplete", details={"contact_info.email": "required"})
"""


class NotFoundError(Exception):
    """Raised when a document, draft or version is absent within the given scope.

    Maps to HTTP 404.

    Args:
        resource: Human-readable entity name (e.g. "Document", "Draft").
        resource_id: The key that was looked up. Included in logs and body.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    http_status = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)

    def to_dict(self) -> dict:
        return {
            "error": f"{self.resource} not found",
            "code": "NOT_FOUND",
            "resource": self.resource,
            "resource_id": self.resource_id,
        }


class ValidationError(Exception):
    """Raised when a payload fails section/type checks or completion rules.

    The data was well-formed JSON but violated a business rule. Maps to
    HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level breakdown keyed by dotted field path.
    """

    http_status = 422

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": str(self), "code": "VALIDATION_ERROR", "details": self.details}


class ConflictError(Exception):
    """Raised when a draft's baseline version is behind the document's version.

    The engine never auto-resolves; the caller chooses to force, re-merge
    or discard. Maps to HTTP 409.

    Args:
        resource: Model name.
        resource_id: Document id.
        draft_version: The baseline the draft was built on.
        current_version: The document's committed version at promotion time.
        diverged_fields: Dotted paths changed between the two versions.
    """

    http_status = 409

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        *,
        draft_version: int,
        current_version: int,
        diverged_fields: list[str] | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.draft_version = draft_version
        self.current_version = current_version
        self.diverged_fields = list(diverged_fields or [])
        super().__init__(
            f"{resource} {resource_id} changed since draft was based on it "
            f"(draft v{draft_version}, current v{current_version})"
        )

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": "VERSION_CONFLICT",
            "draft_version": self.draft_version,
            "current_version": self.current_version,
            "diverged_fields": self.diverged_fields,
        }


class InvalidTransitionError(Exception):
    """Raised when a status transition or edit is not allowed by lifecycle policy.

    Maps to HTTP 409.
    """

    http_status = 409

    def __init__(self, resource_id: str, action: str, current: str, reason: str | None = None):
        msg = f"Cannot '{action}' document {resource_id} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.resource_id = resource_id
        self.action = action
        self.current_status = current
        self.reason = reason

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": "INVALID_TRANSITION",
            "action": self.action,
            "current_status": self.current_status,
        }


class TenantMismatchError(Exception):
    """Raised when a request touches a record owned by a different tenant.

    Fail-closed: the operation is rejected outright and escalated as a
    security event. Maps to HTTP 403.
    """

    http_status = 403

    def __init__(self, resource: str, resource_id: str | int | None, tenant_id: int | None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        super().__init__(f"{resource} id={resource_id} is outside tenant={tenant_id}")

    def to_dict(self) -> dict:
        # The owning tenant is never echoed back.
        return {"error": "Access denied", "code": "TENANT_MISMATCH"}


class TransactionTimeoutError(Exception):
    """Raised when the document or counter row lock is not acquired in time.

    Safe to retry with backoff; nothing was committed. Maps to HTTP 503.
    """

    http_status = 503

    def __init__(self, operation: str, timeout_seconds: float | None = None) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        msg = f"Lock wait timed out during {operation}"
        if timeout_seconds is not None:
            msg += f" (after {timeout_seconds}s)"
        super().__init__(msg)

    def to_dict(self) -> dict:
        return {"error": str(self), "code": "LOCK_TIMEOUT", "retryable": True}


class DuplicateSequenceError(Exception):
    """Raised when the issued-number uniqueness constraint rejects an allocation.

    Signals an allocator defect, not a business condition; never retried.
    Maps to HTTP 500.
    """

    http_status = 500

    def __init__(self, tenant_id: int, document_type: str, formatted: str) -> None:
        self.tenant_id = tenant_id
        self.document_type = document_type
        self.formatted = formatted
        super().__init__(
            f"Sequence allocator issued duplicate number {formatted} "
            f"for tenant={tenant_id} type={document_type}"
        )

    def to_dict(self) -> dict:
        return {"error": "Internal server error", "code": "DUPLICATE_SEQUENCE"}
