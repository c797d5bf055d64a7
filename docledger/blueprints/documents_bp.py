"""Documents blueprint — JSON adapter over the versioning services.

Endpoint groups:
  Documents        GET/POST  /api/v1/documents
                   GET       /api/v1/documents/<id>
  Drafts           PUT/DELETE /api/v1/documents/<id>/draft
                   POST      /api/v1/documents/<id>/draft/reconcile
                   GET       /api/v1/drafts
  Promotion        POST      /api/v1/documents/<id>/promote
                   POST      /api/v1/documents/<id>/complete
  Lifecycle        POST      /api/v1/documents/<id>/archive
                   POST      /api/v1/documents/<id>/restore
  Versions         GET       /api/v1/documents/<id>/versions
                   GET       /api/v1/documents/<id>/versions/<n>
                   GET       /api/v1/documents/<id>/versions/compare?from=&to=
                   POST      /api/v1/documents/<id>/versions/<n>/rollback
  Numbers          POST      /api/v1/document-numbers

Tenant and actor come from g.tenant_context (tenant_context middleware).
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from werkzeug.exceptions import HTTPException

from docledger.blueprints import parse_pagination
from docledger.core.exceptions import (
    ConflictError,
    DuplicateSequenceError,
    InvalidTransitionError,
    NotFoundError,
    TenantMismatchError,
    TransactionTimeoutError,
    ValidationError,
)
from docledger.middleware.tenant_context import current_context
from docledger.services import (
    document_service,
    draft_cache,
    promotion_engine,
    sequence_allocator,
    version_ledger,
)

logger = logging.getLogger(__name__)

documents_bp = Blueprint("documents", __name__, url_prefix="/api/v1")


# ── Error handlers ────────────────────────────────────────────────────────────


@documents_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return jsonify(error.to_dict()), 404


@documents_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return jsonify(error.to_dict()), 422


@documents_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return jsonify(error.to_dict()), 409


@documents_bp.errorhandler(InvalidTransitionError)
def _handle_transition(error: InvalidTransitionError):
    return jsonify(error.to_dict()), 409


@documents_bp.errorhandler(TenantMismatchError)
def _handle_tenant_mismatch(error: TenantMismatchError):
    return jsonify(error.to_dict()), 403


@documents_bp.errorhandler(TransactionTimeoutError)
def _handle_timeout(error: TransactionTimeoutError):
    response = jsonify(error.to_dict())
    response.headers["Retry-After"] = "1"
    return response, 503


@documents_bp.errorhandler(DuplicateSequenceError)
def _handle_duplicate_sequence(error: DuplicateSequenceError):
    return jsonify(error.to_dict()), 500


@documents_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in documents_bp endpoint=%s", request.endpoint)
    return jsonify({"error": "Internal server error"}), 500


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# ═════════════════════════════════════════════════════════════════════════
# Documents
# ═════════════════════════════════════════════════════════════════════════


@documents_bp.route("/documents", methods=["POST"])
def create_document():
    ctx = current_context()
    data = _body()
    doc = document_service.create_document(
        ctx.tenant_id,
        ctx.actor_id,
        data.get("payload"),
        document_type=data.get("document_type", "consultation"),
    )
    return jsonify(doc.to_dict()), 201


@documents_bp.route("/documents", methods=["GET"])
def list_documents():
    ctx = current_context()
    page, limit = parse_pagination()
    result = document_service.list_documents(
        ctx.tenant_id,
        status=request.args.get("status") or None,
        search=request.args.get("q"),
        document_type=request.args.get("type") or None,
        page=page,
        limit=limit,
    )
    return jsonify(result), 200


@documents_bp.route("/documents/<document_id>", methods=["GET"])
def get_document(document_id):
    ctx = current_context()
    return jsonify(document_service.get_document_with_draft(ctx.tenant_id, document_id, ctx.actor_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# Drafts
# ═════════════════════════════════════════════════════════════════════════


@documents_bp.route("/documents/<document_id>/draft", methods=["PUT"])
def save_draft(document_id):
    ctx = current_context()
    data = _body()
    if "payload_delta" not in data:
        raise ValidationError("payload_delta is required", details={"payload_delta": "required"})
    draft = draft_cache.upsert_draft(
        ctx.tenant_id,
        document_id,
        ctx.actor_id,
        data["payload_delta"],
        baseline_version=data.get("baseline_version"),
        revision=data.get("revision"),
    )
    return jsonify(draft.to_dict()), 200


@documents_bp.route("/documents/<document_id>/draft", methods=["DELETE"])
def discard_draft(document_id):
    ctx = current_context()
    draft_cache.delete_draft(ctx.tenant_id, document_id, ctx.actor_id)
    return "", 204


@documents_bp.route("/drafts", methods=["GET"])
def list_my_drafts():
    ctx = current_context()
    items = draft_cache.list_drafts_for_actor(ctx.tenant_id, ctx.actor_id)
    return jsonify({"items": items, "total": len(items)}), 200


@documents_bp.route("/documents/<document_id>/draft/reconcile", methods=["POST"])
def reconcile_draft(document_id):
    ctx = current_context()
    draft = draft_cache.reconcile_draft(ctx.tenant_id, document_id, ctx.actor_id)
    return jsonify(draft.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Promotion & lifecycle
# ═════════════════════════════════════════════════════════════════════════


@documents_bp.route("/documents/<document_id>/promote", methods=["POST"])
def promote_draft(document_id):
    ctx = current_context()
    doc = promotion_engine.promote_draft(ctx.tenant_id, document_id, ctx.actor_id)
    return jsonify(doc.to_dict()), 200


@documents_bp.route("/documents/<document_id>/complete", methods=["POST"])
def complete_document(document_id):
    ctx = current_context()
    doc = promotion_engine.complete_document(ctx.tenant_id, document_id, ctx.actor_id)
    return jsonify(doc.to_dict()), 200


@documents_bp.route("/documents/<document_id>/archive", methods=["POST"])
def archive_document(document_id):
    ctx = current_context()
    doc = promotion_engine.archive_document(ctx.tenant_id, document_id, ctx.actor_id)
    return jsonify(doc.to_dict()), 200


@documents_bp.route("/documents/<document_id>/restore", methods=["POST"])
def restore_document(document_id):
    ctx = current_context()
    doc = promotion_engine.restore_document(ctx.tenant_id, document_id, ctx.actor_id)
    return jsonify(doc.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Versions
# ═════════════════════════════════════════════════════════════════════════


@documents_bp.route("/documents/<document_id>/versions", methods=["GET"])
def list_versions(document_id):
    ctx = current_context()
    page, limit = parse_pagination()
    return jsonify(version_ledger.get_history(ctx.tenant_id, document_id, page, limit)), 200


@documents_bp.route("/documents/<document_id>/versions/compare", methods=["GET"])
def compare_versions(document_id):
    ctx = current_context()
    from_version = request.args.get("from", type=int)
    to_version = request.args.get("to", type=int)
    if from_version is None or to_version is None:
        raise ValidationError("from and to query parameters are required",
                              details={"from": "required", "to": "required"})
    result = version_ledger.compare_versions(ctx.tenant_id, document_id, from_version, to_version)
    return jsonify(result), 200


@documents_bp.route("/documents/<document_id>/versions/<int:version_number>", methods=["GET"])
def get_version(document_id, version_number):
    ctx = current_context()
    record = version_ledger.get_version(ctx.tenant_id, document_id, version_number)
    return jsonify(record.to_dict()), 200


@documents_bp.route("/documents/<document_id>/versions/<int:version_number>/rollback", methods=["POST"])
def rollback_to_version(document_id, version_number):
    ctx = current_context()
    doc = promotion_engine.rollback_to_version(ctx.tenant_id, document_id, version_number, ctx.actor_id)
    return jsonify(doc.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Document numbers
# ═════════════════════════════════════════════════════════════════════════


@documents_bp.route("/document-numbers", methods=["POST"])
def allocate_document_number():
    ctx = current_context()
    data = _body()
    document_type = data.get("document_type")
    if not document_type:
        raise ValidationError("document_type is required", details={"document_type": "required"})
    number = sequence_allocator.allocate_document_number(ctx.tenant_id, document_type)
    return jsonify({"document_type": document_type, "number": number}), 201
