"""
Promotion Engine — moves drafts into the canonical document and drives
the document status lifecycle.

Status lifecycle (STATUS_TRANSITIONS):
    draft --complete--> completed --archive--> archived --restore--> completed

There is no path back to draft. Archived documents are read-only: promote
and rollback are refused with InvalidTransitionError.

Every operation here is one transaction (document_store.locked_transaction):

    1. lock the document row (FOR UPDATE on PostgreSQL)
    2. conflict check: draft baseline vs current version
    3. merge the draft delta into the payload and validate for the status
    4. compare-and-set UPDATE ... WHERE version = :observed, bumping version
    5. append the ledger record for the new version
    6. delete the draft, commit

Any exception after step 1 rolls everything back. The compare-and-set in
step 4 is what keeps one winner per observed version on SQLite, where
FOR UPDATE is a no-op.

Usage:
    from docledger.services import promotion_engine

    doc = promotion_engine.promote_draft(tenant_id, doc_id, actor_id)
    doc = promotion_engine.complete_document(tenant_id, doc_id, actor_id)
"""

from __future__ import annotations

import logging

from docledger.core.exceptions import ConflictError, InvalidTransitionError, NotFoundError
from docledger.models.document import STATUS_TRANSITIONS, Document
from docledger.services import document_store, draft_cache, version_ledger
from docledger.services.conflict_detector import detect_conflict, diff_snapshots
from docledger.services.payload_schema import (
    completion_percentage,
    merge_payload,
    validate_for_completion,
    validate_for_status,
)

logger = logging.getLogger(__name__)


def validate_transition(document: Document, target_status: str, action: str) -> None:
    """Raise InvalidTransitionError unless current → target is allowed."""
    allowed = STATUS_TRANSITIONS.get(document.status, [])
    if target_status not in allowed:
        raise InvalidTransitionError(
            document.id, action, document.status,
            f"allowed next statuses: {', '.join(allowed) or 'none'}",
        )


def _log_extra(document: Document, actor_id: str | None, **more) -> dict:
    extra = {"tenant_id": document.tenant_id, "document_id": document.id, "actor_id": actor_id}
    extra.update(more)
    return extra


def _raise_lost_race(document: Document, baseline_version: int, observed_status: str, action: str):
    """The compare-and-set matched no row: report why, inside the transaction."""
    document_store.reload(document)
    if document.status != observed_status:
        raise InvalidTransitionError(document.id, action, document.status,
                                     f"status changed from {observed_status} concurrently")
    baseline_snapshot = version_ledger.snapshot_at(document.tenant_id, document.id, baseline_version)
    current_snapshot = version_ledger.snapshot_at(document.tenant_id, document.id, document.version)
    raise ConflictError(
        "Document", document.id,
        draft_version=baseline_version,
        current_version=document.version,
        diverged_fields=diff_snapshots(baseline_snapshot, current_snapshot),
    )


def _commit_new_version(
    document: Document,
    new_payload: dict,
    *,
    target_status: str,
    baseline_version: int,
    actor_id: str | None,
    change_summary: str,
    action: str,
) -> Document:
    """Compare-and-set the payload with a version bump, then append to the ledger."""
    observed_version = document.version
    observed_status = document.status
    previous_snapshot = version_ledger.snapshot_at(document.tenant_id, document.id, observed_version)
    changed_fields = diff_snapshots(previous_snapshot, new_payload)

    now = document_store.utcnow()
    values = {
        "payload": new_payload,
        "status": target_status,
        "completion_percentage": completion_percentage(new_payload),
        "updated_at": now,
    }
    if target_status == "completed" and document.completed_at is None:
        values["completed_at"] = now

    won = document_store.compare_and_set(
        document,
        expected_version=observed_version,
        expected_status=observed_status,
        values=values,
        bump_version=True,
    )
    if not won:
        _raise_lost_race(document, baseline_version, observed_status, action)

    document_store.reload(document)
    version_ledger.append_version(
        document,
        new_payload,
        change_summary=change_summary,
        changed_fields=changed_fields,
        actor_id=actor_id,
    )
    return document


def _promote(tenant_id: int, document_id: str, actor_id: str, *, action: str, complete: bool) -> Document:
    with document_store.locked_transaction(action):
        document = document_store.get_document(tenant_id, document_id, for_update=True)
        document_store.ensure_editable(document, action)
        target_status = "completed" if complete else document.status
        if complete:
            validate_transition(document, target_status, action)

        draft = draft_cache.find_draft(document, actor_id, for_update=True)
        if draft is None:
            raise NotFoundError(resource="Draft", resource_id=f"{document_id}/{actor_id}", tenant_id=tenant_id)

        verdict = detect_conflict(
            draft.baseline_version,
            document.version,
            version_ledger.snapshot_at(tenant_id, document.id, draft.baseline_version),
            version_ledger.snapshot_at(tenant_id, document.id, document.version),
        )
        if verdict.is_conflict:
            logger.info(
                "Promotion rejected: %s draft v%d behind v%d",
                document_id, verdict.draft_version, verdict.current_version,
                extra=_log_extra(document, actor_id,
                                 draft_version=verdict.draft_version,
                                 current_version=verdict.current_version),
            )
            raise ConflictError(
                "Document", document.id,
                draft_version=verdict.draft_version,
                current_version=verdict.current_version,
                diverged_fields=verdict.diverged_fields,
            )

        merged = merge_payload(document.payload, draft.payload_delta)
        validate_for_status(merged, target_status)

        _commit_new_version(
            document,
            merged,
            target_status=target_status,
            baseline_version=draft.baseline_version,
            actor_id=actor_id,
            change_summary="Completed" if complete else "Draft promoted",
            action=action,
        )
        draft_cache.remove_promoted_draft(draft)

    logger.info(
        "Document %s promoted to v%d (%s)", document_id, document.version, document.status,
        extra=_log_extra(document, actor_id, version=document.version),
    )
    return document


def promote_draft(tenant_id: int, document_id: str, actor_id: str) -> Document:
    """Merge the actor's draft into the document as a new version.

    Raises:
        NotFoundError: No such document, or the actor has no draft.
        ConflictError: The draft's baseline is behind the current version.
        ValidationError: The merged payload is malformed (or incomplete,
            for a completed document).
        InvalidTransitionError: The document is archived.
        TransactionTimeoutError: The row lock was not acquired in time.
    """
    return _promote(tenant_id, document_id, actor_id, action="promote", complete=False)


def complete_document(tenant_id: int, document_id: str, actor_id: str) -> Document:
    """Move a draft document to completed.

    With a pending draft from this actor, this is a promotion targeting
    status=completed. Without one, the current payload is validated and
    only the status changes (no version bump). On failure the status stays
    draft and the version is unchanged.
    """
    with document_store.locked_transaction("complete"):
        document = document_store.get_document(tenant_id, document_id, for_update=True)
        validate_transition(document, "completed", "complete")
        has_draft = draft_cache.find_draft(document, actor_id) is not None

        if not has_draft:
            validate_for_completion(document.payload)
            observed_version = document.version
            now = document_store.utcnow()
            won = document_store.compare_and_set(
                document,
                expected_version=observed_version,
                expected_status="draft",
                values={
                    "status": "completed",
                    "completion_percentage": completion_percentage(document.payload),
                    "completed_at": now,
                    "updated_at": now,
                },
                bump_version=False,
            )
            if not won:
                _raise_lost_race(document, observed_version, "draft", "complete")
            document_store.reload(document)

    if has_draft:
        return _promote(tenant_id, document_id, actor_id, action="complete", complete=True)

    logger.info("Document %s completed at v%d", document_id, document.version,
                extra=_log_extra(document, actor_id, version=document.version))
    return document


def rollback_to_version(tenant_id: int, document_id: str, version_number: int, actor_id: str) -> Document:
    """Append a new version whose snapshot equals version_number's snapshot.

    History is never truncated or renumbered; the document's version
    strictly increases.
    """
    with document_store.locked_transaction("rollback"):
        document = document_store.get_document(tenant_id, document_id, for_update=True)
        document_store.ensure_editable(document, "rollback")
        snapshot = version_ledger.snapshot_at(tenant_id, document.id, version_number)
        validate_for_status(snapshot, document.status)
        _commit_new_version(
            document,
            snapshot,
            target_status=document.status,
            baseline_version=document.version,
            actor_id=actor_id,
            change_summary=f"Rolled back to version {version_number}",
            action="rollback",
        )

    logger.info(
        "Document %s rolled back to v%d as v%d", document_id, version_number, document.version,
        extra=_log_extra(document, actor_id, version=document.version),
    )
    return document


def _change_status(tenant_id: int, document_id: str, target_status: str, action: str,
                   actor_id: str | None) -> Document:
    with document_store.locked_transaction(action):
        document = document_store.get_document(tenant_id, document_id, for_update=True)
        validate_transition(document, target_status, action)
        observed_status = document.status
        now = document_store.utcnow()
        values = {"status": target_status, "updated_at": now}
        if target_status == "completed" and document.completed_at is None:
            values["completed_at"] = now
        won = document_store.compare_and_set(
            document,
            expected_version=None,
            expected_status=observed_status,
            values=values,
            bump_version=False,
        )
        if not won:
            document_store.reload(document)
            raise InvalidTransitionError(document.id, action, document.status,
                                         f"status changed from {observed_status} concurrently")
        document_store.reload(document)

    logger.info("Document %s %s -> %s", document_id, observed_status, target_status,
                extra=_log_extra(document, actor_id, version=document.version))
    return document


def archive_document(tenant_id: int, document_id: str, actor_id: str | None = None) -> Document:
    """completed → archived. No version bump."""
    return _change_status(tenant_id, document_id, "archived", "archive", actor_id)


def restore_document(tenant_id: int, document_id: str, actor_id: str | None = None) -> Document:
    """archived → completed. No version bump."""
    return _change_status(tenant_id, document_id, "completed", "restore", actor_id)
