"""
Document Ledger
Blueprint registry and shared request helpers.
"""

from flask import current_app, request


def parse_pagination():
    """Read page/limit query params, clamped to the configured bounds.

    Query params:
        page   — 1-based page number (default 1)
        limit  — items per page (default DEFAULT_PAGE_SIZE, capped at MAX_PAGE_SIZE)

    Returns:
        (page, limit)
    """
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    return page, limit
