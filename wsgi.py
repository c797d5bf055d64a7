"""
Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db upgrade
    DRAFT_RETENTION_DAYS=30 flask --app wsgi cleanup-drafts
"""

from docledger import create_app

app = create_app()
