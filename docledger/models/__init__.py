"""
Document Ledger
SQLAlchemy extension instance shared by all models.

Usage:
    from docledger.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
