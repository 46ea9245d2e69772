"""
EventHub Planning Service
Database models package.

All models share the single ``db`` instance defined here; the application
factory binds it with ``db.init_app(app)``.
"""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    """Column default for row bookkeeping timestamps (wall clock, UTC)."""
    return datetime.now(timezone.utc)
