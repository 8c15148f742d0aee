# crm_app/models/base.py
"""
Shared SQLAlchemy handle and the abstract base model.
"""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import mapped_column

db = SQLAlchemy()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseModel(db.Model):
    """Abstract base adding creation / modification timestamps to every table."""

    __abstract__ = True

    created_at = mapped_column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = mapped_column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
