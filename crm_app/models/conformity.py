# crm_app/models/conformity.py
"""
Cross-entity relationship rows and the activity log.
"""

from sqlalchemy import Index

from .base import BaseModel, db


class Conformity(BaseModel):
    """
    Symmetric many-to-many link between two business records
    (e.g. customer ↔ company). Endpoints are polymorphic, so no foreign keys.
    """

    __tablename__ = "conformities"

    id = db.Column(db.Integer, primary_key=True)
    main_type = db.Column(db.String(50), nullable=False)
    main_type_id = db.Column(db.Integer, nullable=False)
    rel_type = db.Column(db.String(50), nullable=False)
    rel_type_id = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        Index("idx_conformity_main", "main_type", "main_type_id"),
        Index("idx_conformity_rel", "rel_type", "rel_type_id"),
    )

    def __repr__(self):
        return f"<Conformity {self.main_type}:{self.main_type_id} -> {self.rel_type}:{self.rel_type_id}>"

    @staticmethod
    def related_ids(main_type, main_type_id, rel_type):
        """Ids of ``rel_type`` records linked to the given record, in either direction"""
        forward = db.session.query(Conformity.rel_type_id).filter_by(
            main_type=main_type, main_type_id=main_type_id, rel_type=rel_type
        )
        backward = db.session.query(Conformity.main_type_id).filter_by(
            rel_type=main_type, rel_type_id=main_type_id, main_type=rel_type
        )
        return sorted({row[0] for row in forward} | {row[0] for row in backward})


class ActivityLog(BaseModel):
    """Append-only history entry for a record"""

    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    content_type = db.Column(db.String(50), nullable=False)
    content_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(50), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    content = db.Column(db.JSON, nullable=True)

    __table_args__ = (Index("idx_activity_log_content", "content_type", "content_id"),)

    def __repr__(self):
        return f"<ActivityLog {self.action} {self.content_type}:{self.content_id}>"
