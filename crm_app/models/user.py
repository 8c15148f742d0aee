# crm_app/models/user.py

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseModel, db


class User(BaseModel):
    """Team member who owns records and triggers imports"""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<User {self.username}>"

    @staticmethod
    def find_by_email(email):
        """Exact-match lookup; returns None on a miss or database error"""
        if not email:
            return None
        try:
            return User.query.filter_by(email=email).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding user by email {email}: {str(e)}")
            return None


class Tag(BaseModel):
    """Free-form label attached to CRM records"""

    __tablename__ = "tags"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=True)
    color = db.Column(db.String(20), nullable=True)

    def __repr__(self):
        return f"<Tag {self.name}>"
