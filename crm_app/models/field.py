# crm_app/models/field.py

from sqlalchemy import Enum

from .base import BaseModel, db
from .enums import FieldType


class Field(BaseModel):
    """Tenant-defined custom field; values live in each record's ``custom_fields_data``"""

    __tablename__ = "fields"

    id = db.Column(db.Integer, primary_key=True)
    content_type = db.Column(db.String(50), nullable=False, index=True)
    text = db.Column(db.String(200), nullable=False)
    type = db.Column(Enum(FieldType, name="field_type_enum"), nullable=False, default=FieldType.TEXT)
    options = db.Column(db.JSON, nullable=True)
    is_required = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<Field {self.content_type}:{self.text}>"
