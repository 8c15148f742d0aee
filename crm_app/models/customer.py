# crm_app/models/customer.py
"""
Customer model covering both customers and leads (distinguished by ``state``).
"""

from sqlalchemy import Enum, Index

from .base import BaseModel, db
from .enums import CustomerState, Pronoun


class Customer(BaseModel):
    """Person record; leads are customers with ``state=lead``"""

    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)
    state = db.Column(
        Enum(CustomerState, name="customer_state_enum"),
        nullable=False,
        default=CustomerState.CUSTOMER,
        index=True,
    )

    # Name fields
    first_name = db.Column(db.String(100), nullable=True)
    middle_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    sex = db.Column(Enum(Pronoun, name="pronoun_enum"), nullable=True)
    birth_date = db.Column(db.String(50), nullable=True)
    position = db.Column(db.String(200), nullable=True)
    department = db.Column(db.String(200), nullable=True)
    description = db.Column(db.Text, nullable=True)
    code = db.Column(db.String(100), nullable=True, index=True)
    lead_status = db.Column(db.String(50), nullable=True)
    is_subscribed = db.Column(db.String(10), nullable=True)

    # Contact points
    primary_email = db.Column(db.String(255), nullable=True, index=True)
    emails = db.Column(db.JSON, nullable=True)
    email_validation_status = db.Column(db.String(50), nullable=True)
    primary_phone = db.Column(db.String(50), nullable=True, index=True)
    phones = db.Column(db.JSON, nullable=True)
    phone_validation_status = db.Column(db.String(50), nullable=True)

    # Ownership / classification
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    tag_ids = db.Column(db.JSON, nullable=True)
    scope_brand_ids = db.Column(db.JSON, nullable=True)
    integration_id = db.Column(db.String(100), nullable=True)
    related_integration_ids = db.Column(db.JSON, nullable=True)
    custom_fields_data = db.Column(db.JSON, nullable=True)

    # Computed on write
    profile_score = db.Column(db.Integer, nullable=False, default=0)
    search_text = db.Column(db.Text, nullable=True)

    owner = db.relationship("User", foreign_keys=[owner_id])

    __table_args__ = (Index("idx_customer_state_email", "state", "primary_email"),)

    def __repr__(self):
        return f"<Customer {self.primary_email or self.id}>"
