# crm_app/models/company.py

from .base import BaseModel, db


class Company(BaseModel):
    """Organization record that customers can be linked to"""

    __tablename__ = "companies"

    id = db.Column(db.Integer, primary_key=True)
    primary_name = db.Column(db.String(300), nullable=True, index=True)
    names = db.Column(db.JSON, nullable=True)
    size = db.Column(db.Integer, nullable=True)
    industry = db.Column(db.String(200), nullable=True)
    plan = db.Column(db.String(100), nullable=True)
    website = db.Column(db.String(500), nullable=True)
    business_type = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=True)
    code = db.Column(db.String(100), nullable=True, index=True)

    primary_email = db.Column(db.String(255), nullable=True)
    emails = db.Column(db.JSON, nullable=True)
    primary_phone = db.Column(db.String(50), nullable=True)
    phones = db.Column(db.JSON, nullable=True)

    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    parent_company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True)
    tag_ids = db.Column(db.JSON, nullable=True)
    scope_brand_ids = db.Column(db.JSON, nullable=True)
    custom_fields_data = db.Column(db.JSON, nullable=True)
    search_text = db.Column(db.Text, nullable=True)

    owner = db.relationship("User", foreign_keys=[owner_id])

    def __repr__(self):
        return f"<Company {self.primary_name}>"
