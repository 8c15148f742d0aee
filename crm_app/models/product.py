# crm_app/models/product.py

from .base import BaseModel, db


class ProductCategory(BaseModel):
    """Grouping for products and services, addressed by ``code`` during imports"""

    __tablename__ = "product_categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(100), unique=True, nullable=False, index=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True)
    description = db.Column(db.Text, nullable=True)

    def __repr__(self):
        return f"<ProductCategory {self.code}>"


class Product(BaseModel):
    """Product or service that can be attached to deals"""

    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(300), nullable=True)
    code = db.Column(db.String(100), nullable=True, index=True)
    type = db.Column(db.String(50), nullable=True)
    sku = db.Column(db.String(100), nullable=True)
    unit_price = db.Column(db.String(50), nullable=True)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True)
    tag_ids = db.Column(db.JSON, nullable=True)
    scope_brand_ids = db.Column(db.JSON, nullable=True)
    custom_fields_data = db.Column(db.JSON, nullable=True)

    category = db.relationship("ProductCategory", foreign_keys=[category_id])

    def __repr__(self):
        return f"<Product {self.code or self.name}>"
