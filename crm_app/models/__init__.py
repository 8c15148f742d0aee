# crm_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .board import Board, BoardItemMixin, Deal, Pipeline, Stage, Task, Ticket
from .company import Company
from .conformity import ActivityLog, Conformity
from .customer import Customer
from .enums import BoardType, CustomerState, FieldType, Pronoun, ValidationStatus
from .field import Field
from .importer import ImportJob, ImportJobError, ImportJobRecord, ImportJobStatus
from .product import Product, ProductCategory
from .user import Tag, User

__all__ = [
    "db",
    "BaseModel",
    "User",
    "Tag",
    # Record models
    "Customer",
    "Company",
    "Product",
    "ProductCategory",
    "Board",
    "Pipeline",
    "Stage",
    "BoardItemMixin",
    "Deal",
    "Task",
    "Ticket",
    "Conformity",
    "ActivityLog",
    "Field",
    # Importer models
    "ImportJob",
    "ImportJobError",
    "ImportJobRecord",
    "ImportJobStatus",
    # Enums
    "BoardType",
    "CustomerState",
    "FieldType",
    "Pronoun",
    "ValidationStatus",
]
