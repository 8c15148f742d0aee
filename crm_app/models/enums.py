# crm_app/models/enums.py
"""
Enums shared by the CRM record models.
"""

from enum import Enum as PyEnum


class CustomerState(PyEnum):
    """Lifecycle state stored on customer rows"""

    VISITOR = "visitor"
    LEAD = "lead"
    CUSTOMER = "customer"


class Pronoun(PyEnum):
    """Normalized gender / pronoun value"""

    UNKNOWN = "unknown"
    MALE = "male"
    FEMALE = "female"
    NON_BINARY = "non_binary"


class ValidationStatus(PyEnum):
    """Deliverability status for an email address or phone number"""

    UNKNOWN = "unknown"
    VALID = "valid"
    INVALID = "invalid"
    ACCEPT_ALL = "accept_all_unverifiable"
    DISPOSABLE = "disposable"


class BoardType(PyEnum):
    """Kind of work item a board holds"""

    DEAL = "deal"
    TASK = "task"
    TICKET = "ticket"


class FieldType(PyEnum):
    """Value type of a tenant-defined custom field"""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    EMAIL = "email"
