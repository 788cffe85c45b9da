"""
Shared enumerations for database models.

Mapped to database enums so that an invalid role or audit
action is rejected by the database, not only by Python.
"""

import enum


class Role(str, enum.Enum):
    """Caller roles known to the authorization filter."""
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class PurchaseState(str, enum.Enum):
    """Lifecycle of a purchase, derived from the ``closed`` flag."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    PASSWORD_RESET = "PASSWORD_RESET"
