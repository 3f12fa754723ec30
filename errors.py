"""
Error taxonomy shared by the stores and the order workflow.

Each error carries the HTTP status the API answers with; main.py renders them
as ``{"detail": message}``.
"""

from typing import Optional


class StoreError(Exception):
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StoreError):
    status_code = 400
    default_message = "Invalid input"


class Unauthenticated(StoreError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(StoreError):
    status_code = 403
    default_message = "Admin access required"


class NotFound(StoreError):
    status_code = 404
    default_message = "Not found"


class InvalidReference(StoreError):
    status_code = 400
    default_message = "Order references an unknown product"


class InvalidTotal(StoreError):
    status_code = 400
    default_message = "Order total does not match its items"


class InsufficientStock(StoreError):
    status_code = 409
    default_message = "Insufficient stock"


class InvalidToken(StoreError):
    status_code = 400
    default_message = "Invalid or expired token"


class Conflict(StoreError):
    status_code = 409
    default_message = "Email already registered"


class InvalidStatusTransition(StoreError):
    status_code = 409
    default_message = "Order status cannot change that way"
