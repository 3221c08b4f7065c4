"""
Error taxonomy and common error messages.

Every error raised by the shop core derives from ShopError so the API layer
can turn it into a structured response (code + message).
"""

# Auth errors
ERROR_UNAUTHENTICATED = "You are not authorized to perform this action."
ERROR_INVALID_TOKEN = "Invalid or expired token"

# Argument errors
ERROR_INVALID_ID = "Invalid identifier"
ERROR_INVALID_QUANTITY = "quantity must be a positive integer"
ERROR_QUANTITY_REQUIRED = "quantity is required when the product is already in the cart"
ERROR_INVALID_PATTERN = "Invalid name pattern"
ERROR_INVALID_SORT = "Invalid sort field"
ERROR_INVALID_PAGINATION = "limit and start must be non-negative 64-bit integers"
ERROR_INVALID_VALUE = "Value cannot be stored"

# Lookup errors
ERROR_PRODUCT_NOT_FOUND = "Product not found"

# Storage errors
ERROR_DATABASE_UNAVAILABLE = "Database not available"
ERROR_STORAGE = "Storage operation failed"
ERROR_CART_CONTENDED = "Cart is being updated concurrently, try again"


class ShopError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(ShopError):
    code = "UNAUTHENTICATED"
    status_code = 401


class InvalidArgument(ShopError):
    code = "BAD_USER_INPUT"
    status_code = 400


class NotFound(ShopError):
    code = "NOT_FOUND"
    status_code = 404


class StorageFailure(ShopError):
    code = "STORAGE_FAILURE"
    status_code = 503


class WriteConflict(StorageFailure):
    """A write collided with a unique index (usually a concurrent upsert)."""

    code = "WRITE_CONFLICT"
    status_code = 409
