"""
Storefront API - Custom Exceptions
===================================
Business-level exceptions that can be caught and converted to HTTP responses.
Each class carries the HTTP status it maps to; main.py registers the handlers.
"""

from fastapi import status
from sqlalchemy.exc import IntegrityError


class StorefrontError(Exception):
    """Base exception for all business logic errors."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Unexpected error."):
        self.message = message
        super().__init__(self.message)


class BadRequestError(StorefrontError):
    """Malformed or out-of-range input, or a business rule the caller can fix."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(StorefrontError):
    """Raised when authentication fails."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(StorefrontError):
    """Raised when user lacks permission or does not own the resource."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(StorefrontError):
    """Raised when a requested resource doesn't exist."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(StorefrontError):
    """Uniqueness or state violation (double checkout, illegal transition)."""
    status_code = status.HTTP_409_CONFLICT


class DuplicateError(ConflictError):
    """Raised for unique constraint violations at the business level."""
    pass


class PaymentError(StorefrontError):
    """Raised for payment gateway errors."""
    status_code = status.HTTP_502_BAD_GATEWAY


class NoActiveCartError(BadRequestError):
    def __init__(self):
        super().__init__("No active cart found to checkout.")


class EmptyCartError(BadRequestError):
    def __init__(self):
        super().__init__("Cart is empty. Add items before checking out.")


class InsufficientStockError(BadRequestError):
    """Raised when variant stock is not enough for the requested quantity."""
    def __init__(self, product_name: str = "", variant_label: str = ""):
        self.product_name = product_name
        self.variant_label = variant_label
        if product_name and variant_label:
            msg = f"Insufficient stock for {product_name} ({variant_label})."
        elif product_name:
            msg = f"Insufficient stock for {product_name}."
        else:
            msg = "Insufficient stock."
        super().__init__(msg)


class AmountMismatchError(ConflictError):
    """Captured amount differs from the order total built at settlement."""
    def __init__(self, captured: str, expected: str):
        self.captured = captured
        self.expected = expected
        super().__init__(f"Captured {captured} but order total is {expected}.")


class InvalidSignatureError(BadRequestError):
    """Webhook payload failed signature verification."""
    def __init__(self, detail: str = ""):
        super().__init__(f"Webhook Error: {detail}" if detail else "Webhook Error: invalid signature")


def translate_integrity_error(exc: IntegrityError) -> StorefrontError:
    """Map a storage constraint violation to a domain error without leaking engine codes."""
    text = str(getattr(exc, "orig", exc)).lower()
    if "foreign key" in text:
        return NotFoundError("Referenced resource does not exist.")
    if "unique" in text or "duplicate" in text:
        return DuplicateError("Resource already exists.")
    if "check constraint" in text or "not null" in text:
        return BadRequestError("Invalid value for a constrained field.")
    return ConflictError("Request conflicts with existing data.")
