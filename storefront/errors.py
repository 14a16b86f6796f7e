"""
Domain errors for the storefront services.

Every error carries the HTTP status and a stable machine-readable code so the
Flask error handlers can turn it into a structured failure response.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    """Base exception for all recoverable storefront failures."""

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "message": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(StorefrontError):
    """Malformed or out-of-range input, with one entry per offending field."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: List[Dict[str, str]], message: str = "Validation failed") -> None:
        super().__init__(message, {"errors": errors})
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}], message=message)


class Unauthorized(StorefrontError):
    status_code = 401
    code = "NOT_AUTHENTICATED"


class Forbidden(StorefrontError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(StorefrontError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(StorefrontError):
    status_code = 409
    code = "CONFLICT"


class InsufficientStock(StorefrontError):
    """Requested quantity exceeds what the product currently has available."""

    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_name: str, available: int, requested: int, product_id: Optional[int] = None) -> None:
        super().__init__(
            f"Insufficient stock for {product_name}. Available: {available}, Requested: {requested}",
            {"product_id": product_id, "available": available, "requested": requested},
        )
        self.product_name = product_name
        self.product_id = product_id
        self.available = available
        self.requested = requested


class EmptyCart(StorefrontError):
    code = "EMPTY_CART"

    def __init__(self, message: str = "Cart is empty") -> None:
        super().__init__(message)


class ProductUnavailable(StorefrontError):
    code = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_name: Optional[str] = None, product_id: Optional[int] = None) -> None:
        super().__init__(
            f"Product {product_name or 'Unknown'} is no longer available",
            {"product_id": product_id},
        )
        self.product_id = product_id


class CouponError(StorefrontError):
    """Base class for coupon rejections."""


class CouponInactive(CouponError):
    code = "COUPON_INACTIVE"

    def __init__(self) -> None:
        super().__init__("This coupon is not active")


class CouponExpired(CouponError):
    code = "COUPON_EXPIRED"

    def __init__(self) -> None:
        super().__init__("This coupon has expired")


class CouponUsageLimitReached(CouponError):
    code = "COUPON_USAGE_LIMIT_REACHED"

    def __init__(self) -> None:
        super().__init__("This coupon has reached its usage limit")


class CouponBelowMinimum(CouponError):
    code = "COUPON_BELOW_MINIMUM"

    def __init__(self, min_purchase_amount: float) -> None:
        super().__init__(
            f"Minimum purchase amount of {min_purchase_amount:.2f} is required to use this coupon",
            {"minPurchaseAmount": min_purchase_amount},
        )
        self.min_purchase_amount = min_purchase_amount


__all__ = [
    "StorefrontError",
    "ValidationError",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "Conflict",
    "InsufficientStock",
    "EmptyCart",
    "ProductUnavailable",
    "CouponError",
    "CouponInactive",
    "CouponExpired",
    "CouponUsageLimitReached",
    "CouponBelowMinimum",
]
