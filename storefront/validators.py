"""
Request payload validation.

Each ``validate_*`` helper takes the decoded JSON body and returns a cleaned
dict of values the services accept, or raises ``ValidationError`` listing
every offending field.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from flask import request

from storefront.config import Config
from storefront.errors import ValidationError
from storefront.models import OrderStatus, PaymentStatus

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^[0-9]{10}$")
COUPON_CODE_RE = re.compile(r"^[A-Z0-9]+$")
CART_ITEM_RE = re.compile(r"^item-(\d+)$")

ADDRESS_FIELDS = ("street", "city", "state", "zipCode", "country")


class _Errors:
    def __init__(self) -> None:
        self.items: List[Dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        self.items.append({"field": field, "message": message})

    def raise_if_any(self) -> None:
        if self.items:
            raise ValidationError(self.items, message=self.items[0]["message"])


def get_json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError.for_field("body", "Request body must be a JSON object")
    return payload


# ----------------------------------------------------------------------
# Scalar parsers
# ----------------------------------------------------------------------
def parse_int(value: Any, field: str, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ValidationError.for_field(field, f"{field} must be an integer")
    if isinstance(value, str):
        value = value.strip()
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError.for_field(field, f"{field} must be an integer") from None
    if isinstance(value, float) and value != number:
        raise ValidationError.for_field(field, f"{field} must be an integer")
    if minimum is not None and number < minimum:
        raise ValidationError.for_field(field, f"{field} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError.for_field(field, f"{field} must be at most {maximum}")
    return number


def parse_decimal(value: Any, field: str, minimum: Optional[Decimal] = None, maximum: Optional[Decimal] = None) -> Decimal:
    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError.for_field(field, f"{field} must be a number")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError.for_field(field, f"{field} must be a number") from None
    if not number.is_finite():
        raise ValidationError.for_field(field, f"{field} must be a number")
    if minimum is not None and number < minimum:
        raise ValidationError.for_field(field, f"{field} must be at least {minimum}")
    if maximum is not None and number > maximum:
        raise ValidationError.for_field(field, f"{field} must be at most {maximum}")
    return number


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ValidationError.for_field(field, f"{field} must be a boolean")


def parse_enum(value: Any, enum_cls: Type[Enum], field: str) -> Enum:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError.for_field(field, f"Invalid {field}. Must be one of: {allowed}") from None


def parse_iso_datetime(value: Any, field: str) -> datetime:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError.for_field(field, f"{field} must be a valid ISO 8601 date")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError.for_field(field, f"{field} must be a valid ISO 8601 date") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_address(value: Any, field: str = "address") -> Dict[str, str]:
    if not isinstance(value, Mapping):
        raise ValidationError.for_field(field, f"{field} must be an object")
    address: Dict[str, str] = {}
    for key in ADDRESS_FIELDS:
        part = value.get(key)
        if part is None:
            continue
        if not isinstance(part, str):
            raise ValidationError.for_field(f"{field}.{key}", f"{field}.{key} must be a string")
        address[key] = part.strip()
    return address


def parse_cart_item_id(raw: str) -> int:
    """Resolve the positional ``item-<n>`` reference used on the wire."""
    match = CART_ITEM_RE.match(raw or "")
    if not match:
        raise ValidationError.for_field("itemId", "Invalid item ID")
    return int(match.group(1))


def parse_pagination(args: Mapping[str, Any]) -> Tuple[int, int]:
    page = parse_int(args.get("page", 1), "page", minimum=1)
    limit = parse_int(
        args.get("limit", Config.DEFAULT_PAGE_SIZE),
        "limit",
        minimum=1,
        maximum=Config.MAX_PAGE_SIZE,
    )
    return page, limit


def _clean_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        return ""
    return value.strip()


# ----------------------------------------------------------------------
# Payload validators
# ----------------------------------------------------------------------
def validate_registration(payload: Mapping[str, Any]) -> Dict[str, Any]:
    errors = _Errors()
    name = _clean_str(payload, "name") or ""
    email = (_clean_str(payload, "email") or "").lower()
    password = payload.get("password") or ""
    phone = _clean_str(payload, "phone")

    if not name:
        errors.add("name", "Name is required")
    elif not 2 <= len(name) <= 50:
        errors.add("name", "Name must be between 2 and 50 characters")
    if not email:
        errors.add("email", "Email is required")
    elif not EMAIL_RE.match(email):
        errors.add("email", "Please provide a valid email")
    if not password:
        errors.add("password", "Password is required")
    elif not isinstance(password, str) or len(password) < 6:
        errors.add("password", "Password must be at least 6 characters")
    if phone is not None and not PHONE_RE.match(phone):
        errors.add("phone", "Phone must be 10 digits")
    errors.raise_if_any()

    cleaned: Dict[str, Any] = {"name": name, "email": email, "password": password, "phone": phone}
    if payload.get("address") is not None:
        cleaned["address"] = parse_address(payload["address"])
    return cleaned


def validate_login(payload: Mapping[str, Any]) -> Dict[str, str]:
    errors = _Errors()
    email = (_clean_str(payload, "email") or "").lower()
    password = payload.get("password") or ""
    if not email:
        errors.add("email", "Email is required")
    elif not EMAIL_RE.match(email):
        errors.add("email", "Please provide a valid email")
    if not password:
        errors.add("password", "Password is required")
    errors.raise_if_any()
    return {"email": email, "password": password}


def validate_profile_update(payload: Mapping[str, Any]) -> Dict[str, Any]:
    errors = _Errors()
    cleaned: Dict[str, Any] = {}
    name = _clean_str(payload, "name")
    if name is not None:
        if not 2 <= len(name) <= 50:
            errors.add("name", "Name must be between 2 and 50 characters")
        cleaned["name"] = name
    phone = _clean_str(payload, "phone")
    if phone is not None:
        if not PHONE_RE.match(phone):
            errors.add("phone", "Phone must be 10 digits")
        cleaned["phone"] = phone
    errors.raise_if_any()
    if payload.get("address") is not None:
        cleaned["address"] = parse_address(payload["address"])
    return cleaned


def validate_product(payload: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]:
    errors = _Errors()
    cleaned: Dict[str, Any] = {}

    name = _clean_str(payload, "name")
    if name is None:
        if not partial:
            errors.add("name", "Product name is required")
    elif not 2 <= len(name) <= 100:
        errors.add("name", "Product name must be between 2 and 100 characters")
    else:
        cleaned["name"] = name

    description = _clean_str(payload, "description")
    if description is None:
        if not partial:
            errors.add("description", "Product description is required")
    elif not 10 <= len(description) <= 1000:
        errors.add("description", "Description must be between 10 and 1000 characters")
    else:
        cleaned["description"] = description

    category = _clean_str(payload, "category")
    if category is None:
        if not partial:
            errors.add("category", "Product category is required")
    elif not category:
        errors.add("category", "Category cannot be empty")
    else:
        cleaned["category"] = category

    numeric_fields = (
        ("price", Decimal("0"), None, not partial),
        ("discount", Decimal("0"), Decimal("100"), False),
    )
    for field, minimum, maximum, required in numeric_fields:
        if payload.get(field) is None:
            if required:
                errors.add(field, "Price is required")
            continue
        try:
            cleaned[field] = parse_decimal(payload[field], field, minimum, maximum)
        except ValidationError as exc:
            errors.items.extend(exc.errors)

    if payload.get("stock") is not None:
        try:
            cleaned["stock"] = parse_int(payload["stock"], "stock", minimum=0)
        except ValidationError:
            errors.add("stock", "Stock must be a non-negative integer")

    images = payload.get("images")
    if images is not None:
        if not isinstance(images, list) or not all(isinstance(url, str) for url in images):
            errors.add("images", "Images must be an array of URLs")
        else:
            cleaned["images"] = [url.strip() for url in images]

    quantity = _clean_str(payload, "quantity")
    if quantity is not None:
        cleaned["quantity"] = quantity

    if payload.get("isActive") is not None:
        try:
            cleaned["isActive"] = parse_bool(payload["isActive"], "isActive")
        except ValidationError as exc:
            errors.items.extend(exc.errors)

    errors.raise_if_any()
    return cleaned


def validate_coupon(payload: Mapping[str, Any], partial: bool = False) -> Dict[str, Any]:
    errors = _Errors()
    cleaned: Dict[str, Any] = {}

    code = _clean_str(payload, "code")
    if code is None:
        if not partial:
            errors.add("code", "Coupon code is required")
    else:
        code = code.upper()
        if not 3 <= len(code) <= 20:
            errors.add("code", "Coupon code must be between 3 and 20 characters")
        elif not COUPON_CODE_RE.match(code):
            errors.add("code", "Coupon code must contain only letters and numbers")
        else:
            cleaned["code"] = code

    if payload.get("discountPercentage") is None:
        if not partial:
            errors.add("discountPercentage", "Discount percentage is required")
    else:
        try:
            cleaned["discountPercentage"] = parse_decimal(
                payload["discountPercentage"], "discountPercentage", Decimal("0"), Decimal("100")
            )
        except ValidationError as exc:
            errors.items.extend(exc.errors)

    description = _clean_str(payload, "description")
    if description is not None:
        if len(description) > 500:
            errors.add("description", "Description cannot exceed 500 characters")
        cleaned["description"] = description

    optional_parsers = (
        ("isActive", lambda value: parse_bool(value, "isActive")),
        ("expiryDate", lambda value: parse_iso_datetime(value, "expiryDate")),
        ("usageLimit", lambda value: parse_int(value, "usageLimit", minimum=1)),
        ("minPurchaseAmount", lambda value: parse_decimal(value, "minPurchaseAmount", Decimal("0"))),
    )
    for field, parser in optional_parsers:
        if field not in payload:
            continue
        if payload[field] is None:
            # Explicit null clears expiry and usage limit
            if field in ("expiryDate", "usageLimit"):
                cleaned[field] = None
            continue
        try:
            cleaned[field] = parser(payload[field])
        except ValidationError as exc:
            errors.items.extend(exc.errors)

    errors.raise_if_any()
    return cleaned


def validate_coupon_check(payload: Mapping[str, Any]) -> Tuple[str, Decimal]:
    code = _clean_str(payload, "code") or ""
    if not code:
        raise ValidationError.for_field("code", "Coupon code is required")
    if not 3 <= len(code) <= 20:
        raise ValidationError.for_field("code", "Coupon code must be between 3 and 20 characters")
    cart_total = payload.get("cartTotal")
    if cart_total is None:
        return code, Decimal("0")
    return code, parse_decimal(cart_total, "cartTotal", Decimal("0"))


def validate_status_update(payload: Mapping[str, Any]) -> Dict[str, Any]:
    errors = _Errors()
    cleaned: Dict[str, Any] = {}

    parsers = (
        ("status", lambda value: parse_enum(value, OrderStatus, "order status")),
        ("paymentStatus", lambda value: parse_enum(value, PaymentStatus, "payment status")),
        ("expectedDeliveryDate", lambda value: parse_iso_datetime(value, "expectedDeliveryDate")),
    )
    for field, parser in parsers:
        if payload.get(field) is None:
            continue
        try:
            cleaned[field] = parser(payload[field])
        except ValidationError as exc:
            errors.items.extend(exc.errors)

    note = _clean_str(payload, "note")
    if note is not None:
        if len(note) > 500:
            errors.add("note", "Note must be less than 500 characters")
        cleaned["note"] = note

    errors.raise_if_any()
    return cleaned
