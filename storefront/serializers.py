from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storefront.models import (
    Cart,
    Coupon,
    Order,
    OrderItem,
    OrderStatusEvent,
    Product,
    User,
    as_utc,
    money,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def _amount(value: Any) -> float:
    return float(money(value))


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.userID,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "address": user.address,
        "role": user.role,
        "createdAt": _iso(user.created_at),
    }


def serialize_product(product: Product, **extra: Any) -> Dict[str, Any]:
    payload = {
        "id": product.productID,
        "name": product.name,
        "description": product.description,
        "category": product.category,
        "price": _amount(product.price),
        "discount": float(product.discount or 0),
        "discountedPrice": _amount(product.discounted_price),
        "images": list(product.images or []),
        "stock": product.stock,
        "quantity": product.quantity,
        "isActive": bool(product.isActive),
        "createdAt": _iso(product.created_at),
        "updatedAt": _iso(product.updated_at),
    }
    payload.update(extra)
    return payload


def serialize_cart(cart: Cart, total: Decimal) -> Dict[str, Any]:
    items: List[Dict[str, Any]] = []
    for index, item in enumerate(cart.items):
        product = item.product
        items.append(
            {
                "id": f"item-{index}",
                "product": serialize_product(product) if product is not None else None,
                "quantity": item.quantity,
            }
        )
    return {
        "id": cart.cartID,
        "userId": cart.userID,
        "items": items,
        "total": _amount(total),
        "updatedAt": _iso(cart.updated_at),
    }


def serialize_order_item(item: OrderItem) -> Dict[str, Any]:
    # Live catalog entry next to the purchase-time snapshot; None once deleted
    product = item.product
    return {
        "productId": item.productID,
        "product": serialize_product(product) if product is not None else None,
        "name": item.name,
        "quantity": item.quantity,
        "price": _amount(item.price),
        "discount": float(item.discount or 0),
        "itemTotal": _amount(item.item_total),
    }


def serialize_timeline_entry(entry: OrderStatusEvent) -> Dict[str, Any]:
    return {
        "status": entry.status,
        "timestamp": _iso(entry.timestamp),
        "note": entry.note,
    }


def serialize_order(order: Order, include_user: bool = False) -> Dict[str, Any]:
    payload = {
        "id": order.orderID,
        "orderNumber": order.orderNumber,
        "user": order.userID,
        "items": [serialize_order_item(item) for item in order.items],
        "totalAmount": _amount(order.totalAmount),
        "shippingAddress": order.shippingAddress,
        "status": _enum_value(order.status),
        "paymentStatus": _enum_value(order.paymentStatus),
        "statusTimeline": [serialize_timeline_entry(entry) for entry in order.statusTimeline],
        "expectedDeliveryDate": _iso(order.expectedDeliveryDate),
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
    }
    if include_user and order.user is not None:
        payload["user"] = {
            "id": order.user.userID,
            "name": order.user.name,
            "email": order.user.email,
            "phone": order.user.phone,
        }
    return payload


def serialize_coupon(coupon: Coupon) -> Dict[str, Any]:
    return {
        "id": coupon.couponID,
        "code": coupon.code,
        "discountPercentage": float(coupon.discountPercentage),
        "description": coupon.description,
        "isActive": bool(coupon.isActive),
        "expiryDate": _iso(coupon.expiryDate),
        "usageLimit": coupon.usageLimit,
        "usedCount": coupon.usedCount or 0,
        "minPurchaseAmount": _amount(coupon.minPurchaseAmount),
        "isValid": coupon.is_valid,
        "createdAt": _iso(coupon.created_at),
        "updatedAt": _iso(coupon.updated_at),
    }


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }
