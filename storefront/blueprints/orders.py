from __future__ import annotations

from flask import Blueprint, jsonify

from storefront.auth import require_admin, require_principal
from storefront.database import get_db
from storefront.serializers import serialize_order
from storefront.services.order_service import OrderService
from storefront.validators import get_json_body, parse_address, validate_status_update

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _get_order_service() -> OrderService:
    return OrderService(get_db())


@orders_bp.route("", methods=["GET"])
def list_orders():
    principal = require_principal()
    orders = _get_order_service().list_orders(principal.id)
    return jsonify(
        {
            "success": True,
            "count": len(orders),
            "orders": [serialize_order(order) for order in orders],
        }
    )


@orders_bp.route("", methods=["POST"])
def create_order():
    principal = require_principal()
    payload = get_json_body()
    shipping_address = None
    if payload.get("shippingAddress") is not None:
        shipping_address = parse_address(payload["shippingAddress"], "shippingAddress")

    order = _get_order_service().create_from_cart(principal, shipping_address=shipping_address)
    return jsonify({"success": True, "order": serialize_order(order)}), 201


@orders_bp.route("/<int:order_id>", methods=["GET"])
def get_order(order_id: int):
    principal = require_principal()
    order = _get_order_service().get_order(order_id, principal)
    return jsonify({"success": True, "order": serialize_order(order, include_user=True)})


@orders_bp.route("/<int:order_id>/status", methods=["PUT"])
def update_order_status(order_id: int):
    require_admin()
    data = validate_status_update(get_json_body())
    order = _get_order_service().update_status(
        order_id,
        status=data.get("status"),
        payment_status=data.get("paymentStatus"),
        expected_delivery_date=data.get("expectedDeliveryDate"),
        note=data.get("note") or None,
    )
    return jsonify(
        {
            "success": True,
            "message": "Order status updated successfully",
            "order": serialize_order(order, include_user=True),
        }
    )
