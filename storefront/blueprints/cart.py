from __future__ import annotations

from flask import Blueprint, jsonify

from storefront.auth import require_principal
from storefront.database import get_db
from storefront.errors import ValidationError
from storefront.serializers import serialize_cart
from storefront.services.cart_service import CartService
from storefront.validators import get_json_body, parse_cart_item_id, parse_int

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _get_cart_service() -> CartService:
    return CartService(get_db())


def _cart_response(service: CartService, cart, message: str | None = None):
    body = {"success": True, "cart": serialize_cart(cart, service.compute_total(cart))}
    if message:
        body["message"] = message
    return jsonify(body)


@cart_bp.route("", methods=["GET"])
def get_cart():
    principal = require_principal()
    service = _get_cart_service()
    return _cart_response(service, service.get_cart(principal.id))


@cart_bp.route("", methods=["POST"])
def add_to_cart():
    principal = require_principal()
    payload = get_json_body()
    if payload.get("productId") is None:
        raise ValidationError.for_field("productId", "Product ID is required")
    product_id = parse_int(payload["productId"], "productId", minimum=1)
    quantity = parse_int(payload.get("quantity"), "quantity", minimum=1)

    service = _get_cart_service()
    cart = service.add_item(principal.id, product_id, quantity)
    return _cart_response(service, cart)


@cart_bp.route("", methods=["DELETE"])
def clear_cart():
    principal = require_principal()
    service = _get_cart_service()
    cart = service.clear(principal.id)
    return _cart_response(service, cart, "Cart cleared successfully")


@cart_bp.route("/<item_id>", methods=["PUT"])
def update_cart_item(item_id: str):
    principal = require_principal()
    line_index = parse_cart_item_id(item_id)
    quantity = parse_int(get_json_body().get("quantity"), "quantity", minimum=1)

    service = _get_cart_service()
    cart = service.set_quantity(principal.id, line_index, quantity)
    return _cart_response(service, cart)


@cart_bp.route("/<item_id>", methods=["DELETE"])
def remove_cart_item(item_id: str):
    principal = require_principal()
    line_index = parse_cart_item_id(item_id)

    service = _get_cart_service()
    cart = service.remove_item(principal.id, line_index)
    return _cart_response(service, cart, "Item removed from cart successfully")
