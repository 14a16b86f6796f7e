from __future__ import annotations

from flask import Blueprint, jsonify, request

from storefront.auth import require_admin
from storefront.database import get_db
from storefront.models import OrderStatus
from storefront.serializers import paginate, serialize_coupon, serialize_order, serialize_user
from storefront.services.admin_service import AdminService
from storefront.services.coupon_service import CouponService
from storefront.validators import (
    get_json_body,
    parse_bool,
    parse_enum,
    parse_pagination,
    validate_coupon,
)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.before_request
def _admin_only():
    require_admin()


def _get_admin_service() -> AdminService:
    return AdminService(get_db())


def _get_coupon_service() -> CouponService:
    return CouponService(get_db())


def _page_response(key: str, rows, page: int, limit: int, total: int):
    return jsonify({"success": True, "count": len(rows), **paginate(page, limit, total), key: rows})


# ----------------------------------------------------------------------
# Reporting
# ----------------------------------------------------------------------
@admin_bp.route("/products", methods=["GET"])
def list_products():
    page, limit = parse_pagination(request.args)
    rows, total = _get_admin_service().list_products(page=page, limit=limit)
    return _page_response("products", rows, page, limit, total)


@admin_bp.route("/orders", methods=["GET"])
def list_orders():
    page, limit = parse_pagination(request.args)
    status = request.args.get("status")
    status_filter = parse_enum(status, OrderStatus, "status") if status else None
    orders, total = _get_admin_service().list_orders(status=status_filter, page=page, limit=limit)
    rows = [serialize_order(order, include_user=True) for order in orders]
    return _page_response("orders", rows, page, limit, total)


@admin_bp.route("/users", methods=["GET"])
def list_users():
    page, limit = parse_pagination(request.args)
    users, total = _get_admin_service().list_users(page=page, limit=limit)
    return _page_response("users", [serialize_user(user) for user in users], page, limit, total)


@admin_bp.route("/stats", methods=["GET"])
def stats():
    return jsonify({"success": True, "stats": _get_admin_service().get_stats()})


# ----------------------------------------------------------------------
# Coupons
# ----------------------------------------------------------------------
@admin_bp.route("/coupons", methods=["GET"])
def list_coupons():
    page, limit = parse_pagination(request.args)
    is_active = request.args.get("isActive")
    coupons, total = _get_coupon_service().list_coupons(
        is_active=parse_bool(is_active, "isActive") if is_active is not None else None,
        page=page,
        limit=limit,
    )
    return _page_response("coupons", [serialize_coupon(coupon) for coupon in coupons], page, limit, total)


@admin_bp.route("/coupons/<int:coupon_id>", methods=["GET"])
def get_coupon(coupon_id: int):
    coupon = _get_coupon_service().get_coupon(coupon_id)
    return jsonify({"success": True, "coupon": serialize_coupon(coupon)})


@admin_bp.route("/coupons", methods=["POST"])
def create_coupon():
    data = validate_coupon(get_json_body())
    coupon = _get_coupon_service().create_coupon(data)
    return jsonify({"success": True, "coupon": serialize_coupon(coupon)}), 201


@admin_bp.route("/coupons/<int:coupon_id>", methods=["PUT"])
def update_coupon(coupon_id: int):
    data = validate_coupon(get_json_body(), partial=True)
    coupon = _get_coupon_service().update_coupon(coupon_id, data)
    return jsonify({"success": True, "coupon": serialize_coupon(coupon)})


@admin_bp.route("/coupons/<int:coupon_id>", methods=["DELETE"])
def delete_coupon(coupon_id: int):
    _get_coupon_service().delete_coupon(coupon_id)
    return jsonify({"success": True, "message": "Coupon deleted successfully"})
