from __future__ import annotations

from flask import Blueprint, jsonify

from storefront.auth import require_principal
from storefront.database import get_db
from storefront.services.coupon_service import CouponService
from storefront.validators import get_json_body, validate_coupon_check

coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.route("/validate", methods=["POST"])
def validate_coupon():
    require_principal()
    code, cart_total = validate_coupon_check(get_json_body())
    quote = CouponService(get_db()).validate(code, cart_total)
    return jsonify({"success": True, "coupon": quote.to_dict()})
