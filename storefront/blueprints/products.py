from __future__ import annotations

from flask import Blueprint, jsonify, request

from storefront.auth import current_principal, require_admin
from storefront.database import get_db
from storefront.serializers import paginate, serialize_product
from storefront.services.product_service import ProductService
from storefront.validators import get_json_body, parse_pagination, validate_product

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _get_product_service() -> ProductService:
    return ProductService(get_db())


@products_bp.route("", methods=["GET"])
def list_products():
    page, limit = parse_pagination(request.args)
    products, total = _get_product_service().list_products(
        category=request.args.get("category") or None,
        page=page,
        limit=limit,
    )
    return jsonify(
        {
            "success": True,
            "count": len(products),
            **paginate(page, limit, total),
            "products": [serialize_product(product) for product in products],
        }
    )


@products_bp.route("/categories", methods=["GET"])
def list_categories():
    return jsonify({"success": True, "categories": _get_product_service().list_categories()})


@products_bp.route("/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    principal = current_principal()
    product = _get_product_service().get_product(
        product_id,
        include_inactive=bool(principal and principal.is_admin),
    )
    return jsonify({"success": True, "product": serialize_product(product)})


@products_bp.route("", methods=["POST"])
def create_product():
    require_admin()
    data = validate_product(get_json_body())
    product = _get_product_service().create_product(data)
    return jsonify({"success": True, "product": serialize_product(product)}), 201


@products_bp.route("/<int:product_id>", methods=["PUT"])
def update_product(product_id: int):
    require_admin()
    data = validate_product(get_json_body(), partial=True)
    product = _get_product_service().update_product(product_id, data)
    return jsonify({"success": True, "product": serialize_product(product)})


@products_bp.route("/<int:product_id>", methods=["DELETE"])
def delete_product(product_id: int):
    require_admin()
    _get_product_service().delete_product(product_id)
    return jsonify({"success": True, "message": "Product deleted successfully"})
