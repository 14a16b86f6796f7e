from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.errors import (
    Conflict,
    CouponBelowMinimum,
    CouponExpired,
    CouponInactive,
    CouponUsageLimitReached,
    NotFound,
)
from storefront.models import Coupon, money, utcnow
from storefront.observability import increment_counter


@dataclass(frozen=True)
class CouponQuote:
    """Discount a coupon would give on a cart total. Amounts are 2-dp strings."""
    id: int
    code: str
    discount_percentage: Decimal
    description: str
    discount_amount: str
    final_amount: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "discountPercentage": float(self.discount_percentage),
            "description": self.description,
            "discountAmount": self.discount_amount,
            "finalAmount": self.final_amount,
        }


class CouponService:
    """Coupon validation for shoppers plus coupon administration."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)

    def validate(self, code: str, cart_total: Decimal | float | str = 0, now: Optional[datetime] = None) -> CouponQuote:
        """
        Quote the discount ``code`` gives on ``cart_total`` without consuming it.

        Checks run in a fixed order and the first failure wins: unknown code,
        inactive, expired, usage limit reached, below minimum purchase.
        """
        coupon = self._find_by_code(code)
        if coupon is None:
            increment_counter("coupon_validations_total", labels={"result": "not_found"})
            raise NotFound("Invalid coupon code")

        total = Decimal(str(cart_total or 0))
        try:
            if not coupon.isActive:
                raise CouponInactive()
            if coupon.is_expired(now):
                raise CouponExpired()
            if coupon.is_usage_exhausted():
                raise CouponUsageLimitReached()
            minimum = Decimal(str(coupon.minPurchaseAmount or 0))
            if minimum > 0 and total < minimum:
                raise CouponBelowMinimum(float(minimum))
        except Exception as exc:
            increment_counter("coupon_validations_total", labels={"result": getattr(exc, "code", "error")})
            raise

        percentage = Decimal(str(coupon.discountPercentage))
        discount = total * percentage / 100
        increment_counter("coupon_validations_total", labels={"result": "valid"})
        return CouponQuote(
            id=coupon.couponID,
            code=coupon.code,
            discount_percentage=percentage,
            description=coupon.description or "",
            discount_amount=str(money(discount)),
            final_amount=str(money(total) - money(discount)),
        )

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    def list_coupons(self, is_active: Optional[bool] = None, page: int = 1, limit: int = 10) -> Tuple[List[Coupon], int]:
        query = self.db.query(Coupon)
        if is_active is not None:
            query = query.filter(Coupon.isActive == is_active)
        total = query.count()
        coupons = (
            query.order_by(desc(Coupon.created_at), desc(Coupon.couponID))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return coupons, total

    def get_coupon(self, coupon_id: int) -> Coupon:
        coupon = self.db.get(Coupon, coupon_id)
        if coupon is None:
            raise NotFound("Coupon not found")
        return coupon

    def create_coupon(self, data: Dict[str, Any]) -> Coupon:
        code = data["code"].strip().upper()
        if self._find_by_code(code) is not None:
            raise Conflict("Coupon code already exists")

        coupon = Coupon(
            code=code,
            discountPercentage=data["discountPercentage"],
            description=data.get("description") or "",
            isActive=data.get("isActive", True),
            expiryDate=data.get("expiryDate"),
            usageLimit=data.get("usageLimit"),
            minPurchaseAmount=data.get("minPurchaseAmount") or 0,
            usedCount=0,
        )
        self.db.add(coupon)
        self._commit_unique()
        self.logger.info("Coupon %s created", coupon.code)
        return coupon

    def update_coupon(self, coupon_id: int, data: Dict[str, Any]) -> Coupon:
        coupon = self.get_coupon(coupon_id)
        if "code" in data:
            code = data["code"].strip().upper()
            if code != coupon.code and self._find_by_code(code) is not None:
                raise Conflict("Coupon code already exists")
            data = {**data, "code": code}

        for field in (
            "code",
            "discountPercentage",
            "description",
            "isActive",
            "expiryDate",
            "usageLimit",
            "minPurchaseAmount",
        ):
            if field in data:
                setattr(coupon, field, data[field])
        coupon.updated_at = utcnow()
        self._commit_unique()
        self.logger.info("Coupon %s updated", coupon.code)
        return coupon

    def delete_coupon(self, coupon_id: int) -> None:
        coupon = self.get_coupon(coupon_id)
        self.db.delete(coupon)
        self.db.commit()
        self.logger.info("Coupon %s deleted", coupon.code)

    def _find_by_code(self, code: str) -> Optional[Coupon]:
        return self.db.query(Coupon).filter(Coupon.code == (code or "").strip().upper()).first()

    def _commit_unique(self) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("Coupon code already exists") from exc
