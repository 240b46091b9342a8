"""Coupon validation and discount calculation.

Everything here works on :class:`CouponTerms`, a frozen snapshot of a
coupon row, so previews can be computed without touching the database.
Recording a redemption lives in :mod:`utils.coupon_usage`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import FrozenSet, Mapping, Optional, Sequence, Tuple, Union

from utils.money import CENT, ZERO, money

ALL_PRODUCTS = "All Products"


class CouponStatus(str, Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"
    DISABLED = "Disabled"


class DiscountType(str, Enum):
    PERCENTAGE = "Percentage"
    FIXED = "Fixed"


class CouponErrorCode(str, Enum):
    COUPON_NOT_FOUND = "COUPON_NOT_FOUND"
    COUPON_INACTIVE = "COUPON_INACTIVE"
    COUPON_NOT_STARTED = "COUPON_NOT_STARTED"
    COUPON_EXPIRED = "COUPON_EXPIRED"
    USER_LIMIT_REACHED = "USER_LIMIT_REACHED"
    GLOBAL_LIMIT_REACHED = "GLOBAL_LIMIT_REACHED"
    MINIMUM_ORDER_NOT_MET = "MINIMUM_ORDER_NOT_MET"


class CouponError(Exception):
    """A coupon cannot be applied. ``code`` is stable and shown to clients."""

    code = None
    default_message = "Coupon cannot be applied"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    def to_dict(self):
        return {"error": str(self), "code": self.code.value}


class CouponNotFound(CouponError):
    code = CouponErrorCode.COUPON_NOT_FOUND
    default_message = "Coupon code is invalid"


class CouponInactive(CouponError):
    code = CouponErrorCode.COUPON_INACTIVE
    default_message = "This coupon is no longer active"


class CouponNotStarted(CouponError):
    code = CouponErrorCode.COUPON_NOT_STARTED
    default_message = "This coupon is not valid yet"


class CouponExpired(CouponError):
    code = CouponErrorCode.COUPON_EXPIRED
    default_message = "This coupon has expired"


class UserLimitReached(CouponError):
    code = CouponErrorCode.USER_LIMIT_REACHED
    default_message = "You have already used this coupon the maximum number of times"


class GlobalLimitReached(CouponError):
    code = CouponErrorCode.GLOBAL_LIMIT_REACHED
    default_message = "This coupon has reached its usage limit"


class MinimumOrderNotMet(CouponError):
    code = CouponErrorCode.MINIMUM_ORDER_NOT_MET
    default_message = "Order total is below the minimum required for this coupon"


@dataclass(frozen=True)
class AllProducts:
    def matches(self, line) -> bool:
        return True


@dataclass(frozen=True)
class ByCategoryIds:
    category_ids: FrozenSet[int]

    def matches(self, line) -> bool:
        return line.category_id is not None and line.category_id in self.category_ids


@dataclass(frozen=True)
class ByProductIds:
    product_ids: FrozenSet[int]

    def matches(self, line) -> bool:
        return line.product_id in self.product_ids


Eligibility = Union[AllProducts, ByCategoryIds, ByProductIds]


@dataclass(frozen=True)
class CouponTerms:
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    start_date: datetime
    expiry_date: datetime
    eligibility: Eligibility = AllProducts()
    minimum_order: Decimal = ZERO
    usage_limit_per_user: int = 1
    total_usage_limit: int = 0
    used_count: int = 0
    status: CouponStatus = CouponStatus.ACTIVE
    vendor_id: Optional[int] = None
    used_by: Mapping[int, int] = field(default_factory=dict)

    def applies_to(self, line) -> bool:
        if self.vendor_id is not None and line.vendor_id != self.vendor_id:
            return False
        return self.eligibility.matches(line)


@dataclass(frozen=True)
class DiscountBreakdown:
    # aligned with the priced lines
    per_item: Tuple[Decimal, ...]
    total: Decimal
    eligible_mrp: Decimal


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def coupon_window(start_date: datetime, expiry_date: datetime) -> Tuple[datetime, datetime]:
    """Widen the validity window to whole days and check its order.

    A coupon starting on a day is valid from midnight, and one expiring
    on a day stays valid until the last microsecond of it.
    """
    start = datetime.combine(as_utc(start_date).date(), time.min, tzinfo=timezone.utc)
    expiry = datetime.combine(as_utc(expiry_date).date(), time.max, tzinfo=timezone.utc)
    if expiry <= start:
        raise ValueError("Expiry date must be after start date")
    return start, expiry


def validate_coupon(
    coupon: CouponTerms,
    at_time: Optional[datetime] = None,
    user_id: Optional[int] = None,
    usage_history: Optional[Mapping[int, int]] = None,
) -> CouponTerms:
    """Return ``coupon`` if it can be redeemed by ``user_id`` at ``at_time``."""
    at_time = as_utc(at_time or datetime.now(timezone.utc))
    history = coupon.used_by if usage_history is None else usage_history

    if coupon.status != CouponStatus.ACTIVE:
        raise CouponInactive()
    if at_time < as_utc(coupon.start_date):
        raise CouponNotStarted()
    if at_time > as_utc(coupon.expiry_date):
        raise CouponExpired()

    if coupon.usage_limit_per_user > 0 and user_id is not None:
        if history.get(user_id, 0) >= coupon.usage_limit_per_user:
            raise UserLimitReached()

    if coupon.total_usage_limit > 0 and coupon.used_count >= coupon.total_usage_limit:
        raise GlobalLimitReached()

    return coupon


def _prorate(amount: Decimal, shares: Sequence[Decimal], whole: Decimal) -> Tuple[Decimal, ...]:
    """Split ``amount`` across ``shares`` so that the rounded parts add up exactly.

    ``amount`` must not exceed ``whole``. Parts are rounded down, no part
    exceeds its share and zero shares get nothing; the remainder goes to
    the last shares with room left.
    """
    parts = [ZERO] * len(shares)
    positive = [index for index, share in enumerate(shares) if share > 0]
    remaining = amount

    for index in positive[:-1]:
        part = min((shares[index] / whole * amount).quantize(CENT, rounding=ROUND_DOWN), shares[index])
        parts[index] = part
        remaining -= part

    for index in reversed(positive):
        if remaining <= 0:
            break
        part = min(remaining, shares[index] - parts[index])
        parts[index] += part
        remaining -= part

    return tuple(parts)


def compute_discount(coupon: CouponTerms, lines: Sequence) -> DiscountBreakdown:
    total_mrp = sum((line.mrp for line in lines), ZERO)
    if total_mrp < coupon.minimum_order:
        raise MinimumOrderNotMet(
            f"Add items worth {money(coupon.minimum_order - total_mrp)} more to use {coupon.code}"
        )

    eligible = [coupon.applies_to(line) for line in lines]
    eligible_mrp = sum((line.mrp for line, ok in zip(lines, eligible) if ok), ZERO)
    per_item = [ZERO] * len(lines)

    if eligible_mrp > 0:
        value = Decimal(coupon.discount_value)
        eligible_indexes = [index for index, ok in enumerate(eligible) if ok]

        if coupon.discount_type == DiscountType.PERCENTAGE:
            for index in eligible_indexes:
                mrp = lines[index].mrp
                per_item[index] = min(money(mrp * value / 100), mrp)
        else:
            amount = min(money(value), eligible_mrp)
            shares = [lines[index].mrp for index in eligible_indexes]
            for index, part in zip(eligible_indexes, _prorate(amount, shares, eligible_mrp)):
                per_item[index] = part

    return DiscountBreakdown(tuple(per_item), sum(per_item, ZERO), eligible_mrp)
