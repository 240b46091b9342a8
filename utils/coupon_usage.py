"""Recording coupon redemptions at order placement.

Counters are bumped with guarded ``UPDATE ... WHERE count < limit``
statements instead of read-modify-write, so when two checkouts race for
the last use of a coupon only one UPDATE matches a row. The caller owns
the transaction and must roll back when a :class:`CouponError` escapes.
"""

import logging

from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Coupon, CouponUsage
from utils.coupons import CouponInactive, CouponStatus, GlobalLimitReached, UserLimitReached

logger = logging.getLogger(__name__)


def _bump_user_count(coupon: Coupon, user_id: int) -> None:
    limit = coupon.usage_limit_per_user or 0

    stmt = update(CouponUsage).where(
        CouponUsage.coupon_id == coupon.id,
        CouponUsage.user_id == user_id,
    )
    if limit > 0:
        stmt = stmt.where(CouponUsage.count < limit)

    result = db.session.execute(
        stmt.values(count=CouponUsage.count + 1).execution_options(synchronize_session=False)
    )
    if result.rowcount:
        return

    existing = db.session.execute(
        select(CouponUsage.id).where(
            CouponUsage.coupon_id == coupon.id,
            CouponUsage.user_id == user_id,
        )
    ).first()
    if existing is not None:
        raise UserLimitReached()

    db.session.add(CouponUsage(coupon_id=coupon.id, user_id=user_id, count=1))
    try:
        db.session.flush()
    except IntegrityError as exc:
        # another checkout by the same user inserted the row first
        logger.warning("Concurrent first use of coupon %s by user %s", coupon.code, user_id)
        raise UserLimitReached() from exc


def _bump_global_count(coupon: Coupon) -> None:
    reaches_limit = and_(
        Coupon.total_usage_limit > 0,
        Coupon.used_count + 1 >= Coupon.total_usage_limit,
    )
    stmt = (
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            Coupon.status == CouponStatus.ACTIVE.value,
            or_(Coupon.total_usage_limit == 0, Coupon.used_count < Coupon.total_usage_limit),
        )
        .values(
            used_count=Coupon.used_count + 1,
            status=case((reaches_limit, CouponStatus.EXPIRED.value), else_=Coupon.status),
        )
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount:
        return

    status, used_count, total_limit = db.session.execute(
        select(Coupon.status, Coupon.used_count, Coupon.total_usage_limit).where(Coupon.id == coupon.id)
    ).one()
    # a coupon expired by its own limit reports the limit, not the status
    if total_limit and used_count >= total_limit:
        raise GlobalLimitReached()
    if status != CouponStatus.ACTIVE.value:
        raise CouponInactive()
    raise GlobalLimitReached()


def record_usage(coupon: Coupon, user_id: int) -> Coupon:
    """Count one redemption of ``coupon`` by ``user_id``.

    Raises :class:`UserLimitReached` or :class:`GlobalLimitReached` when
    the redemption would exceed a limit, including when a concurrent
    checkout took the last use first.
    """
    _bump_user_count(coupon, user_id)
    _bump_global_count(coupon)
    db.session.flush()
    db.session.refresh(coupon)

    logger.info("Coupon %s redeemed by user %s (%s used)", coupon.code, user_id, coupon.used_count)
    return coupon
