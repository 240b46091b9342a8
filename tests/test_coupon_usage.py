import threading

import pytest
from sqlalchemy import event, update

from app import create_app
from config import TestConfig
from conftest import make_coupon, make_user
from extensions import db
from models import Coupon, CouponUsage, RoleName
from utils.coupon_usage import record_usage
from utils.coupons import CouponInactive, CouponStatus, GlobalLimitReached, UserLimitReached


def usage_count(coupon, user):
    usage = CouponUsage.query.filter_by(coupon_id=coupon.id, user_id=user.id).first()
    return usage.count if usage else 0


def test_redemption_bumps_both_counters(admin, buyer) -> None:
    coupon = make_coupon(admin, usage_limit_per_user=2)

    record_usage(coupon, buyer.id)
    db.session.commit()

    assert coupon.used_count == 1
    assert usage_count(coupon, buyer) == 1

    record_usage(coupon, buyer.id)
    db.session.commit()

    assert coupon.used_count == 2
    assert usage_count(coupon, buyer) == 2
    assert coupon.status == CouponStatus.ACTIVE.value


def test_per_user_limit(admin, buyer) -> None:
    coupon = make_coupon(admin, usage_limit_per_user=1)
    record_usage(coupon, buyer.id)
    db.session.commit()

    with pytest.raises(UserLimitReached):
        record_usage(coupon, buyer.id)
    db.session.rollback()

    assert db.session.get(Coupon, coupon.id).used_count == 1
    assert usage_count(coupon, buyer) == 1


def test_last_use_expires_coupon(admin, buyer) -> None:
    other = make_user(RoleName.BUYER, "other@example.com")
    coupon = make_coupon(admin, total_usage_limit=1)

    record_usage(coupon, buyer.id)
    db.session.commit()
    assert coupon.used_count == 1
    assert coupon.status == CouponStatus.EXPIRED.value

    with pytest.raises(GlobalLimitReached):
        record_usage(coupon, other.id)
    db.session.rollback()

    assert usage_count(coupon, other) == 0
    assert db.session.get(Coupon, coupon.id).used_count == 1


def test_stale_snapshot_loses_the_race(admin, buyer) -> None:
    coupon = make_coupon(admin, total_usage_limit=1)

    # another checkout takes the last use after this one loaded the coupon
    db.session.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id)
        .values(used_count=1)
        .execution_options(synchronize_session=False)
    )
    assert coupon.used_count == 0

    with pytest.raises(GlobalLimitReached):
        record_usage(coupon, buyer.id)
    db.session.rollback()

    assert usage_count(coupon, buyer) == 0


def test_unlimited_coupon_keeps_counting(admin, buyer) -> None:
    coupon = make_coupon(admin, usage_limit_per_user=0, total_usage_limit=0)

    for _ in range(5):
        record_usage(coupon, buyer.id)
    db.session.commit()

    assert coupon.used_count == 5
    assert usage_count(coupon, buyer) == 5
    assert coupon.status == CouponStatus.ACTIVE.value


def test_disabled_coupon_is_not_counted(admin, buyer) -> None:
    coupon = make_coupon(admin, status=CouponStatus.DISABLED.value)

    with pytest.raises(CouponInactive):
        record_usage(coupon, buyer.id)
    db.session.rollback()

    assert db.session.get(Coupon, coupon.id).used_count == 0


def test_concurrent_checkouts_race_for_last_use(tmp_path) -> None:
    database = tmp_path / "race.db"

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{database}"
        # the driver leaves transaction control to the BEGIN IMMEDIATE below
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30, "isolation_level": None}}

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        # take the write lock at BEGIN so a waiting writer queues on the busy timeout
        event.listen(db.engine, "begin", lambda conn: conn.exec_driver_sql("BEGIN IMMEDIATE"))

        admin = make_user(RoleName.ADMIN, "admin@example.com")
        buyers = [make_user(RoleName.BUYER, f"buyer{n}@example.com").id for n in range(2)]
        coupon_id = make_coupon(admin, total_usage_limit=1).id

    barrier = threading.Barrier(len(buyers), timeout=30)
    results = []

    def redeem(user_id):
        with app.app_context():
            coupon = db.session.get(Coupon, coupon_id)
            db.session.commit()
            barrier.wait()
            try:
                record_usage(coupon, user_id)
                db.session.commit()
                results.append("ok")
            except GlobalLimitReached as exc:
                db.session.rollback()
                results.append(exc.code.value)

    threads = [threading.Thread(target=redeem, args=(user_id,)) for user_id in buyers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(results) == ["GLOBAL_LIMIT_REACHED", "ok"]

    with app.app_context():
        coupon = db.session.get(Coupon, coupon_id)
        assert coupon.used_count == 1
        assert coupon.status == CouponStatus.EXPIRED.value
        assert CouponUsage.query.count() == 1
        db.session.remove()
        db.engine.dispose()
