import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from config import TestConfig
from extensions import db
from models import Cart, CartItem, Category, Coupon, Location, Product, RoleName, User
from utils.coupons import CouponStatus, DiscountType, coupon_window

VENDOR_LNG = 77.0
VENDOR_LAT = 28.0


def km_north(km: float) -> float:
    """Latitude of a point ``km`` due north of the vendor."""
    return VENDOR_LAT + math.degrees(km / 6371.0)


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth_header(app):
    def _header(user):
        token = create_access_token(identity=str(user.id))
        return {"Authorization": f"Bearer {token}"}

    return _header


def make_user(role, email, **kwargs):
    user = User(name=kwargs.pop("name", email.split("@")[0]), email=email, role=role, is_verified=True, **kwargs)
    db.session.add(user)
    db.session.commit()
    return user


def make_vendor(email="vendor@example.com", **kwargs):
    kwargs.setdefault("delivery_radius_km", 5)
    kwargs.setdefault("state_code", "DL")
    kwargs.setdefault("longitude", Decimal(str(VENDOR_LNG)))
    kwargs.setdefault("latitude", Decimal(str(VENDOR_LAT)))
    return make_user(RoleName.VENDOR, email, **kwargs)


def add_address(user, km=None, *, is_default=True, state_code="DL", **kwargs):
    location = Location(
        user_id=user.id,
        label=kwargs.pop("label", "Home"),
        address_line=kwargs.pop("address_line", "12 Market Road"),
        city=kwargs.pop("city", "New Delhi"),
        region="Delhi",
        state_code=state_code,
        country="India",
        longitude=Decimal(str(VENDOR_LNG)) if km is not None else None,
        latitude=Decimal(str(round(km_north(km), 6))) if km is not None else None,
        is_default=is_default,
        **kwargs,
    )
    db.session.add(location)
    db.session.commit()
    return location


def add_product(vendor, name, price, category=None, weight="0.5", stock=50):
    product = Product(
        name=name,
        vendor_id=vendor.id,
        category_id=category.id if category else None,
        price=Decimal(str(price)),
        weight_per_unit=Decimal(weight) if weight is not None else None,
        quantity=stock,
    )
    db.session.add(product)
    db.session.commit()
    return product


def fill_cart(buyer, *entries):
    cart = Cart.query.filter_by(buyer_id=buyer.id).first()
    if not cart:
        cart = Cart(buyer_id=buyer.id)
        db.session.add(cart)
        db.session.flush()
    for product, quantity in entries:
        db.session.add(CartItem(cart_id=cart.id, product_id=product.id, quantity=quantity))
    db.session.commit()
    return cart


def make_coupon(created_by, code="SAVE20", **kwargs):
    now = datetime.now(timezone.utc)
    start, expiry = coupon_window(
        kwargs.pop("start_date", now - timedelta(days=1)),
        kwargs.pop("expiry_date", now + timedelta(days=30)),
    )
    kwargs.setdefault("discount_type", DiscountType.PERCENTAGE.value)
    kwargs.setdefault("discount_value", Decimal("20"))
    kwargs.setdefault("status", CouponStatus.ACTIVE.value)
    if "categories" not in kwargs and "products" not in kwargs:
        kwargs.setdefault("applies_to_all", True)

    coupon = Coupon(code=code, start_date=start, expiry_date=expiry, created_by=created_by.id, **kwargs)
    db.session.add(coupon)
    db.session.commit()
    return coupon


@pytest.fixture()
def vendor(app):
    return make_vendor()


@pytest.fixture()
def buyer(app):
    return make_user(RoleName.BUYER, "buyer@example.com")


@pytest.fixture()
def admin(app):
    return make_user(RoleName.ADMIN, "admin@example.com")


@pytest.fixture()
def categories(app):
    fruits = Category(name="Fruits")
    vegetables = Category(name="Vegetables")
    db.session.add_all([fruits, vegetables])
    db.session.commit()
    return {"fruits": fruits, "vegetables": vegetables}


@pytest.fixture()
def products(vendor, categories):
    return {
        "apple": add_product(vendor, "Apple", 100, categories["fruits"], weight="0.5"),
        "carrot": add_product(vendor, "Carrot", 50, categories["vegetables"], weight="0.2"),
    }
