from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from extensions import db
from config import PRICING
from utils.coupons import (
    AllProducts,
    ByCategoryIds,
    ByProductIds,
    CouponStatus,
    CouponTerms,
    DiscountType,
    ALL_PRODUCTS,
)
from utils.geo import Coordinate
from utils.order_summary import CartLine, DeliveryMode


def _utcnow():
    return datetime.now(timezone.utc)


def _float(value):
    return float(value) if value is not None else None


def _iso(value):
    return value.isoformat() if value else None


class RoleName(Enum):
    BUYER = "buyer"
    VENDOR = "vendor"
    ADMIN = "admin"


class OrderStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(150), unique=True, nullable=False)
    phone = db.Column(db.String(20))
    role = db.Column(db.Enum(RoleName), nullable=False, default=RoleName.BUYER)
    is_verified = db.Column(db.Boolean, default=False)

    # Vendor profile
    delivery_radius_km = db.Column(db.Float)
    address_line = db.Column(db.String(255))
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))
    state_code = db.Column(db.String(10))
    postal_code = db.Column(db.String(20))
    longitude = db.Column(db.Numeric(9, 6))
    latitude = db.Column(db.Numeric(9, 6))

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    products = db.relationship("Product", back_populates="vendor", lazy=True)
    locations = db.relationship("Location", back_populates="user", cascade="all, delete-orphan", lazy=True)

    def get_role_name(self):
        return self.role.value if self.role else None

    @property
    def coordinate(self):
        if self.longitude is None or self.latitude is None:
            return None
        return Coordinate(float(self.longitude), float(self.latitude))

    @property
    def effective_delivery_radius_km(self):
        return self.delivery_radius_km or PRICING.default_delivery_radius_km

    def to_dict(self):
        payload = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.get_role_name(),
        }
        if self.role == RoleName.VENDOR:
            payload["vendor_details"] = {
                "delivery_radius_km": self.effective_delivery_radius_km,
                "city": self.city,
                "state": self.state,
                "state_code": self.state_code,
                "location": list(self.coordinate) if self.coordinate else None,
            }
        return payload

    def __repr__(self):
        return f"<User {self.email} ({self.get_role_name()})>"


class Location(db.Model):
    __tablename__ = "locations"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    label = db.Column(db.String(50))
    address_line = db.Column(db.String(255))
    city = db.Column(db.String(100))
    region = db.Column(db.String(100))
    state_code = db.Column(db.String(10))
    postal_code = db.Column(db.String(20))
    country = db.Column(db.String(100))
    longitude = db.Column(db.Numeric(9, 6))
    latitude = db.Column(db.Numeric(9, 6))
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    user = db.relationship("User", back_populates="locations")

    @property
    def coordinate(self):
        if self.longitude is None or self.latitude is None:
            return None
        return Coordinate(float(self.longitude), float(self.latitude))

    def to_dict(self):
        return {
            "id": self.id,
            "label": self.label,
            "address_line": self.address_line,
            "city": self.city,
            "region": self.region,
            "state_code": self.state_code,
            "postal_code": self.postal_code,
            "country": self.country,
            "latitude": _float(self.latitude),
            "longitude": _float(self.longitude),
            "is_default": bool(self.is_default),
        }


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"))
    price = db.Column(db.Numeric(10, 2), nullable=False)
    weight_per_unit = db.Column(db.Numeric(8, 3))  # kg
    unit = db.Column(db.String(20), default="kg")
    quantity = db.Column(db.Integer, nullable=False, default=0)  # stock
    is_available = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    vendor = db.relationship("User", back_populates="products")
    category = db.relationship("Category")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "vendor_id": self.vendor_id,
            "vendor": self.vendor.name if self.vendor else None,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "price": _float(self.price),
            "weight_per_unit": _float(self.weight_per_unit),
            "unit": self.unit,
            "quantity": self.quantity,
            "is_available": bool(self.is_available),
        }


class Cart(db.Model):
    __tablename__ = "carts"

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    items = db.relationship("CartItem", backref="cart", cascade="all, delete-orphan", lazy=True)

    def vendor_ids(self):
        return sorted({item.product.vendor_id for item in self.items if item.product})

    def to_dict(self):
        return {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "items": [item.to_dict() for item in self.items],
            "vendor_ids": self.vendor_ids(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class CartItem(db.Model):
    __tablename__ = "cart_items"

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")

    def to_line(self):
        """Snapshot the product as it is priced right now."""
        product = self.product
        return CartLine(
            product_id=product.id,
            unit_price=product.price,
            quantity=self.quantity,
            weight_per_unit_kg=product.weight_per_unit,
            vendor_id=product.vendor_id,
            category_id=product.category_id,
            category_name=product.category.name if product.category else None,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "product": self.product.to_dict() if self.product else None,
        }


coupon_categories = db.Table(
    "coupon_categories",
    db.Column("coupon_id", db.Integer, db.ForeignKey("coupons.id"), primary_key=True),
    db.Column("category_id", db.Integer, db.ForeignKey("categories.id"), primary_key=True),
)

coupon_products = db.Table(
    "coupon_products",
    db.Column("coupon_id", db.Integer, db.ForeignKey("coupons.id"), primary_key=True),
    db.Column("product_id", db.Integer, db.ForeignKey("products.id"), primary_key=True),
)


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    discount_type = db.Column(db.String(20), nullable=False)
    discount_value = db.Column(db.Numeric(10, 2), nullable=False)
    minimum_order = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    usage_limit_per_user = db.Column(db.Integer, nullable=False, default=1)
    total_usage_limit = db.Column(db.Integer, nullable=False, default=0)
    used_count = db.Column(db.Integer, nullable=False, default=0)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=False)
    applies_to_all = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default=CouponStatus.ACTIVE.value)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    categories = db.relationship("Category", secondary=coupon_categories, lazy="selectin")
    products = db.relationship("Product", secondary=coupon_products, lazy="selectin")
    usages = db.relationship("CouponUsage", back_populates="coupon", cascade="all, delete-orphan", lazy=True)

    def eligibility(self):
        if self.applies_to_all:
            return AllProducts()
        if self.categories:
            return ByCategoryIds(frozenset(category.id for category in self.categories))
        return ByProductIds(frozenset(product.id for product in self.products))

    def to_terms(self, user_id=None):
        """Pricing view of this coupon; usage history is limited to ``user_id`` when given."""
        usages = self.usages
        if user_id is not None:
            usages = [usage for usage in usages if usage.user_id == user_id]

        return CouponTerms(
            code=self.code,
            discount_type=DiscountType(self.discount_type),
            discount_value=Decimal(self.discount_value),
            minimum_order=Decimal(self.minimum_order or 0),
            usage_limit_per_user=self.usage_limit_per_user or 0,
            total_usage_limit=self.total_usage_limit or 0,
            used_count=self.used_count or 0,
            start_date=self.start_date,
            expiry_date=self.expiry_date,
            eligibility=self.eligibility(),
            status=CouponStatus(self.status),
            vendor_id=self.vendor_id,
            used_by={usage.user_id: usage.count for usage in usages},
        )

    def to_dict(self):
        if self.applies_to_all:
            applies_to = [ALL_PRODUCTS]
        else:
            applies_to = [category.to_dict() for category in self.categories]

        return {
            "id": self.id,
            "code": self.code,
            "discount": {"type": self.discount_type, "value": _float(self.discount_value)},
            "minimum_order": _float(self.minimum_order),
            "usage_limit_per_user": self.usage_limit_per_user,
            "total_usage_limit": self.total_usage_limit,
            "used_count": self.used_count,
            "start_date": _iso(self.start_date),
            "expiry_date": _iso(self.expiry_date),
            "applies_to": applies_to,
            "applicable_products": [product.id for product in self.products],
            "status": self.status,
            "vendor_id": self.vendor_id,
            "created_by": self.created_by,
        }


class CouponUsage(db.Model):
    __tablename__ = "coupon_usages"
    __table_args__ = (db.UniqueConstraint("coupon_id", "user_id", name="uq_coupon_usage_user"),)

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    count = db.Column(db.Integer, nullable=False, default=0)

    coupon = db.relationship("Coupon", back_populates="usages")


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    shipping_address_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True)
    delivery_mode = db.Column(db.String(20), nullable=False, default=DeliveryMode.DELIVERY.value)
    payment_method = db.Column(db.String(20), nullable=False, default="COD")
    coupon_code = db.Column(db.String(50))

    total_mrp = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_discount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    delivery_charge = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    grand_total = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    parcel_weight_kg = db.Column(db.Numeric(10, 3))
    delivery_tier = db.Column(db.String(20))

    status = db.Column(db.Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    payment_status = db.Column(db.Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    placed_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = db.relationship("OrderItem", backref="order", cascade="all, delete-orphan", lazy=True)
    buyer = db.relationship("User", foreign_keys=[buyer_id])
    vendor = db.relationship("User", foreign_keys=[vendor_id])
    shipping_address = db.relationship("Location")


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    weight_per_unit = db.Column(db.Numeric(8, 3))
    mrp = db.Column(db.Numeric(10, 2), nullable=False)
    discount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(10, 2), nullable=False)

    product = db.relationship("Product")
