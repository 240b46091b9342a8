from datetime import datetime, timedelta, timezone
from decimal import Decimal
import random
import click
from faker import Faker
from extensions import db
from models import Category, Coupon, Location, Product, RoleName, User
from utils.coupons import CouponStatus, DiscountType, coupon_window

fake = Faker("en_IN")

CATEGORY_NAMES = ["Fruits", "Vegetables", "Grains", "Dairy", "Spices"]

# Vendors and buyers are scattered around this point (Delhi NCR)
BASE_LONGITUDE = 77.0
BASE_LATITUDE = 28.0


def _jitter(value, spread):
    return Decimal(str(round(value + random.uniform(-spread, spread), 6)))


def seed_data(num_vendors=3, num_buyers=5, products_per_vendor=4):
    """Fill an empty database with demo vendors, buyers, products and coupons."""
    categories = []
    for name in CATEGORY_NAMES:
        category = Category.query.filter_by(name=name).first()
        if not category:
            category = Category(name=name)
            db.session.add(category)
        categories.append(category)

    admin = User(name="Admin", email=fake.unique.email(), role=RoleName.ADMIN, is_verified=True)
    db.session.add(admin)

    vendors = []
    for _ in range(num_vendors):
        vendor = User(
            name=fake.company(),
            email=fake.unique.email(),
            phone=fake.phone_number()[:20],
            role=RoleName.VENDOR,
            is_verified=True,
            delivery_radius_km=random.choice([5, 10]),
            address_line=fake.street_address(),
            city=fake.city(),
            state="Delhi",
            state_code="DL",
            postal_code=fake.postcode(),
            longitude=_jitter(BASE_LONGITUDE, 0.2),
            latitude=_jitter(BASE_LATITUDE, 0.2),
        )
        db.session.add(vendor)
        vendors.append(vendor)

    db.session.flush()  # ensure ids are available

    for vendor in vendors:
        for _ in range(products_per_vendor):
            db.session.add(Product(
                name=fake.word().title(),
                vendor_id=vendor.id,
                category_id=random.choice(categories).id,
                price=Decimal(str(round(random.uniform(20, 500), 2))),
                weight_per_unit=Decimal(random.choice(["0.2", "0.5", "1.0"])),
                quantity=random.randint(10, 200),
            ))

    for _ in range(num_buyers):
        buyer = User(
            name=fake.name(),
            email=fake.unique.email(),
            phone=fake.phone_number()[:20],
            role=RoleName.BUYER,
            is_verified=True,
        )
        db.session.add(buyer)
        db.session.flush()

        db.session.add(Location(
            user_id=buyer.id,
            label="Home",
            address_line=fake.street_address(),
            city=fake.city(),
            region="Delhi",
            state_code="DL",
            postal_code=fake.postcode(),
            country="India",
            longitude=_jitter(BASE_LONGITUDE, 1.0),
            latitude=_jitter(BASE_LATITUDE, 1.0),
            is_default=True,
        ))

    today = datetime.now(timezone.utc)
    start, expiry = coupon_window(today, today + timedelta(days=30))
    db.session.add(Coupon(
        code="WELCOME10",
        discount_type=DiscountType.PERCENTAGE.value,
        discount_value=Decimal("10"),
        minimum_order=Decimal("200"),
        usage_limit_per_user=1,
        start_date=start,
        expiry_date=expiry,
        applies_to_all=True,
        status=CouponStatus.ACTIVE.value,
        created_by=admin.id,
    ))
    db.session.add(Coupon(
        code="FRUIT50",
        discount_type=DiscountType.FIXED.value,
        discount_value=Decimal("50"),
        total_usage_limit=100,
        start_date=start,
        expiry_date=expiry,
        categories=[categories[0]],
        status=CouponStatus.ACTIVE.value,
        created_by=admin.id,
    ))

    db.session.commit()
    return {"vendors": len(vendors), "buyers": num_buyers, "coupons": 2}


def register_commands(app):
    @app.cli.command("init-db")
    def init_db_command():
        """Create all database tables."""
        db.create_all()
        click.echo("Database tables created successfully!")

    @app.cli.command("seed")
    @click.option("--vendors", default=3, show_default=True)
    @click.option("--buyers", default=5, show_default=True)
    def seed_command(vendors, buyers):
        """Create tables and fill them with demo data."""
        db.create_all()
        counts = seed_data(num_vendors=vendors, num_buyers=buyers)
        click.echo(f"Seeded {counts['vendors']} vendors, {counts['buyers']} buyers and {counts['coupons']} coupons")
