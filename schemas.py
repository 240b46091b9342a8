from extensions import ma
from models import Order, OrderItem
from marshmallow import EXCLUDE, ValidationError, fields, post_load, validates_schema
from marshmallow.validate import Length, OneOf, Range
from utils.coupons import ALL_PRODUCTS, CouponStatus, DiscountType, coupon_window
from utils.order_summary import DeliveryMode


class OrderItemSchema(ma.SQLAlchemyAutoSchema):
    # Explicitly define Decimal fields as Float for JSON serialization
    unit_price = fields.Float()
    weight_per_unit = fields.Float()
    mrp = fields.Float()
    discount = fields.Float()
    total = fields.Float()

    class Meta:
        model = OrderItem
        include_fk = True
        load_instance = True


class OrderSchema(ma.SQLAlchemyAutoSchema):
    items = ma.Nested(OrderItemSchema, many=True)
    # Explicitly define Decimal fields as Float for JSON serialization
    total_mrp = fields.Float()
    total_discount = fields.Float()
    delivery_charge = fields.Float()
    grand_total = fields.Float()
    parcel_weight_kg = fields.Float()
    status = fields.Function(lambda order: order.status.value)
    payment_status = fields.Function(lambda order: order.payment_status.value)

    class Meta:
        model = Order
        include_fk = True
        include_relationships = True
        load_instance = True
        exclude = ("buyer", "vendor", "shipping_address")


class CheckoutSchema(ma.Schema):
    """Checkout options, from a query string or a JSON body."""

    class Meta:
        unknown = EXCLUDE

    delivery_mode = fields.String(
        load_default=DeliveryMode.DELIVERY.value,
        validate=OneOf([mode.value for mode in DeliveryMode]),
    )
    coupon_code = fields.String(load_default=None, allow_none=True)
    address_id = fields.Integer(load_default=None, allow_none=True)
    vendor_id = fields.Integer(load_default=None, allow_none=True)
    payment_method = fields.String(load_default="COD", validate=OneOf(["COD", "Card"]))


class ApplyCouponSchema(CheckoutSchema):
    code = fields.String(required=True, validate=Length(min=1))


class CouponSchema(ma.Schema):
    """Validates coupon payloads from vendors and admins."""

    class Meta:
        unknown = EXCLUDE

    code = fields.String(required=True, validate=Length(min=2, max=50))
    discount_type = fields.String(required=True, validate=OneOf([t.value for t in DiscountType]))
    discount_value = fields.Decimal(required=True, places=2, validate=Range(min=0, min_inclusive=False))
    minimum_order = fields.Decimal(load_default=0, places=2, validate=Range(min=0))
    usage_limit_per_user = fields.Integer(load_default=1, validate=Range(min=0))
    total_usage_limit = fields.Integer(load_default=0, validate=Range(min=0))
    start_date = fields.DateTime(required=True)
    expiry_date = fields.DateTime(required=True)
    # "All Products", or category ids / names
    applies_to = fields.List(fields.Raw(), load_default=None)
    applicable_products = fields.List(fields.Integer(), load_default=None)
    status = fields.String(validate=OneOf([s.value for s in CouponStatus]))

    @validates_schema
    def validate_coupon(self, data, **kwargs):
        if (
            data.get("discount_type") == DiscountType.PERCENTAGE.value
            and data.get("discount_value") is not None
            and data["discount_value"] > 100
        ):
            raise ValidationError("Percentage discount cannot exceed 100", "discount_value")

        if data.get("start_date") and data.get("expiry_date"):
            try:
                coupon_window(data["start_date"], data["expiry_date"])
            except ValueError as exc:
                raise ValidationError(str(exc), "expiry_date")

        applies_to = data.get("applies_to")
        products = data.get("applicable_products")
        partial = kwargs.get("partial")
        if applies_to and products:
            raise ValidationError(
                "Use either applies_to or applicable_products, not both", "applies_to"
            )
        if not partial and not applies_to and not products:
            raise ValidationError(
                f"Provide applies_to (e.g. [\"{ALL_PRODUCTS}\"]) or applicable_products", "applies_to"
            )

    @post_load
    def normalise(self, data, **kwargs):
        if "code" in data:
            data["code"] = data["code"].strip().upper()
        if data.get("start_date") and data.get("expiry_date"):
            data["start_date"], data["expiry_date"] = coupon_window(
                data["start_date"], data["expiry_date"]
            )
        return data
