import time
from decimal import Decimal

from conftest import VENDOR_LAT, VENDOR_LNG, add_address, add_product, fill_cart, make_coupon, make_user, make_vendor
from extensions import db
from models import Coupon, Location, RoleName


def test_put_and_get_cart(client, auth_header, buyer, products) -> None:
    response = client.put(
        "/api/cart",
        json={"items": [
            {"product_id": products["apple"].id, "quantity": 2},
            {"product_id": products["carrot"].id, "quantity": 0},
        ]},
        headers=auth_header(buyer),
    )
    assert response.status_code == 200
    assert response.get_json()["message"] == "Cart updated"

    cart = client.get("/api/cart", headers=auth_header(buyer)).get_json()["cart"]
    assert [(item["product_id"], item["quantity"]) for item in cart["items"]] == [(products["apple"].id, 2)]
    assert cart["vendor_ids"] == [products["apple"].vendor_id]


def test_put_cart_rejects_bad_items(client, auth_header, buyer, products) -> None:
    headers = auth_header(buyer)

    response = client.put("/api/cart", json={"items": [{"product_id": 999, "quantity": 1}]}, headers=headers)
    assert response.status_code == 404

    response = client.put("/api/cart", json={"items": [{"product_id": "x", "quantity": 1}]}, headers=headers)
    assert response.status_code == 400

    response = client.put(
        "/api/cart", json={"items": [{"product_id": products["apple"].id, "quantity": 51}]}, headers=headers
    )
    assert response.status_code == 400
    assert "not available" in response.get_json()["error"]


def test_summary_for_pickup(client, auth_header, buyer, products) -> None:
    fill_cart(buyer, (products["apple"], 2), (products["carrot"], 1))

    response = client.get("/api/cart/summary?delivery_mode=Pickup", headers=auth_header(buyer))

    assert response.status_code == 200
    data = response.get_json()
    assert data["summary"] == {"total_mrp": 250.0, "discount": 0.0, "delivery_charge": 0.0, "grand_total": 250.0}
    assert data["delivery"]["tier"] == "pickup"
    assert data["address"] is None


def test_summary_local_delivery(client, auth_header, buyer, categories) -> None:
    vendor = make_vendor("wide@example.com", delivery_radius_km=10)
    apple = add_product(vendor, "Apple", 100, categories["fruits"])
    add_address(buyer, km=5)
    fill_cart(buyer, (apple, 1))

    data = client.get("/api/cart/summary", headers=auth_header(buyer)).get_json()

    assert data["delivery"]["tier"] == "local"
    assert data["delivery"]["distance_km"] == 5.0
    assert data["summary"]["delivery_charge"] == 80.0
    assert data["summary"]["grand_total"] == 180.0
    assert data["vendor"]["id"] == vendor.id


def test_summary_applies_coupon_case_insensitively(client, auth_header, admin, buyer, products, categories) -> None:
    make_coupon(admin, code="FRUITY", categories=[categories["fruits"]])
    add_address(buyer, km=1)
    fill_cart(buyer, (products["apple"], 5), (products["carrot"], 10))

    data = client.get("/api/cart/summary?coupon_code=fruity", headers=auth_header(buyer)).get_json()

    assert data["coupon_code"] == "FRUITY"
    assert data["summary"]["total_mrp"] == 1000.0
    assert data["summary"]["discount"] == 100.0
    assert data["summary"]["grand_total"] == 950.0


def test_summary_unknown_coupon(client, auth_header, buyer, products) -> None:
    fill_cart(buyer, (products["apple"], 1))

    response = client.get("/api/cart/summary?coupon_code=NOPE", headers=auth_header(buyer))

    assert response.status_code == 400
    assert response.get_json()["code"] == "COUPON_NOT_FOUND"


def test_summary_does_not_redeem_coupon(client, auth_header, admin, buyer, products) -> None:
    coupon = make_coupon(admin, total_usage_limit=1)
    fill_cart(buyer, (products["apple"], 1))

    for _ in range(3):
        response = client.get("/api/cart/summary?coupon_code=SAVE20", headers=auth_header(buyer))
        assert response.status_code == 200

    db.session.expire_all()
    assert db.session.get(Coupon, coupon.id).used_count == 0


def test_multi_vendor_cart_needs_vendor(client, auth_header, buyer, products, categories) -> None:
    other = make_vendor("other-vendor@example.com")
    mango = add_product(other, "Mango", 200, categories["fruits"])
    fill_cart(buyer, (products["apple"], 1), (mango, 1))

    response = client.get("/api/cart/summary", headers=auth_header(buyer))
    assert response.status_code == 400
    assert "several vendors" in response.get_json()["error"]

    response = client.get(f"/api/cart/summary?vendor_id={other.id}", headers=auth_header(buyer))
    assert response.status_code == 200
    assert response.get_json()["summary"]["total_mrp"] == 200.0


def test_empty_cart(client, auth_header, buyer) -> None:
    response = client.get("/api/cart/summary", headers=auth_header(buyer))
    assert response.status_code == 400
    assert response.get_json()["error"] == "Cart is empty"


def test_summary_rejects_unknown_mode(client, auth_header, buyer, products) -> None:
    fill_cart(buyer, (products["apple"], 1))
    response = client.get("/api/cart/summary?delivery_mode=Drone", headers=auth_header(buyer))
    assert response.status_code == 400
    assert "delivery_mode" in response.get_json()["errors"]


def test_other_buyers_address_is_not_found(client, auth_header, buyer, products) -> None:
    stranger = make_user(RoleName.BUYER, "stranger@example.com")
    address = add_address(stranger, km=1)
    fill_cart(buyer, (products["apple"], 1))

    response = client.get(f"/api/cart/summary?address_id={address.id}", headers=auth_header(buyer))
    assert response.status_code == 404


def test_cart_requires_buyer(client, auth_header, vendor) -> None:
    assert client.get("/api/cart", headers=auth_header(vendor)).status_code == 403
    assert client.get("/api/cart").status_code == 401


def test_geocoder_result_is_cached(app, client, auth_header, buyer, products) -> None:
    calls = []

    def geocoder(address):
        calls.append(address)
        return [VENDOR_LNG, VENDOR_LAT + 0.009]

    app.config["GEOCODER"] = geocoder
    address = add_address(buyer, address_line="7 Canal Street", city="Gurgaon")
    fill_cart(buyer, (products["apple"], 1))

    first = client.get("/api/cart/summary", headers=auth_header(buyer)).get_json()
    second = client.get("/api/cart/summary", headers=auth_header(buyer)).get_json()

    assert first["delivery"]["tier"] == "local"
    assert first["summary"]["delivery_charge"] == 50.0
    assert second["summary"] == first["summary"]
    assert calls == ["7 Canal Street, Gurgaon, Delhi, India"]

    db.session.expire_all()
    stored = db.session.get(Location, address.id)
    assert stored.longitude == Decimal(str(VENDOR_LNG))


def test_failing_geocoder_falls_back(app, client, auth_header, buyer, products) -> None:
    def geocoder(address):
        raise RuntimeError("quota exceeded")

    app.config["GEOCODER"] = geocoder
    add_address(buyer)
    fill_cart(buyer, (products["apple"], 1))

    data = client.get("/api/cart/summary", headers=auth_header(buyer)).get_json()

    assert data["delivery"]["tier"] == "fallback"
    assert data["summary"]["delivery_charge"] == 50.0


def test_slow_geocoder_falls_back(app, client, auth_header, buyer, products) -> None:
    def geocoder(address):
        time.sleep(0.5)
        return [VENDOR_LNG, VENDOR_LAT]

    app.config["GEOCODER"] = geocoder
    app.config["GEOCODER_TIMEOUT_SECONDS"] = 0.05
    add_address(buyer)
    fill_cart(buyer, (products["apple"], 1))

    data = client.get("/api/cart/summary", headers=auth_header(buyer)).get_json()

    assert data["delivery"]["tier"] == "fallback"
    assert data["summary"]["delivery_charge"] == 50.0


def test_put_cart_merges_repeated_products(client, auth_header, buyer, products) -> None:
    apple = products["apple"].id
    response = client.put(
        "/api/cart",
        json={"items": [{"product_id": apple, "quantity": 2}, {"product_id": apple, "quantity": "3"}]},
        headers=auth_header(buyer),
    )

    items = response.get_json()["cart"]["items"]
    assert [(item["product_id"], item["quantity"]) for item in items] == [(apple, 5)]

    cleared = client.put("/api/cart", json={"items": []}, headers=auth_header(buyer)).get_json()
    assert cleared["message"] == "Cart cleared"
    assert cleared["cart"]["items"] == []
