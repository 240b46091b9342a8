from conftest import add_address, make_user, make_vendor
from models import RoleName


def estimate(client, headers, **params):
    return client.get("/api/delivery/estimate", query_string=params, headers=headers)


def test_local_estimate(client, auth_header, buyer) -> None:
    vendor = make_vendor("near@example.com", delivery_radius_km=10)
    address = add_address(buyer, km=5)

    response = estimate(client, auth_header(buyer), vendor_id=vendor.id, weight_kg=2)

    assert response.status_code == 200
    data = response.get_json()
    assert data["address_id"] == address.id
    delivery = data["delivery"]
    assert delivery["amount"] == 80.0
    assert delivery["currency"] == "INR"
    assert delivery["strategy"] == "local"
    assert delivery["weight_kg"] == 2.0
    assert delivery["distance_text"] == "5.00 km away"
    assert delivery["estimated_delivery"] is not None


def test_long_haul_estimate(client, auth_header, buyer, vendor) -> None:
    add_address(buyer, km=500, state_code="HR")

    delivery = estimate(client, auth_header(buyer), vendor_id=vendor.id, weight_kg=1).get_json()["delivery"]

    assert delivery["strategy"] == "long_haul"
    assert delivery["amount"] == 77.0


def test_default_parcel_weight(client, auth_header, buyer, vendor) -> None:
    add_address(buyer, km=1)

    delivery = estimate(client, auth_header(buyer), vendor_id=vendor.id).get_json()["delivery"]

    assert delivery["weight_kg"] == 0.2


def test_vendor_without_location(client, auth_header, buyer) -> None:
    vendor = make_vendor("nowhere@example.com", longitude=None, latitude=None)
    add_address(buyer, km=1)

    delivery = estimate(client, auth_header(buyer), vendor_id=vendor.id).get_json()["delivery"]

    assert delivery["amount"] == 50.0
    assert delivery["strategy"] == "fallback"
    assert delivery["distance_text"] == "N/A"
    assert delivery["estimated_delivery"] is None


def test_estimate_errors(client, auth_header, buyer, vendor) -> None:
    headers = auth_header(buyer)
    other_buyer = make_user(RoleName.BUYER, "elsewhere@example.com")
    foreign_address = add_address(other_buyer, km=1)

    assert estimate(client, headers).status_code == 400
    assert estimate(client, headers, vendor_id=999).status_code == 404
    assert estimate(client, headers, vendor_id=buyer.id).status_code == 404
    assert estimate(client, headers, vendor_id=vendor.id, address_id=foreign_address.id).status_code == 404
    assert estimate(client, headers, vendor_id=vendor.id, weight_kg=-1).status_code == 400
