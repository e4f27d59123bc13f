from datetime import datetime, timedelta

import pytest
from pymongo.errors import DuplicateKeyError

from offers import compute_discount


@pytest.mark.parametrize("offer,total,expected", [
    ({"discount_type": "percentage", "discount_value": 10}, 1000, 100),
    ({"discount_type": "percentage", "discount_value": 50, "max_discount_amount": 200}, 1000, 200),
    ({"discount_type": "fixed", "discount_value": 150}, 1000, 150),
    ({"discount_type": "fixed", "discount_value": 150}, 100, 100),
    ({"discount_type": "percentage", "discount_value": 15}, 333, 50),
])
def test_compute_discount(offer, total, expected):
    assert compute_discount(offer, total) == expected


def validate(client, headers, code, total):
    return client.post("/api/offers/validate", headers=headers, json={"coupon_code": code, "cart_total": total})


def test_validate_applies_discount(client, user_headers, make_offer):
    make_offer("SAVE10")
    res = validate(client, user_headers, "save10", 1000)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["coupon_code"] == "SAVE10"
    assert data["discount_amount"] == 100
    assert data["final_total"] == 900


def test_validate_requires_login(client, make_offer):
    make_offer()
    assert client.post("/api/offers/validate", json={"coupon_code": "SAVE10", "cart_total": 10}).status_code == 401


def test_validate_unknown_code(client, user_headers):
    res = validate(client, user_headers, "NOPE", 100)
    assert res.status_code == 404
    assert res.json()["message"] == "Invalid coupon code"


@pytest.mark.parametrize("overrides,message", [
    ({"is_active": False}, "This coupon is no longer active"),
    ({"start_date": datetime.utcnow() + timedelta(days=2)}, "This coupon is not yet valid"),
    ({"end_date": datetime.utcnow() - timedelta(days=1)}, "This coupon has expired"),
    ({"usage_limit": 5, "usage_count": 5}, "This coupon has reached its usage limit"),
    ({"min_order_value": 500}, "Minimum order value of ₹500 required"),
])
def test_validate_refusals(client, user_headers, make_offer, overrides, message):
    make_offer("CODE", **overrides)
    res = validate(client, user_headers, "CODE", 300)
    assert res.status_code == 400
    assert res.json()["message"] == message


def test_public_list_shows_only_current_offers_without_counters(client, make_offer):
    make_offer("CURRENT", usage_limit=10, is_featured=False)
    make_offer("FEATURED", is_featured=True)
    make_offer("OLD", end_date=datetime.utcnow() - timedelta(days=1))
    make_offer("OFF", is_active=False)
    offers = client.get("/api/offers").json()["data"]
    assert [o["coupon_code"] for o in offers] == ["FEATURED", "CURRENT"]
    assert all("usage_count" not in o and "usage_limit" not in o for o in offers)


def test_admin_offer_crud(client, admin_headers, user_headers):
    payload = {
        "title": "Monsoon", "coupon_code": " monsoon20 ", "discount_type": "percentage", "discount_value": 20,
        "start_date": "2024-06-01T00:00:00Z", "end_date": "2099-09-30T00:00:00Z",
    }
    assert client.post("/api/offers", headers=user_headers, json=payload).status_code == 403
    res = client.post("/api/offers", headers=admin_headers, json=payload)
    assert res.status_code == 201
    offer = res.json()["data"]
    assert offer["coupon_code"] == "MONSOON20"
    assert offer["usage_count"] == 0

    dup = client.post("/api/offers", headers=admin_headers, json=payload)
    assert dup.status_code == 400
    assert dup.json()["message"] == "Coupon code already exists"

    upd = client.put(f"/api/offers/{offer['id']}", headers=admin_headers, json={"discount_value": 25})
    assert upd.json()["data"]["discount_value"] == 25

    assert len(client.get("/api/offers/admin/all", headers=admin_headers).json()["data"]) == 1
    assert client.delete(f"/api/offers/{offer['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/offers/{offer['id']}", headers=admin_headers).status_code == 404


def test_create_offer_requires_dates_and_value(client, admin_headers):
    res = client.post("/api/offers", headers=admin_headers, json={"title": "X", "coupon_code": "X"})
    assert res.status_code == 400


def test_offer_update_refuses_null_for_required_fields(client, admin_headers, make_offer, mongo):
    offer = make_offer("SAVE10")
    res = client.put(f"/api/offers/{offer['_id']}", headers=admin_headers,
                     json={"coupon_code": None, "discount_type": None, "start_date": None})
    assert res.status_code == 400
    assert {e["field"] for e in res.json()["errors"]} == {"coupon_code", "discount_type", "start_date"}
    stored = mongo["offer"].find_one({"_id": offer["_id"]})
    assert stored["coupon_code"] == "SAVE10"
    assert stored["discount_type"] == "percentage"
    assert stored["start_date"] is not None


def test_coupon_code_is_unique_in_the_database(mongo, make_offer):
    assert mongo["offer"].index_information()["coupon_code_1"]["unique"] is True
    make_offer("SAVE10")
    with pytest.raises(DuplicateKeyError):
        make_offer("SAVE10")


def test_offer_update_to_taken_code_is_refused(client, admin_headers, make_offer):
    make_offer("SAVE10")
    other = make_offer("FLAT50", discount_type="fixed", discount_value=50)
    res = client.put(f"/api/offers/{other['_id']}", headers=admin_headers, json={"coupon_code": "save10"})
    assert res.status_code == 400
    assert res.json()["message"] == "Coupon code already exists"
