import uuid
from datetime import datetime, timedelta

from config import get_settings
from conftest import yesterday
from services import local_now

API = get_settings().api_prefix


def _create_card(client, name="Visa", color="#3B82F6") -> dict:
    response = client.post(f"{API}/cards", json={"name": name, "color": color})
    assert response.status_code == 201
    return response.json()["data"]


def _create_category(client, name="Food", color="#10B981", shared=False) -> dict:
    response = client.post(
        f"{API}/categories", json={"name": name, "color": color, "isShared": shared}
    )
    assert response.status_code == 201
    return response.json()["data"]


def _create_expense(client, card, category, amount=1500, when=None, **extra) -> dict:
    when = when or yesterday()
    payload = {
        "amount": amount,
        "date": when.isoformat(),
        "cardId": card["id"],
        "categoryId": category["id"],
    }
    payload.update(extra)
    response = client.post(f"{API}/expenses", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_health_reports_database_liveness(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "ok"


def test_card_crud_uses_success_envelope(client) -> None:
    card = _create_card(client)
    assert uuid.UUID(card["id"])
    assert card["createdAt"] and card["updatedAt"]

    body = client.get(f"{API}/cards/{card['id']}").json()
    assert body["message"] == "Card retrieved successfully"
    assert (body["data"]["name"], body["data"]["color"]) == ("Visa", "#3B82F6")

    response = client.put(
        f"{API}/cards/{card['id']}", json={"name": "Amex", "color": "#000"}
    )
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Amex"

    listed = client.get(f"{API}/cards").json()["data"]
    assert [c["name"] for c in listed] == ["Amex"]

    response = client.delete(f"{API}/cards/{card['id']}")
    assert response.status_code == 200
    assert response.json() == {"message": "Card deleted successfully"}


def test_error_envelope_for_unknown_and_malformed_ids(client) -> None:
    response = client.get(f"{API}/cards/{uuid.uuid4()}")
    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "CARD_NOT_FOUND"
    assert body["error"]["message"] == "Card not found"
    assert body["path"].startswith(f"{API}/cards/")
    assert body["timestamp"].endswith("Z")

    response = client.get(f"{API}/expenses/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_UUID"

    response = client.delete(f"{API}/categories/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "CATEGORY_NOT_FOUND"


def test_unparseable_body_and_field_violations(client) -> None:
    response = client.post(
        f"{API}/cards",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_REQUEST"

    response = client.post(f"{API}/cards", json=["Visa"])
    assert response.json()["error"]["code"] == "INVALID_REQUEST"

    response = client.post(f"{API}/cards", json={"name": "", "color": "blue"})
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert sorted(v["field"] for v in error["details"]) == ["color", "name"]


def test_update_of_missing_card_is_not_found_before_validation(client) -> None:
    response = client.put(f"{API}/cards/{uuid.uuid4()}", json={})
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "CARD_NOT_FOUND"


def test_duplicate_category_is_a_conflict(client) -> None:
    _create_category(client, "Food")
    response = client.post(
        f"{API}/categories", json={"name": "Food", "color": "#10B981"}
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "DUPLICATE_CATEGORY"


def test_delete_guard_blocks_until_expenses_are_gone(client) -> None:
    card = _create_card(client)
    category = _create_category(client)
    expense = _create_expense(client, card, category)

    response = client.delete(f"{API}/cards/{card['id']}")
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CARD_HAS_EXPENSES"
    response = client.delete(f"{API}/categories/{category['id']}")
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CATEGORY_HAS_EXPENSES"

    assert client.delete(f"{API}/expenses/{expense['id']}").status_code == 200
    assert client.delete(f"{API}/cards/{card['id']}").status_code == 200
    assert client.delete(f"{API}/categories/{category['id']}").status_code == 200


def test_future_date_and_unknown_references_are_rejected(client) -> None:
    card = _create_card(client)
    category = _create_category(client)

    response = client.post(
        f"{API}/expenses",
        json={
            "amount": 10,
            "date": (local_now() + timedelta(days=2)).date().isoformat(),
            "cardId": card["id"],
            "categoryId": category["id"],
        },
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "FUTURE_DATE"

    response = client.post(
        f"{API}/expenses",
        json={
            "amount": 10,
            "date": "2024-01-01",
            "cardId": str(uuid.uuid4()),
            "categoryId": category["id"],
        },
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "CARD_NOT_FOUND"


def test_expense_update_is_full_replacement(client) -> None:
    card = _create_card(client)
    category = _create_category(client)
    expense = _create_expense(client, card, category, description="Groceries")
    assert expense["description"] == "Groceries"
    assert expense["card"]["name"] == "Visa"

    response = client.put(
        f"{API}/expenses/{expense['id']}",
        json={
            "amount": "42.10",
            "date": "2024-02-29",
            "cardId": card["id"],
            "categoryId": category["id"],
        },
    )
    assert response.status_code == 200

    data = client.get(f"{API}/expenses/{expense['id']}").json()["data"]
    assert data["amount"] == 42.1
    assert data["date"].startswith("2024-02-29T00:00:00")
    assert data["description"] is None
    assert data["category"]["name"] == "Food"


def test_expense_listing_is_paginated(client) -> None:
    card = _create_card(client)
    category = _create_category(client)
    for day in range(1, 6):
        _create_expense(
            client, card, category, amount=day, when=yesterday() - timedelta(days=day)
        )

    body = client.get(f"{API}/expenses", params={"limit": 2, "page": 2}).json()
    assert body["pagination"] == {
        "page": 2,
        "limit": 2,
        "totalPages": 3,
        "totalItems": 5,
    }
    assert [e["amount"] for e in body["data"]] == [3, 4]

    body = client.get(
        f"{API}/expenses", params={"page": 10, "limit": "junk", "cardId": "junk"}
    ).json()
    assert body["data"] == []
    assert body["pagination"]["limit"] == 20
    assert body["pagination"]["totalItems"] == 5


def test_monthly_report_example(client) -> None:
    card = _create_card(client, "Visa", "#3B82F6")
    category = _create_category(client, "Food", "#10B981", shared=False)
    when = yesterday()
    _create_expense(client, card, category, amount=1500, when=when)

    response = client.get(
        f"{API}/reports/monthly", params={"year": when.year, "month": when.month}
    )
    assert response.status_code == 200
    report = response.json()["data"]
    assert report["totalAmount"] == 1500
    assert [
        (c["categoryName"], c["totalAmount"], c["count"]) for c in report["byCategory"]
    ] == [("Food", 1500, 1)]
    assert report["sharedExpenses"] == {
        "totalSharedAmount": 0,
        "splitAmount": 0,
        "categories": [],
    }
    assert [c["cardName"] for c in report["byCard"]] == ["Visa"]

    filtered = client.get(
        f"{API}/reports/monthly",
        params={"year": when.year, "month": when.month, "cardId": card["id"]},
    ).json()["data"]
    assert "byCard" not in filtered


def test_yearly_report_and_report_parameter_errors(client) -> None:
    card = _create_card(client)
    category = _create_category(client, "Rent", shared=True)
    _create_expense(client, card, category, amount=900, when=datetime(2023, 6, 1, 12))

    report = client.get(f"{API}/reports/yearly", params={"year": 2023}).json()["data"]
    assert report["totalAmount"] == 900
    assert [m["count"] for m in report["monthlyData"]] == [1]

    response = client.get(f"{API}/reports/yearly", params={"year": 1999})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_YEAR"

    response = client.get(f"{API}/reports/monthly", params={"month": 13})
    assert response.json()["error"]["code"] == "INVALID_MONTH"

    response = client.get(f"{API}/reports/monthly", params={"cardId": "x"})
    assert response.json()["error"]["code"] == "INVALID_CARD_ID"


def test_unknown_route_uses_error_envelope(client) -> None:
    response = client.get(f"{API}/nothing-here")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_reports_default_to_the_current_month_and_year(client) -> None:
    card = _create_card(client)
    category = _create_category(client)
    when = yesterday()
    _create_expense(client, card, category, amount=700, when=when)
    today = local_now()

    monthly = client.get(f"{API}/reports/monthly").json()["data"]
    assert (monthly["year"], monthly["month"]) == (today.year, today.month)
    in_month = (when.year, when.month) == (today.year, today.month)
    assert monthly["totalAmount"] == (700 if in_month else 0)

    yearly = client.get(f"{API}/reports/yearly").json()["data"]
    assert yearly["year"] == today.year
    assert yearly["totalAmount"] == (700 if when.year == today.year else 0)


def test_float_amounts_are_rounded_to_cents(client) -> None:
    card = _create_card(client)
    category = _create_category(client)

    expense = _create_expense(client, card, category, amount=0.1 + 0.2)
    assert expense["amount"] == 0.3

    response = client.post(
        f"{API}/expenses",
        json={
            "amount": 0.004,
            "date": "2024-01-01",
            "cardId": card["id"],
            "categoryId": category["id"],
        },
    )
    assert response.status_code == 400
    assert [v["field"] for v in response.json()["error"]["details"]] == ["amount"]
