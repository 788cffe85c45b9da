"""
Tests for purchase API endpoints.

These test the HTTP layer: status codes, response format,
error envelopes and request id handling. Business rules are
tested in tests/services/test_purchase_service.py.
"""

import uuid

import pytest


def create_body(employee, products, **extra):
    return {
        "employee_id": employee.id,
        "date": "2024-01-15T10:30:00",
        "items": [{"product_id": products["coffee"].id, "quantity": 3}],
        **extra,
    }


@pytest.fixture
def created(client, headers, alice, employee, products):
    response = client.post(
        "/purchases", json=create_body(employee, products), headers=headers(alice)
    )
    assert response.status_code == 201
    return response.json()


class TestCreatePurchase:

    def test_create_returns_201(self, created):
        assert created["total"] == "75.00"
        assert created["closed"] is False
        assert len(created["items"]) == 1
        assert created["items"][0]["unit_price"] == "25.00"

    def test_client_total_is_ignored(self, client, headers, alice, employee, products):
        response = client.post(
            "/purchases",
            json=create_body(employee, products, total="1.00"),
            headers=headers(alice),
        )
        assert response.json()["total"] == "75.00"

    def test_unknown_product_returns_404(
        self, client, headers, alice, employee, products
    ):
        body = create_body(employee, products)
        body["items"].append({"product_id": 9999, "quantity": 1})

        response = client.post("/purchases", json=body, headers=headers(alice))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"
        listing = client.get("/purchases", headers=headers(alice)).json()
        assert listing["meta"]["total"] == 0

    def test_missing_date_returns_400(self, client, headers, alice, employee):
        response = client.post(
            "/purchases",
            json={"employee_id": employee.id},
            headers=headers(alice),
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "date" in error["details"]

    def test_zero_quantity_rejected(self, client, headers, alice, employee, products):
        body = create_body(employee, products)
        body["items"][0]["quantity"] = 0

        response = client.post("/purchases", json=body, headers=headers(alice))

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestRequestId:

    def test_request_id_is_echoed(self, client, headers, alice, employee, products):
        response = client.post(
            "/purchases",
            json=create_body(employee, products),
            headers=headers(alice, request_id="trace-123"),
        )
        assert response.headers["X-Request-ID"] == "trace-123"

    def test_request_id_is_generated(self, client, headers, alice):
        response = client.get("/purchases", headers=headers(alice))
        uuid.UUID(response.headers["X-Request-ID"])

    def test_oversized_request_id_is_replaced(
        self, client, headers, admin, alice, employee, products
    ):
        traceparent = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"
        response = client.post(
            "/purchases",
            json=create_body(employee, products),
            headers=headers(alice, request_id=traceparent),
        )

        assert response.status_code == 201
        generated = response.headers["X-Request-ID"]
        assert generated != traceparent
        uuid.UUID(generated)

        records = client.get(
            "/audit", params={"request_id": generated}, headers=headers(admin)
        ).json()["data"]
        assert [r["action"] for r in records] == ["CREATE"]

    def test_audit_record_carries_request_id(
        self, client, headers, admin, alice, employee, products
    ):
        client.post(
            "/purchases",
            json=create_body(employee, products),
            headers=headers(alice, request_id="trace-456"),
        )

        response = client.get(
            "/audit", params={"request_id": "trace-456"}, headers=headers(admin)
        )
        records = response.json()["data"]
        assert len(records) == 1
        assert records[0]["action"] == "CREATE"


class TestAuthentication:

    def test_missing_headers_returns_401(self, client):
        response = client.get("/purchases")
        assert response.status_code == 401

    def test_unknown_role_returns_401(self, client):
        response = client.get(
            "/purchases", headers={"X-User-Id": "1", "X-User-Role": "owner"}
        )
        assert response.status_code == 401


class TestReadPurchases:

    def test_get_own_purchase(self, client, headers, alice, created):
        response = client.get(f"/purchases/{created['id']}", headers=headers(alice))
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    def test_other_employee_gets_403(self, client, headers, bob, created):
        response = client.get(f"/purchases/{created['id']}", headers=headers(bob))
        assert response.status_code == 403
        assert response.json()["error"] == {
            "code": "FORBIDDEN", "message": "Access denied", "details": {},
        }

    def test_missing_purchase_is_403_for_employee_404_for_admin(
        self, client, headers, admin, bob
    ):
        assert client.get("/purchases/777", headers=headers(bob)).status_code == 403
        assert client.get("/purchases/777", headers=headers(admin)).status_code == 404

    def test_list_meta(self, client, headers, manager, created):
        response = client.get(
            "/purchases", params={"limit": 500}, headers=headers(manager)
        )
        body = response.json()
        assert response.status_code == 200
        assert body["meta"] == {
            "page": 1, "limit": 100, "total": 1, "total_pages": 1, "has_more": False,
        }
        assert "items" not in body["data"][0]

    def test_list_filters_by_closed(self, client, headers, manager, created):
        response = client.get(
            "/purchases", params={"closed": "true"}, headers=headers(manager)
        )
        assert response.json()["data"] == []


class TestItemEndpoints:

    def test_add_items(self, client, headers, alice, products, created):
        response = client.post(
            f"/purchases/{created['id']}/items",
            json={"items": [{"product_id": products["tea"].id, "quantity": 2}]},
            headers=headers(alice),
        )
        assert response.status_code == 201
        assert response.json()["total"] == "95.00"

    def test_add_empty_items_rejected(self, client, headers, alice, created):
        response = client.post(
            f"/purchases/{created['id']}/items",
            json={"items": []},
            headers=headers(alice),
        )
        assert response.status_code == 422

    def test_update_item(self, client, headers, alice, created):
        item_id = created["items"][0]["id"]
        response = client.patch(
            f"/purchase-items/{item_id}", json={"quantity": 1}, headers=headers(alice)
        )
        assert response.status_code == 200
        assert response.json()["total_price"] == "25.00"

        purchase = client.get(f"/purchases/{created['id']}", headers=headers(alice))
        assert purchase.json()["total"] == "25.00"

    def test_remove_item(self, client, headers, alice, created):
        item_id = created["items"][0]["id"]
        response = client.delete(f"/purchase-items/{item_id}", headers=headers(alice))
        assert response.json() == {"deleted": True, "id": item_id}

        purchase = client.get(f"/purchases/{created['id']}", headers=headers(alice))
        assert purchase.json()["total"] == "0.00"
        assert purchase.json()["items"] == []


class TestLifecycleEndpoints:

    def test_close_then_close_again_returns_409(self, client, headers, alice, created):
        url = f"/purchases/{created['id']}/close"

        first = client.post(url, headers=headers(alice))
        second = client.post(url, headers=headers(alice))

        assert first.status_code == 200
        assert first.json()["closed"] is True
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "INVALID_STATE"

    def test_add_to_closed_purchase_returns_409(
        self, client, headers, alice, products, created
    ):
        client.post(f"/purchases/{created['id']}/close", headers=headers(alice))

        response = client.post(
            f"/purchases/{created['id']}/items",
            json={"items": [{"product_id": products["tea"].id, "quantity": 1}]},
            headers=headers(alice),
        )
        assert response.status_code == 409

    def test_reopen_requires_admin(self, client, headers, admin, manager, alice, created):
        client.post(f"/purchases/{created['id']}/close", headers=headers(alice))
        url = f"/purchases/{created['id']}/reopen"

        assert client.post(url, headers=headers(manager)).status_code == 403
        response = client.post(url, headers=headers(admin))
        assert response.status_code == 200
        assert response.json()["closed"] is False

    def test_recalculate(self, client, headers, manager, created):
        response = client.post(
            f"/purchases/{created['id']}/recalculate", headers=headers(manager)
        )
        assert response.status_code == 200
        assert response.json()["total"] == "75.00"

    def test_delete(self, client, headers, alice, manager, created):
        url = f"/purchases/{created['id']}"

        assert client.delete(url, headers=headers(alice)).status_code == 403
        response = client.delete(url, headers=headers(manager))
        assert response.json() == {"deleted": True, "id": created["id"]}
        assert client.get(url, headers=headers(manager)).status_code == 404
