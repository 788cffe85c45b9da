"""
Tests for the audit trail endpoints.
"""


def seed(client, headers, actor, employee, products, request_id):
    return client.post(
        "/purchases",
        json={
            "employee_id": employee.id,
            "date": "2024-01-15T10:30:00",
            "items": [{"product_id": products["tea"].id, "quantity": 1}],
        },
        headers=headers(actor, request_id=request_id),
    ).json()


def test_records_use_camel_case_keys(
    client, headers, admin, alice, employee, products
):
    seed(client, headers, alice, employee, products, "req-camel")

    response = client.get("/audit", headers=headers(admin))

    assert response.status_code == 200
    record = response.json()["data"][0]
    assert set(record) == {
        "id", "userId", "action", "resource", "resourceId",
        "oldValue", "newValue", "requestId", "timestamp",
    }
    assert record["requestId"] == "req-camel"
    assert record["userId"] == alice.id
    assert record["oldValue"] is None
    assert record["newValue"]["total"] == "10.00"


def test_non_admin_gets_403(client, headers, manager, alice):
    assert client.get("/audit", headers=headers(manager)).status_code == 403
    assert client.get("/audit", headers=headers(alice)).status_code == 403


def test_filter_by_resource_id(client, headers, admin, alice, employee, products):
    first = seed(client, headers, alice, employee, products, "req-1")
    seed(client, headers, alice, employee, products, "req-2")

    response = client.get(
        "/audit",
        params={"resource": "purchase", "resource_id": first["id"]},
        headers=headers(admin),
    )

    body = response.json()
    assert body["meta"]["total"] == 1
    assert body["data"][0]["resourceId"] == first["id"]


def test_resource_history(client, headers, admin, alice, employee, products):
    purchase = seed(client, headers, alice, employee, products, "req-1")
    client.post(
        f"/purchases/{purchase['id']}/close",
        headers=headers(alice, request_id="req-2"),
    )

    response = client.get(
        f"/audit/resource/purchase/{purchase['id']}", headers=headers(admin)
    )

    assert [r["requestId"] for r in response.json()] == ["req-2", "req-1"]
