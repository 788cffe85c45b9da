"""
Tests for the health check endpoint.
"""


def test_health_check_returns_200(client):
    """Can the application receive a request and respond at all?"""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_check_returns_service_name(client):
    """
    Monitoring parses this field, so the name must not drift.
    """
    response = client.get("/health")
    assert response.json()["service"] == "purchase-ledger"


def test_health_check_reports_database_status(client):
    response = client.get("/health")
    data = response.json()
    assert data["database"] == "healthy"
    assert data["status"] == "healthy"


def test_health_check_needs_no_credentials(client):
    response = client.get("/health")
    assert "X-Request-ID" in response.headers
