import pytest
from sqlalchemy.exc import OperationalError

import aggregator
from app import app, get_reference_date
from auth import issue_token
from conftest import TEST_DATE


def test_get_today_without_entries_returns_zero(client, auth_headers):
    """A user with no writes today gets a zero total, not an error."""
    response = client.get("/today", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"date": TEST_DATE, "total_time_ms": 0}


def test_add_time_accumulates(client, auth_headers):
    """Two posts on the same day add up, and GET reports the sum."""
    response1 = client.post("/today", json={"additional_time_ms": 5000}, headers=auth_headers)
    assert response1.status_code == 200
    assert response1.json() == {"date": TEST_DATE, "total_time_ms": 5000}

    response2 = client.post("/today", json={"additional_time_ms": 3000}, headers=auth_headers)
    assert response2.status_code == 200
    assert response2.json() == {"date": TEST_DATE, "total_time_ms": 8000}

    response3 = client.get("/today", headers=auth_headers)
    assert response3.status_code == 200
    assert response3.json() == {"date": TEST_DATE, "total_time_ms": 8000}


def test_add_zero_creates_row(client, auth_headers):
    response = client.post("/today", json={"additional_time_ms": 0}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["total_time_ms"] == 0


def test_add_time_fractional_ms_truncated(client, auth_headers):
    response = client.post("/today", json={"additional_time_ms": 1500.9}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["total_time_ms"] == 1500


def test_add_time_negative_rejected(client, auth_headers):
    """A negative delta is a 400 and nothing is written."""
    response = client.post("/today", json={"additional_time_ms": -1}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid additional_time_ms"}

    today = client.get("/today", headers=auth_headers)
    assert today.json()["total_time_ms"] == 0


@pytest.mark.parametrize(
    "body",
    [
        {"additional_time_ms": "5000"},
        {"additional_time_ms": None},
        {"additional_time_ms": True},
        {"additional_time_ms": [5000]},
        {},
        {"other": 5000},
    ],
)
def test_add_time_non_numeric_rejected(client, auth_headers, body):
    response = client.post("/today", json=body, headers=auth_headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid additional_time_ms"}


def test_add_time_malformed_json_rejected(client, auth_headers):
    response = client.post(
        "/today",
        content=b"{not json",
        headers={**auth_headers, "Content-Type": "application/json"},
    )
    assert response.status_code == 400


def test_get_today_unauthenticated(client):
    response = client.get("/today")
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_post_today_unauthenticated(client):
    response = client.post("/today", json={"additional_time_ms": 5000})
    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_invalid_token_rejected(client):
    response = client.get("/today", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_expired_token_rejected(client):
    token = issue_token("user_123", expires_in=-60)
    response = client.get("/today", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_users_are_isolated(client, auth_headers):
    other_headers = {"Authorization": f"Bearer {issue_token('user_456')}"}

    client.post("/today", json={"additional_time_ms": 5000}, headers=auth_headers)
    client.post("/today", json={"additional_time_ms": 700}, headers=other_headers)

    assert client.get("/today", headers=auth_headers).json()["total_time_ms"] == 5000
    assert client.get("/today", headers=other_headers).json()["total_time_ms"] == 700


def test_days_are_separate(client, auth_headers):
    client.post("/today", json={"additional_time_ms": 5000}, headers=auth_headers)

    app.dependency_overrides[get_reference_date] = lambda: "2024-01-02"
    response = client.get("/today", headers=auth_headers)
    assert response.json() == {"date": "2024-01-02", "total_time_ms": 0}

    response = client.post("/today", json={"additional_time_ms": 100}, headers=auth_headers)
    assert response.json() == {"date": "2024-01-02", "total_time_ms": 100}


def test_storage_failure_returns_500(client, auth_headers, monkeypatch):
    def broken_read(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(aggregator, "_read_total", broken_read)

    response = client.get("/today", headers=auth_headers)
    assert response.status_code == 500
    assert response.json() == {"error": "Database error"}


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "docs" in data
