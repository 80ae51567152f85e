from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings
from database import Base
from main import app, get_db
from services import get_current_user_id


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_user_id] = lambda: 7
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create(client: TestClient, **overrides) -> dict:
    body = {
        "title": "Coffee",
        "amount": "4.50",
        "category": "Food & Dining",
        "date": "2024-03-05",
    }
    body.update(overrides)
    response = client.post("/api/expenses", json=body)
    assert response.status_code == 201, response.text
    assert response.json()["message"] == "Expense created successfully"
    return response.json()["expense"]


def test_health(client: TestClient) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["message"] == "Server is running!"


def test_create_get_update_delete(client: TestClient) -> None:
    created = _create(client, paymentMethod="Credit Card", tags=["work"])
    assert created["amount"] == "4.50"
    assert created["paymentMethod"] == "Credit Card"
    assert created["tags"] == ["work"]

    fetched = client.get(f"/api/expenses/{created['id']}").json()
    assert fetched["title"] == "Coffee"

    updated = client.put(
        f"/api/expenses/{created['id']}",
        json={
            "title": "Latte",
            "amount": "5.20",
            "category": "Food & Dining",
            "date": "2024-03-06",
        },
    )
    assert updated.status_code == 200
    assert updated.json()["message"] == "Expense updated successfully"
    expense = updated.json()["expense"]
    assert expense["title"] == "Latte"
    assert expense["amount"] == "5.20"
    assert expense["paymentMethod"] == "Credit Card"
    assert expense["tags"] == ["work"]

    deleted = client.delete(f"/api/expenses/{created['id']}")
    assert deleted.status_code == 200
    assert client.get(f"/api/expenses/{created['id']}").status_code == 404


def test_invalid_body_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/expenses",
        json={
            "title": "Broken",
            "amount": 0,
            "category": "Food & Dining",
            "date": "2024-03-05",
        },
    )
    assert response.status_code == 422

    response = client.post(
        "/api/expenses",
        json={
            "title": "Gym",
            "amount": "30",
            "category": "Healthcare",
            "date": "2024-03-05",
            "isRecurring": True,
        },
    )
    assert response.status_code == 422


def test_other_user_gets_404(client: TestClient) -> None:
    created = _create(client)
    app.dependency_overrides[get_current_user_id] = lambda: 8
    assert client.get(f"/api/expenses/{created['id']}").status_code == 404
    assert client.delete(f"/api/expenses/{created['id']}").status_code == 404
    assert client.get("/api/expenses").json()["total"] == 0


def test_list_pagination_envelope(client: TestClient) -> None:
    for i in range(25):
        _create(client, title=f"Item {i}", date=str(date(2024, 1, 1) + timedelta(days=i)))

    response = client.get(
        "/api/expenses", params={"category": "all", "page": "1", "limit": "10"}
    )
    body = response.json()
    assert response.status_code == 200
    assert len(body["expenses"]) == 10
    assert body["total"] == 25
    assert body["totalPages"] == 3
    assert body["currentPage"] == 1
    assert body["expenses"][0]["title"] == "Item 24"

    fallback = client.get("/api/expenses", params={"page": "-3", "limit": "zero"})
    assert fallback.json()["currentPage"] == 1
    assert len(fallback.json()["expenses"]) == 10


def test_list_filters(client: TestClient) -> None:
    _create(client, title="Morning Coffee", date="2024-03-01")
    _create(client, title="Train", category="Transportation", date="2024-03-15")
    _create(client, title="Snack", description="bought coffee", date="2024-04-02")

    search = client.get("/api/expenses", params={"search": "coffee"}).json()
    assert {e["title"] for e in search["expenses"]} == {"Morning Coffee", "Snack"}

    ranged = client.get(
        "/api/expenses", params={"startDate": "2024-03-01", "endDate": "2024-03-31"}
    ).json()
    assert ranged["total"] == 2

    one_sided = client.get("/api/expenses", params={"startDate": "2024-04-01"}).json()
    assert one_sided["total"] == 3

    category = client.get("/api/expenses", params={"category": "Transportation"}).json()
    assert [e["title"] for e in category["expenses"]] == ["Train"]


def test_stats_endpoint(client: TestClient) -> None:
    _create(client, amount="10", date="2024-03-05")
    _create(client, amount="5", date="2024-03-20")
    _create(client, amount="100", category="Travel", date="2024-06-01")

    body = client.get("/api/expenses/stats", params={"year": "2024", "month": "3"}).json()
    assert body["categoryStats"] == [
        {"category": "Food & Dining", "total": "15.00", "count": 2}
    ]
    assert [m["month"] for m in body["monthlyStats"]] == [3, 6]
    assert body["totalExpenses"] == {"total": "15.00", "count": 2}
    assert body["period"] == {"startDate": "2024-03-01", "endDate": "2024-03-31"}

    empty = client.get("/api/expenses/stats", params={"year": "2019"}).json()
    assert empty["categoryStats"] == []
    assert empty["monthlyStats"] == []
    assert empty["totalExpenses"] == {"total": "0.00", "count": 0}


def test_strict_filters_map_to_400(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "strict_filters", True)

    response = client.get(
        "/api/expenses", params={"startDate": "not-a-date", "endDate": "2024-03-31"}
    )
    assert response.status_code == 400
    assert response.json()["fields"] == {
        "startDate": "must be a calendar date (YYYY-MM-DD)"
    }

    response = client.get("/api/expenses/stats", params={"month": "13"})
    assert response.status_code == 400
    assert "month" in response.json()["fields"]
