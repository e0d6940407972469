from fastapi.testclient import TestClient
from pydantic import BaseModel
import pytest

from app.core.exceptions import InsufficientBalanceError, PersistenceError, StockGoneError
from app.main import create_app


class Item(BaseModel):
    name: str
    price: int


@pytest.fixture
def client(ctx):
    app = create_app(ctx)

    @app.post("/test-validation")
    def create_item(item: Item):
        return item

    @app.get("/test-stock-gone")
    def trigger_stock_gone():
        raise StockGoneError(details={"account": "a@x.com"})

    @app.get("/test-insufficient")
    def trigger_insufficient():
        raise InsufficientBalanceError(details={"balance": 10000, "required": 50000})

    @app.get("/test-storage-down")
    def trigger_storage_down():
        raise PersistenceError("backend down")

    @app.get("/test-crash")
    def trigger_crash():
        raise RuntimeError("boom")

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def test_404_not_found(client):
    response = client.get("/non-existent-route")
    assert response.status_code == 404
    data = response.json()
    assert "error" in data
    assert data["code"] == "HTTP_ERROR"


def test_validation_error_structure(client):
    response = client.post("/test-validation", json={"name": "foo", "price": "invalid"})
    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "VALIDATION_ERROR"
    assert len(data["details"]) > 0


def test_domain_errors_keep_their_code(client):
    response = client.get("/test-stock-gone")
    assert response.status_code == 404
    assert response.json()["code"] == "STOCK_GONE"
    assert response.json()["details"] == {"account": "a@x.com"}

    response = client.get("/test-insufficient")
    assert response.status_code == 402
    assert response.json()["code"] == "INSUFFICIENT_BALANCE"


def test_unhandled_error_is_wrapped(client):
    response = client.get("/test-crash")
    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"


def test_storage_outage_asks_to_retry(client):
    response = client.get("/test-storage-down")
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "5"
    assert response.json()["code"] == "PERSISTENCE_FAILURE"
