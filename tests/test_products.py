import os
import sys

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from jewelinv import create_app
from jewelinv.extensions import db
from jewelinv.models import Product, TransactionLog, User


@pytest.fixture
def app():
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "LOG_DIR": "",
            "CORS_ALLOWED_ORIGINS": ["http://localhost:3000"],
        }
    )
    with app.app_context():
        db.create_all()
        staff = User(username="counter", role=User.ROLE_STAFF)
        staff.set_password("counter-pass")
        db.session.add(staff)
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _token(client, username, password):
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


@pytest.fixture
def admin_headers(client):
    return _token(client, "admin", "admin123")


@pytest.fixture
def staff_headers(client):
    return _token(client, "counter", "counter-pass")


def _add(client, headers, **payload):
    response = client.post("/api/products/add", json=payload, headers=headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["product"]


def test_add_product_assigns_sku_and_opening_stock(client, staff_headers):
    response = client.post(
        "/api/products/add",
        json={"name": "necklace", "quantity": 10, "unitWeightGr": 4.5, "lowQuantity": 2},
        headers=staff_headers,
    )
    assert response.status_code == 201
    data = response.get_json()
    assert data["message"] == "Product added successfully"
    product = data["product"]
    assert product["sku"] == "NE01"
    assert product["name"] == "NECKLACE"
    assert product["quantity"] == 10
    assert product["totalWeightGr"] == pytest.approx(45.0)
    assert product["openingQty"] == 10
    assert product["addedQty"] == 0
    assert product["closingQty"] == 10
    assert product["isActive"] is True


def test_add_product_requires_name(client, staff_headers):
    response = client.post("/api/products/add", json={"quantity": 3}, headers=staff_headers)
    assert response.status_code == 400
    assert response.get_json() == {"error": "Product name is required."}


def test_add_product_rejects_negative_quantity(client, app, staff_headers):
    response = client.post(
        "/api/products/add", json={"name": "Ring", "quantity": -1}, headers=staff_headers
    )
    assert response.status_code == 400
    with app.app_context():
        assert Product.query.count() == 0


def test_update_records_movement(client, staff_headers):
    product = _add(client, staff_headers, name="Bangle", quantity=10, unitWeightGr=12)

    response = client.put(
        f"/api/products/update/{product['id']}",
        json={"addQty": 5, "sellQty": 2, "remarks": "festival stock"},
        headers=staff_headers,
    )
    assert response.status_code == 200
    data = response.get_json()
    assert data["message"] == "Product updated successfully"
    assert data["product"]["quantity"] == 13
    assert data["product"]["totalWeightGr"] == pytest.approx(156.0)
    assert data["transaction"]["openingQty"] == 10
    assert data["transaction"]["addedQty"] == 5
    assert data["transaction"]["soldQty"] == 2
    assert data["transaction"]["closingQty"] == 13
    assert data["transaction"]["remarks"].endswith("festival stock")


def test_update_unknown_product(client, staff_headers):
    response = client.put("/api/products/update/404", json={"addQty": 1}, headers=staff_headers)
    assert response.status_code == 404
    assert response.get_json() == {"error": "Product not found"}


def test_update_rejects_non_numeric_quantities(client, staff_headers):
    product = _add(client, staff_headers, name="Bangle", quantity=1)
    response = client.put(
        f"/api/products/update/{product['id']}", json={"addQty": "two"}, headers=staff_headers
    )
    assert response.status_code == 400


def test_soft_delete_and_restore_preserve_product(client, app, staff_headers, admin_headers):
    product = _add(client, staff_headers, name="Earring", quantity=4, unitWeightGr=1.25)

    archived = client.put(f"/api/products/soft-delete/{product['id']}", headers=admin_headers)
    assert archived.status_code == 200
    assert archived.get_json()["message"] == "Product archived successfully"
    assert archived.get_json()["product"]["isActive"] is False

    assert client.get("/api/products/").get_json() == []
    assert [p["id"] for p in client.get("/api/products/archived").get_json()] == [product["id"]]

    restored = client.put(f"/api/products/restore/{product['id']}", headers=admin_headers)
    assert restored.status_code == 200
    body = restored.get_json()["product"]
    assert body["isActive"] is True
    for field in ("sku", "name", "quantity", "unitWeightGr", "openingQty", "closingQty"):
        assert body[field] == product[field]
    with app.app_context():
        assert TransactionLog.query.filter_by(product_id=product["id"]).count() == 1


def test_archived_products_still_accept_movements(client, staff_headers, admin_headers):
    product = _add(client, staff_headers, name="Pendant", quantity=2)
    client.put(f"/api/products/soft-delete/{product['id']}", headers=admin_headers)

    response = client.put(
        f"/api/products/update/{product['id']}", json={"sellQty": 1}, headers=staff_headers
    )
    assert response.status_code == 200
    assert response.get_json()["product"]["quantity"] == 1


def test_hard_delete_removes_logs(client, app, staff_headers, admin_headers):
    product = _add(client, staff_headers, name="Anklet", quantity=3)
    client.put(
        f"/api/products/update/{product['id']}", json={"addQty": 1}, headers=staff_headers
    )

    response = client.delete(f"/api/products/delete/{product['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.get_json() == {"message": "Product permanently deleted"}
    with app.app_context():
        assert db.session.get(Product, product["id"]) is None
        assert TransactionLog.query.filter_by(product_id=product["id"]).count() == 0

    again = client.delete(f"/api/products/delete/{product['id']}", headers=admin_headers)
    assert again.status_code == 404


def test_list_endpoints_filter_by_status(client, staff_headers, admin_headers):
    ring = _add(client, staff_headers, name="Ring", quantity=1)
    chain = _add(client, staff_headers, name="Chain", quantity=1)
    client.put(f"/api/products/soft-delete/{chain['id']}", headers=admin_headers)

    active = client.get("/api/products/").get_json()
    archived = client.get("/api/products/archived").get_json()
    everything = client.get("/api/products/all").get_json()

    assert [p["sku"] for p in active] == [ring["sku"]]
    assert [p["sku"] for p in archived] == [chain["sku"]]
    assert [p["sku"] for p in everything] == [ring["sku"], chain["sku"]]


def test_low_stock_lists_active_products_at_threshold(client, staff_headers, admin_headers):
    low = _add(client, staff_headers, name="Nosepin", quantity=2, lowQuantity=2)
    _add(client, staff_headers, name="Toe ring", quantity=5, lowQuantity=2)
    _add(client, staff_headers, name="Brooch", quantity=0)
    hidden = _add(client, staff_headers, name="Tiara", quantity=1, lowQuantity=3)
    client.put(f"/api/products/soft-delete/{hidden['id']}", headers=admin_headers)

    response = client.get("/api/products/low-stock")
    assert [p["sku"] for p in response.get_json()] == [low["sku"]]


def test_product_detail_and_history(client, staff_headers):
    product = _add(client, staff_headers, name="Kada", quantity=6)
    client.put(f"/api/products/update/{product['id']}", json={"sellQty": 1}, headers=staff_headers)

    detail = client.get(f"/api/products/{product['id']}")
    assert detail.status_code == 200
    assert detail.get_json()["quantity"] == 5
    assert client.get("/api/products/999").status_code == 404

    history = client.get(f"/api/products/{product['id']}/history", headers=staff_headers)
    assert history.status_code == 200
    rows = history.get_json()
    assert len(rows) == 1
    assert rows[0]["sku"] == product["sku"]
    assert rows[0]["closingQty"] == 5


def test_cors_allows_configured_origin(client):
    response = client.get("/api/products/", headers={"Origin": "http://localhost:3000"})
    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_cors_rejects_unknown_origin(client):
    response = client.get("/api/products/", headers={"Origin": "https://evil.example"})
    assert response.status_code == 403
    assert response.get_json() == {"error": "Not allowed by CORS"}
    assert "Access-Control-Allow-Origin" not in response.headers


def test_cors_preflight(client):
    response = client.options(
        "/api/products/add",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        },
    )
    assert response.status_code == 200
    assert "POST" in response.headers["Access-Control-Allow-Methods"]
    assert "Authorization" in response.headers["Access-Control-Allow-Headers"]


def test_requests_without_origin_are_allowed(client):
    response = client.get("/api/products/")
    assert response.status_code == 200
    assert response.headers["X-Request-ID"]


def test_update_accepts_non_text_remarks(client, staff_headers):
    product = _add(client, staff_headers, name="Bangle", quantity=1)
    response = client.put(
        f"/api/products/update/{product['id']}",
        json={"addQty": 1, "remarks": 5},
        headers=staff_headers,
    )
    assert response.status_code == 200
    assert response.get_json()["transaction"]["remarks"].endswith("; 5")


def test_update_rejects_structured_remarks(client, staff_headers):
    product = _add(client, staff_headers, name="Bangle", quantity=1)
    response = client.put(
        f"/api/products/update/{product['id']}",
        json={"addQty": 1, "remarks": {"note": "x"}},
        headers=staff_headers,
    )
    assert response.status_code == 400


def test_oversized_quantities_rejected(client, staff_headers):
    response = client.post(
        "/api/products/add", json={"name": "Ring", "quantity": 10**12}, headers=staff_headers
    )
    assert response.status_code == 400
    assert "too large" in response.get_json()["error"]

    product = _add(client, staff_headers, name="Ring", quantity=1)
    response = client.put(
        f"/api/products/update/{product['id']}", json={"addQty": 2**31}, headers=staff_headers
    )
    assert response.status_code == 400
