"""
API route tests through the Flask test client.

Money travels as strings in JSON; engine errors map to one message with
a matching status code.
"""

import pytest

from conftest import rejected


@pytest.fixture()
def soap(client):
    resp = client.post("/api/products", json={"name": "Soap", "price": "50.00", "stock": 10, "category": "Bath"})
    assert resp.status_code == 201
    return resp.get_json()


class TestHealth:
    def test_reports_pending_work(self, client):
        body = client.get("/api/health").get_json()

        assert body["online"] is True
        assert body["database"]["status"] == "healthy"
        assert body["pending"] == {"products": 0, "sales": 0}

    def test_offline_skips_database(self, client, offline):
        body = client.get("/api/health").get_json()

        assert body["online"] is False
        assert body["database"] == {"status": "skipped"}


class TestProductRoutes:
    def test_list_and_filter(self, client, soap):
        client.post("/api/products", json={"name": "Salt", "price": "2", "stock": 1, "category": "Food"})

        body = client.get("/api/products?category=Bath").get_json()

        assert body["count"] == 1
        assert body["items"][0]["id"] == soap["id"]
        assert body["items"][0]["price"] == "50.00"

    def test_categories(self, client, soap):
        assert client.get("/api/products/categories").get_json()["items"] == ["Bath"]

    def test_invalid_create_is_400(self, client):
        resp = client.post("/api/products", json={"name": "Soap", "price": "-1", "stock": 1})

        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_offline_create_returns_placeholder(self, client, offline):
        resp = client.post("/api/products", json={"name": "Soap", "price": "5", "stock": 1})

        assert resp.status_code == 201
        assert resp.get_json()["id"].startswith("temp_")

    def test_patch_and_delete(self, client, soap):
        resp = client.patch(f"/api/products/{soap['id']}", json={"price": "45"})
        assert resp.get_json()["price"] == "45.00"

        assert client.delete(f"/api/products/{soap['id']}").status_code == 200
        assert client.get("/api/products").get_json()["count"] == 0

    def test_barcode_lookup(self, client):
        client.post("/api/products", json={"name": "Soap", "price": "5", "stock": 1, "barcode": "4006381333931"})

        assert client.get("/api/products/barcode/4006381333931").get_json()["name"] == "Soap"
        assert client.get("/api/products/barcode/missing").status_code == 404

    def test_reconnect_promotes_offline_create(self, client, probe):
        probe.set_online(False)
        temp = client.post("/api/products", json={"name": "Soap", "price": "5", "stock": 1}).get_json()
        probe.set_online(True)

        report = client.post("/api/products/sync").get_json()
        [product] = client.get("/api/products").get_json()["items"]

        assert report["pending"] == 0
        assert product["name"] == "Soap"
        assert product["id"] != temp["id"]


class TestStockRoutes:
    def test_check_shortfall(self, client, soap):
        body = client.post("/api/stock/check", json={"items": [{"id": soap["id"], "quantity": 11}]}).get_json()

        assert body["ok"] is False
        assert body["shortfalls"][0]["available"] == 10

    def test_malformed_check_is_400(self, client):
        assert client.post("/api/stock/check", json={"items": "nope"}).status_code == 400

    def test_set_and_read_stock(self, client, soap):
        body = client.put(f"/api/stock/{soap['id']}", json={"stock": 4}).get_json()

        assert body["ok"] is True
        assert client.get(f"/api/stock/{soap['id']}").get_json()["stock"] == 4

    def test_unknown_stock_is_404(self, client):
        assert client.get("/api/stock/nope").status_code == 404

    def test_batch(self, client, soap):
        body = client.post("/api/stock/batch", json={"updates": [{"id": soap["id"], "new_stock": 3}]}).get_json()

        assert body["remote_ok"] is True


class TestCheckoutRoutes:
    def test_checkout_returns_receipt(self, client, soap):
        resp = client.post("/api/checkout", json={
            "items": [{"id": soap["id"], "quantity": 2, "price": "50.00"}],
            "cash_given": "120.00",
        })

        assert resp.status_code == 201
        receipt = resp.get_json()["receipt"]
        assert receipt["total"] == "100.00"
        assert receipt["change"] == "20.00"
        assert client.get(f"/api/stock/{soap['id']}").get_json()["stock"] == 8

    def test_consecutive_sales(self, client, soap):
        sale = {"items": [{"id": soap["id"], "quantity": 1, "price": "50"}], "cash_given": "50"}

        assert client.post("/api/checkout", json=sale).status_code == 201
        assert client.post("/api/checkout", json=sale).status_code == 201

    def test_short_payment_is_400(self, client, soap):
        resp = client.post("/api/checkout", json={
            "items": [{"id": soap["id"], "quantity": 2, "price": "50"}], "cash_given": "99",
        })

        assert resp.status_code == 400

    def test_shortfall_is_409(self, client, soap):
        resp = client.post("/api/checkout", json={
            "items": [{"id": soap["id"], "quantity": 20, "price": "50"}], "cash_given": "5000",
        })

        assert resp.status_code == 409
        assert resp.get_json()["shortfalls"][0]["requested"] == 20

    def test_offline_is_503(self, client, soap, offline):
        resp = client.post("/api/checkout", json={
            "items": [{"id": soap["id"], "quantity": 1, "price": "50"}], "cash_given": "50",
        })

        assert resp.status_code == 503

    def test_partial_failure_is_500(self, client, engine, soap, monkeypatch):
        monkeypatch.setattr(engine.remote, "insert_many", rejected())

        resp = client.post("/api/checkout", json={
            "items": [{"id": soap["id"], "quantity": 1, "price": "50"}], "cash_given": "50",
        })

        assert resp.status_code == 500
        assert client.get("/api/health").get_json()["pending"]["sales"] == 1

    def test_history(self, client, soap):
        client.post("/api/checkout", json={
            "items": [{"id": soap["id"], "quantity": 1, "price": "50"}], "cash_given": "50",
        })

        [transaction] = client.get("/api/transactions").get_json()["items"]
        items = client.get(f"/api/transactions/{transaction['id']}/items").get_json()["items"]

        assert items[0]["product_name"] == "Soap"


class TestAuthRoutes:
    @pytest.fixture()
    def user(self, engine):
        return engine.auth_backend.create_user("cashier@example.com", "Password123")

    def test_login_hides_refresh_token(self, client, user):
        resp = client.post("/api/auth/login", json={"email": "cashier@example.com", "password": "Password123"})

        assert resp.status_code == 200
        session = resp.get_json()["session"]
        assert session["access_token"]
        assert "refresh_token" not in session

    def test_bad_credentials_401(self, client, user):
        resp = client.post("/api/auth/login", json={"email": "cashier@example.com", "password": "Nope12345"})

        assert resp.status_code == 401

    def test_missing_fields_400(self, client):
        assert client.post("/api/auth/login", json={}).status_code == 400

    def test_session_lifecycle(self, client, user):
        client.post("/api/auth/login", json={"email": "cashier@example.com", "password": "Password123"})

        assert client.get("/api/auth/session").status_code == 200
        assert client.post("/api/auth/refresh").status_code == 200

        client.post("/api/auth/logout")

        assert client.get("/api/auth/session").status_code == 401


class TestCli:
    def test_status(self, app, soap):
        result = app.test_cli_runner().invoke(args=["sync", "status"])

        assert result.exit_code == 0
        assert "Cached products:   1" in result.output

    def test_create_user(self, app):
        result = app.test_cli_runner().invoke(
            args=["auth", "create-user", "--email", "new@example.com", "--password", "Password123"]
        )

        assert result.exit_code == 0
        assert "Created user new@example.com" in result.output
