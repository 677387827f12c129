# Overview: Pytest coverage for the JSON API: session, catalog, sales, customers, back office and sync.

import pytest

from shopos.services.identifier_service import is_valid_uuid


REGISTRATION = {
    "full_name": "Ada Owner",
    "email": "Ada@Shop-A.test",
    "shop_name": "Shop A",
    "country": "Nigeria",
    "state": "Lagos",
    "password": "secret-a",
}


@pytest.fixture
def owner(client):
    resp = client.post("/api/auth/register-shop", json=REGISTRATION)
    assert resp.status_code == 201
    return resp.get_json()


@pytest.fixture
def milk(client, owner):
    resp = client.post("/api/products", json={
        "name": "Peak Milk",
        "units_per_carton": 24,
        "stock_cartons": 3,
        "stock_units": 5,
        "carton_price": 4800,
        "unit_price": 220,
        "cost_price_carton": 4080,
    })
    assert resp.status_code == 201
    return resp.get_json()


class TestSession:
    def test_register_shop(self, client, owner, remote):
        assert is_valid_uuid(owner["shop_id"])
        assert owner["user"]["username"] == "ada"
        assert owner["user"]["email"] == "ada@shop-a.test"
        assert "password_hash" not in owner["user"]
        assert owner["settings"]["business_name"] == "Shop A"
        assert owner["subscription"]["status"] == "trial"
        assert owner["subscription"]["days_remaining"] == 7

        names = sorted(c["name"] for c in client.get("/api/categories").get_json())
        assert names == ["Cosmetics", "Drinks", "Electronics", "General", "Pharmacy", "Provisions"]
        assert owner["shop_id"] in remote.tables["settings"]

    @pytest.mark.parametrize(
        "change,message",
        [
            ({"email": "not-an-email"}, "email"),
            ({"shop_name": ""}, "Shop name"),
            ({"password": "abc"}, "at least"),
        ],
    )
    def test_register_validation(self, client, change, message):
        resp = client.post("/api/auth/register-shop", json={**REGISTRATION, **change})
        assert resp.status_code == 400
        assert message in resp.get_json()["error"]

    def test_login_logout_cycle(self, client, owner):
        assert client.post("/api/auth/logout").status_code == 200
        assert client.get("/api/auth/me").status_code == 401

        resp = client.post("/api/auth/login", json={"email": "ada@shop-a.test", "password": "secret-a"})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["source"] == "remote"
        assert body["shop_id"] == owner["shop_id"]
        assert body["subscription_expired"] is False
        assert body["user"]["last_login"]

    def test_login_missing_fields(self, client):
        assert client.post("/api/auth/login", json={"username": "ada"}).status_code == 400

    def test_login_wrong_password(self, client, owner):
        client.post("/api/auth/logout")
        resp = client.post("/api/auth/login", json={"username": "ada", "password": "wrong-one"})
        assert resp.status_code == 401

    def test_offline_login_uses_cached_users(self, client, owner, shop_runtime, remote):
        client.post("/api/auth/logout")
        shop_runtime.network.set_online(False)
        calls_before = len(remote.calls)

        resp = client.post("/api/auth/login", json={"username": "ada", "password": "secret-a"})

        assert resp.status_code == 200
        assert resp.get_json()["source"] == "local"
        assert len(remote.calls) == calls_before

    def test_inactive_user_is_forbidden(self, client, owner):
        user = client.post("/api/users", json={"username": "tola", "password": "till-pass"}).get_json()
        client.post(f"/api/users/{user['id']}/toggle-status")
        client.post("/api/auth/logout")

        resp = client.post("/api/auth/login", json={"username": "tola", "password": "till-pass"})

        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Account is inactive"


class TestCatalog:
    def test_create_product_derives_stock(self, milk):
        assert milk["total_units"] == 3 * 24 + 5
        assert milk["stock_cartons"] == 3
        assert milk["stock_units"] == 5
        assert milk["cost_price_unit"] == 170

    def test_create_requires_name(self, client, owner):
        assert client.post("/api/products", json={"unit_price": 5}).status_code == 400

    def test_update_and_archive(self, client, milk):
        resp = client.put(f"/api/products/{milk['id']}", json={"unit_price": 250})
        assert resp.status_code == 200
        assert resp.get_json()["unit_price"] == 250

        assert client.delete(f"/api/products/{milk['id']}").status_code == 200
        assert client.get("/api/products").get_json() == []
        archived = client.get("/api/products?include_archived=true").get_json()
        assert archived[0]["is_archived"] is True

    def test_unknown_product_is_404(self, client, owner):
        assert client.get("/api/products/missing").status_code == 404
        assert client.put("/api/products/missing", json={"name": "x"}).status_code == 404

    def test_restock_records_movement(self, client, milk):
        resp = client.post(f"/api/products/{milk['id']}/stock", json={"quantity": 2, "quantity_type": "carton"})

        assert resp.status_code == 200
        assert resp.get_json()["total_units"] == 77 + 48
        movements = client.get(f"/api/products/{milk['id']}/movements").get_json()
        assert [(m["type"], m["quantity_change"], m["note"]) for m in movements] == [
            ("restock", 48, "Manual Restock")
        ]

    @pytest.mark.parametrize(
        "body",
        [
            {"quantity": 0},
            {"quantity": "3"},
            {"quantity": True},
            {"quantity": 1, "quantity_type": "pallet"},
        ],
    )
    def test_restock_validation(self, client, milk, body):
        assert client.post(f"/api/products/{milk['id']}/stock", json=body).status_code == 400

    def test_categories_and_suppliers(self, client, owner):
        category = client.post("/api/categories", json={"name": "Frozen"}).get_json()
        supplier = client.post("/api/suppliers", json={"name": "Dangote", "phone": "0800"}).get_json()

        assert client.put(f"/api/suppliers/{supplier['id']}", json={"phone": "0900"}).get_json()["phone"] == "0900"
        assert client.delete(f"/api/categories/{category['id']}").status_code == 200
        assert "Frozen" not in [c["name"] for c in client.get("/api/categories").get_json()]
        assert [s["name"] for s in client.get("/api/suppliers").get_json()] == ["Dangote"]


class TestSales:
    def test_cash_sale(self, client, milk, remote):
        resp = client.post("/api/sales", json={
            "items": [
                {"product_id": milk["id"], "quantity": 1, "quantity_type": "carton"},
                {"product_id": milk["id"], "quantity": 3, "quantity_type": "unit"},
            ],
            "payment_method": "cash",
        })

        assert resp.status_code == 201
        sale = resp.get_json()
        assert sale["total"] == 4800 + 3 * 220
        assert sale["profit"] == (4800 - 4080) + 3 * (220 - 170)
        assert client.get(f"/api/products/{milk['id']}").get_json()["total_units"] == 77 - 27
        assert sale["id"] in remote.tables["sale"]
        assert client.get(f"/api/sales/{sale['id']}").status_code == 200
        assert [s["id"] for s in client.get("/api/sales").get_json()] == [sale["id"]]

    def test_credit_sale_updates_debt(self, client, milk):
        customer = client.post("/api/customers", json={"name": "Bola", "phone": "0801"}).get_json()

        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk["id"], "quantity": 2, "quantity_type": "unit"}],
            "customer_id": customer["id"],
            "is_credit": True,
            "due_date": "2026-11-01",
        })

        assert resp.status_code == 201
        debtors = client.get("/api/customers?debtors=true").get_json()
        assert [(c["id"], c["total_debt"]) for c in debtors] == [(customer["id"], 440)]
        history = client.get(f"/api/customers/{customer['id']}/debt-history").get_json()
        assert history[0]["note"] == "Credit Sale (Due: 2026-11-01)"

    def test_empty_sale_is_rejected(self, client, owner):
        resp = client.post("/api/sales", json={"items": []})
        assert resp.status_code == 400

    def test_unknown_product_reports_details(self, client, owner):
        resp = client.post("/api/sales", json={"items": [{"product_id": "ghost", "quantity": 1}]})
        assert resp.status_code == 400
        assert resp.get_json()["details"] == {"product_id": "ghost"}

    def test_offline_sale_is_accepted_and_queued(self, client, milk, shop_runtime, remote):
        client.post("/api/sync/network", json={"online": False})

        resp = client.post("/api/sales", json={
            "items": [{"product_id": milk["id"], "quantity": 1, "quantity_type": "unit"}],
        })

        assert resp.status_code == 201
        assert resp.get_json()["id"] not in remote.tables["sale"]
        assert client.get("/api/sync/status").get_json()["pending"] > 0

        client.post("/api/sync/network", json={"online": True})
        assert resp.get_json()["id"] in remote.tables["sale"]
        assert shop_runtime.queue.count() == 0

    def test_gift_card_lifecycle(self, client, milk):
        card = client.post("/api/gift-cards", json={"code": "GIFT-500", "initial_value": 500}).get_json()
        assert client.post("/api/gift-cards", json={"code": "GIFT-500"}).status_code == 400
        assert client.get("/api/gift-cards/lookup/GIFT-500").get_json()["balance"] == 500

        client.post("/api/sales", json={
            "items": [{"product_id": milk["id"], "quantity": 3, "quantity_type": "unit"}],
            "payment_method": "gift_card",
            "gift_card_code": "GIFT-500",
            "gift_card_amount": 660,
        })

        assert client.get("/api/gift-cards/lookup/GIFT-500").status_code == 404
        assert client.get("/api/gift-cards").get_json()[0]["status"] == "empty"
        assert client.delete(f"/api/gift-cards/{card['id']}").status_code == 200
        assert client.delete(f"/api/gift-cards/{card['id']}").status_code == 404

    def test_gift_card_delete_failure_is_500(self, client, owner, shop_runtime, monkeypatch):
        card = client.post("/api/gift-cards", json={"code": "GIFT-100", "initial_value": 100}).get_json()

        def broken(card_id):
            raise RuntimeError("disk full")

        monkeypatch.setattr(shop_runtime.mutations, "delete_gift_card", broken)

        resp = client.delete(f"/api/gift-cards/{card['id']}")
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}


class TestCustomers:
    def test_debt_adjustment_and_payment(self, client, owner):
        customer = client.post("/api/customers", json={"name": "Bola"}).get_json()

        resp = client.post(f"/api/customers/{customer['id']}/debt", json={"amount": 1000})
        assert resp.get_json()["total_debt"] == 1000

        resp = client.post(f"/api/customers/{customer['id']}/payments", json={"amount": 1500})
        assert resp.status_code == 200
        assert resp.get_json()["total_debt"] == 0

        history = client.get(f"/api/customers/{customer['id']}/debt-history").get_json()
        assert [(t["type"], t["note"]) for t in history] == [("payment", "Debt Repayment")]

    def test_payment_validation(self, client, owner):
        customer = client.post("/api/customers", json={"name": "Bola"}).get_json()

        assert client.post(f"/api/customers/{customer['id']}/payments", json={"amount": "5"}).status_code == 400
        assert client.post(f"/api/customers/{customer['id']}/payments", json={"amount": 0}).status_code == 400
        assert client.post("/api/customers/ghost/payments", json={"amount": 5}).status_code == 404

    def test_edit_ignores_debt(self, client, owner):
        customer = client.post("/api/customers", json={"name": "Bola"}).get_json()

        resp = client.put(f"/api/customers/{customer['id']}", json={"phone": "0802", "total_debt": 99})

        assert resp.get_json()["phone"] == "0802"
        assert resp.get_json()["total_debt"] == 0


class TestBackOffice:
    def test_users(self, client, owner):
        resp = client.post("/api/users", json={"username": "Tola", "password": "till-pass", "role": "cashier"})
        assert resp.status_code == 201
        assert "password_hash" not in resp.get_json()

        assert client.post("/api/users", json={"username": "tola", "password": "other-pass"}).status_code == 409
        assert client.post("/api/users", json={"username": "x", "password": "pass", "role": "king"}).status_code == 400
        assert client.post(f"/api/users/{owner['user']['id']}/toggle-status").status_code == 400
        assert len(client.get("/api/users").get_json()) == 2

    def test_expenses(self, client, owner):
        assert client.post("/api/expenses", json={"amount": -5}).status_code == 400

        expense = client.post("/api/expenses", json={"amount": 2500, "category": "Fuel"}).get_json()
        assert expense["recorded_by_user_id"] == owner["user"]["id"]

        assert client.delete(f"/api/expenses/{expense['id']}").status_code == 200
        assert client.get("/api/expenses").get_json() == []

    def test_settings(self, client, owner, remote):
        resp = client.put("/api/settings", json={"currency": "GHS", "shop_id": "someone-else"})

        assert resp.status_code == 200
        assert resp.get_json()["shop_id"] == owner["shop_id"]
        assert client.get("/api/settings").get_json()["currency"] == "GHS"
        assert remote.tables["settings"][owner["shop_id"]]["currency"] == "GHS"

    def test_subscription_payment(self, client, owner):
        assert client.post("/api/subscription/payments", json={"plan": "weekly"}).status_code == 400
        assert client.post("/api/subscription/payments", json={"plan": "monthly", "amount": 5000}).status_code == 400

        resp = client.post("/api/subscription/payments", json={"plan": "monthly", "reference": "PSK-1", "amount": 5000})

        assert resp.status_code == 200
        assert resp.get_json()["status"] == "active"
        assert client.get("/api/subscription").get_json()["subscription"]["payment_reference"] == "PSK-1"

    def test_activity_logs_newest_first(self, client, owner):
        client.post("/api/categories", json={"name": "Frozen"})
        client.post("/api/suppliers", json={"name": "Dangote"})

        logs = client.get("/api/activity-logs?limit=2").get_json()

        assert len(logs) == 2
        assert all(log["shop_id"] == owner["shop_id"] for log in logs)
        assert logs[0]["created_at"] >= logs[1]["created_at"]


class TestSync:
    def test_network_validation(self, client, owner):
        assert client.post("/api/sync/network", json={"online": "yes"}).status_code == 400

    def test_manual_drain(self, client, owner, remote):
        remote.available = False
        client.post("/api/categories", json={"name": "Frozen"})
        assert client.get("/api/sync/status").get_json()["pending"] > 0

        remote.available = True
        resp = client.post("/api/sync/drain")

        assert resp.status_code == 200
        assert resp.get_json()["pending"] == 0
        assert resp.get_json()["failed"] == 0
        assert client.get("/api/sync/status").get_json()["last_successful_sync"]

    def test_dropped_operations(self, client, owner, shop_runtime, remote):
        remote.fail_when(lambda method, kind, record: kind == "supplier")
        client.post("/api/suppliers", json={"name": "Dangote"})

        for _ in range(shop_runtime.queue.max_retries):
            client.post("/api/sync/drain")

        dropped = client.get("/api/sync/dropped").get_json()
        assert [d["type"] for d in dropped] == ["CREATE_SUPPLIER"]
        assert client.delete("/api/sync/dropped").get_json() == {"cleared": 1}

    def test_cors_header_for_local_shell(self, client):
        resp = client.get("/api/sync/status", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"
