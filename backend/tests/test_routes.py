"""
HTTP API tests.

Verifies:
- Money-moving endpoints return 401 without an acting user
- Domain errors map to their status codes and error codes
- Purchase / sale lifecycle over HTTP (create, pay, cancel)
- Closing balance, opening balance, ledger and confirmation endpoints
"""

import pytest


def auth_headers(user) -> dict:
    return {"X-User-Id": str(user.id)}


# =============================================================================
# ACTING USER (401)
# =============================================================================


class TestActingUserRequired:
    """Money-moving endpoints refuse requests without a known user."""

    @pytest.mark.parametrize(
        "path",
        [
            "/api/purchases",
            "/api/sales",
            "/api/purchases/1/cancel",
            "/api/sales/1/payments",
            "/api/opening-balances",
            "/api/opening-balances/add",
            "/api/closing-balances/2026-01-05/recompute",
            "/api/daily-confirmation",
        ],
    )
    def test_requires_actor(self, client, db_session, path):
        resp = client.post(path, json={})
        assert resp.status_code == 401, f"POST {path} returned {resp.status_code}"

    def test_unknown_user(self, client, db_session):
        resp = client.post("/api/purchases", json={}, headers={"X-User-Id": "999"})
        assert resp.status_code == 401


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "healthy"
        assert data["business_date"] == "2026-01-05"
        assert data["timezone"] == "Asia/Karachi"


# =============================================================================
# PURCHASES / SALES
# =============================================================================


class TestTransactionRoutes:

    def test_create_purchase(self, client, user, product, funded_cash):
        resp = client.post(
            "/api/purchases",
            json={
                "items": [{"product_id": product.id, "quantity": 12, "unit_price": "100"}],
                "payments": [{"method": "cash", "amount": "1200"}],
                "supplier_name": "Al-Noor Traders",
            },
            headers=auth_headers(user),
        )
        assert resp.status_code == 201
        data = resp.get_json()
        txn = data["transaction"]
        assert txn["total"] == "1200.00"
        assert txn["status"] == "completed"
        assert txn["reference_number"] == "P-20260105-0001"
        assert data["applied_stock_deltas"] == [
            {"product_id": product.id, "location": "warehouse", "delta": 12},
        ]

        resp = client.get(f"/api/purchases/{txn['id']}")
        assert resp.status_code == 200
        assert resp.get_json()["transaction"]["counterparty_name"] == "Al-Noor Traders"

    def test_insufficient_balance(self, client, user, product):
        resp = client.post(
            "/api/purchases",
            json={
                "items": [{"product_id": product.id, "quantity": 1, "unit_price": "100"}],
                "payments": [{"method": "cash", "amount": "100"}],
            },
            headers=auth_headers(user),
        )
        assert resp.status_code == 422
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_BALANCE"
        assert body["details"]["required"] == "100.00"

    def test_validation_error(self, client, user, product):
        resp = client.post("/api/sales", json={"items": []}, headers=auth_headers(user))
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_sale_payment_and_cancel(self, client, user, product):
        headers = auth_headers(user)
        resp = client.post(
            "/api/sales",
            json={"items": [{"product_id": product.id, "quantity": 5}], "customer_name": "Walk-in"},
            headers=headers,
        )
        assert resp.status_code == 201
        txn = resp.get_json()["transaction"]
        assert txn["total"] == "500.00"
        assert txn["status"] == "pending"

        resp = client.post(
            f"/api/sales/{txn['id']}/payments",
            json={"method": "cash", "amount": "200"},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["transaction"]["remaining_balance"] == "300.00"

        resp = client.post(f"/api/sales/{txn['id']}/cancel", json={}, headers=headers)
        assert resp.status_code == 422
        assert resp.get_json()["code"] == "REFUND_REQUIRED"

        resp = client.post(
            f"/api/sales/{txn['id']}/cancel",
            json={"refund": {"method": "cash"}},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["transaction"]["status"] == "cancelled"

        resp = client.post(
            f"/api/sales/{txn['id']}/payments",
            json={"method": "cash", "amount": "1"},
            headers=headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ALREADY_CANCELLED"

    def test_kind_mismatch_is_not_found(self, client, user, product):
        resp = client.post(
            "/api/purchases",
            json={"items": [{"product_id": product.id, "quantity": 1, "unit_price": "100"}]},
            headers=auth_headers(user),
        )
        txn_id = resp.get_json()["transaction"]["id"]

        assert client.get(f"/api/sales/{txn_id}").status_code == 404

    def test_update_transaction(self, client, user, product):
        headers = auth_headers(user)
        resp = client.post(
            "/api/purchases",
            json={"items": [{"product_id": product.id, "quantity": 4, "unit_price": "100"}]},
            headers=headers,
        )
        txn_id = resp.get_json()["transaction"]["id"]

        resp = client.put(
            f"/api/purchases/{txn_id}",
            json={"items": [{"product_id": product.id, "quantity": 4, "unit_price": "90"}]},
            headers=headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "COST_IMMUTABLE"

        resp = client.put(
            f"/api/purchases/{txn_id}",
            json={"discount": "10", "discount_type": "percent", "notes": "bulk"},
            headers=headers,
        )
        assert resp.status_code == 200
        data = resp.get_json()["transaction"]
        assert data["total"] == "360.00"
        assert data["notes"] == "bulk"

    def test_list_and_counterparties(self, client, user, product):
        headers = auth_headers(user)
        for name in ("Al-Noor Traders", "Karachi Paper House"):
            client.post(
                "/api/purchases",
                json={
                    "items": [{"product_id": product.id, "quantity": 1, "unit_price": "100"}],
                    "supplier_name": name,
                },
                headers=headers,
            )

        resp = client.get("/api/purchases?status=pending&page=1&per_page=1")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["count"] == 1
        assert data["pagination"]["total"] == 2

        assert client.get("/api/purchases?start_date=05-01-2026").status_code == 400

        resp = client.get("/api/counterparties?kind=supplier&search=paper")
        assert [c["name"] for c in resp.get_json()["items"]] == ["Karachi Paper House"]
        assert client.get("/api/counterparties").status_code == 400


# =============================================================================
# BALANCES / LEDGER
# =============================================================================


class TestBalanceRoutes:

    def test_closing_balance(self, client, user, funded_cash):
        resp = client.get("/api/closing-balances/2026-01-05")
        assert resp.status_code == 200
        snapshot = resp.get_json()["snapshot"]
        assert snapshot["date"] == "2026-01-05"
        assert snapshot["balances"] == [{"method": "cash", "balance": "5000.00"}]
        assert snapshot["total"] == "5000.00"

    def test_bad_date(self, client, db_session):
        resp = client.get("/api/closing-balances/2026-13-01")
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_closing_balance_range(self, client, user, funded_cash):
        resp = client.get("/api/closing-balances?start=2026-01-04&end=2026-01-05")
        assert resp.status_code == 200
        items = resp.get_json()["items"]
        assert [s["total"] for s in items] == ["0.00", "5000.00"]

        resp = client.get("/api/closing-balances?start=2026-01-05&end=2026-01-04")
        assert resp.status_code == 400

    def test_recompute(self, client, user, funded_cash):
        resp = client.post("/api/closing-balances/2026-01-05/recompute", headers=auth_headers(user))
        assert resp.status_code == 200
        assert resp.get_json()["snapshot"]["total"] == "5000.00"

    def test_opening_balance(self, client, user, bank_account):
        headers = auth_headers(user)
        assert client.get("/api/opening-balances/2026-01-05").status_code == 404

        resp = client.post(
            "/api/opening-balances",
            json={
                "date": "2026-01-05",
                "lines": [
                    {"method": "cash", "amount": "1500"},
                    {"method": "bank", "bank_account_id": bank_account.id, "amount": "250.50"},
                ],
                "notes": "Start of season",
            },
            headers=headers,
        )
        assert resp.status_code == 201

        resp = client.get("/api/opening-balances/2026-01-05")
        assert resp.status_code == 200
        assert resp.get_json()["opening_balance"]["notes"] == "Start of season"

        resp = client.get("/api/closing-balances/2026-01-05")
        assert resp.get_json()["snapshot"]["total"] == "1750.50"

    def test_add_funds_and_ledger(self, client, user):
        headers = auth_headers(user)
        resp = client.post(
            "/api/opening-balances/add",
            json={"method": "cash", "amount": "300", "description": "Drawer float"},
            headers=headers,
        )
        assert resp.status_code == 201

        resp = client.post("/api/opening-balances/add", json={"method": "cash", "amount": "-5"}, headers=headers)
        assert resp.status_code == 422
        assert resp.get_json()["code"] == "INVALID_AMOUNT"

        resp = client.get("/api/ledger?date=2026-01-05&method=cash")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["count"] == 1
        assert data["items"][0]["source"] == "add_opening_balance"

        resp = client.get("/api/closing-balances/2026-01-05")
        assert resp.get_json()["snapshot"]["total"] == "300.00"


# =============================================================================
# DAILY CONFIRMATION
# =============================================================================


class TestConfirmationRoutes:

    def test_confirm_then_repeat(self, client, user):
        headers = auth_headers(user)

        resp = client.post("/api/daily-confirmation", json={}, headers=headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["created"] is True
        assert body["confirmation"]["date"] == "2026-01-05"

        resp = client.post("/api/daily-confirmation", json={"date": "2026-01-05"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["created"] is False

        resp = client.get("/api/daily-confirmation")
        assert resp.status_code == 200
        status = resp.get_json()
        assert status["confirmed"] is True
        assert status["needs_confirmation"] is False

    def test_status_bad_date(self, client, db_session):
        resp = client.get("/api/daily-confirmation?date=yesterday")
        assert resp.status_code == 400

    def test_enforced_gate_blocks_writes(self, app, client, user, product, monkeypatch):
        headers = auth_headers(user)
        client.post(
            "/api/opening-balances",
            json={"date": "2026-01-04", "lines": [{"method": "cash", "amount": "100"}]},
            headers=headers,
        )
        monkeypatch.setitem(app.config, "ENFORCE_DAILY_CONFIRMATION", True)

        payload = {"items": [{"product_id": product.id, "quantity": 1}]}
        resp = client.post("/api/sales", json=payload, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "CONFIRMATION_REQUIRED"

        client.post("/api/daily-confirmation", json={}, headers=headers)
        resp = client.post("/api/sales", json=payload, headers=headers)
        assert resp.status_code == 201
