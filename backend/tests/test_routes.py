# Overview: Pytest coverage for the HTTP API and CLI commands.

"""
API and CLI Tests

Exercise the blueprints end to end through the Flask test client:
1. Tenant header is required on every business route
2. Service error codes map to HTTP statuses (400/402/404/409)
3. Money is serialized as exact decimal strings
"""

from tableside.decorators import ORG_HEADER


ORG_A = "org-acme"
ORG_B = "org-beta"
HEADERS_A = {ORG_HEADER: ORG_A}
HEADERS_B = {ORG_HEADER: ORG_B}


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get("/api/system/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"

    def test_missing_tenant_header(self, client, db_session):
        response = client.post("/api/orders/sessions", json={})
        assert response.status_code == 400
        assert response.get_json()["error_code"] == "validation_error"

    def test_tenant_from_query_parameter(self, client, db_session):
        response = client.get(f"/api/payments?organization_id={ORG_A}")
        assert response.status_code == 200
        assert response.get_json()["data"] == []


class TestOrderRoutes:
    def _open(self, client):
        response = client.post("/api/orders/sessions", json={"customer_id": "cust-1"}, headers=HEADERS_A)
        assert response.status_code == 201
        return response.get_json()["data"]["id"]

    def test_session_to_order_flow(self, client, earl_grey):
        product_id = earl_grey.id
        session_id = self._open(client)

        added = client.post(
            f"/api/orders/sessions/{session_id}/items",
            json={"product_id": product_id, "quantity": 1},
            headers=HEADERS_A,
        )
        assert added.status_code == 201
        assert added.get_json()["data"]["unit_price"] == "4.50"

        total = client.get(f"/api/orders/sessions/{session_id}/total", headers=HEADERS_A)
        assert total.status_code == 200
        assert total.get_json()["data"]["total_amount"] == "4.86"

        confirmed = client.post(f"/api/orders/sessions/{session_id}/confirm", json={}, headers=HEADERS_A)
        assert confirmed.status_code == 201
        order = confirmed.get_json()["data"]["transaction"]
        assert order["total_amount"] == "4.86"
        assert order["status"] == "confirmed"

        repeat = client.post(f"/api/orders/sessions/{session_id}/confirm", json={}, headers=HEADERS_A)
        assert repeat.status_code == 200
        assert repeat.get_json()["data"]["already_confirmed"] is True
        assert repeat.get_json()["data"]["transaction"]["id"] == order["id"]

        fetched = client.get(f"/api/orders/{order['id']}", headers=HEADERS_A)
        assert fetched.status_code == 200
        assert len(fetched.get_json()["data"]["lines"]) == 2

        listed = client.get("/api/orders", headers=HEADERS_A)
        assert [o["id"] for o in listed.get_json()["data"]] == [order["id"]]

    def test_order_status_route(self, client, earl_grey):
        product_id = earl_grey.id
        session_id = self._open(client)
        client.post(f"/api/orders/sessions/{session_id}/items", json={"product_id": product_id, "quantity": 2},
                    headers=HEADERS_A)
        order_id = client.post(f"/api/orders/sessions/{session_id}/confirm", headers=HEADERS_A).get_json()["data"]["transaction"]["id"]

        skipped = client.post(f"/api/orders/{order_id}/status", json={"status": "completed"}, headers=HEADERS_A)
        assert skipped.status_code == 409
        assert skipped.get_json()["error_code"] == "invalid_transition"

        moved = client.post(f"/api/orders/{order_id}/status", json={"status": "preparing"}, headers=HEADERS_A)
        assert moved.status_code == 200

        missing = client.post(f"/api/orders/{order_id}/status", json={}, headers=HEADERS_A)
        assert missing.status_code == 400

    def test_invalid_item_is_400(self, client, earl_grey):
        product_id = earl_grey.id
        session_id = self._open(client)
        response = client.post(
            f"/api/orders/sessions/{session_id}/items",
            json={"product_id": product_id, "quantity": 0},
            headers=HEADERS_A,
        )
        assert response.status_code == 400

    def test_other_tenant_session_is_404(self, client, db_session):
        session_id = self._open(client)
        response = client.get(f"/api/orders/sessions/{session_id}", headers=HEADERS_B)
        assert response.status_code == 404

    def test_empty_session_cannot_confirm(self, client, db_session):
        session_id = self._open(client)
        response = client.post(f"/api/orders/sessions/{session_id}/confirm", headers=HEADERS_A)
        assert response.status_code == 400

    def test_abandon_twice_is_409(self, client, db_session):
        session_id = self._open(client)
        assert client.post(f"/api/orders/sessions/{session_id}/abandon", headers=HEADERS_A).status_code == 200
        assert client.post(f"/api/orders/sessions/{session_id}/abandon", headers=HEADERS_A).status_code == 409

    def test_recommendations(self, client, earl_grey, signature_latte):
        earl_grey_id, latte_id = earl_grey.id, signature_latte.id
        response = client.get(f"/api/orders/recommendations?item={earl_grey_id}", headers=HEADERS_A)
        assert response.status_code == 200
        assert [r["product_id"] for r in response.get_json()["data"]] == [latte_id]


class TestPaymentRoutes:
    def _create(self, client, amount="100.00"):
        response = client.post("/api/payments", json={"order_id": "order-1", "amount": amount}, headers=HEADERS_A)
        assert response.status_code == 201
        return response.get_json()["data"]

    def test_create_serializes_money_as_strings(self, client, db_session):
        payment = self._create(client)
        assert payment["amount"] == "100.00"
        assert payment["processing_fee"] == "3.20"
        assert payment["net_amount"] == "96.80"
        assert payment["status"] == "pending"

    def test_create_rejects_bad_amount(self, client, db_session):
        response = client.post("/api/payments", json={"order_id": "order-1", "amount": "0"}, headers=HEADERS_A)
        assert response.status_code == 400

    def test_process_and_refund(self, app, client, db_session, approving_gateway):
        app.extensions["payment_gateway"] = approving_gateway
        payment = self._create(client)

        processed = client.post(
            f"/api/payments/{payment['id']}/process",
            json={"payment_method": {"type": "credit_card", "card_data": {"number": "4242424242424242"}}},
            headers=HEADERS_A,
        )
        assert processed.status_code == 200
        assert processed.get_json()["data"]["payment"]["status"] == "completed"

        refunded = client.post(f"/api/payments/{payment['id']}/refund", json={"reason": "spilled"}, headers=HEADERS_A)
        assert refunded.status_code == 200
        assert refunded.get_json()["data"]["status"] == "refunded"

        fetched = client.get(f"/api/payments/{payment['id']}", headers=HEADERS_A)
        assert fetched.get_json()["data"]["status"] == "refunded"

    def test_process_requires_payment_method(self, client, db_session):
        payment = self._create(client)
        response = client.post(f"/api/payments/{payment['id']}/process", json={}, headers=HEADERS_A)
        assert response.status_code == 400

    def test_gateway_decline_is_402(self, app, client, db_session, declining_gateway):
        app.extensions["payment_gateway"] = declining_gateway
        payment = self._create(client, amount="20.00")

        response = client.post(f"/api/payments/{payment['id']}/process", json={"payment_method": "cash"},
                               headers=HEADERS_A)
        assert response.status_code == 402
        body = response.get_json()
        assert body["error_code"] == "gateway_error"
        assert body["details"]["payment"]["status"] == "failed"
        assert body["details"]["fraud_assessment"]["risk_level"] == "low"

    def test_unknown_payment_is_404(self, client, db_session):
        response = client.get("/api/payments/00000000-0000-0000-0000-000000000000", headers=HEADERS_A)
        assert response.status_code == 404

    def test_refund_pending_is_409(self, client, db_session):
        payment = self._create(client)
        response = client.post(f"/api/payments/{payment['id']}/refund", headers=HEADERS_A)
        assert response.status_code == 409

    def test_cancel_and_status_routes(self, client, db_session):
        first = self._create(client)
        second = self._create(client, amount="5.00")

        assert client.post(f"/api/payments/{first['id']}/cancel", headers=HEADERS_A).status_code == 200
        assert client.post(f"/api/payments/{second['id']}/status", json={}, headers=HEADERS_A).status_code == 400
        moved = client.post(f"/api/payments/{second['id']}/status", json={"status": "authorized"}, headers=HEADERS_A)
        assert moved.get_json()["data"]["previous_status"] == "pending"

    def test_analytics(self, app, client, db_session, approving_gateway):
        app.extensions["payment_gateway"] = approving_gateway
        payment = self._create(client, amount="40.00")
        client.post(f"/api/payments/{payment['id']}/process", json={"payment_method": "cash"}, headers=HEADERS_A)

        response = client.get("/api/payments/analytics?timeframe=week", headers=HEADERS_A)
        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["total_revenue"] == "40.00"
        assert data["success_rate"] == "1.00"

        assert client.get("/api/payments/analytics?timeframe=decade", headers=HEADERS_A).status_code == 400

    def test_analytics_as_of(self, app, client, db_session, approving_gateway):
        app.extensions["payment_gateway"] = approving_gateway
        payment = self._create(client, amount="40.00")
        client.post(f"/api/payments/{payment['id']}/process", json={"payment_method": "cash"}, headers=HEADERS_A)

        past = client.get("/api/payments/analytics?timeframe=day&as_of=2020-01-01T00:00:00Z", headers=HEADERS_A)
        assert past.status_code == 200
        body = past.get_json()["data"]
        assert body["total_transactions"] == 0
        assert body["period_end"] == "2020-01-01T00:00:00Z"

        bad = client.get("/api/payments/analytics?as_of=yesterday", headers=HEADERS_A)
        assert bad.status_code == 400


class TestCliCommands:
    def test_catalog_seed_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        seeded = runner.invoke(args=["catalog", "seed", "--org", ORG_A])
        assert seeded.exit_code == 0
        assert "PASS Created 5 products" in seeded.output

        again = runner.invoke(args=["catalog", "seed", "--org", ORG_A])
        assert "PASS Created 0 products" in again.output

        listed = runner.invoke(args=["catalog", "list", "--org", ORG_A])
        assert "5 products" in listed.output

    def test_payment_commands(self, app, db_session, approving_gateway):
        app.extensions["payment_gateway"] = approving_gateway
        runner = app.test_cli_runner()

        seeded = runner.invoke(args=["payments", "seed-samples", "--org", ORG_A])
        assert seeded.exit_code == 0
        assert seeded.output.count("completed") == 3

        report = runner.invoke(args=["payments", "analytics", "--org", ORG_A, "--timeframe", "week"])
        assert report.exit_code == 0
        assert "total_revenue" in report.output
        assert "58.00" in report.output

    def test_reset_requires_confirmation(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "reset-db"])
        assert result.exit_code == 1
        assert "Refusing" in result.output
