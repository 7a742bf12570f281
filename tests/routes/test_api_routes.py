# ==============================================================================
# tests/routes/test_api_routes.py
# ==============================================================================
from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from fareflow import create_app
from fareflow.config import Settings, ProviderConfig
from fareflow.services.api.flights.base_provider import ProviderTimeoutError
from fareflow.services.api.flights.flight_service import FlightService
from fareflow.services.booking_lifecycle import BookingLifecycle
from fareflow.services.redis_storage_manager import RedisStorageManager
from fareflow.services.webhook_reconciler import WebhookReconciler

from conftest import (
    make_round_trip_payload, make_pricing_payload, make_ticket_issuance_payload,
)

WEBHOOK_TOKEN = "shared-secret"


def booking_body(**overrides):
    body = {
        "solutionId": "SOL-1",
        "passengers": [
            {"firstName": "Wei", "lastName": "Chen", "type": "ADT", "dob": "1990-01-01", "gender": "Male"},
            {"firstName": "Xiaoting", "lastName": "Li", "type": "ADT", "dob": "1991-02-02", "gender": "Female"},
            {"firstName": "Ming", "lastName": "Chen", "type": "CHD", "dob": "2018-03-03", "gender": "Male"},
            {"firstName": "Lan", "lastName": "Chen", "type": "INF", "dob": "2025-04-04", "gender": "Female"},
        ],
        "contactName": "Wei Chen",
        "contactEmail": "wei@example.com",
        "contactPhone": "+254700000000",
    }
    body.update(overrides)
    return body


class TestApiRoutes:

    @pytest.fixture
    def mock_provider(self):
        provider = Mock()
        provider.search_flights.return_value = {"errorCode": "0", "data": make_round_trip_payload()}
        provider.precise_pricing.return_value = {"errorCode": "0", "data": make_pricing_payload()}
        provider.create_booking.return_value = {"errorCode": "0", "data": {"orderNum": "ORD-1001", "pnr": "VPNR1"}}
        provider.order_pricing.return_value = {"errorCode": "0", "data": {}}
        provider.ticket_order.return_value = {"errorCode": "0", "data": {}}
        provider.cancel_booking.return_value = {"errorCode": "0", "data": {}}
        provider.order_detail.return_value = {"errorCode": "0", "data": {"orderNum": "ORD-1001"}}
        return provider

    @pytest.fixture
    def services(self, mock_provider, booking_db):
        settings = Settings(provider=ProviderConfig(partner_id="P", partner_key="K", webhook_token=WEBHOOK_TOKEN))
        return {
            "settings": settings,
            "base_storage_service": booking_db,
            "booking_storage_service": booking_db,
            "cache": RedisStorageManager(),
            "provider": mock_provider,
            "flight_service": FlightService(mock_provider, RedisStorageManager()),
            "booking_lifecycle": BookingLifecycle(mock_provider, booking_db, booking_db),
            "webhook_reconciler": WebhookReconciler(booking_db, booking_db),
        }

    @pytest.fixture
    def client(self, services):
        app = create_app(services)
        app.config["TESTING"] = True
        return app.test_client()

    @pytest.fixture
    def search_body(self):
        departure = date.today() + timedelta(days=30)
        return {"tripType": "RoundTrip", "origin": "NBO", "destination": "DXB",
                "departureDate": departure.isoformat(),
                "returnDate": (departure + timedelta(days=7)).isoformat(),
                "adults": 2, "children": 1}

    @pytest.fixture
    def booked(self, client):
        assert client.post("/flights/precise-pricing", json={"solutionId": "SOL-1"}).status_code == 200
        response = client.post("/flights/bookings", json=booking_body())
        assert response.status_code == 201
        return response.get_json()["data"]

    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}

    # ====================================================================
    # SEARCH & PRICING
    # ====================================================================

    def test_search_returns_offers(self, client, search_body):
        response = client.post("/flights/search", json=search_body)

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data[0]["solutionId"] == "SOL-1"
        assert data[0]["destination"] == "DXB"
        assert data[0]["priceBreakdown"]["grandTotal"] == 1164.85

    def test_search_validation_error(self, client, search_body):
        search_body["origin"] = "NAIROBI"
        del search_body["returnDate"]

        response = client.post("/flights/search", json=search_body)

        assert response.status_code == 422
        assert response.get_json()["success"] is False

    def test_search_provider_error(self, client, mock_provider, search_body):
        mock_provider.search_flights.return_value = {"errorCode": "B035", "errorMsg": "slow down"}

        response = client.post("/flights/search", json=search_body)

        assert response.status_code == 400
        assert response.get_json()["kind"] == "rate_limited"

    def test_search_timeout_is_gateway_timeout(self, client, mock_provider, search_body):
        mock_provider.search_flights.side_effect = ProviderTimeoutError("timed out")

        response = client.post("/flights/search", json=search_body)

        assert response.status_code == 504
        assert response.get_json()["outcome"] == "unknown"

    def test_precise_pricing(self, client):
        response = client.post("/flights/precise-pricing", json={"solutionId": "SOL-1"})

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert data["type"] == "precise_pricing"
        assert data["priceBreakdown"]["grandTotal"] == 1204.85

    def test_precise_pricing_requires_solution(self, client):
        assert client.post("/flights/precise-pricing", json={}).status_code == 422

    # ====================================================================
    # BOOKINGS
    # ====================================================================

    def test_create_booking(self, booked):
        assert booked["order_num"] == "ORD-1001"
        assert booked["status"] == "pending"
        assert booked["lifecycle_state"] == "pending"
        assert booked["total_amount"] == 1204.85
        assert len(booked["passengers"]) == 4
        assert len(booked["segments"]) == 2

    def test_booking_requires_fresh_pricing(self, client, mock_provider):
        response = client.post("/flights/bookings", json=booking_body())

        assert response.status_code == 409
        mock_provider.create_booking.assert_not_called()

    def test_booking_validation_error(self, client):
        response = client.post("/flights/bookings", json=booking_body(contactEmail="not-an-email"))

        assert response.status_code == 422
        assert "contactEmail" in response.get_json()["errors"]

    def test_booking_passenger_mix_mismatch(self, client):
        client.post("/flights/precise-pricing", json={"solutionId": "SOL-1"})
        body = booking_body()
        body["passengers"].pop()

        response = client.post("/flights/bookings", json=body)

        assert response.status_code == 422

    def test_booking_provider_error(self, client, mock_provider):
        client.post("/flights/precise-pricing", json={"solutionId": "SOL-1"})
        mock_provider.create_booking.return_value = {"errorCode": "0307", "errorMsg": "no seats"}

        response = client.post("/flights/bookings", json=booking_body())

        assert response.status_code == 400
        assert response.get_json()["message"] == "Seats are no longer available."

    def test_get_booking(self, client, booked):
        response = client.get("/bookings/ORD-1001")

        assert response.status_code == 200
        assert response.get_json()["data"]["order_num"] == "ORD-1001"

    def test_list_bookings(self, client, booked, booking_db):
        booking_db.upsert_booking(None, "ORD-1002", {"status": "pending"})

        response = client.get("/bookings?perPage=1")

        assert response.status_code == 200
        body = response.get_json()
        assert [b["order_num"] for b in body["data"]] == ["ORD-1002"]
        assert body["page"] == 1
        assert body["perPage"] == 1

        second_page = client.get("/bookings?page=2&perPage=1").get_json()["data"]
        assert [b["order_num"] for b in second_page] == ["ORD-1001"]

    @pytest.mark.parametrize("query", ["page=0", "perPage=0", "perPage=101"])
    def test_list_bookings_rejects_bad_paging(self, client, query):
        assert client.get(f"/bookings?{query}").status_code == 422

    def test_get_unknown_booking(self, client):
        assert client.get("/bookings/ORD-NOPE").status_code == 404
        assert client.get("/bookings/ORD-NOPE/order-detail").status_code == 404

    def test_order_detail(self, client, booked):
        response = client.get("/bookings/ORD-1001/order-detail")

        assert response.status_code == 200
        assert response.get_json()["data"] == {"orderNum": "ORD-1001"}

    def test_ticketing(self, client, booked):
        response = client.post("/bookings/ORD-1001/ticketing", json={})

        assert response.status_code == 200
        assert response.get_json()["data"]["lifecycle_state"] == "ISS_PRC"

    def test_cancel_then_ticket_conflicts(self, client, booked):
        cancelled = client.post("/bookings/ORD-1001/cancel", json={})
        assert cancelled.status_code == 200
        assert cancelled.get_json()["data"]["status"] == "cancelled"

        assert client.post("/bookings/ORD-1001/cancel", json={}).status_code == 409
        assert client.post("/bookings/ORD-1001/ticketing", json={}).status_code == 409

    def test_ticketing_unknown_booking(self, client):
        assert client.post("/bookings/ORD-NOPE/ticketing", json={}).status_code == 404
        assert client.post("/bookings/ORD-NOPE/cancel", json={}).status_code == 404


class TestWebhookRoutes:

    @pytest.fixture
    def mock_reconciler(self, booking_db):
        return Mock(wraps=WebhookReconciler(booking_db, booking_db))

    @pytest.fixture
    def client(self, mock_reconciler):
        settings = Settings(provider=ProviderConfig(partner_id="P", partner_key="K", webhook_token=WEBHOOK_TOKEN))
        app = create_app({"settings": settings, "webhook_reconciler": mock_reconciler})
        app.config["TESTING"] = True
        return app.test_client()

    def _post(self, client, path, payload, token=WEBHOOK_TOKEN):
        headers = {"X-Pkfare-Token": token} if token is not None else {}
        return client.post(f"/pkfare/{path}", json=payload, headers=headers)

    def test_ticket_issuance_is_reconciled(self, client, booking_db):
        response = self._post(client, "ticket-issuance-notify-v2", make_ticket_issuance_payload())

        assert response.status_code == 200
        assert response.get_json() == {"errorCode": 0, "errorMsg": "ok"}
        assert booking_db.state["bookings"]["ORD-1001"].issue_status == "ISSUED"

    @pytest.mark.parametrize("token", [None, "", "wrong-secret"])
    def test_bad_token_is_forbidden(self, client, mock_reconciler, token):
        response = self._post(client, "ticket-issuance-notify-v2", make_ticket_issuance_payload(), token=token)

        assert response.status_code == 403
        mock_reconciler.handle_ticket_issuance.assert_not_called()

    def test_missing_order_number(self, client, mock_reconciler):
        response = self._post(client, "ticket-issuance-notify-v2", {"status": "issued"})

        assert response.status_code == 400
        assert response.get_json()["errorMsg"] == "orderNum missing"
        mock_reconciler.handle_ticket_issuance.assert_not_called()

    @pytest.mark.parametrize("payload", [[{"orderNum": "ORD-1001"}], "ORD-1001", 7])
    def test_non_object_body_is_bad_request(self, client, mock_reconciler, payload):
        response = self._post(client, "ticket-issuance-notify-v2", payload)

        assert response.status_code == 400
        mock_reconciler.handle_ticket_issuance.assert_not_called()

    def test_other_notification_with_array_body_is_acknowledged(self, client):
        assert self._post(client, "refund-result", [1, 2]).status_code == 200

    def test_reconciliation_failure_asks_for_redelivery(self, client, mock_reconciler):
        mock_reconciler.handle_ticket_issuance.side_effect = RuntimeError("database down")

        response = self._post(client, "ticket-issuance-notify-v2", make_ticket_issuance_payload())

        assert response.status_code == 500

    @pytest.mark.parametrize("path", ["refund-result", "reimbursed-result", "schedule-change"])
    def test_other_notifications_are_acknowledged(self, client, path):
        response = self._post(client, path, {"orderNum": "ORD-1001"})

        assert response.status_code == 200
        assert response.get_json()["errorCode"] == 0

    @pytest.mark.parametrize("path", ["refund-result", "schedule-change"])
    def test_other_notifications_require_token(self, client, path):
        assert self._post(client, path, {"orderNum": "ORD-1001"}, token="nope").status_code == 403
