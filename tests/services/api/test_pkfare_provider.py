# ==============================================================================
# tests/services/api/test_pkfare_provider.py
# ==============================================================================
import hashlib
from unittest.mock import Mock

import pytest
import requests

from fareflow.config import ProviderConfig
from fareflow.services.api.flights.base_provider import (
    ProviderTimeoutError, ProviderTransportError, ProviderUnavailableError,
)
from fareflow.services.api.flights.pkfare_provider import (
    PKfareProvider, SEARCH_PATH, CANCEL_PATH, TICKETING_PATH,
)


class TestPKfareProvider:

    @pytest.fixture
    def config(self):
        return ProviderConfig(partner_id="PARTNER", partner_key="SECRET",
                              base_url="https://pkfare.test", timeout_seconds=12.0)

    @pytest.fixture
    def mock_session(self):
        session = Mock()
        response = Mock()
        response.raise_for_status.return_value = None
        response.json.return_value = {"errorCode": "0", "errorMsg": "ok", "data": {}}
        session.post.return_value = response
        return session

    @pytest.fixture
    def provider(self, config, mock_session):
        return PKfareProvider(config, session=mock_session)

    def _sent(self, mock_session):
        args, kwargs = mock_session.post.call_args
        return args[0], kwargs["json"], kwargs

    def test_requests_are_signed(self, provider, mock_session):
        provider.order_detail("ORD-1")

        url, body, kwargs = self._sent(mock_session)
        assert url == "https://pkfare.test/json/orderDetail"
        assert body["authentication"] == {
            "partnerId": "PARTNER",
            "sign": hashlib.md5(b"PARTNERSECRET").hexdigest(),
        }
        assert body["data"] == {"orderNum": "ORD-1"}
        assert kwargs["timeout"] == 12.0

    def test_round_trip_search_adds_reversed_leg(self, provider, mock_session):
        provider.search_flights("nbo", "dxb", "2026-02-01", return_date="2026-02-08", adults=2)

        url, body, _ = self._sent(mock_session)
        assert url.endswith(SEARCH_PATH)
        legs = body["search"]["searchAirLegs"]
        assert [(leg["origin"], leg["destination"], leg["departureDate"]) for leg in legs] == [
            ("NBO", "DXB", "2026-02-01"),
            ("DXB", "NBO", "2026-02-08"),
        ]
        assert body["search"]["adults"] == 2
        assert body["search"]["returnTagPrice"] == "Y"

    def test_one_way_search_has_single_leg(self, provider, mock_session):
        provider.search_flights("NBO", "DXB", "2026-02-01")

        _, body, _ = self._sent(mock_session)
        assert len(body["search"]["searchAirLegs"]) == 1

    def test_ticketing_body(self, provider, mock_session):
        provider.ticket_order("ORD-1", "PNR1", {"name": "Jane", "email": "j@x.io", "telNum": "+254700"})

        url, body, _ = self._sent(mock_session)
        assert url.endswith(TICKETING_PATH)
        assert body["ticketing"] == {"orderNum": "ORD-1", "PNR": "PNR1", "name": "Jane",
                                     "email": "j@x.io", "telNum": "+254700"}

    def test_cancel_body(self, provider, mock_session):
        provider.cancel_booking("ORD-1", "VPNR")

        url, body, _ = self._sent(mock_session)
        assert url.endswith(CANCEL_PATH)
        assert body["cancel"] == {"orderNum": "ORD-1", "virtualPnr": "VPNR"}

    def test_envelope_is_returned_as_is(self, provider, mock_session):
        mock_session.post.return_value.json.return_value = {"errorCode": "B005", "errorMsg": "expired"}

        assert provider.order_pricing("ORD-1") == {"errorCode": "B005", "errorMsg": "expired"}

    # ====================================================================
    # TRANSPORT FAILURES
    # ====================================================================

    def test_timeout_raises_timeout_error(self, provider, mock_session):
        mock_session.post.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(ProviderTimeoutError):
            provider.create_booking({}, [], {})

    def test_connection_error_raises_transport_error(self, provider, mock_session):
        mock_session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ProviderTransportError) as exc_info:
            provider.cancel_booking("ORD-1", None)
        assert isinstance(exc_info.value, ProviderUnavailableError)

    def test_http_error_raises_transport_error(self, provider, mock_session):
        error_response = Mock(status_code=502)
        mock_session.post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError(
            "bad gateway", response=error_response)

        with pytest.raises(ProviderTransportError):
            provider.order_detail("ORD-1")

    def test_non_json_body_raises_transport_error(self, provider, mock_session):
        mock_session.post.return_value.json.side_effect = ValueError("no json")

        with pytest.raises(ProviderTransportError):
            provider.order_detail("ORD-1")

    def test_non_object_body_raises_transport_error(self, provider, mock_session):
        mock_session.post.return_value.json.return_value = ["not", "an", "object"]

        with pytest.raises(ProviderTransportError):
            provider.order_detail("ORD-1")
