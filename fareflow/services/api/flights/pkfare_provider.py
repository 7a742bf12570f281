import hashlib
import logging
from typing import Any, Dict, List, Optional

import requests

from fareflow.config import ProviderConfig
from .base_provider import FlightProvider, ProviderTimeoutError, ProviderTransportError

logger = logging.getLogger(__name__)

SEARCH_PATH = "/json/shoppingV8"
PRECISE_PRICING_PATH = "/json/precisePricing_V10"
BOOKING_PATH = "/json/preciseBooking_V6"
ORDER_PRICING_PATH = "/json/orderPricing_V7"
TICKETING_PATH = "/json/ticketing"
CANCEL_PATH = "/json/cancel"
ORDER_DETAIL_PATH = "/json/orderDetail"


class PKfareProvider(FlightProvider):
    """PKFare JSON API over HTTPS, signed with md5(partnerId + partnerKey)"""

    def __init__(self, config: ProviderConfig, session: Optional[requests.Session] = None):
        if not config.partner_id or not config.partner_key:
            logger.error("PKFare partner credentials are not configured")
        self.config = config
        self.session = session or requests.Session()
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
        }

    # ====================================================================
    # REQUEST ENVELOPE
    # ====================================================================

    def _authentication(self) -> Dict[str, str]:
        sign = hashlib.md5(f"{self.config.partner_id}{self.config.partner_key}".encode("utf-8")).hexdigest()
        return {"partnerId": self.config.partner_id, "sign": sign}

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        payload = {"authentication": self._authentication(), **body}
        url = f"{self.config.base_url}{path}"
        try:
            response = self.session.post(url, json=payload, headers=self.headers,
                                         timeout=self.config.timeout_seconds)
            response.raise_for_status()
            envelope = response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f"PKFare request timed out: {path}", extra={
                'endpoint': path,
                'timeout_seconds': self.config.timeout_seconds
            })
            raise ProviderTimeoutError(f"PKFare request to {path} timed out") from e
        except requests.exceptions.RequestException as e:
            status_code = e.response.status_code if getattr(e, "response", None) is not None else None
            logger.error(f"PKFare request failed: {path}", extra={
                'endpoint': path,
                'status_code': status_code,
                'error': str(e)
            })
            raise ProviderTransportError(f"PKFare request to {path} failed: {e}") from e
        except ValueError as e:
            logger.error(f"PKFare returned a non-JSON body: {path}", extra={'endpoint': path})
            raise ProviderTransportError(f"PKFare returned an invalid body for {path}") from e

        if not isinstance(envelope, dict):
            raise ProviderTransportError(f"PKFare returned an unexpected body for {path}")

        logger.debug("PKFare response received", extra={
            'endpoint': path,
            'error_code': envelope.get("errorCode")
        })
        return envelope

    # ====================================================================
    # CALLS
    # ====================================================================

    def search_flights(self, origin: str, destination: str, departure_date: str,
                       return_date: Optional[str] = None, adults: int = 1, children: int = 0,
                       infants: int = 0, cabin_class: str = "Economy", nonstop: int = 0,
                       airline: str = "", solutions: int = 0) -> Dict[str, Any]:
        legs = [{
            "cabinClass": cabin_class,
            "departureDate": departure_date,
            "origin": origin.upper(),
            "destination": destination.upper(),
            "airline": airline,
        }]
        if return_date:
            legs.append({
                "cabinClass": cabin_class,
                "departureDate": return_date,
                "origin": destination.upper(),
                "destination": origin.upper(),
                "airline": airline,
            })

        return self._post(SEARCH_PATH, {"search": {
            "adults": adults,
            "children": children,
            "infants": infants,
            "nonstop": nonstop,
            "airline": airline,
            "solutions": solutions,
            "tag": "",
            "returnTagPrice": "Y",
            "searchAirLegs": legs,
        }})

    def precise_pricing(self, solution_id: str, solution_key: Optional[str], journeys: Dict[str, List[str]],
                        adults: int = 1, children: int = 0, infants: int = 0,
                        cabin: str = "Economy", tag: str = "") -> Dict[str, Any]:
        return self._post(PRECISE_PRICING_PATH, {"pricing": {
            "solutionId": solution_id,
            "solutionKey": solution_key,
            "journeys": journeys,
            "adults": adults,
            "children": children,
            "infants": infants,
            "cabin": cabin,
            "tag": tag,
        }})

    def create_booking(self, solution: Dict[str, Any], passengers: List[Dict[str, Any]],
                       contact: Dict[str, Any]) -> Dict[str, Any]:
        return self._post(BOOKING_PATH, {"booking": {
            "passengers": passengers,
            "solution": solution,
            "contact": contact,
        }})

    def order_pricing(self, order_num: str) -> Dict[str, Any]:
        return self._post(ORDER_PRICING_PATH, {"orderPricing": {"orderNum": order_num}})

    def ticket_order(self, order_num: str, pnr: Optional[str], contact: Dict[str, Any]) -> Dict[str, Any]:
        return self._post(TICKETING_PATH, {"ticketing": {
            "orderNum": order_num,
            "PNR": pnr,
            "name": contact.get("name"),
            "email": contact.get("email"),
            "telNum": contact.get("telNum") or contact.get("phone"),
        }})

    def cancel_booking(self, order_num: str, virtual_pnr: Optional[str]) -> Dict[str, Any]:
        return self._post(CANCEL_PATH, {"cancel": {"orderNum": order_num, "virtualPnr": virtual_pnr}})

    def order_detail(self, order_num: str) -> Dict[str, Any]:
        return self._post(ORDER_DETAIL_PATH, {"data": {"orderNum": order_num}})
