from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class ProviderUnavailableError(Exception):
    """The provider call did not produce a readable answer; its outcome is unknown"""


class ProviderTimeoutError(ProviderUnavailableError):
    pass


class ProviderTransportError(ProviderUnavailableError):
    pass


class FlightProvider(ABC):
    """
    Abstract gateway to a flight aggregator.

    Every method returns the provider's decoded response envelope
    (``errorCode``, ``errorMsg``, ``data``) whether or not the call succeeded
    at the business level, and raises ProviderUnavailableError when no
    envelope could be obtained.
    """

    @abstractmethod
    def search_flights(self, origin: str, destination: str, departure_date: str,
                       return_date: Optional[str] = None, adults: int = 1, children: int = 0,
                       infants: int = 0, cabin_class: str = "Economy", nonstop: int = 0,
                       airline: str = "", solutions: int = 0) -> Dict[str, Any]:
        """
        Search fares for a one-way or round trip.

        Args:
            origin: IATA code of the departure airport/city
            destination: IATA code of the arrival airport/city
            departure_date: Outbound date in YYYY-MM-DD format
            return_date: Return date in YYYY-MM-DD format (adds the reversed leg)
        """
        pass

    @abstractmethod
    def precise_pricing(self, solution_id: str, solution_key: Optional[str], journeys: Dict[str, List[str]],
                        adults: int = 1, children: int = 0, infants: int = 0,
                        cabin: str = "Economy", tag: str = "") -> Dict[str, Any]:
        """Re-price one search solution; the result is the authoritative booking price"""
        pass

    @abstractmethod
    def create_booking(self, solution: Dict[str, Any], passengers: List[Dict[str, Any]],
                       contact: Dict[str, Any]) -> Dict[str, Any]:
        """Reserve the priced solution for the given passengers"""
        pass

    @abstractmethod
    def order_pricing(self, order_num: str) -> Dict[str, Any]:
        """Revalidate the price of an existing order before ticketing"""
        pass

    @abstractmethod
    def ticket_order(self, order_num: str, pnr: Optional[str], contact: Dict[str, Any]) -> Dict[str, Any]:
        """Request ticket issuance; final issuance is reported by webhook"""
        pass

    @abstractmethod
    def cancel_booking(self, order_num: str, virtual_pnr: Optional[str]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def order_detail(self, order_num: str) -> Dict[str, Any]:
        pass
