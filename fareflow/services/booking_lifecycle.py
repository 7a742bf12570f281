import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from fareflow.services.api.flights.base_provider import FlightProvider, ProviderUnavailableError
from fareflow.services.api.flights.error_codes import (
    ProviderEndpoint, ProviderError, ProviderErrorKind,
    is_success, error_from_response, unknown_outcome_error,
)
from fareflow.services.api.flights.itinerary_builder import build_price_breakdown
from fareflow.services.api.flights.response_models import PricedOffer, PriceBreakdown, Segment
from fareflow.storage.db_service import StorageService
from fareflow.storage.services.booking_storage_service import (
    BookingStorageService, BookingGraph, Booking, IN_FLIGHT_ISSUE_STATUSES,
)
from fareflow.utils.request_validators import BookingRequest, TicketingRequest

logger = logging.getLogger(__name__)

# Provider order statuses meaning payment went through and ticketing must not be resent
ISSUED_ORDER_STATUSES = ('ISSUED', 'TICKETED')
PAID_ORDER_STATUSES = ('PAID', 'ISS_PRC') + ISSUED_ORDER_STATUSES


class BookingValidationError(ValueError):
    """The booking request does not fit the priced offer"""


class BookingNotFoundError(LookupError):
    pass


class BookingStateError(Exception):
    """The booking's current state does not allow the requested transition"""

    def __init__(self, order_num: str, state: str, action: str):
        self.order_num = order_num
        self.state = state
        self.action = action
        super().__init__(f"Booking {order_num} cannot be {action} in its current status ({state}).")


class _ProviderRejected(Exception):
    """Raised inside a transaction so the block rolls back on a provider business error"""

    def __init__(self, error: ProviderError):
        self.error = error
        super().__init__(error.message)


@dataclass
class BookingResult:
    success: bool
    booking: Optional[BookingGraph] = None
    error: Optional[ProviderError] = None
    provider_data: Optional[Dict[str, Any]] = None


def create_error_booking_result(error: ProviderError) -> BookingResult:
    return BookingResult(success=False, error=error)


class BookingLifecycle:
    """
    Drives a booking from a priced offer to ticketing or cancellation.

    State lives in two columns: ``status`` is owned by this class
    (pending -> to_be_paid -> cancelled) and ``issue_status`` is owned by the
    provider's ticket-issuance webhook, except for the ISS_PRC transition made
    here once ticketing has been requested. Every provider-backed step runs in
    its own transaction and either commits completely or leaves nothing behind.
    A provider timeout leaves local state untouched and reports an unknown
    outcome; retrying with the same order number is safe.
    """

    def __init__(self, provider: FlightProvider, storage: StorageService,
                 bookings: BookingStorageService,
                 clock: Optional[Callable[[], datetime]] = None):
        self.provider = provider
        self.storage = storage
        self.bookings = bookings
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ====================================================================
    # CREATE
    # ====================================================================

    def create_booking(self, priced_offer: PricedOffer, request: BookingRequest) -> BookingResult:
        offer = priced_offer.offer
        self._check_passenger_counts(priced_offer, request)

        passengers = [p.to_provider(i + 1) for i, p in enumerate(request.passengers)]
        logger.info("Creating booking", extra={
            'solution_id': offer.solution_id,
            'passengers': len(passengers)
        })

        try:
            with self.storage.transaction() as cur:
                response = self.provider.create_booking(
                    solution=self._booking_solution(priced_offer),
                    passengers=passengers,
                    contact=request.contact.to_provider(),
                )
                if not is_success(response):
                    raise _ProviderRejected(error_from_response(ProviderEndpoint.BOOKING, response))

                data = response.get("data") or {}
                order_num = data.get("orderNum")
                if not order_num:
                    raise _ProviderRejected(ProviderError(
                        code=str(response.get("errorCode")),
                        kind=ProviderErrorKind.INVALID_RESPONSE,
                        message="Booking response did not include an order number.",
                        endpoint=ProviderEndpoint.BOOKING,
                    ))

                breakdown = self._booked_price(priced_offer, data.get("solution"))
                booking_id = self.bookings.upsert_booking(
                    cur, order_num, self._booking_row(priced_offer, request, data, breakdown))

                for index, passenger in enumerate(request.passengers, start=1):
                    self.bookings.upsert_passenger(cur, booking_id, index, passenger.to_row())

                for segment_no, segment in enumerate(offer.segments, start=1):
                    self.bookings.upsert_segment(cur, booking_id, segment_no, self._segment_row(segment, data))

                graph = self.bookings.load_graph(cur, order_num)

        except _ProviderRejected as e:
            logger.warning(f"PKFare booking failed: {e.error.code} - {e.error.message}")
            return create_error_booking_result(e.error)
        except ProviderUnavailableError as e:
            logger.error(f"PKFare booking outcome unknown: {e}")
            return create_error_booking_result(unknown_outcome_error(ProviderEndpoint.BOOKING, str(e)))

        logger.info(f"Booking stored successfully: {order_num}")
        return BookingResult(success=True, booking=graph, provider_data=data)

    # ====================================================================
    # TICKETING
    # ====================================================================

    def request_ticketing(self, order_num: str, request: Optional[TicketingRequest] = None) -> BookingResult:
        """Revalidate the order price, then ask the provider to issue tickets"""
        request = request or TicketingRequest()

        try:
            with self.storage.transaction() as cur:
                booking = self.bookings.get_booking_by_order_num(cur, order_num, for_update=True)
                if not booking:
                    raise BookingNotFoundError(order_num)

                if booking.issue_status in IN_FLIGHT_ISSUE_STATUSES:
                    logger.info(f"Ticketing already requested for {order_num}, skipping provider call",
                                extra={'issue_status': booking.issue_status})
                    return BookingResult(success=True, booking=self.bookings.load_graph(cur, order_num))

                if not booking.is_ticketable:
                    raise BookingStateError(order_num, booking.lifecycle_state, "ticketed")

                # A timed-out earlier attempt leaves no local trace, so ask the provider first
                provider_status = self._provider_order_status(order_num)
                if provider_status in PAID_ORDER_STATUSES:
                    logger.info(f"Order {order_num} already paid at the provider, not resending ticketing",
                                extra={'provider_status': provider_status})
                    return self._mark_ticketing_requested(cur, booking, provider_status)

                pricing = self.provider.order_pricing(order_num)
                if not is_success(pricing):
                    error = error_from_response(ProviderEndpoint.ORDER_PRICING, pricing)
                    if error.kind is ProviderErrorKind.ALREADY_PAID:
                        return self._mark_ticketing_requested(cur, booking)
                    raise _ProviderRejected(error)

                pricing_data = pricing.get("data") or {}
                pnr = request.pnr or pricing_data.get("pnr") or booking.pnr
                update = {"status": "to_be_paid", "pnr": pnr}
                if pricing_data.get("solution"):
                    update["total_amount"] = build_price_breakdown(pricing_data["solution"]).total
                self.bookings.update_booking(cur, booking.id, **update)

                ticketing = self.provider.ticket_order(order_num, pnr, self._ticketing_contact(booking, request))
                if not is_success(ticketing):
                    error = error_from_response(ProviderEndpoint.TICKETING, ticketing)
                    if error.kind is ProviderErrorKind.ALREADY_PAID:
                        return self._mark_ticketing_requested(cur, booking)
                    raise _ProviderRejected(error)

                self.bookings.update_booking(cur, booking.id, issue_status="ISS_PRC")
                graph = self.bookings.load_graph(cur, order_num)

        except _ProviderRejected as e:
            logger.warning(f"PKFare ticketing failed for {order_num}: {e.error.code} - {e.error.message}")
            return create_error_booking_result(e.error)
        except ProviderUnavailableError as e:
            logger.error(f"PKFare ticketing outcome unknown for {order_num}: {e}")
            return create_error_booking_result(unknown_outcome_error(ProviderEndpoint.TICKETING, str(e)))

        logger.info(f"Ticketing requested for {order_num}")
        return BookingResult(success=True, booking=graph)

    # ====================================================================
    # CANCELLATION
    # ====================================================================

    def cancel_booking(self, order_num: str, pnr: Optional[str] = None) -> BookingResult:
        # The guard and the provider call are not atomic; a concurrent duplicate
        # cancel is absorbed by accepting "already cancelled" from the provider.
        with self.storage.transaction() as cur:
            booking = self.bookings.get_booking_by_order_num(cur, order_num)
        if not booking:
            raise BookingNotFoundError(order_num)
        if not booking.is_cancellable:
            raise BookingStateError(order_num, booking.lifecycle_state, "cancelled")

        try:
            response = self.provider.cancel_booking(order_num, pnr or booking.pnr)
        except ProviderUnavailableError as e:
            logger.error(f"PKFare cancellation outcome unknown for {order_num}: {e}")
            return create_error_booking_result(unknown_outcome_error(ProviderEndpoint.CANCEL, str(e)))

        if not is_success(response):
            error = error_from_response(ProviderEndpoint.CANCEL, response)
            if error.kind is not ProviderErrorKind.ORDER_ALREADY_CANCELLED:
                logger.warning(f"PKFare cancellation failed for {order_num}: {error.code} - {error.message}")
                return create_error_booking_result(error)
            logger.info(f"Order {order_num} was already cancelled at the provider")

        with self.storage.transaction() as cur:
            self.bookings.update_booking(cur, booking.id, status="cancelled", cancelled_at=self.clock())
            graph = self.bookings.load_graph(cur, order_num)

        logger.info(f"Booking cancelled: {order_num}")
        return BookingResult(success=True, booking=graph, provider_data=response.get("data"))

    # ====================================================================
    # READS
    # ====================================================================

    def get_booking(self, order_num: str) -> Optional[BookingGraph]:
        return self.bookings.get_booking_graph(order_num)

    def list_bookings(self, page: int = 1, per_page: int = 10) -> List[Booking]:
        return self.bookings.list_bookings(limit=per_page, offset=(page - 1) * per_page)

    def get_order_detail(self, order_num: str) -> BookingResult:
        """Poll the provider for the order's current state"""
        graph = self.bookings.get_booking_graph(order_num)
        if not graph:
            raise BookingNotFoundError(order_num)

        try:
            response = self.provider.order_detail(order_num)
        except ProviderUnavailableError as e:
            return create_error_booking_result(unknown_outcome_error(ProviderEndpoint.ORDER_DETAIL, str(e)))

        if not is_success(response):
            return create_error_booking_result(error_from_response(ProviderEndpoint.ORDER_DETAIL, response))
        return BookingResult(success=True, booking=graph, provider_data=response.get("data"))

    # ====================================================================
    # HELPER METHODS
    # ====================================================================

    def _provider_order_status(self, order_num: str) -> Optional[str]:
        detail = self.provider.order_detail(order_num)
        if not is_success(detail):
            raise _ProviderRejected(error_from_response(ProviderEndpoint.ORDER_DETAIL, detail))
        data = detail.get("data") or {}
        status = data.get("orderStatus") or data.get("status")
        return str(status).upper() if status else None

    def _mark_ticketing_requested(self, cur, booking: Booking,
                                  provider_status: Optional[str] = None) -> BookingResult:
        issue_status = "ISSUED" if provider_status in ISSUED_ORDER_STATUSES else "ISS_PRC"
        self.bookings.update_booking(cur, booking.id, status="to_be_paid", issue_status=issue_status)
        return BookingResult(success=True, booking=self.bookings.load_graph(cur, booking.order_num))

    @staticmethod
    def _check_passenger_counts(priced_offer: PricedOffer, request: BookingRequest):
        requested = request.passenger_counts()
        counts = priced_offer.offer.passenger_counts
        expected = {"ADT": counts.adults, "CHD": counts.children, "INF": counts.infants}
        if requested != expected:
            raise BookingValidationError(
                f"Passenger types {requested} do not match the priced offer {expected}.")

    @staticmethod
    def _booking_solution(priced_offer: PricedOffer) -> Dict[str, Any]:
        offer = priced_offer.offer
        breakdown = offer.price_breakdown
        solution: Dict[str, Any] = {
            "solutionId": offer.solution_id,
            "solutionKey": offer.solution_key,
            "platingCarrier": offer.plating_carrier,
            "currency": breakdown.currency,
            "adults": offer.passenger_counts.adults,
            "children": offer.passenger_counts.children,
            "infants": offer.passenger_counts.infants,
            "journeys": {},
        }
        for ptc, prefix in (("ADT", "adt"), ("CHD", "chd"), ("INF", "inf")):
            price = breakdown.per_passenger_type[ptc]
            solution[f"{prefix}Fare"] = float(price.fare)
            solution[f"{prefix}Tax"] = float(price.taxes)
        for name, amount in breakdown.fees.items():
            solution[name] = float(amount)
        for leg in offer.legs:
            solution["journeys"][leg.journey_key] = [_booking_segment(s) for s in leg.segments]
        return solution

    @staticmethod
    def _booked_price(priced_offer: PricedOffer, response_solution: Any) -> PriceBreakdown:
        if isinstance(response_solution, dict) and any(
                k in response_solution for k in ("adtFare", "adtTax", "chdFare", "infFare")):
            return build_price_breakdown(response_solution, priced_offer.offer.passenger_counts)
        return priced_offer.offer.price_breakdown

    def _booking_row(self, priced_offer: PricedOffer, request: BookingRequest,
                     data: Dict[str, Any], breakdown: PriceBreakdown) -> Dict[str, Any]:
        offer = priced_offer.offer
        solution = data.get("solution") or {}
        prices = breakdown.per_passenger_type
        return {
            "pnr": data.get("pnr"),
            "solution_id": solution.get("solutionId") or offer.solution_id,
            "fare_type": solution.get("fareType") or offer.fare_type,
            "plating_carrier": solution.get("platingCarrier") or offer.plating_carrier,
            "currency": breakdown.currency,
            "adt_fare": prices["ADT"].fare,
            "adt_tax": prices["ADT"].taxes,
            "chd_fare": prices["CHD"].fare,
            "chd_tax": prices["CHD"].taxes,
            "inf_fare": prices["INF"].fare,
            "inf_tax": prices["INF"].taxes,
            "adults": offer.passenger_counts.adults,
            "children": offer.passenger_counts.children,
            "infants": offer.passenger_counts.infants,
            "fees_total": breakdown.fees_total,
            "agent_fee": Decimal(str(request.agent_fee)).quantize(Decimal("0.01")),
            "total_amount": breakdown.total,
            "contact_name": request.contact_name,
            "contact_email": request.contact_email,
            "contact_phone": request.contact_phone,
            "status": "pending",
            "payment_status": "unpaid",
            "offer_snapshot": priced_offer.to_dict(),
            "booking_date": self.clock(),
        }

    @staticmethod
    def _segment_row(segment: Segment, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "segment_id": segment.segment_id,
            "airline": segment.airline,
            "equipment": segment.equipment,
            "departure_terminal": segment.departure_terminal,
            "arrival_terminal": segment.arrival_terminal,
            "departure_date": segment.departure_time,
            "arrival_date": segment.arrival_time,
            "departure": segment.departure,
            "arrival": segment.arrival,
            "flight_num": segment.flight_num,
            "pnr": data.get("pnr"),
            "cabin_class": segment.cabin_class,
            "booking_code": segment.booking_code,
        }

    @staticmethod
    def _ticketing_contact(booking: Booking, request: TicketingRequest) -> Dict[str, Optional[str]]:
        return {
            "name": request.contact_name or booking.contact_name,
            "email": request.contact_email or booking.contact_email,
            "telNum": request.contact_phone or booking.contact_phone,
        }


def _booking_segment(segment: Segment) -> Dict[str, Any]:
    """Segment as the booking endpoint expects it: dates and times as separate strings"""
    def date_part(value: Optional[datetime]) -> Optional[str]:
        return value.strftime("%Y-%m-%d") if value else None

    def time_part(value: Optional[datetime]) -> Optional[str]:
        return value.strftime("%H:%M") if value else None

    return {
        "airline": segment.airline,
        "flightNum": segment.flight_num,
        "cabinClass": segment.cabin_class,
        "bookingCode": segment.booking_code,
        "departure": segment.departure,
        "arrival": segment.arrival,
        "departureDate": date_part(segment.departure_time),
        "departureTime": time_part(segment.departure_time),
        "arrivalDate": date_part(segment.arrival_time),
        "arrivalTime": time_part(segment.arrival_time),
    }
