import logging
from typing import Any, Dict, List, Optional

from fareflow.storage.db_service import StorageService
from fareflow.storage.services.booking_storage_service import BookingStorageService, BookingGraph
from fareflow.services.api.flights.response_models import to_int

logger = logging.getLogger(__name__)


class WebhookPayloadError(ValueError):
    pass


class WebhookReconciler:
    """
    Applies PKFare ticket-issuance notifications (TicketIssuanceNotify_V2).

    The notification may arrive before the synchronous booking flow has stored
    the order, after it, or more than once. Every write is an upsert on the
    row's natural key inside a single transaction, so replaying a notification
    leaves the same rows behind. ``status`` is never written here; the
    provider's issuance state goes to ``issue_status``.
    """

    def __init__(self, storage: StorageService, bookings: BookingStorageService):
        self.storage = storage
        self.bookings = bookings

    def handle_ticket_issuance(self, payload: Dict[str, Any]) -> BookingGraph:
        if not isinstance(payload, dict):
            raise WebhookPayloadError("payload must be a JSON object")
        order_num = payload.get("orderNum")
        if not order_num:
            raise WebhookPayloadError("orderNum missing")
        order_num = str(order_num)

        logger.info("Applying ticket issuance notification", extra={
            'order_num': order_num,
            'status': payload.get("status"),
            'inform_type': payload.get("informType")
        })

        with self.storage.transaction() as cur:
            booking_id = self.bookings.upsert_booking(cur, order_num, self._booking_fields(payload))

            for passenger in _objects(payload.get("passengers")):
                index = to_int(passenger.get("passengerIndex"))
                if not index:
                    continue
                self.bookings.upsert_passenger(cur, booking_id, index, self._passenger_fields(passenger))

            pax_index_map = self.bookings.passenger_index_map(cur, booking_id)

            skipped_tickets = 0
            for segment in _objects(payload.get("pnrList")):
                segment_no = to_int(segment.get("segmentNo"))
                if not segment_no:
                    continue
                segment_id = self.bookings.upsert_segment(cur, booking_id, segment_no, self._segment_fields(segment))

                for ticket in _objects(segment.get("ticketNums")):
                    passenger_id = pax_index_map.get(to_int(ticket.get("passengerIndex")))
                    if passenger_id is None:
                        skipped_tickets += 1
                        continue
                    self.bookings.upsert_segment_ticket(cur, segment_id, passenger_id, ticket.get("ticketNum"))

            graph = self.bookings.load_graph(cur, order_num)

        if skipped_tickets:
            logger.warning(f"Skipped {skipped_tickets} ticket numbers with unknown passenger index",
                           extra={'order_num': order_num})
        return graph

    @staticmethod
    def _booking_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
        void_fee = payload.get("voidServiceFee") or {}
        serial_num = payload.get("serialNum")
        if serial_num is None:
            serial_num = payload.get("serialNumber")
        return {
            "currency": payload.get("currency"),
            "air_pnr": payload.get("airPnr"),
            "pnr": payload.get("pnr"),
            "merchant_order": payload.get("merchantOrder"),
            "buyer_order": payload.get("buyerOrder"),
            "serial_num": serial_num,
            "payment_gate": payload.get("paymentGate"),
            "permit_void": to_int(payload.get("permitVoid")) or 0,
            "last_void_time": _str_or_none(payload.get("lastVoidTime")),
            "void_service_fee": void_fee.get("amount") if isinstance(void_fee, dict) else None,
            "void_currency": void_fee.get("currency") if isinstance(void_fee, dict) else None,
            "issue_status": str(payload.get("status") or "ISSUED").upper(),
            "inform_type": payload.get("informType"),
            "reject_reason": payload.get("rejectReason"),
            "issue_remark": payload.get("remark"),
            "ticket_issued_payload": payload,
        }

    @staticmethod
    def _passenger_fields(passenger: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "psg_type": passenger.get("psgType"),
            "sex": passenger.get("sex"),
            "birthday": passenger.get("birthday"),
            "first_name": passenger.get("firstName"),
            "last_name": passenger.get("lastName"),
            "nationality": passenger.get("nationality"),
            "card_type": passenger.get("cardType"),
            "card_num": passenger.get("cardNum"),
            "card_expired_date": passenger.get("cardExpiredDate"),
            "associated_passenger_index": to_int(passenger.get("associatedPassengerIndex")),
            "ticket_num": passenger.get("ticketNum"),
        }

    @staticmethod
    def _segment_fields(segment: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "departure": segment.get("departure"),
            "arrival": segment.get("arrival"),
            "flight_num": segment.get("flightNum"),
            "air_pnr": segment.get("airPnr"),
            "pnr": segment.get("pnr"),
            "cabin_class": segment.get("cabinClass"),
            "booking_code": segment.get("bookingCode"),
        }


def _objects(value: Any) -> List[Dict[str, Any]]:
    """The dict entries of a list field; anything else in it is ignored"""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)
