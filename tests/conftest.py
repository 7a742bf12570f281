# ==============================================================================
# tests/conftest.py
# ==============================================================================
import copy
from contextlib import contextmanager
from dataclasses import replace, fields
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from fareflow.storage.services.booking_storage_service import (
    Booking, BookingPassenger, BookingSegment, BookingSegmentTicket, BookingGraph,
    BOOKING_COLUMNS, PASSENGER_COLUMNS, SEGMENT_COLUMNS,
)
from fareflow.utils.request_validators import BookingRequest

# 2026-01-01T00:00:00Z and friends, in provider epoch milliseconds
JAN_1_2026_MS = 1767225600000
HOUR_MS = 3600 * 1000


# ====================================================================
# PROVIDER PAYLOAD BUILDERS
# ====================================================================

def make_segment(segment_id: str, departure: str, arrival: str, departs_ms: int,
                 airline: str = "KQ", flight_num: str = "310", **extra) -> Dict[str, Any]:
    segment = {
        "segmentId": segment_id,
        "departure": departure,
        "arrival": arrival,
        "departureDate": departs_ms,
        "arrivalDate": departs_ms + 5 * HOUR_MS,
        "airline": airline,
        "flightNum": flight_num,
        "opFltAirline": airline,
        "bookingCode": "Y",
        "cabinClass": "Economy",
        "departureTerminal": "1",
        "arrivalTerminal": "3",
        "equipment": "789",
        "availabilityCount": 9,
    }
    segment.update(extra)
    return segment


def make_solution(solution_id: str = "SOL-1", journeys: Optional[Dict[str, List[str]]] = None,
                  **extra) -> Dict[str, Any]:
    solution = {
        "solutionId": solution_id,
        "solutionKey": f"{solution_id}-KEY",
        "platingCarrier": "KQ",
        "fareType": "PUBLIC",
        "currency": "USD",
        "adults": 2,
        "children": 1,
        "infants": 0,
        "adtFare": 300.10,
        "adtTax": 120.45,
        "chdFare": 225.00,
        "chdTax": 90.25,
        "tktFee": 5,
        "platformServiceFee": 1.5,
        "merchantFee": 0,
        "qCharge": 2,
        "journeys": journeys if journeys is not None else {"journey_0": ["F1"], "journey_1": ["F2"]},
        "baggageMap": {
            "ADT": [{
                "segmentIndexList": [1, 2],
                "baggageAmount": "2PC",
                "baggageWeight": "23KG",
                "carryOnAmount": "1PC",
                "carryOnWeight": "7KG",
                "carryOnSize": "55x40x20",
            }],
            "CHD": [{
                "segmentIndexList": [2, 7],
                "baggageAmount": "1PC",
                "baggageWeight": "23KG",
            }],
        },
        "miniRuleMap": {
            "ADT": [{
                "segmentIndex": [1, 2],
                "miniRules": [
                    {"penaltyType": 0, "isPermited": 1, "amount": 50},
                    {"penaltyType": 1, "isPermited": 1, "amount": 30},
                    {"penaltyType": 2, "isPermited": 0},
                    {"penaltyType": 3, "isPermited": 1},
                    {"penaltyType": 8, "isPermited": 0},
                ],
            }],
        },
        "category": "NORMAL",
    }
    solution.update(extra)
    return solution


def make_round_trip_payload(last_tkt_ms: int = JAN_1_2026_MS) -> Dict[str, Any]:
    """NBO -> DXB outbound, DXB -> NBO return"""
    return {
        "shoppingKey": "SHOP-KEY",
        "segments": [
            make_segment("S1", "NBO", "DXB", JAN_1_2026_MS + 24 * HOUR_MS, flight_num="310"),
            make_segment("S2", "DXB", "NBO", JAN_1_2026_MS + 8 * 24 * HOUR_MS, flight_num="311"),
        ],
        "flights": [
            {"flightId": "F1", "segmengtIds": ["S1"], "journeyTime": 300, "transferCount": 0,
             "lastTktTime": last_tkt_ms + HOUR_MS},
            {"flightId": "F2", "segmengtIds": ["S2"], "journeyTime": 310, "transferCount": 0,
             "lastTktTime": last_tkt_ms},
        ],
        "solutions": [make_solution()],
    }


def make_pricing_payload(**solution_extra) -> Dict[str, Any]:
    search = make_round_trip_payload()
    flights = [
        {"flightId": f["flightId"], "segmentIds": f["segmengtIds"],
         "journeyTime": f["journeyTime"], "transferCount": f["transferCount"],
         "lastTktTime": f["lastTktTime"]}
        for f in search["flights"]
    ]
    return {
        "solution": make_solution(bookingWithoutCard=1, baggages=["2PC", "2PC"],
                                  infants=1, infFare=30.00, infTax=10.00, **solution_extra),
        "flights": flights,
        "segments": search["segments"],
        "ancillaryAvailability": {"paidBag": True, "paidSeat": False},
    }


def make_ticket_issuance_payload(order_num: str = "ORD-1001", **extra) -> Dict[str, Any]:
    payload = {
        "orderNum": order_num,
        "status": "issued",
        "informType": "Ticket_Issued",
        "airPnr": "15CUCZ|25CUCZ",
        "pnr": "GDS1|GDS2",
        "currency": "USD",
        "paymentGate": "PREPAY",
        "permitVoid": 1,
        "lastVoidTime": "2026-01-02 23:59",
        "voidServiceFee": {"amount": 15.5, "currency": "USD"},
        "serialNum": "PREPAY_20260101_ORD-1001",
        "merchantOrder": "PREPAY_20260101_ORD-1001",
        "passengers": [
            {"passengerIndex": 1, "firstName": "WEI", "lastName": "CHEN", "psgType": "ADT",
             "sex": "M", "birthday": "1990-01-01", "ticketNum": "1T9L02"},
            {"passengerIndex": 2, "firstName": "XIAOTING", "lastName": "LI", "psgType": "ADT",
             "sex": "F", "birthday": "1991-02-02", "ticketNum": "2T9L02"},
        ],
        "pnrList": [
            {"segmentNo": 1, "airPnr": "15CUCZ", "departure": "NBO", "arrival": "DXB", "flightNum": "310",
             "ticketNums": [{"passengerIndex": 1, "ticketNum": "1T9L02"},
                            {"passengerIndex": 2, "ticketNum": "2T9L02"}]},
            {"segmentNo": 2, "airPnr": "25CUCZ", "departure": "DXB", "arrival": "NBO", "flightNum": "311",
             "ticketNums": [{"passengerIndex": 1, "ticketNum": "1T9L02"},
                            {"passengerIndex": 2, "ticketNum": "2T9L02"},
                            {"passengerIndex": 9, "ticketNum": "9T9L02"}]},
        ],
    }
    payload.update(extra)
    return payload


def make_booking_request(**overrides) -> BookingRequest:
    """Two adults, one child and one infant, matching make_pricing_payload()"""
    expiry = (date.today() + timedelta(days=365)).isoformat()
    passengers = [
        {"firstName": "Wei", "lastName": "Chen", "type": "ADT", "dob": "1990-01-01", "gender": "Male",
         "passportNumber": "E1234567", "passportExpiry": expiry, "nationality": "cn"},
        {"firstName": "Xiaoting", "lastName": "Li", "type": "ADT", "dob": "1991-02-02", "gender": "Female"},
        {"firstName": "Ming", "lastName": "Chen", "type": "CHD", "dob": "2018-03-03", "gender": "Male"},
        {"firstName": "Lan", "lastName": "Chen", "type": "INF", "dob": "2025-04-04", "gender": "Female"},
    ]
    body = {
        "solutionId": "SOL-1",
        "passengers": passengers,
        "contactName": "Wei Chen",
        "contactEmail": "wei@example.com",
        "contactPhone": "+254700000000",
        "agentFee": 12.5,
    }
    body.update(overrides)
    return BookingRequest.model_validate(body)


def booking_success(order_num: str = "ORD-1001", **data) -> Dict[str, Any]:
    return {"errorCode": "0", "errorMsg": "ok", "data": {"orderNum": order_num, "pnr": "VPNR1", **data}}


# ====================================================================
# IN-MEMORY BOOKING DATABASE
# ====================================================================

class InMemoryBookingDatabase:
    """
    Stands in for both StorageService and BookingStorageService.

    Rows are keyed by the same natural keys as the SQL schema and upserts keep
    existing values where the new value is None. A transaction restores the
    previous state when its block raises.
    """

    def __init__(self):
        self.state = {
            "bookings": {},     # order_num -> Booking
            "passengers": {},   # (booking_id, passenger_index) -> BookingPassenger
            "segments": {},     # (booking_id, segment_no) -> BookingSegment
            "tickets": {},      # (segment_id, passenger_id) -> BookingSegmentTicket
            "next_id": 1,
            "clock": 0,
        }
        self.is_available = True
        self.transactions = 0
        self.rollbacks = 0
        self.locked_reads: List[str] = []

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy(self.state)
        self.transactions += 1
        try:
            yield object()
        except Exception:
            self.state = snapshot
            self.rollbacks += 1
            raise

    # --- helpers ---
    def _next_id(self) -> int:
        value = self.state["next_id"]
        self.state["next_id"] += 1
        return value

    def _tick(self) -> datetime:
        self.state["clock"] += 1
        return datetime(2026, 1, 1, tzinfo=timezone.utc).replace(microsecond=self.state["clock"])

    @staticmethod
    def _merge(row, values: Dict[str, Any]):
        return replace(row, **{k: v for k, v in values.items() if v is not None})

    # --- bookings ---
    def upsert_booking(self, cur, order_num: str, values: Dict[str, Any]) -> int:
        unknown = set(values) - set(BOOKING_COLUMNS)
        assert not unknown, unknown
        existing = self.state["bookings"].get(order_num)
        now = self._tick()
        if existing:
            booking = self._merge(existing, values)
            booking.updated_at = now
        else:
            booking = self._merge(Booking(id=self._next_id(), order_num=order_num, created_at=now), values)
            booking.updated_at = now
        self.state["bookings"][order_num] = booking
        return booking.id

    def update_booking(self, cur, booking_id: int, **values) -> None:
        for order_num, booking in self.state["bookings"].items():
            if booking.id == booking_id:
                updated = replace(booking, **values)
                updated.updated_at = self._tick()
                self.state["bookings"][order_num] = updated
                return

    def get_booking_by_order_num(self, cur, order_num: str, for_update: bool = False) -> Optional[Booking]:
        if for_update:
            self.locked_reads.append(order_num)
        booking = self.state["bookings"].get(order_num)
        return copy.deepcopy(booking) if booking else None

    # --- passengers ---
    def upsert_passenger(self, cur, booking_id: int, passenger_index: int, values: Dict[str, Any]) -> int:
        assert not set(values) - set(PASSENGER_COLUMNS)
        key = (booking_id, passenger_index)
        existing = self.state["passengers"].get(key)
        if not existing:
            existing = BookingPassenger(id=self._next_id(), booking_id=booking_id, passenger_index=passenger_index)
        row = self._merge(existing, values)
        self.state["passengers"][key] = row
        return row.id

    def passenger_index_map(self, cur, booking_id: int) -> Dict[int, int]:
        return {idx: p.id for (bid, idx), p in self.state["passengers"].items() if bid == booking_id}

    # --- segments & tickets ---
    def upsert_segment(self, cur, booking_id: int, segment_no: int, values: Dict[str, Any]) -> int:
        assert not set(values) - set(SEGMENT_COLUMNS)
        key = (booking_id, segment_no)
        existing = self.state["segments"].get(key)
        if not existing:
            existing = BookingSegment(id=self._next_id(), booking_id=booking_id, segment_no=segment_no)
        row = self._merge(existing, values)
        self.state["segments"][key] = row
        return row.id

    def upsert_segment_ticket(self, cur, booking_segment_id: int, booking_passenger_id: int,
                              ticket_num: Optional[str]) -> int:
        key = (booking_segment_id, booking_passenger_id)
        existing = self.state["tickets"].get(key)
        if not existing:
            existing = BookingSegmentTicket(id=self._next_id(), booking_segment_id=booking_segment_id,
                                            booking_passenger_id=booking_passenger_id)
        row = self._merge(existing, {"ticket_num": ticket_num})
        self.state["tickets"][key] = row
        return row.id

    # --- reads ---
    def load_graph(self, cur, order_num: str) -> Optional[BookingGraph]:
        booking = self.state["bookings"].get(order_num)
        if not booking:
            return None
        passengers = sorted(
            (copy.deepcopy(p) for (bid, _), p in self.state["passengers"].items() if bid == booking.id),
            key=lambda p: p.passenger_index)
        segments = []
        for (bid, _), segment in sorted(self.state["segments"].items()):
            if bid != booking.id:
                continue
            segment = copy.deepcopy(segment)
            segment.tickets = sorted(
                (copy.deepcopy(t) for (sid, _), t in self.state["tickets"].items() if sid == segment.id),
                key=lambda t: t.booking_passenger_id)
            segments.append(segment)
        return BookingGraph(booking=copy.deepcopy(booking), passengers=passengers, segments=segments)

    def get_booking_graph(self, order_num: str) -> Optional[BookingGraph]:
        return self.load_graph(None, order_num)

    def list_bookings(self, limit: int = 10, offset: int = 0) -> List[Booking]:
        newest_first = sorted(self.state["bookings"].values(), key=lambda b: (b.created_at, b.id), reverse=True)
        return [copy.deepcopy(b) for b in newest_first[offset:offset + limit]]

    # --- assertions ---
    def business_rows(self) -> Dict[str, Any]:
        """All rows with the delivery timestamps stripped"""
        bookings = {}
        for order_num, booking in self.state["bookings"].items():
            data = {f.name: getattr(booking, f.name) for f in fields(booking)}
            data.pop("updated_at")
            bookings[order_num] = data
        return {
            "bookings": bookings,
            "passengers": copy.deepcopy(self.state["passengers"]),
            "segments": copy.deepcopy(self.state["segments"]),
            "tickets": copy.deepcopy(self.state["tickets"]),
        }


@pytest.fixture
def booking_db():
    return InMemoryBookingDatabase()


@pytest.fixture
def fixed_now():
    return datetime(2025, 12, 1, tzinfo=timezone.utc)


@pytest.fixture
def round_trip_payload():
    return make_round_trip_payload()


@pytest.fixture
def pricing_payload():
    return make_pricing_payload()
