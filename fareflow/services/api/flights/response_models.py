from dataclasses import dataclass, field
from typing import List, Optional, Any, Dict
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum

from .error_codes import ProviderError


# --- Enums for Type Safety & Clarity ---
class PassengerType(Enum):
    ADULT = "ADT"
    CHILD = "CHD"
    INFANT = "INF"

class PenaltyType(Enum):
    REFUND = 0
    CHANGE = 1
    NO_SHOW = 2
    REISSUE = 3

PENALTY_LABELS = {
    PenaltyType.REFUND.value: "Refund",
    PenaltyType.CHANGE.value: "Change",
    PenaltyType.NO_SHOW.value: "No-show",
    PenaltyType.REISSUE.value: "Reissue / Reroute",
}
DEFAULT_PENALTY_LABEL = "Penalty"

# Fee fields carried on a solution, in display order
FEE_FIELDS = ("tktFee", "platformServiceFee", "merchantFee", "qCharge")

CENT = Decimal("0.01")


# --- Value helpers ---
def money(value: Any) -> Decimal:
    """Parse a provider amount into a Decimal rounded to cents (invalid -> 0.00)"""
    if value is None or value == "":
        return Decimal("0.00")
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return Decimal("0.00")


def parse_provider_time(value: Any) -> Optional[datetime]:
    """Provider timestamps are epoch milliseconds; ISO strings are accepted too"""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# --- Provider entities ---
@dataclass
class Segment:
    """A single flown segment, tagged with the flight that owns it"""
    segment_id: str
    flight_id: Optional[str] = None
    departure: Optional[str] = None
    arrival: Optional[str] = None
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    airline: Optional[str] = None
    flight_num: Optional[str] = None
    operating_airline: Optional[str] = None
    booking_code: Optional[str] = None
    cabin_class: Optional[str] = None
    departure_terminal: Optional[str] = None
    arrival_terminal: Optional[str] = None
    equipment: Optional[str] = None
    availability_count: int = 0

    @classmethod
    def from_provider(cls, data: Dict[str, Any], flight_id: Optional[str] = None) -> "Segment":
        return cls(
            segment_id=data.get("segmentId"),
            flight_id=flight_id,
            departure=data.get("departure"),
            arrival=data.get("arrival"),
            departure_time=parse_provider_time(data.get("departureDate")),
            arrival_time=parse_provider_time(data.get("arrivalDate")),
            airline=data.get("airline"),
            flight_num=data.get("flightNum"),
            operating_airline=data.get("opFltAirline"),
            booking_code=data.get("bookingCode"),
            cabin_class=data.get("cabinClass"),
            departure_terminal=data.get("departureTerminal"),
            arrival_terminal=data.get("arrivalTerminal"),
            equipment=data.get("equipment"),
            availability_count=to_int(data.get("availabilityCount")) or 0,
        )

    @property
    def flight_number(self) -> Optional[str]:
        if not self.flight_num:
            return None
        return f"{self.airline or ''}{self.flight_num}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segmentId": self.segment_id,
            "flightId": self.flight_id,
            "departure": self.departure,
            "arrival": self.arrival,
            "departureTime": _iso(self.departure_time),
            "arrivalTime": _iso(self.arrival_time),
            "airline": self.airline,
            "flightNum": self.flight_num,
            "flightNumber": self.flight_number,
            "operatingAirline": self.operating_airline,
            "bookingCode": self.booking_code,
            "cabinClass": self.cabin_class,
            "departureTerminal": self.departure_terminal,
            "arrivalTerminal": self.arrival_terminal,
            "equipment": self.equipment,
            "availabilityCount": self.availability_count,
        }


@dataclass
class Flight:
    """A provider flight: an ordered group of segments"""
    flight_id: str
    segment_ids: List[str] = field(default_factory=list)
    journey_time: Optional[int] = None
    transfer_count: Optional[int] = None
    last_ticketing_time: Optional[datetime] = None

    @classmethod
    def from_provider(cls, data: Dict[str, Any]) -> "Flight":
        # Search payloads spell the key "segmengtIds"; pricing payloads use "segmentIds"
        segment_ids = data.get("segmentIds")
        if segment_ids is None:
            segment_ids = data.get("segmengtIds")
        return cls(
            flight_id=data.get("flightId"),
            segment_ids=list(segment_ids or []),
            journey_time=to_int(data.get("journeyTime")),
            transfer_count=to_int(data.get("transferCount")),
            last_ticketing_time=parse_provider_time(data.get("lastTktTime")),
        )


@dataclass
class Leg:
    """One journey of a solution (outbound, return, ...)"""
    journey_key: str
    flight_ids: List[str]
    segments: List[Segment]
    journey_time: Optional[int] = None
    transfer_count: Optional[int] = None

    @property
    def origin(self) -> Optional[str]:
        return self.segments[0].departure

    @property
    def destination(self) -> Optional[str]:
        return self.segments[-1].arrival

    @property
    def departure_time(self) -> Optional[datetime]:
        return self.segments[0].departure_time

    @property
    def arrival_time(self) -> Optional[datetime]:
        return self.segments[-1].arrival_time

    @property
    def stops(self) -> int:
        return max(len(self.segments) - 1, 0)

    def to_dict(self) -> Dict[str, Any]:
        first, last = self.segments[0], self.segments[-1]
        return {
            "journeyKey": self.journey_key,
            "flightIds": list(self.flight_ids),
            "origin": self.origin,
            "destination": self.destination,
            "departureTime": _iso(self.departure_time),
            "arrivalTime": _iso(self.arrival_time),
            "journeyTime": self.journey_time,
            "transferCount": self.transfer_count,
            "stops": self.stops,
            "terminals": {"from": first.departure_terminal, "to": last.arrival_terminal},
            "equipment": first.equipment,
            "cabin": first.cabin_class,
            "bookingCode": first.booking_code,
            "availabilityCount": first.availability_count,
            "segments": [s.to_dict() for s in self.segments],
        }


@dataclass
class BaggageAllowance:
    """Checked and carry-on allowance per segmentId for one passenger type"""
    checked_by_segment: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    carry_on_by_segment: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checkedBySegment": dict(self.checked_by_segment),
            "carryOnBySegment": dict(self.carry_on_by_segment),
        }


@dataclass
class MiniRule:
    penalty_type: Optional[int]
    label: str
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_provider(cls, data: Dict[str, Any]) -> "MiniRule":
        penalty_type = to_int(data.get("penaltyType"))
        return cls(
            penalty_type=penalty_type,
            label=PENALTY_LABELS.get(penalty_type, DEFAULT_PENALTY_LABEL),
            details=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.details)
        data["label"] = self.label
        return data


@dataclass
class FareRuleBlock:
    segment_ids: List[str]
    mini_rules: List[MiniRule]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segmentIds": list(self.segment_ids),
            "miniRules": [r.to_dict() for r in self.mini_rules],
        }


@dataclass
class PassengerCounts:
    adults: int = 1
    children: int = 0
    infants: int = 0

    @property
    def total(self) -> int:
        return self.adults + self.children + self.infants

    def for_type(self, passenger_type: str) -> int:
        return {"ADT": self.adults, "CHD": self.children, "INF": self.infants}.get(passenger_type, 0)

    def to_dict(self) -> Dict[str, int]:
        return {"adults": self.adults, "children": self.children,
                "infants": self.infants, "total": self.total}


@dataclass
class PassengerTypePrice:
    passenger_type: str
    count: int
    fare: Decimal
    taxes: Decimal

    @property
    def per_pax(self) -> Decimal:
        return max(Decimal("0.00"), self.fare + self.taxes)

    @property
    def subtotal(self) -> Decimal:
        return (self.per_pax * max(self.count, 0)).quantize(CENT)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "fare": float(self.fare),
            "taxes": float(self.taxes),
            "perPax": float(self.per_pax),
            "total": float(self.subtotal),
        }


@dataclass
class PriceBreakdown:
    """Per passenger type fares plus solution-level fees, in the solution's currency"""
    currency: str
    per_passenger_type: Dict[str, PassengerTypePrice]
    fees: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def fees_total(self) -> Decimal:
        return sum(self.fees.values(), Decimal("0.00"))

    @property
    def total(self) -> Decimal:
        fares = sum((p.subtotal for p in self.per_passenger_type.values()), Decimal("0.00"))
        return (fares + self.fees_total).quantize(CENT)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"currency": self.currency}
        for ptc, price in self.per_passenger_type.items():
            if price.count > 0:
                data[ptc] = price.to_dict()
        data["fees"] = {name: float(amount) for name, amount in self.fees.items()}
        data["feesTotal"] = float(self.fees_total)
        data["grandTotal"] = float(self.total)
        return data


@dataclass
class Offer:
    """A bookable itinerary flattened from one provider solution"""
    solution_id: Optional[str]
    solution_key: Optional[str]
    legs: List[Leg]
    passenger_counts: PassengerCounts
    price_breakdown: PriceBreakdown
    shopping_key: Optional[str] = None
    plating_carrier: Optional[str] = None
    fare_type: Optional[str] = None
    marketing_carriers: List[str] = field(default_factory=list)
    operating_carriers: List[Optional[str]] = field(default_factory=list)
    baggage: Dict[str, BaggageAllowance] = field(default_factory=dict)
    fare_rules: Dict[str, List[FareRuleBlock]] = field(default_factory=dict)
    last_ticketing_time: Optional[datetime] = None
    expired: bool = False
    is_vi: bool = False
    is_round_trip: bool = False

    @property
    def segments(self) -> List[Segment]:
        return [s for leg in self.legs for s in leg.segments]

    @property
    def flight_ids(self) -> List[str]:
        return [fid for leg in self.legs for fid in leg.flight_ids]

    @property
    def origin(self) -> Optional[str]:
        return self.legs[0].origin

    @property
    def destination(self) -> Optional[str]:
        # Round trips report the outbound destination
        if self.is_round_trip:
            return self.legs[0].destination
        return self.legs[-1].destination

    @property
    def journeys(self) -> Dict[str, List[str]]:
        return {leg.journey_key: list(leg.flight_ids) for leg in self.legs}

    def to_dict(self) -> Dict[str, Any]:
        first_leg = self.legs[0]
        first_segment = first_leg.segments[0]
        return {
            "solutionId": self.solution_id,
            "solutionKey": self.solution_key,
            "shoppingKey": self.shopping_key,
            "platingCarrier": self.plating_carrier,
            "fareType": self.fare_type,
            "isVI": self.is_vi,
            "marketingCarriers": list(self.marketing_carriers),
            "operatingCarriers": list(self.operating_carriers),
            "origin": self.origin,
            "destination": self.destination,
            "departureTime": _iso(first_leg.departure_time),
            "arrivalTime": _iso(self.legs[-1].arrival_time),
            "stops": first_leg.stops,
            "cabin": first_segment.cabin_class,
            "bookingCode": first_segment.booking_code,
            "flightNumber": first_segment.flight_number,
            "flightIds": self.flight_ids,
            "journeys": self.journeys,
            "legs": [leg.to_dict() for leg in self.legs],
            "passengerCounts": self.passenger_counts.to_dict(),
            "priceBreakdown": self.price_breakdown.to_dict(),
            "baggage": {ptc: b.to_dict() for ptc, b in self.baggage.items()},
            "fareRules": {ptc: [blk.to_dict() for blk in blocks] for ptc, blocks in self.fare_rules.items()},
            "lastTicketingTime": _iso(self.last_ticketing_time),
            "expired": self.expired,
        }


@dataclass
class AncillaryAvailability:
    paid_bag: bool = False
    paid_seat: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {"paidBag": self.paid_bag, "paidSeat": self.paid_seat}


@dataclass
class PricedOffer:
    """The authoritative, bookable price for one offer"""
    offer: Offer
    ancillary_availability: AncillaryAvailability = field(default_factory=AncillaryAvailability)
    booking_without_card: bool = False
    raw_baggages: Optional[List[Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.offer.to_dict()
        data["type"] = "precise_pricing"
        data["bookingWithoutCard"] = self.booking_without_card
        data["ancillaryAvailability"] = self.ancillary_availability.to_dict()
        data["rawBaggages"] = self.raw_baggages
        return data


# --- Service results ---
@dataclass
class SearchResult:
    success: bool
    offers: List[Offer] = field(default_factory=list)
    error: Optional[ProviderError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": [o.to_dict() for o in self.offers],
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class PricingResult:
    success: bool
    priced_offer: Optional[PricedOffer] = None
    error: Optional[ProviderError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.priced_offer.to_dict() if self.priced_offer else None,
            "error": self.error.to_dict() if self.error else None,
        }


def create_error_search_result(error: ProviderError) -> SearchResult:
    return SearchResult(success=False, error=error)


def create_error_pricing_result(error: ProviderError) -> PricingResult:
    return PricingResult(success=False, error=error)
