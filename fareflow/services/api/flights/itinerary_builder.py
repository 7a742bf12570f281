"""
Helpers shared by the search and precise-pricing normalizers.

PKFare payloads are index-correlated: a solution lists flight ids per journey,
flights list segment ids, and baggage / fare-rule blocks refer to segments by
their 1-based position in the solution's concatenated segment list.
"""
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .response_models import (
    Segment, Flight, Leg, BaggageAllowance, MiniRule, FareRuleBlock,
    PassengerCounts, PassengerTypePrice, PriceBreakdown,
    FEE_FIELDS, money, to_int,
)

JOURNEY_KEY_PATTERN = re.compile(r"^journey_(\d+)$")

# (passenger type, count field, fare field, tax field)
PASSENGER_PRICE_FIELDS = (
    ("ADT", "adults", "adtFare", "adtTax"),
    ("CHD", "children", "chdFare", "chdTax"),
    ("INF", "infants", "infFare", "infTax"),
)

DEFAULT_CURRENCY = "USD"


class SegmentIndexTable:
    """1-based position -> segmentId for one solution's trip segments"""

    def __init__(self, segments: List[Segment]):
        self._ids = {i + 1: s.segment_id for i, s in enumerate(segments)}

    def resolve(self, index: Any) -> Optional[str]:
        return self._ids.get(to_int(index))

    def resolve_all(self, indices: Optional[List[Any]]) -> List[str]:
        resolved = (self.resolve(i) for i in (indices or []))
        return [sid for sid in resolved if sid]

    def segment_ids(self) -> List[str]:
        return [self._ids[i] for i in sorted(self._ids)]

    def __len__(self) -> int:
        return len(self._ids)


def index_segments(raw_segments: Any) -> Dict[str, Dict[str, Any]]:
    if not isinstance(raw_segments, list):
        return {}
    return {s["segmentId"]: s for s in raw_segments if isinstance(s, dict) and s.get("segmentId")}


def index_flights(raw_flights: Any) -> Dict[str, Flight]:
    if not isinstance(raw_flights, list):
        return {}
    flights = {}
    for raw in raw_flights:
        if isinstance(raw, dict) and raw.get("flightId"):
            flight = Flight.from_provider(raw)
            flights[flight.flight_id] = flight
    return flights


def ordered_journeys(journeys: Any) -> List[Tuple[str, List[str]]]:
    """journey_<n> entries sorted by n numerically; other keys are ignored"""
    if not isinstance(journeys, dict):
        return []
    keyed = []
    for key, flight_ids in journeys.items():
        match = JOURNEY_KEY_PATTERN.match(str(key))
        if match:
            keyed.append((int(match.group(1)), key, list(flight_ids or [])))
    keyed.sort(key=lambda item: item[0])
    return [(key, flight_ids) for _, key, flight_ids in keyed]


def build_leg(journey_key: str, flight_ids: List[str], flights: Dict[str, Flight],
              segments: Dict[str, Dict[str, Any]]) -> Optional[Leg]:
    """Expand a journey's flights into segments; None when nothing resolves"""
    leg_segments = []
    for flight_id in flight_ids:
        flight = flights.get(flight_id)
        if not flight:
            continue
        for segment_id in flight.segment_ids:
            raw = segments.get(segment_id)
            if raw is not None:
                leg_segments.append(Segment.from_provider(raw, flight_id=flight_id))

    if not leg_segments:
        return None

    first_flight = flights.get(flight_ids[0]) if flight_ids else None
    return Leg(
        journey_key=journey_key,
        flight_ids=list(flight_ids),
        segments=leg_segments,
        journey_time=first_flight.journey_time if first_flight else None,
        transfer_count=first_flight.transfer_count if first_flight else None,
    )


def build_legs(journeys: Any, flights: Dict[str, Flight],
               segments: Dict[str, Dict[str, Any]]) -> Optional[List[Leg]]:
    """All legs in journey order, or None when any journey has no segments"""
    legs = []
    for journey_key, flight_ids in ordered_journeys(journeys):
        leg = build_leg(journey_key, flight_ids, flights, segments)
        if leg is None:
            return None
        legs.append(leg)
    return legs or None


def is_round_trip(legs: List[Leg]) -> bool:
    if len(legs) != 2:
        return False
    outbound, inbound = legs
    return outbound.destination == inbound.origin and outbound.origin == inbound.destination


def map_baggage(baggage_map: Any, table: SegmentIndexTable) -> Dict[str, BaggageAllowance]:
    allowances: Dict[str, BaggageAllowance] = {}
    if not isinstance(baggage_map, dict):
        return allowances

    for ptc, entries in baggage_map.items():
        allowance = BaggageAllowance()
        for entry in entries or []:
            for segment_id in table.resolve_all(entry.get("segmentIndexList")):
                allowance.checked_by_segment[segment_id] = {
                    "amount": entry.get("baggageAmount"),
                    "weight": entry.get("baggageWeight"),
                }
                allowance.carry_on_by_segment[segment_id] = {
                    "amount": entry.get("carryOnAmount"),
                    "weight": entry.get("carryOnWeight"),
                    "size": entry.get("carryOnSize"),
                }
        allowances[ptc] = allowance
    return allowances


def map_fare_rules(mini_rule_map: Any, table: SegmentIndexTable) -> Dict[str, List[FareRuleBlock]]:
    rules: Dict[str, List[FareRuleBlock]] = {}
    if not isinstance(mini_rule_map, dict):
        return rules

    for ptc, blocks in mini_rule_map.items():
        rules[ptc] = [
            FareRuleBlock(
                segment_ids=table.resolve_all(block.get("segmentIndex")),
                mini_rules=[MiniRule.from_provider(r) for r in block.get("miniRules") or []],
            )
            for block in blocks or []
        ]
    return rules


def passenger_counts(solution: Dict[str, Any]) -> PassengerCounts:
    adults = to_int(solution.get("adults"))
    return PassengerCounts(
        adults=1 if adults is None else max(adults, 0),
        children=max(to_int(solution.get("children")) or 0, 0),
        infants=max(to_int(solution.get("infants")) or 0, 0),
    )


def build_price_breakdown(solution: Dict[str, Any], counts: Optional[PassengerCounts] = None) -> PriceBreakdown:
    counts = counts or passenger_counts(solution)
    per_type = {
        ptc: PassengerTypePrice(
            passenger_type=ptc,
            count=counts.for_type(ptc),
            fare=money(solution.get(fare_field)),
            taxes=money(solution.get(tax_field)),
        )
        for ptc, _, fare_field, tax_field in PASSENGER_PRICE_FIELDS
    }
    fees = {name: money(solution.get(name)) for name in FEE_FIELDS}
    return PriceBreakdown(
        currency=solution.get("currency") or DEFAULT_CURRENCY,
        per_passenger_type=per_type,
        fees=fees,
    )


def marketing_carriers(segments: List[Segment]) -> List[str]:
    seen: List[str] = []
    for segment in segments:
        if segment.airline and segment.airline not in seen:
            seen.append(segment.airline)
    return seen


def last_ticketing_time(flight_ids: List[str], flights: Dict[str, Flight]) -> Optional[datetime]:
    times = [flights[fid].last_ticketing_time for fid in flight_ids
             if fid in flights and flights[fid].last_ticketing_time]
    return min(times) if times else None
