import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .itinerary_builder import (
    SegmentIndexTable, index_segments, index_flights, build_legs, is_round_trip,
    map_baggage, map_fare_rules, passenger_counts, build_price_breakdown,
    marketing_carriers, last_ticketing_time,
)
from .response_models import Offer, Flight

logger = logging.getLogger(__name__)


def normalize_search(payload: Any, now: Optional[datetime] = None) -> List[Offer]:
    """
    Flatten a shopping response ``data`` object into UI-ready offers.

    Solutions whose journeys do not resolve to segments are skipped. A missing
    or malformed ``solutions`` list yields no offers.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("solutions"), list):
        return []

    now = now or datetime.now(timezone.utc)
    segments = index_segments(payload.get("segments"))
    flights = index_flights(payload.get("flights"))
    shopping_key = payload.get("shoppingKey")

    offers = []
    skipped = 0
    for solution in payload["solutions"]:
        offer = build_offer(solution, flights, segments, now, shopping_key=shopping_key)
        if offer is None:
            skipped += 1
            continue
        offers.append(offer)

    if skipped:
        logger.debug("Skipped unresolvable solutions", extra={
            'skipped': skipped,
            'returned': len(offers)
        })
    return offers


def build_offer(solution: Any, flights: Dict[str, Flight], segments: Dict[str, Dict[str, Any]],
                now: datetime, shopping_key: Optional[str] = None) -> Optional[Offer]:
    if not isinstance(solution, dict):
        return None

    legs = build_legs(solution.get("journeys"), flights, segments)
    if not legs:
        return None

    trip_segments = [s for leg in legs for s in leg.segments]
    table = SegmentIndexTable(trip_segments)
    counts = passenger_counts(solution)
    flight_ids = [fid for leg in legs for fid in leg.flight_ids]
    ticketing_deadline = last_ticketing_time(flight_ids, flights)

    return Offer(
        solution_id=solution.get("solutionId"),
        solution_key=solution.get("solutionKey"),
        shopping_key=shopping_key,
        legs=legs,
        passenger_counts=counts,
        price_breakdown=build_price_breakdown(solution, counts),
        plating_carrier=solution.get("platingCarrier"),
        fare_type=solution.get("fareType"),
        marketing_carriers=marketing_carriers(trip_segments),
        operating_carriers=[s.operating_airline for s in trip_segments],
        baggage=map_baggage(solution.get("baggageMap"), table),
        fare_rules=map_fare_rules(solution.get("miniRuleMap"), table),
        last_ticketing_time=ticketing_deadline,
        expired=bool(ticketing_deadline and ticketing_deadline < now),
        is_vi="VI" in str(solution.get("category") or ""),
        is_round_trip=is_round_trip(legs),
    )
