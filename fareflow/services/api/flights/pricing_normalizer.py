from datetime import datetime, timezone
from typing import Any, Optional

from .offer_normalizer import build_offer
from .itinerary_builder import index_segments, index_flights
from .response_models import PricedOffer, AncillaryAvailability, to_int

NO_SEGMENTS_ERROR = "No segments found in precise pricing payload."


def normalize_precise_pricing(payload: Any, now: Optional[datetime] = None) -> Optional[PricedOffer]:
    """
    Normalize a precise-pricing ``data`` object into the single offer it prices.

    Uses the same journey ordering, index correlation and price aggregation as
    search results. Returns None when the payload resolves to no segments.
    """
    if not isinstance(payload, dict):
        return None

    solution = payload.get("solution")
    if not isinstance(solution, dict):
        return None

    offer = build_offer(
        solution,
        index_flights(payload.get("flights")),
        index_segments(payload.get("segments")),
        now or datetime.now(timezone.utc),
        shopping_key=payload.get("shoppingKey"),
    )
    if offer is None:
        return None

    ancillaries = payload.get("ancillaryAvailability") or {}
    return PricedOffer(
        offer=offer,
        ancillary_availability=AncillaryAvailability(
            paid_bag=bool(ancillaries.get("paidBag", False)),
            paid_seat=bool(ancillaries.get("paidSeat", False)),
        ),
        booking_without_card=bool(to_int(solution.get("bookingWithoutCard"))),
        raw_baggages=solution.get("baggages"),
    )
