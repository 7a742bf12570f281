"""
PKFare error codes.

The provider answers every call with an ``errorCode`` ("0" on success) and an
``errorMsg``. The same code can mean different things on different endpoints,
so codes are resolved per endpoint into a ProviderErrorKind, and every kind
has exactly one user-facing message.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

SUCCESS_CODE = "0"


class ProviderEndpoint(Enum):
    SEARCH = "search"
    PRECISE_PRICING = "precise_pricing"
    BOOKING = "booking"
    ORDER_PRICING = "order_pricing"
    TICKETING = "ticketing"
    CANCEL = "cancel"
    ORDER_DETAIL = "order_detail"


class ProviderErrorKind(Enum):
    SYSTEM_ERROR = "system_error"
    REQUEST_TIMEOUT = "request_timeout"
    PARTNER_NOT_FOUND = "partner_not_found"
    INVALID_SIGNATURE = "invalid_signature"
    RATE_LIMITED = "rate_limited"
    INVALID_INPUT = "invalid_input"
    MISSING_FIELDS = "missing_fields"
    INVALID_PARAMETERS = "invalid_parameters"
    SEATS_UNAVAILABLE = "seats_unavailable"
    PRICING_EXPIRED = "pricing_expired"
    SEGMENT_INVALID = "segment_invalid"
    FLIGHT_CHANGED = "flight_changed"
    FARE_UNAVAILABLE = "fare_unavailable"
    PRICE_CHANGED = "price_changed"
    DUPLICATE_RESERVATION = "duplicate_reservation"
    SEGMENT_MISMATCH = "segment_mismatch"
    ORDER_STATUS_INVALID = "order_status_invalid"
    ORDER_NUMBER_NOT_FOUND = "order_number_not_found"
    ORDER_NOT_FOUND = "order_not_found"
    ORDER_ALREADY_CANCELLED = "order_already_cancelled"
    BUYER_MISMATCH = "buyer_mismatch"
    TICKETING_WINDOW_EXPIRING = "ticketing_window_expiring"
    ALREADY_PAID = "already_paid"
    # Local kinds: no provider code
    TRANSPORT_ERROR = "transport_error"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


ERROR_MESSAGES: Dict[ProviderErrorKind, str] = {
    ProviderErrorKind.SYSTEM_ERROR: "System error.",
    ProviderErrorKind.REQUEST_TIMEOUT: "Request timeout.",
    ProviderErrorKind.PARTNER_NOT_FOUND: "Partner ID does not exist.",
    ProviderErrorKind.INVALID_SIGNATURE: "Invalid signature. Please contact support.",
    ProviderErrorKind.RATE_LIMITED: "Too many requests. Please try again later.",
    ProviderErrorKind.INVALID_INPUT: "Invalid input data.",
    ProviderErrorKind.MISSING_FIELDS: "Missing required fields.",
    ProviderErrorKind.INVALID_PARAMETERS: "Invalid parameters.",
    ProviderErrorKind.SEATS_UNAVAILABLE: "Seats are no longer available.",
    ProviderErrorKind.PRICING_EXPIRED: "Pricing expired. Please search again.",
    ProviderErrorKind.SEGMENT_INVALID: "Flight segment is no longer valid.",
    ProviderErrorKind.FLIGHT_CHANGED: "Flight changed. Please reselect.",
    ProviderErrorKind.FARE_UNAVAILABLE: "Fare is unavailable.",
    ProviderErrorKind.PRICE_CHANGED: "Price has changed.",
    ProviderErrorKind.DUPLICATE_RESERVATION: "Duplicate reservation found.",
    ProviderErrorKind.SEGMENT_MISMATCH: "Flight segment mismatch.",
    ProviderErrorKind.ORDER_STATUS_INVALID: 'Order status is invalid. Order status must be "to_be_paid".',
    ProviderErrorKind.ORDER_NUMBER_NOT_FOUND: "Order number does not exist.",
    ProviderErrorKind.ORDER_NOT_FOUND: "Order does not exist.",
    ProviderErrorKind.ORDER_ALREADY_CANCELLED: "The order has been cancelled.",
    ProviderErrorKind.BUYER_MISMATCH: "Request buyer is not matched with order.",
    ProviderErrorKind.TICKETING_WINDOW_EXPIRING: "The ticketing time limit is about to expire. Please book again.",
    ProviderErrorKind.ALREADY_PAID: "The order has already been paid.",
    ProviderErrorKind.TRANSPORT_ERROR: "The flight provider could not be reached. The outcome is unknown; please retry.",
    ProviderErrorKind.INVALID_RESPONSE: "The flight provider returned an invalid response.",
    ProviderErrorKind.UNKNOWN: "Unknown provider error.",
}

_COMMON = {
    "S001": ProviderErrorKind.SYSTEM_ERROR,
    "B002": ProviderErrorKind.PARTNER_NOT_FOUND,
    "B003": ProviderErrorKind.INVALID_SIGNATURE,
    "P001": ProviderErrorKind.INVALID_INPUT,
}

_ORDER_STATE = {
    "B009": ProviderErrorKind.ORDER_STATUS_INVALID,
    "B010": ProviderErrorKind.ORDER_NUMBER_NOT_FOUND,
    "B037": ProviderErrorKind.ORDER_NOT_FOUND,
    "B041": ProviderErrorKind.ORDER_ALREADY_CANCELLED,
}

ENDPOINT_ERROR_CODES: Dict[ProviderEndpoint, Dict[str, ProviderErrorKind]] = {
    ProviderEndpoint.SEARCH: {
        **_COMMON,
        "B035": ProviderErrorKind.RATE_LIMITED,
        "P006": ProviderErrorKind.INVALID_PARAMETERS,
        "B005": ProviderErrorKind.PRICING_EXPIRED,
        "B011": ProviderErrorKind.FARE_UNAVAILABLE,
    },
    ProviderEndpoint.PRECISE_PRICING: {
        **_COMMON,
        "B035": ProviderErrorKind.RATE_LIMITED,
        "P006": ProviderErrorKind.INVALID_PARAMETERS,
        "B005": ProviderErrorKind.PRICING_EXPIRED,
        "B011": ProviderErrorKind.FARE_UNAVAILABLE,
    },
    ProviderEndpoint.BOOKING: {
        **_COMMON,
        "B035": ProviderErrorKind.RATE_LIMITED,
        "P002": ProviderErrorKind.MISSING_FIELDS,
        "P006": ProviderErrorKind.INVALID_PARAMETERS,
        "0307": ProviderErrorKind.SEATS_UNAVAILABLE,
        "B005": ProviderErrorKind.PRICING_EXPIRED,
        "B007": ProviderErrorKind.SEGMENT_INVALID,
        "B008": ProviderErrorKind.FLIGHT_CHANGED,
        "B011": ProviderErrorKind.FARE_UNAVAILABLE,
        "B017": ProviderErrorKind.PRICE_CHANGED,
        "B029": ProviderErrorKind.DUPLICATE_RESERVATION,
        "B068": ProviderErrorKind.SEGMENT_MISMATCH,
    },
    ProviderEndpoint.ORDER_PRICING: {
        **_COMMON,
        **_ORDER_STATE,
        "B017": ProviderErrorKind.PRICE_CHANGED,
        "B026": ProviderErrorKind.TICKETING_WINDOW_EXPIRING,
        "B112": ProviderErrorKind.ALREADY_PAID,
    },
    ProviderEndpoint.TICKETING: {
        **_COMMON,
        **_ORDER_STATE,
        "B017": ProviderErrorKind.PRICE_CHANGED,
        "B026": ProviderErrorKind.TICKETING_WINDOW_EXPIRING,
        "B112": ProviderErrorKind.ALREADY_PAID,
    },
    ProviderEndpoint.CANCEL: {
        **_COMMON,
        **_ORDER_STATE,
    },
    ProviderEndpoint.ORDER_DETAIL: {
        **_COMMON,
        "S002": ProviderErrorKind.REQUEST_TIMEOUT,
        "B037": ProviderErrorKind.ORDER_NOT_FOUND,
        "B048": ProviderErrorKind.BUYER_MISMATCH,
    },
}

GENERIC_FAILURE_MESSAGES: Dict[ProviderEndpoint, str] = {
    ProviderEndpoint.SEARCH: "Flight search failed.",
    ProviderEndpoint.PRECISE_PRICING: "Precise pricing failed.",
    ProviderEndpoint.BOOKING: "Booking failed.",
    ProviderEndpoint.ORDER_PRICING: "Order pricing failed.",
    ProviderEndpoint.TICKETING: "Ticketing failed.",
    ProviderEndpoint.CANCEL: "Cancellation failed.",
    ProviderEndpoint.ORDER_DETAIL: "Failed to fetch booking details.",
}


@dataclass
class ProviderError:
    """A failed provider call as presented to API clients"""
    code: Optional[str]
    kind: ProviderErrorKind
    message: str
    endpoint: ProviderEndpoint
    outcome: str = "failed"  # "failed" or "unknown" when the call may have taken effect

    @property
    def is_unknown_outcome(self) -> bool:
        return self.outcome == "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "outcome": self.outcome,
        }


def is_success(response: Dict[str, Any]) -> bool:
    return str(response.get("errorCode")) == SUCCESS_CODE


def classify_provider_error(endpoint: ProviderEndpoint, code: Any,
                            provider_message: Optional[str] = None) -> ProviderError:
    """Map an endpoint's error code to its kind and user-facing message"""
    code = None if code is None else str(code)
    kind = ENDPOINT_ERROR_CODES[endpoint].get(code, ProviderErrorKind.UNKNOWN)
    if kind is ProviderErrorKind.UNKNOWN:
        message = provider_message or GENERIC_FAILURE_MESSAGES[endpoint]
    else:
        message = ERROR_MESSAGES[kind]
    return ProviderError(code=code, kind=kind, message=message, endpoint=endpoint)


def error_from_response(endpoint: ProviderEndpoint, response: Dict[str, Any]) -> ProviderError:
    return classify_provider_error(endpoint, response.get("errorCode"), response.get("errorMsg"))


def unknown_outcome_error(endpoint: ProviderEndpoint, detail: Optional[str] = None) -> ProviderError:
    message = ERROR_MESSAGES[ProviderErrorKind.TRANSPORT_ERROR]
    if detail:
        message = f"{message} ({detail})"
    return ProviderError(code=None, kind=ProviderErrorKind.TRANSPORT_ERROR, message=message,
                         endpoint=endpoint, outcome="unknown")
