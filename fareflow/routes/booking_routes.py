import logging

from flask import Blueprint, request
from pydantic import ValidationError

from fareflow.routes import get_service
from fareflow.services.booking_lifecycle import (
    BookingNotFoundError, BookingStateError, BookingValidationError,
)
from fareflow.utils.request_validators import (
    BookingRequest, TicketingRequest, CancelRequest, validation_errors,
)
from fareflow.utils.response_builder import response_builder

logger = logging.getLogger(__name__)

bookings_bp = Blueprint("bookings", __name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@bookings_bp.route("/flights/bookings", methods=["POST"])
def create_booking():
    """Book the most recently priced offer for a solution"""
    try:
        booking_request = BookingRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        logger.warning(f"Booking validation failed: {validation_errors(e)}")
        return response_builder.build_validation_error_response(validation_errors(e))

    priced_offer = get_service("flight_service").get_priced_offer(booking_request.solution_id)
    if priced_offer is None:
        return response_builder.build_error_response(
            "No current price for this solution. Please run precise pricing again.", 409)

    try:
        result = get_service("booking_lifecycle").create_booking(priced_offer, booking_request)
    except BookingValidationError as e:
        return response_builder.build_validation_error_response({"passengers": [str(e)]})
    except Exception as e:
        logger.error(f"Booking creation failed: {str(e)}", exc_info=True)
        return response_builder.build_error_response("Failed to create booking.", 500)

    if not result.success:
        return response_builder.build_provider_error_response(result.error)

    return response_builder.build_success_response(
        "Booking created successfully.", result.booking.to_dict(), status=201)


@bookings_bp.route("/bookings", methods=["GET"])
def list_bookings():
    """Newest bookings first, paginated with ?page=&perPage="""
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get("perPage", DEFAULT_PAGE_SIZE, type=int)
    if page < 1 or not 1 <= per_page <= MAX_PAGE_SIZE:
        return response_builder.build_validation_error_response(
            {"page": [f"page must be >= 1 and perPage between 1 and {MAX_PAGE_SIZE}."]})

    bookings = get_service("booking_lifecycle").list_bookings(page=page, per_page=per_page)
    return response_builder.build_success_response(
        "Bookings retrieved successfully.", [b.to_dict() for b in bookings],
        page=page, perPage=per_page)


@bookings_bp.route("/bookings/<order_num>", methods=["GET"])
def get_booking(order_num):
    graph = get_service("booking_lifecycle").get_booking(order_num)
    if not graph:
        return response_builder.build_error_response("Booking not found", 404)
    return response_builder.build_success_response("Booking retrieved successfully.", graph.to_dict())


@bookings_bp.route("/bookings/<order_num>/order-detail", methods=["GET"])
def get_order_detail(order_num):
    try:
        result = get_service("booking_lifecycle").get_order_detail(order_num)
    except BookingNotFoundError:
        return response_builder.build_error_response("Booking not found", 404)

    if not result.success:
        return response_builder.build_provider_error_response(result.error)
    return response_builder.build_success_response("Booking retrieved successfully.", result.provider_data)


@bookings_bp.route("/bookings/<order_num>/ticketing", methods=["POST"])
def request_ticketing(order_num):
    try:
        ticketing_request = TicketingRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return response_builder.build_validation_error_response(validation_errors(e))

    try:
        result = get_service("booking_lifecycle").request_ticketing(order_num, ticketing_request)
    except BookingNotFoundError:
        return response_builder.build_error_response("Booking not found", 404)
    except BookingStateError as e:
        return response_builder.build_error_response(str(e), 409)
    except Exception as e:
        logger.error(f"Ticketing request failed for {order_num}: {str(e)}", exc_info=True)
        return response_builder.build_error_response("Failed to request ticketing.", 500)

    if not result.success:
        return response_builder.build_provider_error_response(result.error)
    return response_builder.build_success_response("Ticketing requested successfully.", result.booking.to_dict())


@bookings_bp.route("/bookings/<order_num>/cancel", methods=["POST"])
def cancel_booking(order_num):
    try:
        cancel_request = CancelRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return response_builder.build_validation_error_response(validation_errors(e))

    try:
        result = get_service("booking_lifecycle").cancel_booking(order_num, cancel_request.pnr)
    except BookingNotFoundError:
        return response_builder.build_error_response("Booking not found", 404)
    except BookingStateError:
        return response_builder.build_error_response("Booking cannot be cancelled in its current status.", 409)
    except Exception as e:
        logger.error(f"Booking cancellation failed for {order_num}: {str(e)}", exc_info=True)
        return response_builder.build_error_response("Failed to cancel booking. Please try again later.", 500)

    if not result.success:
        return response_builder.build_provider_error_response(result.error)
    return response_builder.build_success_response("Booking cancelled successfully.", result.booking.to_dict())
