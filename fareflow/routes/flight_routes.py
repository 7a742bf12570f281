import logging

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from fareflow.routes import get_service
from fareflow.utils.request_validators import SearchRequest, PricingRequest, validation_errors
from fareflow.utils.response_builder import response_builder

logger = logging.getLogger(__name__)

flights_bp = Blueprint("flights", __name__)


@flights_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@flights_bp.route("/flights/search", methods=["POST"])
def search_flights():
    """Search fares and return normalized offers"""
    try:
        search_request = SearchRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        logger.warning(f"Flight search validation failed: {validation_errors(e)}")
        return response_builder.build_validation_error_response(validation_errors(e))

    try:
        result = get_service("flight_service").search(search_request)
    except Exception as e:
        logger.error(f"Flight search failed: {str(e)}", exc_info=True)
        return response_builder.build_error_response("Failed to search flights. Please try again later.", 500)

    if not result.success:
        return response_builder.build_provider_error_response(result.error)

    return response_builder.build_success_response(
        "Flights retrieved successfully.",
        [offer.to_dict() for offer in result.offers],
    )


@flights_bp.route("/flights/precise-pricing", methods=["POST"])
def precise_pricing():
    """Re-price a selected solution; the result is what a booking will be charged"""
    try:
        pricing_request = PricingRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return response_builder.build_validation_error_response(validation_errors(e))

    try:
        result = get_service("flight_service").precise_pricing(pricing_request)
    except Exception as e:
        logger.error(f"Precise pricing failed: {str(e)}", exc_info=True)
        return response_builder.build_error_response("Failed to get precise pricing.", 500)

    if not result.success:
        return response_builder.build_provider_error_response(result.error)

    return response_builder.build_success_response(
        "Precise pricing retrieved successfully.",
        result.priced_offer.to_dict(),
    )
