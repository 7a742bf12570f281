from typing import Any, Dict, List, Optional

from flask import jsonify

from fareflow.services.api.flights.error_codes import ProviderError


class ApiResponseBuilder:
    """
    Build JSON responses for the HTTP API
    Keeps status codes consistent across blueprints
    """

    def build_success_response(self, message: str, data: Any = None, status: int = 200, **extra):
        """
        Build a success response

        Args:
            message: Human readable summary
            data: Payload placed under "data"
            status: HTTP status code
        """
        body: Dict[str, Any] = {"success": True, "message": message, "data": data}
        body.update(extra)
        return jsonify(body), status

    def build_provider_error_response(self, error: ProviderError):
        """
        Build a response for a failed provider call

        Unknown outcomes (timeouts) answer 504 so clients know to retry;
        provider business errors answer 400 with the provider code.
        """
        status = 504 if error.is_unknown_outcome else 400
        return jsonify({
            "success": False,
            "code": error.code,
            "kind": error.kind.value,
            "message": error.message,
            "outcome": error.outcome,
        }), status

    def build_validation_error_response(self, errors: Dict[str, List[str]], message: str = "Validation Error"):
        return jsonify({"success": False, "message": message, "errors": errors}), 422

    def build_error_response(self, message: str, status: int, error: Optional[str] = None):
        body: Dict[str, Any] = {"success": False, "message": message}
        if error:
            body["error"] = error
        return jsonify(body), status


response_builder = ApiResponseBuilder()
