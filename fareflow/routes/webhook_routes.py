import hmac
import logging
from functools import wraps

from flask import Blueprint, jsonify, request

from fareflow.routes import get_service

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("pkfare_webhooks", __name__, url_prefix="/pkfare")

TOKEN_HEADER = "X-Pkfare-Token"


def require_pkfare_token(view):
    """Reject the call with 403 unless the shared-secret header matches, before reading the body"""
    @wraps(view)
    def wrapper(*args, **kwargs):
        expected = get_service("settings").provider.webhook_token
        given = request.headers.get(TOKEN_HEADER, "")
        if not expected or not hmac.compare_digest(expected.encode("utf-8"), given.encode("utf-8")):
            logger.warning("Rejected webhook with invalid token", extra={'path': request.path})
            return jsonify({"errorCode": 403, "errorMsg": "Invalid webhook token."}), 403
        return view(*args, **kwargs)
    return wrapper


@webhooks_bp.route("/ticket-issuance-notify-v2", methods=["POST"])
@require_pkfare_token
def ticket_issuance_notify():
    """PKFare reports ticket issuance (or rejection) for an order"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"errorCode": 400, "errorMsg": "payload must be a JSON object"}), 400
    if not payload.get("orderNum"):
        return jsonify({"errorCode": 400, "errorMsg": "orderNum missing"}), 400

    try:
        get_service("webhook_reconciler").handle_ticket_issuance(payload)
    except Exception as e:
        # Non-2xx makes the provider redeliver; the transaction has been rolled back
        logger.error(f"Ticket issuance reconciliation failed for {payload.get('orderNum')}: {str(e)}",
                     exc_info=True)
        return jsonify({"errorCode": 500, "errorMsg": "reconciliation failed"}), 500

    return jsonify({"errorCode": 0, "errorMsg": "ok"})


def _acknowledge(event: str):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    logger.info(f"PKFare {event} notification received", extra={
        'order_num': payload.get("orderNum"),
        'event': event
    })
    return jsonify({"errorCode": 0, "errorMsg": "ok"})


@webhooks_bp.route("/refund-result", methods=["POST"])
@require_pkfare_token
def refund_result():
    return _acknowledge("refund-result")


@webhooks_bp.route("/reimbursed-result", methods=["POST"])
@require_pkfare_token
def reimbursed_result():
    return _acknowledge("reimbursed-result")


@webhooks_bp.route("/schedule-change", methods=["POST"])
@require_pkfare_token
def schedule_change():
    return _acknowledge("schedule-change")
