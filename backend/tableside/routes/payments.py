# Overview: Flask API routes for payment workflows; parses input and returns JSON responses.

# backend/tableside/routes/payments.py
"""Payment API routes (tenant from X-Organization-Id)"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_organization, result_response
from ..services import payment_service
from ..time_utils import parse_iso_datetime


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@payments_bp.post("")
@require_organization
def create_payment_route():
    """
    Create a pending payment for an order.

    Body: order_id, amount, tax_amount?, tip_amount?, discount_amount?,
          currency?, customer_id?, payment_method?, order_items?
    """
    try:
        result = payment_service.create_payment_transaction(g.org_id, _json_body())
        return result_response(result, 201)
    except Exception:
        current_app.logger.exception("Failed to create payment")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@payments_bp.get("")
@require_organization
def list_payments_route():
    limit = request.args.get("limit", 10, type=int)
    return result_response(payment_service.get_recent_payments(g.org_id, limit=limit))


@payments_bp.get("/analytics")
@require_organization
def payment_analytics_route():
    """Query: timeframe = day | week | month | year, as_of? (ISO-8601 window end)"""
    try:
        as_of = parse_iso_datetime(request.args.get("as_of"))
    except ValueError:
        return jsonify({"success": False, "error": "as_of must be an ISO-8601 datetime", "error_code": "validation_error"}), 400
    result = payment_service.get_payment_analytics(g.org_id, request.args.get("timeframe", "day"), now=as_of)
    return result_response(result)


@payments_bp.get("/<payment_id>")
@require_organization
def get_payment_route(payment_id: str):
    return result_response(payment_service.get_payment(payment_id, g.org_id))


@payments_bp.post("/<payment_id>/process")
@require_organization
def process_payment_route(payment_id: str):
    """
    Risk check + gateway charge.

    Body: payment_method ("credit_card" or {"type": ..., "card_data": {...}})
    Responds 402 with the assessment when declined.
    """
    try:
        data = _json_body()
        method = data.get("payment_method")
        if not method:
            return jsonify({"success": False, "error": "payment_method required", "error_code": "validation_error"}), 400
        result = payment_service.process_payment(payment_id, g.org_id, method)
        return result_response(result)
    except Exception:
        current_app.logger.exception("Failed to process payment")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@payments_bp.post("/<payment_id>/status")
@require_organization
def update_payment_status_route(payment_id: str):
    data = _json_body()
    status = data.get("status")
    if not status:
        return jsonify({"success": False, "error": "status required", "error_code": "validation_error"}), 400
    return result_response(payment_service.update_payment_status(payment_id, g.org_id, status))


@payments_bp.post("/<payment_id>/refund")
@require_organization
def refund_payment_route(payment_id: str):
    data = _json_body()
    return result_response(payment_service.refund_payment(payment_id, g.org_id, data.get("reason")))


@payments_bp.post("/<payment_id>/cancel")
@require_organization
def cancel_payment_route(payment_id: str):
    data = _json_body()
    return result_response(payment_service.cancel_payment(payment_id, g.org_id, data.get("reason")))
