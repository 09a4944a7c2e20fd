# Overview: Flask API routes for order workflows; parses input and returns JSON responses.

# backend/tableside/routes/orders.py
"""Order session and order API routes (tenant from X-Organization-Id)"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_organization, result_response
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@orders_bp.post("/sessions")
@require_organization
def create_session_route():
    """
    Open an order session.

    Body: customer_id?, staff_id?, session_meta? (order_source, service_type, table_number)
    """
    try:
        data = _json_body()
        result = order_service.create_order_session(
            g.org_id,
            customer_id=data.get("customer_id"),
            staff_id=data.get("staff_id"),
            session_meta=data.get("session_meta") or {},
        )
        return result_response(result, 201)
    except Exception:
        current_app.logger.exception("Failed to create order session")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@orders_bp.get("/sessions/<session_id>")
@require_organization
def get_session_route(session_id: str):
    return result_response(order_service.get_order_session(session_id, g.org_id))


@orders_bp.post("/sessions/<session_id>/items")
@require_organization
def add_item_route(session_id: str):
    """Body: product_id, quantity, modifications?, special_instructions?"""
    try:
        result = order_service.add_item_to_order(session_id, g.org_id, _json_body())
        return result_response(result, 201)
    except Exception:
        current_app.logger.exception("Failed to add item to order")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@orders_bp.get("/sessions/<session_id>/total")
@require_organization
def session_total_route(session_id: str):
    return result_response(order_service.calculate_order_total(session_id, g.org_id))


@orders_bp.post("/sessions/<session_id>/confirm")
@require_organization
def confirm_session_route(session_id: str):
    """Confirm the session into an ORDER transaction. Repeat calls return the same order."""
    try:
        data = _json_body()
        result = order_service.confirm_order(session_id, g.org_id, data.get("payment_data"))
        if result.success and result.data.already_confirmed:
            return result_response(result, 200)
        return result_response(result, 201)
    except Exception:
        current_app.logger.exception("Failed to confirm order")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@orders_bp.post("/sessions/<session_id>/abandon")
@require_organization
def abandon_session_route(session_id: str):
    return result_response(order_service.abandon_order_session(session_id, g.org_id))


@orders_bp.get("/recommendations")
@require_organization
def recommendations_route():
    """Query: customer_id?, item (repeatable product id)"""
    result = order_service.get_personalized_recommendations(
        request.args.get("customer_id"),
        g.org_id,
        request.args.getlist("item"),
    )
    return result_response(result)


@orders_bp.get("")
@require_organization
def list_orders_route():
    limit = request.args.get("limit", 20, type=int)
    return result_response(order_service.get_recent_orders(g.org_id, limit=limit))


@orders_bp.get("/<transaction_id>")
@require_organization
def get_order_route(transaction_id: str):
    return result_response(order_service.get_order(transaction_id, g.org_id))


@orders_bp.post("/<transaction_id>/status")
@require_organization
def update_order_status_route(transaction_id: str):
    """Body: status, notes?"""
    data = _json_body()
    status = data.get("status")
    if not status:
        return jsonify({"success": False, "error": "status required", "error_code": "validation_error"}), 400
    result = order_service.update_order_status(transaction_id, g.org_id, status, data.get("notes"))
    return result_response(result)
