# Overview: Flask API routes for orders; lookups, editing, status changes, returns and order reports.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError, error_response
from ..services import order_service, reporting_service, return_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _pos_error(e: PosError):
    body, status = error_response(e)
    return jsonify(body), status


@orders_bp.get("")
def list_orders_route():
    """
    List orders, newest first.

    Query: customer_id, start, end (ISO dates), status, search, page, per_page
    """
    try:
        result = order_service.list_orders(
            customer_id=request.args.get("customer_id", type=int),
            start=request.args.get("start"),
            end=request.args.get("end"),
            status=request.args.get("status"),
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify({"success": True, "data": result}), 200
    except PosError as e:
        return _pos_error(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"success": False, "error": "Error fetching orders"}), 500


@orders_bp.get("/stats")
def order_stats_route():
    try:
        return jsonify({"success": True, "data": reporting_service.order_stats()}), 200
    except Exception:
        current_app.logger.exception("Failed to compute order stats")
        return jsonify({"success": False, "error": "Error fetching order statistics"}), 500


@orders_bp.get("/range")
def orders_by_range_route():
    try:
        report = reporting_service.orders_by_date_range(
            request.args.get("start"),
            request.args.get("end"),
        )
        return jsonify({"success": True, "data": report}), 200
    except PosError as e:
        return _pos_error(e)
    except Exception:
        current_app.logger.exception("Failed to fetch orders by date range")
        return jsonify({"success": False, "error": "Error fetching orders"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"success": True, "data": order.to_dict()}), 200
    except PosError as e:
        return _pos_error(e)


@orders_bp.get("/code/<string:order_code>")
def get_order_by_code_route(order_code: str):
    try:
        order = order_service.get_order_by_code(order_code)
        return jsonify({"success": True, "data": order.to_dict()}), 200
    except PosError as e:
        return _pos_error(e)


@orders_bp.patch("/<int:order_id>")
def update_order_route(order_id: int):
    """Partial update; totals are re-derived, stock is not touched."""
    try:
        data = request.get_json(silent=True)
        if data is None:
            return jsonify({"success": False, "error": "Invalid JSON payload"}), 400

        order = order_service.update_order(order_id, data)
        return jsonify({
            "success": True,
            "message": "Order updated successfully",
            "data": order.to_dict(),
        }), 200
    except PosError as e:
        return _pos_error(e)
    except Exception:
        current_app.logger.exception("Failed to update order %s", order_id)
        return jsonify({"success": False, "error": "Error updating order"}), 500


@orders_bp.patch("/<int:order_id>/status")
def update_order_status_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.update_order_status(
            order_id,
            order_status=data.get("order_status"),
            payment_status=data.get("payment_status"),
            notes=data.get("notes"),
        )
        return jsonify({
            "success": True,
            "message": "Order status updated successfully",
            "data": order.to_dict(),
        }), 200
    except PosError as e:
        return _pos_error(e)
    except Exception:
        current_app.logger.exception("Failed to update status of order %s", order_id)
        return jsonify({"success": False, "error": "Error updating order status"}), 500


@orders_bp.post("/<int:order_id>/return")
def return_item_route(order_id: int):
    """
    Return units of one line.

    Body: item (machine id, item code or "#<line position>"), quantity
    """
    try:
        data = request.get_json(silent=True) or {}
        item_ref = data.get("item", data.get("machine_id"))
        if item_ref in (None, "") or data.get("quantity") is None:
            return jsonify({"success": False, "error": "item and quantity are required"}), 400

        result = return_service.return_item(order_id, item_ref, data["quantity"])
        return jsonify({
            "success": True,
            "message": "Item returned successfully",
            "data": {
                "order": result["order"].to_dict(),
                "returned_item": result["returned_item"],
                "updated_stock": result["updated_stock"],
            },
        }), 200
    except PosError as e:
        return _pos_error(e)
    except Exception:
        current_app.logger.exception("Failed to process return on order %s", order_id)
        return jsonify({"success": False, "error": "Error processing return"}), 500


@orders_bp.delete("/<int:order_id>")
def cancel_order_route(order_id: int):
    """Orders are cancelled, never removed."""
    try:
        order = order_service.cancel_order(order_id)
        return jsonify({
            "success": True,
            "message": "Order cancelled successfully",
            "data": order.to_dict(include_lines=False),
        }), 200
    except PosError as e:
        return _pos_error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order %s", order_id)
        return jsonify({"success": False, "error": "Error cancelling order"}), 500
