# Overview: Flask API routes for customers; CRUD and customer statistics.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError, error_response
from ..services import customer_service, reporting_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers_route():
    try:
        result = customer_service.list_customers(
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order", "desc"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify({"success": True, "data": result}), 200
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"success": False, "error": "Error fetching customers"}), 500


@customers_bp.get("/stats")
def customer_stats_route():
    try:
        return jsonify({"success": True, "data": reporting_service.customer_stats()}), 200
    except Exception:
        current_app.logger.exception("Failed to compute customer stats")
        return jsonify({"success": False, "error": "Error fetching customer statistics"}), 500


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    """Customer record plus the most recent orders."""
    try:
        return jsonify({"success": True, "data": customer_service.get_customer_with_orders(customer_id)}), 200
    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status


@customers_bp.post("")
def create_customer_route():
    try:
        customer = customer_service.create_customer(request.get_json(silent=True) or {})
        return jsonify({
            "success": True,
            "message": "Customer created successfully",
            "data": customer.to_dict(),
        }), 201
    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"success": False, "error": "Error creating customer"}), 500


@customers_bp.put("/<int:customer_id>")
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(customer_id, request.get_json(silent=True) or {})
        return jsonify({
            "success": True,
            "message": "Customer updated successfully",
            "data": customer.to_dict(),
        }), 200
    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to update customer %s", customer_id)
        return jsonify({"success": False, "error": "Error updating customer"}), 500


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
        return jsonify({"success": True, "message": "Customer deleted successfully"}), 200
    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to delete customer %s", customer_id)
        return jsonify({"success": False, "error": "Error deleting customer"}), 500
