# Overview: Flask API routes for the machine inventory; CRUD and category counts.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError, error_response
from ..services import inventory_service


machines_bp = Blueprint("machines", __name__, url_prefix="/api/machines")


def _in_stock_arg():
    raw = request.args.get("in_stock")
    if raw is None:
        return None
    return raw.lower() == "true"


@machines_bp.get("")
def list_machines_route():
    try:
        result = inventory_service.list_machines(
            search=request.args.get("search"),
            category=request.args.get("category"),
            in_stock=_in_stock_arg(),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order", "asc"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify({"success": True, "data": result}), 200
    except Exception:
        current_app.logger.exception("Failed to list machines")
        return jsonify({"success": False, "error": "Error fetching machines"}), 500


@machines_bp.get("/categories")
def list_categories_route():
    return jsonify({"success": True, "data": inventory_service.list_categories()}), 200


@machines_bp.get("/<int:machine_id>")
def get_machine_route(machine_id: int):
    try:
        machine = inventory_service.get_machine(machine_id)
        return jsonify({"success": True, "data": machine.to_dict()}), 200
    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status


@machines_bp.post("")
def create_machine_route():
    try:
        machine = inventory_service.create_machine(request.get_json(silent=True) or {})
        return jsonify({
            "success": True,
            "message": "Machine created successfully",
            "data": machine.to_dict(),
        }), 201
    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to create machine")
        return jsonify({"success": False, "error": "Error creating machine"}), 500


@machines_bp.put("/<int:machine_id>")
def update_machine_route(machine_id: int):
    try:
        machine = inventory_service.update_machine(machine_id, request.get_json(silent=True) or {})
        return jsonify({
            "success": True,
            "message": "Machine updated successfully",
            "data": machine.to_dict(),
        }), 200
    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to update machine %s", machine_id)
        return jsonify({"success": False, "error": "Error updating machine"}), 500


@machines_bp.delete("/<int:machine_id>")
def delete_machine_route(machine_id: int):
    try:
        inventory_service.delete_machine(machine_id)
        return jsonify({"success": True, "message": "Machine deleted successfully"}), 200
    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to delete machine %s", machine_id)
        return jsonify({"success": False, "error": "Error deleting machine"}), 500
