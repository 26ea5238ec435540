# Overview: Flask API routes for sales; record a sale, pre-flight validation, sales statistics.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError, error_response
from ..services import sales_service, reporting_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Record a sale.

    Body: customer_info {name, phone, email?, nic?, address?},
          items [{machine_id, quantity, vat_percentage?, warranty_months?}],
          extras [{description, amount}]?, discount_percentage?, notes?,
          processed_by?
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.process_sale(data)
        return jsonify({
            "success": True,
            "message": "Sale processed successfully",
            "data": {
                "order": result.order.to_dict(),
                "summary": result.summary,
            },
        }), 201

    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"success": False, "error": "Error processing sale"}), 500


@sales_bp.post("/validate")
def validate_sale_route():
    """Check a sale without recording it."""
    try:
        data = request.get_json(silent=True) or {}
        return jsonify({"success": True, "data": sales_service.validate_sale(data)}), 200

    except PosError as e:
        body, status = error_response(e)
        return jsonify(body), status
    except Exception:
        current_app.logger.exception("Failed to validate sale")
        return jsonify({"success": False, "error": "Error validating sale"}), 500


@sales_bp.get("/stats")
def sales_stats_route():
    try:
        return jsonify({"success": True, "data": reporting_service.sales_stats()}), 200
    except Exception:
        current_app.logger.exception("Failed to compute sales stats")
        return jsonify({"success": False, "error": "Error fetching sales statistics"}), 500
