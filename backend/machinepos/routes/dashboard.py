# Overview: Flask API routes for the dashboard summary and the monthly revenue series.

from flask import Blueprint, jsonify, current_app

from ..services import reporting_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
def dashboard_stats_route():
    try:
        return jsonify({"success": True, "data": reporting_service.dashboard_stats()}), 200
    except Exception:
        current_app.logger.exception("Failed to compute dashboard stats")
        return jsonify({"success": False, "error": "Error fetching dashboard statistics"}), 500


@dashboard_bp.get("/monthly-revenue")
def monthly_revenue_route():
    try:
        return jsonify({"success": True, "data": reporting_service.monthly_revenue()}), 200
    except Exception:
        current_app.logger.exception("Failed to compute monthly revenue")
        return jsonify({"success": False, "error": "Error fetching monthly revenue"}), 500
