# Overview: Flask API routes for reports and the exchange rate; read-mostly JSON endpoints.

# backend/kiosco/routes/reports.py
from flask import Blueprint, request, jsonify, current_app

from ..services import exchange_service, reporting_service
from ..services.exchange_service import ExchangeRateError
from ..services.reporting_service import ReportError
from kiosco.time_utils import get_zone


reports_bp = Blueprint("reports", __name__, url_prefix="/api")


def _report_options() -> dict:
    return {
        "zone": get_zone(current_app.config["KIOSCO_TIMEZONE"]),
        "secondary_currency": current_app.config["SECONDARY_CURRENCY"],
    }


@reports_bp.get("/reports/today")
def today_report_route():
    return jsonify(reporting_service.today_report(**_report_options())), 200


@reports_bp.get("/reports/week")
def weekly_report_route():
    return jsonify(reporting_service.weekly_report(**_report_options())), 200


@reports_bp.get("/reports/month")
def monthly_report_route():
    return jsonify(reporting_service.monthly_report(**_report_options())), 200


@reports_bp.get("/reports/range")
def range_report_route():
    """Query params: start (required), end (optional), ISO-8601."""
    try:
        start, end = reporting_service.parse_range(request.args.get("start"), request.args.get("end"))
    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    report = reporting_service.sales_by_range(
        start,
        end,
        secondary_currency=current_app.config["SECONDARY_CURRENCY"],
    )
    return jsonify(report), 200


def _pair() -> dict:
    return {
        "currency_from": current_app.config["SECONDARY_CURRENCY"],
        "currency_to": current_app.config["PRIMARY_CURRENCY"],
    }


@reports_bp.get("/exchange-rate")
def get_exchange_rate_route():
    config = exchange_service.get_exchange_rate(**_pair())
    if config is None:
        return jsonify({"error": "Exchange rate not configured"}), 404
    return jsonify(config.to_dict()), 200


@reports_bp.put("/exchange-rate")
def update_exchange_rate_route():
    """Body: {"rate": "7.25"} meaning 1 secondary = rate primary."""
    data = request.get_json(silent=True) or {}
    if data.get("rate") is None:
        return jsonify({"error": "rate required"}), 400
    try:
        config = exchange_service.update_exchange_rate(data["rate"], **_pair())
    except ExchangeRateError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(config.to_dict()), 200
