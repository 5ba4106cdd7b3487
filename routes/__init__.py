"""Blueprint registration and service-level routes."""
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from utils.categories import list_categories
from .auth import auth_bp
from .complaints import complaints_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
def index():
    return jsonify({"status": "success", "message": "CivicPulse API is running"})


@main_bp.route("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        current_app.logger.exception("Health check database probe failed")
        db.session.rollback()
        database = "unavailable"
    status_code = 200 if database == "ok" else 503
    return jsonify({"status": "success" if status_code == 200 else "error", "database": database}), status_code


@main_bp.route("/api/categories")
def categories():
    return jsonify({"status": "success", "data": {"categories": list_categories()}})


__all__ = ["main_bp", "auth_bp", "complaints_bp"]
