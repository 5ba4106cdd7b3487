"""Flask application factory for the CivicPulse complaint lifecycle API."""
import os
from typing import Optional

import click
from flask import Flask, jsonify
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from utils.errors import ApiError
from utils.logger import init_logging
from utils.security import apply_security_headers
from extensions import db, migrate, login_manager, notifier


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def api_error(error: ApiError):
        log = app.logger.warning if error.status_code >= 500 or error.status_code == 403 else app.logger.info
        log(error.message, extra={"status_code": error.status_code, "error_type": type(error).__name__})
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning("404 Not Found")
        return jsonify({"status": "fail", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"status": "fail", "message": "Method not allowed"}), 405

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        status = "fail" if (error.code or 500) < 500 else "error"
        return jsonify({"status": status, "message": error.description}), error.code or 500

    @app.errorhandler(Exception)
    def internal_error(error):
        db.session.rollback()
        app.logger.exception("500 Internal Server Error")
        return jsonify({"status": "error", "message": "Something went wrong. Please try again later."}), 500


def ensure_default_admin(app: Flask) -> None:
    """Ensure a default admin can log in without registering."""
    from models import User  # Local import to avoid circular dependency

    admin_email = (app.config.get("DEFAULT_ADMIN_EMAIL") or "").lower().strip()
    admin_password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not admin_email or not admin_password:
        return

    admin_user = User.query.filter_by(email=admin_email).first()

    if admin_user:
        updates = False
        if admin_user.role != "admin":
            admin_user.role = "admin"
            updates = True
        if not admin_user.is_active:
            admin_user.is_active = True
            updates = True
        if not admin_user.is_verified:
            admin_user.is_verified = True
            updates = True
        if updates:
            db.session.add(admin_user)
            db.session.commit()
        return

    admin_user = User(
        name="System Administrator",
        email=admin_email,
        role="admin",
        is_verified=True,
        is_active=True,
    )
    admin_user.set_password(admin_password)
    db.session.add(admin_user)
    db.session.commit()
    app.logger.info("Default admin created", extra={"admin_email": admin_email})


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists.
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def create_app(config_name: Optional[str] = None, config_overrides: Optional[dict] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    # Resolve configuration
    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    # Optional instance-specific overrides
    if not app.config.get("TESTING"):
        app.config.from_pyfile("config.py", silent=True)
    if config_overrides:
        app.config.update(config_overrides)

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    notifier.init_app(app)
    login_manager.init_app(app)
    login_manager.session_protection = "basic"

    @login_manager.user_loader
    def load_user(user_id):
        from models import User  # Local import to avoid circular dependency

        if not user_id:
            return None
        # IDs are stored as string UUIDs; avoid casting to UUID to prevent driver errors.
        return db.session.get(User, str(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"status": "fail", "message": "You are not logged in. Please log in to get access."}), 401

    # Blueprints
    from routes import main_bp, auth_bp, complaints_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(complaints_bp)

    @app.cli.command("seed-categories")
    def seed_categories_command():
        """Insert the default complaint categories that are missing."""
        from utils.categories import seed_default_categories

        created = seed_default_categories()
        click.echo(f"Created {created} categories.")

    # Error handlers
    register_error_handlers(app)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        from utils.categories import seed_default_categories

        db.create_all()
        if app.config.get("SEED_DEFAULT_CATEGORIES"):
            seed_default_categories()
        ensure_default_admin(app)

    app.logger.info("Application started", extra={"config": config_class.__name__})
    return app
