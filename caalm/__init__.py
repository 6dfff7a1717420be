# caalm/__init__.py

from flask import Flask, jsonify
from flask_session import Session
from datetime import timedelta
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from dotenv import load_dotenv
import os

from caalm.log import configure_logging
from caalm.setup_store import PendingSecretStore

# ======================================================
# Load environment first
# ======================================================
load_dotenv()

db = SQLAlchemy()
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per hour"],
    storage_uri="memory://"
)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def create_app(config=None):
    app = Flask(__name__)

    # ==================================================
    # Security / Keys
    # ==================================================
    app.secret_key = os.getenv("SECRET_KEY", "REPLACE_WITH_A_SECURE_RANDOM_KEY")

    # ==================================================
    # Database
    # ==================================================
    app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL", "sqlite:///caalm.db")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # ==================================================
    # Session Persistence
    # ==================================================
    app.config["SESSION_TYPE"] = os.getenv("SESSION_TYPE", "filesystem")
    app.config["SESSION_PERMANENT"] = True
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=1)
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = _env_bool("SESSION_COOKIE_SECURE")  # True behind HTTPS

    # ==================================================
    # Two-factor (TOTP)
    # ==================================================
    app.config["TOTP_ISSUER"] = os.getenv("TOTP_ISSUER", "CAALM")
    app.config["TOTP_VERIFY_WINDOW"] = int(os.getenv("TOTP_VERIFY_WINDOW", "1"))
    app.config["TOTP_SETUP_TTL"] = int(os.getenv("TOTP_SETUP_TTL", "300"))
    app.config["TOTP_SETUP_SWEEP_INTERVAL"] = int(os.getenv("TOTP_SETUP_SWEEP_INTERVAL", "600"))
    app.config["TOTP_VERIFY_RATE_LIMIT"] = os.getenv("TOTP_VERIFY_RATE_LIMIT", "10/minute")
    app.config["TOTP_DIAGNOSTICS"] = _env_bool("TOTP_DIAGNOSTICS")

    # ==================================================
    # CSRF + Rate Limiting
    # ==================================================
    app.config["WTF_CSRF_ENABLED"] = True
    app.config["WTF_CSRF_CHECK_DEFAULT"] = False
    app.config["RATELIMIT_ENABLED"] = _env_bool("RATELIMIT_ENABLED", "true")

    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")

    if config:
        app.config.update(config)
        if "SECRET_KEY" in config:
            app.secret_key = config["SECRET_KEY"]

    # Pool sizing only applies to server databases; SQLite uses its own pools.
    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
            "pool_pre_ping": True,
            "pool_recycle": 1800,
        })

    configure_logging(app.logger, app.config["LOG_LEVEL"])

    Session(app)
    csrf.init_app(app)
    limiter.init_app(app)
    db.init_app(app)

    app.extensions["totp_setup_store"] = PendingSecretStore(
        ttl=app.config["TOTP_SETUP_TTL"],
        sweep_interval=app.config["TOTP_SETUP_SWEEP_INTERVAL"],
    )

    # ==================================================
    # Blueprints
    # ==================================================
    from caalm.auth import auth_bp, login_manager
    from caalm.routes.two_factor import two_factor_bp

    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(two_factor_bp)

    # ==================================================
    # Database Initialization (tables)
    # ==================================================
    with app.app_context():
        db.create_all()

    # ==================================================
    # Security Headers
    # ==================================================
    @app.after_request
    def apply_security_headers(response):
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.errorhandler(429)
    def rate_limited(exc):
        return jsonify({"error": "Too many attempts. Please wait and try again."}), 429

    @app.route("/status")
    def status():
        return jsonify({"status": "ok"})

    app.logger.info("CAALM two-factor service initialised (issuer=%s)", app.config["TOTP_ISSUER"])
    return app
