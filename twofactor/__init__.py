# twofactor/__init__.py

from flask import Flask, jsonify
from flask_session import Session
from cachelib.file import FileSystemCache
from datetime import timedelta
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from dotenv import load_dotenv
import os

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


def create_app(test_config=None):
    app = Flask(__name__)

    # ==================================================
    # Security / Keys
    # ==================================================
    app.secret_key = os.getenv("SECRET_KEY", "REPLACE_WITH_A_SECURE_RANDOM_KEY")

    # ==================================================
    # Database
    # ==================================================
    app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL", "sqlite:///twofactor.db")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_pre_ping": True,
        "pool_recycle": 1800,
    }

    # ==================================================
    # TOTP
    # ==================================================
    app.config["TOTP_ISSUER"] = os.getenv("TOTP_ISSUER", "EatLocal")
    app.config["TOTP_WINDOW"] = int(os.getenv("TOTP_WINDOW", "1"))
    app.config["TOTP_STEP"] = int(os.getenv("TOTP_STEP", "30"))
    app.config["TOTP_SECRET_LENGTH"] = int(os.getenv("TOTP_SECRET_LENGTH", "20"))
    app.config["TOTP_BACKUP_CODE_COUNT"] = int(os.getenv("TOTP_BACKUP_CODE_COUNT", "10"))
    app.config["TOTP_LOGIN_RATE_LIMIT"] = os.getenv("TOTP_LOGIN_RATE_LIMIT", "5 per minute")

    # ==================================================
    # Session Persistence
    # ==================================================
    app.config["SESSION_TYPE"] = "cachelib"
    app.config["SESSION_DIR"] = os.getenv("SESSION_DIR", os.path.join(app.instance_path, "sessions"))
    app.config["SESSION_PERMANENT"] = True
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=1)
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # ==================================================
    # CSRF + Rate Limiting
    # ==================================================
    app.config["WTF_CSRF_ENABLED"] = True
    app.config["WTF_CSRF_CHECK_DEFAULT"] = False

    if test_config:
        app.config.update(test_config)

    if "SESSION_CACHELIB" not in app.config:
        app.config["SESSION_CACHELIB"] = FileSystemCache(app.config["SESSION_DIR"], threshold=500)

    Session(app)
    csrf.init_app(app)
    limiter.init_app(app)
    db.init_app(app)

    # ==================================================
    # Blueprints
    # ==================================================
    from twofactor.auth import auth_bp, login_manager
    from twofactor.routes.two_factor import two_factor_bp

    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(two_factor_bp)

    # ==================================================
    # Database Initialization (tables)
    # ==================================================
    with app.app_context():
        from twofactor import models  # noqa: F401
        db.create_all()

    # ==================================================
    # Security Headers
    # ==================================================
    @app.after_request
    def apply_security_headers(response):
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.errorhandler(429)
    def rate_limited(exc):
        return jsonify({"error": "rate_limited", "detail": str(exc.description)}), 429

    @app.route("/status")
    def status():
        return jsonify({"status": "ok"})

    return app
