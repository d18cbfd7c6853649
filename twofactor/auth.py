from flask import Blueprint, request, jsonify, session, current_app
from flask_login import (
    LoginManager, login_user,
    logout_user, login_required, current_user
)
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError

from twofactor import db, limiter
from twofactor.enrollment import TwoFactorError, is_two_factor_required, verify_login
from twofactor.forms import LoginForm, TokenOrBackupForm
from twofactor.models.user import User
from twofactor.models.login_log import LoginLog

# ------------------------------------------------------
# Init components
# ------------------------------------------------------
auth_bp = Blueprint("auth", __name__, url_prefix="/auth")
login_manager = LoginManager()

PENDING_KEY = "pending_2fa_user_id"


# ------------------------------------------------------
# Flask-Login user loader
# Flask-Login stores user.id (integer), not username.
# ------------------------------------------------------
@login_manager.user_loader
def load_user(user_id):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "authentication_required"}), 401


# ------------------------------------------------------
# Login event logger
# ------------------------------------------------------
def log_login_event(username: str, status: str, method: str = None):
    try:
        ip_raw = request.headers.get("X-Forwarded-For", request.remote_addr) or ""
        ip = ip_raw.split(",")[0].strip()
        ua = (request.headers.get("User-Agent") or "")[:255]
        entry = LoginLog(username=username, status=status, method=method, ip=ip, user_agent=ua)
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Could not record login event %s for %s", status, username)


def _form_errors(form):
    return jsonify({"error": "invalid_input", "fields": form.errors}), 400


def _login_rate_limit():
    return current_app.config.get("TOTP_LOGIN_RATE_LIMIT", "5 per minute")


@auth_bp.route("/csrf", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


# ------------------------------------------------------
# LOGIN (password step)
# ------------------------------------------------------
@auth_bp.route("/login", methods=["POST"])
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return _form_errors(form)

    username = form.username.data
    user = User.query.filter_by(username=username).first()

    if not user:
        log_login_event(username or "unknown", "failed_no_user")
        return jsonify({"error": "invalid_credentials"}), 401

    if not user.check_password(form.password.data):
        log_login_event(username, "failed_bad_password")
        return jsonify({"error": "invalid_credentials"}), 401

    # 2FA check if enabled
    if is_two_factor_required(user.id):
        session[PENDING_KEY] = user.id
        log_login_event(username, "pending_2fa", method="password")
        return jsonify({"two_factor_required": True}), 202

    login_user(user)
    log_login_event(username, "success", method="password")
    return jsonify({"two_factor_required": False, "user_id": user.id}), 200


# ------------------------------------------------------
# LOGIN (second factor)
# ------------------------------------------------------
@auth_bp.route("/login/2fa", methods=["POST"])
@limiter.limit(_login_rate_limit)
def login_two_factor():
    user_id = session.get(PENDING_KEY)
    user = db.session.get(User, user_id) if user_id else None
    if not user:
        session.pop(PENDING_KEY, None)
        return jsonify({"error": "no_pending_login"}), 400

    form = TokenOrBackupForm()
    if not form.validate_on_submit():
        log_login_event(user.username, "failed_2fa")
        return _form_errors(form)

    try:
        result = verify_login(user.id, form.code.data)
    except TwoFactorError as exc:
        log_login_event(user.username, "failed_2fa")
        return jsonify({"error": exc.code}), 401
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({"error": "database_error"}), 500

    session.pop(PENDING_KEY, None)
    login_user(user)
    log_login_event(user.username, "success_2fa", method=result["method"])
    return jsonify(result), 200


# ------------------------------------------------------
# LOGOUT
# ------------------------------------------------------
@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    log_login_event(current_user.username, "logout")
    logout_user()
    session.pop(PENDING_KEY, None)
    return jsonify({"logged_out": True})
