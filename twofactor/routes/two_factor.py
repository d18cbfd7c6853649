# twofactor/routes/two_factor.py

from flask import Blueprint, jsonify, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import SQLAlchemyError

import io
import base64
import qrcode

from twofactor import db
from twofactor.enrollment import (
    TwoFactorError,
    confirm_two_factor,
    disable_two_factor,
    get_status,
    setup_two_factor,
)
from twofactor.forms import SetupForm, TokenForm, TokenOrBackupForm
from twofactor.models.user import User
from twofactor.security import admin_two_factor_required, role_required

two_factor_bp = Blueprint("two_factor_bp", __name__, url_prefix="/2fa")


def _status_payload(user):
    record = get_status(user.id)
    payload = record.to_status() if record else {"user_id": user.id, "is_enabled": False}
    payload["enforcement_required"] = user.is_admin() and not payload["is_enabled"]
    return payload


def _qr_png_base64(uri: str):
    """Render the provisioning URI as a base64 PNG. Returns (data, error)."""
    try:
        img = qrcode.make(uri)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return base64.b64encode(buf.getvalue()).decode("ascii"), None
    except Exception as exc:
        current_app.logger.warning("QR code rendering failed: %s", exc)
        return None, str(exc)


_ERROR_STATUS = {"not_configured": 404, "already_enabled": 409}


def _error(exc: TwoFactorError):
    status = _ERROR_STATUS.get(exc.code, 400)
    return jsonify({"error": exc.code, "message": str(exc)}), status


@two_factor_bp.route("/status", methods=["GET"])
@login_required
def status():
    return jsonify(_status_payload(current_user))


# -------------------------------
# 2FA: START SETUP
# -------------------------------
@two_factor_bp.route("/setup", methods=["POST"])
@login_required
def setup():
    form = SetupForm()
    if not form.validate_on_submit():
        return jsonify({"error": "invalid_input", "fields": form.errors}), 400

    try:
        result = setup_two_factor(current_user, form.code.data)
    except TwoFactorError as exc:
        return _error(exc)
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({"error": "database_error"}), 500

    qr_base64, qr_error = _qr_png_base64(result["otpauth_url"])
    result["qr_base64"] = qr_base64
    result["qr_supported"] = qr_base64 is not None
    if qr_error:
        result["qr_error"] = qr_error
    return jsonify(result), 201


# -------------------------------
# 2FA: CONFIRM SETUP
# -------------------------------
@two_factor_bp.route("/verify", methods=["POST"])
@login_required
def verify():
    form = TokenForm()
    if not form.validate_on_submit():
        return jsonify({"error": "invalid_input", "fields": form.errors}), 400

    try:
        record = confirm_two_factor(current_user, form.code.data)
    except TwoFactorError as exc:
        return _error(exc)
    return jsonify(record.to_status())


# -------------------------------
# 2FA: DISABLE
# -------------------------------
@two_factor_bp.route("/disable", methods=["POST"])
@login_required
def disable():
    form = TokenOrBackupForm()
    if not form.validate_on_submit():
        return jsonify({"error": "invalid_input", "fields": form.errors}), 400

    try:
        record = disable_two_factor(current_user, form.code.data)
    except TwoFactorError as exc:
        return _error(exc)
    return jsonify(record.to_status())


# -------------------------------
# ADMIN: another user's 2FA status
# -------------------------------
@two_factor_bp.route("/users/<int:user_id>", methods=["GET"])
@login_required
@role_required("admin", "superadmin")
@admin_two_factor_required
def user_status(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({"error": "not_found"}), 404
    return jsonify(_status_payload(user))
