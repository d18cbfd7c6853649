# twofactor/enrollment.py
"""
Two-factor enrollment and login verification on top of twofactor.totp.

The TOTP module only computes and compares codes; this module owns the
persisted credential (secret, backup codes, enabled flag) for each user.
"""
from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from twofactor import db
from twofactor.models.event_log import EventLog
from twofactor.models.two_factor import TwoFactorAuth, utcnow
from twofactor.totp import (
    constant_time_compare,
    generate_backup_codes,
    generate_secret,
    is_valid_backup_code,
    is_valid_token_format,
    provisioning_uri,
    verify_totp,
)


class TwoFactorError(Exception):
    """Workflow failure carrying a short machine-readable code."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


# ------------------------------------------------------
# Helpers
# ------------------------------------------------------
def _log_event(user_id, message: str, category: str = "2fa"):
    db.session.add(EventLog(user_id=user_id, message=message, category=category))


def _verify_token(secret, token: str) -> bool:
    cfg = current_app.config
    return verify_totp(
        secret,
        token,
        window=cfg.get("TOTP_WINDOW", 1),
        step=cfg.get("TOTP_STEP", 30),
    )


def _match_backup_code(record: TwoFactorAuth, token: str):
    """Return the index of the stored backup code matching ``token``, or None."""
    candidate = token.upper()
    found = None
    for i, stored in enumerate(record.backup_codes or []):
        # keep scanning so timing does not reveal the position
        if constant_time_compare(candidate, stored) and found is None:
            found = i
    return found


def _check_token_or_backup(record: TwoFactorAuth, token: str):
    """Return "totp", "backup_code" or None. A matched backup code is consumed."""
    token = (token or "").strip()
    if is_valid_token_format(token):
        if _verify_token(record.secret, token):
            return "totp"
        return None
    if is_valid_backup_code(token):
        idx = _match_backup_code(record, token)
        if idx is not None:
            codes = list(record.backup_codes)
            del codes[idx]
            record.backup_codes = codes
            return "backup_code"
        return None
    raise TwoFactorError("invalid_format", "Code must be 6 digits or a backup code.")


# ------------------------------------------------------
# Queries
# ------------------------------------------------------
def get_status(user_id):
    return TwoFactorAuth.query.filter_by(user_id=user_id).first()


def _get_for_update(user_id):
    """Load the record with a row lock for paths that change it."""
    return TwoFactorAuth.query.filter_by(user_id=user_id).with_for_update().first()


def _commit_or_invalid():
    # a concurrent request changed the row first (e.g. spent the same backup code)
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise TwoFactorError("invalid_code", "Invalid verification code.")


def is_two_factor_required(user_id) -> bool:
    record = get_status(user_id)
    return bool(record and record.is_enabled)


# ------------------------------------------------------
# Enrollment
# ------------------------------------------------------
def setup_two_factor(user, token=None):
    """Start (or restart) setup with a fresh pending secret and backup codes.

    While 2FA is enabled the current credential must be proven with
    ``token`` and stays in force until the new secret is confirmed.
    """
    cfg = current_app.config
    record = _get_for_update(user.id)
    if record is None:
        record = TwoFactorAuth(user_id=user.id)
        db.session.add(record)
    elif record.is_enabled:
        if not token:
            raise TwoFactorError("already_enabled", "Enter a current code to replace your authenticator.")
        if _check_token_or_backup(record, token) is None:
            raise TwoFactorError("invalid_code", "Invalid verification code.")

    secret = generate_secret(cfg.get("TOTP_SECRET_LENGTH", 20))
    backup_codes = generate_backup_codes(cfg.get("TOTP_BACKUP_CODE_COUNT", 10))
    record.pending_secret = secret
    record.pending_backup_codes = backup_codes
    _log_event(user.id, "2FA setup started")
    _commit_or_invalid()

    return {
        "secret": secret,
        "backup_codes": backup_codes,
        "otpauth_url": provisioning_uri(cfg.get("TOTP_ISSUER", "EatLocal"), user.account_name, secret),
    }


def confirm_two_factor(user, token: str) -> TwoFactorAuth:
    """Promote the pending secret to the active credential."""
    record = _get_for_update(user.id)
    if record is None or record.pending_secret is None:
        raise TwoFactorError("not_configured", "No 2FA setup in progress.")

    token = (token or "").strip()
    if not is_valid_token_format(token):
        raise TwoFactorError("invalid_format", "Code must be 6 digits.")
    if not _verify_token(record.pending_secret, token):
        raise TwoFactorError("invalid_code", "Invalid verification code.")

    record.secret = record.pending_secret
    record.backup_codes = list(record.pending_backup_codes or [])
    record.pending_secret = None
    record.pending_backup_codes = None
    record.is_enabled = True
    record.verified_at = utcnow()
    _log_event(user.id, "2FA enabled")
    _commit_or_invalid()
    return record


def disable_two_factor(user, token: str) -> TwoFactorAuth:
    record = _get_for_update(user.id)
    if record is None or not record.is_enabled:
        raise TwoFactorError("not_configured", "Two-factor authentication is not enabled.")

    if _check_token_or_backup(record, token) is None:
        raise TwoFactorError("invalid_code", "Invalid verification code.")

    record.is_enabled = False
    record.verified_at = None
    record.secret = None
    record.backup_codes = []
    record.pending_secret = None
    record.pending_backup_codes = None
    _log_event(user.id, "2FA disabled")
    _commit_or_invalid()
    return record


# ------------------------------------------------------
# Login
# ------------------------------------------------------
def verify_login(user_id, token: str):
    """Second-factor check during sign-in.

    Users without an enabled credential pass straight through with
    ``skipped=True``. A backup code is removed once it has been used,
    and only one of several concurrent requests can spend it.
    """
    record = _get_for_update(user_id)
    if record is None or not record.is_enabled:
        return {"verified": True, "skipped": True, "method": None}

    method = _check_token_or_backup(record, token)
    if method is None:
        raise TwoFactorError("invalid_code", "Invalid verification code.")

    if method == "backup_code":
        _log_event(user_id, f"Backup code used ({len(record.backup_codes)} remaining)")
        _commit_or_invalid()

    return {"verified": True, "skipped": False, "method": method}
