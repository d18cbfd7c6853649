# twofactor/security.py
from functools import wraps
from flask import abort, jsonify
from flask_login import current_user

from twofactor.enrollment import is_two_factor_required


def user_has_role(*roles):
    if not current_user.is_authenticated:
        return False
    user_roles = set((current_user.role or "").lower().split(","))
    return any(r.lower() in user_roles for r in roles)


def role_required(*required_roles):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated or not user_has_role(*required_roles):
                abort(403)
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def admin_two_factor_required(fn):
    """Administrators must have 2FA enabled before using admin features."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)
        if current_user.is_admin() and not is_two_factor_required(current_user.id):
            return jsonify({
                "error": "two_factor_setup_required",
                "message": "All administrators must enable two-factor authentication.",
            }), 403
        return fn(*args, **kwargs)
    return wrapper
