"""
Unified authentication infrastructure module.

JWTs are issued by /api/auth/login and verified by Flask-JWT-Extended. Every
JWT failure is rendered with the same ``{"success": false, "error": {...}}``
envelope as the rest of the API. Admin routes use ``require_role("ADMIN")``.
"""
from functools import wraps

from flask import Flask, g, jsonify
from flask_jwt_extended import (
    JWTManager,
    create_access_token,
    current_user,
    verify_jwt_in_request,
)

from detailers.errors import AuthorizationError
from detailers.infra.log import get_logger

logger = get_logger("detailers.auth")


def _unauthorized(code: str, message: str):
    return jsonify({"success": False, "error": {"code": code, "message": message}}), 401


def init_jwt(app: Flask) -> JWTManager:
    jwt = JWTManager(app)

    @jwt.user_lookup_loader
    def _load_user(_jwt_header, jwt_data):
        from detailers.models.user import User  # models import infra.db
        user = User.query.filter_by(user_id=jwt_data["sub"]).first()
        if user is None or not user.is_active:
            return None
        return user

    @jwt.user_lookup_error_loader
    def _invalid_user(_jwt_header, jwt_data):
        logger.log_security_event("jwt_user_rejected", severity="warning", user_id=jwt_data.get("sub"))
        return _unauthorized("INVALID_USER", "User not found or inactive")

    @jwt.unauthorized_loader
    def _no_token(reason):
        return _unauthorized("NO_TOKEN", "Access token required")

    @jwt.invalid_token_loader
    def _invalid_token(reason):
        logger.log_security_event("jwt_invalid", severity="warning", reason=reason)
        return _unauthorized("INVALID_TOKEN", "Invalid access token")

    @jwt.expired_token_loader
    def _expired_token(_jwt_header, _jwt_payload):
        return _unauthorized("TOKEN_EXPIRED", "Access token expired")

    return jwt


def issue_access_token(user) -> str:
    return create_access_token(
        identity=user.user_id,
        additional_claims={"email": user.email, "role": user.role},
    )


def authenticated_user():
    """Verify the request's JWT and return its (active) user."""
    verify_jwt_in_request()
    g.user_id = current_user.user_id
    return current_user


def require_role(*roles):
    """Require a valid JWT whose user holds one of ``roles``."""
    allowed = {getattr(r, "value", r) for r in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = authenticated_user()
            if user.role not in allowed:
                logger.log_security_event("role_denied", severity="warning",
                                          user_id=user.user_id, role=user.role)
                raise AuthorizationError("Insufficient permissions",
                                         code="INSUFFICIENT_PERMISSIONS")
            return fn(*args, **kwargs)
        return wrapper
    return decorator
