# -*- coding: utf-8 -*-
from flask import Blueprint, current_app, request

from detailers.infra.auth import issue_access_token
from detailers.infra.log import get_logger
from detailers.middleware.errors import error_response, success_response
from detailers.schemas.auth import LoginSchema
from detailers.schemas.purchase import load_or_raise

logger = get_logger("detailers.auth")

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/login', methods=['POST'])
def login():
    data = load_or_raise(LoginSchema(), request.get_json(silent=True) or {})
    issuer = current_app.extensions['credential_issuer']

    user = issuer.authenticate(data['email'], data['password'])
    if user is None:
        logger.log_security_event('login_failed', severity='warning', email=data['email'])
        return error_response('INVALID_CREDENTIALS', 'Invalid email or password', 401)

    logger.log_security_event('login_succeeded', user_id=user.user_id)
    return success_response({
        'access_token': issue_access_token(user),
        'user': user.to_dict(),
    }, 'Login successful')
