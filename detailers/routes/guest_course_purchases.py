# -*- coding: utf-8 -*-
"""
Guest Course Purchase Routes.

Public endpoints let a buyer without an account create a purchase, set up
payment, poll its status and open the course with an access code. Admin
endpoints (JWT with role ADMIN) list, inspect, correct and delete purchases.
"""
from flask import Blueprint, current_app, request

from detailers.errors import AuthorizationError, NotFoundError
from detailers.infra.auth import authenticated_user, require_role
from detailers.middleware.errors import success_response
from detailers.models.purchase import PaymentStatus
from detailers.models.user import UserRole
from detailers.schemas.purchase import PaymentIntentSchema, PaymentStatusSchema, load_or_raise

guest_purchases_bp = Blueprint('guest_course_purchases', __name__,
                               url_prefix='/api/guest-course-purchases')


def _service():
    return current_app.extensions['purchase_service']


def _body() -> dict:
    return request.get_json(silent=True) or {}


@guest_purchases_bp.route('', methods=['POST'])
def create_purchase():
    body = _body()
    purchase = _service().create_purchase(
        course_id=body.get('courseId'),
        customer_name=body.get('customerName'),
        customer_email=body.get('customerEmail'),
        customer_phone=body.get('customerPhone'),
    )
    data = purchase.to_dict()
    data['checkout_url'] = f"{current_app.config['FRONTEND_ORIGIN']}/checkout/{purchase.purchase_id}"
    return success_response(data, 'Purchase created successfully', 201)


@guest_purchases_bp.route('/create-payment-intent', methods=['POST'])
def create_payment_intent():
    data = load_or_raise(PaymentIntentSchema(), _body())
    handle = _service().create_payment_intent(data['purchase_id'])
    return success_response({
        'client_secret': handle.client_secret,
        'payment_intent_id': handle.provider_payment_id,
        'amount': handle.amount,
        'currency': handle.currency,
        'purchase_id': data['purchase_id'],
    }, 'Payment intent created successfully')


@guest_purchases_bp.route('/access/<access_code>', methods=['GET'])
def access_course(access_code):
    """Open a purchased course with its access code (no login)."""
    purchase = _service().get_purchase_by_access_code(access_code)
    if purchase is None:
        raise NotFoundError('Invalid access code', code='INVALID_ACCESS_CODE')
    if purchase.payment_status != PaymentStatus.PAID.value:
        raise AuthorizationError('Payment required to access this course', code='PAYMENT_REQUIRED')
    return success_response(purchase.to_dict(), 'Course access granted')


@guest_purchases_bp.route('/stats/overview', methods=['GET'])
@require_role(UserRole.ADMIN)
def purchase_stats():
    return success_response(_service().purchase_stats(), 'Purchase statistics retrieved')


@guest_purchases_bp.route('/my-courses', methods=['GET'])
def my_courses():
    user = authenticated_user()
    purchases = _service().get_purchased_courses_by_email(user.email)
    return success_response([p.to_dict() for p in purchases], 'Purchased courses retrieved')


@guest_purchases_bp.route('/email/<email>', methods=['GET'])
def courses_by_email(email):
    user = authenticated_user()
    if user.role != UserRole.ADMIN.value and user.email.lower() != email.strip().lower():
        raise AuthorizationError('You can only view your own purchases')
    purchases = _service().get_purchased_courses_by_email(email)
    return success_response([p.to_dict() for p in purchases], 'Purchased courses retrieved')


@guest_purchases_bp.route('', methods=['GET'])
@require_role(UserRole.ADMIN)
def list_purchases():
    purchases = _service().list_purchases(
        course_id=request.args.get('courseId'),
        payment_status=request.args.get('paymentStatus'),
    )
    return success_response([p.to_dict() for p in purchases], 'Purchases retrieved')


@guest_purchases_bp.route('/<purchase_id>', methods=['GET'])
def get_purchase(purchase_id):
    purchase = _service().get_purchase(purchase_id)
    return success_response(purchase.to_dict(), 'Purchase retrieved')


@guest_purchases_bp.route('/<purchase_id>/refresh-status', methods=['POST'])
def refresh_status(purchase_id):
    """Re-read payment state from the provider; applies only what the provider reports."""
    purchase = _service().refresh_payment_status(purchase_id)
    return success_response(purchase.to_dict(), 'Payment status refreshed')


@guest_purchases_bp.route('/<purchase_id>/payment', methods=['PUT'])
@require_role(UserRole.ADMIN)
def update_payment(purchase_id):
    data = load_or_raise(PaymentStatusSchema(), _body())
    purchase = _service().update_payment_status(
        purchase_id,
        data['payment_status'],
        payment_method=data.get('payment_method'),
        transaction_id=data.get('transaction_id'),
    )
    return success_response(purchase.to_dict(), 'Payment status updated successfully')


@guest_purchases_bp.route('/<purchase_id>', methods=['DELETE'])
@require_role(UserRole.ADMIN)
def delete_purchase(purchase_id):
    _service().delete_purchase(purchase_id)
    return success_response(None, 'Purchase deleted successfully')


@guest_purchases_bp.route('/<purchase_id>/send-credentials', methods=['POST'])
@require_role(UserRole.ADMIN)
def send_credentials(purchase_id):
    result = _service().send_credentials(purchase_id)
    return success_response(result, 'Credentials sent successfully')
