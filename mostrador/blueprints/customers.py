"""Customers blueprint - current-account payments and credit limits (JSON, tenant-scoped)."""
from flask import Blueprint, request, jsonify, g

from mostrador.database import get_session
from mostrador.decorators.permissions import require_permission
from mostrador.middleware import require_login, require_tenant
from mostrador.schemas import load
from mostrador.schemas.customers import CustomerPaymentCreate, CreditLimitUpdate
from mostrador.services import credit_service

customers_bp = Blueprint('customers', __name__, url_prefix='/customers')


@customers_bp.route('/<int:customer_id>/payments', methods=['POST'])
@require_login
@require_tenant
@require_permission('register_customer_payment')
def register_payment(customer_id: int):
    data = load(CustomerPaymentCreate, request.get_json(silent=True))
    session = get_session()
    payment = credit_service.register_customer_payment(session, g.tenant_id, g.user.id, customer_id, data)
    return jsonify({
        'payment': credit_service.serialize_payment(payment),
        'customer': credit_service.serialize_customer(payment.customer),
    }), 201


@customers_bp.route('/<int:customer_id>/credit-limit', methods=['PUT'])
@require_login
@require_tenant
@require_permission('edit_credit_limit')
def update_credit_limit(customer_id: int):
    data = load(CreditLimitUpdate, request.get_json(silent=True))
    customer = credit_service.update_credit_limit(
        get_session(), g.tenant_id, g.user.id, customer_id, data.credit_limit
    )
    return jsonify(credit_service.serialize_customer(customer))
