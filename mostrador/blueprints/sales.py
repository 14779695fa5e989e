"""Sales blueprint - sale commit, refunds and cancellation (JSON, tenant-scoped)."""
from flask import Blueprint, request, jsonify, current_app, g

from mostrador.database import get_session
from mostrador.decorators.permissions import require_permission
from mostrador.exceptions import SaasError
from mostrador.middleware import require_login, require_tenant
from mostrador.schemas import load
from mostrador.schemas.sales import SaleCreate, RefundCreate, SaleCancel
from mostrador.services import refund_service, sale_cancel_service, sales_service
from mostrador.services.plan_access_service import enforce_monthly_sales_limit
from mostrador.blueprints.metrics import sales_committed_total, sales_rejected_total

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


@sales_bp.route('/', methods=['POST'])
@require_login
@require_tenant
@require_permission('create_sales')
@enforce_monthly_sales_limit
def create():
    """Commit a sale from a JSON cart. Totals are always recomputed server-side."""
    try:
        data = load(SaleCreate, request.get_json(silent=True))
        sale = sales_service.create_sale(get_session(), g.tenant_id, g.user.id, data)
    except SaasError as e:
        sales_rejected_total.labels(code=e.code).inc()
        current_app.logger.warning(f"[SALE] Rejected for tenant {g.tenant_id}: {e.code} {e.message}")
        raise

    sales_committed_total.labels(payment_method=sale.payment_method).inc()
    return jsonify(sales_service.serialize_sale(sale)), 201


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_sales')
def detail(sale_id: int):
    sale = sales_service.get_sale(get_session(), g.tenant_id, sale_id)
    return jsonify(sales_service.serialize_sale(sale))


@sales_bp.route('/<int:sale_id>/refunds', methods=['POST'])
@require_login
@require_tenant
@require_permission('create_refunds')
def refund(sale_id: int):
    data = load(RefundCreate, request.get_json(silent=True))
    created = refund_service.create_refund(get_session(), g.tenant_id, g.user.id, sale_id, data)
    return jsonify(refund_service.serialize_refund(created)), 201


@sales_bp.route('/<int:sale_id>/cancel', methods=['POST'])
@require_login
@require_tenant
@require_permission('cancel_sales')
def cancel(sale_id: int):
    data = load(SaleCancel, request.get_json(silent=True))
    sale = sale_cancel_service.cancel_sale(get_session(), g.tenant_id, g.user.id, sale_id, data.reason)
    return jsonify(sales_service.serialize_sale(sale))
