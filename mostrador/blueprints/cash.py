"""Cash register blueprint - shift open/close, movements and history (JSON, tenant-scoped)."""
from datetime import datetime

from flask import Blueprint, request, jsonify, current_app, g, Response

from mostrador.database import get_session
from mostrador.decorators.permissions import require_permission, role_has_permission
from mostrador.exceptions import ValidationError, NotFoundError
from mostrador.middleware import require_login, require_tenant
from mostrador.models import CashRegister, CashRegisterStatus, CashMovementType
from mostrador.schemas import load
from mostrador.schemas.cash import CashOpen, CashClose, CashMovementCreate
from mostrador.services import cash_register_service
from mostrador.blueprints.metrics import cash_registers_closed_total

cash_bp = Blueprint('cash', __name__, url_prefix='/cash')


def _parse_date_arg(name: str):
    raw = request.args.get(name, '').strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(details=[{'field': name, 'message': 'Fecha inválida (formato ISO 8601)'}])


def _parse_enum_arg(name: str, enum_cls):
    raw = request.args.get(name, '').strip().upper()
    if not raw:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        raise ValidationError(details=[{'field': name, 'message': f'Valor inválido: {raw}'}])


def _history_user_filter():
    """Operators without history permission only see their own shifts."""
    if role_has_permission(g.user_role, 'view_cash_history'):
        return request.args.get('user_id', type=int)
    return g.user.id


@cash_bp.route('/open', methods=['POST'])
@require_login
@require_tenant
@require_permission('open_cash')
def open_register():
    data = load(CashOpen, request.get_json(silent=True))
    register = cash_register_service.open_cash_register(get_session(), g.tenant_id, g.user.id, data)
    return jsonify(cash_register_service.serialize_register(register)), 201


@cash_bp.route('/current', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_cash')
def current():
    """The operator's OPEN shift with its running summary (``null`` when none)."""
    result = cash_register_service.get_current_cash_register(get_session(), g.tenant_id, g.user.id)
    if result is None:
        return jsonify({'cash_register': None})
    register, summary = result
    return jsonify({'cash_register': cash_register_service.serialize_register(register, summary)})


@cash_bp.route('/<int:cash_register_id>/close', methods=['POST'])
@require_login
@require_tenant
@require_permission('close_cash')
def close_register(cash_register_id: int):
    data = load(CashClose, request.get_json(silent=True))
    register, summary = cash_register_service.close_cash_register(
        get_session(), g.tenant_id, g.user.id, cash_register_id, data
    )
    cash_registers_closed_total.labels(requires_authorization=str(register.requires_authorization).lower()).inc()
    if register.requires_authorization:
        current_app.logger.warning(
            f"[CASH] Register {register.id} closed with difference {register.difference}: authorization required"
        )
    return jsonify(cash_register_service.serialize_register(register, summary))


@cash_bp.route('/registers', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_cash')
def registers():
    registers = cash_register_service.list_cash_registers(
        get_session(),
        g.tenant_id,
        user_id=_history_user_filter(),
        status=_parse_enum_arg('status', CashRegisterStatus),
        date_from=_parse_date_arg('date_from'),
        date_to=_parse_date_arg('date_to'),
        limit=min(request.args.get('limit', 50, type=int), 200),
    )
    return jsonify({'cash_registers': [cash_register_service.serialize_register(r) for r in registers]})


@cash_bp.route('/<int:cash_register_id>/report', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_cash')
def report(cash_register_id: int):
    """Plain-text closing report of a closed shift."""
    query = get_session().query(CashRegister).filter(
        CashRegister.id == cash_register_id,
        CashRegister.tenant_id == g.tenant_id
    )
    if not role_has_permission(g.user_role, 'view_cash_history'):
        query = query.filter(CashRegister.user_id == g.user.id)
    register = query.first()
    if not register:
        raise NotFoundError('Caja no encontrada', payload={'cash_register_id': cash_register_id})
    text = cash_register_service.format_closing_report(register)
    return Response(text, mimetype='text/plain; charset=utf-8')


@cash_bp.route('/movements', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_cash')
def movements():
    result = cash_register_service.list_cash_movements(
        get_session(),
        g.tenant_id,
        user_id=_history_user_filter(),
        cash_register_id=request.args.get('cash_register_id', type=int),
        movement_type=_parse_enum_arg('type', CashMovementType),
        date_from=_parse_date_arg('date_from'),
        date_to=_parse_date_arg('date_to'),
    )
    return jsonify({
        'movements': [cash_register_service.serialize_movement(m) for m in result['movements']],
        'totals': {k: str(v) for k, v in result['totals'].items()},
    })


@cash_bp.route('/movements', methods=['POST'])
@require_login
@require_tenant
@require_permission('register_cash_movement')
def create_movement():
    data = load(CashMovementCreate, request.get_json(silent=True))
    movement = cash_register_service.register_cash_movement(get_session(), g.tenant_id, g.user.id, data)
    return jsonify(cash_register_service.serialize_movement(movement)), 201
