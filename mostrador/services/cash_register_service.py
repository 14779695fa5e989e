"""
Cash Register Reconciliation Engine.

Owns the lifecycle of an operator's cash shift (OPEN -> CLOSED), derives the
running and closing summaries from the sales and refunds linked to the shift,
and validates the counted-vs-expected cash difference at close.
"""
import logging
from datetime import timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import selectinload

from mostrador.database import utcnow
from mostrador.exceptions import (
    SaasError, BusinessLogicError, NotFoundError, CashRegisterAlreadyOpenError,
    CashRegisterClosedError, CashDifferenceNotesRequiredError, ConcurrencyConflictError
)
from mostrador.models import (
    CashRegister, CashRegisterStatus, CashMovement, CashMovementType, CashMovementReference,
    Sale, SaleStatus, Refund, AuditAction, payment_bucket
)
from mostrador.services import ticket_service
from mostrador.services.audit_service import log_action
from mostrador.utils.formatters import money_ar, signed_money_ar, datetime_ar
from mostrador.utils.numeric import to_decimal, round_money, ZERO

logger = logging.getLogger(__name__)

# Sales that never reach a shift summary
EXCLUDED_SALE_STATUSES = (SaleStatus.ANULADO, SaleStatus.PENDIENTE)

BUCKETS = ('cash', 'card', 'transfer', 'other')


def _auth_threshold() -> Decimal:
    if has_app_context():
        return to_decimal(current_app.config.get('CASH_DIFFERENCE_AUTH_THRESHOLD', '50'))
    return Decimal('50')


# =====================================================
# SUMMARY (pure)
# =====================================================

def sale_cash_amount(sale) -> Decimal:
    """Cash actually taken into the drawer for ``sale`` (its cash splits when mixed)."""
    if sale.has_mixed_payment:
        return sum(
            (to_decimal(split.amount) for split in sale.payments if payment_bucket(split.payment_method) == 'cash'),
            ZERO
        )
    if payment_bucket(sale.payment_method) == 'cash':
        return to_decimal(sale.total)
    return ZERO


def build_shift_summary(opening_amount, sales: Iterable, refunds: Iterable,
                        cancelled_sales: Iterable = (), cash_payouts: Iterable = ()) -> Dict[str, Any]:
    """
    Aggregate a shift's sales and refunds by payment bucket.

    Mixed-payment sales are split: each SalePayment amount goes to its own
    bucket, so the cash part of a mixed sale counts as cash.

    Cancelled sales stay out of every total but the cash they brought in is
    still in the drawer, and the cancellation payouts drawn from this drawer
    (for sales of this or an earlier shift) are taken out of it.

    ``expected_cash = opening + cash sales (incl. cash splits) + cash of
    cancelled sales - cash refunds - cancellation payouts``

    Args:
        opening_amount: Shift opening cash
        sales: objects with total, subtotal, payment_method, has_mixed_payment, payments
        refunds: objects with refund_amount, refund_method
        cancelled_sales: cancelled sales taken in this shift, same shape as ``sales``
        cash_payouts: amounts paid back from this drawer by cancellations
    """
    opening = to_decimal(opening_amount)
    buckets = {name: ZERO for name in BUCKETS}
    mixed_total = ZERO
    mixed_cash = ZERO
    gross = ZERO
    net = ZERO
    sales_count = 0

    for sale in sales:
        sales_count += 1
        total = to_decimal(sale.total)
        gross += to_decimal(sale.subtotal)
        net += total

        if sale.has_mixed_payment:
            mixed_total += total
            for split in sale.payments:
                bucket = payment_bucket(split.payment_method)
                amount = to_decimal(split.amount)
                buckets[bucket] += amount
                if bucket == 'cash':
                    mixed_cash += amount
        else:
            buckets[payment_bucket(sale.payment_method)] += total

    total_refunds = ZERO
    cash_refunds = ZERO
    refunds_count = 0
    for refund in refunds:
        refunds_count += 1
        amount = to_decimal(refund.refund_amount)
        total_refunds += amount
        if payment_bucket(refund.refund_method) == 'cash':
            cash_refunds += amount

    cancelled_cash = sum((sale_cash_amount(sale) for sale in cancelled_sales), ZERO)
    payouts = sum((to_decimal(amount) for amount in cash_payouts), ZERO)

    expected_cash = opening + buckets['cash'] + cancelled_cash - cash_refunds - payouts

    return {
        'opening_amount': round_money(opening),
        'sales_count': sales_count,
        'total_sales': round_money(net),
        'total_cash': round_money(buckets['cash']),
        'total_card': round_money(buckets['card']),
        'total_transfer': round_money(buckets['transfer']),
        'total_other': round_money(buckets['other']),
        'total_mixed': round_money(mixed_total),
        'mixed_cash': round_money(mixed_cash),
        'gross_sales': round_money(gross),
        'net_sales': round_money(net),
        'refunds_count': refunds_count,
        'total_refunds': round_money(total_refunds),
        'cash_refunds': round_money(cash_refunds),
        'cancelled_cash': round_money(cancelled_cash),
        'cancellation_payouts': round_money(payouts),
        # No tax-authority integration yet
        'invoiced_total': round_money(ZERO),
        'non_invoiced_total': round_money(ZERO),
        'expected_cash': round_money(expected_cash),
    }


def hours_between(start, end) -> Decimal:
    """Wall-clock hours between two datetimes, one decimal. Naive values are UTC."""
    start = _as_utc(start)
    end = _as_utc(end)
    seconds = Decimal(str((end - start).total_seconds()))
    return (seconds / Decimal('3600')).quantize(Decimal('0.1'))


def average_ticket(total_sales, sales_count: int) -> Decimal:
    if not sales_count:
        return round_money(ZERO)
    return round_money(to_decimal(total_sales) / Decimal(sales_count))


def _as_utc(value):
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =====================================================
# QUERIES
# =====================================================

def get_open_register(session, tenant_id: int, user_id: int, lock: bool = False) -> Optional[CashRegister]:
    """The operator's OPEN register, or None."""
    query = session.query(CashRegister).filter(
        CashRegister.tenant_id == tenant_id,
        CashRegister.user_id == user_id,
        CashRegister.status == CashRegisterStatus.OPEN,
    )
    if lock:
        query = query.with_for_update().populate_existing()
    return query.first()


def compute_shift_summary(session, register: CashRegister) -> Dict[str, Any]:
    """Summary of the sales, refunds and cancellation payouts that reference ``register``."""
    linked = (
        session.query(Sale)
        .options(selectinload(Sale.payments))
        .filter(
            Sale.tenant_id == register.tenant_id,
            Sale.cash_register_id == register.id,
            Sale.status != SaleStatus.PENDIENTE,
        )
        .all()
    )
    sales = [sale for sale in linked if sale.status not in EXCLUDED_SALE_STATUSES]
    cancelled = [sale for sale in linked if sale.status == SaleStatus.ANULADO]
    refunds = (
        session.query(Refund)
        .filter(Refund.tenant_id == register.tenant_id, Refund.cash_register_id == register.id)
        .all()
    )
    payouts = [
        amount for (amount,) in session.query(CashMovement.amount).filter(
            CashMovement.tenant_id == register.tenant_id,
            CashMovement.cash_register_id == register.id,
            CashMovement.type == CashMovementType.EGRESO,
            CashMovement.reference_type == CashMovementReference.SALE,
        )
    ]
    return build_shift_summary(register.opening_amount, sales, refunds, cancelled, payouts)


def get_current_cash_register(session, tenant_id: int, user_id: int) -> Optional[Tuple[CashRegister, Dict[str, Any]]]:
    """
    The operator's OPEN register with its running summary, or None.

    Read-only; the summary is computed, never stored while OPEN.
    """
    register = get_open_register(session, tenant_id, user_id)
    if register is None:
        return None
    return register, compute_shift_summary(session, register)


def list_cash_registers(session, tenant_id: int, user_id: int = None, status: CashRegisterStatus = None,
                        date_from=None, date_to=None, limit: int = 50):
    """Tenant's registers, newest first."""
    query = session.query(CashRegister).filter(CashRegister.tenant_id == tenant_id)
    if user_id:
        query = query.filter(CashRegister.user_id == user_id)
    if status:
        query = query.filter(CashRegister.status == status)
    if date_from:
        query = query.filter(CashRegister.opened_at >= date_from)
    if date_to:
        query = query.filter(CashRegister.opened_at <= date_to)
    return query.order_by(CashRegister.opened_at.desc(), CashRegister.id.desc()).limit(limit).all()


def list_cash_movements(session, tenant_id: int, user_id: int = None, cash_register_id: int = None,
                        movement_type: CashMovementType = None, date_from=None, date_to=None,
                        limit: int = 200) -> Dict[str, Any]:
    """
    Cash movements with income / expense / balance totals.

    Income is APERTURA + INGRESO; expense is EGRESO + SALIDA + CIERRE.
    """
    query = session.query(CashMovement).filter(CashMovement.tenant_id == tenant_id)
    if user_id:
        query = query.filter(CashMovement.user_id == user_id)
    if cash_register_id:
        query = query.filter(CashMovement.cash_register_id == cash_register_id)
    if movement_type:
        query = query.filter(CashMovement.type == movement_type)
    if date_from:
        query = query.filter(CashMovement.created_at >= date_from)
    if date_to:
        query = query.filter(CashMovement.created_at <= date_to)

    movements = query.order_by(CashMovement.id.desc()).limit(limit).all()

    income = sum(
        (to_decimal(m.amount) for m in movements
         if m.type in (CashMovementType.APERTURA, CashMovementType.INGRESO)),
        ZERO
    )
    expense = sum(
        (to_decimal(m.amount) for m in movements
         if m.type in (CashMovementType.EGRESO, CashMovementType.SALIDA, CashMovementType.CIERRE)),
        ZERO
    )
    return {
        'movements': movements,
        'totals': {
            'income': round_money(income),
            'expense': round_money(expense),
            'balance': round_money(income - expense),
        },
    }


# =====================================================
# LIFECYCLE
# =====================================================

def open_cash_register(session, tenant_id: int, user_id: int, data) -> CashRegister:
    """
    Open a shift for the operator.

    Args:
        data: ``schemas.cash.CashOpen``

    Raises:
        CashRegisterAlreadyOpenError: the operator already has an OPEN shift
        ConcurrencyConflictError: a concurrent open won the race
    """
    try:
        ticket_service.lock_operator(session, user_id)

        existing = get_open_register(session, tenant_id, user_id)
        if existing is not None:
            raise CashRegisterAlreadyOpenError(existing.id)

        opening_amount = round_money(data.opening_amount)
        register = CashRegister(
            tenant_id=tenant_id,
            user_id=user_id,
            status=CashRegisterStatus.OPEN,
            opened_at=utcnow(),
            opening_amount=opening_amount,
            opening_notes=(data.notes or '').strip() or None,
        )
        session.add(register)
        session.flush()

        session.add(CashMovement(
            tenant_id=tenant_id,
            user_id=user_id,
            cash_register_id=register.id,
            type=CashMovementType.APERTURA,
            amount=opening_amount,
            description=f'Apertura de caja {register.closing_number}',
            reference_type=CashMovementReference.CASH_REGISTER,
            reference_id=register.id,
        ))
        log_action(
            session,
            AuditAction.CASH_REGISTER_OPENED,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type='cash_register',
            resource_id=register.id,
            details={'opening_amount': opening_amount},
        )
        session.commit()

    except SaasError as e:
        session.rollback()
        logger.warning(f"[CASH] Open rejected for user {user_id}: {e.message}")
        raise
    except (IntegrityError, OperationalError) as e:
        session.rollback()
        logger.warning(f"[CASH] Concurrent open for user {user_id}: {e.__class__.__name__}")
        raise ConcurrencyConflictError()
    except Exception:
        session.rollback()
        logger.exception(f"[CASH] Unexpected error opening register for user {user_id}")
        raise

    logger.info(f"[CASH] Register {register.id} opened by user {user_id} with {register.opening_amount}")
    return register


def close_cash_register(session, tenant_id: int, user_id: int, cash_register_id: int,
                        data) -> Tuple[CashRegister, Dict[str, Any]]:
    """
    Close the operator's shift.

    A nonzero difference needs a note; without one nothing changes and the
    computed difference and expected amount are returned in the error.

    Args:
        data: ``schemas.cash.CashClose``

    Returns:
        (closed register, closing summary with hours_worked and average_ticket)

    Raises:
        NotFoundError: no such register for this operator and tenant
        CashRegisterClosedError: already closed
        CashDifferenceNotesRequiredError: difference != 0 and no notes
    """
    try:
        register = (
            session.query(CashRegister)
            .filter(
                CashRegister.id == cash_register_id,
                CashRegister.tenant_id == tenant_id,
                CashRegister.user_id == user_id,
            )
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if register is None:
            raise NotFoundError('Caja no encontrada', payload={'cash_register_id': cash_register_id})
        if register.status == CashRegisterStatus.CLOSED:
            raise CashRegisterClosedError(register.id)

        closed_at = utcnow()
        summary = compute_shift_summary(session, register)
        closing_amount = round_money(data.closing_amount)
        expected = summary['expected_cash']
        difference = round_money(closing_amount - expected)
        notes = (data.notes or '').strip()

        if difference != 0 and not notes:
            raise CashDifferenceNotesRequiredError(difference, expected)

        threshold = _auth_threshold()

        register.status = CashRegisterStatus.CLOSED
        register.closed_at = closed_at
        register.closing_amount = closing_amount
        register.expected_amount = expected
        register.difference = difference
        register.total_sales = summary['total_sales']
        register.total_cash = summary['total_cash']
        register.total_card = summary['total_card']
        register.total_transfer = summary['total_transfer']
        register.total_other = summary['total_other']
        register.total_refunds = summary['total_refunds']
        register.gross_sales = summary['gross_sales']
        register.net_sales = summary['net_sales']
        register.invoiced_total = summary['invoiced_total']
        register.non_invoiced_total = summary['non_invoiced_total']
        register.sales_count = summary['sales_count']
        register.refunds_count = summary['refunds_count']
        register.notes = notes or None
        register.requires_authorization = abs(difference) >= threshold

        session.add(CashMovement(
            tenant_id=tenant_id,
            user_id=user_id,
            cash_register_id=register.id,
            type=CashMovementType.CIERRE,
            amount=closing_amount,
            description=(
                f'Cierre de caja {register.closing_number} - Diferencia: '
                f'{"+" if difference >= 0 else ""}{difference} - {notes or "Sin observaciones"}'
            )[:500],
            reference_type=CashMovementReference.CASH_REGISTER,
            reference_id=register.id,
        ))
        log_action(
            session,
            AuditAction.CASH_REGISTER_CLOSED,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type='cash_register',
            resource_id=register.id,
            details={
                'closing_amount': closing_amount,
                'expected_amount': expected,
                'difference': difference,
                'requires_authorization': register.requires_authorization,
            },
        )
        session.commit()

    except SaasError as e:
        session.rollback()
        logger.warning(f"[CASH] Close of register {cash_register_id} rejected: {e.message}")
        raise
    except (IntegrityError, OperationalError) as e:
        session.rollback()
        logger.warning(f"[CASH] Conflict closing register {cash_register_id}: {e.__class__.__name__}")
        raise ConcurrencyConflictError()
    except Exception:
        session.rollback()
        logger.exception(f"[CASH] Unexpected error closing register {cash_register_id}")
        raise

    summary.update({
        'closing_amount': closing_amount,
        'expected_amount': expected,
        'difference': difference,
        'requires_authorization': register.requires_authorization,
        'hours_worked': hours_between(register.opened_at, closed_at),
        'average_ticket': average_ticket(summary['total_sales'], summary['sales_count']),
    })
    logger.info(
        f"[CASH] Register {register.id} closed by user {user_id}: expected={expected} "
        f"counted={closing_amount} difference={difference}"
    )
    return register, summary


def register_cash_movement(session, tenant_id: int, user_id: int, data) -> CashMovement:
    """
    Manual INGRESO / EGRESO on the operator's OPEN register.

    Audit only: manual movements do not change the expected cash.
    """
    try:
        register = get_open_register(session, tenant_id, user_id)
        if register is None:
            raise BusinessLogicError('No hay una caja abierta para registrar el movimiento')

        movement = CashMovement(
            tenant_id=tenant_id,
            user_id=user_id,
            cash_register_id=register.id,
            type=data.type,
            amount=round_money(data.amount),
            description=data.description.strip(),
            reference_type=CashMovementReference.MANUAL,
        )
        session.add(movement)
        session.flush()

        log_action(
            session,
            AuditAction.CASH_MOVEMENT_CREATED,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type='cash_movement',
            resource_id=movement.id,
            details={'type': data.type.value, 'amount': movement.amount, 'cash_register_id': register.id},
        )
        session.commit()

    except SaasError as e:
        session.rollback()
        logger.warning(f"[CASH] Manual movement rejected for user {user_id}: {e.message}")
        raise
    except (IntegrityError, OperationalError) as e:
        session.rollback()
        logger.warning(f"[CASH] Conflict registering manual movement for user {user_id}: {e.__class__.__name__}")
        raise ConcurrencyConflictError()
    except Exception:
        session.rollback()
        logger.exception(f"[CASH] Unexpected error registering manual movement for user {user_id}")
        raise

    logger.info(f"[CASH] Manual {movement.type.value} of {movement.amount} on register {movement.cash_register_id}")
    return movement


# =====================================================
# SERIALIZATION / REPORT
# =====================================================

def _money_dict(summary: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in summary.items()}


def serialize_register(register: CashRegister, summary: Dict[str, Any] = None) -> Dict[str, Any]:
    def _s(value):
        return str(value) if value is not None else None

    data = {
        'id': register.id,
        'closing_number': register.closing_number,
        'user_id': register.user_id,
        'status': register.status.value,
        'opened_at': register.opened_at.isoformat() if register.opened_at else None,
        'opening_amount': _s(register.opening_amount),
        'closed_at': register.closed_at.isoformat() if register.closed_at else None,
        'closing_amount': _s(register.closing_amount),
        'expected_amount': _s(register.expected_amount),
        'difference': _s(register.difference),
        'total_cash': _s(register.total_cash),
        'total_card': _s(register.total_card),
        'total_transfer': _s(register.total_transfer),
        'total_other': _s(register.total_other),
        'total_refunds': _s(register.total_refunds),
        'sales_count': register.sales_count,
        'refunds_count': register.refunds_count,
        'notes': register.notes,
        'requires_authorization': register.requires_authorization,
    }
    if summary is not None:
        data['summary'] = _money_dict(summary)
    return data


def serialize_movement(movement: CashMovement) -> Dict[str, Any]:
    return {
        'id': movement.id,
        'type': movement.type.value,
        'amount': str(movement.amount),
        'description': movement.description,
        'cash_register_id': movement.cash_register_id,
        'user_id': movement.user_id,
        'reference_type': movement.reference_type.value,
        'reference_id': movement.reference_id,
        'created_at': movement.created_at.isoformat() if movement.created_at else None,
    }


def format_closing_report(register: CashRegister) -> str:
    """Plain-text closing report of a CLOSED register."""
    if register.status != CashRegisterStatus.CLOSED:
        raise BusinessLogicError('La caja todavía está abierta')

    lines = [
        f"CIERRE DE CAJA {register.closing_number}",
        f"Período: {datetime_ar(register.opened_at)} - {datetime_ar(register.closed_at)}",
        "",
        f"Ventas:               {register.sales_count}",
        f"Devoluciones:         {register.refunds_count}",
        "",
        f"Efectivo:             {money_ar(register.total_cash)}",
        f"Tarjeta:              {money_ar(register.total_card)}",
        f"Transferencia:        {money_ar(register.total_transfer)}",
    ]
    if to_decimal(register.total_other) > 0:
        lines.append(f"Otros:                {money_ar(register.total_other)}")
    lines += [
        f"Total bruto:          {money_ar(register.gross_sales)}",
        f"Total neto:           {money_ar(register.net_sales)}",
    ]
    if to_decimal(register.total_refunds) > 0:
        lines.append(f"Total devuelto:       {money_ar(register.total_refunds)}")
    lines += [
        "",
        f"Total facturado:      {money_ar(register.invoiced_total)}",
        f"Total no facturado:   {money_ar(register.non_invoiced_total)}",
        "",
        f"Apertura:             {money_ar(register.opening_amount)}",
        f"Efectivo esperado:    {money_ar(register.expected_amount)}",
        f"Efectivo contado:     {money_ar(register.closing_amount)}",
        f"Diferencia:           {signed_money_ar(register.difference)}",
    ]
    if register.requires_authorization:
        lines.append("REQUIERE AUTORIZACIÓN")
    if register.notes:
        lines.append(f"Observaciones: {register.notes}")
    return "\n".join(lines)
