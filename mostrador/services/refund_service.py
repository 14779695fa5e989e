"""
Refund service - total or partial refunds of committed sales (tenant-scoped).

A refund links to the operator's OPEN register (if any); that register's
close subtracts the cash-labelled refunds from the expected cash.
"""
import logging
from decimal import Decimal
from typing import Dict, Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError

from mostrador.exceptions import (
    SaasError, BusinessLogicError, NotFoundError, RefundLimitError, ConcurrencyConflictError
)
from mostrador.models import (
    Sale, SaleLine, SaleStatus, Refund, RefundItem, RefundType, CashMovement,
    CashMovementType, CashMovementReference, PaymentMethod, AuditAction,
    StockMoveType, StockReferenceType
)
from mostrador.services import cash_register_service, credit_service, stock_service
from mostrador.services.audit_service import log_action
from mostrador.utils.numeric import round_money, to_decimal, ZERO

logger = logging.getLogger(__name__)


def refund_method_for(sale: Sale) -> str:
    """Money label of a refund: the sale's method; mixed sales pay back in cash."""
    if sale.has_mixed_payment:
        return PaymentMethod.EFECTIVO.value
    return sale.payment_method


def _lock_sale(session, tenant_id: int, sale_id: int) -> Sale:
    sale = (
        session.query(Sale)
        .filter(Sale.id == sale_id, Sale.tenant_id == tenant_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if sale is None:
        raise NotFoundError('Venta no encontrada', payload={'sale_id': sale_id})
    return sale


def _refunded_quantities(session, sale_id: int) -> Dict[int, Decimal]:
    rows = (
        session.query(RefundItem.sale_line_id, func.sum(RefundItem.qty))
        .join(Refund, Refund.id == RefundItem.refund_id)
        .filter(Refund.sale_id == sale_id)
        .group_by(RefundItem.sale_line_id)
        .all()
    )
    return {line_id: to_decimal(qty) for line_id, qty in rows}


def create_refund(session, tenant_id: int, user_id: int, sale_id: int, data) -> Refund:
    """
    Refund part or all of a sale.

    Steps:
    1. Validate the sale (tenant, not cancelled, not fully refunded)
    2. Validate amount against what is still refundable
    3. Validate each item against sold minus already refunded
    4. Insert refund + items, restock if requested (stock IN move)
    5. Update sale status (REEMBOLSADO / PARCIALMENTE_REEMBOLSADO)
    6. SALIDA cash movement, or credit note for on-account sales
    7. Commit

    Args:
        data: ``schemas.sales.RefundCreate``

    Raises:
        NotFoundError, BusinessLogicError, RefundLimitError
    """
    try:
        sale = _lock_sale(session, tenant_id, sale_id)

        if sale.status == SaleStatus.ANULADO:
            raise BusinessLogicError('No se puede devolver una venta anulada')
        if sale.status == SaleStatus.REEMBOLSADO:
            raise BusinessLogicError('Esta venta ya fue completamente reembolsada')

        sale_total = to_decimal(sale.total)
        already_refunded = to_decimal(
            session.query(func.coalesce(func.sum(Refund.refund_amount), 0))
            .filter(Refund.sale_id == sale.id)
            .scalar()
        )
        refund_amount = round_money(data.refund_amount)
        max_refundable = round_money(sale_total - already_refunded)

        if refund_amount > max_refundable:
            raise RefundLimitError(
                'El monto total de devoluciones excede el total de la venta',
                payload={
                    'total_sale': str(sale_total),
                    'total_refunded': str(already_refunded),
                    'max_refundable': str(max_refundable),
                }
            )

        lines = {line.id: line for line in session.query(SaleLine).filter(SaleLine.sale_id == sale.id).all()}
        refunded_qty = _refunded_quantities(session, sale.id)
        requested: Dict[int, Decimal] = {}
        for item in data.items:
            requested[item.sale_line_id] = requested.get(item.sale_line_id, ZERO) + item.quantity

        for line_id, qty in requested.items():
            line = lines.get(line_id)
            if line is None:
                raise NotFoundError(
                    f'Item de venta {line_id} no encontrado',
                    payload={'sale_line_id': line_id}
                )
            done = refunded_qty.get(line_id, ZERO)
            if done + qty > to_decimal(line.qty):
                raise RefundLimitError(
                    f'La cantidad a devolver de "{line.product.name}" excede la cantidad vendida',
                    payload={
                        'sale_line_id': line_id,
                        'sold': str(line.qty),
                        'already_refunded': str(done),
                        'max_refundable': str(to_decimal(line.qty) - done),
                    }
                )

        register = cash_register_service.get_open_register(session, tenant_id, user_id)
        refund = Refund(
            tenant_id=tenant_id,
            sale_id=sale.id,
            user_id=user_id,
            cash_register_id=register.id if register else None,
            type=RefundType(data.type),
            reason=data.reason.strip(),
            refund_amount=refund_amount,
            refund_method=refund_method_for(sale),
            restock_items=data.restock_items,
            notes=data.notes,
        )
        session.add(refund)
        session.flush()

        for line_id, qty in requested.items():
            line = lines[line_id]
            session.add(RefundItem(
                refund_id=refund.id,
                sale_line_id=line.id,
                product_id=line.product_id,
                variant_id=line.variant_id,
                qty=qty,
                unit_price=line.unit_price,
                subtotal=round_money(qty * to_decimal(line.unit_price)),
            ))

        label = 'total' if refund.type == RefundType.TOTAL else 'parcial'
        if data.restock_items:
            for line_id, qty in requested.items():
                stock_service.increase_stock(session, lines[line_id].product_id, lines[line_id].variant_id, qty)
            stock_service.record_stock_move(
                session, tenant_id, user_id, StockMoveType.IN, StockReferenceType.REFUND, refund.id,
                f'Devolución {label} - Venta #{sale.ticket_number}',
                [
                    (lines[line_id].product_id, lines[line_id].variant_id, qty, None)
                    for line_id, qty in requested.items()
                ]
            )

        fully_refunded = already_refunded + refund_amount >= sale_total
        sale.status = SaleStatus.REEMBOLSADO if fully_refunded else SaleStatus.PARCIALMENTE_REEMBOLSADO

        if sale.is_on_account:
            if sale.customer_id:
                customer = credit_service.lock_customer(session, tenant_id, sale.customer_id)
                credit_service.add_credit_note(
                    session, customer, refund_amount, user_id,
                    f'Devolución {label} - Venta #{sale.ticket_number}',
                    sale_id=sale.id, refund_id=refund.id
                )
        else:
            session.add(CashMovement(
                tenant_id=tenant_id,
                user_id=user_id,
                cash_register_id=refund.cash_register_id,
                type=CashMovementType.SALIDA,
                amount=refund_amount,
                description=f'Devolución {label} - Venta #{sale.ticket_number} - {refund.reason}'[:500],
                reference_type=CashMovementReference.REFUND,
                reference_id=refund.id,
            ))

        log_action(
            session,
            AuditAction.REFUND_CREATED,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type='sale',
            resource_id=sale.id,
            details={
                'refund_id': refund.id,
                'amount': refund_amount,
                'type': refund.type.value,
                'restock': data.restock_items,
                'sale_status': sale.status.value,
            }
        )
        session.commit()

    except SaasError as e:
        session.rollback()
        logger.warning(f"[REFUND] Refund of sale {sale_id} rejected: {e.message}")
        raise
    except (IntegrityError, OperationalError) as e:
        session.rollback()
        logger.warning(f"[REFUND] Conflict refunding sale {sale_id}: {e.__class__.__name__}")
        raise ConcurrencyConflictError()
    except Exception:
        session.rollback()
        logger.exception(f"[REFUND] Unexpected error refunding sale {sale_id}")
        raise

    logger.info(f"[REFUND] Refund {refund.id} of {refund.refund_amount} for sale {sale_id} ({refund.type.value})")
    return refund


def serialize_refund(refund: Refund) -> Dict[str, Any]:
    return {
        'id': refund.id,
        'sale_id': refund.sale_id,
        'type': refund.type.value,
        'reason': refund.reason,
        'refund_amount': str(refund.refund_amount),
        'refund_method': refund.refund_method,
        'restock_items': refund.restock_items,
        'cash_register_id': refund.cash_register_id,
        'items': [
            {
                'sale_line_id': item.sale_line_id,
                'product_id': item.product_id,
                'variant_id': item.variant_id,
                'qty': str(item.qty),
                'unit_price': str(item.unit_price),
                'subtotal': str(item.subtotal),
            }
            for item in refund.items
        ],
    }
