"""Service for cancelling sales with stock reversal - Multi-Tenant."""
import logging
from decimal import Decimal
from typing import Dict, Tuple, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError

from mostrador.database import utcnow
from mostrador.exceptions import SaasError, BusinessLogicError, ConcurrencyConflictError
from mostrador.models import (
    Sale, SaleLine, SaleStatus, Refund, RefundItem, CashMovement, CashMovementType,
    CashMovementReference, AuditAction, StockMoveType, StockReferenceType, payment_bucket
)
from mostrador.services import cash_register_service, credit_service, stock_service
from mostrador.services.audit_service import log_action
from mostrador.services.refund_service import _lock_sale
from mostrador.utils.numeric import round_money, to_decimal, ZERO

logger = logging.getLogger(__name__)


def _restocked_by_refunds(session, sale_id: int) -> Dict[int, Decimal]:
    """Quantity per sale line already put back on the shelf by refunds."""
    rows = (
        session.query(RefundItem.sale_line_id, func.sum(RefundItem.qty))
        .join(Refund, Refund.id == RefundItem.refund_id)
        .filter(Refund.sale_id == sale_id, Refund.restock_items.is_(True))
        .group_by(RefundItem.sale_line_id)
        .all()
    )
    return {line_id: to_decimal(qty) for line_id, qty in rows}


def _refunded_by_method(session, sale_id: int) -> Dict[str, Decimal]:
    rows = (
        session.query(Refund.refund_method, func.sum(Refund.refund_amount))
        .filter(Refund.sale_id == sale_id)
        .group_by(Refund.refund_method)
        .all()
    )
    return {method: to_decimal(amount) for method, amount in rows}


def cancel_sale(session, tenant_id: int, user_id: int, sale_id: int, reason: str) -> Sale:
    """
    Cancel (void) a sale and reverse its effects (tenant-scoped).

    Steps:
    1. Validate sale exists, belongs to tenant and is not already cancelled
    2. Put back the sold quantity not already restocked by refunds
    3. Reverse the money not already refunded: a credit note for on-account
       sales, otherwise an EGRESO movement for the cash part still in the
       drawer (card and transfer parts go back through their own channel)
    4. Mark the sale ANULADO (kept for the audit trail, never deleted)
    5. Commit

    Args:
        reason: Free-text cancellation reason

    Raises:
        NotFoundError: sale missing or from another tenant
        BusinessLogicError: sale already cancelled
    """
    try:
        sale = _lock_sale(session, tenant_id, sale_id)

        if sale.status == SaleStatus.ANULADO:
            raise BusinessLogicError(
                f'La venta #{sale.ticket_number} ya está anulada',
                payload={'sale_id': sale.id}
            )

        lines = session.query(SaleLine).filter(SaleLine.sale_id == sale.id).all()
        restocked = _restocked_by_refunds(session, sale.id)

        to_restock: Dict[Tuple[int, Optional[int]], Decimal] = {}
        for line in lines:
            qty = to_decimal(line.qty) - restocked.get(line.id, ZERO)
            if qty <= 0:
                continue
            key = (line.product_id, line.variant_id)
            to_restock[key] = to_restock.get(key, ZERO) + qty

        for (product_id, variant_id), qty in to_restock.items():
            stock_service.increase_stock(session, product_id, variant_id, qty)

        if to_restock:
            stock_service.record_stock_move(
                session, tenant_id, user_id, StockMoveType.IN, StockReferenceType.SALE_CANCEL, sale.id,
                f'Anulación - Venta #{sale.ticket_number}',
                [(pid, vid, qty, None) for (pid, vid), qty in to_restock.items()]
            )

        refunded_by_method = _refunded_by_method(session, sale.id)
        already_refunded = sum(refunded_by_method.values(), ZERO)
        reversed_amount = round_money(max(to_decimal(sale.total) - already_refunded, ZERO))
        # Only the cash part comes out of the drawer; cash refunds already paid some of it back
        cash_refunded = sum(
            (amount for method, amount in refunded_by_method.items() if payment_bucket(method) == 'cash'),
            ZERO
        )
        cash_payout = round_money(max(
            cash_register_service.sale_cash_amount(sale) - cash_refunded, ZERO
        ))

        if reversed_amount > 0:
            if sale.is_on_account:
                if sale.customer_id:
                    customer = credit_service.lock_customer(session, tenant_id, sale.customer_id)
                    credit_service.add_credit_note(
                        session, customer, reversed_amount, user_id,
                        f'Anulación - Venta #{sale.ticket_number}',
                        sale_id=sale.id
                    )
            elif cash_payout > 0:
                register = cash_register_service.get_open_register(session, tenant_id, user_id)
                session.add(CashMovement(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    cash_register_id=register.id if register else None,
                    type=CashMovementType.EGRESO,
                    amount=cash_payout,
                    description=f'Anulación - Venta #{sale.ticket_number} - {reason}'[:500],
                    reference_type=CashMovementReference.SALE,
                    reference_id=sale.id,
                ))

        previous_status = sale.status
        sale.status = SaleStatus.ANULADO
        sale.cancelled_at = utcnow()
        sale.cancelled_by = user_id
        sale.cancel_reason = reason

        log_action(
            session,
            AuditAction.SALE_CANCELLED,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type='sale',
            resource_id=sale.id,
            details={
                'ticket_number': sale.ticket_number,
                'previous_status': previous_status.value,
                'reversed_amount': reversed_amount,
                'cash_payout': cash_payout,
                'reason': reason,
            }
        )
        session.commit()

    except SaasError:
        session.rollback()
        raise
    except (IntegrityError, OperationalError) as e:
        session.rollback()
        logger.warning(f"[SALE] Conflict cancelling sale {sale_id}: {e.__class__.__name__}")
        raise ConcurrencyConflictError()
    except Exception:
        session.rollback()
        logger.exception(f"[SALE] Unexpected error cancelling sale {sale_id}")
        raise

    logger.info(f"[SALE] Sale {sale.id} ticket #{sale.ticket_number} cancelled by user {user_id}")
    return sale
