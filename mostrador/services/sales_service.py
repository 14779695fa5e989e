"""
Sale Transaction Processor - Multi-Tenant.

Validates a cart against live stock and commits the whole sale aggregate
(sale, lines, payment splits, stock decrements, credit update, cash movement,
stock move, audit) in one transaction.
"""
import logging
from decimal import Decimal
from typing import List, Dict, Any, Tuple, Optional

from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from mostrador.database import utcnow
from mostrador.exceptions import (
    SaasError, BusinessLogicError, NotFoundError, InsufficientStockError,
    InactiveProductError, ArithmeticIntegrityError, ConcurrencyConflictError
)
from mostrador.models import (
    Product, ProductStock, ProductVariant, Sale, SaleLine, SalePayment,
    CashMovement, CustomerStatus, AuditAction,
    SaleStatus, DiscountType, PaymentMethod, StockMoveType, StockReferenceType,
    CashMovementType, CashMovementReference
)
from mostrador.services import cash_register_service, credit_service, stock_service, ticket_service
from mostrador.services.audit_service import log_action
from mostrador.utils.numeric import multiply, round_money, add, ZERO

logger = logging.getLogger(__name__)

# Largest amount a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal('9999999999.99')


def _setting(name: str, default):
    if has_app_context():
        return current_app.config.get(name, default)
    return default


# =====================================================
# TOTALS
# =====================================================

def compute_sale_totals(items, discount: Decimal, discount_type: DiscountType) -> Dict[str, Any]:
    """
    Recompute line subtotals, subtotal, discount and total from the cart.

    Client-supplied subtotals are ignored; each line is ``quantity x unit_price``
    using the claimed unit price. A line whose product is NaN or infinite is
    excluded from the subtotal (reported in ``excluded``). A subtotal or total
    that still ends up non-finite or out of range raises.

    Returns:
        dict with ``lines`` (list of (item, line_total)), ``excluded`` (list of
        cart indexes), ``subtotal``, ``discount_amount`` and ``total``.

    Raises:
        ArithmeticIntegrityError: non-finite subtotal/total, or no valid line.
    """
    lines: List[Tuple[Any, Decimal]] = []
    excluded: List[int] = []
    subtotal = ZERO

    for index, item in enumerate(items):
        product = multiply(item.quantity, item.unit_price)
        if product is None:
            logger.warning(
                f"[SALE] Line {index} (product {item.product_id}) has a non-finite amount "
                f"(qty={item.quantity}, unit_price={item.unit_price}); excluded from subtotal"
            )
            excluded.append(index)
            continue
        line_total = round_money(product)
        lines.append((item, line_total))
        subtotal = add(subtotal, line_total)

    if not lines:
        raise ArithmeticIntegrityError(
            'Ninguna línea de la venta tiene un importe válido',
            payload={'excluded_lines': excluded}
        )

    if discount_type == DiscountType.PERCENTAGE:
        discount_amount = multiply(subtotal, discount)
        discount_amount = discount_amount / 100 if discount_amount is not None else Decimal('NaN')
    else:
        discount_amount = discount
    # Never discount more than the subtotal
    if discount_amount.is_finite() and subtotal.is_finite():
        discount_amount = round_money(min(discount_amount, subtotal))

    total = add(subtotal, -discount_amount)
    if total.is_finite() and total < 0:
        total = round_money(ZERO)

    if not (subtotal.is_finite() and total.is_finite()) or subtotal > MAX_AMOUNT:
        logger.warning(f"[SALE] Rejected non-finite totals: subtotal={subtotal}, total={total}")
        raise ArithmeticIntegrityError(payload={
            'subtotal': str(subtotal),
            'total': str(total),
            'excluded_lines': excluded,
        })

    return {
        'lines': lines,
        'excluded': excluded,
        'subtotal': subtotal,
        'discount_amount': discount_amount,
        'total': total,
    }


def validate_payment_splits(payments, total: Decimal):
    """Mixed payment: at most MAX_MIXED_PAYMENTS splits adding up to ``total``."""
    max_splits = int(_setting('MAX_MIXED_PAYMENTS', 2))
    tolerance = Decimal(str(_setting('MIXED_PAYMENT_TOLERANCE', '0.01')))

    if not payments:
        raise BusinessLogicError('Un pago mixto requiere al menos un pago')
    if len(payments) > max_splits:
        raise BusinessLogicError(
            f'Un pago mixto admite como máximo {max_splits} medios de pago',
            payload={'max_payments': max_splits}
        )

    payments_total = sum((p.amount for p in payments), ZERO)
    if abs(payments_total - total) >= tolerance:
        raise BusinessLogicError(
            'La suma de los pagos debe ser igual al total de la venta',
            payload={'payments_total': str(payments_total), 'total': str(total)}
        )


# =====================================================
# SALE COMMIT
# =====================================================

def create_sale(session, tenant_id: int, user_id: int, data) -> Sale:
    """
    Validate and commit a sale (all-or-nothing).

    Args:
        session: Database session
        tenant_id: Tenant of the operator
        user_id: Operator ringing up the sale
        data: ``schemas.sales.SaleCreate``

    Returns:
        The committed Sale, with its ticket number.

    Raises:
        NotFoundError: unknown or foreign-tenant product, variant or customer
        InactiveProductError, InsufficientStockError, BusinessLogicError
        ArithmeticIntegrityError: non-finite subtotal/total
        ConcurrencyConflictError: lost a race at commit time (retryable)
    """
    payment_method = data.payment_method
    is_on_account = payment_method == PaymentMethod.CUENTA_CORRIENTE

    # 1. Authoritative totals (no database access)
    totals = compute_sale_totals(data.items, data.discount, data.discount_type)
    total = totals['total']

    if data.has_mixed_payment:
        validate_payment_splits(data.payments, total)
    if is_on_account and not data.customer_id:
        raise BusinessLogicError('Para vender en cuenta corriente debe seleccionar un cliente')

    try:
        # 2. Referential + availability checks (locks taken, nothing written)
        customer = None
        if data.customer_id:
            customer = credit_service.lock_customer(session, tenant_id, data.customer_id)
            if is_on_account and customer.status == CustomerStatus.BLOCKED:
                raise BusinessLogicError(
                    f'El cliente "{customer.name}" está bloqueado para cuenta corriente',
                    payload={'customer_id': customer.id}
                )

        products, variants = _load_and_validate_items(session, tenant_id, data.items)
        required = _required_quantities(totals['lines'])
        available = _lock_stock_levels(session, required.keys())

        for key, qty in required.items():
            if available.get(key, ZERO) < qty:
                product_id, variant_id = key
                raise InsufficientStockError(
                    _display_name(products, variants, key), qty, available.get(key, ZERO),
                    product_id=product_id, variant_id=variant_id
                )

        # 3. Ticket number and shift linkage
        ticket_number = ticket_service.next_ticket_number(session, user_id)
        register = cash_register_service.get_open_register(session, tenant_id, user_id)

        # 4. Writes
        now = utcnow()
        sale = Sale(
            tenant_id=tenant_id,
            user_id=user_id,
            ticket_number=ticket_number,
            datetime=now,
            subtotal=totals['subtotal'],
            discount_amount=totals['discount_amount'],
            discount_type=data.discount_type,
            total=total,
            payment_method=payment_method.value,
            has_mixed_payment=data.has_mixed_payment,
            status=SaleStatus.COMPLETADO,
            notes=data.notes,
            customer_id=customer.id if customer else None,
            cash_register_id=register.id if register else None,
        )
        session.add(sale)
        session.flush()

        for item, line_total in totals['lines']:
            session.add(SaleLine(
                sale_id=sale.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                qty=item.quantity,
                unit_price=round_money(item.unit_price),
                line_total=line_total,
            ))

        for key, qty in required.items():
            _decrement_stock(session, key, qty, _display_name(products, variants, key))

        if data.has_mixed_payment:
            for p in data.payments:
                session.add(SalePayment(
                    sale_id=sale.id,
                    payment_method=p.method.value,
                    amount=round_money(p.amount),
                    reference=p.reference,
                ))

        stock_service.record_stock_move(
            session, tenant_id, user_id, StockMoveType.OUT, StockReferenceType.SALE, sale.id,
            f'Venta #{ticket_number}',
            [
                (item.product_id, item.variant_id, item.quantity, products[item.product_id].cost)
                for item, _ in totals['lines']
            ]
        )

        if not is_on_account:
            session.add(CashMovement(
                tenant_id=tenant_id,
                user_id=user_id,
                cash_register_id=sale.cash_register_id,
                type=CashMovementType.INGRESO,
                amount=total,
                description=f'Venta #{ticket_number} - {payment_method.value}',
                reference_type=CashMovementReference.SALE,
                reference_id=sale.id,
            ))

        if customer is not None:
            customer.last_purchase_at = now
            if is_on_account:
                credit_service.apply_debt_change(
                    session, customer, total, user_id, 'sale',
                    resource_type='sale', resource_id=sale.id
                )

        log_action(
            session,
            AuditAction.SALE_CREATED,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type='sale',
            resource_id=sale.id,
            details={
                'ticket_number': ticket_number,
                'total': total,
                'payment_method': payment_method.value,
                'cash_register_id': sale.cash_register_id,
                'excluded_lines': totals['excluded'],
            }
        )

        session.commit()

    except SaasError:
        session.rollback()
        raise
    except (IntegrityError, OperationalError) as e:
        session.rollback()
        logger.warning(f"[SALE] Concurrency conflict for user {user_id}: {e.__class__.__name__}")
        raise ConcurrencyConflictError()
    except Exception:
        session.rollback()
        logger.exception(f"[SALE] Unexpected error creating sale for tenant {tenant_id}")
        raise

    logger.info(
        f"[SALE] Sale {sale.id} ticket #{sale.ticket_number} committed: total={sale.total} "
        f"method={sale.payment_method} register={sale.cash_register_id}"
    )
    return sale


def get_sale(session, tenant_id: int, sale_id: int) -> Sale:
    """Fetch a tenant's sale or raise NotFoundError."""
    sale = session.query(Sale).filter(Sale.id == sale_id, Sale.tenant_id == tenant_id).one_or_none()
    if sale is None:
        raise NotFoundError('Venta no encontrada', payload={'sale_id': sale_id})
    return sale


def serialize_sale(sale: Sale) -> Dict[str, Any]:
    return {
        'id': sale.id,
        'ticket_number': sale.ticket_number,
        'datetime': sale.datetime.isoformat() if sale.datetime else None,
        'user_id': sale.user_id,
        'customer_id': sale.customer_id,
        'cash_register_id': sale.cash_register_id,
        'status': sale.status.value,
        'payment_method': sale.payment_method,
        'has_mixed_payment': sale.has_mixed_payment,
        'subtotal': str(sale.subtotal),
        'discount_amount': str(sale.discount_amount),
        'discount_type': sale.discount_type.value,
        'total': str(sale.total),
        'lines': [
            {
                'id': line.id,
                'product_id': line.product_id,
                'variant_id': line.variant_id,
                'qty': str(line.qty),
                'unit_price': str(line.unit_price),
                'line_total': str(line.line_total),
            }
            for line in sale.lines
        ],
        'payments': [
            {'method': p.payment_method, 'amount': str(p.amount), 'reference': p.reference}
            for p in sale.payments
        ],
    }


# =====================================================
# PRIVATE HELPERS
# =====================================================

StockKey = Tuple[int, Optional[int]]  # (product_id, variant_id)


def _load_and_validate_items(session, tenant_id: int, items):
    """
    Lock the cart's products and variants (ascending id) and validate them.

    Every cart line is checked, including lines excluded from the subtotal.
    """
    product_ids = sorted({item.product_id for item in items})
    variant_ids = sorted({item.variant_id for item in items if item.variant_id})

    products = {
        p.id: p for p in (
            session.query(Product)
            .filter(Product.id.in_(product_ids), Product.tenant_id == tenant_id)
            .order_by(Product.id)
            .with_for_update()
            .all()
        )
    }
    variants = {}
    if variant_ids:
        variants = {
            v.id: v for v in (
                session.query(ProductVariant)
                .filter(ProductVariant.id.in_(variant_ids), ProductVariant.tenant_id == tenant_id)
                .order_by(ProductVariant.id)
                .with_for_update()
                .populate_existing()
                .all()
            )
        }

    with_variants = {
        row[0] for row in
        session.query(ProductVariant.product_id)
        .filter(ProductVariant.product_id.in_(product_ids))
        .distinct()
        .all()
    }

    for item in items:
        product = products.get(item.product_id)
        if product is None:
            raise NotFoundError(
                f'Producto {item.product_id} no encontrado',
                payload={'product_id': item.product_id}
            )
        if not product.active:
            raise InactiveProductError(product.name, product_id=product.id)

        if item.variant_id:
            variant = variants.get(item.variant_id)
            if variant is None or variant.product_id != product.id:
                raise NotFoundError(
                    f'Variante {item.variant_id} no encontrada',
                    payload={'product_id': product.id, 'variant_id': item.variant_id}
                )
            if not variant.active:
                raise InactiveProductError(variant.name, product_id=product.id, variant_id=variant.id)
        elif product.id in with_variants:
            raise BusinessLogicError(
                f'Debe seleccionar una variante de "{product.name}"',
                payload={'product_id': product.id}
            )

    return products, variants


def _required_quantities(lines) -> Dict[StockKey, Decimal]:
    """Total quantity per stock key; the same product may appear on several lines."""
    required: Dict[StockKey, Decimal] = {}
    for item, _ in lines:
        key = (item.product_id, item.variant_id or None)
        required[key] = required.get(key, ZERO) + item.quantity
    return dict(sorted(required.items(), key=lambda kv: (kv[0][0], kv[0][1] or 0)))


def _lock_stock_levels(session, keys) -> Dict[StockKey, Decimal]:
    """Lock product_stock rows FOR UPDATE (ascending id) and return current levels."""
    levels: Dict[StockKey, Decimal] = {}
    product_ids = sorted({pid for pid, vid in keys if vid is None})
    variant_keys = {vid: pid for pid, vid in keys if vid is not None}

    if product_ids:
        rows = (
            session.query(ProductStock.product_id, ProductStock.on_hand_qty)
            .filter(ProductStock.product_id.in_(product_ids))
            .order_by(ProductStock.product_id)
            .with_for_update()
            .all()
        )
        for product_id, qty in rows:
            levels[(product_id, None)] = Decimal(str(qty))

    if variant_keys:
        rows = (
            session.query(ProductVariant.id, ProductVariant.stock_qty)
            .filter(ProductVariant.id.in_(sorted(variant_keys)))
            .order_by(ProductVariant.id)
            .with_for_update()
            .all()
        )
        for variant_id, qty in rows:
            levels[(variant_keys[variant_id], variant_id)] = Decimal(str(qty))

    return levels


def _decrement_stock(session, key: StockKey, qty: Decimal, name: str):
    """
    Guarded decrement: ``UPDATE ... SET qty = qty - :n WHERE qty >= :n``.

    A row count of zero means another transaction took the stock after our
    read, so the sale fails with InsufficientStockError.
    """
    product_id, variant_id = key
    if variant_id:
        stmt = (
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock_qty >= qty)
            .values(stock_qty=ProductVariant.stock_qty - qty)
        )
    else:
        stmt = (
            update(ProductStock)
            .where(ProductStock.product_id == product_id, ProductStock.on_hand_qty >= qty)
            .values(on_hand_qty=ProductStock.on_hand_qty - qty)
        )

    result = session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount != 1:
        available = _current_level(session, key)
        logger.warning(
            f"[SALE] Stock race lost for product {product_id} variant {variant_id}: "
            f"required {qty}, available {available}"
        )
        raise InsufficientStockError(name, qty, available, product_id=product_id, variant_id=variant_id)


def _current_level(session, key: StockKey) -> Decimal:
    product_id, variant_id = key
    if variant_id:
        value = session.query(ProductVariant.stock_qty).filter(ProductVariant.id == variant_id).scalar()
    else:
        value = session.query(ProductStock.on_hand_qty).filter(ProductStock.product_id == product_id).scalar()
    return Decimal(str(value)) if value is not None else ZERO


def _display_name(products, variants, key: StockKey) -> str:
    product_id, variant_id = key
    if variant_id and variant_id in variants:
        return f"{products[product_id].name} - {variants[variant_id].name}"
    return products[product_id].name

