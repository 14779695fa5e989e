"""
Credit Account Tracker - customer debt, credit limits and status.

``evaluate_credit_status`` is the only place where debt-vs-limit turns into
a status. It is called from inside the atomic units that change debt or
limit, always with the post-change values.
"""
import logging
from decimal import Decimal

from mostrador.exceptions import NotFoundError, BusinessLogicError
from mostrador.models import (
    Customer, CustomerStatus, CustomerPayment, CustomerPaymentKind, AuditAction
)
from mostrador.services.audit_service import log_action
from mostrador.utils.numeric import to_decimal, round_money, ZERO

logger = logging.getLogger(__name__)


def evaluate_credit_status(debt, limit, current_status: CustomerStatus) -> CustomerStatus:
    """
    Derive the customer status from debt and credit limit.

    INACTIVE and BLOCKED are manual states and never change here.
    ACTIVE becomes DELINQUENT when debt exceeds the limit;
    DELINQUENT returns to ACTIVE once debt is back within the limit.
    """
    debt = to_decimal(debt)
    limit = to_decimal(limit)

    if current_status == CustomerStatus.ACTIVE and debt > limit:
        return CustomerStatus.DELINQUENT
    if current_status == CustomerStatus.DELINQUENT and debt <= limit:
        return CustomerStatus.ACTIVE
    return current_status


def lock_customer(session, tenant_id: int, customer_id: int) -> Customer:
    """Load a tenant's customer with a row lock (FOR UPDATE)."""
    customer = (
        session.query(Customer)
        .filter(Customer.id == customer_id, Customer.tenant_id == tenant_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if customer is None:
        raise NotFoundError('Cliente no encontrado', payload={'customer_id': customer_id})
    return customer


def apply_debt_change(session, customer: Customer, delta: Decimal, user_id: int,
                      reason: str, resource_type: str = None, resource_id: int = None) -> Decimal:
    """
    Add ``delta`` to the customer's debt (never below zero) and re-evaluate status.

    The customer row must already be locked by the caller. Writes the
    CUSTOMER_DEBT_CHANGED audit entry, plus CUSTOMER_STATUS_CHANGED when
    the status moved. Returns the previous debt.
    """
    previous_debt = to_decimal(customer.current_debt)
    new_debt = round_money(previous_debt + delta)
    if new_debt < 0:
        new_debt = round_money(ZERO)

    customer.current_debt = new_debt
    previous_status = customer.status
    customer.status = evaluate_credit_status(new_debt, customer.credit_limit, previous_status)

    log_action(
        session,
        AuditAction.CUSTOMER_DEBT_CHANGED,
        tenant_id=customer.tenant_id,
        user_id=user_id,
        resource_type='customer',
        resource_id=customer.id,
        details={
            'reason': reason,
            'previous_debt': previous_debt,
            'new_debt': new_debt,
            'credit_limit': customer.credit_limit,
            'ref_type': resource_type,
            'ref_id': resource_id,
        }
    )

    if customer.status != previous_status:
        log_action(
            session,
            AuditAction.CUSTOMER_STATUS_CHANGED,
            tenant_id=customer.tenant_id,
            user_id=user_id,
            resource_type='customer',
            resource_id=customer.id,
            details={
                'previous_status': previous_status.value,
                'new_status': customer.status.value,
                'previous_debt': previous_debt,
                'new_debt': new_debt,
            }
        )
        logger.warning(
            f"[CREDIT] Customer {customer.id} status {previous_status.value} -> "
            f"{customer.status.value} (debt {new_debt}, limit {customer.credit_limit})"
        )

    return previous_debt


def add_credit_note(session, customer: Customer, amount: Decimal, user_id: int,
                    reason: str, sale_id: int = None, refund_id: int = None) -> CustomerPayment:
    """
    Decrease debt because an on-account sale was refunded or cancelled.

    Recorded as a CustomerPayment of kind CREDIT_NOTE so every decrease of
    debt has a registered payment behind it.
    """
    previous_debt = apply_debt_change(
        session, customer, -amount, user_id, reason,
        resource_type='refund' if refund_id else 'sale',
        resource_id=refund_id or sale_id,
    )
    note = CustomerPayment(
        tenant_id=customer.tenant_id,
        customer_id=customer.id,
        user_id=user_id,
        kind=CustomerPaymentKind.CREDIT_NOTE,
        amount=round_money(amount),
        payment_method='CUENTA_CORRIENTE',
        previous_debt=previous_debt,
        new_debt=customer.current_debt,
        sale_id=sale_id,
        refund_id=refund_id,
        notes=reason,
    )
    session.add(note)
    return note


def register_customer_payment(session, tenant_id: int, user_id: int, customer_id: int, data) -> CustomerPayment:
    """
    Register a payment against a customer's current debt.

    Debt never drops below zero; a DELINQUENT customer whose debt falls back
    within the limit returns to ACTIVE.

    Args:
        data: ``schemas.customers.CustomerPaymentCreate``
    """
    try:
        customer = lock_customer(session, tenant_id, customer_id)
        if customer.status == CustomerStatus.BLOCKED:
            raise BusinessLogicError('El cliente está bloqueado')

        amount = round_money(data.amount)
        previous_debt = apply_debt_change(
            session, customer, -amount, user_id, 'payment',
        )

        payment = CustomerPayment(
            tenant_id=tenant_id,
            customer_id=customer.id,
            user_id=user_id,
            kind=CustomerPaymentKind.PAYMENT,
            amount=amount,
            payment_method=data.payment_method.value,
            previous_debt=previous_debt,
            new_debt=customer.current_debt,
            notes=data.notes,
        )
        session.add(payment)
        session.flush()

        log_action(
            session,
            AuditAction.CUSTOMER_PAYMENT,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type='customer',
            resource_id=customer.id,
            details={
                'payment_id': payment.id,
                'amount': amount,
                'payment_method': payment.payment_method,
                'previous_debt': previous_debt,
                'new_debt': customer.current_debt,
            }
        )

        session.commit()
        logger.info(
            f"[CREDIT] Payment {payment.id} of {amount} for customer {customer.id}: "
            f"debt {previous_debt} -> {payment.new_debt}"
        )
        return payment

    except Exception:
        session.rollback()
        raise


def update_credit_limit(session, tenant_id: int, user_id: int, customer_id: int, new_limit) -> Customer:
    """Change a customer's credit limit and re-evaluate its status."""
    try:
        customer = lock_customer(session, tenant_id, customer_id)
        previous_limit = to_decimal(customer.credit_limit)
        customer.credit_limit = round_money(to_decimal(new_limit))

        previous_status = customer.status
        customer.status = evaluate_credit_status(customer.current_debt, customer.credit_limit, previous_status)

        log_action(
            session,
            AuditAction.CUSTOMER_CREDIT_LIMIT_CHANGED,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type='customer',
            resource_id=customer.id,
            details={
                'previous_limit': previous_limit,
                'new_limit': customer.credit_limit,
                'current_debt': customer.current_debt,
            }
        )
        if customer.status != previous_status:
            log_action(
                session,
                AuditAction.CUSTOMER_STATUS_CHANGED,
                tenant_id=tenant_id,
                user_id=user_id,
                resource_type='customer',
                resource_id=customer.id,
                details={
                    'previous_status': previous_status.value,
                    'new_status': customer.status.value,
                }
            )

        session.commit()
        logger.info(f"[CREDIT] Customer {customer.id} credit limit {previous_limit} -> {customer.credit_limit}")
        return customer

    except Exception:
        session.rollback()
        raise


def serialize_customer(customer: Customer):
    return {
        'id': customer.id,
        'name': customer.name,
        'status': customer.status.value,
        'credit_limit': str(customer.credit_limit),
        'current_debt': str(customer.current_debt),
        'available_credit': str(customer.available_credit),
        'last_purchase_at': customer.last_purchase_at.isoformat() if customer.last_purchase_at else None,
    }


def serialize_payment(payment: CustomerPayment):
    return {
        'id': payment.id,
        'customer_id': payment.customer_id,
        'kind': payment.kind.value,
        'amount': str(payment.amount),
        'payment_method': payment.payment_method,
        'previous_debt': str(payment.previous_debt),
        'new_debt': str(payment.new_debt),
        'notes': payment.notes,
    }
