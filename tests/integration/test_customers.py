"""
Integration tests for customer current accounts.
"""

import pytest
from decimal import Decimal

from mostrador.exceptions import BusinessLogicError, NotFoundError, ValidationError
from mostrador.models import (
    Customer, CustomerStatus, CustomerPayment, CustomerPaymentKind, AuditLog, AuditAction
)
from mostrador.schemas import load
from mostrador.schemas.customers import CustomerPaymentCreate
from mostrador.services import audit_service, credit_service


def _pay(session, tenant, user, customer, amount, method='EFECTIVO'):
    data = load(CustomerPaymentCreate, {'amount': amount, 'payment_method': method})
    return credit_service.register_customer_payment(session, tenant.id, user.id, customer.id, data)


@pytest.fixture
def delinquent_customer(session, tenant1):
    customer = Customer(
        tenant_id=tenant1.id,
        name='Cliente Moroso',
        status=CustomerStatus.DELINQUENT,
        credit_limit=Decimal('1000.00'),
        current_debt=Decimal('1200.00')
    )
    session.add(customer)
    session.commit()
    return customer


class TestCustomerPayments:

    def test_payment_reduces_debt(self, session, tenant1, user1, customer_tenant1):
        payment = _pay(session, tenant1, user1, customer_tenant1, '300')

        assert payment.kind == CustomerPaymentKind.PAYMENT
        assert payment.previous_debt == Decimal('800.00')
        assert payment.new_debt == Decimal('500.00')
        session.refresh(customer_tenant1)
        assert customer_tenant1.current_debt == Decimal('500.00')
        assert customer_tenant1.available_credit == Decimal('500.00')

        assert session.query(AuditLog).filter_by(action=AuditAction.CUSTOMER_PAYMENT).count() == 1

    def test_debt_never_below_zero(self, session, tenant1, user1, customer_tenant1):
        payment = _pay(session, tenant1, user1, customer_tenant1, '5000')

        assert payment.new_debt == Decimal('0.00')
        session.refresh(customer_tenant1)
        assert customer_tenant1.current_debt == Decimal('0.00')

    def test_delinquent_back_to_active(self, session, tenant1, user1, delinquent_customer):
        _pay(session, tenant1, user1, delinquent_customer, '200')

        session.refresh(delinquent_customer)
        assert delinquent_customer.status == CustomerStatus.ACTIVE
        entries = audit_service.get_audit_logs(
            session, tenant1.id, action_filter=AuditAction.CUSTOMER_STATUS_CHANGED,
            resource_type_filter='customer', resource_id_filter=delinquent_customer.id
        )
        assert len(entries) == 1
        assert '"new_status": "ACTIVE"' in entries[0].details

    def test_partial_payment_keeps_delinquent(self, session, tenant1, user1, delinquent_customer):
        _pay(session, tenant1, user1, delinquent_customer, '100')

        session.refresh(delinquent_customer)
        assert delinquent_customer.current_debt == Decimal('1100.00')
        assert delinquent_customer.status == CustomerStatus.DELINQUENT

    def test_blocked_customer(self, session, tenant1, user1, customer_tenant1):
        customer_tenant1.status = CustomerStatus.BLOCKED
        session.commit()

        with pytest.raises(BusinessLogicError):
            _pay(session, tenant1, user1, customer_tenant1, '100')
        assert session.query(CustomerPayment).count() == 0

    def test_foreign_customer(self, session, tenant2, user2, customer_tenant1):
        with pytest.raises(NotFoundError):
            _pay(session, tenant2, user2, customer_tenant1, '100')

    def test_on_account_method_not_allowed(self):
        with pytest.raises(ValidationError):
            load(CustomerPaymentCreate, {'amount': '10', 'payment_method': 'CUENTA_CORRIENTE'})


class TestCreditLimit:

    def test_lowering_limit_makes_customer_delinquent(self, session, tenant1, user1, customer_tenant1):
        customer = credit_service.update_credit_limit(session, tenant1.id, user1.id, customer_tenant1.id, '500')

        assert customer.credit_limit == Decimal('500.00')
        assert customer.status == CustomerStatus.DELINQUENT
        assert session.query(AuditLog).filter_by(action=AuditAction.CUSTOMER_CREDIT_LIMIT_CHANGED).count() == 1

    def test_raising_limit_restores_active(self, session, tenant1, user1, delinquent_customer):
        customer = credit_service.update_credit_limit(session, tenant1.id, user1.id, delinquent_customer.id, '2000')
        assert customer.status == CustomerStatus.ACTIVE

    def test_blocked_status_survives_limit_change(self, session, tenant1, user1, customer_tenant1):
        customer_tenant1.status = CustomerStatus.BLOCKED
        session.commit()

        customer = credit_service.update_credit_limit(session, tenant1.id, user1.id, customer_tenant1.id, '0')
        assert customer.status == CustomerStatus.BLOCKED
