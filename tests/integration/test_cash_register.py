"""
Integration tests for the cash register reconciliation engine.
"""

import pytest
from decimal import Decimal

from mostrador.exceptions import (
    BusinessLogicError, NotFoundError, ValidationError, CashRegisterAlreadyOpenError,
    CashRegisterClosedError, CashDifferenceNotesRequiredError
)
from mostrador.models import (
    CashRegister, CashRegisterStatus, CashMovement, CashMovementType, AuditLog, AuditAction
)
from mostrador.schemas import load
from mostrador.schemas.cash import CashOpen, CashClose, CashMovementCreate
from mostrador.schemas.sales import RefundCreate
from mostrador.services import cash_register_service, refund_service, sale_cancel_service


def _cash_sale(product, qty=1, method='EFECTIVO'):
    return {
        'payment_method': method,
        'items': [{'product_id': product.id, 'quantity': qty, 'unit_price': str(product.sale_price)}],
    }


def _close(session, tenant, user, register, amount, notes=None):
    data = load(CashClose, {'closing_amount': amount, 'notes': notes})
    return cash_register_service.close_cash_register(session, tenant.id, user.id, register.id, data)


@pytest.fixture
def product_500(make_product, tenant1):
    return make_product(tenant1, name='Combo', price='500.00', stock='20')


class TestOpenRegister:

    def test_open_writes_apertura(self, session, tenant1, user1, open_register):
        assert open_register.status == CashRegisterStatus.OPEN
        assert open_register.opening_amount == Decimal('1000.00')
        assert open_register.closing_number == f'CJ-{open_register.id:06d}'

        movement = session.query(CashMovement).filter_by(cash_register_id=open_register.id).one()
        assert movement.type == CashMovementType.APERTURA
        assert movement.amount == Decimal('1000.00')

        assert session.query(AuditLog).filter_by(action=AuditAction.CASH_REGISTER_OPENED).count() == 1

    def test_second_open_rejected(self, session, tenant1, user1, open_register):
        with pytest.raises(CashRegisterAlreadyOpenError) as exc:
            cash_register_service.open_cash_register(
                session, tenant1.id, user1.id, load(CashOpen, {'opening_amount': '10'})
            )
        assert exc.value.payload['cash_register_id'] == open_register.id
        assert session.query(CashRegister).count() == 1

    def test_each_operator_has_own_shift(self, session, tenant1, staff1, open_register):
        other = cash_register_service.open_cash_register(
            session, tenant1.id, staff1.id, load(CashOpen, {'opening_amount': '200'})
        )
        assert other.id != open_register.id

    def test_no_current_register_before_opening(self, session, tenant1, user1):
        assert cash_register_service.get_current_cash_register(session, tenant1.id, user1.id) is None


class TestShiftScenarios:
    """Open 1000, sell 500 cash, count at close."""

    def test_exact_count_closes_cleanly(self, session, sell, tenant1, user1, open_register, product_500):
        sell(tenant1, user1, _cash_sale(product_500))

        register, running = cash_register_service.get_current_cash_register(session, tenant1.id, user1.id)
        assert register.id == open_register.id
        assert running['expected_cash'] == Decimal('1500.00')

        register, summary = _close(session, tenant1, user1, open_register, '1500')

        assert register.status == CashRegisterStatus.CLOSED
        assert register.difference == Decimal('0.00')
        assert register.requires_authorization is False
        assert register.sales_count == 1
        assert summary['average_ticket'] == Decimal('500.00')
        assert summary['hours_worked'] >= 0
        assert cash_register_service.get_current_cash_register(session, tenant1.id, user1.id) is None

    def test_shortfall_needs_notes(self, session, sell, tenant1, user1, open_register, product_500):
        sell(tenant1, user1, _cash_sale(product_500))

        with pytest.raises(CashDifferenceNotesRequiredError) as exc:
            _close(session, tenant1, user1, open_register, '1430')

        assert exc.value.difference == Decimal('-70.00')
        assert exc.value.expected_amount == Decimal('1500.00')
        assert exc.value.to_dict()['requires_notes'] is True
        session.refresh(open_register)
        assert open_register.status == CashRegisterStatus.OPEN

        register, summary = _close(session, tenant1, user1, open_register, '1430', notes='Faltante por vuelto')
        assert register.difference == Decimal('-70.00')
        assert register.expected_amount == Decimal('1500.00')
        assert register.requires_authorization is True
        assert register.notes == 'Faltante por vuelto'

        cierre = session.query(CashMovement).filter_by(
            cash_register_id=register.id, type=CashMovementType.CIERRE
        ).one()
        assert cierre.amount == Decimal('1430.00')
        assert '-70.00' in cierre.description

    def test_blank_notes_count_as_missing(self, session, tenant1, user1, open_register):
        with pytest.raises(CashDifferenceNotesRequiredError):
            _close(session, tenant1, user1, open_register, '900', notes='   ')

    def test_small_difference_needs_no_authorization(self, session, tenant1, user1, open_register):
        register, _ = _close(session, tenant1, user1, open_register, '1010', notes='Sobrante')
        assert register.difference == Decimal('10.00')
        assert register.requires_authorization is False

    def test_threshold_is_configurable(self, app, monkeypatch, session, sell, tenant1, user1,
                                       open_register, product_500):
        monkeypatch.setitem(app.config, 'CASH_DIFFERENCE_AUTH_THRESHOLD', '100')
        sell(tenant1, user1, _cash_sale(product_500))

        register, _ = _close(session, tenant1, user1, open_register, '1430', notes='Faltante')
        assert register.requires_authorization is False

    def test_difference_at_threshold_requires_authorization(self, session, tenant1, user1, open_register):
        register, _ = _close(session, tenant1, user1, open_register, '950', notes='Faltante')
        assert register.requires_authorization is True


class TestCloseRules:

    def test_close_twice(self, session, tenant1, user1, open_register):
        _close(session, tenant1, user1, open_register, '1000')
        with pytest.raises(CashRegisterClosedError):
            _close(session, tenant1, user1, open_register, '1000')

    def test_only_owner_closes(self, session, tenant1, staff1, open_register):
        with pytest.raises(NotFoundError):
            _close(session, tenant1, staff1, open_register, '1000')

    def test_other_tenant_cannot_close(self, session, tenant2, user2, open_register):
        with pytest.raises(NotFoundError):
            _close(session, tenant2, user2, open_register, '1000')

    def test_reopen_after_close(self, session, tenant1, user1, open_register):
        _close(session, tenant1, user1, open_register, '1000')
        reopened = cash_register_service.open_cash_register(
            session, tenant1.id, user1.id, load(CashOpen, {'opening_amount': '0'})
        )
        assert reopened.id != open_register.id
        assert reopened.status == CashRegisterStatus.OPEN


class TestSummaryContents:
    """What counts towards the expected cash."""

    def _running(self, session, tenant, user):
        return cash_register_service.get_current_cash_register(session, tenant.id, user.id)[1]

    def test_card_sales_do_not_change_expected_cash(self, session, sell, tenant1, user1, open_register, product_500):
        sell(tenant1, user1, _cash_sale(product_500, method='TARJETA_CREDITO'))
        sell(tenant1, user1, _cash_sale(product_500, method='QR'))

        summary = self._running(session, tenant1, user1)
        assert summary['expected_cash'] == Decimal('1000.00')
        assert summary['total_card'] == Decimal('500.00')
        assert summary['total_transfer'] == Decimal('500.00')
        assert summary['sales_count'] == 2

    def test_mixed_sale_counts_its_cash_part(self, session, sell, tenant1, user1, open_register, product_500):
        payload = _cash_sale(product_500)
        payload.update(payment_method='MIXTO', payments=[
            {'method': 'EFECTIVO', 'amount': '300'},
            {'method': 'TARJETA_DEBITO', 'amount': '200'},
        ])
        sell(tenant1, user1, payload)

        summary = self._running(session, tenant1, user1)
        assert summary['expected_cash'] == Decimal('1300.00')
        assert summary['total_card'] == Decimal('200.00')

    def test_cancelled_sale_is_excluded(self, session, sell, tenant1, user1, open_register, product_500):
        sale = sell(tenant1, user1, _cash_sale(product_500))
        sale_cancel_service.cancel_sale(session, tenant1.id, user1.id, sale.id, 'Error de carga')

        summary = self._running(session, tenant1, user1)
        assert summary['sales_count'] == 0
        assert summary['expected_cash'] == Decimal('1000.00')

    def test_refunded_then_cancelled_sale(self, session, sell, tenant1, user1, open_register, product_500):
        sale = sell(tenant1, user1, _cash_sale(product_500, qty=2))
        refund_service.create_refund(session, tenant1.id, user1.id, sale.id, load(RefundCreate, {
            'type': 'PARCIAL',
            'reason': 'Producto fallado',
            'refund_amount': '500',
            'items': [{'sale_line_id': sale.lines[0].id, 'quantity': 1}],
        }))
        sale_cancel_service.cancel_sale(session, tenant1.id, user1.id, sale.id, 'Error de carga')

        # Drawer: 1000 + 1000 sold - 500 refunded - 500 paid back on cancel
        summary = self._running(session, tenant1, user1)
        assert summary['sales_count'] == 0
        assert summary['expected_cash'] == Decimal('1000.00')

        register, closing = _close(session, tenant1, user1, open_register, '1000')
        assert closing['difference'] == Decimal('0.00')
        assert register.requires_authorization is False

    def test_cancel_in_later_shift_comes_out_of_current_drawer(self, session, sell, tenant1, user1,
                                                                open_register, product_500):
        sale = sell(tenant1, user1, _cash_sale(product_500))
        _close(session, tenant1, user1, open_register, '1500')

        second = cash_register_service.open_cash_register(
            session, tenant1.id, user1.id, load(CashOpen, {'opening_amount': '1000'})
        )
        sale_cancel_service.cancel_sale(session, tenant1.id, user1.id, sale.id, 'Cliente se arrepintio')

        summary = self._running(session, tenant1, user1)
        assert summary['cancellation_payouts'] == Decimal('500.00')
        assert summary['expected_cash'] == Decimal('500.00')

        register, closing = _close(session, tenant1, user1, second, '500')
        assert closing['difference'] == Decimal('0.00')
        assert register.expected_amount == Decimal('500.00')

    def test_cash_refund_reduces_expected_cash(self, session, sell, tenant1, user1, open_register, product_500):
        sale = sell(tenant1, user1, _cash_sale(product_500, qty=2))
        refund_service.create_refund(session, tenant1.id, user1.id, sale.id, load(RefundCreate, {
            'type': 'PARCIAL',
            'reason': 'Producto fallado',
            'refund_amount': '500',
            'items': [{'sale_line_id': sale.lines[0].id, 'quantity': 1}],
        }))

        summary = self._running(session, tenant1, user1)
        assert summary['sales_count'] == 1
        assert summary['refunds_count'] == 1
        assert summary['total_refunds'] == Decimal('500.00')
        assert summary['expected_cash'] == Decimal('1500.00')

    def test_sales_of_another_operator_are_not_counted(self, session, sell, tenant1, user1, staff1,
                                                        open_register, product_500):
        sell(tenant1, staff1, _cash_sale(product_500))
        assert self._running(session, tenant1, user1)['sales_count'] == 0

    def test_sales_before_opening_are_not_counted(self, session, sell, tenant1, user1, product_500):
        sell(tenant1, user1, _cash_sale(product_500))
        register = cash_register_service.open_cash_register(
            session, tenant1.id, user1.id, load(CashOpen, {'opening_amount': '100'})
        )
        _, summary = cash_register_service.get_current_cash_register(session, tenant1.id, user1.id)
        assert summary['sales_count'] == 0
        assert summary['expected_cash'] == Decimal('100.00')
        assert register.opening_amount == Decimal('100.00')


class TestManualMovements:

    def _movement(self, session, tenant, user, kind, amount, description='Pago a proveedor'):
        data = load(CashMovementCreate, {'type': kind, 'amount': amount, 'description': description})
        return cash_register_service.register_cash_movement(session, tenant.id, user.id, data)

    def test_manual_movement_is_audit_only(self, session, tenant1, user1, open_register):
        movement = self._movement(session, tenant1, user1, 'EGRESO', '150')
        assert movement.cash_register_id == open_register.id

        _, summary = cash_register_service.get_current_cash_register(session, tenant1.id, user1.id)
        assert summary['expected_cash'] == Decimal('1000.00')
        assert session.query(AuditLog).filter_by(action=AuditAction.CASH_MOVEMENT_CREATED).count() == 1

    def test_requires_open_register(self, session, tenant1, user1, caplog):
        with caplog.at_level('WARNING', logger='mostrador.services.cash_register_service'):
            with pytest.raises(BusinessLogicError):
                self._movement(session, tenant1, user1, 'INGRESO', '100')

        assert 'Manual movement rejected' in caplog.text
        assert session.query(CashMovement).count() == 0

    def test_automatic_types_cannot_be_entered(self, tenant1, user1):
        with pytest.raises(ValidationError) as exc:
            load(CashMovementCreate, {'type': 'APERTURA', 'amount': '1', 'description': 'Intento'})
        assert exc.value.code == 'VALIDATION_ERROR'

    def test_movement_totals(self, session, sell, tenant1, user1, open_register, product_500):
        sell(tenant1, user1, _cash_sale(product_500))
        self._movement(session, tenant1, user1, 'INGRESO', '200', 'Cambio inicial extra')
        self._movement(session, tenant1, user1, 'EGRESO', '100')

        result = cash_register_service.list_cash_movements(session, tenant1.id, cash_register_id=open_register.id)
        assert len(result['movements']) == 4
        assert result['totals']['income'] == Decimal('1700.00')
        assert result['totals']['expense'] == Decimal('100.00')
        assert result['totals']['balance'] == Decimal('1600.00')

    def test_filter_by_type(self, session, tenant1, user1, open_register):
        self._movement(session, tenant1, user1, 'EGRESO', '100')
        result = cash_register_service.list_cash_movements(
            session, tenant1.id, movement_type=CashMovementType.EGRESO
        )
        assert [m.type for m in result['movements']] == [CashMovementType.EGRESO]


class TestHistory:

    def test_history_newest_first(self, session, tenant1, user1, staff1, open_register):
        _close(session, tenant1, user1, open_register, '1000')
        second = cash_register_service.open_cash_register(
            session, tenant1.id, user1.id, load(CashOpen, {'opening_amount': '50'})
        )
        cash_register_service.open_cash_register(
            session, tenant1.id, staff1.id, load(CashOpen, {'opening_amount': '20'})
        )

        mine = cash_register_service.list_cash_registers(session, tenant1.id, user_id=user1.id)
        assert [r.id for r in mine] == [second.id, open_register.id]

        closed = cash_register_service.list_cash_registers(
            session, tenant1.id, status=CashRegisterStatus.CLOSED
        )
        assert [r.id for r in closed] == [open_register.id]
        assert len(cash_register_service.list_cash_registers(session, tenant1.id)) == 3

    def test_closing_report(self, session, sell, tenant1, user1, open_register, product_500):
        sell(tenant1, user1, _cash_sale(product_500))
        register, _ = _close(session, tenant1, user1, open_register, '1430', notes='Faltante por vuelto')

        report = cash_register_service.format_closing_report(register)
        assert f'CIERRE DE CAJA {register.closing_number}' in report
        assert '$ 1.500,00' in report
        assert '-$ 70,00' in report
        assert 'REQUIERE AUTORIZACIÓN' in report
