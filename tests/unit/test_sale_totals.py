"""
Unit tests for server-side sale totals and payment split validation.
"""

import pytest
from decimal import Decimal

from mostrador.exceptions import ArithmeticIntegrityError, BusinessLogicError, ValidationError
from mostrador.models import DiscountType, PaymentMethod
from mostrador.schemas import load
from mostrador.schemas.sales import SaleCreate, SaleItemIn, SalePaymentIn
from mostrador.services.sales_service import compute_sale_totals, validate_payment_splits


def _item(qty, price, product_id=1, subtotal='0'):
    return SaleItemIn.model_validate({
        'product_id': product_id, 'quantity': qty, 'unit_price': price, 'subtotal': subtotal
    })


class TestComputeSaleTotals:

    def test_client_subtotal_is_ignored(self):
        items = [_item('2', '150.00', subtotal='1.00'), _item('1', '200', product_id=2, subtotal='99999')]
        totals = compute_sale_totals(items, Decimal('0'), DiscountType.FIXED)

        assert totals['subtotal'] == Decimal('500.00')
        assert totals['total'] == Decimal('500.00')
        assert [line for _, line in totals['lines']] == [Decimal('300.00'), Decimal('200.00')]

    def test_percentage_discount(self):
        totals = compute_sale_totals([_item('1', '200')], Decimal('10'), DiscountType.PERCENTAGE)
        assert totals['discount_amount'] == Decimal('20.00')
        assert totals['total'] == Decimal('180.00')

    def test_fixed_discount(self):
        totals = compute_sale_totals([_item('1', '200')], Decimal('50'), DiscountType.FIXED)
        assert totals['discount_amount'] == Decimal('50.00')
        assert totals['total'] == Decimal('150.00')

    def test_total_never_negative(self):
        totals = compute_sale_totals([_item('1', '100')], Decimal('500'), DiscountType.FIXED)
        assert totals['total'] == Decimal('0.00')
        assert totals['discount_amount'] == Decimal('100.00')

    def test_huge_fixed_discount_is_capped(self):
        totals = compute_sale_totals([_item('1', '100')], Decimal('1e30'), DiscountType.FIXED)
        assert totals['discount_amount'] == Decimal('100.00')
        assert totals['total'] == Decimal('0.00')

    def test_percentage_over_100_is_capped(self):
        totals = compute_sale_totals([_item('2', '50')], Decimal('250'), DiscountType.PERCENTAGE)
        assert totals['discount_amount'] == Decimal('100.00')
        assert totals['total'] == Decimal('0.00')

    def test_nan_line_is_excluded(self):
        items = [_item('1', '100'), _item('1', 'NaN', product_id=2)]
        totals = compute_sale_totals(items, Decimal('0'), DiscountType.FIXED)

        assert totals['subtotal'] == Decimal('100.00')
        assert totals['excluded'] == [1]
        assert len(totals['lines']) == 1

    def test_infinite_line_is_excluded(self):
        items = [_item('2', '10'), _item('1', 'Infinity', product_id=2)]
        totals = compute_sale_totals(items, Decimal('0'), DiscountType.FIXED)
        assert totals['total'] == Decimal('20.00')

    def test_only_invalid_lines_rejected(self):
        with pytest.raises(ArithmeticIntegrityError):
            compute_sale_totals([_item('1', 'NaN')], Decimal('0'), DiscountType.FIXED)

    def test_non_finite_subtotal_rejected(self):
        # Finite product, but too large to carry cents
        with pytest.raises(ArithmeticIntegrityError) as exc:
            compute_sale_totals([_item('1', '1e400')], Decimal('0'), DiscountType.FIXED)
        assert exc.value.code == 'NON_FINITE_TOTAL'
        assert exc.value.status_code == 422

    def test_out_of_range_subtotal_rejected(self):
        with pytest.raises(ArithmeticIntegrityError):
            compute_sale_totals([_item('1000', '99999999999')], Decimal('0'), DiscountType.FIXED)


class TestPaymentSplits:

    def _payments(self, *pairs):
        return [SalePaymentIn.model_validate({'method': m, 'amount': a}) for m, a in pairs]

    def test_splits_matching_total(self, app):
        validate_payment_splits(self._payments(('EFECTIVO', '300'), ('TARJETA_DEBITO', '200')), Decimal('500'))

    def test_splits_within_tolerance(self, app):
        validate_payment_splits(self._payments(('EFECTIVO', '300'), ('QR', '199.995')), Decimal('500'))

    def test_splits_not_matching_total(self, app):
        with pytest.raises(BusinessLogicError) as exc:
            validate_payment_splits(self._payments(('EFECTIVO', '300'), ('QR', '150')), Decimal('500'))
        assert exc.value.payload['payments_total'] == '450'

    def test_too_many_splits(self, app):
        payments = self._payments(('EFECTIVO', '100'), ('QR', '100'), ('TRANSFERENCIA', '100'))
        with pytest.raises(BusinessLogicError):
            validate_payment_splits(payments, Decimal('300'))


class TestSaleCreateSchema:

    def test_mixed_method_requires_payments(self):
        with pytest.raises(ValidationError):
            load(SaleCreate, {
                'payment_method': 'mixto',
                'items': [{'product_id': 1, 'quantity': 1, 'unit_price': 10}],
            })

    def test_mixed_flag_forces_method(self):
        data = load(SaleCreate, {
            'payment_method': 'EFECTIVO',
            'has_mixed_payment': True,
            'items': [{'product_id': 1, 'quantity': 1, 'unit_price': 10}],
            'payments': [{'method': 'EFECTIVO', 'amount': 10}],
        })
        assert data.payment_method == PaymentMethod.MIXTO

    def test_split_cannot_be_on_account(self):
        with pytest.raises(ValidationError) as exc:
            load(SaleCreate, {
                'payment_method': 'MIXTO',
                'items': [{'product_id': 1, 'quantity': 1, 'unit_price': 10}],
                'payments': [{'method': 'CUENTA_CORRIENTE', 'amount': 10}],
            })
        assert exc.value.details[0]['field'].startswith('payments')

    def test_empty_cart_rejected(self):
        with pytest.raises(ValidationError) as exc:
            load(SaleCreate, {'payment_method': 'EFECTIVO', 'items': []})
        assert exc.value.code == 'VALIDATION_ERROR'
        assert exc.value.details[0]['field'] == 'items'

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError):
            load(SaleCreate, {
                'payment_method': 'EFECTIVO',
                'items': [{'product_id': 1, 'quantity': 0, 'unit_price': 10}],
            })

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError):
            load(SaleCreate, {
                'payment_method': 'BITCOIN',
                'items': [{'product_id': 1, 'quantity': 1, 'unit_price': 10}],
            })

    def test_nan_price_survives_validation(self):
        data = load(SaleCreate, {
            'payment_method': 'EFECTIVO',
            'items': [{'product_id': 1, 'quantity': 1, 'unit_price': 'NaN'}],
        })
        assert data.items[0].unit_price.is_nan()
