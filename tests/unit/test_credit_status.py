"""
Unit tests for the customer credit status rule.
"""

import pytest
from decimal import Decimal

from mostrador.models import CustomerStatus
from mostrador.services.credit_service import evaluate_credit_status


class TestEvaluateCreditStatus:

    def test_active_within_limit_stays_active(self):
        assert evaluate_credit_status(Decimal('1000'), Decimal('1000'), CustomerStatus.ACTIVE) == CustomerStatus.ACTIVE

    def test_active_over_limit_becomes_delinquent(self):
        assert evaluate_credit_status(Decimal('1100'), Decimal('1000'), CustomerStatus.ACTIVE) == CustomerStatus.DELINQUENT

    def test_delinquent_back_within_limit_becomes_active(self):
        assert evaluate_credit_status(Decimal('900'), Decimal('1000'), CustomerStatus.DELINQUENT) == CustomerStatus.ACTIVE

    def test_delinquent_still_over_limit(self):
        assert evaluate_credit_status(Decimal('1001'), Decimal('1000'), CustomerStatus.DELINQUENT) == CustomerStatus.DELINQUENT

    @pytest.mark.parametrize('status', [CustomerStatus.BLOCKED, CustomerStatus.INACTIVE])
    def test_manual_states_never_change(self, status):
        assert evaluate_credit_status(Decimal('5000'), Decimal('0'), status) == status
        assert evaluate_credit_status(Decimal('0'), Decimal('1000'), status) == status

    def test_invalid_numbers_count_as_zero(self):
        assert evaluate_credit_status('abc', None, CustomerStatus.ACTIVE) == CustomerStatus.ACTIVE
