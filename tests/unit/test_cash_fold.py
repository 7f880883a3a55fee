"""Unit tests for the cash register balance fold."""

import pytest
from decimal import Decimal

from app.exceptions import BusinessLogicError
from app.models import CashTransactionType
from app.services.cash_register_service import fold_cash_movements, signed_amount, _coerce_type

T = CashTransactionType


class TestFoldCashMovements:

    def test_opening_only(self):
        summary = fold_cash_movements(Decimal('500'), [], [])
        assert summary.expected_balance == Decimal('500.00')
        assert summary.total_cash_sales == Decimal('0.00')

    def test_cancelled_sale_is_offset(self):
        """Opening 1000, cash sales 350 and 299, the 299 one cancelled."""
        summary = fold_cash_movements(
            Decimal('1000.00'),
            [Decimal('350.00'), Decimal('299.00')],
            [
                (T.SALE, Decimal('350.00')),
                (T.SALE, Decimal('299.00')),
                (T.SALE_CANCELLATION, Decimal('-299.00')),
            ]
        )
        assert summary.expected_balance == Decimal('1350.00')
        assert summary.total_cash_sales == Decimal('350.00')
        assert summary.total_cancellations == Decimal('299.00')

    def test_legacy_sale_rows_are_ignored(self):
        with_rows = fold_cash_movements(Decimal('0'), [Decimal('100')], [(T.SALE, Decimal('100'))])
        without_rows = fold_cash_movements(Decimal('0'), [Decimal('100')], [])
        assert with_rows == without_rows

    def test_manual_movements(self):
        summary = fold_cash_movements(
            Decimal('200.00'),
            [Decimal('50.00')],
            [
                (T.INCOME, Decimal('30.00')),
                (T.EXPENSE, Decimal('-20.00')),
                (T.WITHDRAWAL, Decimal('-100.00')),
            ]
        )
        assert summary.total_income == Decimal('30.00')
        assert summary.total_expenses == Decimal('20.00')
        assert summary.total_withdrawals == Decimal('100.00')
        assert summary.expected_balance == Decimal('160.00')

    def test_to_dict(self):
        data = fold_cash_movements(Decimal('1'), [], []).to_dict()
        assert set(data) == {
            'opening_amount', 'total_cash_sales', 'total_income', 'total_expenses',
            'total_withdrawals', 'total_cancellations', 'expected_balance'
        }


class TestSignedAmount:

    @pytest.mark.parametrize('tx_type,expected', [
        (T.SALE, Decimal('10.00')),
        (T.INCOME, Decimal('10.00')),
        (T.EXPENSE, Decimal('-10.00')),
        (T.WITHDRAWAL, Decimal('-10.00')),
        (T.SALE_CANCELLATION, Decimal('-10.00')),
    ])
    def test_sign_by_type(self, tx_type, expected):
        assert signed_amount(tx_type, '10') == expected
        assert signed_amount(tx_type, '-10') == expected

    def test_coerce_type_from_string(self):
        assert _coerce_type('Expense') is T.EXPENSE

    def test_coerce_type_rejects_unknown(self):
        with pytest.raises(BusinessLogicError):
            _coerce_type('refund')
