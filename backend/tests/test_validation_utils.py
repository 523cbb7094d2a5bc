from decimal import Decimal
import pytest
from fixmarket.errors import ValidationError
from fixmarket.utils.validation import parse_decimal


def test_parse_decimal_keeps_full_precision_without_places():
    assert parse_decimal('1.333', 'hours') == Decimal('1.333')


@pytest.mark.parametrize('raw,places,expected', [
    ('1.333', 2, Decimal('1.33')),
    ('1.335', 2, Decimal('1.34')),
    (2, 2, Decimal('2.00')),
    ('8.2505', 3, Decimal('8.251')),
    (0.1, 2, Decimal('0.10')),
])
def test_parse_decimal_rounds_half_up_to_places(raw, places, expected):
    assert parse_decimal(raw, 'value', places=places) == expected


def test_parse_decimal_rejects_values_too_large_to_round():
    with pytest.raises(ValidationError) as exc:
        parse_decimal('1e40', 'hours_worked', places=2)
    assert exc.value.field == 'hours_worked'


def test_parse_decimal_rejects_negative_before_rounding():
    with pytest.raises(ValidationError):
        parse_decimal('-0.001', 'hours_worked', places=2)
