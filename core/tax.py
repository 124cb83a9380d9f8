from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

Number = Union[Decimal, int, str]

HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Приводит число к Decimal без потери точности (float через str)"""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def taxable_from_gross(gross: Number, tax_percent: Optional[Number]) -> Decimal:
    """
    Налоговая база из цены с налогом: gross / (1 + tax_percent/100).
    Без округления: округляем только при выводе и агрегации.
    """
    gross = to_decimal(gross)
    percent = to_decimal(tax_percent)
    if percent == 0:
        return gross
    return gross / (1 + percent / HUNDRED)


def tax_amount(gross: Number, tax_percent: Optional[Number]) -> Decimal:
    """Сумма налога внутри цены"""
    return to_decimal(gross) - taxable_from_gross(gross, tax_percent)


def quantize_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
