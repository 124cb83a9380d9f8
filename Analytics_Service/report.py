from decimal import Decimal
from functools import reduce
from typing import Dict, Iterable, Optional, Tuple

from core.domain import CartLine
from core.pricing import resolve_price
from core.tax import HUNDRED, quantize_money, tax_amount, to_decimal

ZERO = Decimal("0")


# ============ Итоги корзины (без округления) ============


def cart_subtotal(lines: Iterable[CartLine]) -> Decimal:
    """Сумма к оплате по строкам (цены с налогом)"""
    return reduce(lambda acc, l: acc + l.unit_gross_price * l.quantity, lines, ZERO)


def cart_taxable_total(lines: Iterable[CartLine]) -> Decimal:
    return reduce(lambda acc, l: acc + l.unit_taxable_rate * l.quantity, lines, ZERO)


def cart_tax_total(lines: Tuple[CartLine, ...]) -> Decimal:
    return cart_subtotal(lines) - cart_taxable_total(lines)


def tax_breakup(lines: Iterable[CartLine]) -> Dict[Decimal, Decimal]:
    """
    Налог по ставкам (для GST-отчёта): {ставка: сумма налога}.
    Округляется только итог по каждой ставке.
    """

    def accumulate(acc: dict, line: CartLine) -> dict:
        if line.tax_percent == 0:
            return acc
        tax = (line.unit_gross_price - line.unit_taxable_rate) * line.quantity
        return {**acc, line.tax_percent: acc.get(line.tax_percent, ZERO) + tax}

    raw = reduce(accumulate, lines, {})
    return {rate: quantize_money(amount) for rate, amount in sorted(raw.items())}


# ============ Купоны и итог заказа ============


def apply_coupon(subtotal: Decimal, coupon: Optional[dict]) -> Decimal:
    """
    Скидка по купону: {"type": "fixed" | "percent", "value", "minimum_amount"}.
    Купон не действует, если сумма ниже минимальной; скидка не больше суммы.
    """
    if not coupon:
        return ZERO
    if subtotal < to_decimal(coupon.get("minimum_amount", 0)):
        return ZERO

    value = to_decimal(coupon.get("value", 0))
    if coupon.get("type") == "fixed":
        discount = value
    else:
        discount = subtotal * value / HUNDRED
    return min(max(discount, ZERO), subtotal)


def order_summary(
    lines: Tuple[CartLine, ...], shipping_cost=0, coupon: Optional[dict] = None
) -> dict:
    """Итоги для оформления заказа и счёта; округление до копеек только здесь"""
    subtotal = cart_subtotal(lines)
    taxable = cart_taxable_total(lines)
    shipping = to_decimal(shipping_cost)
    discount = apply_coupon(subtotal, coupon)
    total = subtotal + shipping - discount

    return {
        "subtotal": quantize_money(subtotal),
        "taxable_total": quantize_money(taxable),
        "tax_total": quantize_money(subtotal - taxable),
        "tax_breakup": tax_breakup(lines),
        "shipping": quantize_money(shipping),
        "discount": quantize_money(discount),
        "total": quantize_money(total if total > 0 else subtotal),
        "items": sum(l.quantity for l in lines),
    }


# ============ Отчёты по промо ============


def promo_savings(lines: Iterable[CartLine]) -> Decimal:
    """
    Сколько покупатель экономит относительно обычных (не промо) цен
    при текущих ценах строк.
    """

    def saving(line: CartLine) -> Decimal:
        if line.policy is None:
            return ZERO
        regular = resolve_price(line.policy, line.quantity, False)
        diff = regular.gross_price_per_unit - line.unit_gross_price
        return diff * line.quantity if diff > 0 else ZERO

    return quantize_money(reduce(lambda acc, l: acc + saving(l), lines, ZERO))


def inconsistent_lines(
    lines: Iterable[CartLine], epsilon: Decimal = Decimal("0.01")
) -> Tuple[str, ...]:
    """
    Строки, где gross != taxable + налог по сохранённой ставке.
    Проверка перед генерацией счёта.
    """

    def broken(line: CartLine) -> bool:
        expected_tax = tax_amount(line.unit_gross_price, line.tax_percent)
        return abs(line.unit_gross_price - line.unit_taxable_rate - expected_tax) > epsilon

    return tuple(l.id for l in lines if broken(l))
