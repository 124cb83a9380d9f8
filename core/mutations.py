import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from .domain import CartLine, Product
from .ftypes import Either, Maybe
from .pricing import resolve_price
from .store import CartStore

logger = logging.getLogger(__name__)


# ============ Результаты изменения строки ============


@dataclass(frozen=True)
class Updated:
    line_id: str
    changes: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class Removed:
    line_id: str


@dataclass(frozen=True)
class Unchanged:
    line: CartLine


@dataclass(frozen=True)
class Rejected:
    line: CartLine
    reason: str


Outcome = Union[Updated, Removed, Unchanged, Rejected]


# ============ Вспомогательные функции ============


def parse_quantity(raw) -> Maybe[int]:
    """Ручной ввод количества: только целое положительное число"""
    if isinstance(raw, bool):
        return Maybe.nothing()
    if isinstance(raw, int):
        return Maybe.some(raw) if raw > 0 else Maybe.nothing()
    # isdigit() пропускает "²" и прочие юникодные цифры, int() на них падает
    text = raw.strip() if isinstance(raw, str) else ""
    if text.isascii() and text.isdigit():
        value = int(text)
        return Maybe.some(value) if value > 0 else Maybe.nothing()
    return Maybe.nothing()


def exceeds_stock(stock: Optional[int], quantity: int) -> bool:
    return stock is not None and quantity > stock


def _reprice(line: CartLine, quantity: int, promo_active: bool) -> Updated:
    """
    Количество пишется всегда, цена только если изменилась.
    Всё уходит одним update_line.
    """
    changes: Dict = {"quantity": quantity}
    if line.policy is not None:
        resolved = resolve_price(line.policy, quantity, promo_active)
        if resolved.gross_price_per_unit != line.unit_gross_price:
            changes["unit_gross_price"] = resolved.gross_price_per_unit
        if resolved.taxable_rate_per_unit != line.unit_taxable_rate:
            changes["unit_taxable_rate"] = resolved.taxable_rate_per_unit
    return Updated(line.id, changes)


# ============ Операции над строкой (чистые) ============


def increment(line: CartLine, promo_active: bool) -> Outcome:
    new_quantity = line.quantity + 1
    if exceeds_stock(line.stock, new_quantity):
        return Rejected(line, "insufficient_stock")
    return _reprice(line, new_quantity, promo_active)


def decrement(line: CartLine, promo_active: bool) -> Outcome:
    """
    На минимальном количестве строка удаляется целиком,
    а не уводится в ноль и не блокируется.
    """
    if line.quantity <= max(1, line.min_order_quantity):
        return Removed(line.id)
    return _reprice(line, line.quantity - 1, promo_active)


def set_quantity(line: CartLine, raw, promo_active: bool) -> Outcome:
    """Некорректный ввод ничего не меняет"""
    parsed = parse_quantity(raw)
    if parsed.is_none():
        return Unchanged(line)
    new_quantity = parsed.get_or_else(line.quantity)
    if new_quantity == line.quantity:
        return Unchanged(line)
    if exceeds_stock(line.stock, new_quantity):
        return Rejected(line, "insufficient_stock")
    return _reprice(line, new_quantity, promo_active)


def apply_outcome(store: CartStore, outcome: Outcome) -> Outcome:
    if isinstance(outcome, Updated):
        store.update_line(outcome.line_id, **outcome.changes)
    elif isinstance(outcome, Removed):
        store.remove_line(outcome.line_id)
    return outcome


# ============ Добавление товара ============


def new_line(product: Product, quantity: int, promo_active: bool) -> CartLine:
    resolved = resolve_price(product.policy, quantity, promo_active)
    return CartLine(
        id=product.id,
        product_id=product.id,
        title=product.title,
        quantity=quantity,
        unit_gross_price=resolved.gross_price_per_unit,
        unit_taxable_rate=resolved.taxable_rate_per_unit,
        tax_percent=product.policy.tax_percent,
        policy=product.policy,
        min_order_quantity=product.min_order_quantity,
        stock=product.stock,
    )


def add_product(
    store: CartStore, product: Product, qty: int, promo_active: bool
) -> Either[dict, CartLine]:
    """
    Добавляет товар: суммирует с уже лежащей строкой или создаёт новую
    со снимком ценовой политики. Left({"error": ...}) при нехватке остатка.
    """
    if qty <= 0:
        return Either.left({"error": f"Invalid quantity {qty} for '{product.title}'"})

    existing = store.get_line(product.id)
    if existing is not None:
        total = existing.quantity + qty
        if exceeds_stock(existing.stock, total):
            return Either.left({"error": "Insufficient stock!"})
        apply_outcome(store, _reprice(existing, total, promo_active))
        return Either.right(store.get_line(product.id))

    quantity = max(qty, product.min_order_quantity)
    if exceeds_stock(product.stock, quantity):
        return Either.left({"error": "Insufficient stock!"})

    line = new_line(product, quantity, promo_active)
    store.add_line(line)
    logger.info(
        "added %s x%d at %s", product.id, quantity, line.unit_gross_price
    )
    return Either.right(line)
