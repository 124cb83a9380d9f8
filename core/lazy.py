from decimal import Decimal
from typing import Iterable, Iterator, Tuple

from .domain import CartLine, ResolvedPrice
from .ftypes import Either
from .pricing import resolve_for_line


def drifted(line: CartLine, resolved: ResolvedPrice, epsilon: Decimal) -> bool:
    """Отличается ли сохранённая цена от пересчитанной больше чем на epsilon"""
    return (
        abs(line.unit_gross_price - resolved.gross_price_per_unit) > epsilon
        or abs(line.unit_taxable_rate - resolved.taxable_rate_per_unit) > epsilon
    )


## ленивый обход строк корзины: отдаёт только те, что разошлись с резолвером
## ошибка одной строки (и в пересчёте, и в сравнении) не прерывает обход, она отдаётся как Left
def iter_drifted_lines(
    lines: Iterable[CartLine], promo_active: bool, epsilon: Decimal
) -> Iterator[Either[dict, Tuple[CartLine, ResolvedPrice]]]:
    for line in lines:
        try:
            resolved = resolve_for_line(line, promo_active)
            stale = drifted(line, resolved, epsilon)
        except (ValueError, TypeError, ArithmeticError) as exc:
            yield Either.left({"line_id": line.id, "error": str(exc)})
            continue
        if stale:
            yield Either.right((line, resolved))
