from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class Tier:
    """Ступень оптовой цены: от min_quantity штук действует своя цена"""

    min_quantity: int
    gross_price_per_unit: Decimal
    taxable_rate_per_unit: Optional[Decimal] = None

    def is_configured(self) -> bool:
        # нулевая цена в ступени означает "не настроено", а не "бесплатно"
        return self.min_quantity > 0 and self.gross_price_per_unit > 0


def _check_tiers(name: str, tiers: Tuple[Tier, ...]) -> None:
    thresholds = [t.min_quantity for t in tiers]
    if any(q <= 0 for q in thresholds):
        raise ValueError(f"{name}: min_quantity must be positive")
    if any(a >= b for a, b in zip(thresholds, thresholds[1:])):
        raise ValueError(f"{name}: tiers must be strictly increasing in min_quantity")


@dataclass(frozen=True)
class PricingPolicy:
    """
    Ценовая политика товара (снимок из каталога, только для чтения).
    Все цены включают налог (gross).
    """

    gross_unit_price: Decimal
    tax_percent: Decimal = Decimal("0")
    regular_tiers: Tuple[Tier, ...] = ()
    promo_tiers: Tuple[Tier, ...] = ()
    promo_single_unit_price: Optional[Decimal] = None

    def __post_init__(self):
        if self.tax_percent < 0:
            raise ValueError("tax_percent must be >= 0")
        _check_tiers("regular_tiers", self.regular_tiers)
        _check_tiers("promo_tiers", self.promo_tiers)

    def has_promo(self) -> bool:
        """Есть ли у товара хоть какая-то промо-настройка"""
        single = self.promo_single_unit_price
        return bool(self.promo_tiers) or (single is not None and single > 0)


@dataclass(frozen=True)
class PromoWindow:
    """
    Ежедневное промо-окно [start_hour, end_hour) в заданной таймзоне.
    Может переходить через полночь: 18 -> 9 значит с 18:00 до 09:00.
    """

    start_hour: int = 18
    end_hour: int = 9
    timezone: str = "Asia/Kolkata"

    def __post_init__(self):
        for hour in (self.start_hour, self.end_hour):
            if not 0 <= hour <= 23:
                raise ValueError(f"hour out of range: {hour}")

    @property
    def wraps_midnight(self) -> bool:
        return self.start_hour > self.end_hour


@dataclass(frozen=True)
class ResolvedPrice:
    gross_price_per_unit: Decimal
    taxable_rate_per_unit: Decimal
    source: str  # "tier" | "promo_single" | "base"
    min_quantity: Optional[int] = None


@dataclass(frozen=True)
class Product:
    id: str
    title: str
    policy: PricingPolicy
    stock: Optional[int] = None
    min_order_quantity: int = 1
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CartLine:
    """
    Строка корзины. Цена и налоговая база хранятся вместе с количеством,
    policy: снимок ценовой политики на момент добавления.
    """

    id: str
    product_id: str
    quantity: int
    unit_gross_price: Decimal
    unit_taxable_rate: Decimal
    tax_percent: Decimal
    policy: Optional[PricingPolicy]
    title: str = ""
    min_order_quantity: int = 1
    stock: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_gross_price * self.quantity


@dataclass(frozen=True)
class Cart:
    id: str
    lines: Tuple[CartLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Event:
    id: str
    ts: str
    name: str
    payload: Dict
