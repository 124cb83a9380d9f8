import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from .domain import PricingPolicy, Product, Tier
from .ftypes import Either, Maybe
from .tax import to_decimal

logger = logging.getLogger(__name__)


# ============ Разбор сырых данных каталога ============


def _optional_price(value) -> Optional[Decimal]:
    price = to_decimal(value) if value not in (None, "") else None
    return price if price is not None and price > 0 else None


def _rate_keys(pricing: dict) -> Tuple[str, ...]:
    def index(key: str) -> int:
        suffix = key[len("bulkRate") :]
        return int(suffix) if suffix.isdigit() else 0

    return tuple(
        sorted((k for k in pricing if k.startswith("bulkRate") and index(k) > 0), key=index)
    )


def parse_tiers(pricing: Optional[dict]) -> Tuple[Tier, ...]:
    """
    bulkRate1, bulkRate2, ... -> упорядоченный кортеж Tier.
    Ступени с нулевым порогом или ценой считаются ненастроенными и выбрасываются.
    """
    if not pricing:
        return ()

    def to_tier(raw: dict) -> Maybe[Tier]:
        quantity = int(raw.get("quantity") or 0)
        price = to_decimal(raw.get("pricePerUnit") or 0)
        if quantity <= 0 or price <= 0:
            return Maybe.nothing()
        return Maybe.some(Tier(quantity, price, _optional_price(raw.get("taxableRate"))))

    tiers = (to_tier(pricing.get(key) or {}) for key in _rate_keys(pricing))
    by_quantity = {t.min_quantity: t for t in (m.value for m in tiers if m.is_some())}
    return tuple(by_quantity[q] for q in sorted(by_quantity))


def parse_policy(raw: dict) -> PricingPolicy:
    """
    Ценовая политика из товара в формате бэкенда:
    prices.price | price, taxPercent | gst, bulkPricing, promoPricing.singleUnit
    """
    prices = raw.get("prices") or {}
    promo = raw.get("promoPricing") or {}
    return PricingPolicy(
        gross_unit_price=to_decimal(prices.get("price") or raw.get("price") or 0),
        tax_percent=to_decimal(raw.get("taxPercent") or raw.get("gst") or 0),
        regular_tiers=parse_tiers(raw.get("bulkPricing")),
        promo_tiers=parse_tiers(promo),
        promo_single_unit_price=_optional_price(promo.get("singleUnit")),
    )


def parse_product(raw: dict) -> Either[dict, Product]:
    """Right(Product) или Left({"error": ..., "id": ...}) для битой записи"""
    pid = str(raw.get("id") or raw.get("_id") or "")
    if not pid:
        return Either.left({"error": "product without id", "id": None})
    try:
        policy = parse_policy(raw)
        stock = raw.get("stock")
        return Either.right(
            Product(
                id=pid,
                title=str(raw.get("title", pid)),
                policy=policy,
                stock=int(stock) if stock is not None else None,
                min_order_quantity=max(1, int(raw.get("minOrderQuantity") or 1)),
                tags=tuple(raw.get("tags", [])),
            )
        )
    except (ValueError, TypeError, InvalidOperation) as exc:
        return Either.left({"error": str(exc), "id": pid})


def load_catalog(path: str) -> Tuple[Tuple[Product, ...], Tuple[dict, ...]]:
    """Загружает seed.json: (товары, ошибки разбора)"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    results = tuple(map(parse_product, data.get("products", [])))
    products = tuple(r.value for r in results if r.is_right)
    errors = tuple(r.value for r in results if r.is_left)
    for error in errors:
        logger.warning("catalog entry %(id)s rejected: %(error)s", error)
    return products, errors


def find_product(products: Tuple[Product, ...], pid: str) -> Maybe[Product]:
    return Maybe.of(next((p for p in products if p.id == pid), None))
