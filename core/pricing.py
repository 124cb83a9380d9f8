from functools import reduce
from typing import Optional, Tuple

from .domain import CartLine, PricingPolicy, ResolvedPrice, Tier
from .tax import taxable_from_gross


# ============ Выбор ступени ============


def candidate_tiers(policy: PricingPolicy, promo_active: bool) -> Tuple[Tier, ...]:
    """
    Промо-ступени берутся, только если промо активно и у товара есть промо-настройка,
    иначе обычные оптовые ступени.
    """
    if promo_active and policy.has_promo():
        return policy.promo_tiers
    return policy.regular_tiers


def best_tier(tiers: Tuple[Tier, ...], quantity: int) -> Optional[Tier]:
    """
    Ступень с наибольшим порогом min_quantity <= quantity.
    Идём по возрастанию и перезаписываем найденное каждой подходящей ступенью,
    поэтому побеждает самая выгодная (50 шт. бьёт 20 шт.).
    """

    def pick(found: Optional[Tier], tier: Tier) -> Optional[Tier]:
        if tier.is_configured() and tier.min_quantity <= quantity:
            if found is None or tier.min_quantity > found.min_quantity:
                return tier
        return found

    return reduce(pick, tiers, None)


def _taxable(gross, explicit, policy: PricingPolicy):
    if explicit is not None and explicit > 0:
        return explicit
    return taxable_from_gross(gross, policy.tax_percent)


# ============ Резолвер ============


def resolve_price(
    policy: PricingPolicy, quantity: int, promo_active: bool
) -> ResolvedPrice:
    """
    Цена за единицу для (политика, количество, состояние промо).

    Порядок:
      1. подходящая оптовая ступень (промо или обычная);
      2. промо-цена за штуку, если промо активно и она задана;
      3. базовая цена товара.
    Никогда не бросает исключений из-за незаполненных полей.
    """
    qty = quantity if quantity and quantity > 0 else 1

    tier = best_tier(candidate_tiers(policy, promo_active), qty)
    if tier is not None:
        return ResolvedPrice(
            gross_price_per_unit=tier.gross_price_per_unit,
            taxable_rate_per_unit=_taxable(
                tier.gross_price_per_unit, tier.taxable_rate_per_unit, policy
            ),
            source="tier",
            min_quantity=tier.min_quantity,
        )

    single = policy.promo_single_unit_price
    if promo_active and single is not None and single > 0:
        return ResolvedPrice(
            gross_price_per_unit=single,
            taxable_rate_per_unit=taxable_from_gross(single, policy.tax_percent),
            source="promo_single",
        )

    return ResolvedPrice(
        gross_price_per_unit=policy.gross_unit_price,
        taxable_rate_per_unit=taxable_from_gross(
            policy.gross_unit_price, policy.tax_percent
        ),
        source="base",
    )


def resolve_for_line(line: CartLine, promo_active: bool) -> ResolvedPrice:
    """Пересчёт строки корзины по её собственному снимку политики"""
    if line.policy is None:
        raise ValueError(f"cart line {line.id!r} has no pricing policy snapshot")
    return resolve_price(line.policy, line.quantity, promo_active)
