import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from decimal import Decimal

import pytest

from core.domain import PricingPolicy, Product, PromoWindow, Tier


@pytest.fixture
def window():
    return PromoWindow(18, 9, "UTC")


@pytest.fixture
def policy():
    """Политика из сценария границы: 100 / 18%, от 10 шт: 90 (промо 80)"""
    return PricingPolicy(
        gross_unit_price=Decimal("100"),
        tax_percent=Decimal("18"),
        regular_tiers=(Tier(10, Decimal("90")),),
        promo_tiers=(Tier(10, Decimal("80")),),
    )


@pytest.fixture
def product(policy):
    return Product(id="p1", title="Rice", policy=policy, stock=30)
