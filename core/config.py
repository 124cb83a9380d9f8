# core/config.py

"""Настройки ценового ядра.

Значения по умолчанию совпадают с боевой витриной (промо 18:00-09:00 по IST),
любое поле переопределяется переменной окружения с префиксом ``SHOP_``
или строкой в ``.env``. Например ``SHOP_TEST_HOUR=20`` фиксирует час
для проверки переходов промо-окна.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .clock import SystemClock
from .domain import PromoWindow


class ShopSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SHOP_", env_file=".env", env_ignore_empty=True, extra="ignore"
    )

    promo_start_hour: int = Field(18, ge=0, le=23)
    promo_end_hour: int = Field(9, ge=0, le=23)
    promo_timezone: str = "Asia/Kolkata"
    test_hour: int | None = Field(None, ge=0, le=23)

    sync_poll_interval: float = Field(10.0, gt=0)
    sync_settle_delay: float = Field(0.3, ge=0)
    sync_min_interval: float = Field(1.0, ge=0)
    price_epsilon: Decimal = Decimal("0.001")

    seed_path: str = "data/seed.json"

    def promo_window(self) -> PromoWindow:
        return PromoWindow(
            start_hour=self.promo_start_hour,
            end_hour=self.promo_end_hour,
            timezone=self.promo_timezone,
        )

    def clock(self) -> SystemClock:
        return SystemClock(self.promo_window(), override=self.test_hour)


@lru_cache
def get_settings() -> ShopSettings:
    """Настройки читаются один раз за процесс"""
    return ShopSettings()
