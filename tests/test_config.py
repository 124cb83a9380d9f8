import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from decimal import Decimal

import pytest
from pydantic import ValidationError

from core.config import ShopSettings, get_settings


def test_defaults():
    settings = ShopSettings(_env_file=None)
    window = settings.promo_window()
    assert (window.start_hour, window.end_hour) == (18, 9)
    assert settings.sync_poll_interval == 10.0
    assert settings.price_epsilon == Decimal("0.001")
    assert settings.test_hour is None


def test_env_override(monkeypatch):
    monkeypatch.setenv("SHOP_TEST_HOUR", "20")
    monkeypatch.setenv("SHOP_PROMO_TIMEZONE", "UTC")
    settings = ShopSettings(_env_file=None)
    assert settings.clock().current_hour() == 20
    assert settings.promo_window().timezone == "UTC"


def test_empty_test_hour_is_ignored(monkeypatch):
    monkeypatch.setenv("SHOP_TEST_HOUR", "")
    assert ShopSettings(_env_file=None).test_hour is None


def test_invalid_hour_rejected(monkeypatch):
    monkeypatch.setenv("SHOP_TEST_HOUR", "25")
    with pytest.raises(ValidationError):
        ShopSettings(_env_file=None)


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
