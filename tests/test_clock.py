import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from datetime import datetime, timedelta, timezone

import pytest

from core.clock import (
    FixedClock,
    SystemClock,
    hour_is_active,
    is_promo_active,
    next_boundary,
    promo_active_now,
    time_until_boundary,
)
from core.domain import PromoWindow

WINDOW = PromoWindow(18, 9, "UTC")


@pytest.mark.parametrize(
    "hour, expected", [(23, True), (9, False), (8, True), (17, False), (18, True), (0, True)]
)
def test_window_wraps_midnight(hour, expected):
    """Окно 18 -> 9 переходит через полночь"""
    assert hour_is_active(hour, WINDOW) is expected


def test_non_wrapping_and_empty_window():
    day = PromoWindow(10, 14, "UTC")
    assert hour_is_active(10, day)
    assert not hour_is_active(14, day)
    assert not hour_is_active(9, day)
    assert not any(hour_is_active(h, PromoWindow(5, 5, "UTC")) for h in range(24))


def test_is_promo_active_uses_window_timezone():
    """12:30 UTC = 18:00 в Asia/Kolkata"""
    now = datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc)
    assert is_promo_active(now, PromoWindow(18, 9, "Asia/Kolkata"))
    assert not is_promo_active(now, PromoWindow(18, 9, "UTC"))


def test_override_replaces_wall_clock_hour():
    noon = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert is_promo_active(noon, WINDOW, override=20)
    assert not is_promo_active(noon, WINDOW, override=9)


def test_unknown_timezone_falls_back_to_local_hour(caplog):
    """Ошибка таймзоны не роняет расчёт"""
    broken = PromoWindow(18, 9, "Mars/Olympus_Mons")
    naive = datetime(2025, 3, 1, 20, 0)
    assert is_promo_active(naive, broken) is True
    assert "falling back" in caplog.text


def test_next_boundary_and_countdown():
    now = datetime(2025, 3, 1, 20, 15, tzinfo=timezone.utc)
    boundary = next_boundary(now, WINDOW)
    assert boundary == datetime(2025, 3, 2, 9, 0, tzinfo=timezone.utc)
    assert time_until_boundary(now, WINDOW) == timedelta(hours=12, minutes=45)

    morning = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert next_boundary(morning, WINDOW).hour == 18
    assert next_boundary(morning, PromoWindow(3, 3, "UTC")) is None


def test_clocks():
    clock = FixedClock(17)
    assert not promo_active_now(clock, WINDOW)
    clock.hour = 18
    assert promo_active_now(clock, WINDOW)

    pinned = SystemClock(WINDOW, override=2)
    assert pinned.current_hour() == 2
    assert pinned.now().tzinfo is not None
    assert pinned.now().hour == 2


def test_countdown_follows_pinned_hour():
    """Зафиксированный час (ночь, промо идёт): отсчёт до конца окна в 09:00"""
    pinned = SystemClock(WINDOW, override=2)
    remaining = time_until_boundary(pinned.now(), WINDOW)
    assert timedelta(hours=6) < remaining <= timedelta(hours=7)
