import logging
from datetime import datetime, timedelta
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .domain import PromoWindow

logger = logging.getLogger(__name__)


# ============ Чистые функции промо-окна ============


def hour_is_active(hour: int, window: PromoWindow) -> bool:
    """Попадает ли час в промо-окно (с учётом перехода через полночь)"""
    if window.start_hour == window.end_hour:
        return False
    if window.wraps_midnight:
        return hour >= window.start_hour or hour < window.end_hour
    return window.start_hour <= hour < window.end_hour


def localize(now: datetime, window: PromoWindow) -> datetime:
    """
    Переводит время в таймзону окна.
    При ошибке конвертации возвращает локальное системное время:
    цена не должна ронять корзину из-за таймзоны.
    """
    try:
        return now.astimezone(ZoneInfo(window.timezone))
    except (ZoneInfoNotFoundError, ValueError, OverflowError, OSError) as exc:
        logger.warning(
            "timezone %r unavailable (%s), falling back to local hour",
            window.timezone,
            exc,
        )
        return now if now.tzinfo is None else now.astimezone()


def is_promo_active(
    now: datetime, window: PromoWindow, override: Optional[int] = None
) -> bool:
    """
    Активно ли промо в момент now.
    override (час 0-23) подменяет час из now, нужен только для тестов.
    """
    hour = override if override is not None else localize(now, window).hour
    return hour_is_active(hour, window)


def next_boundary(now: datetime, window: PromoWindow) -> Optional[datetime]:
    """
    Ближайший момент (строго после now), когда промо включится или выключится.
    None, если окно пустое (start == end).
    """
    if window.start_hour == window.end_hour:
        return None

    local = localize(now, window)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    candidates = (
        midnight.replace(hour=hour) + timedelta(days=day)
        for day in (0, 1)
        for hour in (window.start_hour, window.end_hour)
    )
    return min(c for c in candidates if c > local)


def time_until_boundary(now: datetime, window: PromoWindow) -> Optional[timedelta]:
    """Сколько осталось до конца (или начала) промо (таймер на витрине)"""
    boundary = next_boundary(now, window)
    if boundary is None:
        return None
    return boundary - localize(now, window)


# ============ Часы как внедряемая зависимость ============


class Clock(Protocol):
    def now(self) -> datetime: ...

    def current_hour(self) -> int: ...


class SystemClock:
    """Настенные часы в таймзоне промо-окна с опциональной подменой часа"""

    def __init__(self, window: PromoWindow, override: Optional[int] = None):
        self.window = window
        self.override = override

    def now(self) -> datetime:
        local = localize(datetime.now().astimezone(), self.window)
        # подменённый час виден и таймеру обратного отсчёта
        return local if self.override is None else local.replace(hour=self.override)

    def current_hour(self) -> int:
        if self.override is not None:
            return self.override
        return self.now().hour


class FixedClock:
    """Часы для тестов: час задаётся вручную и может меняться"""

    def __init__(self, hour: int, base: Optional[datetime] = None):
        self.hour = hour
        self.base = base or datetime(2025, 1, 1)

    def now(self) -> datetime:
        return self.base.replace(hour=self.hour)

    def current_hour(self) -> int:
        return self.hour


def promo_active_now(clock: Clock, window: PromoWindow) -> bool:
    return hour_is_active(clock.current_hour(), window)
