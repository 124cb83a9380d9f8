from dataclasses import dataclass
from datetime import datetime
from functools import reduce
from typing import Callable, Tuple
import uuid

from .domain import Event


@dataclass(frozen=True)
class EventBus:
    """
    Иммутабельная шина событий корзины.
    Подписчики: чистые функции (Event, state) -> state.
    """

    subscribers: Tuple[Tuple[str, Callable], ...] = ()

    def subscribe(
        self, event_name: str, handler: Callable[[Event, dict], dict]
    ) -> "EventBus":
        """Новая шина с ещё одним подписчиком"""
        return EventBus(subscribers=self.subscribers + ((event_name, handler),))

    def publish(self, event: Event, state: dict) -> dict:
        """Применяет подходящие обработчики по очереди и возвращает новое состояние"""
        matching = tuple(h for name, h in self.subscribers if name == event.name)
        return reduce(lambda s, handler: handler(event, s), matching, state)


def create_event(name: str, payload: dict) -> Event:
    return Event(
        id=str(uuid.uuid4()),
        ts=datetime.now().isoformat(),
        name=name,
        payload=payload,
    )


# ============ Обработчики: проекция сессии корзины ============


def handle_line_added(event: Event, state: dict) -> dict:
    return {
        **state,
        "line_count": state.get("line_count", 0) + 1,
        "last_event": event.name,
    }


def handle_line_removed(event: Event, state: dict) -> dict:
    return {
        **state,
        "line_count": max(0, state.get("line_count", 0) - 1),
        "last_event": event.name,
    }


def handle_line_updated(event: Event, state: dict) -> dict:
    return {**state, "last_event": event.name}


def handle_line_rejected(event: Event, state: dict) -> dict:
    """Отказ (нет остатка); уведомление пользователю показывает UI"""
    rejection = {
        "line_id": event.payload.get("line_id"),
        "reason": event.payload.get("reason"),
        "ts": event.ts,
    }
    return {
        **state,
        "rejections": state.get("rejections", []) + [rejection],
        "last_event": event.name,
    }


def handle_prices_synced(event: Event, state: dict) -> dict:
    line_ids = event.payload.get("line_ids", ())
    return {
        **state,
        "repriced_total": state.get("repriced_total", 0) + len(line_ids),
        "last_event": event.name,
    }


def handle_promo_changed(event: Event, state: dict) -> dict:
    return {
        **state,
        "promo_active": event.payload.get("promo_active"),
        "last_event": event.name,
    }


def create_cart_event_bus() -> EventBus:
    bus = EventBus()
    bus = bus.subscribe("LINE_ADDED", handle_line_added)
    bus = bus.subscribe("LINE_UPDATED", handle_line_updated)
    bus = bus.subscribe("LINE_REMOVED", handle_line_removed)
    bus = bus.subscribe("LINE_REJECTED", handle_line_rejected)
    bus = bus.subscribe("PRICES_SYNCED", handle_prices_synced)
    bus = bus.subscribe("PROMO_CHANGED", handle_promo_changed)
    return bus


def initial_state() -> dict:
    return {
        "line_count": 0,
        "repriced_total": 0,
        "rejections": [],
        "promo_active": None,
        "last_event": None,
    }


def apply_events(bus: EventBus, events: Tuple[Event, ...], state: dict) -> dict:
    """(события, начальное состояние) -> итоговое состояние"""
    return reduce(lambda s, e: bus.publish(e, s), events, state)
