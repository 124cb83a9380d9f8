import logging
from typing import Optional

from Analytics_Service.report import order_summary, promo_savings
from core.clock import Clock, promo_active_now
from core.domain import CartLine, Product, PromoWindow
from core.frp import EventBus, create_cart_event_bus, create_event, initial_state
from core.ftypes import Either
from core.mutations import (
    Outcome,
    Rejected,
    Removed,
    Unchanged,
    Updated,
    add_product,
    apply_outcome,
    decrement,
    increment,
    set_quantity,
)
from core.store import CartStore

logger = logging.getLogger(__name__)


class CartService:
    """
    Фасад корзины для UI: действия пользователя, состояние промо, итоги.
    Состояние промо каждый раз берётся из внедрённых часов.
    """

    def __init__(
        self,
        store: CartStore,
        clock: Clock,
        window: PromoWindow,
        bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.clock = clock
        self.window = window
        self.bus = bus or create_cart_event_bus()
        self.state = initial_state()

    def promo_active(self) -> bool:
        return promo_active_now(self.clock, self.window)

    def publish(self, name: str, payload: dict) -> dict:
        """Прогоняет событие через шину и сохраняет новое состояние сессии"""
        self.state = self.bus.publish(create_event(name, payload), self.state)
        return self.state

    # ============ Действия пользователя ============

    def add(self, product: Product, qty: int = 1) -> Either[dict, CartLine]:
        existed = self.store.get_line(product.id) is not None
        result = add_product(self.store, product, qty, self.promo_active())
        if result.is_left:
            self.publish("LINE_REJECTED", {"line_id": product.id, "reason": result.value["error"]})
        else:
            self.publish("LINE_UPDATED" if existed else "LINE_ADDED", {"line_id": product.id})
        return result

    def increment(self, line_id: str) -> Optional[Outcome]:
        return self._mutate(line_id, lambda line, promo: increment(line, promo))

    def decrement(self, line_id: str) -> Optional[Outcome]:
        return self._mutate(line_id, lambda line, promo: decrement(line, promo))

    def set_quantity(self, line_id: str, raw) -> Optional[Outcome]:
        return self._mutate(line_id, lambda line, promo: set_quantity(line, raw, promo))

    def remove(self, line_id: str) -> None:
        if self.store.get_line(line_id) is None:
            return
        self.store.remove_line(line_id)
        self.publish("LINE_REMOVED", {"line_id": line_id})

    def _mutate(self, line_id: str, operation) -> Optional[Outcome]:
        line = self.store.get_line(line_id)
        if line is None:
            logger.debug("no cart line %s", line_id)
            return None

        outcome = apply_outcome(self.store, operation(line, self.promo_active()))
        if isinstance(outcome, Updated):
            self.publish("LINE_UPDATED", {"line_id": line_id, **outcome.changes})
        elif isinstance(outcome, Removed):
            self.publish("LINE_REMOVED", {"line_id": line_id})
        elif isinstance(outcome, Rejected):
            self.publish("LINE_REJECTED", {"line_id": line_id, "reason": outcome.reason})
        elif isinstance(outcome, Unchanged):
            logger.debug("line %s left unchanged", line_id)
        return outcome

    # ============ Итоги ============

    def summary(self, shipping_cost=0, coupon: Optional[dict] = None) -> dict:
        lines = self.store.list_lines()
        return {
            **order_summary(lines, shipping_cost, coupon),
            "promo_active": self.promo_active(),
            "promo_savings": promo_savings(lines),
        }
