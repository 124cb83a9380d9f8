import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Tuple

from .clock import Clock, promo_active_now, time_until_boundary
from .domain import PromoWindow
from .lazy import iter_drifted_lines
from .store import CartStore

logger = logging.getLogger(__name__)

EventSink = Callable[[str, dict], None]


@dataclass(frozen=True)
class SyncReport:
    ran: bool
    promo_active: bool
    updated: Tuple[str, ...] = ()
    skipped: Tuple[dict, ...] = ()
    reason: str = ""  # "busy" | "debounced" при ran=False


class CartSynchronizer:
    """
    Фоновая сверка цен корзины с резолвером.

    Промо включается и выключается по часам, а не по действию пользователя,
    поэтому цены строк могут устареть в любой момент. Синхронизатор:
      - раз в poll_interval проверяет состояние промо;
      - при смене состояния и при старте делает принудительный проход;
      - после добавления/удаления строк ждёт settle_delay и делает проход;
      - заводит одноразовый таймер на ближайшую границу промо-окна.
    Проход, начатый во время другого, отбрасывается; обычные проходы
    не чаще одного в min_interval.
    """

    def __init__(
        self,
        store: CartStore,
        clock: Clock,
        window: PromoWindow,
        *,
        poll_interval: float = 10.0,
        settle_delay: float = 0.3,
        min_interval: float = 1.0,
        epsilon: Decimal = Decimal("0.001"),
        boundary_timer: bool = True,
        on_event: Optional[EventSink] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.clock = clock
        self.window = window
        self.poll_interval = poll_interval
        self.settle_delay = settle_delay
        self.min_interval = min_interval
        self.epsilon = epsilon
        self.boundary_timer = boundary_timer
        self.on_event = on_event
        self._monotonic = monotonic

        self.promo_active: Optional[bool] = None
        self._in_flight = False
        self._last_pass: Optional[float] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._poller: Optional[asyncio.Task] = None
        self._settle: Optional[asyncio.TimerHandle] = None
        self._boundary: Optional[asyncio.TimerHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ============ Проход сверки ============

    def reconcile(self, force: bool = False) -> SyncReport:
        """Один проход по всем строкам. Синхронный, работает и без event loop."""
        if self._in_flight:
            return SyncReport(False, bool(self.promo_active), reason="busy")

        now = self._monotonic()
        if (
            not force
            and self._last_pass is not None
            and now - self._last_pass < self.min_interval
        ):
            return SyncReport(False, bool(self.promo_active), reason="debounced")
        self._last_pass = now

        self._in_flight = True
        try:
            promo = promo_active_now(self.clock, self.window)
            self._observe_promo(promo)
            updated, skipped = [], []

            for result in iter_drifted_lines(
                self.store.list_lines(), promo, self.epsilon
            ):
                if result.is_left:
                    logger.warning("skipping line %(line_id)s: %(error)s", result.value)
                    skipped.append(result.value)
                    continue

                line, resolved = result.value
                current = self.store.get_line(line.id)
                if current is None or current.quantity != line.quantity:
                    # строку успели изменить между чтением и записью
                    continue
                try:
                    self.store.update_line(
                        line.id,
                        unit_gross_price=resolved.gross_price_per_unit,
                        unit_taxable_rate=resolved.taxable_rate_per_unit,
                    )
                except Exception as exc:
                    logger.warning("failed to reprice line %s", line.id, exc_info=True)
                    skipped.append({"line_id": line.id, "error": str(exc)})
                    continue
                logger.info(
                    "repriced %s: %s -> %s (promo: %s)",
                    line.id,
                    line.unit_gross_price,
                    resolved.gross_price_per_unit,
                    promo,
                )
                updated.append(line.id)
        finally:
            self._in_flight = False

        report = SyncReport(True, promo, tuple(updated), tuple(skipped))
        logger.debug(
            "sync pass done: %d updated, %d skipped", len(updated), len(skipped)
        )
        if updated:
            self._emit("PRICES_SYNCED", {"line_ids": report.updated, "promo_active": promo})
        return report

    def check_promo(self) -> bool:
        """Тик опроса. True, если состояние промо сменилось (и был проход)."""
        if not self._observe_promo(promo_active_now(self.clock, self.window)):
            return False
        self.reconcile(force=True)
        return True

    def _observe_promo(self, current: bool) -> bool:
        """
        Единственное место, где меняется promo_active: любая смена
        (кем бы она ни была замечена) публикуется как PROMO_CHANGED.
        """
        if current == self.promo_active:
            return False
        logger.info("promo state changed: %s -> %s", self.promo_active, current)
        self.promo_active = current
        self._emit("PROMO_CHANGED", {"promo_active": current})
        return True

    # ============ Жизненный цикл ============

    async def start(self) -> SyncReport:
        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self.store.subscribe(self._on_store_change)
        report = self.reconcile(force=True)
        self._poller = self._loop.create_task(self._poll())
        self._schedule_boundary()
        return report

    async def close(self) -> None:
        """Отменяет опрос и все отложенные проходы"""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for handle in (self._settle, self._boundary):
            if handle is not None:
                handle.cancel()
        self._settle = self._boundary = None
        if self._poller is not None:
            self._poller.cancel()
            try:
                await self._poller
            except asyncio.CancelledError:
                pass
            self._poller = None
        self._loop = None

    async def __aenter__(self) -> "CartSynchronizer":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            self.check_promo()

    def _on_store_change(self, kind: str, line_id: str) -> None:
        if kind not in ("added", "removed") or self._loop is None:
            return
        if self._settle is not None:
            self._settle.cancel()
        self._settle = self._loop.call_later(self.settle_delay, self._settled)

    def _settled(self) -> None:
        self._settle = None
        self.reconcile(force=False)

    def _schedule_boundary(self) -> None:
        if not self.boundary_timer or self._loop is None:
            return
        delay = time_until_boundary(self.clock.now(), self.window)
        if delay is None:
            return
        # небольшой запас, чтобы проснуться уже по ту сторону границы
        self._boundary = self._loop.call_later(
            delay.total_seconds() + 0.5, self._on_boundary
        )

    def _on_boundary(self) -> None:
        self._boundary = None
        self.check_promo()
        self._schedule_boundary()

    def _emit(self, name: str, payload: dict) -> None:
        if self.on_event is not None:
            self.on_event(name, payload)
