import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.clock import FixedClock
from core.mutations import new_line
from core.store import InMemoryCartStore
from core.sync import CartSynchronizer


class FakeMonotonic:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def make_sync(store, clock, window, **kwargs):
    options = dict(
        poll_interval=0.02, settle_delay=0.01, min_interval=0.0, boundary_timer=False
    )
    options.update(kwargs)
    return CartSynchronizer(store, clock, window, **options)


@pytest.fixture
def store(product):
    store = InMemoryCartStore()
    store.add_line(new_line(product, 10, False))
    return store


def test_reconcile_reprices_when_promo_opens(store, window):
    clock = FixedClock(20)
    sync = make_sync(store, clock, window)
    report = sync.reconcile(force=True)

    assert report.ran and report.promo_active
    assert report.updated == ("p1",)
    assert store.get_line("p1").unit_gross_price == Decimal("80")


def test_second_pass_is_noop(store, window):
    """Идемпотентность: повторный проход ничего не пишет"""
    sync = make_sync(store, FixedClock(20), window)
    sync.reconcile(force=True)
    writes = []
    store.subscribe(lambda kind, line_id: writes.append(kind))
    assert sync.reconcile(force=True).updated == ()
    assert writes == []


def test_line_without_policy_is_skipped(store, window, product):
    broken = replace(new_line(product, 10, False), id="broken", policy=None)
    store.add_line(broken)
    sync = make_sync(store, FixedClock(20), window)
    report = sync.reconcile(force=True)

    assert report.updated == ("p1",)
    assert report.skipped[0]["line_id"] == "broken"


def test_debounce_unless_forced(store, window):
    ticks = FakeMonotonic()
    clock = FixedClock(12)
    sync = make_sync(store, clock, window, min_interval=1.0, monotonic=ticks)
    assert sync.reconcile().ran

    clock.hour = 20
    ticks.now += 0.5
    skipped = sync.reconcile()
    assert not skipped.ran and skipped.reason == "debounced"
    assert store.get_line("p1").unit_gross_price == Decimal("90")

    assert sync.reconcile(force=True).ran
    assert store.get_line("p1").unit_gross_price == Decimal("80")


def test_reentrant_trigger_is_dropped(store, window):
    """Проход, запущенный изнутри другого прохода, отбрасывается"""
    sync = make_sync(store, FixedClock(20), window)
    nested = []
    store.subscribe(lambda kind, line_id: nested.append(sync.reconcile(force=True)))
    sync.reconcile(force=True)
    assert nested and all(r.reason == "busy" for r in nested)


def test_quantity_changed_between_read_and_write_is_not_overwritten(window, product):
    class RacingStore(InMemoryCartStore):
        def get_line(self, line_id):
            line = super().get_line(line_id)
            # пользователь успел поменять количество
            return replace(line, quantity=line.quantity + 1) if line else None

    racing = RacingStore()
    racing.add_line(new_line(product, 10, False))
    report = make_sync(racing, FixedClock(20), window).reconcile(force=True)
    assert report.updated == ()
    assert racing.list_lines()[0].unit_gross_price == Decimal("90")


def test_check_promo_emits_event_on_flip(store, window):
    events = []
    clock = FixedClock(12)
    sync = make_sync(store, clock, window, on_event=lambda name, p: events.append(name))
    sync.reconcile(force=True)
    assert events == ["PROMO_CHANGED"]
    assert sync.check_promo() is False
    events.clear()

    clock.hour = 19
    assert sync.check_promo() is True
    assert events == ["PROMO_CHANGED", "PRICES_SYNCED"]


def test_flip_seen_by_plain_pass_is_still_announced(store, window):
    """Смена промо, замеченная обычным проходом, тоже публикуется"""
    events = []
    clock = FixedClock(12)
    sync = make_sync(store, clock, window, on_event=lambda name, p: events.append((name, p)))
    sync.reconcile(force=True)
    events.clear()

    clock.hour = 20
    sync.reconcile()
    assert events[0] == ("PROMO_CHANGED", {"promo_active": True})
    # опрос уже не видит смены, и второго события нет
    assert sync.check_promo() is False
    assert [name for name, _ in events].count("PROMO_CHANGED") == 1


def test_damaged_line_does_not_stop_the_pass(window, product):
    store = InMemoryCartStore()
    store.add_line(replace(new_line(product, 10, False), id="damaged", unit_gross_price=90.0))
    store.add_line(replace(new_line(product, 10, False), id="good"))

    report = make_sync(store, FixedClock(20), window).reconcile(force=True)

    assert report.updated == ("good",)
    assert report.skipped[0]["line_id"] == "damaged"
    assert store.get_line("good").unit_gross_price == Decimal("80")
    assert store.get_line("damaged").unit_gross_price == 90.0


@pytest.mark.asyncio
async def test_poll_reprices_after_flip(store, window):
    """После смены промо цена обновляется не позже интервала опроса + проход"""
    clock = FixedClock(12)
    sync = make_sync(store, clock, window)
    await sync.start()
    try:
        assert store.get_line("p1").unit_gross_price == Decimal("90")
        clock.hour = 18
        await asyncio.sleep(0.1)
        assert store.get_line("p1").unit_gross_price == Decimal("80")
    finally:
        await sync.close()


@pytest.mark.asyncio
async def test_added_line_is_reconciled_after_settle_delay(window, product):
    store = InMemoryCartStore()
    async with make_sync(store, FixedClock(20), window, poll_interval=60):
        stale = new_line(product, 10, False)
        store.add_line(stale)
        assert store.get_line("p1").unit_gross_price == Decimal("90")
        await asyncio.sleep(0.05)
        assert store.get_line("p1").unit_gross_price == Decimal("80")


@pytest.mark.asyncio
async def test_close_cancels_pending_work(store, window):
    clock = FixedClock(12)
    sync = make_sync(store, clock, window, boundary_timer=True)
    await sync.start()
    await sync.close()

    clock.hour = 20
    store.add_line(replace(store.get_line("p1"), id="p2"))
    await asyncio.sleep(0.05)
    assert store.get_line("p1").unit_gross_price == Decimal("90")
    assert store.get_line("p2").unit_gross_price == Decimal("90")


@pytest.mark.asyncio
async def test_boundary_timer_reprices_before_next_poll(store, window):
    """Таймер на границу окна срабатывает раньше, чем очередной опрос"""
    edge = datetime(2025, 1, 1, 17, 59, 59, 800000, tzinfo=timezone.utc)
    clock = FixedClock(17, base=edge)
    async with make_sync(store, clock, window, poll_interval=60, boundary_timer=True):
        assert store.get_line("p1").unit_gross_price == Decimal("90")
        clock.hour = 18
        await asyncio.sleep(0.1)
        assert store.get_line("p1").unit_gross_price == Decimal("90")
        await asyncio.sleep(1.0)
        assert store.get_line("p1").unit_gross_price == Decimal("80")
