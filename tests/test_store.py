import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import pytest

from core.mutations import new_line
from core.store import InMemoryCartStore


def test_store_notifies_listeners(product):
    store = InMemoryCartStore()
    seen = []
    unsubscribe = store.subscribe(lambda kind, line_id: seen.append((kind, line_id)))

    store.add_line(new_line(product, 1, False))
    store.update_line("p1", quantity=2)
    store.remove_line("p1")
    store.remove_line("p1")
    unsubscribe()
    store.add_line(new_line(product, 1, False))

    assert seen == [("added", "p1"), ("updated", "p1"), ("removed", "p1")]


def test_update_writes_all_fields_at_once(product):
    store = InMemoryCartStore()
    store.add_line(new_line(product, 1, False))
    before = store.cart
    store.update_line("p1", quantity=5, title="Rice 5")
    assert before.lines[0].quantity == 1
    assert store.get_line("p1").quantity == 5
    assert store.get_line("p1").title == "Rice 5"


def test_update_missing_line_raises():
    with pytest.raises(KeyError):
        InMemoryCartStore().update_line("nope", quantity=1)


def test_clear(product):
    store = InMemoryCartStore()
    store.add_line(new_line(product, 1, False))
    store.clear()
    assert store.list_lines() == ()
