from dataclasses import replace
from typing import Callable, List, Optional, Protocol, Tuple

from .domain import Cart, CartLine
from .ftypes import Maybe

# (kind, line_id): kind in "added" | "updated" | "removed"
Listener = Callable[[str, str], None]


class CartStore(Protocol):
    """Контракт хранилища корзины, которым пользуется ценовое ядро"""

    def list_lines(self) -> Tuple[CartLine, ...]: ...

    def get_line(self, line_id: str) -> Optional[CartLine]: ...

    def add_line(self, line: CartLine) -> None: ...

    def update_line(self, line_id: str, **fields) -> None: ...

    def remove_line(self, line_id: str) -> None: ...

    def subscribe(self, listener: Listener) -> Callable[[], None]: ...


# ============ Чистые операции над Cart ============


def find_line(cart: Cart, line_id: str) -> Maybe[CartLine]:
    return Maybe.of(next((line for line in cart.lines if line.id == line_id), None))


def with_line(cart: Cart, line: CartLine) -> Cart:
    """Новый Cart с добавленной строкой (или заменённой, если id совпал)"""
    if find_line(cart, line.id).is_some():
        lines = tuple(line if other.id == line.id else other for other in cart.lines)
    else:
        lines = cart.lines + (line,)
    return replace(cart, lines=lines)


def with_fields(cart: Cart, line_id: str, **fields) -> Cart:
    """Все поля изменения пишутся одной заменой строки"""
    lines = tuple(
        replace(line, **fields) if line.id == line_id else line for line in cart.lines
    )
    return replace(cart, lines=lines)


def without_line(cart: Cart, line_id: str) -> Cart:
    return replace(cart, lines=tuple(other for other in cart.lines if other.id != line_id))


# ============ In-memory хранилище ============


class InMemoryCartStore:
    """
    Хранилище поверх иммутабельного Cart: каждая запись подменяет значение
    целиком, поэтому читатель никогда не видит полузаписанную строку.
    """

    def __init__(self, cart_id: str = "cart_default", lines: Tuple[CartLine, ...] = ()):
        self.cart = Cart(id=cart_id, lines=tuple(lines))
        self._listeners: List[Listener] = []

    def list_lines(self) -> Tuple[CartLine, ...]:
        return self.cart.lines

    def get_line(self, line_id: str) -> Optional[CartLine]:
        return find_line(self.cart, line_id).get_or_else(None)

    def add_line(self, line: CartLine) -> None:
        existed = find_line(self.cart, line.id).is_some()
        self.cart = with_line(self.cart, line)
        self._notify("updated" if existed else "added", line.id)

    def update_line(self, line_id: str, **fields) -> None:
        if find_line(self.cart, line_id).is_none():
            raise KeyError(line_id)
        self.cart = with_fields(self.cart, line_id, **fields)
        self._notify("updated", line_id)

    def remove_line(self, line_id: str) -> None:
        if find_line(self.cart, line_id).is_none():
            return
        self.cart = without_line(self.cart, line_id)
        self._notify("removed", line_id)

    def clear(self) -> None:
        for line in self.cart.lines:
            self.remove_line(line.id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Подписка на изменения; возвращает функцию отписки"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: str, line_id: str) -> None:
        for listener in tuple(self._listeners):
            listener(kind, line_id)
