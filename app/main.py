import sys
import os
import logging

import streamlit as st

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.catalog import load_catalog
from core.clock import time_until_boundary
from core.config import get_settings
from core.mutations import Rejected
from core.pricing import resolve_price
from core.service import CartService
from core.store import InMemoryCartStore
from core.sync import CartSynchronizer
from core.tax import quantize_money
from Analytics_Service.report import inconsistent_lines

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

settings = get_settings()
window = settings.promo_window()


# ============ Кэширование данных ============
@st.cache_data
def get_catalog():
    return load_catalog(settings.seed_path)


st.set_page_config(
    page_title="Shop Pricing",
    page_icon="🛒",
    layout="wide",
    initial_sidebar_state="expanded",
)

products, catalog_errors = get_catalog()


# ============ Инициализация сессии ============
if "cart_service" not in st.session_state:
    store = InMemoryCartStore()
    service = CartService(store, settings.clock(), window)
    st.session_state.cart_service = service
    st.session_state.synchronizer = CartSynchronizer(
        store,
        service.clock,
        window,
        poll_interval=settings.sync_poll_interval,
        settle_delay=settings.sync_settle_delay,
        min_interval=settings.sync_min_interval,
        epsilon=settings.price_epsilon,
        on_event=service.publish,
    )
    # первый проход при "монтировании" корзины
    st.session_state.synchronizer.reconcile(force=True)

service: CartService = st.session_state.cart_service
synchronizer: CartSynchronizer = st.session_state.synchronizer


def format_price(amount) -> str:
    return f"₹{quantize_money(amount)}"


def notify(result) -> None:
    """Either/Outcome -> всплывающее уведомление"""
    if isinstance(result, Rejected):
        st.toast("Insufficient stock!", icon="⚠️")
    elif result is not None and hasattr(result, "fold"):
        result.fold(
            lambda err: st.toast(err["error"], icon="⚠️"),
            lambda line: st.toast(f"{line.title} × {line.quantity}", icon="✅"),
        )


# ============ Таймер промо (опрос раз в poll_interval) ============
@st.fragment(run_every=settings.sync_poll_interval)
def promo_timer():
    synchronizer.check_promo()
    active = service.promo_active()
    remaining = time_until_boundary(service.clock.now(), window)
    label = "Happy Hour: ends in" if active else "Happy Hour: starts in"
    st.metric(
        label,
        str(remaining).split(".")[0] if remaining else "—",
        help=f"{window.start_hour:02d}:00 - {window.end_hour:02d}:00 ({window.timezone})",
    )


# ============ SIDEBAR ============
with st.sidebar:
    st.header("📂 Навигация")
    page = st.radio(
        "Раздел:",
        ["🏪 Каталог", "🛒 Корзина", "🧾 Оформление"],
        label_visibility="collapsed",
    )
    st.divider()
    promo_timer()
    if settings.test_hour is not None:
        st.caption(f"🧪 Час зафиксирован: {settings.test_hour}:00")
    if catalog_errors:
        st.warning(f"Пропущено товаров каталога: {len(catalog_errors)}")


# ============ PAGE: КАТАЛОГ ============
if page == "🏪 Каталог":
    st.header("🏪 Каталог")
    promo = service.promo_active()

    for p in products:
        with st.container():
            cols = st.columns([5, 3, 2, 2])
            with cols[0]:
                st.markdown(f"**{p.title}**")
                tiers = p.policy.promo_tiers if promo and p.policy.has_promo() else p.policy.regular_tiers
                if tiers:
                    st.caption(
                        " · ".join(
                            f"от {t.min_quantity} шт: {format_price(t.gross_price_per_unit)}"
                            for t in tiers
                        )
                    )
            with cols[1]:
                price = resolve_price(p.policy, 1, promo)
                st.write(format_price(price.gross_price_per_unit))
                if price.source == "promo_single":
                    st.caption(f"~~{format_price(p.policy.gross_unit_price)}~~")
            with cols[2]:
                qty = st.number_input(
                    "Кол-во",
                    min_value=p.min_order_quantity,
                    value=p.min_order_quantity,
                    key=f"qty_{p.id}",
                    label_visibility="collapsed",
                )
            with cols[3]:
                if st.button("➕ В корзину", key=f"add_{p.id}"):
                    notify(service.add(p, int(qty)))
            st.divider()


# ============ PAGE: КОРЗИНА ============
elif page == "🛒 Корзина":
    st.header("🛒 Корзина")
    synchronizer.reconcile()
    lines = service.store.list_lines()

    if not lines:
        st.info("🛍️ Корзина пуста. Перейдите в каталог!")
    else:
        for line in lines:
            cols = st.columns([5, 1, 2, 1, 2, 1])
            with cols[0]:
                st.write(f"**{line.title}**")
                st.caption(f"Цена за шт. {format_price(line.unit_gross_price)}")
            with cols[1]:
                if st.button("➖", key=f"dec_{line.id}"):
                    service.decrement(line.id)
                    st.rerun()
            with cols[2]:
                raw = st.text_input(
                    "Кол-во",
                    value=str(line.quantity),
                    key=f"input_{line.id}_{line.quantity}",
                    label_visibility="collapsed",
                )
                if raw != str(line.quantity):
                    notify(service.set_quantity(line.id, raw))
                    st.rerun()
            with cols[3]:
                if st.button("➕", key=f"inc_{line.id}"):
                    notify(service.increment(line.id))
                    st.rerun()
            with cols[4]:
                st.write(format_price(line.line_total))
            with cols[5]:
                if st.button("🗑️", key=f"remove_{line.id}"):
                    service.remove(line.id)
                    st.rerun()

        summary = service.summary()
        st.divider()
        st.markdown(f"### 💰 Итого: **{format_price(summary['subtotal'])}**")
        if summary["promo_savings"] > 0:
            st.success(f"Экономия по Happy Hour: {format_price(summary['promo_savings'])}")


# ============ PAGE: ОФОРМЛЕНИЕ ============
elif page == "🧾 Оформление":
    st.header("🧾 Оформление заказа")
    synchronizer.reconcile()

    shipping = st.number_input("Доставка", min_value=0, value=60)
    code = st.selectbox("Купон", ["—", "SAVE10 (10%)", "FLAT50 (₹50 от ₹500)"])
    coupon = {
        "SAVE10 (10%)": {"type": "percent", "value": 10},
        "FLAT50 (₹50 от ₹500)": {"type": "fixed", "value": 50, "minimum_amount": 500},
    }.get(code)

    summary = service.summary(shipping, coupon)
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Подытог", format_price(summary["subtotal"]))
        st.metric("Налоговая база", format_price(summary["taxable_total"]))
    with col2:
        st.metric("Налог", format_price(summary["tax_total"]))
        st.metric("Доставка", format_price(summary["shipping"]))
    with col3:
        st.metric("Скидка", format_price(summary["discount"]))
        st.metric("К оплате", format_price(summary["total"]))

    st.subheader("GST по ставкам")
    for rate, tax in summary["tax_breakup"].items():
        st.write(f"**{rate}%**: {format_price(tax)}")

    broken = inconsistent_lines(service.store.list_lines())
    if broken:
        st.warning(f"Строки с расхождением налога: {', '.join(broken)}")

    st.divider()
    st.caption(
        f"Пересчитано строк за сессию: {service.state['repriced_total']} · "
        f"последнее событие: {service.state['last_event']}"
    )
