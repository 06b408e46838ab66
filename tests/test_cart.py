import time
from decimal import Decimal

from foodapp import crud, schemas
from foodapp.cart import Cart, CartStore


def test_add_available_item(db_session, menu):
    cart = Cart()
    assert cart.add(db_session, menu["a"].id, 2)
    assert cart.contains(menu["a"].id)
    assert cart.quantity_of(menu["a"].id) == 2
    assert cart.count() == 2


def test_readding_item_replaces_quantity(db_session, menu):
    cart = Cart()
    cart.add(db_session, menu["a"].id, 2)
    cart.add(db_session, menu["a"].id, 3)
    assert cart.quantity_of(menu["a"].id) == 3
    assert len(cart) == 1


def test_quantity_is_clamped(db_session, menu):
    cart = Cart()
    cart.add(db_session, menu["a"].id, 25)
    assert cart.quantity_of(menu["a"].id) == 10
    cart.add(db_session, menu["b"].id, 0)
    assert cart.quantity_of(menu["b"].id) == 1


def test_unavailable_or_missing_item_rejected(db_session, menu):
    cart = Cart()
    assert not cart.add(db_session, menu["c"].id, 1)
    assert not cart.add(db_session, 9999, 1)
    assert cart.is_empty()


def test_update_sets_or_removes(db_session, menu):
    cart = Cart()
    cart.add(db_session, menu["a"].id, 2)
    assert cart.update(menu["a"].id, 4)
    assert cart.quantity_of(menu["a"].id) == 4
    assert cart.update(menu["a"].id, 99)
    assert cart.quantity_of(menu["a"].id) == 10
    assert cart.update(menu["a"].id, 0)
    assert not cart.contains(menu["a"].id)
    # not in the cart any more
    assert not cart.update(menu["a"].id, 1)


def test_remove_and_clear(db_session, full_cart, menu):
    assert full_cart.remove(menu["a"].id)
    assert not full_cart.remove(menu["a"].id)
    assert full_cart.count() == 1
    full_cart.clear()
    assert full_cart.is_empty()
    assert full_cart.count() == 0


def test_total_uses_live_prices(db_session, full_cart, menu):
    assert full_cart.total(db_session) == Decimal("25.00")

    item = menu["a"]
    crud.update_menu_item(db_session, item.id, schemas.MenuItemCreate(
        category_id=item.category_id, name=item.name, price=Decimal("12.00")))
    assert full_cart.total(db_session) == Decimal("29.00")


def test_deleted_items_drop_out_of_lines(db_session, menu):
    cart = Cart()
    cart.add(db_session, menu["b"].id, 1)
    assert crud.delete_menu_item(db_session, menu["b"].id)
    assert cart.lines(db_session) == []
    assert cart.total(db_session) == Decimal("0")


def test_cart_store_keeps_sessions_apart(db_session, menu):
    store = CartStore()
    store.get("s1").add(db_session, menu["a"].id, 1)
    assert store.get("s2").is_empty()
    assert store.get("s1").count() == 1

    store.discard("s1")
    assert store.get("s1").is_empty()


def test_expired_session_carts_are_dropped(db_session, menu):
    store = CartStore()
    now = time.time()
    store.get("stale", now - 5).add(db_session, menu["a"].id, 1)
    store.get("fresh", now + 3600).add(db_session, menu["b"].id, 1)
    # the lookup for "fresh" already evicted "stale"
    assert len(store) == 1
    assert store.get("fresh", now + 3600).count() == 1

    assert store.evict_expired(now + 7200) == 1
    assert len(store) == 0
