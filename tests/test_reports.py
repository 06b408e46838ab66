from datetime import timedelta
from decimal import Decimal

from foodapp import models, orders, reports
from foodapp.cart import Cart


def place(db, user, details, item, quantity=1, method="cash"):
    cart = Cart()
    cart.add(db, item.id, quantity)
    return orders.checkout(db, cart, user.id, details.model_copy(update={"payment_method": method}))


def test_empty_database(db_session):
    stats = reports.get_order_statistics(db_session)
    assert stats == {"total_orders": 0, "pending_orders": 0, "preparing_orders": 0,
                     "total_revenue": Decimal("0.00")}
    assert reports.get_menu_price_range(db_session) == {"min_price": None, "max_price": None}


def test_order_and_payment_statistics(db_session, customer, other_customer, details, menu):
    # 10 + 5 + 0.60 tax = 15.60
    delivered = place(db_session, customer, details, menu["a"])
    preparing = place(db_session, other_customer, details, menu["b"], 2)
    online = place(db_session, customer, details, menu["b"], 1, "online")
    orders.update_order_status(db_session, delivered, "delivered")
    orders.update_order_status(db_session, preparing, "preparing")

    stats = reports.get_order_statistics(db_session)
    assert stats["total_orders"] == 3
    assert stats["preparing_orders"] == 1
    assert stats["pending_orders"] == 0
    assert stats["total_revenue"] == Decimal("15.60")

    payments = reports.get_payment_statistics(db_session)
    # only the preparing cash order still owes money
    assert payments["pending_payments"] == 1
    assert payments["pending_amount"] == Decimal("15.60")
    assert payments["delivered_unpaid"] == 0

    pending = reports.get_orders_with_pending_payments(db_session)
    assert [o.id for o in pending] == [preparing]
    assert online not in [o.id for o in pending]


def test_admin_order_filters(db_session, customer, details, menu):
    first = place(db_session, customer, details, menu["a"])
    second = place(db_session, customer, details, menu["b"])
    orders.update_order_status(db_session, second, "preparing")

    assert [o.id for o in reports.get_admin_orders(db_session)] == [second, first]
    assert [o.id for o in reports.get_admin_orders(db_session, status="preparing")] == [second]
    assert reports.get_admin_orders(db_session, payment_status="paid") == []

    today = models.utcnow().date()
    assert len(reports.get_admin_orders(db_session, day=today)) == 2
    assert reports.get_admin_orders(db_session, day=today - timedelta(days=1)) == []
    assert len(reports.get_recent_orders(db_session, limit=1)) == 1


def test_dashboard_counts_today_only(db_session, customer, other_customer, details, menu):
    today_order = place(db_session, customer, details, menu["a"])
    old_order = place(db_session, other_customer, details, menu["a"])
    orders.update_order_status(db_session, today_order, "delivered")
    orders.update_order_status(db_session, old_order, "delivered")

    old = orders.get_order(db_session, old_order)
    old.created_at = old.created_at - timedelta(days=40)
    db_session.commit()

    stats = reports.get_dashboard_stats(db_session)
    assert stats["total_orders_today"] == 1
    assert stats["revenue_today"] == Decimal("15.60")
    assert stats["avg_order_value"] == Decimal("15.60")
    assert stats["active_customers"] == 1
    assert stats["total_menu_items"] == 2
    assert stats["total_customers"] == 2


def test_menu_statistics(db_session, menu):
    stats = reports.get_menu_statistics(db_session)
    assert stats["total_categories"] == 1
    assert stats["total_items"] == 2
    assert stats["featured_items"] == 1
    assert stats["average_price"] == Decimal("7.50")
    assert reports.get_menu_price_range(db_session) == {"min_price": Decimal("5.00"),
                                                         "max_price": Decimal("10.00")}
