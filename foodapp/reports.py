"""Aggregates over orders, payments and the menu for the admin dashboard."""
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models
from .utils import round_amount

PAYMENT_FOLLOW_UP_STATUSES = ("confirmed", "preparing", "ready", "delivered")


def _day_bounds(day: date):
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _money(value) -> Decimal:
    return round_amount(value if value is not None else Decimal("0"))


def get_admin_orders(db: Session, status: Optional[str] = None, day: Optional[date] = None,
                     payment_status: Optional[str] = None, limit: int = 50) -> List[models.Order]:
    query = db.query(models.Order).join(models.User)
    if status:
        query = query.filter(models.Order.order_status == status)
    if day:
        start, end = _day_bounds(day)
        query = query.filter(models.Order.created_at >= start, models.Order.created_at < end)
    if payment_status:
        query = query.filter(models.Order.payment_status == payment_status)
    return query.order_by(models.Order.created_at.desc(), models.Order.id.desc()).limit(limit).all()


def get_recent_orders(db: Session, limit: int = 10) -> List[models.Order]:
    return get_admin_orders(db, limit=limit)


def _count_orders(db: Session, *criteria) -> int:
    return db.query(func.count(models.Order.id)).filter(*criteria).scalar() or 0


def _sum_orders(db: Session, *criteria) -> Decimal:
    return _money(db.query(func.sum(models.Order.total_amount)).filter(*criteria).scalar())


def get_order_statistics(db: Session) -> dict:
    return {
        "total_orders": _count_orders(db),
        "pending_orders": _count_orders(db, models.Order.order_status == "pending"),
        "preparing_orders": _count_orders(db, models.Order.order_status == "preparing"),
        "total_revenue": _sum_orders(db, models.Order.order_status == "delivered"),
    }


def get_payment_statistics(db: Session) -> dict:
    pending = models.Order.payment_status == "pending"
    return {
        "pending_payments": _count_orders(db, pending),
        "pending_amount": _sum_orders(db, pending),
        "delivered_unpaid": _count_orders(db, pending, models.Order.order_status == "delivered"),
    }


def get_orders_with_pending_payments(db: Session, limit: int = 10) -> List[models.Order]:
    return (
        db.query(models.Order)
        .filter(
            models.Order.payment_status == "pending",
            models.Order.order_status.in_(PAYMENT_FOLLOW_UP_STATUSES),
        )
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .limit(limit)
        .all()
    )


def get_dashboard_stats(db: Session, today: Optional[date] = None) -> dict:
    today = today or models.utcnow().date()
    start, end = _day_bounds(today)
    month_start = datetime.combine(today.replace(day=1), time.min)
    created_today = (models.Order.created_at >= start, models.Order.created_at < end)
    delivered = models.Order.order_status == "delivered"

    avg_value = db.query(func.avg(models.Order.total_amount)).filter(delivered).scalar()
    active_customers = (
        db.query(func.count(func.distinct(models.Order.user_id)))
        .filter(models.Order.created_at >= month_start)
        .scalar()
    )
    return {
        "total_orders_today": _count_orders(db, *created_today),
        "revenue_today": _sum_orders(db, *created_today, delivered),
        "active_customers": active_customers or 0,
        "avg_order_value": _money(avg_value),
        "pending_orders": _count_orders(db, models.Order.order_status == "pending"),
        "total_menu_items": db.query(models.MenuItem).filter(models.MenuItem.availability == "available").count(),
        "total_customers": db.query(models.User)
        .filter(models.User.role == "customer", models.User.status == "active")
        .count(),
    }


def get_menu_statistics(db: Session) -> dict:
    available = models.MenuItem.availability == "available"
    avg_price = db.query(func.avg(models.MenuItem.price)).filter(available).scalar()
    return {
        "total_categories": db.query(models.Category).count(),
        "total_items": db.query(models.MenuItem).filter(available).count(),
        "featured_items": db.query(models.MenuItem)
        .filter(available, models.MenuItem.is_featured.is_(True))
        .count(),
        "average_price": _money(avg_price),
    }


def get_menu_price_range(db: Session) -> dict:
    low, high = (
        db.query(func.min(models.MenuItem.price), func.max(models.MenuItem.price))
        .filter(models.MenuItem.availability == "available")
        .one()
    )
    return {
        "min_price": _money(low) if low is not None else None,
        "max_price": _money(high) if high is not None else None,
    }
