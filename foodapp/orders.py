"""Order lifecycle: turning a cart into an order, then moving it through its
fulfilment and payment states.

Every public operation returns a success indicator (an order id, ``True``)
or ``None``/``False`` on failure; nothing here raises for an expected
refusal. Status changes and their audit rows are always written in the same
commit.
"""
import logging
from decimal import Decimal
from typing import List, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config, models, schemas
from .cart import Cart, CartLine
from .utils import clean_text, format_currency, round_amount

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")

# Fulfilment order; later stages may be reached directly from earlier ones
FULFILMENT_SEQUENCE = ("pending", "confirmed", "preparing", "ready", "delivered")
CANCELLABLE_STATUSES = ("pending", "confirmed")
TERMINAL_STATUSES = ("delivered", "cancelled")

NOTE_ONLINE_CONFIRMED = "Order confirmed - Online payment received"
NOTE_CASH_CONFIRMED = "Order confirmed - Cash on delivery"
NOTE_ADMIN_UPDATE = "Status updated by admin"
NOTE_CANCELLED = "Order cancelled"
NOTE_CASH_AUTO_CONFIRMED = "Cash payment auto-confirmed on delivery"
NOTE_CASH_CONFIRMED_BY_ADMIN = "Cash payment confirmed by admin"


class OrderTotals(NamedTuple):
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    total: Decimal


def calculate_totals(subtotal: Decimal) -> OrderTotals:
    """Delivery fee is flat; service tax applies to the subtotal only."""
    subtotal = round_amount(subtotal)
    tax = round_amount(subtotal * config.SERVICE_TAX_RATE)
    delivery_fee = config.DELIVERY_FEE
    return OrderTotals(subtotal, delivery_fee, tax, subtotal + delivery_fee + tax)


def can_transition(current: str, new: str) -> bool:
    if new not in ORDER_STATUSES:
        return False
    if not config.is_strict_transitions():
        return True
    if current in TERMINAL_STATUSES:
        return False
    if new == "cancelled":
        return current in CANCELLABLE_STATUSES
    if current not in FULFILMENT_SEQUENCE:
        return False
    return FULFILMENT_SEQUENCE.index(new) > FULFILMENT_SEQUENCE.index(current)


def _commit(db: Session, action: str) -> bool:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("%s failed, rolled back", action)
        return False
    return True


def _set_order_status(order: models.Order, status: str):
    order.order_status = status
    order.updated_at = models.utcnow()


def _set_payment_status(order: models.Order, status: str):
    order.payment_status = status
    order.updated_at = models.utcnow()


# -------------------- Audit trail --------------------

def record_history(db: Session, order_id: int, status: Optional[str], note: str = "",
                   actor_id: Optional[int] = None, commit: bool = True) -> models.OrderStatusHistory:
    """Append an audit row. A ``None`` status records a payment-only event."""
    entry = models.OrderStatusHistory(
        order_id=order_id,
        status=status,
        notes=clean_text(note),
        changed_by=actor_id,
        created_at=models.utcnow(),
    )
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def get_status_history(db: Session, order_id: int) -> List[models.OrderStatusHistory]:
    return (
        db.query(models.OrderStatusHistory)
        .filter(models.OrderStatusHistory.order_id == order_id)
        .order_by(models.OrderStatusHistory.created_at.desc(), models.OrderStatusHistory.id.desc())
        .all()
    )


# -------------------- Queries --------------------

def get_order(db: Session, order_id: int) -> Optional[models.Order]:
    return db.get(models.Order, order_id)


def get_order_items(db: Session, order_id: int) -> List[models.OrderItem]:
    return (
        db.query(models.OrderItem)
        .filter(models.OrderItem.order_id == order_id)
        .order_by(models.OrderItem.id)
        .all()
    )


def get_user_orders(db: Session, user_id: int, limit: int = 50) -> List[models.Order]:
    return (
        db.query(models.Order)
        .filter(models.Order.user_id == user_id)
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .limit(limit)
        .all()
    )


# -------------------- Creation --------------------

def _insert_order_items(db: Session, order_id: int, lines: List[CartLine]):
    for line in lines:
        db.add(models.OrderItem(
            order_id=order_id,
            menu_item_id=line.item.id,
            quantity=line.quantity,
            item_price=round_amount(line.item.price),
        ))
    db.flush()


def create_order_from_cart(db: Session, cart: Cart, user_id: int,
                           details: schemas.CheckoutRequest) -> Optional[int]:
    """Persist the cart as a pending order in a single transaction.

    Returns the new order id, or None when the cart is empty, holds an item
    that can no longer be ordered, or the insert fails. On failure nothing is
    written and the cart is left as it was; on success the cart is cleared.
    """
    if cart.is_empty():
        logger.warning("user %s tried to order from an empty cart", user_id)
        return None

    lines = cart.lines(db)
    stale = [line.item.id for line in lines if not line.item.is_available]
    if len(lines) != len(cart) or stale:
        logger.warning("user %s cart holds items that can no longer be ordered", user_id)
        return None

    totals = calculate_totals(sum((line.line_total for line in lines), Decimal("0")))
    now = models.utcnow()
    order = models.Order(
        user_id=user_id,
        total_amount=totals.total,
        delivery_address=clean_text(details.delivery_address),
        phone=details.phone.strip(),
        notes=clean_text(details.notes),
        payment_method=details.payment_method,
        order_status="pending",
        payment_status="pending",
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(order)
        db.flush()
        _insert_order_items(db, order.id, lines)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("failed to place order for user %s, rolled back", user_id)
        return None

    cart.clear()
    logger.info("order %s placed by user %s: %d lines, total %s",
                order.id, user_id, len(lines), format_currency(totals.total))
    return order.id


def checkout(db: Session, cart: Cart, user_id: int, details: schemas.CheckoutRequest) -> Optional[int]:
    """Place the order and confirm it straight away.

    Orders never rest in ``pending`` after checkout: online payments are
    confirmed and marked paid, cash orders are confirmed with payment left
    pending until delivery.
    """
    order_id = create_order_from_cart(db, cart, user_id, details)
    if order_id is None:
        return None

    order = db.get(models.Order, order_id)
    _set_order_status(order, "confirmed")
    if details.payment_method == "online":
        _set_payment_status(order, "paid")
        note = NOTE_ONLINE_CONFIRMED
    else:
        note = NOTE_CASH_CONFIRMED
    record_history(db, order_id, "confirmed", note, user_id, commit=False)
    if not _commit(db, f"confirming order {order_id}"):
        logger.warning("order %s was placed but left pending", order_id)
    return order_id


# -------------------- Status transitions --------------------

def _settle_cash_on_delivery(db: Session, order: models.Order) -> bool:
    if order.order_status != "delivered" or order.payment_status != "pending":
        return False
    _set_payment_status(order, "paid")
    record_history(db, order.id, None, NOTE_CASH_AUTO_CONFIRMED, None, commit=False)
    logger.info("order %s delivered, cash payment auto-confirmed", order.id)
    return True


def transition_status(db: Session, order_id: int, new_status: str, note: str = "",
                      actor_id: Optional[int] = None) -> bool:
    """Move an order to ``new_status`` and write its audit row in one commit.

    Reaching ``delivered`` with payment still pending settles the payment as
    cash on delivery.
    """
    if new_status not in ORDER_STATUSES:
        logger.warning("rejected unknown order status %r for order %s", new_status, order_id)
        return False
    order = db.get(models.Order, order_id)
    if order is None:
        return False
    if not can_transition(order.order_status, new_status):
        logger.warning("rejected transition %s -> %s for order %s",
                       order.order_status, new_status, order_id)
        return False

    previous = order.order_status
    _set_order_status(order, new_status)
    record_history(db, order.id, new_status, note, actor_id, commit=False)
    _settle_cash_on_delivery(db, order)
    if not _commit(db, f"moving order {order_id} to {new_status}"):
        return False
    logger.info("order %s: %s -> %s", order_id, previous, new_status)
    return True


def update_order_status(db: Session, order_id: int, new_status: str, actor_id: Optional[int] = None) -> bool:
    return transition_status(db, order_id, new_status, NOTE_ADMIN_UPDATE, actor_id)


def auto_confirm_cash_payment(db: Session, order_id: int) -> bool:
    order = db.get(models.Order, order_id)
    if order is None or not _settle_cash_on_delivery(db, order):
        return False
    return _commit(db, f"auto-confirming payment for order {order_id}")


# -------------------- Payment --------------------

def update_payment_status(db: Session, order_id: int, new_status: str, note: Optional[str] = None,
                          actor_id: Optional[int] = None) -> bool:
    if new_status not in PAYMENT_STATUSES:
        logger.warning("rejected unknown payment status %r for order %s", new_status, order_id)
        return False
    order = db.get(models.Order, order_id)
    if order is None:
        return False
    _set_payment_status(order, new_status)
    record_history(db, order.id, None, note or f"Payment status set to {new_status}", actor_id, commit=False)
    if not _commit(db, f"setting payment of order {order_id} to {new_status}"):
        return False
    logger.info("order %s payment is now %s", order_id, new_status)
    return True


def confirm_payment(db: Session, order_id: int, actor_id: Optional[int] = None) -> bool:
    """Admin confirmation that cash was received. Only pending payments qualify."""
    order = db.get(models.Order, order_id)
    if order is None or order.payment_status != "pending":
        return False
    return update_payment_status(db, order_id, "paid", NOTE_CASH_CONFIRMED_BY_ADMIN, actor_id)


# -------------------- Cancellation --------------------

def cancel_order(db: Session, order_id: int, acting_user_id: Optional[int] = None,
                 actor_id: Optional[int] = None) -> bool:
    """Cancel a pending or confirmed order.

    ``acting_user_id`` is the customer making the request and must own the
    order; admins pass None and are recorded through ``actor_id`` instead.
    """
    order = db.get(models.Order, order_id)
    if order is None or order.order_status not in CANCELLABLE_STATUSES:
        return False
    if acting_user_id and order.user_id != acting_user_id:
        logger.warning("user %s tried to cancel order %s owned by user %s",
                       acting_user_id, order_id, order.user_id)
        return False

    _set_order_status(order, "cancelled")
    changed_by = actor_id if actor_id is not None else acting_user_id
    record_history(db, order.id, "cancelled", NOTE_CANCELLED, changed_by, commit=False)
    if not _commit(db, f"cancelling order {order_id}"):
        return False
    logger.info("order %s cancelled", order_id)
    return True
