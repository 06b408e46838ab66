"""Session-scoped shopping cart.

A cart lives only for the duration of a shopping session and is never
written to the database. Prices are read live from the catalog until an
order is placed; the order then keeps its own price snapshot.
"""
import logging
import time
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from . import config, crud, models

logger = logging.getLogger(__name__)


class CartLine(NamedTuple):
    item: models.MenuItem
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.item.price) * self.quantity


def clamp_quantity(quantity: int) -> int:
    return max(1, min(int(quantity), config.MAX_CART_QUANTITY))


class Cart:
    def __init__(self):
        self._quantities: Dict[int, int] = {}

    def add(self, db: Session, item_id: int, quantity: int = 1) -> bool:
        """Put an available item in the cart.

        Re-adding an item sets its quantity rather than summing it.
        """
        item = crud.get_menu_item(db, item_id)
        if item is None or not item.is_available:
            logger.warning("refusing to add item %s: missing or unavailable", item_id)
            return False
        self._quantities[item_id] = clamp_quantity(quantity)
        return True

    def update(self, item_id: int, quantity: int) -> bool:
        if item_id not in self._quantities:
            return False
        if quantity <= 0:
            del self._quantities[item_id]
        else:
            self._quantities[item_id] = clamp_quantity(quantity)
        return True

    def remove(self, item_id: int) -> bool:
        return self._quantities.pop(item_id, None) is not None

    def clear(self):
        self._quantities.clear()

    def contains(self, item_id: int) -> bool:
        return item_id in self._quantities

    def quantity_of(self, item_id: int) -> int:
        return self._quantities.get(item_id, 0)

    def is_empty(self) -> bool:
        return not self._quantities

    def count(self) -> int:
        return sum(self._quantities.values())

    def lines(self, db: Session) -> List[CartLine]:
        lines = []
        for item_id, quantity in self._quantities.items():
            item = crud.get_menu_item(db, item_id)
            # items deleted from the catalog silently drop out
            if item is not None:
                lines.append(CartLine(item=item, quantity=quantity))
        return lines

    def total(self, db: Session) -> Decimal:
        return sum((line.line_total for line in self.lines(db)), Decimal("0"))

    def __len__(self):
        return len(self._quantities)


class CartStore:
    """Carts keyed by session id.

    Each cart remembers when its session token expires; expired carts are
    dropped whenever a cart is looked up.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._carts: Dict[str, Cart] = {}
        self._expires: Dict[str, Optional[float]] = {}

    def evict_expired(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        expired = [sid for sid, expires_at in self._expires.items()
                   if expires_at is not None and expires_at <= now]
        for sid in expired:
            self.discard(sid)
        if expired:
            logger.info("dropped %d expired carts", len(expired))
        return len(expired)

    def get(self, session_id: str, expires_at: Optional[float] = None) -> Cart:
        self.evict_expired()
        cart = self._carts.get(session_id)
        if cart is None:
            cart = self._carts[session_id] = Cart()
        if expires_at is not None or session_id not in self._expires:
            self._expires[session_id] = expires_at
        return cart

    def discard(self, session_id: str):
        self._carts.pop(session_id, None)
        self._expires.pop(session_id, None)

    def __len__(self):
        return len(self._carts)
