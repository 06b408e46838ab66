import logging
from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Optional

import jwt
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from sqlalchemy.orm import Session

from . import config, crud, models, orders, reports, schemas
from .auth import create_access_token, decode_access_token, new_session_id, verify_password
from .cart import Cart, CartStore
from .db import Base, SessionLocal, engine
from .utils import clean_text, sanitize_input

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create tables if not existing. Use migration/seed_catalog.py to seed a fresh database.
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Food Ordering Service")
app.state.carts = CartStore()

ORDER_FAILED = "Failed to place order. Please try again."
CANCEL_FAILED = "Failed to cancel order. Order may not be cancellable."


# Dependency to get DB session per request

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class Identity(NamedTuple):
    user: models.User
    session_id: str
    expires_at: Optional[float] = None


def get_identity(authorization: Optional[str] = Header(default=None), db: Session = Depends(get_db)) -> Identity:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="missing bearer token")
    token = authorization.split(None, 1)[1]
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (jwt.PyJWTError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="invalid token")
    user = crud.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="user not found or inactive")
    return Identity(
        user=user,
        session_id=payload.get("sid") or f"user-{user.id}",
        expires_at=payload.get("exp"),
    )


def require_customer(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.user.role != "customer":
        raise HTTPException(status_code=403, detail="forbidden: customer account required")
    return identity


def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.user.is_admin:
        raise HTTPException(status_code=403, detail="forbidden: admin required")
    return identity


def get_cart(request: Request, identity: Identity = Depends(require_customer)) -> Cart:
    return request.app.state.carts.get(identity.session_id, identity.expires_at)


def _cart_response(db: Session, cart: Cart) -> schemas.CartRead:
    lines = cart.lines(db)
    totals = orders.calculate_totals(sum((line.line_total for line in lines), Decimal("0")))
    return schemas.CartRead(
        lines=[
            schemas.CartLineRead(
                item_id=line.item.id,
                name=line.item.name,
                price=line.item.price,
                quantity=line.quantity,
                line_total=line.line_total,
            )
            for line in lines
        ],
        count=cart.count(),
        subtotal=totals.subtotal,
        delivery_fee=totals.delivery_fee,
        tax=totals.tax,
        total=totals.total,
    )


def _visible_order(db: Session, order_id: int, user: models.User) -> models.Order:
    order = orders.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="order not found")
    if not user.is_admin and order.user_id != user.id:
        raise HTTPException(status_code=403, detail="access denied")
    return order


@app.get("/health")
async def health():
    return {"status": "ok"}


# -------------------- Auth --------------------

@app.post("/auth/register", response_model=schemas.UserRead, status_code=201)
async def register(user: schemas.UserCreate, db: Session = Depends(get_db)):
    # self-registration always yields a customer account
    user = user.model_copy(update={"role": "customer"})
    try:
        return crud.create_user(db, user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/auth/login")
async def auth_login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    user = crud.authenticate_user(db, payload.login, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail="invalid credentials")
    token = create_access_token(user.id, user.role, session_id=new_session_id())
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": schemas.UserRead.model_validate(user),
    }


@app.post("/auth/logout")
async def auth_logout(request: Request, identity: Identity = Depends(get_identity)):
    request.app.state.carts.discard(identity.session_id)
    return {"logged_out": True}


@app.get("/auth/me", response_model=schemas.UserRead)
async def get_me(identity: Identity = Depends(get_identity)):
    return identity.user


@app.put("/auth/me", response_model=schemas.UserRead)
async def update_me(payload: schemas.UserUpdate, identity: Identity = Depends(get_identity),
                    db: Session = Depends(get_db)):
    try:
        updated = crud.update_user_profile(db, identity.user.id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="user not found")
    return updated


@app.post("/auth/me/password")
async def change_password(payload: schemas.PasswordChange, identity: Identity = Depends(get_identity),
                          db: Session = Depends(get_db)):
    if not verify_password(payload.current_password, identity.user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect.")
    if not crud.change_user_password(db, identity.user.id, payload.new_password):
        raise HTTPException(status_code=400, detail="Failed to update password.")
    return {"updated": True}


# -------------------- Catalog --------------------

@app.get("/categories", response_model=List[schemas.CategoryRead])
async def get_categories(db: Session = Depends(get_db)):
    return crud.list_categories(db)


@app.get("/menu", response_model=List[schemas.MenuItemRead])
async def get_menu(
    category_id: Optional[int] = Query(default=None, ge=1),
    q: str = Query("", max_length=100),
    min_price: Optional[Decimal] = Query(default=None, ge=0),
    max_price: Optional[Decimal] = Query(default=None, ge=0),
    db: Session = Depends(get_db),
):
    if q:
        term = sanitize_input(q)
        if not term:
            return []
        return crud.search_menu_items(db, term, category_id, min_price, max_price)
    if min_price is not None or max_price is not None:
        low = min_price if min_price is not None else Decimal("0")
        high = max_price if max_price is not None else Decimal("99999999.99")
        return crud.get_menu_items_by_price_range(db, low, high, category_id)
    return crud.list_menu_items(db, available_only=True, category_id=category_id)


@app.get("/menu/featured", response_model=List[schemas.MenuItemRead])
async def get_featured(limit: int = Query(6, ge=1, le=50), db: Session = Depends(get_db)):
    return crud.get_featured_menu_items(db, limit)


@app.get("/menu/{item_id}", response_model=schemas.MenuItemRead)
async def get_menu_item(item_id: int, db: Session = Depends(get_db)):
    item = crud.get_menu_item(db, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="menu item not found")
    return item


# -------------------- Cart --------------------

@app.get("/cart", response_model=schemas.CartRead)
async def view_cart(cart: Cart = Depends(get_cart), db: Session = Depends(get_db)):
    return _cart_response(db, cart)


@app.get("/cart/count")
async def cart_count(cart: Cart = Depends(get_cart)):
    return {"count": cart.count()}


@app.post("/cart/items", response_model=schemas.CartRead)
async def add_to_cart(payload: schemas.CartItemAdd, cart: Cart = Depends(get_cart), db: Session = Depends(get_db)):
    if not cart.add(db, payload.item_id, payload.quantity):
        raise HTTPException(status_code=400, detail="Item is not available.")
    return _cart_response(db, cart)


@app.put("/cart/items/{item_id}", response_model=schemas.CartRead)
async def update_cart_item(item_id: int, payload: schemas.CartItemUpdate, cart: Cart = Depends(get_cart),
                           db: Session = Depends(get_db)):
    if not cart.update(item_id, payload.quantity):
        raise HTTPException(status_code=404, detail="item not in cart")
    return _cart_response(db, cart)


@app.delete("/cart/items/{item_id}", response_model=schemas.CartRead)
async def remove_cart_item(item_id: int, cart: Cart = Depends(get_cart), db: Session = Depends(get_db)):
    cart.remove(item_id)
    return _cart_response(db, cart)


@app.delete("/cart", response_model=schemas.CartRead)
async def clear_cart(cart: Cart = Depends(get_cart), db: Session = Depends(get_db)):
    cart.clear()
    return _cart_response(db, cart)


# -------------------- Orders --------------------

@app.post("/checkout", response_model=schemas.OrderDetail, status_code=201)
async def place_order(payload: schemas.CheckoutRequest, identity: Identity = Depends(require_customer),
                      cart: Cart = Depends(get_cart), db: Session = Depends(get_db)):
    if cart.is_empty():
        raise HTTPException(status_code=400, detail="Your cart is empty.")
    order_id = orders.checkout(db, cart, identity.user.id, payload)
    if order_id is None:
        raise HTTPException(status_code=400, detail=ORDER_FAILED)
    return orders.get_order(db, order_id)


@app.get("/orders", response_model=List[schemas.OrderRead])
async def my_orders(limit: int = Query(50, ge=1, le=200), identity: Identity = Depends(get_identity),
                    db: Session = Depends(get_db)):
    return orders.get_user_orders(db, identity.user.id, limit)


@app.get("/orders/{order_id}", response_model=schemas.OrderDetail)
async def order_details(order_id: int, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return _visible_order(db, order_id, identity.user)


@app.get("/orders/{order_id}/status", response_model=schemas.OrderStatusRead)
async def order_status(order_id: int, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    order = _visible_order(db, order_id, identity.user)
    return schemas.OrderStatusRead(
        order_id=order.id,
        order_status=order.order_status,
        payment_status=order.payment_status,
        updated_at=order.updated_at,
    )


@app.post("/orders/{order_id}/cancel", response_model=schemas.OrderRead)
async def cancel_order(order_id: int, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    user = identity.user
    if user.is_admin:
        ok = orders.cancel_order(db, order_id, acting_user_id=None, actor_id=user.id)
    else:
        ok = orders.cancel_order(db, order_id, acting_user_id=user.id)
    if not ok:
        raise HTTPException(status_code=400, detail=CANCEL_FAILED)
    return orders.get_order(db, order_id)


# -------------------- Admin: catalog --------------------

@app.post("/admin/categories", response_model=schemas.CategoryRead, status_code=201)
async def admin_create_category(payload: schemas.CategoryCreate, admin: Identity = Depends(require_admin),
                                db: Session = Depends(get_db)):
    try:
        return crud.create_category(db, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/admin/categories/{category_id}", response_model=schemas.CategoryRead)
async def admin_update_category(category_id: int, payload: schemas.CategoryCreate,
                                admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        updated = crud.update_category(db, category_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="category not found")
    return updated


@app.delete("/admin/categories/{category_id}")
async def admin_delete_category(category_id: int, admin: Identity = Depends(require_admin),
                                db: Session = Depends(get_db)):
    if not crud.get_category(db, category_id):
        raise HTTPException(status_code=404, detail="category not found")
    if not crud.delete_category(db, category_id):
        raise HTTPException(status_code=400, detail="Cannot delete a category that still has menu items.")
    return {"deleted": category_id}


@app.get("/admin/menu", response_model=List[schemas.MenuItemRead])
async def admin_list_menu(category_id: Optional[int] = Query(default=None, ge=1),
                          admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return crud.list_menu_items(db, available_only=False, category_id=category_id)


@app.post("/admin/menu", response_model=schemas.MenuItemRead, status_code=201)
async def admin_create_menu_item(payload: schemas.MenuItemCreate, admin: Identity = Depends(require_admin),
                                 db: Session = Depends(get_db)):
    try:
        return crud.create_menu_item(db, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.put("/admin/menu/{item_id}", response_model=schemas.MenuItemRead)
async def admin_update_menu_item(item_id: int, payload: schemas.MenuItemCreate,
                                 admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    try:
        updated = crud.update_menu_item(db, item_id, payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not updated:
        raise HTTPException(status_code=404, detail="menu item not found")
    return updated


@app.post("/admin/menu/{item_id}/toggle", response_model=schemas.MenuItemRead)
async def admin_toggle_menu_item(item_id: int, admin: Identity = Depends(require_admin),
                                 db: Session = Depends(get_db)):
    item = crud.toggle_menu_item_availability(db, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="menu item not found")
    return item


@app.delete("/admin/menu/{item_id}")
async def admin_delete_menu_item(item_id: int, admin: Identity = Depends(require_admin),
                                 db: Session = Depends(get_db)):
    if not crud.get_menu_item(db, item_id):
        raise HTTPException(status_code=404, detail="menu item not found")
    if not crud.delete_menu_item(db, item_id):
        raise HTTPException(status_code=400, detail="Menu item has been ordered; mark it unavailable instead.")
    return {"deleted": item_id}


# -------------------- Admin: orders & payments --------------------

@app.get("/admin/orders", response_model=List[schemas.OrderRead])
async def admin_orders(
    status: Optional[str] = None,
    day: Optional[date] = None,
    payment_status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    admin: Identity = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return reports.get_admin_orders(db, status=status, day=day, payment_status=payment_status, limit=limit)


@app.put("/admin/orders/{order_id}/status", response_model=schemas.OrderDetail)
async def admin_update_order_status(order_id: int, payload: schemas.OrderStatusUpdate,
                                    admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    if not orders.get_order(db, order_id):
        raise HTTPException(status_code=404, detail="order not found")
    note = clean_text(payload.note)
    if note:
        ok = orders.transition_status(db, order_id, payload.status, note, admin.user.id)
    else:
        ok = orders.update_order_status(db, order_id, payload.status, admin.user.id)
    if not ok:
        raise HTTPException(status_code=400, detail="Failed to update order status.")
    return orders.get_order(db, order_id)


@app.put("/admin/orders/{order_id}/payment", response_model=schemas.OrderDetail)
async def admin_update_payment_status(order_id: int, payload: schemas.PaymentStatusUpdate,
                                      admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    if not orders.get_order(db, order_id):
        raise HTTPException(status_code=404, detail="order not found")
    if not orders.update_payment_status(db, order_id, payload.payment_status, payload.note, admin.user.id):
        raise HTTPException(status_code=400, detail="Failed to update payment status.")
    return orders.get_order(db, order_id)


@app.post("/admin/orders/{order_id}/confirm-payment", response_model=schemas.OrderDetail)
async def admin_confirm_payment(order_id: int, admin: Identity = Depends(require_admin),
                                db: Session = Depends(get_db)):
    if not orders.get_order(db, order_id):
        raise HTTPException(status_code=404, detail="order not found")
    if not orders.confirm_payment(db, order_id, admin.user.id):
        raise HTTPException(status_code=400, detail="Failed to confirm payment.")
    return orders.get_order(db, order_id)


@app.get("/admin/payments/pending", response_model=List[schemas.OrderRead])
async def admin_pending_payments(limit: int = Query(20, ge=1, le=200), admin: Identity = Depends(require_admin),
                                 db: Session = Depends(get_db)):
    return reports.get_orders_with_pending_payments(db, limit)


# -------------------- Admin: reporting --------------------

@app.get("/admin/stats")
async def admin_dashboard(admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return {
        "stats": reports.get_dashboard_stats(db),
        "recent_orders": [schemas.OrderRead.model_validate(o) for o in reports.get_recent_orders(db)],
    }


@app.get("/admin/stats/orders")
async def admin_order_stats(admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return reports.get_order_statistics(db)


@app.get("/admin/stats/payments")
async def admin_payment_stats(admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return reports.get_payment_statistics(db)


@app.get("/admin/stats/menu")
async def admin_menu_stats(admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    stats = reports.get_menu_statistics(db)
    stats.update(reports.get_menu_price_range(db))
    return stats


# -------------------- Admin: users & runtime config --------------------

@app.get("/admin/users", response_model=List[schemas.UserRead])
async def admin_users(role: str = Query("customer"), admin: Identity = Depends(require_admin),
                      db: Session = Depends(get_db)):
    return crud.list_users_by_role(db, role)


@app.put("/admin/users/{user_id}/status")
async def admin_set_user_status(user_id: int, payload: dict, admin: Identity = Depends(require_admin),
                                db: Session = Depends(get_db)):
    # Accept raw dict to keep things simple: {"status": "active" | "inactive"}
    status = payload.get("status")
    if user_id == admin.user.id:
        raise HTTPException(status_code=400, detail="cannot change your own status")
    if not crud.set_user_status(db, user_id, status):
        raise HTTPException(status_code=400, detail="Failed to update user status.")
    return {"user_id": user_id, "status": status}


@app.get("/admin/config/strict-transitions")
async def get_strict_transitions(admin: Identity = Depends(require_admin)):
    return {"strict_transitions": config.is_strict_transitions()}


@app.post("/admin/config/strict-transitions")
async def set_strict_transitions(payload: schemas.StrictTransitionsToggle, admin: Identity = Depends(require_admin)):
    config.set_strict_transitions(payload.value)
    logger.info("strict order transitions %s by admin %s",
                "enabled" if payload.value else "disabled", admin.user.id)
    return {"strict_transitions": config.is_strict_transitions()}
