import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth import hash_password, verify_password
from .utils import clean_text, round_amount

logger = logging.getLogger(__name__)


# -------------------- Users --------------------

def email_exists(db: Session, email: str, exclude_user_id: Optional[int] = None) -> bool:
    query = db.query(models.User.id).filter(func.lower(models.User.email) == email.lower())
    if exclude_user_id:
        query = query.filter(models.User.id != exclude_user_id)
    return query.first() is not None


def username_exists(db: Session, username: str, exclude_user_id: Optional[int] = None) -> bool:
    query = db.query(models.User.id).filter(models.User.username == username)
    if exclude_user_id:
        query = query.filter(models.User.id != exclude_user_id)
    return query.first() is not None


def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    if username_exists(db, user.username):
        raise ValueError("Username already exists. Please choose a different one.")
    if email_exists(db, user.email):
        raise ValueError("Email already exists. Please use a different email address.")

    db_user = models.User(
        username=user.username,
        email=user.email,
        password_hash=hash_password(user.password),
        full_name=clean_text(user.full_name),
        phone=user.phone,
        address=clean_text(user.address) or None,
        role=user.role,
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError("integrity error") from e
    db.refresh(db_user)
    logger.info("created %s account %s (id=%s)", db_user.role, db_user.username, db_user.id)
    return db_user


def get_user(db: Session, user_id: int, active_only: bool = True) -> Optional[models.User]:
    user = db.get(models.User, user_id)
    if user is None or (active_only and user.status != "active"):
        return None
    return user


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(func.lower(models.User.email) == email.lower(), models.User.status == "active")
        .first()
    )


def get_user_by_username(db: Session, username: str) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.username == username, models.User.status == "active")
        .first()
    )


def authenticate_user(db: Session, login: str, password: str) -> Optional[models.User]:
    """Look the account up by email or username and check the password."""
    if "@" in login:
        user = get_user_by_email(db, login)
    else:
        user = get_user_by_username(db, login)
    if user and verify_password(password, user.password_hash):
        return user
    return None


def update_user_profile(db: Session, user_id: int, data: schemas.UserUpdate) -> Optional[models.User]:
    user = get_user(db, user_id)
    if not user:
        return None
    if data.username is not None and username_exists(db, data.username, exclude_user_id=user_id):
        raise ValueError("Username already exists. Please choose a different one.")
    if data.email is not None and email_exists(db, data.email, exclude_user_id=user_id):
        raise ValueError("Email already exists. Please use a different email address.")

    if data.username is not None:
        user.username = data.username
    if data.email is not None:
        user.email = data.email
    if data.full_name is not None:
        user.full_name = clean_text(data.full_name)
    if data.phone is not None:
        user.phone = data.phone or None
    if data.address is not None:
        user.address = clean_text(data.address) or None
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def change_user_password(db: Session, user_id: int, new_password: str) -> bool:
    user = get_user(db, user_id)
    if not user:
        return False
    user.password_hash = hash_password(new_password)
    db.commit()
    return True


def set_user_status(db: Session, user_id: int, status: str) -> bool:
    if status not in models.USER_STATUSES:
        return False
    user = db.get(models.User, user_id)
    if not user:
        return False
    user.status = status
    db.commit()
    logger.info("user %s is now %s", user_id, status)
    return True


def list_users_by_role(db: Session, role: str) -> List[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.role == role, models.User.status == "active")
        .order_by(models.User.created_at.desc(), models.User.id.desc())
        .all()
    )


def count_active_users(db: Session) -> int:
    return db.query(models.User).filter(models.User.status == "active").count()


# -------------------- Categories --------------------

def list_categories(db: Session) -> List[models.Category]:
    return db.query(models.Category).order_by(models.Category.sort_order, models.Category.name).all()


def get_category(db: Session, category_id: int) -> Optional[models.Category]:
    return db.get(models.Category, category_id)


def category_name_exists(db: Session, name: str, exclude_category_id: Optional[int] = None) -> bool:
    query = db.query(models.Category.id).filter(models.Category.name == name)
    if exclude_category_id:
        query = query.filter(models.Category.id != exclude_category_id)
    return query.first() is not None


def create_category(db: Session, category: schemas.CategoryCreate) -> models.Category:
    name = clean_text(category.name)
    if not name:
        raise ValueError("Category name is required.")
    if category_name_exists(db, name):
        raise ValueError("Category name already exists.")
    db_category = models.Category(
        name=name,
        description=clean_text(category.description),
        sort_order=category.sort_order,
    )
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    logger.info("created category %r (id=%s)", db_category.name, db_category.id)
    return db_category


def update_category(db: Session, category_id: int, category: schemas.CategoryCreate) -> Optional[models.Category]:
    db_category = get_category(db, category_id)
    if not db_category:
        return None
    name = clean_text(category.name)
    if not name:
        raise ValueError("Category name is required.")
    if category_name_exists(db, name, exclude_category_id=category_id):
        raise ValueError("Category name already exists.")
    db_category.name = name
    db_category.description = clean_text(category.description)
    db_category.sort_order = category.sort_order
    db.commit()
    db.refresh(db_category)
    return db_category


def delete_category(db: Session, category_id: int) -> bool:
    db_category = get_category(db, category_id)
    if not db_category:
        return False
    item_count = db.query(models.MenuItem).filter(models.MenuItem.category_id == category_id).count()
    if item_count > 0:
        logger.warning("category %s still owns %d menu items, not deleting", category_id, item_count)
        return False
    db.delete(db_category)
    db.commit()
    return True


# -------------------- Menu items --------------------

def _menu_query(db: Session, available_only: bool):
    query = db.query(models.MenuItem).join(models.Category)
    if available_only:
        query = query.filter(models.MenuItem.availability == "available")
    return query


def list_menu_items(db: Session, available_only: bool = True,
                    category_id: Optional[int] = None) -> List[models.MenuItem]:
    query = _menu_query(db, available_only)
    if category_id:
        query = query.filter(models.MenuItem.category_id == category_id)
    return query.order_by(
        models.Category.sort_order, models.MenuItem.sort_order, models.MenuItem.name
    ).all()


def get_menu_item(db: Session, item_id: int) -> Optional[models.MenuItem]:
    return db.get(models.MenuItem, item_id)


def get_featured_menu_items(db: Session, limit: int = 6) -> List[models.MenuItem]:
    return (
        _menu_query(db, available_only=True)
        .filter(models.MenuItem.is_featured.is_(True))
        .order_by(models.MenuItem.sort_order, models.MenuItem.name)
        .limit(limit)
        .all()
    )


def search_menu_items(db: Session, term: str, category_id: Optional[int] = None,
                      min_price: Optional[Decimal] = None,
                      max_price: Optional[Decimal] = None) -> List[models.MenuItem]:
    # ORM filter with bound parameters; the term never reaches SQL text
    pattern = f"%{term}%"
    query = _menu_query(db, available_only=True).filter(
        or_(
            models.MenuItem.name.like(pattern),
            models.MenuItem.description.like(pattern),
            models.MenuItem.ingredients.like(pattern),
        )
    )
    if category_id:
        query = query.filter(models.MenuItem.category_id == category_id)
    if min_price is not None:
        query = query.filter(models.MenuItem.price >= min_price)
    if max_price is not None:
        query = query.filter(models.MenuItem.price <= max_price)
    return query.order_by(models.MenuItem.name).all()


def get_menu_items_by_price_range(db: Session, min_price: Decimal, max_price: Decimal,
                                  category_id: Optional[int] = None) -> List[models.MenuItem]:
    query = _menu_query(db, available_only=True).filter(models.MenuItem.price.between(min_price, max_price))
    if category_id:
        query = query.filter(models.MenuItem.category_id == category_id)
    return query.order_by(models.MenuItem.price).all()


def _apply_menu_item(db_item: models.MenuItem, item: schemas.MenuItemCreate):
    name = clean_text(item.name)
    if not name:
        raise ValueError("Menu item name is required.")
    db_item.category_id = item.category_id
    db_item.name = name
    db_item.description = clean_text(item.description)
    db_item.price = round_amount(item.price)
    db_item.image_url = item.image_url
    db_item.preparation_time = item.preparation_time
    db_item.ingredients = clean_text(item.ingredients)
    db_item.allergens = clean_text(item.allergens)
    db_item.calories = item.calories or None
    db_item.is_featured = item.is_featured
    db_item.sort_order = item.sort_order


def create_menu_item(db: Session, item: schemas.MenuItemCreate) -> models.MenuItem:
    if not get_category(db, item.category_id):
        raise ValueError("category does not exist")
    db_item = models.MenuItem()
    _apply_menu_item(db_item, item)
    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    logger.info("created menu item %r at %s (id=%s)", db_item.name, db_item.price, db_item.id)
    return db_item


def update_menu_item(db: Session, item_id: int, item: schemas.MenuItemCreate) -> Optional[models.MenuItem]:
    db_item = get_menu_item(db, item_id)
    if not db_item:
        return None
    if not get_category(db, item.category_id):
        raise ValueError("category does not exist")
    # orders keep their own price snapshot, so repricing here is safe
    _apply_menu_item(db_item, item)
    db.commit()
    db.refresh(db_item)
    return db_item


def toggle_menu_item_availability(db: Session, item_id: int) -> Optional[models.MenuItem]:
    db_item = get_menu_item(db, item_id)
    if not db_item:
        return None
    db_item.availability = "unavailable" if db_item.is_available else "available"
    db.commit()
    db.refresh(db_item)
    return db_item


def delete_menu_item(db: Session, item_id: int) -> bool:
    db_item = get_menu_item(db, item_id)
    if not db_item:
        return False
    ordered = db.query(models.OrderItem).filter(models.OrderItem.menu_item_id == item_id).count()
    if ordered:
        logger.warning("menu item %s appears on %d order lines, not deleting", item_id, ordered)
        return False
    db.delete(db_item)
    db.commit()
    return True
