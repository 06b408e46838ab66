"""
Seed a fresh database
- Creates all tables if missing
- Adds the default categories and menu items when the category is absent
- Adds an 'admin' account when no admin exists yet

Re-running is safe: existing rows are left untouched.

Usage:
  python -m migration.seed_catalog --db path/to/foodapp.db --admin-password secret123
"""
import argparse
import logging
import os
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from foodapp import models
from foodapp.auth import hash_password
from foodapp.db import Base, enable_sqlite_foreign_keys

logger = logging.getLogger(__name__)

DEFAULT_MENU = {
    ("Rice Dishes", "Local rice favourites", 1): [
        ("Nasi Lemak", "Coconut rice with sambal, egg and anchovies", Decimal("8.50"), True),
        ("Nasi Goreng Kampung", "Village-style fried rice", Decimal("9.00"), False),
        ("Chicken Rice", "Steamed chicken with fragrant rice", Decimal("10.00"), True),
    ],
    ("Noodles", "Wok-fried and soup noodles", 2): [
        ("Char Kway Teow", "Flat rice noodles fried with prawns", Decimal("11.00"), True),
        ("Mee Goreng Mamak", "Spicy fried yellow noodles", Decimal("9.50"), False),
        ("Laksa", "Curry noodle soup", Decimal("12.00"), False),
    ],
    ("Drinks", "Hot and cold beverages", 3): [
        ("Teh Tarik", "Pulled milk tea", Decimal("3.00"), False),
        ("Iced Lemon Tea", "Freshly brewed", Decimal("3.50"), False),
        ("Kopi O", "Black coffee", Decimal("2.50"), False),
    ],
}


def seed(db_path: str, admin_password: str = "admin123") -> dict:
    if db_path == ":memory:":
        raise ValueError("Use a file-backed DB for the seed script")
    if len(admin_password) < 6:
        raise ValueError("admin password must be at least 6 characters")

    engine = create_engine(f"sqlite:///{os.path.abspath(db_path)}", future=True)
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, future=True)

    added = {"categories": 0, "menu_items": 0, "admins": 0}
    with Session() as db:
        for (name, description, sort_order), items in DEFAULT_MENU.items():
            if db.query(models.Category).filter(models.Category.name == name).first():
                continue
            category = models.Category(name=name, description=description, sort_order=sort_order)
            db.add(category)
            db.flush()
            added["categories"] += 1
            for position, (item_name, item_description, price, featured) in enumerate(items):
                db.add(models.MenuItem(
                    category_id=category.id,
                    name=item_name,
                    description=item_description,
                    price=price,
                    is_featured=featured,
                    sort_order=position,
                ))
                added["menu_items"] += 1

        if not db.query(models.User).filter(models.User.role == "admin").first():
            db.add(models.User(
                username="admin",
                email="admin@example.com",
                password_hash=hash_password(admin_password),
                full_name="Administrator",
                role="admin",
            ))
            added["admins"] += 1
        db.commit()

    engine.dispose()
    logger.info("seeded %s: %s", db_path, added)
    return added


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", required=True, help="Path to SQLite database file")
    parser.add_argument("--admin-password", default="admin123", help="Password for the seeded admin account")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    seed(args.db, args.admin_password)


if __name__ == "__main__":
    main()
