"""
CafePreorder - Development Seeder
====================================
Seeds a local database with canteens, menus and users, and prints
bearer tokens for each seeded user so the API can be exercised
without an identity provider.

Usage:
    python scripts/seed.py          # Seed (skips rows that already exist)
    python scripts/seed.py --reset  # Drop all tables and reseed

Seeded:
  1. Profiles (two canteen admins, two customers)
  2. System settings (platform fee, enabled gateways)
  3. Canteens (one per admin)
  4. Menu items
"""

import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.database import SessionLocal, Base, engine
from common.security import create_token
from config.settings import AUTH_ROLE_CLAIM
from modules.admin.settings_service import set_setting
from modules.user.models import Profile, Role
from modules.admin.models import SystemSetting  # noqa: F401
from modules.canteen.models import Canteen
from modules.catalog.models import MenuItem
from modules.cart.models import CartItem  # noqa: F401
from modules.order.models import Order, OrderItem, OrderStatusLog  # noqa: F401
from modules.sync.models import ChangeLog  # noqa: F401


PROFILES = [
    ("admin-main", "main.admin@campus.test", "Main Block Admin", Role.ADMIN),
    ("admin-lib", "library.admin@campus.test", "Library Cafe Admin", Role.ADMIN),
    ("user-asha", "asha@campus.test", "Asha", Role.USER),
    ("user-ravi", "ravi@campus.test", "Ravi", Role.USER),
]

CANTEENS = [
    {
        "admin": "admin-main",
        "name": "Main Block Canteen",
        "description": "Meals, snacks and chai",
        "location": "Main Block, Ground Floor",
        "menu": [
            ("Masala Dosa", "Breakfast", "60.00", 40),
            ("Idli Vada", "Breakfast", "45.00", 40),
            ("Veg Thali", "Meals", "90.00", 25),
            ("Paneer Roll", "Snacks", "70.00", 30),
            ("Samosa", "Snacks", "15.00", 100),
            ("Masala Chai", "Beverages", "12.00", 200),
        ],
    },
    {
        "admin": "admin-lib",
        "name": "Library Cafe",
        "description": "Coffee and quick bites",
        "location": "Central Library, 1st Floor",
        "menu": [
            ("Cold Coffee", "Beverages", "55.00", 50),
            ("Filter Coffee", "Beverages", "25.00", 80),
            ("Veg Sandwich", "Snacks", "50.00", 30),
            ("Brownie", "Desserts", "40.00", 0),
        ],
    },
]


def seed_profiles(db):
    print("[1/4] Profiles...")
    for pid, email, name, role in PROFILES:
        if db.query(Profile).filter(Profile.id == pid).first():
            print(f"  = {email} exists")
            continue
        db.add(Profile(id=pid, email=email, name=name, role=role.value))
        print(f"  + {email} ({role.value})")
    db.flush()


def seed_settings(db):
    print("[2/4] System settings...")
    set_setting(db, "platform_fee", "3", "Platform fee added to every order (INR)")
    set_setting(db, "enabled_gateways", "razorpay,sandbox", "Comma-separated payment gateways")
    print("  + platform_fee, enabled_gateways")


def seed_canteens(db):
    print("[3/4] Canteens + [4/4] Menu items...")
    for entry in CANTEENS:
        canteen = db.query(Canteen).filter(Canteen.name == entry["name"]).first()
        if canteen:
            print(f"  = {entry['name']} exists")
            continue
        canteen = Canteen(
            name=entry["name"],
            description=entry["description"],
            location=entry["location"],
            admin_user_id=entry["admin"],
        )
        db.add(canteen)
        db.flush()
        for name, category, price, qty in entry["menu"]:
            db.add(MenuItem(
                canteen_id=canteen.id,
                name=name,
                category=category,
                price=Decimal(price),
                available_quantity=qty,
            ))
        print(f"  + {entry['name']} ({len(entry['menu'])} items)")
    db.flush()


def print_tokens():
    print("\nBearer tokens (valid 24h):")
    for pid, email, name, role in PROFILES:
        token = create_token(
            {"sub": pid, "email": email, "name": name, AUTH_ROLE_CLAIM: role.value},
            expires_minutes=24 * 60,
        )
        print(f"  {email}:\n    {token}")


def main():
    reset = "--reset" in sys.argv
    if reset:
        print("Dropping all tables...")
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_profiles(db)
        seed_settings(db)
        seed_canteens(db)
        db.commit()
        print("\nSeed complete.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    print_tokens()


if __name__ == "__main__":
    main()
