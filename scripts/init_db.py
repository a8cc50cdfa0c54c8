"""
CafePreorder - Database Initialization
=======================================
Creates the schema on an empty database (local runs, SQLite demos).
Production databases are managed with `alembic upgrade head`.

Usage:
    python scripts/init_db.py            # create missing tables
    python scripts/init_db.py --reset    # drop everything first (asks to confirm)
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect  # noqa: E402

from config.database import Base, engine  # noqa: E402
from modules.user.models import Profile  # noqa: F401, E402
from modules.admin.models import SystemSetting  # noqa: F401, E402
from modules.canteen.models import Canteen  # noqa: F401, E402
from modules.catalog.models import MenuItem  # noqa: F401, E402
from modules.cart.models import CartItem  # noqa: F401, E402
from modules.order.models import Order, OrderItem, OrderStatusLog  # noqa: F401, E402
from modules.sync.models import ChangeLog  # noqa: F401, E402


def create_schema(reset: bool = False):
    if reset:
        Base.metadata.drop_all(bind=engine)
        print("Dropped existing tables.")

    before = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    after = set(inspect(engine).get_table_names())

    for name in sorted(after):
        marker = "+" if name not in before else "="
        print(f"  {marker} {name}")
    print(f"{len(after - before)} table(s) created, {len(after)} in total.")


if __name__ == "__main__":
    reset = "--reset" in sys.argv
    if reset and input(f"Drop all tables in {engine.url.database}? Type 'yes': ").strip().lower() != "yes":
        print("Aborted.")
        sys.exit(0)
    create_schema(reset=reset)
