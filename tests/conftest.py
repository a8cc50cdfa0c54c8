"""Shared pytest fixtures: a throwaway SQLite database per test, seeded canteens and sessions."""

import os

os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("AUTH_JWT_AUDIENCE", None)

from datetime import timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from common.helpers import now_utc  # noqa: E402
from common.security import create_token  # noqa: E402
from config.database import Base, build_engine, get_db  # noqa: E402
from config.settings import AUTH_ROLE_CLAIM  # noqa: E402
from modules.admin.models import SystemSetting  # noqa: F401, E402
from modules.canteen.models import Canteen  # noqa: E402
from modules.cart.models import CartItem  # noqa: F401, E402
from modules.catalog.models import MenuItem  # noqa: E402
from modules.order.models import Order, OrderItem, OrderStatusLog  # noqa: F401, E402
from modules.sync.models import ChangeLog  # noqa: F401, E402
from modules.user.models import Profile, Role, SessionContext  # noqa: E402


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several sessions can interleave like real clients."""
    eng = build_engine(f"sqlite:///{tmp_path / 'cafepreorder.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


def _ctx(profile_id: str, role: Role) -> SessionContext:
    return SessionContext(user_id=profile_id, email=f"{profile_id}@campus.test", name=profile_id, role=role)


@pytest.fixture
def seed(db):
    """
    Two canteens, each with its own admin, and two customers.
    Main canteen menu: dosa (60.00 x10), chai (12.00 x5), brownie (sold out).
    Library cafe menu: cold coffee (55.00 x10).
    """
    for pid, role in (("admin-main", Role.ADMIN), ("admin-lib", Role.ADMIN),
                      ("user-asha", Role.USER), ("user-ravi", Role.USER)):
        db.add(Profile(id=pid, email=f"{pid}@campus.test", name=pid, role=role.value))
    db.flush()

    main = Canteen(name="Main Block Canteen", location="Main Block", admin_user_id="admin-main")
    library = Canteen(name="Library Cafe", location="Library", admin_user_id="admin-lib")
    db.add_all([main, library])
    db.flush()

    dosa = MenuItem(canteen_id=main.id, name="Masala Dosa", category="Breakfast",
                    price=Decimal("60.00"), available_quantity=10)
    chai = MenuItem(canteen_id=main.id, name="Masala Chai", category="Beverages",
                    price=Decimal("12.00"), available_quantity=5)
    brownie = MenuItem(canteen_id=main.id, name="Brownie", category="Desserts",
                       price=Decimal("40.00"), available_quantity=0)
    coffee = MenuItem(canteen_id=library.id, name="Cold Coffee", category="Beverages",
                      price=Decimal("55.00"), available_quantity=10)
    db.add_all([dosa, chai, brownie, coffee])
    db.commit()

    return SimpleNamespace(
        main_id=main.id,
        library_id=library.id,
        dosa_id=dosa.id,
        chai_id=chai.id,
        brownie_id=brownie.id,
        coffee_id=coffee.id,
        asha=_ctx("user-asha", Role.USER),
        ravi=_ctx("user-ravi", Role.USER),
        main_admin=_ctx("admin-main", Role.ADMIN),
        library_admin=_ctx("admin-lib", Role.ADMIN),
    )


@pytest.fixture
def pickup_time():
    return now_utc() + timedelta(hours=1)


@pytest.fixture
def place_order(db, seed, pickup_time):
    """Put dosa x2 + chai x3 in asha's cart and place the order (total 156 + 3 fee)."""
    from modules.cart.service import cart_service
    from modules.order.service import order_service

    def _place(ctx=None, lines=None):
        ctx = ctx or seed.asha
        for item_id, qty in (lines or [(seed.dosa_id, 2), (seed.chai_id, 3)]):
            cart_service.add_item(db, ctx, item_id, qty)
        order = order_service.place_order(db, ctx, seed.main_id, pickup_time)
        db.commit()
        return order

    return _place


@pytest.fixture
def auth_headers():
    def _make(user_id: str, role: str = "user", email: str = None) -> dict:
        token = create_token({
            "sub": user_id,
            "email": email or f"{user_id}@campus.test",
            "name": user_id,
            AUTH_ROLE_CLAIM: role,
        })
        return {"Authorization": f"Bearer {token}"}
    return _make


@pytest.fixture
def client(session_factory, seed):
    from fastapi.testclient import TestClient
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
