"""Shared pytest fixtures: in-memory database, seeded reference data and an API client."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("SMTP_HOST", "")

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quickpharma.api.deps import get_db
from quickpharma.core.rate_limiter import rate_limiter
from quickpharma.core.security import create_access_token, get_password_hash
from quickpharma.db.base import Base
from quickpharma.db.init_db import seed_reference_data
from quickpharma.main import app
from quickpharma.models.catalog import Category, Product, ProductType, Supplier
from quickpharma.models.cart import CartItem
from quickpharma.models.inventory import Inventory
from quickpharma.models.location import Address, Branch, City
from quickpharma.models.lookup import Role, RoleName
from quickpharma.models.user import User
from quickpharma.services.payment_service import get_payment_gateway

TEST_PASSWORD = "Str0ng!Pass"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeGateway:
    """Payment gateway double: sessions listed in paid_sessions report as paid."""

    def __init__(self):
        self.paid_sessions = set()
        self.created = []

    def is_session_paid(self, session_id: str) -> bool:
        return session_id in self.paid_sessions

    def create_checkout_session(self, items, delivery_fee=Decimal("0")) -> str:
        self.created.append((list(items), Decimal(delivery_fee)))
        return f"https://pay.example.test/session/{len(self.created)}"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    seed_reference_data(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    rate_limiter.reset()
    # No context manager: the lifespan (init_db, scheduler) stays off in tests
    yield TestClient(app)
    app.dependency_overrides.clear()


# ------------------------------------------------------------------------------
# Seed helpers
# ------------------------------------------------------------------------------

def make_branch(db, city_name: str) -> Branch:
    """A branch together with the city it serves and its own address."""
    branch = Branch()
    db.add(branch)
    db.flush()
    city = City(name=city_name, branch_id=branch.id)
    db.add(city)
    db.flush()
    address = Address(city_id=city.id, block="100", road="1", building_floor="G", is_profile_address=False)
    db.add(address)
    db.flush()
    branch.address_id = address.id
    db.commit()
    db.refresh(branch)
    return branch


def city_of(db, branch: Branch) -> City:
    return db.query(City).filter(City.branch_id == branch.id).first()


def make_user(db, email: str, role: str = RoleName.CUSTOMER, branch: Branch = None,
              slot_id: int = None, first_name: str = "Test", last_name: str = "User") -> User:
    role_row = db.query(Role).filter(Role.name == role).first()
    user = User(
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role_id=role_row.id,
        branch_id=branch.id if branch else None,
        slot_id=slot_id,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_product(db, name: str, price: str = "2.500", requires_prescription: bool = False,
                 is_controlled: bool = False, category: Category = None, supplier: Supplier = None) -> Product:
    product = Product(
        name=name,
        description=f"{name} description",
        price=Decimal(price),
        requires_prescription=requires_prescription,
        is_controlled=is_controlled,
        category_id=category.id if category else None,
        supplier_id=supplier.id if supplier else None,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def add_batch(db, product: Product, branch: Branch, quantity: int, expiry: date = None) -> Inventory:
    batch = Inventory(product_id=product.id, branch_id=branch.id, quantity=quantity, expiry_date=expiry)
    db.add(batch)
    db.commit()
    db.refresh(batch)
    return batch


def put_in_cart(db, user: User, product: Product, quantity: int) -> CartItem:
    item = CartItem(user_id=user.id, product_id=product.id, quantity=quantity)
    db.add(item)
    db.commit()
    return item


def auth_headers(user: User) -> dict:
    token = create_access_token(subject=str(user.id), role=user.role_name)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def store(db):
    """Two branches, a category, a supplier and staff for the first branch."""
    manama = make_branch(db, "Manama")
    riffa = make_branch(db, "Riffa")

    category = Category(name="Pain Relief")
    db.add(category)
    db.flush()
    db.add(ProductType(name="Tablets", category_id=category.id))
    supplier = Supplier(name="Gulf Pharma", contact="+973 1700 0000", email="orders@gulfpharma.test",
                        representative="Sara Ali")
    db.add(supplier)
    db.commit()

    return {
        "branch": manama,
        "other_branch": riffa,
        "city": city_of(db, manama),
        "other_city": city_of(db, riffa),
        "category": category,
        "supplier": supplier,
        "admin": make_user(db, "admin@test.com", RoleName.ADMIN, first_name="Ada", last_name="Admin"),
        "manager": make_user(db, "manager@test.com", RoleName.MANAGER, manama, first_name="Mona"),
        "pharmacist": make_user(db, "pharmacist@test.com", RoleName.PHARMACIST, manama, first_name="Paul"),
        "driver": make_user(db, "driver@test.com", RoleName.DRIVER, manama, slot_id=1, first_name="Dina"),
        "customer": make_user(db, "customer@test.com", first_name="Cara", last_name="Customer"),
    }


@pytest.fixture
def future_expiry():
    return date.today() + timedelta(days=365)
